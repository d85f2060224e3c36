from .base import JobSearchBase
from .mock import MockSource
from .remotive import RemotiveSource

from jobalerts.log import get_logger

log = get_logger(__name__)

__all__ = ["JobSearchBase", "MockSource", "RemotiveSource", "get_sources"]


def get_sources(names: list[str] | None = None) -> dict[str, JobSearchBase]:
    """Build the live sources by name; unknown names are skipped with a warning."""
    available = {"remotive": RemotiveSource, "mock": MockSource}
    sources: dict[str, JobSearchBase] = {}
    for name in names or ["remotive"]:
        key = name.lower().strip()
        factory = available.get(key)
        if factory is None:
            log.warning("Unknown live source %r — skipped", name)
            continue
        sources[key] = factory()
        log.info("Registered source: %s", key)

    if not sources:
        sources["mock"] = MockSource()
        log.info("No usable sources — using MockSource")
    return sources
