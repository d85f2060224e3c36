from .base import AlertParser, GENERAL_EXPERIENCE, extract_requirements
from .generic import GenericParser
from .glassdoor import GlassdoorParser
from .indeed import IndeedParser
from .linkedin import LinkedInParser

from jobalerts.log import get_logger
from jobalerts.models import ListingCandidate, RawMessage, SourceKind

log = get_logger(__name__)

__all__ = [
    "AlertParser", "GenericParser", "GlassdoorParser", "IndeedParser",
    "LinkedInParser", "GENERAL_EXPERIENCE", "extract_requirements",
    "get_parser", "parse_message",
]

_PARSERS: dict[SourceKind, AlertParser] = {
    SourceKind.LINKEDIN: LinkedInParser(),
    SourceKind.INDEED: IndeedParser(),
    SourceKind.GLASSDOOR: GlassdoorParser(),
    SourceKind.GENERIC: GenericParser(),
}


def get_parser(kind: SourceKind | str) -> AlertParser:
    return _PARSERS[SourceKind.coerce(kind)]


def parse_message(message: RawMessage) -> list[ListingCandidate]:
    """Extract listing candidates; never raises, returns [] on no match."""
    parser = get_parser(message.source_kind)
    try:
        jobs = parser.parse(message)
    except Exception as exc:
        log.warning(
            "[%s] parser failed on message %s: %s",
            parser.__class__.__name__, message.message_id or "-", exc,
        )
        return []
    if not jobs:
        log.debug("[%s] no listings in message %s", parser.__class__.__name__, message.message_id or "-")
    return jobs
