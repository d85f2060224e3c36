"""Job alert ingestion, scoring and background orchestration."""

__version__ = "0.1.0"
