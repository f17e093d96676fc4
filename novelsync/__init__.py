"""Novel ingestion, chunking and remote note synchronization."""

__version__ = "1.0.0"
