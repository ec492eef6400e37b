"""mindsync - mind map snapshot sync with tombstone-aware tree merging."""

__version__ = "0.1.0"
