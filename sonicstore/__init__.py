"""Key-value and word-graph storage, pools and periodic maintenance for a schema-less search backend."""

__version__ = "0.1.0"