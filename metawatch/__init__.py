"""Key-value stores, backup files, audit logs and checks for Milvus metadata."""

__version__ = "0.1.0"