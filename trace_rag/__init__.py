"""Distributed-trace narratives, semantic indexing and question answering."""

__version__ = "1.0.0"
