"""
Registry Kernel - shared infrastructure for company-registry ingestion.

Provides:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Database engine, declarative base and dialect-aware upsert helpers
- Injectable clock and canonical payload hashing
"""

__version__ = "0.1.0"
