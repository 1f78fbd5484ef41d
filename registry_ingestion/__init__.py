"""
registry_ingestion -- Company-registry document ingestion.

Turns heterogeneous registry JSON documents into relational rows while
keeping every payload losslessly.

Entry point:
    IngestionService(session_factory, settings).ingest(payload)
"""
