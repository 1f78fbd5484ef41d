"""
Module: registry_ingestion.selectors.base
Responsibility: Base class for read-only query selectors over the registry
    tables.
Architecture position: Ingestion > Selectors.  May import from models/ and
    registry_kernel.db.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - Session ownership: the caller owns the session and its transaction.
    - Selectors return frozen dataclasses or plain dicts, not ORM instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Holds the caller's session for subclass queries."""

    def __init__(self, session: Session):
        self.session = session
