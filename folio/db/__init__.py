"""Database layer for Folio."""

from folio.db.repository import FolioRepository
from folio.db.schema import create_schema

__all__ = ["FolioRepository", "create_schema"]
