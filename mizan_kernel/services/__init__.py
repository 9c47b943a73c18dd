"""Kernel services - persistence boundary and fiscal periods."""

from mizan_kernel.services.document_store import DocumentStore, SqlDocumentStore
from mizan_kernel.services.period_service import PeriodService

__all__ = ["DocumentStore", "PeriodService", "SqlDocumentStore"]
