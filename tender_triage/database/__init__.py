"""Персистентность AO (SQLAlchemy async)."""

from tender_triage.database.models import AppelOffre, Base, STATUS_ANALYZED, STATUS_CANCELLED, STATUS_NEW
from tender_triage.database.memory import MemoryRecordStore
from tender_triage.database.store import SqlAlchemyRecordStore, get_store

__all__ = [
    'AppelOffre',
    'Base',
    'STATUS_ANALYZED',
    'STATUS_CANCELLED',
    'STATUS_NEW',
    'MemoryRecordStore',
    'SqlAlchemyRecordStore',
    'get_store',
]
