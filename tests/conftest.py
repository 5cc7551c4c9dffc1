"""
Общие фикстуры тестов tender_triage.
"""

from typing import Any, Dict, Sequence

import pytest

from tender_triage.config import TriageSettings
from tender_triage.database import MemoryRecordStore
from tender_triage.matching import load_lexicon
from tender_triage.models import CanonicalRecord, StoredRecord

DEADLINE = "2025-03-15T12:00:00Z"


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


@pytest.fixture
def record_factory():
    """Фабрика CanonicalRecord: вложенные словари сливаются с базовой записью."""
    base = {
        'source': 'BOAMP',
        'source_id': '25-10001',
        'budget_max': 100000,
        'identity': {
            'title': 'Mission de conseil en stratégie',
            'buyer': 'SNCF Voyageurs',
            'region': 'Île-de-France',
        },
        'lifecycle': {
            'publication_date': '2025-02-01',
            'deadline': DEADLINE,
        },
        'content': {
            'description': 'Accompagnement du comité de direction',
        },
        'classification': {'market_type': 'SERVICES'},
    }

    def make(**overrides: Any) -> CanonicalRecord:
        return CanonicalRecord.model_validate(_merge(base, overrides))

    return make


@pytest.fixture
def stored_factory():
    """Фабрика StoredRecord с теми же полями идентичности, что и record_factory."""
    def make(**overrides: Any) -> StoredRecord:
        data = {
            'id': 1,
            'source': 'BOAMP',
            'source_id': '25-10001',
            'title': 'Mission de conseil en stratégie',
            'buyer': 'SNCF Voyageurs',
            'deadline': DEADLINE,
            'status': 'analyzed',
            'keyword_score': 55.0,
        }
        data.update(overrides)
        return StoredRecord.model_validate(data)

    return make


class FailingStore:
    """Store, у которого bulk read и поиск всегда падают."""

    async def bulk_read_analyzed(self) -> Sequence[StoredRecord]:
        raise ConnectionError("database is down")

    async def find_by_composite_or_secondary_key(self, composite_key, secondary_key, uuid_key=None):
        raise ConnectionError("database is down")


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def memory_store_factory():
    def make(records=(), previous_versions=None) -> MemoryRecordStore:
        return MemoryRecordStore(records, previous_versions)
    return make


@pytest.fixture(scope='session')
def lexicon():
    """Лексикон по умолчанию (tender_triage/data/lexicon.yaml)."""
    return load_lexicon()


@pytest.fixture
def settings():
    return TriageSettings()
