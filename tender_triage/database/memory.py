"""
RecordStore в памяти (JSON-выгрузка базы, локальные прогоны, тесты).
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from tender_triage.database.models import STATUS_ANALYZED
from tender_triage.dedup.keys import KeyGenerator
from tender_triage.errors import StoreError
from tender_triage.models import CanonicalRecord, RecordId, StoredRecord

logger = logging.getLogger(__name__)


class MemoryRecordStore:
    """
    Список StoredRecord + (опционально) полные предыдущие версии AO.

    Порядок записей сохраняется: при коллизии ключей в индексе
    остаётся первая.
    """

    def __init__(
        self,
        records: Iterable[StoredRecord] = (),
        previous_versions: Optional[Dict[RecordId, CanonicalRecord]] = None,
        key_generator: Optional[KeyGenerator] = None
    ):
        self.records: List[StoredRecord] = list(records)
        self.previous_versions: Dict[RecordId, CanonicalRecord] = dict(previous_versions or {})
        self.key_generator = key_generator or KeyGenerator()

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "MemoryRecordStore":
        """
        Загружает выгрузку из JSON.

        Формат: список объектов StoredRecord; необязательное поле "record"
        содержит полную сохранённую версию AO (для сравнения ректификатов).
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreError(f"Не удалось прочитать {path}: {e}") from e

        if not isinstance(data, list):
            raise StoreError(f"{path}: ожидался JSON-список записей")

        records: List[StoredRecord] = []
        previous: Dict[RecordId, CanonicalRecord] = {}
        for item in data:
            stored = StoredRecord.model_validate(item)
            records.append(stored)
            full: Any = item.get('record') if isinstance(item, dict) else None
            if full:
                previous[stored.id] = CanonicalRecord.model_validate(full)

        logger.info(f"📂 Загружено {len(records)} сохранённых AO из {path}")
        return cls(records, previous)

    async def bulk_read_analyzed(self) -> Sequence[StoredRecord]:
        return [r for r in self.records if (r.status or STATUS_ANALYZED) == STATUS_ANALYZED]

    async def find_by_composite_or_secondary_key(
        self,
        composite_key: str,
        secondary_key: Optional[str],
        uuid_key: Optional[str] = None,
    ) -> Sequence[StoredRecord]:
        candidates = []
        for stored in await self.bulk_read_analyzed():
            keys = self.key_generator.generate_for_stored(stored)
            if keys.composite_key == composite_key \
                    or (secondary_key and keys.secondary_key == secondary_key) \
                    or (uuid_key and keys.uuid_key == uuid_key):
                candidates.append(stored)
        return candidates

    async def get_record(self, record_id: RecordId) -> Optional[CanonicalRecord]:
        return self.previous_versions.get(record_id)
