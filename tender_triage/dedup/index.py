"""
Индекс ранее сохранённых AO для быстрого матчинга.

Строится одним bulk read на запуск, после этого только читается.
Пустой или упавший bulk read НЕ трактуется как "записей нет":
иначе все ранее проанализированные AO были бы созданы заново.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from tender_triage.dedup.keys import KeyGenerator, composite_is_usable
from tender_triage.errors import EmptyIndexError, IndexBuildError
from tender_triage.models import RecordId, StoredRecord

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Внешнее хранилище AO (реализуется слоем персистентности)."""

    async def bulk_read_analyzed(self) -> Sequence[StoredRecord]:
        """Все уже проанализированные AO (поля, нужные для ключей)."""
        ...

    async def find_by_composite_or_secondary_key(
        self,
        composite_key: str,
        secondary_key: Optional[str],
        uuid_key: Optional[str] = None,
    ) -> Sequence[StoredRecord]:
        """Кандидаты для одиночного (не batch) матчинга."""
        ...


@dataclass(frozen=True)
class RecordIndex:
    """Четыре read-only карты: announcement / uuid / composite / secondary (+ по id)."""

    by_announcement: Dict[str, StoredRecord] = field(default_factory=dict)
    by_uuid: Dict[str, StoredRecord] = field(default_factory=dict)
    by_composite: Dict[str, StoredRecord] = field(default_factory=dict)
    by_secondary: Dict[str, StoredRecord] = field(default_factory=dict)
    by_id: Dict[RecordId, StoredRecord] = field(default_factory=dict)
    size: int = 0

    @classmethod
    def from_records(
        cls,
        records: Iterable[StoredRecord],
        key_generator: Optional[KeyGenerator] = None
    ) -> "RecordIndex":
        """Чистое построение индекса из уже прочитанных записей."""
        key_generator = key_generator or KeyGenerator()
        by_announcement: Dict[str, StoredRecord] = {}
        by_uuid: Dict[str, StoredRecord] = {}
        by_composite: Dict[str, StoredRecord] = {}
        by_secondary: Dict[str, StoredRecord] = {}
        by_id: Dict[RecordId, StoredRecord] = {}
        count = 0

        for stored in records:
            count += 1
            by_id.setdefault(stored.id, stored)
            keys = key_generator.generate_for_stored(stored)
            # При коллизии остаётся первая запись (bulk read отсортирован хранилищем)
            if keys.announcement_number:
                by_announcement.setdefault(keys.announcement_number, stored)
            if keys.uuid_key:
                by_uuid.setdefault(keys.uuid_key, stored)
            if composite_is_usable(keys.composite_key):
                by_composite.setdefault(keys.composite_key, stored)
            if keys.secondary_key:
                by_secondary.setdefault(keys.secondary_key, stored)

        return cls(
            by_announcement=by_announcement,
            by_uuid=by_uuid,
            by_composite=by_composite,
            by_secondary=by_secondary,
            by_id=by_id,
            size=count,
        )

    @classmethod
    async def build(
        cls,
        store: RecordStore,
        key_generator: Optional[KeyGenerator] = None,
        allow_empty: bool = False
    ) -> "RecordIndex":
        """
        Единственный блокирующий вызов за batch run.

        Args:
            store: Хранилище AO
            key_generator: Генератор ключей (длина ключей из конфигурации)
            allow_empty: Разрешить пустой индекс (первый запуск на пустой базе)

        Raises:
            IndexBuildError: bulk read упал
            EmptyIndexError: bulk read вернул пустой результат и allow_empty=False
        """
        try:
            records: List[StoredRecord] = list(await store.bulk_read_analyzed())
        except Exception as e:
            logger.error(f"❌ Ошибка bulk read для индекса AO: {e}")
            raise IndexBuildError(f"bulk read failed: {e}") from e

        if not records and not allow_empty:
            logger.error("❌ Bulk read вернул 0 AO - дедупликация недоступна")
            raise EmptyIndexError(
                "bulk read returned no analyzed records; "
                "pass allow_empty=True for a first run on an empty store"
            )

        index = cls.from_records(records, key_generator)
        logger.info(
            f"📊 Индекс построен: {len(index.by_uuid)} UUID, "
            f"{len(index.by_composite)} composite, {len(index.by_secondary)} SIRET, "
            f"{len(index.by_announcement)} boamp_id ({index.size} AO)"
        )
        return index
