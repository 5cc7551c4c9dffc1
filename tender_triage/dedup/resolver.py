"""
Поиск существующего AO по уровням ключей.

Порядок проверки: (announcement) -> uuid -> composite -> secondary.
Возвращается первое попадание, уровни не агрегируются.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

from tender_triage.dedup.index import RecordIndex, RecordStore
from tender_triage.dedup.keys import KeyGenerator, composite_is_usable
from tender_triage.errors import DedupUnavailableError
from tender_triage.models import CanonicalRecord, DedupKeys, MatchResult, MatchStrategy, StoredRecord

logger = logging.getLogger(__name__)


def _to_match(stored: StoredRecord, strategy: MatchStrategy) -> MatchResult:
    return MatchResult(
        matched_id=stored.id,
        strategy=strategy,
        source=stored.source,
        source_id=stored.source_id,
    )


def lookup_index(
    keys: DedupKeys,
    index: RecordIndex,
    use_announcement: bool = False
) -> Optional[MatchResult]:
    """
    Проверяет ключи по индексу, от самого надёжного уровня к наименее.

    Args:
        keys: Ключи входящей записи
        index: Индекс сохранённых AO
        use_announcement: Учитывать номер объявления BOAMP (batch путь)
    """
    if use_announcement and keys.announcement_number:
        found = index.by_announcement.get(keys.announcement_number)
        if found is not None:
            return _to_match(found, MatchStrategy.ANNOUNCEMENT)

    if keys.uuid_key:
        found = index.by_uuid.get(keys.uuid_key)
        if found is not None:
            return _to_match(found, MatchStrategy.UUID)

    if composite_is_usable(keys.composite_key):
        found = index.by_composite.get(keys.composite_key)
        if found is not None:
            return _to_match(found, MatchStrategy.COMPOSITE)

    if keys.secondary_key:
        found = index.by_secondary.get(keys.secondary_key)
        if found is not None:
            return _to_match(found, MatchStrategy.SECONDARY)

    return None


class MatchResolver:
    """
    Сопоставляет входящие AO с ранее сохранёнными.

    Batch путь работает только по индексу (O(N) после построения за O(M)).
    Одиночный путь использует индекс, если он есть, иначе один запрос
    к хранилищу по composite/secondary ключу.
    """

    def __init__(
        self,
        index: Optional[RecordIndex] = None,
        store: Optional[RecordStore] = None,
        key_generator: Optional[KeyGenerator] = None
    ):
        self.index = index
        self.store = store
        self.key_generator = key_generator or KeyGenerator()

    def keys_for(self, record: CanonicalRecord) -> DedupKeys:
        return self.key_generator.generate(record)

    async def resolve(self, record: CanonicalRecord) -> Optional[MatchResult]:
        """Лучшее совпадение для одной записи или None."""
        keys = self.keys_for(record)

        if self.index is not None:
            return lookup_index(keys, self.index)

        if self.store is None:
            raise DedupUnavailableError("MatchResolver has neither an index nor a store")

        try:
            candidates = await self.store.find_by_composite_or_secondary_key(
                keys.composite_key, keys.secondary_key, uuid_key=keys.uuid_key
            )
        except Exception as e:
            logger.error(f"❌ Ошибка поиска кандидатов в хранилище: {e}")
            raise DedupUnavailableError(f"candidate lookup failed: {e}") from e
        if not candidates:
            return None

        # Кандидаты проверяются в том же порядке уровней, что и индекс
        local_index = RecordIndex.from_records(candidates, self.key_generator)
        return lookup_index(keys, local_index)

    def resolve_batch(
        self,
        records: Sequence[CanonicalRecord]
    ) -> Dict[int, Optional[MatchResult]]:
        """
        Сопоставление N записей с одним общим индексом.

        Returns:
            {позиция записи во входном списке: MatchResult или None}
        """
        if self.index is None:
            raise DedupUnavailableError("resolve_batch requires a built RecordIndex")

        result: Dict[int, Optional[MatchResult]] = {}
        for position, record in enumerate(records):
            result[position] = lookup_index(self.keys_for(record), self.index, use_announcement=True)

        matched: List[MatchResult] = [m for m in result.values() if m is not None]
        by_strategy = Counter(m.strategy.value for m in matched)
        logger.info(f"📊 Batch matching: {len(matched)}/{len(records)} AO уже известны")
        if by_strategy:
            logger.info(f"   Стратегии: {dict(by_strategy)}")

        return result
