"""
Решение дедупликации для каждого входящего AO.

Четыре случая:
- CREATE: AO ни разу не встречалось
- CANCEL: найдено, и это avis d'annulation
- RECTIFY: найдено, и AO объявляет себя ректификатом
- SKIP: найдено, не отменено и не изменено
"""

import re
import logging
from typing import Any, List, Optional, Sequence

from tender_triage.dedup.resolver import MatchResolver
from tender_triage.logger import RecordLoggerAdapter
from tender_triage.models import CanonicalRecord, DeduplicationDecision, MatchResult
from tender_triage.normalization import normalize_for_search

logger = logging.getLogger(__name__)

CANCELLED_STATE = 'AVIS_ANNULE'
RECTIFICATION_NATURE = 'avis_rectificatif'
UNCHANGED_DUPLICATE = 'unchanged duplicate'

# Фразы проверяются раньше отдельных слов
CANCELLATION_PHRASES = (
    "avis d'annulation",
    'avis-annulation',
    'avis annulation',
    "avis d'annule",
    'avis-annule',
    'avis annule',
)
CANCELLATION_KEYWORDS = ('annulation', 'annule', 'annulee', 'annuler')
# Для свободного текста: '_' и цифры считаются разделителями
CANCELLATION_WORDS = re.compile(
    r'(?<![a-z])(annulations?|annulees?|annules?|annuler)(?![a-z])'
)


def _cancellation_in_code(value: Optional[str]) -> Optional[str]:
    """Коды и метки nature: простое вхождение (avis_annulation, annulation_partielle)."""
    normalized = normalize_for_search(value)
    if not normalized:
        return None
    for candidate in CANCELLATION_PHRASES + CANCELLATION_KEYWORDS:
        if candidate in normalized:
            return candidate
    return None


def _cancellation_in_text(text: Optional[str]) -> Optional[str]:
    """Возвращает найденную фразу/слово отмены в свободном тексте или None."""
    normalized = normalize_for_search(text)
    if not normalized:
        return None
    for phrase in CANCELLATION_PHRASES:
        if phrase in normalized:
            return phrase
    match = CANCELLATION_WORDS.search(normalized)
    return match.group(1) if match else None


def cancellation_signal(record: CanonicalRecord) -> Optional[str]:
    """
    Причина, по которой AO считается отменой, или None.

    Порядок источников: поле etat, nature (код), nature_label,
    заголовок (свободный текст, только как fallback).
    """
    lifecycle = record.lifecycle
    if lifecycle.state == CANCELLED_STATE:
        return f"etat={CANCELLED_STATE}"

    for field_name, value in (('nature', lifecycle.nature), ('nature_label', lifecycle.nature_label)):
        hit = _cancellation_in_code(value)
        if hit:
            return f"{field_name}: {hit}"

    hit = _cancellation_in_text(record.title)
    return f"title: {hit}" if hit else None


def is_cancellation_notice(record: CanonicalRecord) -> bool:
    return cancellation_signal(record) is not None


def _has_reference(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def is_revision(record: CanonicalRecord) -> bool:
    """AO объявляет себя ректификатом (ссылка на предыдущее объявление или nature)."""
    lifecycle = record.lifecycle
    if _has_reference(lifecycle.linked_notice) or _has_reference(lifecycle.prior_notices):
        return True
    if normalize_for_search(lifecycle.nature) == RECTIFICATION_NATURE:
        return True
    return 'rectificatif' in normalize_for_search(lifecycle.nature_label)


class DeduplicationDecider:
    """Комбинирует MatchResolver с детекцией отмен и ректификатов."""

    def __init__(self, resolver: MatchResolver):
        self.resolver = resolver

    def decide(
        self,
        record: CanonicalRecord,
        match: Optional[MatchResult]
    ) -> DeduplicationDecision:
        """Чистая функция: запись + результат матчинга -> решение."""
        log = RecordLoggerAdapter(logger, {'source': record.source, 'source_id': record.source_id})

        if match is None:
            log.debug("🟢 CREATE: AO ранее не встречалось")
            return DeduplicationDecision.create()

        signal = cancellation_signal(record)
        if signal:
            log.info(f"🔴 CANCEL -> #{match.matched_id} ({signal}, match={match.strategy.value})")
            return DeduplicationDecision.cancel(match)

        if is_revision(record):
            log.info(f"🟠 RECTIFY -> #{match.matched_id} (match={match.strategy.value})")
            return DeduplicationDecision.rectify(match)

        log.debug(f"⚪ SKIP: дубликат #{match.matched_id} без изменений")
        return DeduplicationDecision.skip(UNCHANGED_DUPLICATE, match)

    async def resolve(self, record: CanonicalRecord) -> DeduplicationDecision:
        """Одиночный путь: поиск совпадения и решение."""
        match = await self.resolver.resolve(record)
        return self.decide(record, match)

    def decide_batch(self, records: Sequence[CanonicalRecord]) -> List[DeduplicationDecision]:
        """Batch путь по общему индексу; порядок решений совпадает с порядком записей."""
        matches = self.resolver.resolve_batch(records)
        return [self.decide(record, matches[position]) for position, record in enumerate(records)]
