"""
Классификация изменений ректификата.

Сравнивает сохранённую и новую версию AO по независимым правилам.
Достаточно одного сработавшего правила, чтобы ректификат считался
существенным (повторный скоринг и анализ). Иначе старый скор
переносится, обновляются только изменённые поля.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from rapidfuzz.distance import Levenshtein

from tender_triage.config import ChangeThresholds
from tender_triage.models import CanonicalRecord, Change, ChangeSet

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


def calculate_levenshtein_similarity(str1: str, str2: str) -> float:
    """
    Схожесть строк 0..1 на основе расстояния Левенштейна.

    (max(len1, len2) - distance) / max(len1, len2); две пустые строки -> 1.0.
    """
    longest = max(len(str1), len(str2))
    if longest == 0:
        return 1.0
    distance = Levenshtein.distance(str1, str2)
    return (longest - distance) / longest


def _as_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _serialize(value: Any) -> str:
    # Сравнение "байт в байт" после разбора JSON, порядок ключей значим
    return json.dumps(value, ensure_ascii=False, default=str)


class ChangeClassifier:
    """
    Детектор существенных изменений между версиями AO.

    Пороги (строгие сравнения):
    - бюджет: |new - old| / old > 20%
    - дедлайн: сдвиг > 7 дней
    - критерии допуска (финансовые / технические): любое отличие
    - тип рынка, регион: любое неравенство
    - заголовок: схожесть Левенштейна < 0.80
    """

    def __init__(self, thresholds: Optional[ChangeThresholds] = None):
        self.thresholds = thresholds or ChangeThresholds()

    def classify(self, old: CanonicalRecord, new: CanonicalRecord) -> ChangeSet:
        """Чистая функция: одинаковая пара всегда даёт одинаковый ChangeSet."""
        changes: List[Change] = []
        minor: List[Change] = []

        self._check_budget(old, new, changes, minor)
        self._check_deadline(old, new, changes, minor)
        self._check_criteria('financial_criteria', old.financial_criteria, new.financial_criteria, changes)
        self._check_criteria('technical_criteria', old.technical_criteria, new.technical_criteria, changes)
        self._check_categorical(
            'market_type', old.classification.market_type, new.classification.market_type, changes
        )
        self._check_categorical('region', old.identity.region, new.identity.region, changes)
        self._check_title(old.title, new.title, changes, minor)

        change_set = ChangeSet(is_substantial=bool(changes), changes=changes, minor_changes=minor)
        if changes:
            logger.info(f"📋 Изменения ректификата (СУЩЕСТВЕННЫЕ): {len(changes)}")
            for line in format_changes(changes).splitlines():
                logger.info(f"  {line}")
        elif minor:
            logger.debug(f"📋 Мелкие изменения ректификата: {[c.field for c in minor]}")
        return change_set

    # ------------------------------------------------------------------
    # Правила
    # ------------------------------------------------------------------

    def _check_budget(self, old, new, changes: List[Change], minor: List[Change]) -> None:
        if not old.budget_max or new.budget_max is None:
            return
        ratio = abs((new.budget_max - old.budget_max) / old.budget_max)
        change = Change(
            field='budget',
            old=old.budget_max,
            new=new.budget_max,
            change_pct=round(ratio * 100),
        )
        if ratio > self.thresholds.budget_change_ratio:
            changes.append(change)
        elif ratio > 0:
            minor.append(change)

    def _check_deadline(self, old, new, changes: List[Change], minor: List[Change]) -> None:
        if old.deadline is None or new.deadline is None:
            return
        delta = _as_utc_naive(new.deadline) - _as_utc_naive(old.deadline)
        days = abs(delta.total_seconds()) / SECONDS_PER_DAY
        change = Change(
            field='deadline',
            old=old.deadline.isoformat(),
            new=new.deadline.isoformat(),
            days_added=round(days),
        )
        if days > self.thresholds.deadline_shift_days:
            changes.append(change)
        elif days > 0:
            minor.append(change)

    @staticmethod
    def _check_criteria(field: str, old_value: Any, new_value: Any, changes: List[Change]) -> None:
        # Отсутствие с одной стороны тоже считается изменением
        if _serialize(old_value) != _serialize(new_value):
            changes.append(Change(field=field, old=old_value, new=new_value))

    @staticmethod
    def _check_categorical(
        field: str,
        old_value: Optional[str],
        new_value: Optional[str],
        changes: List[Change]
    ) -> None:
        if old_value and new_value and old_value != new_value:
            changes.append(Change(field=field, old=old_value, new=new_value))

    def _check_title(self, old_title: str, new_title: str, changes: List[Change], minor: List[Change]) -> None:
        if not old_title or not new_title or old_title == new_title:
            return
        similarity = calculate_levenshtein_similarity(old_title, new_title)
        change = Change(
            field='title',
            old=old_title,
            new=new_title,
            similarity=round(similarity, 2),
        )
        if similarity < self.thresholds.title_similarity:
            changes.append(change)
        else:
            minor.append(change)


def classify_change(
    old: CanonicalRecord,
    new: CanonicalRecord,
    thresholds: Optional[ChangeThresholds] = None
) -> ChangeSet:
    """Shortcut: ChangeClassifier(thresholds).classify(old, new)."""
    return ChangeClassifier(thresholds).classify(old, new)


# ----------------------------------------------------------------------
# Текстовое резюме (используется в письмах и логах)
# ----------------------------------------------------------------------

def format_currency(amount: Optional[float]) -> str:
    """100000 -> '100 000 €'"""
    if amount is None:
        return '-'
    return f"{amount:,.0f}".replace(',', ' ') + ' €'


def format_changes(changes: List[Change]) -> str:
    """Одна строка-буллет на изменение."""
    lines = []
    for c in changes:
        if c.field == 'budget':
            sign = '-' if c.new < c.old else '+'
            lines.append(
                f"• Budget : {format_currency(c.old)} → {format_currency(c.new)} ({sign}{c.metric:.0f}%)"
            )
        elif c.field == 'deadline':
            lines.append(f"• Deadline décalée de {c.metric} jours")
        elif c.field == 'financial_criteria':
            lines.append("• Critères financiers modifiés")
        elif c.field == 'technical_criteria':
            lines.append("• Critères techniques modifiés")
        elif c.field == 'market_type':
            lines.append(f"• Type de marché : {c.old} → {c.new}")
        elif c.field == 'region':
            lines.append(f"• Région : {c.old} → {c.new}")
        elif c.field == 'title':
            lines.append(f"• Titre modifié (similarité : {c.metric * 100:.0f}%)")
        else:
            lines.append(f"• {c.field} modifié")
    return '\n'.join(lines)
