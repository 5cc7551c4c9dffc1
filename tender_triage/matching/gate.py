"""
Решение skip/proceed перед дорогим семантическим анализом.

Пороги (по умолчанию):
- score < 20 -> skip
- red flags: эффективный скор = score - 30, ниже 15 -> skip
- эффективный скор < 30 -> skip, если уверенность не HIGH
- эффективный скор < 40 и уверенность LOW -> skip
"""

import logging
from typing import Optional

from tender_triage.config import GateSettings
from tender_triage.models import Confidence, GateVerdict, Priority, ScoreResult

logger = logging.getLogger(__name__)


class AnalysisGate:
    """Детерминированный фильтр по ScoreResult."""

    def __init__(self, settings: Optional[GateSettings] = None):
        self.settings = settings or GateSettings()

    def gate(self, result: ScoreResult) -> GateVerdict:
        s = self.settings
        score = result.score
        confidence = result.confidence

        if score < s.min_score:
            return self._skip(f"score {score} < {s.min_score}", score)

        effective = score
        flags = []
        if result.red_flags:
            # Штраф применяется повторно поверх штрафа скоринга
            effective = score - s.red_flag_penalty
            flags = list(result.red_flags)
            if effective < s.red_flag_min_score:
                return self._skip(
                    f"red flags ({', '.join(flags[:3])}), score effectif {effective} < {s.red_flag_min_score}",
                    effective,
                    flags,
                )

        if effective < s.override_band:
            if confidence != Confidence.HIGH:
                return self._skip(
                    f"score {effective} < {s.override_band} sans confiance HIGH",
                    effective,
                    flags,
                )
        elif effective < s.low_confidence_band and confidence == Confidence.LOW:
            return self._skip(
                f"score {effective} < {s.low_confidence_band} avec confiance LOW",
                effective,
                flags,
            )

        if effective >= s.high_priority_score or confidence == Confidence.HIGH:
            priority = Priority.HIGH
        elif effective >= s.medium_priority_score or confidence == Confidence.MEDIUM:
            priority = Priority.MEDIUM
        else:
            priority = Priority.LOW

        logger.debug(f"✅ Анализ разрешён: score={effective}, confidence={confidence.value}, priority={priority.value}")
        return GateVerdict(skip=False, priority=priority, effective_score=effective, flags=flags)

    @staticmethod
    def _skip(reason: str, effective: int, flags=None) -> GateVerdict:
        logger.debug(f"⏭️ Анализ пропущен: {reason}")
        return GateVerdict(
            skip=True,
            reason=reason,
            priority=Priority.SKIP,
            effective_score=effective,
            flags=list(flags or []),
        )


def gate_score(result: ScoreResult, settings: Optional[GateSettings] = None) -> GateVerdict:
    """Shortcut: AnalysisGate(settings).gate(result)."""
    return AnalysisGate(settings).gate(result)
