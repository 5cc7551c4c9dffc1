"""
Triage Service - оркестрация ядра для одного запуска.

Для каждого входящего AO:
1. дедупликация (CREATE / SKIP / CANCEL / RECTIFY)
2. RECTIFY -> сравнение с сохранённой версией
3. CREATE или существенный ректификат -> keyword-скоринг и фильтр
4. мелкий ректификат -> перенос старого скора, обновление изменённых полей

Сам анализ (LLM), запись в базу и уведомления - вне этого модуля.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from tender_triage.config import TriageSettings
from tender_triage.dedup import DeduplicationDecider, KeyGenerator, MatchResolver, RecordIndex, RecordStore
from tender_triage.errors import DedupUnavailableError, TriageError
from tender_triage.logger import RecordLoggerAdapter
from tender_triage.matching import AnalysisGate, CompiledLexicon, RelevanceScorer, load_lexicon
from tender_triage.models import (
    CanonicalRecord,
    ChangeSet,
    DedupAction,
    DeduplicationDecision,
    GateVerdict,
    RecordId,
    ScoreResult,
)
from tender_triage.rectification import ChangeClassifier

logger = logging.getLogger(__name__)

RecordLoader = Callable[[RecordId], Awaitable[Optional[CanonicalRecord]]]

# Поле изменения -> колонка appels_offres
FIELD_COLUMNS = {
    'budget': 'budget_max',
    'deadline': 'deadline',
    'title': 'title',
}


class TriageOutcome(BaseModel):
    """Результат триажа одного AO"""
    source: Optional[str] = None
    source_id: Optional[str] = None
    title: str = ""
    decision: Optional[DeduplicationDecision] = None
    dedup_available: bool = True
    change_set: Optional[ChangeSet] = None
    score: Optional[ScoreResult] = None
    verdict: Optional[GateVerdict] = None
    needs_analysis: bool = False
    carried_score: Optional[float] = None
    field_updates: Dict[str, Any] = Field(default_factory=dict)

    @property
    def action(self) -> Optional[DedupAction]:
        return self.decision.action if self.decision else None


def _empty_stats() -> Dict[str, Any]:
    return {
        'started_at': None,
        'processed': 0,
        'created': 0,
        'skipped': 0,
        'cancelled': 0,
        'rectified_substantial': 0,
        'rectified_minor': 0,
        'scored': 0,
        'gated_out': 0,
        'to_analyze': 0,
        'dedup_unavailable': 0,
    }


class TriageService:
    """
    Главный сервис триажа.

    Индекс строится один раз (prepare), дальше записи обрабатываются
    независимо друг от друга.
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        settings: Optional[TriageSettings] = None,
        loader: Optional[RecordLoader] = None,
        lexicon: Optional[CompiledLexicon] = None
    ):
        """
        Args:
            store: Хранилище ранее сохранённых AO
            settings: Конфигурация (по умолчанию - значения из кода)
            loader: async функция id -> предыдущая версия AO (по умолчанию store.get_record)
            lexicon: Скомпилированный лексикон (по умолчанию settings.lexicon_path)
        """
        self.settings = settings or TriageSettings()
        self.store = store
        self.loader = loader or getattr(store, 'get_record', None)

        self.key_generator = KeyGenerator(self.settings.dedup.key_max_length)
        self.classifier = ChangeClassifier(self.settings.changes)
        self.scorer = RelevanceScorer(
            lexicon or load_lexicon(self.settings.lexicon_path),
            self.settings.scoring
        )
        self.gate = AnalysisGate(self.settings.gate)

        self.index: Optional[RecordIndex] = None
        self.decider = DeduplicationDecider(MatchResolver(None, store, self.key_generator))
        self.dedup_available = True
        self.stats = _empty_stats()

    @property
    def degrade(self) -> bool:
        return self.settings.dedup.on_unavailable == 'degrade'

    async def prepare(self) -> None:
        """
        Строит индекс дедупликации.

        Raises:
            IndexBuildError / DedupUnavailableError: при on_unavailable='abort'
        """
        self.stats = _empty_stats()
        self.stats['started_at'] = datetime.now()

        if self.store is None:
            self._dedup_failed(DedupUnavailableError("no record store configured"))
            return

        try:
            self.index = await RecordIndex.build(
                self.store,
                self.key_generator,
                allow_empty=self.settings.dedup.allow_empty_index
            )
        except TriageError as e:
            self._dedup_failed(e)
            return

        self.dedup_available = True
        self.decider = DeduplicationDecider(MatchResolver(self.index, self.store, self.key_generator))

    def _dedup_failed(self, error: Exception) -> None:
        if not self.degrade:
            raise error
        logger.error(f"❌ Дедупликация недоступна, AO будут только оценены: {error}")
        self.dedup_available = False
        self.index = None

    async def triage(self, record: CanonicalRecord) -> TriageOutcome:
        """Одиночный путь (индекс, если построен, иначе запрос к хранилищу)."""
        decision: Optional[DeduplicationDecision] = None
        if self.dedup_available:
            try:
                decision = await self.decider.resolve(record)
            except TriageError as e:
                self._dedup_failed(e)
        return await self._process(record, decision)

    async def triage_batch(self, records: Sequence[CanonicalRecord]) -> List[TriageOutcome]:
        """Batch путь: один индекс на все записи, порядок результатов = порядок входа."""
        if self.index is None and self.dedup_available:
            await self.prepare()

        if self.index is not None:
            decisions: List[Optional[DeduplicationDecision]] = list(self.decider.decide_batch(records))
        else:
            decisions = [None] * len(records)

        outcomes = [await self._process(record, decision) for record, decision in zip(records, decisions)]
        self._print_stats()
        return outcomes

    # ------------------------------------------------------------------

    async def _process(
        self,
        record: CanonicalRecord,
        decision: Optional[DeduplicationDecision]
    ) -> TriageOutcome:
        self.stats['processed'] += 1
        outcome = TriageOutcome(
            source=record.source,
            source_id=record.source_id,
            title=record.title,
            decision=decision,
            dedup_available=decision is not None,
        )

        if decision is None:
            self.stats['dedup_unavailable'] += 1
            return self._score(record, outcome)

        if decision.action == DedupAction.SKIP:
            self.stats['skipped'] += 1
            return outcome

        if decision.action == DedupAction.CANCEL:
            self.stats['cancelled'] += 1
            return outcome

        if decision.action == DedupAction.CREATE:
            self.stats['created'] += 1
            return self._score(record, outcome)

        return await self._rectify(record, decision, outcome)

    async def _rectify(
        self,
        record: CanonicalRecord,
        decision: DeduplicationDecision,
        outcome: TriageOutcome
    ) -> TriageOutcome:
        log = RecordLoggerAdapter(logger, {'source': record.source, 'source_id': record.source_id})

        previous = await self.loader(decision.existing_id) if self.loader else None
        if previous is None:
            # Нет сохранённой версии для сравнения -> полный повторный анализ
            log.warning(f"⚠️ Версия #{decision.existing_id} недоступна, ректификат считается существенным")
            self.stats['rectified_substantial'] += 1
            return self._score(record, outcome)

        change_set = self.classifier.classify(previous, record)
        outcome = outcome.model_copy(update={'change_set': change_set})

        if change_set.is_substantial:
            self.stats['rectified_substantial'] += 1
            return self._score(record, outcome)

        self.stats['rectified_minor'] += 1
        field_updates = {
            FIELD_COLUMNS.get(change.field, change.field): change.new
            for change in change_set.minor_changes
        }
        log.info(f"📝 Мелкий ректификат #{decision.existing_id}: обновление {list(field_updates)}")
        return outcome.model_copy(update={
            'carried_score': self._previous_score(decision.existing_id),
            'field_updates': field_updates,
        })

    def _previous_score(self, record_id: RecordId) -> Optional[float]:
        if self.index is None:
            return None
        stored = self.index.by_id.get(record_id)
        return stored.keyword_score if stored else None

    def _score(self, record: CanonicalRecord, outcome: TriageOutcome) -> TriageOutcome:
        score = self.scorer.score(record)
        verdict = self.gate.gate(score)

        self.stats['scored'] += 1
        if verdict.skip:
            self.stats['gated_out'] += 1
        else:
            self.stats['to_analyze'] += 1

        return outcome.model_copy(update={
            'score': score,
            'verdict': verdict,
            'needs_analysis': not verdict.skip,
        })

    def _print_stats(self) -> None:
        s = self.stats
        logger.info("=" * 70)
        logger.info("📊 СТАТИСТИКА ТРИАЖА")
        logger.info("=" * 70)
        logger.info(f"📄 Обработано AO: {s['processed']}")
        logger.info(
            f"🟢 Новых: {s['created']} | ⚪ Дубликатов: {s['skipped']} | "
            f"🔴 Отмен: {s['cancelled']}"
        )
        logger.info(
            f"🟠 Ректификатов: {s['rectified_substantial']} существенных, "
            f"{s['rectified_minor']} мелких"
        )
        logger.info(f"🎯 Оценено: {s['scored']} | ⏭️ Отфильтровано: {s['gated_out']} | 🧠 К анализу: {s['to_analyze']}")
        if s['dedup_unavailable']:
            logger.warning(f"⚠️ Без дедупликации: {s['dedup_unavailable']}")
