"""
Тесты решения дедупликации CREATE / SKIP / CANCEL / RECTIFY.
"""

import pytest
from pydantic import ValidationError

from tender_triage.dedup import (
    DeduplicationDecider,
    MatchResolver,
    RecordIndex,
    cancellation_signal,
    is_cancellation_notice,
    is_revision,
)
from tender_triage.models import DedupAction, DeduplicationDecision, MatchResult, MatchStrategy


@pytest.fixture
def match():
    return MatchResult(matched_id=42, strategy=MatchStrategy.COMPOSITE, source='BOAMP', source_id='25-10001')


@pytest.fixture
def decider(stored_factory):
    index = RecordIndex.from_records([stored_factory(id=42)])
    return DeduplicationDecider(MatchResolver(index=index))


@pytest.mark.unit
class TestCancellationDetection:
    """Детекция avis d'annulation"""

    def test_state_field(self, record_factory):
        record = record_factory(lifecycle={'etat': 'AVIS_ANNULE'})
        assert cancellation_signal(record) == 'etat=AVIS_ANNULE'

    def test_nature_label_phrase(self, record_factory):
        record = record_factory(lifecycle={'nature_label': "Avis d’annulation"})
        assert is_cancellation_notice(record)

    def test_title_word(self, record_factory):
        record = record_factory(identity={'title': 'Marché annulé - mission de conseil'})
        assert cancellation_signal(record) == 'title: annule'

    def test_nature_code_substring(self, record_factory):
        record = record_factory(lifecycle={'nature': 'avis_annulation'})
        assert is_cancellation_notice(record)
        assert cancellation_signal(record) == 'nature: annulation'

    def test_title_word_with_underscore_separator(self, record_factory):
        record = record_factory(identity={'title': 'AO_annule_2025'})
        assert cancellation_signal(record) == 'title: annule'

    def test_no_false_positive_inside_word(self, record_factory):
        record = record_factory(identity={'title': 'Étude sur l’annulabilité des contrats'})
        assert not is_cancellation_notice(record)

    def test_plain_record(self, record_factory):
        assert cancellation_signal(record_factory()) is None


@pytest.mark.unit
class TestRevisionDetection:

    def test_linked_notice(self, record_factory):
        assert is_revision(record_factory(lifecycle={'annonce_lie': '25-9999'}))

    def test_prior_notices(self, record_factory):
        assert is_revision(record_factory(lifecycle={'annonces_anterieures': ['25-9999']}))
        assert not is_revision(record_factory(lifecycle={'annonces_anterieures': []}))

    def test_nature_code(self, record_factory):
        assert is_revision(record_factory(lifecycle={'nature': 'AVIS_RECTIFICATIF'}))
        assert is_revision(record_factory(lifecycle={'nature_label': 'Avis rectificatif'}))

    def test_plain_record(self, record_factory):
        assert not is_revision(record_factory())


@pytest.mark.unit
class TestDeduplicationDecider:

    def test_create_without_match(self, decider, record_factory):
        decision = decider.decide(record_factory(), None)
        assert decision.action == DedupAction.CREATE
        assert decision.existing_id is None

    def test_unchanged_duplicate_skipped(self, decider, record_factory, match):
        decision = decider.decide(record_factory(), match)
        assert decision.action == DedupAction.SKIP
        assert decision.reason == 'unchanged duplicate'
        assert decision.existing_id == 42

    def test_cancellation_of_known_record(self, decider, record_factory, match):
        record = record_factory(lifecycle={'nature_label': "Avis d'annulation"})
        decision = decider.decide(record, match)
        assert decision.action == DedupAction.CANCEL
        assert decision.existing_id == 42

    def test_unknown_cancellation_is_created(self, decider, record_factory):
        record = record_factory(lifecycle={'etat': 'AVIS_ANNULE'})
        assert decider.decide(record, None).action == DedupAction.CREATE

    def test_rectification(self, decider, record_factory, match):
        record = record_factory(lifecycle={'annonce_lie': '25-9999'})
        decision = decider.decide(record, match)
        assert decision.action == DedupAction.RECTIFY
        assert decision.existing_id == 42

    def test_cancellation_beats_rectification(self, decider, record_factory, match):
        record = record_factory(lifecycle={'annonce_lie': '25-9999', 'etat': 'AVIS_ANNULE'})
        assert decider.decide(record, match).action == DedupAction.CANCEL

    async def test_cancellation_notice_matched_by_composite_key(self, decider, record_factory):
        # Тот же заголовок/дедлайн/покупатель, что у сохранённого AO #42
        record = record_factory(source_id='25-20002', lifecycle={'nature_label': "Avis d'annulation"})
        decision = await decider.resolve(record)
        assert decision.action == DedupAction.CANCEL
        assert decision.existing_id == 42
        assert decision.match.strategy == MatchStrategy.COMPOSITE

    def test_decide_batch_preserves_order(self, decider, record_factory):
        records = [
            record_factory(identity={'title': 'Nouvelle consultation'}),
            record_factory(),
            record_factory(lifecycle={'annonce_lie': '25-9999'}),
        ]
        actions = [d.action for d in decider.decide_batch(records)]
        assert actions == [DedupAction.CREATE, DedupAction.SKIP, DedupAction.RECTIFY]

    def test_invalid_decision_variants(self):
        with pytest.raises(ValidationError):
            DeduplicationDecision(action=DedupAction.CANCEL)
        with pytest.raises(ValidationError):
            DeduplicationDecision(action=DedupAction.SKIP, existing_id=1)

    def test_title_cancellation_matched_by_composite_key(self, stored_factory, record_factory):
        title = "Avis d'annulation - Mission de conseil en stratégie"
        index = RecordIndex.from_records([stored_factory(id=7, title=title)])
        decider = DeduplicationDecider(MatchResolver(index=index))

        [decision] = decider.decide_batch([record_factory(source_id='25-30003', identity={'title': title})])
        assert decision.action == DedupAction.CANCEL
        assert decision.existing_id == 7
        assert decision.match.strategy == MatchStrategy.COMPOSITE

    def test_identity_less_record_is_created(self, stored_factory, record_factory):
        index = RecordIndex.from_records([stored_factory(id=1, title='', buyer=None, deadline=None)])
        decider = DeduplicationDecider(MatchResolver(index=index))
        record = record_factory(
            source_id='25-40004',
            identity={'title': '', 'buyer': None},
            lifecycle={'deadline': None},
        )

        [decision] = decider.decide_batch([record])
        assert decision.action == DedupAction.CREATE
