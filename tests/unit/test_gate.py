"""
Тесты фильтра перед семантическим анализом.
"""

import pytest

from tender_triage.config import GateSettings
from tender_triage.matching import AnalysisGate, RelevanceScorer, gate_score
from tender_triage.models import Confidence, Priority, ScoreResult


def _result(score, confidence=Confidence.MEDIUM, red_flags=()):
    return ScoreResult(score=score, confidence=confidence, red_flags=list(red_flags))


@pytest.fixture
def gate():
    return AnalysisGate(GateSettings())


@pytest.mark.unit
class TestAnalysisGate:

    def test_below_floor(self, gate):
        verdict = gate.gate(_result(19, Confidence.HIGH))
        assert verdict.skip
        assert verdict.priority == Priority.SKIP

    def test_low_score_high_confidence_proceeds(self, gate):
        verdict = gate.gate(_result(25, Confidence.HIGH))
        assert not verdict.skip
        assert verdict.priority == Priority.HIGH

    def test_low_score_medium_confidence_skipped(self, gate):
        verdict = gate.gate(_result(25, Confidence.MEDIUM))
        assert verdict.skip
        assert verdict.reason

    def test_low_confidence_band(self, gate):
        assert gate.gate(_result(35, Confidence.LOW)).skip

        verdict = gate.gate(_result(35, Confidence.MEDIUM))
        assert not verdict.skip
        assert verdict.priority == Priority.MEDIUM

    def test_priority_from_score(self, gate):
        assert gate.gate(_result(45, Confidence.LOW)).priority == Priority.MEDIUM
        assert gate.gate(_result(70, Confidence.LOW)).priority == Priority.HIGH

    def test_red_flags_below_floor(self, gate):
        verdict = gate.gate(_result(40, Confidence.HIGH, ['nettoyage']))
        assert verdict.skip
        assert verdict.effective_score == 10
        assert verdict.flags == ['nettoyage']

    def test_red_flags_penalty_applied(self, gate):
        assert gate.gate(_result(50, Confidence.MEDIUM, ['avocat'])).skip

        verdict = gate.gate(_result(50, Confidence.HIGH, ['avocat']))
        assert not verdict.skip
        assert verdict.effective_score == 20

    def test_shortcut(self):
        assert gate_score(_result(80, Confidence.HIGH)) == AnalysisGate().gate(_result(80, Confidence.HIGH))

    def test_record_without_lexicon_matches_is_skipped(self, gate, lexicon, record_factory):
        record = record_factory(
            identity={'title': 'Fourniture de papier', 'buyer': 'Imprimerie Dupont'},
            content={'description': 'Ramettes A4'},
        )
        result = RelevanceScorer(lexicon).score(record)
        assert result.score == 0
        assert result.category_matches == []

        verdict = gate.gate(result)
        assert verdict.skip
        assert verdict.priority == Priority.SKIP
        assert verdict.flags == []
