"""
Unit тесты keyword-скоринга и лексикона.

Тестируем:
- Поиск без пересечений (самая длинная фраза)
- Логарифмическая оценка категории
- Бонусы / штрафы и ограничение 0..100
- Уровни уверенности
- Ошибки загрузки лексикона
"""

import pytest
import yaml

from tender_triage.config import DEFAULT_LEXICON_PATH, ScoringSettings
from tender_triage.errors import LexiconError
from tender_triage.matching import (
    RelevanceScorer,
    category_score,
    compile_lexicon,
    find_matches,
    load_lexicon,
    score_record,
)
from tender_triage.models import Confidence


def _lexicon_data(**categories):
    """Минимальный лексикон: все обязательные группы, секторы из аргументов."""
    empty = {'weight': 0, 'categories': {}}
    return {
        'groups': {
            'sectors': {'weight': 3, 'categories': categories or {'x': {'keywords': ['zzz']}}},
            'expertises': {'weight': 2, 'categories': {}},
            'posture': {'weight': 1, 'categories': {}},
            'red_flags': dict(empty),
            'reference_buyers': dict(empty),
            'executive_terms': dict(empty),
        }
    }


@pytest.fixture
def scorer(lexicon):
    return RelevanceScorer(lexicon, ScoringSettings())


@pytest.mark.unit
class TestFindMatches:
    """Сопоставление без пересечений фрагментов"""

    def test_longest_phrase_wins(self):
        lexicon = compile_lexicon(_lexicon_data(
            mission={'keywords': ['mission', 'société à mission']}
        ))
        terms = lexicon.group('sectors').category('mission').terms
        assert find_matches('passage en societe a mission', terms) == ['société à mission']

    def test_repetition_counts_once(self):
        lexicon = compile_lexicon(_lexicon_data(t={'keywords': ['transformation']}))
        terms = lexicon.group('sectors').category('t').terms
        assert find_matches('transformation et transformation', terms) == ['transformation']

    def test_short_keyword_needs_word_boundaries(self):
        lexicon = compile_lexicon(_lexicon_data(rse={'keywords': ['rse']}))
        terms = lexicon.group('sectors').category('rse').terms
        assert find_matches('demarche rse', terms) == ['rse']
        assert find_matches('course a pied', terms) == []
        assert find_matches('rses', terms) == []

    def test_long_keyword_matches_word_start(self):
        lexicon = compile_lexicon(_lexicon_data(t={'keywords': ['transformation']}))
        terms = lexicon.group('sectors').category('t').terms
        assert find_matches('transformations', terms) == ['transformation']
        assert find_matches('retransformation', terms) == []

    def test_pattern_label_is_matched_text(self):
        lexicon = compile_lexicon(_lexicon_data(m={'patterns': ['mobilites?']}))
        terms = lexicon.group('sectors').category('m').terms
        assert find_matches('nouvelles mobilites', terms) == ['mobilites']

    def test_empty_text(self, lexicon):
        terms = lexicon.group('sectors').category('mobilite').terms
        assert find_matches('', terms) == []


@pytest.mark.unit
class TestLexiconLoading:

    def test_default_lexicon_groups(self, lexicon):
        assert set(lexicon.groups) >= {
            'sectors', 'expertises', 'posture', 'red_flags', 'reference_buyers', 'executive_terms'
        }
        assert lexicon.group('sectors').weight == 3
        assert lexicon.group('expertises').weight == 2

    def test_packaged_file_parses(self):
        with open(DEFAULT_LEXICON_PATH, encoding='utf-8') as f:
            data = yaml.safe_load(f)
        lexicon = compile_lexicon(data, str(DEFAULT_LEXICON_PATH))

        purpose = lexicon.group('expertises').category('raison_etre')
        assert find_matches('definition de la raison d etre', purpose.terms) == ['raison d etre']
        red_flags = lexicon.group('red_flags').categories[0]
        assert find_matches("mission de maitrise d'oeuvre", red_flags.terms)

    def test_cached(self):
        assert load_lexicon() is load_lexicon()

    def test_invalid_regex(self):
        with pytest.raises(LexiconError):
            compile_lexicon(_lexicon_data(bad={'patterns': ['(non ferme']}))

    def test_missing_group(self):
        data = _lexicon_data()
        del data['groups']['posture']
        with pytest.raises(LexiconError):
            compile_lexicon(data)

    def test_invalid_yaml_file(self, tmp_path):
        path = tmp_path / 'lexicon.yaml'
        path.write_text('groups: [unclosed', encoding='utf-8')
        with pytest.raises(LexiconError):
            load_lexicon(path)

    def test_unknown_group(self, lexicon):
        with pytest.raises(LexiconError):
            lexicon.group('inexistant')


@pytest.mark.unit
class TestCategoryScore:

    def test_graduated(self):
        assert category_score(0, 3, 3.5, 20) == 0
        assert category_score(1, 3, 3.5, 20) == 7
        assert category_score(3, 3, 3.5, 20) == 15

    def test_capped(self):
        assert category_score(10, 3, 3.5, 20) == 20

    def test_category_capped_by_group_cap(self, scorer):
        text = 'mobilite transport voyageur fret logistique ferroviaire tramway gare'
        result = scorer.score_text(text)
        [mobilite] = result.sector_matches
        assert len(mobilite.keywords) == 8
        assert mobilite.score == 23
        assert result.breakdown.sector_score == 23


@pytest.mark.unit
class TestRelevanceScorer:

    def test_no_category_scores_zero(self, scorer):
        result = scorer.score_text('fourniture de papier')
        assert result.score == 0
        assert result.confidence == Confidence.LOW
        assert result.category_matches == []

    def test_reference_buyer_record(self, scorer, record_factory):
        record = record_factory(
            identity={
                'title': 'Accompagnement à la transformation stratégique de la mobilité',
                'buyer': 'Keolis',
            },
            content={'description': ''},
        )
        result = scorer.score(record)

        assert result.breakdown.sector_score == 12
        assert result.breakdown.expertise_score == 10
        assert result.breakdown.posture_score == 2
        assert result.reference_buyer == 'keolis'
        assert result.score == 44
        assert result.confidence == Confidence.LOW
        assert [m.category for m in result.sector_matches] == ['mobilite']
        assert {m.category for m in result.expertise_matches} == {'strategie', 'transformation'}
        assert result.posture_matches == ['accompagnement']

    def test_red_flag_penalty(self, scorer):
        clean = scorer.score_text('strategie de mobilite')
        flagged = scorer.score_text("strategie de mobilite et maitrise d'oeuvre")
        assert flagged.red_flags
        assert flagged.score == max(0, clean.score - 30)

    def test_no_sector_penalty(self, scorer):
        result = scorer.score_text('strategie et gouvernance')
        assert result.sector_matches == []
        assert result.breakdown.raw_score > 0
        assert any('aucun secteur' in a for a in result.breakdown.adjustments)
        assert result.score == 0

    def test_mission_bonus_not_combined_with_reference_buyer(self, scorer):
        result = scorer.score_text("sncf raison d'etre mobilite")
        assert result.reference_buyer == 'sncf'
        assert result.breakdown.bonus == 15

    def test_strong_mission_bonus(self, scorer):
        result = scorer.score_text("definition de la raison d'etre, mobilite")
        assert result.reference_buyer is None
        assert result.breakdown.bonus == 10

    def test_high_confidence(self, scorer):
        text = (
            'strategie et feuille de route de mobilite des voyageurs, transport ferroviaire, gare, '
            'transformation et conduite du changement, gouvernance du codir'
        )
        assert scorer.score_text(text).confidence == Confidence.HIGH

    def test_score_bounded(self, scorer):
        text = ' '.join([
            'sncf ratp keolis transdev mobilite transport voyageurs ferroviaire gare bus tramway metro',
            'assurance mutuelle prevoyance energie decarbonation renouvelable service public collectivite',
            "strategie feuille de route transformation refonte raison d'etre gouvernance comex codir",
            'rse developpement durable experience usager parcours usager diagnostic audit atelier',
        ])
        result = scorer.score_text(text)
        assert 0 <= result.score <= 100
        assert result.breakdown.sector_score <= 50
        assert result.breakdown.expertise_score <= 40

    def test_shortcut(self, scorer, record_factory, lexicon):
        record = record_factory()
        assert score_record(record, lexicon) == scorer.score(record)
