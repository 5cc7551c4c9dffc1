"""
Keyword-скоринг пертинентности AO (0-100).

Дешёвый предфильтр перед семантическим анализом:
1. совпадения по категориям лексикона (без пересечений фрагментов)
2. логарифмическая оценка категории: min(cap, round(ln(n+1) * weight * 3.5))
3. сумма по группе с потолком (secteurs 50, expertises 40, posture 15)
4. уверенность по сырым оценкам secteurs/expertises
5. бонусы и штрафы, итог ограничивается 0..100
"""

import math
import logging
from typing import Dict, List, Optional, Tuple

from tender_triage.config import ScoringSettings
from tender_triage.matching.lexicon import CompiledGroup, CompiledLexicon, find_matches, load_lexicon
from tender_triage.models import CanonicalRecord, CategoryMatch, Confidence, ScoreBreakdown, ScoreResult
from tender_triage.normalization import normalize_lexicon_text

logger = logging.getLogger(__name__)

SCORED_GROUPS = ('sectors', 'expertises', 'posture')


def category_score(match_count: int, weight: float, coefficient: float, cap: int) -> int:
    """
    Логарифмическая оценка категории: повторы дают убывающий вклад.

    Example:
        category_score(1, 3, 3.5, 20) -> 7
        category_score(3, 3, 3.5, 20) -> 15
    """
    if match_count <= 0:
        return 0
    return min(cap, int(round(math.log(match_count + 1) * weight * coefficient)))


def build_search_text(
    title: Optional[str],
    description: Optional[str] = None,
    keywords: Optional[List[str]] = None,
    buyer: Optional[str] = None
) -> str:
    parts = [title or '', description or '', ' '.join(keywords or []), buyer or '']
    return normalize_lexicon_text(' '.join(p for p in parts if p))


class RelevanceScorer:
    """
    Скоринг AO по скомпилированному лексикону.

    Лексикон и настройки неизменяемы, один экземпляр безопасно
    использовать для любого количества записей.
    """

    def __init__(
        self,
        lexicon: Optional[CompiledLexicon] = None,
        settings: Optional[ScoringSettings] = None
    ):
        self.lexicon = lexicon or load_lexicon()
        self.settings = settings or ScoringSettings()

    def score(self, record: CanonicalRecord) -> ScoreResult:
        """Скоринг канонической записи (title + description + keywords + buyer)."""
        text = build_search_text(
            record.title,
            record.content.description,
            record.content.keywords,
            record.buyer,
        )
        result = self.score_text(text)
        logger.debug(
            f"🎯 Score {record.source}:{record.source_id} = {result.score} "
            f"({result.confidence.value})"
        )
        return result

    def score_text(self, text: str) -> ScoreResult:
        """Скоринг уже нормализованного текста."""
        s = self.settings

        category_matches: List[CategoryMatch] = []
        group_scores: Dict[str, int] = {}
        for group_name in SCORED_GROUPS:
            matches, total = self._score_group(self.lexicon.group(group_name), text)
            category_matches.extend(matches)
            group_scores[group_name] = min(s.group_caps.get(group_name, total), total)

        sector_score = group_scores['sectors']
        expertise_score = group_scores['expertises']
        posture_score = group_scores['posture']
        raw_score = sector_score + expertise_score + posture_score

        sector_matches = [m for m in category_matches if m.group == 'sectors']
        expertise_matches = [m for m in category_matches if m.group == 'expertises']
        posture_matches = [kw for m in category_matches if m.group == 'posture' for kw in m.keywords]

        red_flags = self._group_terms('red_flags', text)
        reference_hits = self._group_terms('reference_buyers', text)
        executive_hits = self._group_terms('executive_terms', text)
        reference_buyer = reference_hits[0] if reference_hits else None

        confidence = self._confidence(sector_score, expertise_score, bool(sector_matches), bool(expertise_matches))

        bonus, adjustments = self._adjustments(
            sector_matches=sector_matches,
            expertise_matches=expertise_matches,
            reference_buyer=reference_buyer,
            executive_hits=executive_hits,
            red_flags=red_flags,
        )
        final_score = max(0, min(100, raw_score + bonus))

        all_matches: List[str] = []
        for match in category_matches:
            for keyword in match.keywords:
                if keyword not in all_matches:
                    all_matches.append(keyword)

        return ScoreResult(
            score=final_score,
            confidence=confidence,
            category_matches=category_matches,
            posture_matches=posture_matches,
            red_flags=red_flags,
            reference_buyer=reference_buyer,
            breakdown=ScoreBreakdown(
                sector_score=sector_score,
                expertise_score=expertise_score,
                posture_score=posture_score,
                raw_score=raw_score,
                bonus=bonus,
                adjustments=adjustments,
            ),
            all_matches=all_matches,
        )

    # ------------------------------------------------------------------

    def _score_group(self, group: CompiledGroup, text: str) -> Tuple[List[CategoryMatch], int]:
        s = self.settings
        cap = s.group_caps.get(group.name, 100)
        matches: List[CategoryMatch] = []
        total = 0
        for category in group.categories:
            found = find_matches(text, category.terms)
            if not found:
                continue
            points = category_score(len(found), group.weight, s.log_coefficient, cap)
            total += points
            matches.append(CategoryMatch(
                group=group.name,
                category=category.name,
                keywords=found,
                score=points,
            ))
        return matches, total

    def _group_terms(self, group_name: str, text: str) -> List[str]:
        found: List[str] = []
        for category in self.lexicon.group(group_name).categories:
            for term in find_matches(text, category.terms):
                if term not in found:
                    found.append(term)
        return found

    def _confidence(
        self,
        sector_score: int,
        expertise_score: int,
        has_sector: bool,
        has_expertise: bool
    ) -> Confidence:
        bands = self.settings.confidence
        combined = sector_score + expertise_score

        if has_sector and has_expertise and combined >= bands.high_combined:
            return Confidence.HIGH
        if sector_score >= bands.high_single or expertise_score >= bands.high_single:
            return Confidence.HIGH

        if (has_sector and sector_score >= bands.medium_single) or \
                (has_expertise and expertise_score >= bands.medium_single):
            return Confidence.MEDIUM
        if combined >= bands.medium_combined:
            return Confidence.MEDIUM

        return Confidence.LOW

    def _adjustments(
        self,
        sector_matches: List[CategoryMatch],
        expertise_matches: List[CategoryMatch],
        reference_buyer: Optional[str],
        executive_hits: List[str],
        red_flags: List[str]
    ) -> Tuple[int, List[str]]:
        s = self.settings
        bonus = 0
        adjustments: List[str] = []

        # Бонусы "référence" и "mission" взаимоисключающие
        if reference_buyer:
            bonus += s.reference_buyer_bonus
            adjustments.append(f"+{s.reference_buyer_bonus} acheteur de référence ({reference_buyer})")
        elif any(m.category == s.mission_expertise_category for m in expertise_matches):
            bonus += s.mission_strong_bonus
            adjustments.append(f"+{s.mission_strong_bonus} raison d'être / société à mission")
        elif any(m.category == s.mission_sector_category for m in sector_matches):
            bonus += s.mission_weak_bonus
            adjustments.append(f"+{s.mission_weak_bonus} entreprise à mission")

        if executive_hits:
            bonus += s.executive_bonus
            adjustments.append(f"+{s.executive_bonus} gouvernance exécutive ({', '.join(executive_hits[:3])})")

        if len(expertise_matches) >= s.multi_expertise_min:
            bonus += s.multi_expertise_bonus
            adjustments.append(f"+{s.multi_expertise_bonus} multi-expertise ({len(expertise_matches)})")

        if red_flags:
            bonus -= s.red_flag_penalty
            adjustments.append(f"-{s.red_flag_penalty} red flags ({', '.join(red_flags[:3])})")

        if not sector_matches:
            bonus -= s.no_sector_penalty
            adjustments.append(f"-{s.no_sector_penalty} aucun secteur cible")

        return bonus, adjustments


def score_record(record: CanonicalRecord, lexicon: Optional[CompiledLexicon] = None) -> ScoreResult:
    """Shortcut с лексиконом и настройками по умолчанию."""
    return RelevanceScorer(lexicon).score(record)
