"""
Keyword-скоринг пертинентности и фильтр перед анализом.
"""

from tender_triage.matching.lexicon import (
    CompiledCategory,
    CompiledGroup,
    CompiledLexicon,
    CompiledTerm,
    compile_lexicon,
    find_matches,
    load_lexicon,
)
from tender_triage.matching.scorer import RelevanceScorer, build_search_text, category_score, score_record
from tender_triage.matching.gate import AnalysisGate, gate_score

__all__ = [
    'AnalysisGate',
    'CompiledCategory',
    'CompiledGroup',
    'CompiledLexicon',
    'CompiledTerm',
    'RelevanceScorer',
    'build_search_text',
    'category_score',
    'compile_lexicon',
    'find_matches',
    'gate_score',
    'load_lexicon',
    'score_record',
]
