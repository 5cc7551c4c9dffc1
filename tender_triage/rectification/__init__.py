"""Детекция существенных изменений в ректификатах AO."""

from tender_triage.rectification.classifier import (
    ChangeClassifier,
    calculate_levenshtein_similarity,
    classify_change,
    format_changes,
    format_currency,
)

__all__ = [
    'ChangeClassifier',
    'calculate_levenshtein_similarity',
    'classify_change',
    'format_changes',
    'format_currency',
]
