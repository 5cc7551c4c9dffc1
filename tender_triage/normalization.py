"""
Нормализация текста и дат для ключей дедупликации и лексикона.

Все сравнения в ядре выполняются над текстом без диакритики:
"Annulé" и "annule" должны давать одинаковый результат.
"""

import re
import unicodedata
from datetime import date, datetime, timezone
from typing import Any, Optional

# Лигатуры не раскладываются через NFD
_LIGATURES = str.maketrans({'œ': 'oe', 'Œ': 'OE', 'æ': 'ae', 'Æ': 'AE'})
_APOSTROPHES = re.compile(r"[‘’ʼ`´]")
_NON_ALNUM = re.compile(r'[^a-z0-9\s]')
_SPACES = re.compile(r'\s+')

DEFAULT_KEY_LENGTH = 100


def strip_accents(text: str) -> str:
    """Удаляет диакритику (NFD + удаление combining marks)."""
    decomposed = unicodedata.normalize('NFD', text.translate(_LIGATURES))
    return ''.join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_for_search(text: Optional[str]) -> str:
    """
    Нормализация для поиска подстрок (lower + без акцентов).

    Example:
        normalize_for_search("Avis d’Annulation") -> "avis d'annulation"
    """
    if not text:
        return ''
    return _APOSTROPHES.sub("'", strip_accents(text).lower())


def normalize_lexicon_text(text: Optional[str]) -> str:
    """Нормализация текста AO перед сопоставлением с лексиконом."""
    return _SPACES.sub(' ', normalize_for_search(text)).strip()


def normalize_key_text(text: Optional[str], max_length: int = DEFAULT_KEY_LENGTH) -> str:
    """
    Нормализация поля идентичности для ключей дедупликации.

    Пунктуация заменяется пробелом, длина ограничивается max_length,
    чтобы патологически длинные заголовки не давали огромных ключей.
    """
    if not text:
        return ''
    cleaned = _NON_ALNUM.sub(' ', strip_accents(str(text)).lower())
    return _SPACES.sub(' ', cleaned).strip()[:max_length]


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Разбор даты/даты-времени из фида.

    Принимает datetime, date или ISO-строку ('2025-03-01', '2025-03-01T10:00:00Z').
    Некорректное значение -> None, исключение не выбрасывается.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def to_date_key(value: Any) -> str:
    """Дата в формате YYYY-MM-DD (UTC) для ключей, '' если даты нет."""
    parsed = parse_datetime(value)
    if parsed is None:
        return ''
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def digits_only(value: Any) -> str:
    """Оставляет только цифры (SIRET часто приходит с пробелами)."""
    if value is None:
        return ''
    return re.sub(r'\D', '', str(value))
