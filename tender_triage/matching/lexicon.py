"""
Лексикон пертинентности: загрузка YAML и компиляция regex.

Все термины компилируются один раз на процесс (lru_cache по пути файла)
и применяются к уже нормализованному тексту (lower, без акцентов).
"""

import re
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Tuple, Union

import yaml

from tender_triage.config import DEFAULT_LEXICON_PATH
from tender_triage.errors import LexiconError
from tender_triage.normalization import normalize_lexicon_text

logger = logging.getLogger(__name__)

REQUIRED_GROUPS = (
    'sectors',
    'expertises',
    'posture',
    'red_flags',
    'reference_buyers',
    'executive_terms',
)

# Короткие термины (rse, edf, bus...) требуют границы с обеих сторон,
# длинные - только начала слова ("transformation" -> "transformations")
SHORT_TERM_LENGTH = 4
_LEFT_BOUNDARY = r'(?<![a-z0-9-])'
_RIGHT_BOUNDARY = r'(?![a-z0-9])'


@dataclass(frozen=True)
class CompiledTerm:
    label: Optional[str]
    regex: Pattern[str]


@dataclass(frozen=True)
class CompiledCategory:
    name: str
    terms: Tuple[CompiledTerm, ...]


@dataclass(frozen=True)
class CompiledGroup:
    name: str
    weight: float
    categories: Tuple[CompiledCategory, ...]

    def category(self, name: str) -> Optional[CompiledCategory]:
        for category in self.categories:
            if category.name == name:
                return category
        return None


@dataclass(frozen=True)
class CompiledLexicon:
    """Неизменяемая скомпилированная таблица терминов."""
    groups: Dict[str, CompiledGroup]
    source: str = ''

    def group(self, name: str) -> CompiledGroup:
        try:
            return self.groups[name]
        except KeyError as e:
            raise LexiconError(f"Группа '{name}' отсутствует в лексиконе") from e

    @property
    def term_count(self) -> int:
        return sum(
            len(category.terms)
            for group in self.groups.values()
            for category in group.categories
        )


def compile_keyword(keyword: str) -> CompiledTerm:
    """Ключевое слово -> regex с границами слова (текст уже нормализован)."""
    normalized = normalize_lexicon_text(keyword)
    if not normalized:
        raise LexiconError(f"Пустое ключевое слово: {keyword!r}")
    pattern = _LEFT_BOUNDARY + re.escape(normalized)
    if len(normalized) <= SHORT_TERM_LENGTH:
        pattern += _RIGHT_BOUNDARY
    return CompiledTerm(label=keyword, regex=re.compile(pattern))


def compile_pattern(pattern: str) -> CompiledTerm:
    """Regex-паттерн; меткой совпадения станет найденный фрагмент текста."""
    try:
        regex = re.compile(_LEFT_BOUNDARY + '(?:' + pattern + ')')
    except re.error as e:
        raise LexiconError(f"Некорректный regex {pattern!r}: {e}") from e
    return CompiledTerm(label=None, regex=regex)


def _compile_category(group_name: str, name: str, data: Any) -> CompiledCategory:
    if not isinstance(data, dict):
        raise LexiconError(f"{group_name}.{name}: ожидался словарь keywords/patterns")

    terms: List[CompiledTerm] = []
    for keyword in data.get('keywords') or []:
        terms.append(compile_keyword(str(keyword)))
    for pattern in data.get('patterns') or []:
        terms.append(compile_pattern(str(pattern)))

    if not terms:
        raise LexiconError(f"{group_name}.{name}: категория без терминов")
    return CompiledCategory(name=name, terms=tuple(terms))


def compile_lexicon(data: Dict[str, Any], source: str = '<memory>') -> CompiledLexicon:
    """
    Компилирует словарь лексикона (формат data/lexicon.yaml).

    Raises:
        LexiconError: структура некорректна или regex не компилируется
    """
    raw_groups = data.get('groups') if isinstance(data, dict) else None
    if not isinstance(raw_groups, dict):
        raise LexiconError(f"{source}: отсутствует секция 'groups'")

    missing = [name for name in REQUIRED_GROUPS if name not in raw_groups]
    if missing:
        raise LexiconError(f"{source}: отсутствуют группы {missing}")

    groups: Dict[str, CompiledGroup] = {}
    for group_name, group_data in raw_groups.items():
        if not isinstance(group_data, dict):
            raise LexiconError(f"{source}: группа '{group_name}' должна быть словарём")
        try:
            weight = float(group_data.get('weight', 0))
        except (TypeError, ValueError) as e:
            raise LexiconError(f"{source}: weight группы '{group_name}' не число") from e

        categories = tuple(
            _compile_category(group_name, name, category_data)
            for name, category_data in (group_data.get('categories') or {}).items()
        )
        groups[group_name] = CompiledGroup(name=group_name, weight=weight, categories=categories)

    return CompiledLexicon(groups=groups, source=source)


@lru_cache(maxsize=8)
def _load_cached(path: str) -> CompiledLexicon:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise LexiconError(f"Не удалось прочитать лексикон {path}: {e}") from e
    except yaml.YAMLError as e:
        raise LexiconError(f"Ошибка парсинга YAML {path}: {e}") from e

    lexicon = compile_lexicon(data, source=path)
    logger.info(f"📚 Лексикон загружен: {len(lexicon.groups)} групп, {lexicon.term_count} терминов")
    return lexicon


def load_lexicon(path: Optional[Union[str, Path]] = None) -> CompiledLexicon:
    """Загружает и компилирует лексикон (один раз на путь)."""
    resolved = Path(path) if path is not None else DEFAULT_LEXICON_PATH
    return _load_cached(str(resolved.resolve()))


def find_matches(text: str, terms: Tuple[CompiledTerm, ...]) -> List[str]:
    """
    Различные термины категории, найденные в тексте, без пересечений.

    Кандидаты сортируются по позиции, при равной позиции - длинные первыми.
    Принятый фрагмент помечает свои символы как занятые, поэтому
    "société à mission" не засчитывает отдельно вложенное "mission".

    Args:
        text: Нормализованный текст AO
        terms: Скомпилированные термины одной категории

    Returns:
        Метки совпадений в порядке появления (без повторов)
    """
    if not text:
        return []

    candidates: List[Tuple[int, int, str]] = []
    for term in terms:
        for match in term.regex.finditer(text):
            start, end = match.span()
            if end <= start:
                continue
            candidates.append((start, end, term.label or match.group(0)))

    candidates.sort(key=lambda c: (c[0], -(c[1] - c[0])))

    covered = bytearray(len(text))
    found: List[str] = []
    for start, end, label in candidates:
        if any(covered[start:end]):
            continue
        covered[start:end] = b'\x01' * (end - start)
        if label not in found:
            found.append(label)
    return found
