"""
Исключения ядра триажа.

Ядро не глотает ошибки хранилища: вызывающая оркестрация решает,
прервать запуск или перейти в режим "dedup unavailable".
"""


class TriageError(Exception):
    """Базовое исключение tender_triage."""


class IndexBuildError(TriageError):
    """Не удалось построить индекс ранее сохранённых AO."""


class EmptyIndexError(IndexBuildError):
    """Bulk read вернул пустой результат (не путать с "нет записей")."""


class DedupUnavailableError(TriageError):
    """Дедупликация недоступна для текущего запуска."""


class ConfigError(TriageError):
    """Некорректный файл конфигурации."""


class LexiconError(TriageError):
    """Некорректный лексикон (YAML или регулярное выражение)."""


class StoreError(TriageError):
    """Ошибка чтения/записи хранилища AO."""
