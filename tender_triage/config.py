"""
Конфигурация триажа.

Все эмпирически подобранные константы (пороги ректификатов, коэффициенты
скоринга, границы гейта) вынесены в config/triage.yaml и могут быть
переопределены без изменения кода.
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from tender_triage.errors import ConfigError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / 'config' / 'triage.yaml'
DEFAULT_LEXICON_PATH = Path(__file__).parent / 'data' / 'lexicon.yaml'


class DedupSettings(BaseModel):
    """Параметры ключей и поведения при недоступной дедупликации."""
    key_max_length: int = Field(100, ge=10)
    allow_empty_index: bool = False
    on_unavailable: Literal['abort', 'degrade'] = 'abort'


class ChangeThresholds(BaseModel):
    """Пороги существенности ректификата (строгие сравнения)."""
    budget_change_ratio: float = 0.20
    deadline_shift_days: float = 7
    title_similarity: float = 0.80


class ConfidenceBands(BaseModel):
    high_combined: int = 40
    high_single: int = 30
    medium_single: int = 15
    medium_combined: int = 25


class ScoringSettings(BaseModel):
    """Коэффициенты keyword-скоринга."""
    log_coefficient: float = 3.5
    # Потолок и для одной категории, и для суммы группы
    group_caps: Dict[str, int] = Field(
        default_factory=lambda: {'sectors': 50, 'expertises': 40, 'posture': 15}
    )
    confidence: ConfidenceBands = Field(default_factory=ConfidenceBands)

    reference_buyer_bonus: int = 15
    mission_strong_bonus: int = 10
    mission_weak_bonus: int = 5
    executive_bonus: int = 8
    multi_expertise_bonus: int = 5
    multi_expertise_min: int = 2
    red_flag_penalty: int = 30
    no_sector_penalty: int = 15

    # Категории лексикона, дающие бонус "entreprise à mission"
    mission_expertise_category: str = 'raison_etre'
    mission_sector_category: str = 'entreprise_mission'


class GateSettings(BaseModel):
    """Границы решения skip/proceed."""
    min_score: int = 20
    red_flag_penalty: int = 30
    red_flag_min_score: int = 15
    override_band: int = 30
    low_confidence_band: int = 40
    high_priority_score: int = 60
    medium_priority_score: int = 40


class TriageSettings(BaseModel):
    """Полная конфигурация ядра."""
    dedup: DedupSettings = Field(default_factory=DedupSettings)
    changes: ChangeThresholds = Field(default_factory=ChangeThresholds)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    gate: GateSettings = Field(default_factory=GateSettings)
    lexicon_path: Path = DEFAULT_LEXICON_PATH


class ConfigLoader:
    """Загрузка YAML-конфигурации и переменных окружения."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Args:
            config_path: Путь к triage.yaml. По умолчанию TRIAGE_CONFIG
                         или config/triage.yaml в корне проекта.
        """
        env_path = PROJECT_ROOT / '.env'
        if env_path.exists():
            load_dotenv(env_path)

        if config_path is None:
            config_path = Path(os.getenv('TRIAGE_CONFIG', str(DEFAULT_CONFIG_PATH)))
        self.config_path = Path(config_path)

    def load_yaml(self) -> Dict[str, Any]:
        """Читает YAML; отсутствующий файл -> пустой словарь (значения по умолчанию)."""
        if not self.config_path.exists():
            logger.info(f"Config {self.config_path} не найден, используются значения по умолчанию")
            return {}

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Ошибка парсинга YAML {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path}: ожидался YAML-словарь")
        return data

    def load(self) -> TriageSettings:
        """Собирает TriageSettings из YAML и окружения."""
        data = self.load_yaml()

        lexicon_override = os.getenv('TRIAGE_LEXICON')
        if lexicon_override:
            data['lexicon_path'] = lexicon_override

        try:
            settings = TriageSettings.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Некорректная конфигурация {self.config_path}:\n{e}") from e

        if not settings.lexicon_path.is_absolute():
            settings.lexicon_path = (self.config_path.parent / settings.lexicon_path).resolve()
        return settings


def load_settings(config_path: Optional[Path] = None) -> TriageSettings:
    """Shortcut: ConfigLoader(config_path).load()."""
    return ConfigLoader(config_path).load()
