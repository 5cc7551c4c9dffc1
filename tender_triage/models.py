"""
Pydantic модели ядра триажа AO (appels d'offres).

CanonicalRecord валидируется на границе (fetch layer -> ядро) и дальше
используется только на чтение. Выходные модели (решение дедупликации,
ChangeSet, ScoreResult, GateVerdict) создаются на один проход записи.
"""

import json
from enum import Enum
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from tender_triage.normalization import parse_datetime

RecordId = Union[int, str]


# ============= ENUMS =============

class MatchStrategy(str, Enum):
    """Уровень ключа, по которому найдено совпадение (по убыванию надёжности)"""
    ANNOUNCEMENT = "announcement"
    UUID = "uuid"
    COMPOSITE = "composite"
    SECONDARY = "secondary"


class DedupAction(str, Enum):
    """Решение дедупликации"""
    CREATE = "CREATE"
    SKIP = "SKIP"
    CANCEL = "CANCEL"
    RECTIFY = "RECTIFY"


class Confidence(str, Enum):
    """Уровень уверенности keyword-скоринга"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Priority(str, Enum):
    """Приоритет дальнейшего анализа"""
    SKIP = "SKIP"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# ============= RAW PAYLOAD =============

class ParsedPayload(BaseModel):
    """Разобранный JSON "donnees" источника."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["parsed"] = "parsed"
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def participation(self) -> Dict[str, Any]:
        block = self.data.get("CONDITION_PARTICIPATION")
        return block if isinstance(block, dict) else {}

    @property
    def cap_eco(self) -> Any:
        """Критерии финансовой состоятельности (CAP_ECO)."""
        return self.participation.get("CAP_ECO")

    @property
    def cap_tech(self) -> Any:
        """Критерии технической состоятельности (CAP_TECH)."""
        return self.participation.get("CAP_TECH")


class OpaquePayload(BaseModel):
    """Payload, который не удалось разобрать. Хранится только для аудита."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["opaque"] = "opaque"
    text: str = ""

    @property
    def cap_eco(self) -> Any:
        return None

    @property
    def cap_tech(self) -> Any:
        return None


RawPayload = Annotated[Union[ParsedPayload, OpaquePayload], Field(discriminator="kind")]


def coerce_payload(value: Any) -> Any:
    """
    Приводит сырой payload фида к ParsedPayload / OpaquePayload.

    - строка JSON -> разбирается, не-объект или ошибка -> opaque
    - dict с ключом "donnees" -> разбирается donnees (строка или dict)
    - любой другой dict -> считается уже разобранным donnees
    """
    if value is None or isinstance(value, (ParsedPayload, OpaquePayload)):
        return value

    if isinstance(value, dict):
        if value.get("kind") in ("parsed", "opaque"):
            return value
        if "donnees" in value:
            return coerce_payload(value["donnees"])
        return ParsedPayload(data=value)

    if isinstance(value, str):
        try:
            data = json.loads(value)
        except ValueError:
            return OpaquePayload(text=value)
        if isinstance(data, dict):
            return ParsedPayload(data=data)
        return OpaquePayload(text=value)

    return OpaquePayload(text=str(value))


# ============= CANONICAL RECORD =============

class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class RecordIdentity(_FrozenModel):
    """Идентичность AO"""
    title: str = ""
    buyer: Optional[str] = Field(None, validation_alias=AliasChoices("buyer", "acheteur"))
    url: Optional[str] = None
    region: Optional[str] = None
    buyer_siret: Optional[str] = Field(None, validation_alias=AliasChoices("buyer_siret", "siret"))

    @field_validator("title", mode="before")
    @classmethod
    def _title_not_none(cls, v: Any) -> str:
        return v or ""


class RecordLifecycle(_FrozenModel):
    """Жизненный цикл AO"""
    state: Optional[str] = Field(None, validation_alias=AliasChoices("state", "etat"))
    nature: Optional[str] = None
    nature_label: Optional[str] = None
    linked_notice: Optional[str] = Field(None, validation_alias=AliasChoices("linked_notice", "annonce_lie"))
    prior_notices: Optional[Any] = Field(
        None, validation_alias=AliasChoices("prior_notices", "annonces_anterieures")
    )
    publication_date: Optional[datetime] = None
    deadline: Optional[datetime] = None

    @field_validator("publication_date", "deadline", mode="before")
    @classmethod
    def _lenient_date(cls, v: Any) -> Optional[datetime]:
        return parse_datetime(v)

    @field_validator("linked_notice", mode="before")
    @classmethod
    def _linked_as_text(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        return str(v)


class RecordContent(_FrozenModel):
    """Анализируемое содержимое AO"""
    description: str = ""
    keywords: List[str] = Field(default_factory=list)

    @field_validator("description", mode="before")
    @classmethod
    def _description_not_none(cls, v: Any) -> str:
        return v or ""

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords_list(cls, v: Any) -> List[str]:
        if not v:
            return []
        if isinstance(v, str):
            return [v]
        return [str(item) for item in v if item]


class RecordClassification(_FrozenModel):
    """Классификация AO"""
    market_type: Optional[str] = Field(None, validation_alias=AliasChoices("market_type", "type_marche"))
    procedure: Optional[str] = None
    family: Optional[str] = Field(None, validation_alias=AliasChoices("family", "famille"))

    @field_validator("market_type", mode="before")
    @classmethod
    def _first_market_type(cls, v: Any) -> Optional[str]:
        # BOAMP отдаёт type_marche массивом
        if isinstance(v, (list, tuple)):
            return v[0] if v else None
        return v


class RecordMetadata(_FrozenModel):
    """Дополнительные метаданные (контакты покупателя, критерии)"""
    buyer_email: Optional[str] = None
    buyer_phone: Optional[str] = None
    buyer_address: Optional[str] = None
    buyer_postcode: Optional[str] = None
    buyer_city: Optional[str] = None
    award_criteria: Optional[Any] = None
    simplified_market: Optional[Any] = None
    holder: Optional[Any] = None
    flags: List[str] = Field(default_factory=list)


class CanonicalRecord(_FrozenModel):
    """
    Нормализованное AO из любого фида (BOAMP, MarchésOnline).

    Неизменяемо после получения; ядро только читает его.
    """
    source: str = "BOAMP"
    source_id: Optional[str] = None
    uuid_procedure: Optional[str] = None
    budget_max: Optional[float] = None

    identity: RecordIdentity = Field(default_factory=RecordIdentity)
    lifecycle: RecordLifecycle = Field(default_factory=RecordLifecycle)
    content: RecordContent = Field(default_factory=RecordContent)
    classification: RecordClassification = Field(default_factory=RecordClassification)
    metadata: RecordMetadata = Field(default_factory=RecordMetadata)
    raw: Optional[RawPayload] = Field(None, validation_alias=AliasChoices("raw", "raw_json"))

    @field_validator("raw", mode="before")
    @classmethod
    def _coerce_raw(cls, v: Any) -> Any:
        return coerce_payload(v)

    @field_validator("source_id", mode="before")
    @classmethod
    def _source_id_text(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @property
    def title(self) -> str:
        return self.identity.title

    @property
    def buyer(self) -> Optional[str]:
        return self.identity.buyer

    @property
    def deadline(self) -> Optional[datetime]:
        return self.lifecycle.deadline

    @property
    def financial_criteria(self) -> Any:
        return self.raw.cap_eco if self.raw is not None else None

    @property
    def technical_criteria(self) -> Any:
        return self.raw.cap_tech if self.raw is not None else None


class StoredRecord(_FrozenModel):
    """Ранее сохранённое (уже проанализированное) AO, как его видит индекс."""
    id: RecordId
    source: Optional[str] = None
    source_id: Optional[str] = None
    uuid_procedure: Optional[str] = None
    title: str = ""
    buyer: Optional[str] = Field(None, validation_alias=AliasChoices("buyer", "acheteur"))
    deadline: Optional[datetime] = None
    publication_date: Optional[datetime] = None
    siret: Optional[str] = None
    composite_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("composite_key", "dedup_key")
    )
    secondary_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("secondary_key", "siret_deadline_key")
    )
    boamp_id: Optional[str] = None
    status: Optional[str] = None
    keyword_score: Optional[float] = None

    @field_validator("deadline", "publication_date", mode="before")
    @classmethod
    def _lenient_date(cls, v: Any) -> Optional[datetime]:
        return parse_datetime(v)

    @field_validator("title", mode="before")
    @classmethod
    def _title_not_none(cls, v: Any) -> str:
        return v or ""


# ============= DEDUPLICATION =============

class DedupKeys(BaseModel):
    """Три независимых ключа идентичности (+ номер объявления BOAMP)"""
    model_config = ConfigDict(frozen=True)

    uuid_key: Optional[str] = None
    composite_key: str
    secondary_key: Optional[str] = None
    announcement_number: Optional[str] = None


class MatchResult(BaseModel):
    """Лучшее совпадение и уровень ключа, на котором оно найдено"""
    model_config = ConfigDict(frozen=True)

    matched_id: RecordId
    strategy: MatchStrategy
    source: Optional[str] = None
    source_id: Optional[str] = None


class DeduplicationDecision(BaseModel):
    """Ровно одно решение на запись: CREATE, SKIP, CANCEL или RECTIFY"""
    model_config = ConfigDict(frozen=True)

    action: DedupAction
    reason: Optional[str] = None
    existing_id: Optional[RecordId] = None
    match: Optional[MatchResult] = None

    @model_validator(mode="after")
    def _check_variant(self) -> "DeduplicationDecision":
        if self.action in (DedupAction.CANCEL, DedupAction.RECTIFY) and self.existing_id is None:
            raise ValueError(f"{self.action.value} requires existing_id")
        if self.action == DedupAction.SKIP and not self.reason:
            raise ValueError("SKIP requires a reason")
        return self

    @classmethod
    def create(cls) -> "DeduplicationDecision":
        return cls(action=DedupAction.CREATE)

    @classmethod
    def skip(cls, reason: str, match: Optional[MatchResult] = None) -> "DeduplicationDecision":
        return cls(
            action=DedupAction.SKIP,
            reason=reason,
            existing_id=match.matched_id if match else None,
            match=match,
        )

    @classmethod
    def cancel(cls, match: MatchResult) -> "DeduplicationDecision":
        return cls(action=DedupAction.CANCEL, existing_id=match.matched_id, match=match)

    @classmethod
    def rectify(cls, match: MatchResult) -> "DeduplicationDecision":
        return cls(action=DedupAction.RECTIFY, existing_id=match.matched_id, match=match)


# ============= RECTIFICATION =============

class Change(BaseModel):
    """Одно изменение поля между версиями AO"""
    model_config = ConfigDict(frozen=True)

    field: str
    old: Optional[Any] = None
    new: Optional[Any] = None
    change_pct: Optional[float] = None
    days_added: Optional[int] = None
    similarity: Optional[float] = None

    @property
    def metric(self) -> Optional[float]:
        """Процент изменения, сдвиг в днях или коэффициент схожести."""
        for value in (self.change_pct, self.days_added, self.similarity):
            if value is not None:
                return value
        return None


class ChangeSet(BaseModel):
    """Результат сравнения: существенные изменения + мелкие правки"""
    model_config = ConfigDict(frozen=True)

    is_substantial: bool = False
    changes: List[Change] = Field(default_factory=list)
    minor_changes: List[Change] = Field(default_factory=list)

    @property
    def changed_fields(self) -> List[str]:
        return [c.field for c in self.changes] + [c.field for c in self.minor_changes]


# ============= SCORING =============

class CategoryMatch(BaseModel):
    """Совпадения одной категории лексикона"""
    model_config = ConfigDict(frozen=True)

    group: str
    category: str
    keywords: List[str]
    score: int


class ScoreBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    sector_score: int = 0
    expertise_score: int = 0
    posture_score: int = 0
    raw_score: int = 0
    bonus: int = 0
    adjustments: List[str] = Field(default_factory=list)


class ScoreResult(BaseModel):
    """Итог keyword-скоринга 0-100"""
    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0, le=100)
    confidence: Confidence
    category_matches: List[CategoryMatch] = Field(default_factory=list)
    posture_matches: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list)
    reference_buyer: Optional[str] = None
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    all_matches: List[str] = Field(default_factory=list)

    @property
    def sector_matches(self) -> List[CategoryMatch]:
        return [m for m in self.category_matches if m.group == "sectors"]

    @property
    def expertise_matches(self) -> List[CategoryMatch]:
        return [m for m in self.category_matches if m.group == "expertises"]


class GateVerdict(BaseModel):
    """Решение: запускать ли дорогой семантический анализ"""
    model_config = ConfigDict(frozen=True)

    skip: bool
    reason: Optional[str] = None
    priority: Priority
    effective_score: int = 0
    flags: List[str] = Field(default_factory=list)
