"""
Генерация ключей дедупликации.

Стратегия по уровням надёжности:
1. UUID процедуры (~99%) - если источник его передал
2. Composite: заголовок + дедлайн + покупатель (~95%) - всегда доступен
3. SIRET + дедлайн (~80%) - если известны оба

Отсутствующее поле никогда не вызывает исключение: соответствующий
уровень просто становится None.
"""

import re
import logging
from typing import Optional

from tender_triage.models import CanonicalRecord, DedupKeys, StoredRecord
from tender_triage.normalization import (
    DEFAULT_KEY_LENGTH,
    digits_only,
    normalize_key_text,
    to_date_key,
)

logger = logging.getLogger(__name__)

_UUID = r'[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}'
_PROCEDURE_UUID = re.compile(
    r'Identifiant\s+de\s+la\s+proc[ée]dure\s*[:=]\s*(' + _UUID + ')', re.IGNORECASE
)
_ANY_UUID = re.compile(_UUID, re.IGNORECASE)
_SIRET = re.compile(r'\b(\d{14})\b')

# "Annonce n° 26-1234": фид MarchésOnline в ISO-8859-1, знак ° часто искажён
_ANNOUNCEMENT_PATTERNS = (
    re.compile(r'Annonce\s+n[°ºoO\s]\s*(\d{2}-\d+)', re.IGNORECASE),
    re.compile(r'Annonce\s+(\d{2}-\d+)', re.IGNORECASE),
    re.compile(r'Annonce[^<]*?(\d{2}-\d{4,})', re.IGNORECASE),
)
_ANNOUNCEMENT_FORMAT = re.compile(r'^\d{2}-\d{4,}$')


def extract_procedure_uuid(text: Optional[str]) -> Optional[str]:
    """UUID процедуры из свободного текста (описание MarchésOnline)."""
    if not text:
        return None
    match = _PROCEDURE_UUID.search(text)
    if match:
        return match.group(1).lower()
    match = _ANY_UUID.search(text)
    return match.group(0).lower() if match else None


def extract_siret(text: Optional[str]) -> Optional[str]:
    """Первый отдельно стоящий 14-значный номер."""
    if not text:
        return None
    match = _SIRET.search(text)
    return match.group(1) if match else None


def extract_announcement_number(text: Optional[str]) -> Optional[str]:
    """Номер объявления BOAMP (idweb) вида 26-12345."""
    if not text or not isinstance(text, str):
        return None
    for pattern in _ANNOUNCEMENT_PATTERNS:
        match = pattern.search(text)
        if match:
            number = match.group(1).strip()
            if _ANNOUNCEMENT_FORMAT.match(number):
                return number
    return None


def _clean_uuid(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    cleaned = str(value).strip().lower()
    return cleaned or None


def composite_is_usable(composite_key: Optional[str]) -> bool:
    """Composite ключ без заголовка не идентифицирует AO: уровень считается отсутствующим."""
    return bool(composite_key) and bool(composite_key.split('|', 1)[0])


class KeyGenerator:
    """Вычисляет DedupKeys из полей идентичности записи."""

    def __init__(self, max_length: int = DEFAULT_KEY_LENGTH):
        self.max_length = max_length

    def composite_key(self, title: Optional[str], buyer: Optional[str], deadline) -> str:
        """titre|deadline|acheteur, всегда вычислим (части могут быть пустыми)."""
        return '|'.join((
            normalize_key_text(title, self.max_length),
            to_date_key(deadline),
            normalize_key_text(buyer, self.max_length),
        ))

    def secondary_key(self, siret: Optional[str], deadline) -> Optional[str]:
        siret_digits = digits_only(siret)
        deadline_key = to_date_key(deadline)
        if not siret_digits or not deadline_key:
            return None
        return f"{siret_digits}|{deadline_key}"

    def generate(self, record: CanonicalRecord) -> DedupKeys:
        """Ключи для входящей записи."""
        description = record.content.description

        uuid_key = _clean_uuid(record.uuid_procedure) or extract_procedure_uuid(description)
        siret = record.identity.buyer_siret or extract_siret(description)

        return DedupKeys(
            uuid_key=uuid_key,
            composite_key=self.composite_key(record.title, record.buyer, record.deadline),
            secondary_key=self.secondary_key(siret, record.deadline),
            announcement_number=extract_announcement_number(description),
        )

    def generate_for_stored(self, stored: StoredRecord) -> DedupKeys:
        """
        Ключи для сохранённой записи.

        Сохранённые в БД ключи переиспользуются, иначе пересчитываются.
        """
        composite = stored.composite_key or self.composite_key(
            stored.title, stored.buyer, stored.deadline
        )
        secondary = stored.secondary_key or self.secondary_key(stored.siret, stored.deadline)

        return DedupKeys(
            uuid_key=_clean_uuid(stored.uuid_procedure),
            composite_key=composite,
            secondary_key=secondary,
            announcement_number=stored.boamp_id or None,
        )


def generate_dedup_keys(record: CanonicalRecord, max_length: int = DEFAULT_KEY_LENGTH) -> DedupKeys:
    """Shortcut для одной записи."""
    return KeyGenerator(max_length).generate(record)
