"""
Дедупликация AO: ключи, индекс, матчинг и решение CREATE/SKIP/CANCEL/RECTIFY.
"""

from tender_triage.dedup.keys import (
    KeyGenerator,
    composite_is_usable,
    extract_announcement_number,
    extract_procedure_uuid,
    extract_siret,
    generate_dedup_keys,
)
from tender_triage.dedup.index import RecordIndex, RecordStore
from tender_triage.dedup.resolver import MatchResolver, lookup_index
from tender_triage.dedup.decider import (
    DeduplicationDecider,
    cancellation_signal,
    is_cancellation_notice,
    is_revision,
)

__all__ = [
    'KeyGenerator',
    'extract_announcement_number',
    'extract_procedure_uuid',
    'extract_siret',
    'composite_is_usable',
    'generate_dedup_keys',
    'RecordIndex',
    'RecordStore',
    'MatchResolver',
    'lookup_index',
    'DeduplicationDecider',
    'cancellation_signal',
    'is_cancellation_notice',
    'is_revision',
]
