"""
Tender Triage - ядро триажа AO (appels d'offres) для консалтинговой практики.

Components:
- dedup/          - ключи идентичности, индекс, CREATE / SKIP / CANCEL / RECTIFY
- rectification/  - существенные и мелкие изменения ректификатов
- matching/       - keyword-скоринг 0-100 и фильтр перед LLM-анализом
- database/       - SQLAlchemy store (appels_offres) и store в памяти
- service.py      - оркестрация одного запуска

Quick Start:
    from tender_triage.service import TriageService
    from tender_triage.database import get_store

    service = TriageService(store=get_store())
    await service.prepare()
    outcomes = await service.triage_batch(records)
"""

__version__ = "0.1.0"
