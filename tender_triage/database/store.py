"""
Async SQLAlchemy реализация RecordStore.

Используется индексом дедупликации (bulk read) и одиночным матчингом.
"""

import os
import logging
from datetime import datetime
from typing import Dict, Any, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tender_triage.database.models import AppelOffre, Base, STATUS_ANALYZED
from tender_triage.errors import StoreError
from tender_triage.models import CanonicalRecord, DedupKeys, ParsedPayload, RecordId, StoredRecord

logger = logging.getLogger(__name__)


def _to_stored(row: AppelOffre) -> StoredRecord:
    return StoredRecord(
        id=row.id,
        source=row.source,
        source_id=row.source_id,
        uuid_procedure=row.uuid_procedure,
        title=row.title,
        buyer=row.acheteur,
        deadline=row.deadline,
        publication_date=row.publication_date,
        siret=row.siret,
        composite_key=row.dedup_key,
        secondary_key=row.siret_deadline_key,
        boamp_id=row.boamp_id,
        status=row.status,
        keyword_score=row.keyword_score,
    )


def _to_canonical(row: AppelOffre) -> CanonicalRecord:
    return CanonicalRecord.model_validate({
        'source': row.source,
        'source_id': row.source_id,
        'uuid_procedure': row.uuid_procedure,
        'budget_max': row.budget_max,
        'identity': {
            'title': row.title,
            'buyer': row.acheteur,
            'region': row.region,
            'buyer_siret': row.siret,
        },
        'lifecycle': {
            'publication_date': row.publication_date,
            'deadline': row.deadline,
        },
        'content': {
            'description': row.description,
            'keywords': row.keywords or [],
        },
        'classification': {'market_type': row.type_marche},
        'raw': row.raw_json,
    })


class SqlAlchemyRecordStore:
    """Хранилище AO поверх async engine (PostgreSQL / SQLite)."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SqlAlchemyRecordStore":
        """
        Создаёт store по URL базы.

        Args:
            database_url: Например 'postgresql+asyncpg://...' или 'sqlite+aiosqlite:///triage.db'
            echo: Включить SQL логирование
        """
        is_sqlite = 'sqlite' in database_url
        engine = create_async_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            poolclass=NullPool if is_sqlite else None,
        )
        logger.info(f"Store AO: {database_url.split('@')[-1] if '@' in database_url else 'SQLite'}")
        return cls(engine)

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("✅ Таблица appels_offres создана/проверена")

    async def close(self) -> None:
        await self.engine.dispose()

    # ------------------------------------------------------------------
    # RecordStore
    # ------------------------------------------------------------------

    async def bulk_read_analyzed(self) -> Sequence[StoredRecord]:
        """Все проанализированные AO, самые свежие первыми."""
        query = (
            select(AppelOffre)
            .where(AppelOffre.status == STATUS_ANALYZED)
            .order_by(AppelOffre.analyzed_at.desc(), AppelOffre.id.desc())
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError(f"bulk read appels_offres failed: {e}") from e
        return [_to_stored(row) for row in rows]

    async def find_by_composite_or_secondary_key(
        self,
        composite_key: str,
        secondary_key: Optional[str],
        uuid_key: Optional[str] = None,
    ) -> Sequence[StoredRecord]:
        conditions = [AppelOffre.dedup_key == composite_key]
        if secondary_key:
            conditions.append(AppelOffre.siret_deadline_key == secondary_key)
        if uuid_key:
            conditions.append(AppelOffre.uuid_procedure == uuid_key)

        query = (
            select(AppelOffre)
            .where(AppelOffre.status == STATUS_ANALYZED, or_(*conditions))
            .order_by(AppelOffre.analyzed_at.desc(), AppelOffre.id.desc())
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError(f"candidate lookup failed: {e}") from e
        return [_to_stored(row) for row in rows]

    async def get_record(self, record_id: RecordId) -> Optional[CanonicalRecord]:
        """Предыдущая версия AO (для сравнения ректификата)."""
        try:
            async with self._session_factory() as session:
                row = await session.get(AppelOffre, int(record_id))
        except SQLAlchemyError as e:
            raise StoreError(f"get_record({record_id}) failed: {e}") from e
        return _to_canonical(row) if row is not None else None

    # ------------------------------------------------------------------
    # Запись
    # ------------------------------------------------------------------

    async def save_record(
        self,
        record: CanonicalRecord,
        keys: DedupKeys,
        status: str = STATUS_ANALYZED,
        keyword_score: Optional[float] = None,
        analyzed_at: Optional[datetime] = None,
    ) -> int:
        """
        Сохраняет AO вместе с ключами дедупликации.

        Returns:
            id новой строки
        """
        row = AppelOffre(
            source=record.source,
            source_id=record.source_id,
            uuid_procedure=keys.uuid_key,
            boamp_id=keys.announcement_number,
            title=record.title,
            acheteur=record.buyer,
            siret=record.identity.buyer_siret,
            region=record.identity.region,
            type_marche=record.classification.market_type,
            budget_max=record.budget_max,
            description=record.content.description,
            keywords=list(record.content.keywords),
            raw_json=record.raw.data if isinstance(record.raw, ParsedPayload) else None,
            publication_date=record.lifecycle.publication_date,
            deadline=record.deadline,
            dedup_key=keys.composite_key,
            siret_deadline_key=keys.secondary_key,
            status=status,
            keyword_score=keyword_score,
            analyzed_at=analyzed_at or (datetime.utcnow() if status == STATUS_ANALYZED else None),
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
                return row.id
        except SQLAlchemyError as e:
            raise StoreError(f"save_record failed: {e}") from e

    async def update_fields(self, record_id: RecordId, updates: Dict[str, Any]) -> None:
        """Точечное обновление колонок (мелкий ректификат)."""
        try:
            async with self._session_factory() as session:
                row = await session.get(AppelOffre, int(record_id))
                if row is None:
                    raise StoreError(f"AO #{record_id} не найдено")
                for column, value in updates.items():
                    setattr(row, column, value)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"update_fields({record_id}) failed: {e}") from e


def get_store(database_url: Optional[str] = None) -> SqlAlchemyRecordStore:
    """Store по DATABASE_URL (по умолчанию локальный SQLite)."""
    url = database_url or os.getenv('DATABASE_URL', 'sqlite+aiosqlite:///triage.db')
    return SqlAlchemyRecordStore.from_url(url)
