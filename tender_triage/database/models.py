"""
SQLAlchemy модели хранилища AO.

Таблица appels_offres хранит каждое AO один раз; индекс дедупликации
строится только по строкам со статусом 'analyzed'.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Index, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

# Base для всех моделей
Base = declarative_base()

STATUS_NEW = 'new'
STATUS_ANALYZED = 'analyzed'
STATUS_CANCELLED = 'cancelled'


class AppelOffre(Base):
    """Сохранённое AO (appel d'offres)."""
    __tablename__ = 'appels_offres'

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(50), default='BOAMP', nullable=False)
    source_id = Column(String(100), nullable=True, index=True)
    uuid_procedure = Column(String(64), nullable=True, index=True)
    boamp_id = Column(String(50), nullable=True, index=True)  # номер объявления BOAMP (26-1234)

    title = Column(Text, nullable=False, default='')
    acheteur = Column(Text, nullable=True)
    siret = Column(String(20), nullable=True)
    region = Column(String(255), nullable=True)
    type_marche = Column(String(100), nullable=True)
    budget_max = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    keywords = Column(JSON, default=list)  # List[str]
    raw_json = Column(JSON, nullable=True)

    publication_date = Column(DateTime, nullable=True)
    deadline = Column(DateTime, nullable=True)

    # Ключи дедупликации, сохранённые при вставке
    dedup_key = Column(String(400), nullable=True, index=True)
    siret_deadline_key = Column(String(100), nullable=True, index=True)

    status = Column(String(50), default=STATUS_NEW, nullable=False)  # new, analyzed, cancelled
    keyword_score = Column(Float, nullable=True)
    analyzed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_appels_offres_status_analyzed', 'status', 'analyzed_at'),
        Index('ix_appels_offres_source', 'source', 'source_id'),
    )

    def __repr__(self):
        return f"<AppelOffre(id={self.id}, source={self.source}:{self.source_id}, status={self.status})>"
