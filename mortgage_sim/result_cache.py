"""Persistence layer for caching simulation summaries.

Comparing many scenarios re-runs the engine for each of them. This module lets
the caller keep finished summaries keyed by a fingerprint of the scenario
inputs, so unchanged scenarios are not simulated again. It defaults to SQLite
for local use, but accepts any SQLAlchemy-compatible URL (e.g.
PostgreSQL/MySQL) for a cache shared between machines. The engine itself
never consults the cache.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine, func, select
from sqlalchemy.orm import declarative_base, sessionmaker

from .data_models import SimulationSummary

logger = logging.getLogger(__name__)

Base = declarative_base()

DEFAULT_CACHE_URL = "sqlite:///mortgage_sim_cache.sqlite3"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CachedResultModel(Base):
    __tablename__ = "cached_results"

    fingerprint = Column(String(64), primary_key=True)
    summary_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class ResultCache:
    """Database-backed summary cache."""

    def __init__(self, url: str, *, max_entries: int = 500) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)
        self._max_entries = max_entries

    def get(self, key: str) -> Optional[SimulationSummary]:
        with self._session_factory() as session:
            row = session.get(CachedResultModel, key)
            if row is None:
                return None
            return SimulationSummary(**json.loads(row.summary_json))

    def put(self, key: str, summary: SimulationSummary) -> None:
        payload = json.dumps(dataclasses.asdict(summary))
        with self._session_factory() as session:
            row = session.get(CachedResultModel, key)
            if row is None:
                session.add(CachedResultModel(fingerprint=key, summary_json=payload))
            else:
                row.summary_json = payload
                row.created_at = _utcnow()
            session.commit()
        self._trim()

    def clear(self) -> None:
        with self._session_factory() as session:
            session.execute(CachedResultModel.__table__.delete())
            session.commit()

    def __len__(self) -> int:
        with self._session_factory() as session:
            return session.execute(select(func.count()).select_from(CachedResultModel)).scalar_one()

    def _trim(self) -> None:
        if not self._max_entries or self._max_entries < 0:
            return
        with self._session_factory() as session:
            rows = session.execute(
                select(CachedResultModel).order_by(CachedResultModel.created_at.desc())
            ).scalars().all()
            if len(rows) <= self._max_entries:
                return
            for row in rows[self._max_entries :]:
                session.delete(row)
            session.commit()
            logger.debug("Trimmed %d cached results", len(rows) - self._max_entries)


def create_cache_from_env(url: str | None) -> ResultCache:
    return ResultCache(url or DEFAULT_CACHE_URL)
