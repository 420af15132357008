"""ResponseStore — durable storage contract for sessions, responses and analytics.

The SDK talks to storage only through :class:`ResponseStore`.  Two
implementations ship with it:

  - :class:`InMemoryResponseStore` — dict-backed, for tests and embedding
  - :class:`SqlResponseStore` — SQLAlchemy async, backed by ``survey_db``

Contract (all methods are ``async``):

  - not-found reads return ``None``
  - writes against an unknown session raise ``SessionNotFoundError``
  - responses and analytics are upserted by their composite key
  - ``clear_session`` removes the session together with its responses and
    analytics
  - I/O failures raise ``StorageFailureError`` and are never retried
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from survey_db import SurveyRepository, get_session_factory
from survey_db.models.analytics import SurveyAnalytics
from survey_db.models.enums import SessionStatus
from survey_db.models.response import SurveyResponse
from survey_db.models.session import SurveySession
from survey_db.repository import UPDATABLE_SESSION_FIELDS
from survey_flow.errors import SessionNotFoundError, StorageFailureError
from survey_flow.models.response import Response, ResponsePayload, payload_adapter
from survey_flow.models.session import (
    AnalyticsRecord,
    ExportMetadata,
    Session,
    SessionExport,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_SESSION_FIELDS
    if unknown:
        raise ValueError(f"Cannot update session fields: {sorted(unknown)}")


class ResponseStore(ABC):
    """Storage contract keyed by session id."""

    @abstractmethod
    async def create_session(
        self,
        *,
        current_question: str | None = None,
        current_section: str | None = None,
        catalog_version: str | None = None,
    ) -> Session:
        """Create a new in-progress session.  Its id is ``session.id``."""
        ...

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    async def update_session(self, session_id: str, fields: dict[str, Any]) -> Session:
        """Merge ``fields`` into the session and bump ``last_modified``.

        Raises:
            SessionNotFoundError: if the session does not exist.
            ValueError: if ``fields`` names a field that cannot be updated.
        """
        ...

    @abstractmethod
    async def save_response(
        self,
        session_id: str,
        question_id: str,
        payload: ResponsePayload,
        *,
        section: str | None = None,
        specify: Any = None,
    ) -> Response:
        """Insert or overwrite the response for (session_id, question_id)."""
        ...

    @abstractmethod
    async def get_response(self, session_id: str, question_id: str) -> Optional[Response]:
        ...

    @abstractmethod
    async def get_session_responses(self, session_id: str) -> list[Response]:
        ...

    @abstractmethod
    async def save_analytics(
        self, session_id: str, metric_type: str, data: dict[str, Any]
    ) -> AnalyticsRecord:
        """Insert or replace the snapshot for (session_id, metric_type)."""
        ...

    @abstractmethod
    async def get_analytics(self, session_id: str, metric_type: str) -> Optional[AnalyticsRecord]:
        ...

    @abstractmethod
    async def get_incomplete_sessions(self) -> list[Session]:
        """In-progress sessions, most recently modified first."""
        ...

    @abstractmethod
    async def export_session_data(self, session_id: str) -> SessionExport:
        """Everything stored for the session.

        Raises:
            SessionNotFoundError: if the session does not exist.
        """
        ...

    @abstractmethod
    async def clear_session(self, session_id: str) -> None:
        """Delete the session, its responses and its analytics.  Unknown ids are a no-op."""
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryResponseStore(ResponseStore):
    """Dict-backed store.  Returned models are copies, never live references."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._responses: dict[str, dict[str, Response]] = {}
        self._analytics: dict[str, dict[str, AnalyticsRecord]] = {}
        # Write sequence, breaks last_modified ties when listing
        self._seq = itertools.count()
        self._touched: dict[str, int] = {}
        self._ids = itertools.count(1)

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def create_session(
        self,
        *,
        current_question: str | None = None,
        current_section: str | None = None,
        catalog_version: str | None = None,
    ) -> Session:
        now = _utcnow()
        session = Session(
            id=f"session-{next(self._ids)}",
            created_at=now,
            last_modified=now,
            current_question=current_question,
            current_section=current_section,
            catalog_version=catalog_version,
        )
        self._sessions[session.id] = session
        self._responses[session.id] = {}
        self._analytics[session.id] = {}
        self._touched[session.id] = next(self._seq)
        return session.model_copy(deep=True)

    async def get_session(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def update_session(self, session_id: str, fields: dict[str, Any]) -> Session:
        _check_fields(fields)
        current = self._require(session_id)
        merged = {**current.model_dump(), **fields, "last_modified": _utcnow()}
        session = Session.model_validate(merged)
        self._sessions[session_id] = session
        self._touched[session_id] = next(self._seq)
        return session.model_copy(deep=True)

    async def save_response(
        self,
        session_id: str,
        question_id: str,
        payload: ResponsePayload,
        *,
        section: str | None = None,
        specify: Any = None,
    ) -> Response:
        self._require(session_id)
        response = Response(
            session_id=session_id,
            question_id=question_id,
            section=section,
            payload=payload,
            specify=specify,
        )
        self._responses[session_id][question_id] = response
        return response.model_copy(deep=True)

    async def get_response(self, session_id: str, question_id: str) -> Optional[Response]:
        response = self._responses.get(session_id, {}).get(question_id)
        return response.model_copy(deep=True) if response else None

    async def get_session_responses(self, session_id: str) -> list[Response]:
        return [r.model_copy(deep=True) for r in self._responses.get(session_id, {}).values()]

    async def save_analytics(
        self, session_id: str, metric_type: str, data: dict[str, Any]
    ) -> AnalyticsRecord:
        self._require(session_id)
        record = AnalyticsRecord(session_id=session_id, metric_type=metric_type, data=data)
        self._analytics[session_id][metric_type] = record.model_copy(deep=True)
        return record

    async def get_analytics(self, session_id: str, metric_type: str) -> Optional[AnalyticsRecord]:
        record = self._analytics.get(session_id, {}).get(metric_type)
        return record.model_copy(deep=True) if record else None

    async def get_incomplete_sessions(self) -> list[Session]:
        pending = [s for s in self._sessions.values() if not s.is_completed]
        pending.sort(key=lambda s: (s.last_modified, self._touched[s.id]), reverse=True)
        return [s.model_copy(deep=True) for s in pending]

    async def export_session_data(self, session_id: str) -> SessionExport:
        session = self._require(session_id)
        return SessionExport(
            metadata=ExportMetadata(session_id=session_id, catalog_version=session.catalog_version),
            session=session.model_copy(deep=True),
            responses=await self.get_session_responses(session_id),
            analytics=[
                r.model_copy(deep=True)
                for _, r in sorted(self._analytics.get(session_id, {}).items())
            ],
        )

    async def clear_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._responses.pop(session_id, None)
        self._analytics.pop(session_id, None)
        self._touched.pop(session_id, None)


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on read; treat naive timestamps as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_from_row(row: SurveySession) -> Session:
    return Session(
        id=row.id,
        created_at=_as_utc(row.created_at),
        last_modified=_as_utc(row.last_modified),
        completion_status=SessionStatus(row.completion_status),
        completed_at=_as_utc(row.completed_at),
        current_question=row.current_question,
        current_section=row.current_section,
        stakeholder_type=row.stakeholder_type,
        progress=row.progress,
        catalog_version=row.catalog_version,
    )


def _response_from_row(row: SurveyResponse) -> Response:
    return Response(
        session_id=row.session_id,
        question_id=row.question_id,
        section=row.section,
        payload=payload_adapter.validate_python(row.payload),
        specify=row.specify,
        answered_at=_as_utc(row.answered_at),
    )


def _analytics_from_row(row: SurveyAnalytics) -> AnalyticsRecord:
    return AnalyticsRecord(
        session_id=row.session_id,
        metric_type=row.metric_type,
        data=row.data or {},
        calculated_at=_as_utc(row.calculated_at),
    )


class SqlResponseStore(ResponseStore):
    """Store backed by the ``survey_db`` tables.

    Each operation runs in its own ``AsyncSession`` and commits before
    returning.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        repository: SurveyRepository | None = None,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self._repo = repository or SurveyRepository()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session, commit on success, map driver errors to StorageFailureError."""
        try:
            async with self._session_factory() as db:
                yield db
                await db.commit()
        except SQLAlchemyError as exc:
            logger.error("Storage operation failed: %s", exc)
            raise StorageFailureError(str(exc)) from exc

    async def _require(self, db: AsyncSession, session_id: str) -> SurveySession:
        row = await self._repo.get_session(db, session_id)
        if row is None:
            raise SessionNotFoundError(session_id)
        return row

    async def create_session(
        self,
        *,
        current_question: str | None = None,
        current_section: str | None = None,
        catalog_version: str | None = None,
    ) -> Session:
        async with self._transaction() as db:
            row = await self._repo.create_session(
                db,
                current_question=current_question,
                current_section=current_section,
                catalog_version=catalog_version,
            )
            session = _session_from_row(row)
        logger.info("Created session %s", session.id)
        return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        async with self._transaction() as db:
            row = await self._repo.get_session(db, session_id)
            return _session_from_row(row) if row else None

    async def update_session(self, session_id: str, fields: dict[str, Any]) -> Session:
        _check_fields(fields)
        async with self._transaction() as db:
            row = await self._require(db, session_id)
            row = await self._repo.update_session(db, row, fields)
            return _session_from_row(row)

    async def save_response(
        self,
        session_id: str,
        question_id: str,
        payload: ResponsePayload,
        *,
        section: str | None = None,
        specify: Any = None,
    ) -> Response:
        async with self._transaction() as db:
            await self._require(db, session_id)
            row = await self._repo.upsert_response(
                db,
                session_id=session_id,
                question_id=question_id,
                payload=payload.model_dump(mode="json"),
                section=section,
                specify=specify,
            )
            return _response_from_row(row)

    async def get_response(self, session_id: str, question_id: str) -> Optional[Response]:
        async with self._transaction() as db:
            row = await self._repo.get_response(db, session_id, question_id)
            return _response_from_row(row) if row else None

    async def get_session_responses(self, session_id: str) -> list[Response]:
        async with self._transaction() as db:
            rows = await self._repo.list_responses(db, session_id)
            return [_response_from_row(r) for r in rows]

    async def save_analytics(
        self, session_id: str, metric_type: str, data: dict[str, Any]
    ) -> AnalyticsRecord:
        async with self._transaction() as db:
            await self._require(db, session_id)
            row = await self._repo.upsert_analytics(
                db, session_id=session_id, metric_type=metric_type, data=data
            )
            return _analytics_from_row(row)

    async def get_analytics(self, session_id: str, metric_type: str) -> Optional[AnalyticsRecord]:
        async with self._transaction() as db:
            row = await self._repo.get_analytics(db, session_id, metric_type)
            return _analytics_from_row(row) if row else None

    async def get_incomplete_sessions(self) -> list[Session]:
        async with self._transaction() as db:
            rows = await self._repo.list_incomplete(db)
            return [_session_from_row(r) for r in rows]

    async def export_session_data(self, session_id: str) -> SessionExport:
        async with self._transaction() as db:
            row = await self._require(db, session_id)
            session = _session_from_row(row)
            responses = [
                _response_from_row(r) for r in await self._repo.list_responses(db, session_id)
            ]
            analytics = [
                _analytics_from_row(r) for r in await self._repo.list_analytics(db, session_id)
            ]
        return SessionExport(
            metadata=ExportMetadata(session_id=session_id, catalog_version=session.catalog_version),
            session=session,
            responses=responses,
            analytics=analytics,
        )

    async def clear_session(self, session_id: str) -> None:
        async with self._transaction() as db:
            await self._repo.delete_session(db, session_id)
        logger.info("Cleared session %s", session_id)
