"""Async CRUD repository for survey sessions, responses and analytics.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries (the SDK's ``SqlResponseStore`` commits once per
store operation).

Business-logic validation lives in the SDK layer.  Payloads and analytics
data are plain dicts; this package never imports the SDK's pydantic models.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.models.analytics import SurveyAnalytics
from survey_db.models.enums import SessionStatus
from survey_db.models.response import SurveyResponse
from survey_db.models.session import SurveySession

# Columns callers may change through ``update_session``.  Identity and
# creation time are fixed once the row exists.
UPDATABLE_SESSION_FIELDS = frozenset({
    "completion_status",
    "completed_at",
    "current_question",
    "current_section",
    "stakeholder_type",
    "progress",
    "catalog_version",
})


class SurveyRepository:
    """Async read/write operations on the survey tables."""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self,
        db: AsyncSession,
        *,
        current_question: str | None = None,
        current_section: str | None = None,
        catalog_version: str | None = None,
    ) -> SurveySession:
        """Insert a new in-progress session row and return it.

        The caller must ``await db.commit()`` to persist.
        """
        now = datetime.now(timezone.utc)
        session = SurveySession(
            id=uuid.uuid4().hex,
            completion_status=SessionStatus.IN_PROGRESS.value,
            current_question=current_question,
            current_section=current_section,
            catalog_version=catalog_version,
            progress=0,
            created_at=now,
            last_modified=now,
        )
        db.add(session)
        await db.flush()
        return session

    async def get_session(self, db: AsyncSession, session_id: str) -> SurveySession | None:
        """Fetch a session by id."""
        return await db.get(SurveySession, session_id)

    async def update_session(
        self, db: AsyncSession, session: SurveySession, fields: dict[str, Any]
    ) -> SurveySession:
        """Merge ``fields`` into the session row and bump ``last_modified``.

        Raises:
            ValueError: if ``fields`` names a column that cannot be updated.
        """
        unknown = set(fields) - UPDATABLE_SESSION_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")

        for name, value in fields.items():
            if isinstance(value, SessionStatus):
                value = value.value
            setattr(session, name, value)
        session.last_modified = datetime.now(timezone.utc)
        await db.flush()
        return session

    async def list_incomplete(self, db: AsyncSession) -> list[SurveySession]:
        """List in-progress sessions, most recently modified first."""
        stmt = (
            select(SurveySession)
            .where(SurveySession.completion_status == SessionStatus.IN_PROGRESS.value)
            .order_by(SurveySession.last_modified.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def delete_session(self, db: AsyncSession, session_id: str) -> None:
        """Delete a session together with its responses and analytics.

        Child rows are removed explicitly rather than relying on
        ``ON DELETE CASCADE``, which SQLite only honours when foreign keys
        are enabled on the connection.
        """
        await db.execute(delete(SurveyResponse).where(SurveyResponse.session_id == session_id))
        await db.execute(delete(SurveyAnalytics).where(SurveyAnalytics.session_id == session_id))
        await db.execute(delete(SurveySession).where(SurveySession.id == session_id))
        await db.flush()

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    async def upsert_response(
        self,
        db: AsyncSession,
        *,
        session_id: str,
        question_id: str,
        payload: dict[str, Any],
        section: str | None = None,
        specify: Any = None,
    ) -> SurveyResponse:
        """Insert or overwrite the response for (session_id, question_id).

        The whole row is replaced; there are no partial updates.
        """
        now = datetime.now(timezone.utc)
        row = await db.get(SurveyResponse, (session_id, question_id))
        if row is None:
            row = SurveyResponse(session_id=session_id, question_id=question_id)
            db.add(row)
        row.section = section
        row.payload = payload
        row.specify = specify
        row.answered_at = now
        await db.flush()
        return row

    async def get_response(
        self, db: AsyncSession, session_id: str, question_id: str
    ) -> SurveyResponse | None:
        """Fetch one response by its composite key."""
        return await db.get(SurveyResponse, (session_id, question_id))

    async def list_responses(self, db: AsyncSession, session_id: str) -> list[SurveyResponse]:
        """List a session's responses in the order they were answered."""
        stmt = (
            select(SurveyResponse)
            .where(SurveyResponse.session_id == session_id)
            .order_by(SurveyResponse.answered_at, SurveyResponse.question_id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    async def upsert_analytics(
        self,
        db: AsyncSession,
        *,
        session_id: str,
        metric_type: str,
        data: dict[str, Any],
    ) -> SurveyAnalytics:
        """Insert or replace the analytics snapshot for (session_id, metric_type)."""
        row = await db.get(SurveyAnalytics, (session_id, metric_type))
        if row is None:
            row = SurveyAnalytics(session_id=session_id, metric_type=metric_type)
            db.add(row)
        row.data = data
        row.calculated_at = datetime.now(timezone.utc)
        await db.flush()
        return row

    async def get_analytics(
        self, db: AsyncSession, session_id: str, metric_type: str
    ) -> SurveyAnalytics | None:
        """Fetch one analytics snapshot by its composite key."""
        return await db.get(SurveyAnalytics, (session_id, metric_type))

    async def list_analytics(self, db: AsyncSession, session_id: str) -> list[SurveyAnalytics]:
        """List every analytics snapshot stored for a session."""
        stmt = (
            select(SurveyAnalytics)
            .where(SurveyAnalytics.session_id == session_id)
            .order_by(SurveyAnalytics.metric_type)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())
