"""SurveySession ORM model — one row per questionnaire session.

The row holds the navigation state (current question/section), the
resolved stakeholder type and the cached progress percentage.  Responses
and analytics live in their own tables keyed by ``session_id`` so that a
single answer can be upserted without rewriting the whole session.
"""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Index, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TIMESTAMP

from survey_db.models.base import Base
from survey_db.models.enums import SessionStatus


class SurveySession(Base):
    """One row per survey session."""

    __tablename__ = "survey_sessions"

    # Hex UUID generated by the repository
    id: Mapped[str] = mapped_column(String(32), primary_key=True)

    # --- Lifecycle ---
    completion_status: Mapped[str] = mapped_column(
        # Stored as the lowercase string value, not the Python name
        String(20),
        nullable=False,
        default=SessionStatus.IN_PROGRESS.value,
    )
    # Catalog version tag so we can trace which questionnaire drove the session
    catalog_version: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Navigation ---
    current_question: Mapped[str | None] = mapped_column(Text, nullable=True)
    current_section: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Null until the stakeholder-identifying question is answered
    stakeholder_type: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cached answered/total percentage, 0-100
    progress: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    last_modified: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint("progress BETWEEN 0 AND 100", name="ck_progress_range"),
        # Completed sessions must carry a completion timestamp
        CheckConstraint(
            "completion_status != 'completed' OR completed_at IS NOT NULL",
            name="ck_completed_has_timestamp",
        ),
        Index("ix_completion_status", "completion_status"),
        Index("ix_last_modified", "last_modified"),
    )

    def __repr__(self) -> str:
        return (
            f"<SurveySession(id={self.id!r}, status={self.completion_status!r}, "
            f"question={self.current_question!r}, progress={self.progress})>"
        )
