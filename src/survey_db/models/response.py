"""SurveyResponse ORM model — at most one row per (session, question)."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TIMESTAMP

from survey_db.models.base import Base


class SurveyResponse(Base):
    """A stored answer.  Re-answering a question overwrites the row."""

    __tablename__ = "survey_responses"

    session_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("survey_sessions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    question_id: Mapped[str] = mapped_column(Text, primary_key=True)
    section: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Type-tagged payload, e.g. {"kind": "single", "value": "B"}
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    # Free-text "please specify" annotation: a string, or {option: text}
    specify: Mapped[Any] = mapped_column(JSON, nullable=True)

    answered_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_responses_session", "session_id"),
        Index("ix_responses_section", "section"),
    )

    def __repr__(self) -> str:
        return (
            f"<SurveyResponse(session={self.session_id!r}, "
            f"question={self.question_id!r}, kind={self.payload.get('kind')!r})>"
        )
