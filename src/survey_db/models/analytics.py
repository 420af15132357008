"""SurveyAnalytics ORM model — one snapshot per (session, metric type).

Metric types used by the SDK are ``real_time`` (incremental metrics),
``final_assessment`` (category scores) and ``final_report``.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TIMESTAMP

from survey_db.models.base import Base


class SurveyAnalytics(Base):
    """A whole analytics snapshot, replaced on every save."""

    __tablename__ = "survey_analytics"

    session_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("survey_sessions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    metric_type: Mapped[str] = mapped_column(Text, primary_key=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_analytics_session", "session_id"),
        Index("ix_analytics_calculated_at", "calculated_at"),
    )

    def __repr__(self) -> str:
        return f"<SurveyAnalytics(session={self.session_id!r}, type={self.metric_type!r})>"
