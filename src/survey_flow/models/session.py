"""Session-level models: lifecycle state, progress and export.

``Session`` mirrors one ``survey_sessions`` row in SDK form; stores convert
their own representation into it so the controller never sees ORM objects.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from survey_db.models.enums import SessionStatus

from .response import Response


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """Navigation and lifecycle state of one survey session."""

    id: str
    created_at: datetime = Field(default_factory=_utcnow)
    last_modified: datetime = Field(default_factory=_utcnow)
    completion_status: SessionStatus = SessionStatus.IN_PROGRESS
    completed_at: Optional[datetime] = None
    current_question: Optional[str] = None
    current_section: Optional[str] = None
    # Null until the stakeholder-identifying question is answered
    stakeholder_type: Optional[str] = None
    # Cached percentage, 0-100
    progress: int = 0
    catalog_version: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.completion_status == SessionStatus.COMPLETED


class Progress(BaseModel):
    """Overall progress: distinct answered questions over catalog size."""

    percentage: int
    answered: int
    total: int


class SectionProgress(BaseModel):
    section_id: str
    title: str
    answered: int
    total: int
    percentage: int


class AnalyticsRecord(BaseModel):
    """One stored analytics snapshot, keyed by (session_id, metric_type)."""

    session_id: str
    metric_type: str
    data: Dict[str, Any] = {}
    calculated_at: datetime = Field(default_factory=_utcnow)


class ExportMetadata(BaseModel):
    session_id: str
    exported_at: datetime = Field(default_factory=_utcnow)
    catalog_version: Optional[str] = None


class SessionExport(BaseModel):
    """Everything stored for a session, ready for submission or archiving."""

    metadata: ExportMetadata
    session: Session
    responses: List[Response] = []
    analytics: List[AnalyticsRecord] = []
