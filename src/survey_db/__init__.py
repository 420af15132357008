"""survey_db — SQLAlchemy persistence layer for survey sessions.

This package provides the ORM models, async engine factory, and repository
for creating, updating, and querying survey sessions, their responses, and
their analytics snapshots.  It is consumed by the ``survey_flow`` SDK through
``survey_flow.store.SqlResponseStore``.
"""

from survey_db.engine import build_engine, get_engine, get_session_factory, init_models
from survey_db.models.analytics import SurveyAnalytics
from survey_db.models.enums import SessionStatus
from survey_db.models.response import SurveyResponse
from survey_db.models.session import SurveySession
from survey_db.repository import SurveyRepository

__all__ = [
    "SurveySession",
    "SurveyResponse",
    "SurveyAnalytics",
    "SessionStatus",
    "build_engine",
    "get_engine",
    "get_session_factory",
    "init_models",
    "SurveyRepository",
]
