"""survey_flow — adaptive survey sequencing and scoring SDK.

Loads a questionnaire catalog from YAML, walks it with conditional skip
logic, persists sessions through a pluggable ``ResponseStore`` and turns
responses into funnel metrics and a final report.

Quick start::

    from survey_flow import InMemoryResponseStore, QuestionCatalog, SequencingController

    catalog = QuestionCatalog()
    catalog.load()
    controller = SequencingController(catalog, InMemoryResponseStore())
    await controller.start_session()
"""

from survey_flow.catalog import QuestionCatalog
from survey_flow.config import SurveySettings, configure_logging, load_settings
from survey_flow.errors import (
    CatalogError,
    InvalidTransitionError,
    NotFoundError,
    QuestionNotFoundError,
    SessionNotFoundError,
    StorageFailureError,
    SurveyError,
)
from survey_flow.evaluator import ConditionEvaluator
from survey_flow.runtime import open_survey
from survey_flow.scoring import ScoringEngine, nps_category
from survey_flow.sequencing import SequencingController
from survey_flow.skip_logic import SkipLogicEngine
from survey_flow.store import InMemoryResponseStore, ResponseStore, SqlResponseStore

__all__ = [
    "QuestionCatalog",
    "SkipLogicEngine",
    "SequencingController",
    "ScoringEngine",
    "ConditionEvaluator",
    "ResponseStore",
    "InMemoryResponseStore",
    "SqlResponseStore",
    "SurveySettings",
    "load_settings",
    "configure_logging",
    "open_survey",
    "nps_category",
    # errors
    "SurveyError",
    "NotFoundError",
    "SessionNotFoundError",
    "QuestionNotFoundError",
    "InvalidTransitionError",
    "StorageFailureError",
    "CatalogError",
]
