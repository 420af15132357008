"""Exception hierarchy for the survey SDK.

Navigation errors propagate to the caller; scoring swallows
``StorageFailureError`` and degrades to defaults.  Missing analytics data is
never an exception — reads return ``None`` and reports fall back to zeroed
values.

Each class also inherits the closest builtin (``LookupError`` /
``ValueError``) so callers that only know the builtins still catch them.
"""


class SurveyError(Exception):
    """Base class for every error raised by survey_flow."""


class NotFoundError(SurveyError, LookupError):
    """A session or question id could not be resolved."""


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class QuestionNotFoundError(NotFoundError):
    def __init__(self, question_id: str) -> None:
        super().__init__(f"Question not found: {question_id}")
        self.question_id = question_id


class InvalidTransitionError(SurveyError, ValueError):
    """Navigation or completion was attempted from an invalid session state."""


class StorageFailureError(SurveyError):
    """A persistence operation failed.  Not retried."""


class CatalogError(SurveyError, ValueError):
    """The questionnaire catalog is malformed or inconsistent."""
