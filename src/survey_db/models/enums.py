"""Database-level enumerations for survey sessions."""

import enum


class SessionStatus(str, enum.Enum):
    """Lifecycle states for a survey session.

    Transitions:
        in_progress -> completed  (exactly once; completed is terminal)
    """

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
