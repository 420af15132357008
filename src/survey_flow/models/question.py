"""Question and section models for the questionnaire catalog.

Each question type maps to a specific input control and payload kind:

    - single_select:   pick one option                -> SingleValue
    - multiple_select: pick any number of options     -> ValueList
    - matrix:          pick one column per row        -> MatrixAnswer
    - scale:           numeric rating                 -> SingleValue
    - ranking:         order all options              -> RankedSequence
    - free_text:       open-ended text                -> FreeText

Questions are immutable once loaded.  Options may be written in YAML as
plain strings; they are coerced to ``Option`` models.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .scoring import ScoringRule

QuestionType = Literal[
    "single_select",
    "multiple_select",
    "matrix",
    "scale",
    "ranking",
    "free_text",
]

# Question types whose answers are chosen from ``options``.
OPTION_TYPES: set[str] = {"single_select", "multiple_select", "ranking"}


class Option(BaseModel):
    """A selectable option.

    ``allows_specify`` marks options such as "Other" that accept a free-text
    annotation alongside the selection.
    """

    model_config = ConfigDict(frozen=True)

    value: str
    label: Optional[str] = None
    allows_specify: bool = False

    @property
    def display(self) -> str:
        return self.label or self.value


class QuestionLogic(BaseModel):
    """Branching metadata attached to a question.

    ``stakeholder_types`` restricts the question to respondents whose
    resolved stakeholder type is in the set.
    """

    model_config = ConfigDict(frozen=True)

    stakeholder_types: Optional[Set[str]] = None


class Question(BaseModel):
    """A single catalog question."""

    model_config = ConfigDict(frozen=True)

    id: str
    section: str
    question_type: QuestionType
    text: str = ""
    options: List[Option] = []
    # Matrix questions only
    rows: Optional[List[str]] = None
    columns: Optional[List[str]] = None
    # Scale questions only
    scale_min: int = 0
    scale_max: int = 10
    required: bool = False
    logic: Optional[QuestionLogic] = None
    scoring: Optional[ScoringRule] = None

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [{"value": opt} if isinstance(opt, str) else opt for opt in value]

    @model_validator(mode="after")
    def _chk(self):
        if self.question_type == "matrix" and (not self.rows or not self.columns):
            raise ValueError(f"matrix question {self.id} needs rows and columns")
        if self.question_type == "scale" and self.scale_min >= self.scale_max:
            raise ValueError(f"scale question {self.id}: scale_min must be < scale_max")
        if self.question_type in OPTION_TYPES and not self.options:
            raise ValueError(f"{self.question_type} question {self.id} needs options")
        return self

    @property
    def stakeholder_types(self) -> Optional[frozenset[str]]:
        """The stakeholder restriction, or None if every respondent sees it."""
        if self.logic is None or not self.logic.stakeholder_types:
            return None
        return frozenset(self.logic.stakeholder_types)

    @property
    def option_values(self) -> list[str]:
        return [opt.value for opt in self.options]


class Section(BaseModel):
    """A titled group of questions.

    ``funnel_stage`` tags the section with the marketing-funnel stage its
    answers feed into (None for screening/profile sections).
    ``question_ids`` is derived by the catalog from question declarations.
    """

    id: str
    title: str
    description: str = ""
    funnel_stage: Optional[
        Literal["awareness", "interest", "consideration", "action", "advocacy"]
    ] = None
    question_ids: List[str] = []


class ReportQuestions(BaseModel):
    """Representative question ids feeding the final assessment.

    Any entry may be omitted; the matching category then scores 0.
    """

    awareness: Optional[str] = None
    aided_awareness: Optional[str] = None
    engagement: Optional[str] = None
    conversion: Optional[str] = None
    strategic: Optional[str] = None

    def referenced(self) -> list[str]:
        return [qid for qid in self.model_dump().values() if qid]
