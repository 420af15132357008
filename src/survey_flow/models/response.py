"""Response models — a stored answer and its type-tagged payload.

Payload kinds (discriminated on ``kind``):

  - single:  one value (single_select, scale)
  - list:    selected values (multiple_select)
  - matrix:  row -> chosen column (matrix)
  - ranking: ordered values (ranking)
  - text:    free text (free_text)

At most one ``Response`` exists per (session_id, question_id); saving again
overwrites it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from .question import Question
from .rule import normalise_trigger


class SingleValue(BaseModel):
    kind: Literal["single"] = "single"
    value: Union[str, int, float]


class ValueList(BaseModel):
    kind: Literal["list"] = "list"
    values: List[str] = []


class MatrixAnswer(BaseModel):
    kind: Literal["matrix"] = "matrix"
    matrix: Dict[str, str] = {}


class RankedSequence(BaseModel):
    kind: Literal["ranking"] = "ranking"
    ranking: List[str] = []


class FreeText(BaseModel):
    kind: Literal["text"] = "text"
    text: str = ""


ResponsePayload = Annotated[
    Union[SingleValue, ValueList, MatrixAnswer, RankedSequence, FreeText],
    Field(discriminator="kind"),
]

# Used by stores to rebuild payloads from their JSON form.
payload_adapter: TypeAdapter = TypeAdapter(ResponsePayload)

# Payload kind expected for each question type.
PAYLOAD_KIND: dict[str, str] = {
    "single_select": "single",
    "scale": "single",
    "multiple_select": "list",
    "matrix": "matrix",
    "ranking": "ranking",
    "free_text": "text",
}

_PAYLOAD_TYPES = (SingleValue, ValueList, MatrixAnswer, RankedSequence, FreeText)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Response(BaseModel):
    """A stored answer to one question within one session."""

    session_id: str
    question_id: str
    section: Optional[str] = None
    payload: ResponsePayload
    # "Please specify" text: a string for single answers, {option: text} for lists
    specify: Optional[Union[str, Dict[str, str]]] = None
    answered_at: datetime = Field(default_factory=_utcnow)

    @property
    def scalar(self) -> Any:
        """The single value or free text, or None for collection payloads."""
        payload = self.payload
        if isinstance(payload, SingleValue):
            return payload.value
        if isinstance(payload, FreeText):
            return payload.text
        return None

    @property
    def trigger_value(self) -> Optional[str]:
        """String form of the scalar answer used to look up skip rules."""
        return normalise_trigger(self.scalar)

    @property
    def answer_set(self) -> list[str]:
        """Items the respondent chose; empty when nothing was chosen.

        Single values and non-blank text count as one item, matrix answers
        contribute their answered rows.
        """
        payload = self.payload
        if isinstance(payload, ValueList):
            return list(payload.values)
        if isinstance(payload, RankedSequence):
            return list(payload.ranking)
        if isinstance(payload, MatrixAnswer):
            return list(payload.matrix)
        if isinstance(payload, FreeText):
            return [payload.text] if payload.text.strip() else []
        text = normalise_trigger(payload.value)
        return [text] if text else []


def build_payload(question: Question, value: Any) -> ResponsePayload:
    """Coerce a raw answer into the payload kind ``question`` expects.

    Accepts an already-built payload model (checked for the right kind),
    or plain Python values: str/number for single answers, a list for
    multiple-select and ranking, a dict for matrix, a str for free text.

    Raises:
        ValueError: if ``value`` cannot represent an answer to ``question``.
    """
    expected = PAYLOAD_KIND[question.question_type]

    if isinstance(value, _PAYLOAD_TYPES):
        if value.kind != expected:
            raise ValueError(
                f"Question {question.id} ({question.question_type}) expects a "
                f"'{expected}' payload, got '{value.kind}'"
            )
        return value

    if expected == "single":
        # bool is a subclass of int in Python, so reject it explicitly
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise ValueError(
                f"Question {question.id} expects a single value, got {type(value).__name__}"
            )
        return SingleValue(value=value)

    if expected == "list":
        if isinstance(value, str):
            return ValueList(values=[value])
        if isinstance(value, (list, tuple, set)):
            return ValueList(values=[str(v) for v in value])
        raise ValueError(f"Question {question.id} expects a list, got {type(value).__name__}")

    if expected == "ranking":
        if isinstance(value, (list, tuple)):
            return RankedSequence(ranking=[str(v) for v in value])
        raise ValueError(
            f"Question {question.id} expects an ordered list, got {type(value).__name__}"
        )

    if expected == "matrix":
        if isinstance(value, dict):
            return MatrixAnswer(matrix={str(k): str(v) for k, v in value.items()})
        raise ValueError(f"Question {question.id} expects a dict, got {type(value).__name__}")

    if not isinstance(value, str):
        raise ValueError(f"Question {question.id} expects text, got {type(value).__name__}")
    return FreeText(text=value)
