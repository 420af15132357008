"""Skip-rule models for conditional question branching.

A skip rule is keyed by the answer given to a source question:

    (question_id, trigger_value) -> action

and the action decides where the flow goes next:

  - JumpTo:        go straight to ``target``
  - ContinueAfter: resume catalog order after ``from``
  - RouteToRange:  first eligible question within ``start``..``end``

A rule may also carry a ``condition`` over prior answers.  When the
condition holds, the rule's *source* question is itself considered
skippable (see ``SkipLogicEngine.should_skip``).

Rules are indexed by the explicit ``RuleKey`` tuple rather than a
concatenated string, so ids and values containing separators cannot
collide.
"""

from typing import Annotated, Any, Literal, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def normalise_trigger(value: Any) -> Optional[str]:
    """Canonical string form of an answer used for rule lookup.

    Integral floats collapse to their integer text (``9.0`` -> ``"9"``) so a
    numeric scale answer matches a rule written as ``value: 9`` in YAML.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class RuleKey(NamedTuple):
    """Composite lookup key: the source question and the answer that fires the rule."""

    question_id: str
    trigger_value: str


# --- Conditions ---

class Condition(BaseModel):
    """A predicate over a prior response.

    Operators:
      - equals:      the referenced answer equals ``value``
      - is_empty:    the referenced answer set is empty (or unanswered)
      - is_nonempty: the referenced answer set has at least one item
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source: str = Field(alias="from")
    op: Literal["equals", "is_empty", "is_nonempty"]
    value: Optional[Union[str, int, float]] = None

    @model_validator(mode="after")
    def _chk(self):
        if self.op == "equals" and self.value is None:
            raise ValueError("equals condition needs a value")
        return self


# --- Actions ---

class JumpTo(BaseModel):
    """Jump directly to ``target``."""

    model_config = ConfigDict(frozen=True)

    action: Literal["jump_to"] = "jump_to"
    target: str


class ContinueAfter(BaseModel):
    """Continue in catalog order after ``from_question``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    action: Literal["continue_after"] = "continue_after"
    from_question: str = Field(alias="from")


class RouteToRange(BaseModel):
    """Route to the first eligible question between ``start`` and ``end`` inclusive."""

    model_config = ConfigDict(frozen=True)

    action: Literal["route_to_range"] = "route_to_range"
    start: str
    end: str


# Discriminated union: pydantic picks the right type based on the "action" field.
RuleAction = Annotated[Union[JumpTo, ContinueAfter, RouteToRange], Field(discriminator="action")]


class SkipRule(BaseModel):
    """One branching instruction keyed by (question_id, trigger_value)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    question_id: str = Field(alias="question")
    trigger_value: str = Field(alias="value")
    action: RuleAction
    condition: Optional[Condition] = None

    @field_validator("trigger_value", mode="before")
    @classmethod
    def _normalise(cls, value: Any) -> Any:
        return normalise_trigger(value)

    @property
    def key(self) -> RuleKey:
        return RuleKey(self.question_id, self.trigger_value)

    @property
    def referenced_questions(self) -> list[str]:
        """Every question id this rule points at (action targets and condition source)."""
        action = self.action
        if isinstance(action, JumpTo):
            refs = [action.target]
        elif isinstance(action, ContinueAfter):
            refs = [action.from_question]
        else:
            refs = [action.start, action.end]
        if self.condition is not None:
            refs.append(self.condition.source)
        return refs
