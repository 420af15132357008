"""Per-question scoring rules.

A question may declare how its answers translate to a 0-10 score.  The
scoring engine uses the same rule for the running funnel metrics and for
the final category scores:

  - word_count:    free-text recall, ``min(words * points_per_word, 10)``
  - mapping:       categorical answer looked up in a fixed score table
  - any_selection: 10 if anything was selected, else 0
  - rating:        numeric rating scaled linearly onto 0-10
  - matrix:        mean mapped level across matrix rows, normalised to 10

The discriminated ``ScoringRule`` union uses ``method`` as its discriminator.
"""

from typing import Annotated, Dict, Literal, Union

from pydantic import BaseModel, Field, model_validator


class WordCountScoring(BaseModel):
    """Score free text by its length in words."""

    method: Literal["word_count"] = "word_count"
    points_per_word: float = 2.0


class MappingScoring(BaseModel):
    """Score a categorical answer from a lookup table; unknown answers score 0."""

    method: Literal["mapping"] = "mapping"
    table: Dict[str, float]

    @property
    def top_score(self) -> float:
        return max(self.table.values()) if self.table else 0.0


class SelectionScoring(BaseModel):
    """Flat 10 when at least one option is selected."""

    method: Literal["any_selection"] = "any_selection"


class RatingScoring(BaseModel):
    """Numeric rating, scaled so that ``scale_max`` maps to 10."""

    method: Literal["rating"] = "rating"
    scale_max: float = 10.0

    @model_validator(mode="after")
    def _chk(self):
        if self.scale_max <= 0:
            raise ValueError("scale_max must be > 0")
        return self


class MatrixScoring(BaseModel):
    """Map each row's column label to a level and average across rows.

    ``levels`` maps column labels (e.g. "Very aware") to numeric levels; the
    mean level is divided by the highest level and scaled to 10.
    """

    method: Literal["matrix"] = "matrix"
    levels: Dict[str, float]

    @model_validator(mode="after")
    def _chk(self):
        if not self.levels or max(self.levels.values()) <= 0:
            raise ValueError("levels must contain at least one positive level")
        return self


ScoringRule = Annotated[
    Union[WordCountScoring, MappingScoring, SelectionScoring, RatingScoring, MatrixScoring],
    Field(discriminator="method"),
]
