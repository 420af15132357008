"""Analytics and report models produced by the scoring engine.

Real-time metrics (updated on every response) are held in a
``MetricsSnapshot`` and persisted as one flat record:

    {
        "funnel": {"awareness": 10.0, "interest": 2.5, ...},
        "section_<id>": {...SectionMetrics...},
        "stakeholder_<type>": {...StakeholderMetrics...},
    }

Completion produces a ``FinalAssessment`` (category scores from the
representative questions) and a ``FinalReport`` built from it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from survey_flow.constants import FUNNEL_STAGES

SECTION_PREFIX = "section_"
STAKEHOLDER_PREFIX = "stakeholder_"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _empty_funnel() -> Dict[str, float]:
    return {stage: 0.0 for stage in FUNNEL_STAGES}


# =====================================================================
# Real-time metrics
# =====================================================================

class Insight(BaseModel):
    """A notable response flagged while the survey is in progress."""

    type: str
    message: str
    question_id: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ResponsePattern(BaseModel):
    """Lightweight record of one response given by a known stakeholder type."""

    question_id: str
    stakeholder_type: str
    response_value: Any = None
    score: Optional[float] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class SectionMetrics(BaseModel):
    responses: int = 0
    # Percentage of the section's questions answered, 0-100
    completion_rate: float = 0.0
    average_score: float = 0.0
    key_insights: List[Insight] = []


class StakeholderMetrics(BaseModel):
    response_patterns: List[ResponsePattern] = []


class MetricsSnapshot(BaseModel):
    """All running metrics for one session."""

    funnel: Dict[str, float] = Field(default_factory=_empty_funnel)
    sections: Dict[str, SectionMetrics] = {}
    stakeholders: Dict[str, StakeholderMetrics] = {}

    def to_record(self) -> dict[str, Any]:
        """Flatten into the ``funnel`` / ``section_<id>`` / ``stakeholder_<type>`` record."""
        record: dict[str, Any] = {"funnel": dict(self.funnel)}
        for section_id, metrics in self.sections.items():
            record[f"{SECTION_PREFIX}{section_id}"] = metrics.model_dump(mode="json")
        for stakeholder, metrics in self.stakeholders.items():
            record[f"{STAKEHOLDER_PREFIX}{stakeholder}"] = metrics.model_dump(mode="json")
        return record

    @classmethod
    def from_record(cls, data: dict[str, Any] | None) -> "MetricsSnapshot":
        """Rebuild a snapshot from its flat record; unknown keys are ignored."""
        snapshot = cls()
        if not data:
            return snapshot
        for key, value in data.items():
            if key == "funnel":
                snapshot.funnel.update({k: float(v) for k, v in value.items()})
            elif key.startswith(SECTION_PREFIX):
                snapshot.sections[key[len(SECTION_PREFIX):]] = SectionMetrics.model_validate(value)
            elif key.startswith(STAKEHOLDER_PREFIX):
                snapshot.stakeholders[key[len(STAKEHOLDER_PREFIX):]] = (
                    StakeholderMetrics.model_validate(value)
                )
        return snapshot


# =====================================================================
# Final assessment
# =====================================================================

class AwarenessMetrics(BaseModel):
    unaided_recall_score: float = 0.0
    aided_recall_score: float = 0.0
    unaided_response: Optional[str] = None


class EngagementMetrics(BaseModel):
    interest_score: float = 0.0
    interest_level: Optional[str] = None


class ConversionMetrics(BaseModel):
    nps_score: float = 0.0
    # promoter / passive / detractor; an unanswered rating counts as 0 (detractor)
    nps_category: Optional[str] = None


class StrategicMetrics(BaseModel):
    overall_impression: Optional[str] = None
    impression_score: float = 0.0


class FinalAssessment(BaseModel):
    """Category scores taken from the catalog's representative questions."""

    awareness: AwarenessMetrics = Field(default_factory=AwarenessMetrics)
    engagement: EngagementMetrics = Field(default_factory=EngagementMetrics)
    conversion: ConversionMetrics = Field(default_factory=ConversionMetrics)
    strategic: StrategicMetrics = Field(default_factory=StrategicMetrics)
    stakeholder_type: Optional[str] = None
    calculated_at: datetime = Field(default_factory=_utcnow)

    def category_scores(self) -> dict[str, float]:
        """Scores ranked by the executive summary, in tie-break order."""
        return {
            "awareness": self.awareness.unaided_recall_score,
            "engagement": self.engagement.interest_score,
            "conversion": self.conversion.nps_score,
        }


# =====================================================================
# Reports
# =====================================================================

class ExecutiveSummary(BaseModel):
    overall_score: int = 0
    key_strength: str
    primary_opportunity: str
    stakeholder_alignment: str


class Recommendation(BaseModel):
    area: str
    recommendation: str
    priority: str
    impact: str


class DetailedAnalysis(BaseModel):
    funnel_analysis: Dict[str, Any] = {}
    segment_analysis: Dict[str, Any] = {}
    comparative_analysis: Dict[str, Any] = {}


class VisualizationData(BaseModel):
    funnel_data: List[Dict[str, Any]] = []
    sentiment_data: Dict[str, Any] = {}
    comparative_data: List[Dict[str, Any]] = []


class FinalReport(BaseModel):
    session_id: str
    executive_summary: ExecutiveSummary
    detailed_analysis: DetailedAnalysis
    recommendations: List[Recommendation]
    visualizations: VisualizationData
    generated_at: datetime = Field(default_factory=_utcnow)


class StakeholderInsight(BaseModel):
    stakeholder_type: str
    pattern_count: int
    latest_pattern: ResponsePattern


class ProgressReport(BaseModel):
    """Mid-survey summary derived from the real-time snapshot."""

    overall_progress: float = 0.0
    funnel_health: str
    key_strengths: List[str] = []
    improvement_areas: List[str] = []
    stakeholder_insights: List[StakeholderInsight] = []
