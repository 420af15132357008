"""ScoringEngine — real-time funnel metrics and the final report.

Two cooperating computations:

  (a) Incremental metrics, updated by :meth:`ScoringEngine.process_response`
      after every answer:
        - funnel stage score: running maximum of per-response scores for the
          stage tagged on the question's section
        - section metrics: response counter, completion percentage (rescanned
          from the store), running average score, last few insights
        - stakeholder metrics: recent response patterns per stakeholder type
      The whole snapshot is saved as metric type ``real_time`` each time.

  (b) Completion, run once:
        - :meth:`compute_final_assessment` scores the representative questions
          and saves metric type ``final_assessment``
        - :meth:`generate_final_report` builds the executive summary,
          recommendations and visualisation payload and saves ``final_report``

Reporting never blocks the survey: storage failures and missing data are
logged and degrade to zeroed scores and the generic recommendation.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Awaitable, Optional, TypeVar

from pydantic import ValidationError

from survey_flow.catalog import QuestionCatalog
from survey_flow.constants import (
    AWARENESS_THRESHOLD,
    CONVERSION_THRESHOLD,
    DEFAULT_STAGE_SCORE,
    ENGAGEMENT_THRESHOLD,
    FUNNEL_HEALTH_BANDS,
    FUNNEL_HEALTH_FLOOR,
    FUNNEL_STAGES,
    IMPROVEMENT_SCORE,
    INSIGHT_TEXT_LENGTH,
    MAX_SCORE,
    MAX_SECTION_INSIGHTS,
    MAX_STAKEHOLDER_PATTERNS,
    METRIC_FINAL_ASSESSMENT,
    METRIC_FINAL_REPORT,
    METRIC_REAL_TIME,
    MIN_SCORE,
    NPS_PASSIVE_MIN,
    NPS_PROMOTER_MIN,
    STRENGTH_SCORE,
)
from survey_flow.errors import SurveyError
from survey_flow.models.question import Question
from survey_flow.models.report import (
    AwarenessMetrics,
    ConversionMetrics,
    DetailedAnalysis,
    EngagementMetrics,
    ExecutiveSummary,
    FinalAssessment,
    FinalReport,
    Insight,
    MetricsSnapshot,
    ProgressReport,
    Recommendation,
    ResponsePattern,
    SectionMetrics,
    StakeholderInsight,
    StakeholderMetrics,
    StrategicMetrics,
    VisualizationData,
)
from survey_flow.models.response import MatrixAnswer, Response
from survey_flow.models.scoring import (
    MappingScoring,
    MatrixScoring,
    RatingScoring,
    SelectionScoring,
    WordCountScoring,
)
from survey_flow.models.session import Session
from survey_flow.store import ResponseStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Category -> threshold and the recommendation emitted below it.
RECOMMENDATION_RULES: list[tuple[str, float, Recommendation]] = [
    (
        "awareness",
        AWARENESS_THRESHOLD,
        Recommendation(
            area="Awareness",
            recommendation="Increase campaign frequency and diversify media channels",
            priority="High",
            impact="Direct impact on brand recognition",
        ),
    ),
    (
        "engagement",
        ENGAGEMENT_THRESHOLD,
        Recommendation(
            area="Engagement",
            recommendation="Enhance content creativity and emotional appeal",
            priority="Medium",
            impact="Improved audience connection",
        ),
    ),
    (
        "conversion",
        CONVERSION_THRESHOLD,
        Recommendation(
            area="Advocacy",
            recommendation="Implement referral programs and ambassador initiatives",
            priority="High",
            impact="Increased word-of-mouth marketing",
        ),
    ),
]

GENERIC_RECOMMENDATION = Recommendation(
    area="General",
    recommendation="Continue current optimization strategy with regular assessment",
    priority="Medium",
    impact="Sustained performance improvement",
)

DEFAULT_STRENGTH = "Strong engagement across metrics"
DEFAULT_OPPORTUNITY = "Continue optimization efforts"

# Funnel stage -> label, for the progress report
STRENGTH_LABELS = {
    "awareness": "Strong brand awareness and recall",
    "interest": "High engagement and interest generation",
    "advocacy": "Excellent advocacy potential",
}
IMPROVEMENT_LABELS = {
    "consideration": "Need to improve consideration conversion",
    "action": "Action conversion requires optimization",
}
DEFAULT_STRENGTHS = ["Solid foundation across all metrics"]
DEFAULT_IMPROVEMENTS = ["Continue current optimization efforts"]


def clamp_score(score: float) -> float:
    return max(MIN_SCORE, min(MAX_SCORE, score))


def nps_category(rating: Optional[float]) -> Optional[str]:
    """promoter (>= 9), passive (>= 7) or detractor; None without a rating."""
    if rating is None:
        return None
    if rating >= NPS_PROMOTER_MIN:
        return "promoter"
    if rating >= NPS_PASSIVE_MIN:
        return "passive"
    return "detractor"


def funnel_health(funnel: dict[str, float]) -> str:
    """Band the mean funnel stage score (excellent / good / fair / poor)."""
    if not funnel:
        return "unknown"
    average = sum(funnel.values()) / len(funnel)
    for floor, label in FUNNEL_HEALTH_BANDS:
        if average >= floor:
            return label
    return FUNNEL_HEALTH_FLOOR


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def round_half_up(value: float) -> int:
    """Round to the nearest integer; .5 rounds up (12.5 -> 13)."""
    return math.floor(value + 0.5)


def _nps_rating(response: Optional[Response]) -> float:
    """Rating given on the conversion question; missing or non-numeric counts as 0."""
    rating = _as_number(response.scalar) if response is not None else None
    return MIN_SCORE if rating is None else rating


def _pick_category(scores: dict[str, float], *, highest: bool) -> str:
    """Highest (or lowest) scoring category; the later one wins a tie."""
    best = None
    for category, score in scores.items():
        if best is None or (score >= scores[best] if highest else score <= scores[best]):
            best = category
    return best


def _raw_value(response: Response) -> Any:
    """The answer in plain form, for pattern records."""
    if isinstance(response.payload, MatrixAnswer):
        return dict(response.payload.matrix)
    scalar = response.scalar
    return scalar if scalar is not None else response.answer_set


class ScoringEngine:
    """Running metrics and final report for one session at a time."""

    def __init__(self, catalog: QuestionCatalog, store: ResponseStore) -> None:
        self._catalog = catalog
        self._store = store
        self._session_id: Optional[str] = None
        self._snapshot = MetricsSnapshot()

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    async def initialize(self, session_id: str) -> None:
        """Bind to ``session_id`` and load any previously saved real-time metrics."""
        self._session_id = session_id
        self._snapshot = MetricsSnapshot()
        record = await self._absorb(
            "load metrics", self._store.get_analytics(session_id, METRIC_REAL_TIME)
        )
        if record is None:
            logger.debug("No existing metrics for session %s, starting fresh", session_id)
            return
        try:
            self._snapshot = MetricsSnapshot.from_record(record.data)
        except ValidationError as exc:
            logger.warning("Discarding unreadable metrics for session %s: %s", session_id, exc)

    # ------------------------------------------------------------------
    # Per-question scoring
    # ------------------------------------------------------------------

    def score_response(self, question: Question, response: Optional[Response]) -> float:
        """Score one response on 0-10 using the question's scoring rule.

        A missing response scores 0; a question without a rule scores
        ``DEFAULT_STAGE_SCORE``.
        """
        if response is None:
            return MIN_SCORE
        rule = question.scoring
        if rule is None:
            return DEFAULT_STAGE_SCORE

        if isinstance(rule, WordCountScoring):
            text = response.scalar if isinstance(response.scalar, str) else ""
            score = len(text.split()) * rule.points_per_word
        elif isinstance(rule, MappingScoring):
            score = rule.table.get(response.trigger_value or "", MIN_SCORE)
        elif isinstance(rule, SelectionScoring):
            score = MAX_SCORE if response.answer_set else MIN_SCORE
        elif isinstance(rule, RatingScoring):
            rating = _as_number(response.scalar)
            score = MIN_SCORE if rating is None else rating / rule.scale_max * MAX_SCORE
        elif isinstance(rule, MatrixScoring):
            score = self._score_matrix(question, response, rule)
        else:
            logger.warning("Unknown scoring rule on %s: %s", question.id, rule)
            score = DEFAULT_STAGE_SCORE
        return clamp_score(score)

    @staticmethod
    def _score_matrix(question: Question, response: Response, rule: MatrixScoring) -> float:
        """Mean level across all matrix rows (unanswered rows count 0), scaled to 10."""
        if not isinstance(response.payload, MatrixAnswer):
            return MIN_SCORE
        chosen = response.payload.matrix
        rows = question.rows or list(chosen)
        if not rows:
            return MIN_SCORE
        total = sum(rule.levels.get(chosen.get(row, ""), 0.0) for row in rows)
        top = max(rule.levels.values())
        return total / (len(rows) * top) * MAX_SCORE

    # ------------------------------------------------------------------
    # Real-time metrics
    # ------------------------------------------------------------------

    async def process_response(
        self,
        response: Response,
        stakeholder_type: Optional[str] = None,
    ) -> MetricsSnapshot:
        """Fold one response into the running metrics and save the snapshot.

        ``stakeholder_type`` defaults to the type stored on the session.
        Returns a copy of the updated snapshot.
        """
        if self._session_id != response.session_id:
            await self.initialize(response.session_id)

        question = self._catalog.find(response.question_id)
        if question is None:
            logger.warning("Ignoring response to unknown question %s", response.question_id)
            return self.current_metrics()

        score = self.score_response(question, response)
        self._update_funnel(question, score)
        await self._update_section(question, response, score)

        if stakeholder_type is None:
            session = await self._absorb("load session", self._store.get_session(response.session_id))
            stakeholder_type = session.stakeholder_type if session else None
        if stakeholder_type:
            self._update_stakeholder(response, stakeholder_type, score)

        await self._absorb(
            "save metrics",
            self._store.save_analytics(
                response.session_id, METRIC_REAL_TIME, self._snapshot.to_record()
            ),
        )
        return self.current_metrics()

    def _update_funnel(self, question: Question, score: float) -> None:
        stage = self._catalog.funnel_stage_of(question.id)
        if stage is None:
            return
        funnel = self._snapshot.funnel
        funnel[stage] = max(funnel.get(stage, MIN_SCORE), score)

    async def _update_section(self, question: Question, response: Response, score: float) -> None:
        metrics = self._snapshot.sections.setdefault(question.section, SectionMetrics())
        metrics.responses += 1
        metrics.average_score += (score - metrics.average_score) / metrics.responses
        metrics.completion_rate = await self._section_completion(question.section)

        insight = self._extract_insight(question, response)
        if insight is not None:
            metrics.key_insights.append(insight)
            metrics.key_insights = metrics.key_insights[-MAX_SECTION_INSIGHTS:]

    async def _section_completion(self, section_id: str) -> float:
        """Percentage of the section's questions with a stored response."""
        members = self._catalog.section(section_id).question_ids
        if not members:
            return 0.0
        stored = await self._absorb("load responses", self._store.get_session_responses(self._session_id))
        answered = {r.question_id for r in stored or []}
        return sum(1 for qid in members if qid in answered) / len(members) * 100

    @staticmethod
    def _extract_insight(question: Question, response: Response) -> Optional[Insight]:
        rule = question.scoring
        if isinstance(rule, WordCountScoring):
            text = response.scalar if isinstance(response.scalar, str) else ""
            if len(text) > INSIGHT_TEXT_LENGTH:
                return Insight(
                    type="strong_recall",
                    message="Strong unaided recall demonstrated",
                    question_id=question.id,
                )
        elif isinstance(rule, MappingScoring):
            value = response.trigger_value
            if value in rule.table and rule.table[value] >= rule.top_score > 0:
                return Insight(
                    type="top_choice",
                    message=f"Highest-scoring answer selected: {value}",
                    question_id=question.id,
                )
        return None

    def _update_stakeholder(self, response: Response, stakeholder_type: str, score: float) -> None:
        metrics = self._snapshot.stakeholders.setdefault(stakeholder_type, StakeholderMetrics())
        metrics.response_patterns.append(
            ResponsePattern(
                question_id=response.question_id,
                stakeholder_type=stakeholder_type,
                response_value=_raw_value(response),
                score=score,
            )
        )
        metrics.response_patterns = metrics.response_patterns[-MAX_STAKEHOLDER_PATTERNS:]

    def current_metrics(self) -> MetricsSnapshot:
        return self._snapshot.model_copy(deep=True)

    def progress_report(self) -> ProgressReport:
        """Summarise the running metrics without touching the store."""
        snapshot = self._snapshot
        sections = list(snapshot.sections.values())
        overall = sum(s.completion_rate for s in sections) / len(sections) if sections else 0.0
        funnel = snapshot.funnel

        strengths = [
            label for stage, label in STRENGTH_LABELS.items()
            if funnel.get(stage, MIN_SCORE) >= STRENGTH_SCORE
        ]
        improvements = [
            label for stage, label in IMPROVEMENT_LABELS.items()
            if funnel.get(stage, MIN_SCORE) < IMPROVEMENT_SCORE
        ]
        insights = [
            StakeholderInsight(
                stakeholder_type=stakeholder,
                pattern_count=len(metrics.response_patterns),
                latest_pattern=metrics.response_patterns[-1],
            )
            for stakeholder, metrics in snapshot.stakeholders.items()
            if metrics.response_patterns
        ]
        return ProgressReport(
            overall_progress=overall,
            funnel_health=funnel_health(funnel),
            key_strengths=strengths or list(DEFAULT_STRENGTHS),
            improvement_areas=improvements or list(DEFAULT_IMPROVEMENTS),
            stakeholder_insights=insights,
        )

    # ------------------------------------------------------------------
    # Final assessment and report
    # ------------------------------------------------------------------

    async def compute_final_assessment(self, session_id: Optional[str] = None) -> FinalAssessment:
        """Score the catalog's representative questions and save the assessment.

        Unanswered representative questions score 0.
        """
        session_id = session_id or self._session_id
        stored = await self._absorb("load responses", self._store.get_session_responses(session_id))
        responses = {r.question_id: r for r in stored or []}
        session = await self._absorb("load session", self._store.get_session(session_id))
        ids = self._catalog.report

        def pick(qid: Optional[str]) -> tuple[Optional[Response], float]:
            if qid is None:
                return None, MIN_SCORE
            response = responses.get(qid)
            return response, self.score_response(self._catalog.get(qid), response)

        unaided, unaided_score = pick(ids.awareness)
        _, aided_score = pick(ids.aided_awareness)
        interest, interest_score = pick(ids.engagement)
        nps, nps_score = pick(ids.conversion)
        impression, impression_score = pick(ids.strategic)

        assessment = FinalAssessment(
            awareness=AwarenessMetrics(
                unaided_recall_score=unaided_score,
                aided_recall_score=aided_score,
                unaided_response=unaided.trigger_value if unaided else None,
            ),
            engagement=EngagementMetrics(
                interest_score=interest_score,
                interest_level=interest.trigger_value if interest else None,
            ),
            conversion=ConversionMetrics(
                nps_score=nps_score,
                nps_category=nps_category(_nps_rating(nps)),
            ),
            strategic=StrategicMetrics(
                overall_impression=impression.trigger_value if impression else None,
                impression_score=impression_score,
            ),
            stakeholder_type=session.stakeholder_type if session else None,
        )
        await self._absorb(
            "save final assessment",
            self._store.save_analytics(
                session_id, METRIC_FINAL_ASSESSMENT, assessment.model_dump(mode="json")
            ),
        )
        logger.info(
            "Final assessment for %s: awareness=%.1f engagement=%.1f conversion=%.1f",
            session_id,
            unaided_score,
            interest_score,
            nps_score,
        )
        return assessment

    async def generate_final_report(self, session_id: Optional[str] = None) -> FinalReport:
        """Build the final report from the stored final assessment and save it.

        Without a stored assessment every score is 0, the summary uses
        default wording and only the generic recommendation is emitted.
        """
        session_id = session_id or self._session_id
        session = await self._absorb("load session", self._store.get_session(session_id))
        record = await self._absorb(
            "load final assessment",
            self._store.get_analytics(session_id, METRIC_FINAL_ASSESSMENT),
        )
        assessment: Optional[FinalAssessment] = None
        if record is not None:
            try:
                assessment = FinalAssessment.model_validate(record.data)
            except ValidationError as exc:
                logger.warning("Unreadable final assessment for %s: %s", session_id, exc)

        report = FinalReport(
            session_id=session_id,
            executive_summary=self._executive_summary(session, assessment),
            detailed_analysis=self._detailed_analysis(session, assessment),
            recommendations=self._recommendations(assessment),
            visualizations=self._visualizations(assessment),
        )
        await self._absorb(
            "save final report",
            self._store.save_analytics(session_id, METRIC_FINAL_REPORT, report.model_dump(mode="json")),
        )
        return report

    @staticmethod
    def _executive_summary(
        session: Optional[Session], assessment: Optional[FinalAssessment]
    ) -> ExecutiveSummary:
        alignment = (
            f"Aligned with {session.stakeholder_type} perspective"
            if session is not None and session.stakeholder_type
            else "General perspective"
        )
        if assessment is None:
            return ExecutiveSummary(
                overall_score=0,
                key_strength=DEFAULT_STRENGTH,
                primary_opportunity=DEFAULT_OPPORTUNITY,
                stakeholder_alignment=alignment,
            )

        scores = assessment.category_scores()
        # On equal scores the later category wins
        return ExecutiveSummary(
            overall_score=round_half_up((scores["awareness"] + scores["conversion"]) / 2),
            key_strength=_pick_category(scores, highest=True),
            primary_opportunity=_pick_category(scores, highest=False),
            stakeholder_alignment=alignment,
        )

    @staticmethod
    def _recommendations(assessment: Optional[FinalAssessment]) -> list[Recommendation]:
        if assessment is None:
            return [GENERIC_RECOMMENDATION.model_copy()]
        scores = assessment.category_scores()
        recommendations = [
            rec.model_copy()
            for category, threshold, rec in RECOMMENDATION_RULES
            if scores[category] < threshold
        ]
        return recommendations or [GENERIC_RECOMMENDATION.model_copy()]

    def _detailed_analysis(
        self, session: Optional[Session], assessment: Optional[FinalAssessment]
    ) -> DetailedAnalysis:
        funnel = dict(self._snapshot.funnel)
        scores = assessment.category_scores() if assessment else {}
        return DetailedAnalysis(
            funnel_analysis={
                "stages": funnel,
                "strongest_stage": max(funnel, key=funnel.__getitem__) if funnel else None,
                "weakest_stage": min(funnel, key=funnel.__getitem__) if funnel else None,
                "health": funnel_health(funnel),
            },
            segment_analysis={
                "stakeholder_type": session.stakeholder_type if session else None,
                "responses_by_section": {
                    sid: metrics.responses for sid, metrics in self._snapshot.sections.items()
                },
            },
            comparative_analysis={
                category: {
                    "score": scores.get(category, MIN_SCORE),
                    "threshold": threshold,
                    "gap": scores.get(category, MIN_SCORE) - threshold,
                }
                for category, threshold, _ in RECOMMENDATION_RULES
            },
        )

    def _visualizations(self, assessment: Optional[FinalAssessment]) -> VisualizationData:
        funnel = self._snapshot.funnel
        scores = assessment.category_scores() if assessment else {}
        return VisualizationData(
            funnel_data=[
                {"stage": stage, "score": funnel.get(stage, MIN_SCORE)} for stage in FUNNEL_STAGES
            ],
            sentiment_data={
                "interest_level": assessment.engagement.interest_level if assessment else None,
                "nps_category": assessment.conversion.nps_category if assessment else None,
                "overall_impression": (
                    assessment.strategic.overall_impression if assessment else None
                ),
            },
            comparative_data=[
                {"category": category, "score": scores.get(category, MIN_SCORE), "threshold": threshold}
                for category, threshold, _ in RECOMMENDATION_RULES
            ],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _absorb(self, what: str, call: Awaitable[T]) -> Optional[T]:
        """Await a store call; log and return None on SDK errors."""
        try:
            return await call
        except SurveyError as exc:
            logger.warning("Scoring: %s failed for session %s: %s", what, self._session_id, exc)
            return None
