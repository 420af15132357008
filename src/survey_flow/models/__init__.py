from .question import (
    OPTION_TYPES,
    Option,
    Question,
    QuestionLogic,
    QuestionType,
    ReportQuestions,
    Section,
)
from .report import (
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
from .response import (
    FreeText,
    MatrixAnswer,
    RankedSequence,
    Response,
    ResponsePayload,
    SingleValue,
    ValueList,
    build_payload,
    payload_adapter,
)
from .rule import (
    Condition,
    ContinueAfter,
    JumpTo,
    RouteToRange,
    RuleAction,
    RuleKey,
    SkipRule,
    normalise_trigger,
)
from .scoring import (
    MappingScoring,
    MatrixScoring,
    RatingScoring,
    ScoringRule,
    SelectionScoring,
    WordCountScoring,
)
from .session import (
    AnalyticsRecord,
    ExportMetadata,
    Progress,
    Session,
    SectionProgress,
    SessionExport,
)

__all__ = [
    # question
    "OPTION_TYPES",
    "Option",
    "Question",
    "QuestionLogic",
    "QuestionType",
    "ReportQuestions",
    "Section",
    # rule
    "Condition",
    "ContinueAfter",
    "JumpTo",
    "RouteToRange",
    "RuleAction",
    "RuleKey",
    "SkipRule",
    "normalise_trigger",
    # scoring
    "MappingScoring",
    "MatrixScoring",
    "RatingScoring",
    "ScoringRule",
    "SelectionScoring",
    "WordCountScoring",
    # response
    "FreeText",
    "MatrixAnswer",
    "RankedSequence",
    "Response",
    "ResponsePayload",
    "SingleValue",
    "ValueList",
    "build_payload",
    "payload_adapter",
    # session
    "AnalyticsRecord",
    "ExportMetadata",
    "Progress",
    "Session",
    "SectionProgress",
    "SessionExport",
    # report
    "AwarenessMetrics",
    "ConversionMetrics",
    "DetailedAnalysis",
    "EngagementMetrics",
    "ExecutiveSummary",
    "FinalAssessment",
    "FinalReport",
    "Insight",
    "MetricsSnapshot",
    "ProgressReport",
    "Recommendation",
    "ResponsePattern",
    "SectionMetrics",
    "StakeholderInsight",
    "StakeholderMetrics",
    "StrategicMetrics",
    "VisualizationData",
]
