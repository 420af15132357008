"""Scoring and reporting constants shared across the SDK.

These values are referenced by the scoring engine and the report builder.
Thresholds can be overridden via environment variables so that deployments
can tune the recommendation rules without code changes.
"""

import os

# Marketing funnel, in order.  Each stage carries a 0-10 score.
FUNNEL_STAGES: list[str] = ["awareness", "interest", "consideration", "action", "advocacy"]

# Every stage/category score is clamped to this range.
MIN_SCORE = 0.0
MAX_SCORE = 10.0

# Score given to a response whose question declares no scoring rule.
DEFAULT_STAGE_SCORE = 5.0

# Recommendation thresholds: a category scoring below its threshold emits
# one recommendation.  Overridable via *_THRESHOLD env vars.
AWARENESS_THRESHOLD = float(os.getenv("AWARENESS_THRESHOLD", "5"))
ENGAGEMENT_THRESHOLD = float(os.getenv("ENGAGEMENT_THRESHOLD", "5"))
CONVERSION_THRESHOLD = float(os.getenv("CONVERSION_THRESHOLD", "7"))

# NPS bands on the 0-10 recommendation rating.
NPS_PROMOTER_MIN = 9
NPS_PASSIVE_MIN = 7

# Section insights keep only the most recent N entries.
MAX_SECTION_INSIGHTS = int(os.getenv("MAX_SECTION_INSIGHTS", "5"))
# Stakeholder response patterns keep only the most recent N entries.
MAX_STAKEHOLDER_PATTERNS = int(os.getenv("MAX_STAKEHOLDER_PATTERNS", "100"))

# A free-text recall answer longer than this (characters) is an insight.
INSIGHT_TEXT_LENGTH = int(os.getenv("INSIGHT_TEXT_LENGTH", "50"))

# Funnel health bands on the mean stage score, checked top-down.
FUNNEL_HEALTH_BANDS: list[tuple[float, str]] = [
    (7.5, "excellent"),
    (5.0, "good"),
    (2.5, "fair"),
]
FUNNEL_HEALTH_FLOOR = "poor"

# Progress-report strength / improvement cut-offs on funnel stage scores.
STRENGTH_SCORE = 7.0
IMPROVEMENT_SCORE = 5.0

# Metric types under which analytics snapshots are stored.
METRIC_REAL_TIME = "real_time"
METRIC_FINAL_ASSESSMENT = "final_assessment"
METRIC_FINAL_REPORT = "final_report"
