"""
Model extraction detection from query logs.
"""

from backend_ciphergenix.theft.analyzer import (
    QueryRecord,
    ResponseSimilarity,
    TheftAssessment,
    TheftPatternAnalyzer,
    risk_level_for,
)

__all__ = [
    "QueryRecord",
    "ResponseSimilarity",
    "TheftAssessment",
    "TheftPatternAnalyzer",
    "risk_level_for",
]
