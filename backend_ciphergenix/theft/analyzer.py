"""
Model extraction ("theft") pattern scoring over query logs.

Signals per client:
- frequency: queries per second over the analysis window, normalized by the
  highest frequency considered legitimate
- diversity: distinct queries / total queries (systematic probing repeats little)
- correlation: response similarity from an injected collaborator (0.0 without one)

theft_probability = 0.4 * frequency_norm + 0.3 * (1 - diversity) + 0.3 * correlation
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Protocol, Sequence, runtime_checkable

import pandas as pd

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.config import Settings, get_settings
from backend_ciphergenix.detection.models import ThreatLevel, clamp01

logger = get_logger(__name__)

FREQUENCY_WEIGHT = 0.4
DIVERSITY_WEIGHT = 0.3
CORRELATION_WEIGHT = 0.3

_RISK_BOUNDS = (
    (0.8, ThreatLevel.CRITICAL),
    (0.6, ThreatLevel.HIGH),
    (0.4, ThreatLevel.MEDIUM),
)

_COLUMNS = ["client_id", "model_id", "query_hash", "timestamp"]


@dataclass(frozen=True)
class QueryRecord:
    """One logged inference query. timestamp is a datetime or epoch seconds."""

    client_id: str
    model_id: str
    query_hash: str
    timestamp: datetime | float
    response: Any = None


@runtime_checkable
class ResponseSimilarity(Protocol):
    """Scores how strongly a client's responses correlate with systematic extraction, in [0, 1]."""

    def correlation(self, records: Sequence[QueryRecord]) -> float:
        ...


@dataclass(frozen=True)
class TheftAssessment:
    query_count: int
    frequency: float
    diversity: float
    response_correlation: float
    theft_probability: float
    risk_level: ThreatLevel
    client_id: str | None = None
    model_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "theft_probability", clamp01(self.theft_probability))

    def to_dict(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "model_id": self.model_id,
            "query_count": self.query_count,
            "frequency": round(self.frequency, 6),
            "diversity": round(self.diversity, 6),
            "response_correlation": round(self.response_correlation, 6),
            "theft_probability": round(self.theft_probability, 6),
            "risk_level": self.risk_level.value,
        }


def risk_level_for(probability: float) -> ThreatLevel:
    for bound, level in _RISK_BOUNDS:
        if probability > bound:
            return level
    return ThreatLevel.LOW


def records_to_frame(records: Iterable[QueryRecord]) -> pd.DataFrame:
    """Query log as a DataFrame with UTC timestamps."""
    rows = [
        {
            "client_id": r.client_id,
            "model_id": r.model_id,
            "query_hash": r.query_hash,
            "timestamp": r.timestamp,
        }
        for r in records
    ]
    if not rows:
        return pd.DataFrame(columns=_COLUMNS)
    df = pd.DataFrame(rows, columns=_COLUMNS)
    if pd.api.types.is_numeric_dtype(df["timestamp"]):
        df["timestamp"] = pd.to_datetime(df["timestamp"], unit="s", utc=True)
    else:
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df


class TheftPatternAnalyzer:
    def __init__(
        self,
        settings: Settings | None = None,
        similarity: ResponseSimilarity | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.similarity = similarity

    def _correlation(self, records: Sequence[QueryRecord]) -> float:
        if self.similarity is None:
            return 0.0
        try:
            return clamp01(self.similarity.correlation(records))
        except Exception as e:
            logger.warning("theft_similarity_failed", error=str(e))
            return 0.0

    def _score_frame(
        self,
        df: pd.DataFrame,
        records: Sequence[QueryRecord],
        client_id: str | None = None,
        model_id: str | None = None,
    ) -> TheftAssessment:
        count = len(df)
        if count == 0:
            return TheftAssessment(0, 0.0, 0.0, 0.0, 0.0, ThreatLevel.LOW, client_id, model_id)
        span = (df["timestamp"].max() - df["timestamp"].min()).total_seconds()
        window = max(self.settings.theft_window_seconds, float(span))
        frequency = count / window
        frequency_norm = min(1.0, frequency / self.settings.theft_max_frequency)
        diversity = df["query_hash"].nunique() / count
        correlation = self._correlation(records)
        probability = clamp01(
            FREQUENCY_WEIGHT * frequency_norm
            + DIVERSITY_WEIGHT * (1.0 - diversity)
            + CORRELATION_WEIGHT * correlation
        )
        return TheftAssessment(
            query_count=count,
            frequency=frequency,
            diversity=diversity,
            response_correlation=correlation,
            theft_probability=probability,
            risk_level=risk_level_for(probability),
            client_id=client_id,
            model_id=model_id,
        )

    def analyze(self, records: Sequence[QueryRecord]) -> TheftAssessment:
        """Score a query log as one stream. Empty log: zero assessment, LOW."""
        df = records_to_frame(records)
        client = df["client_id"].iloc[0] if len(df) and df["client_id"].nunique() == 1 else None
        model = df["model_id"].iloc[0] if len(df) and df["model_id"].nunique() == 1 else None
        assessment = self._score_frame(df, records, client, model)
        self._log(assessment)
        return assessment

    def analyze_by_client(self, records: Sequence[QueryRecord]) -> dict[str, TheftAssessment]:
        """One assessment per client_id."""
        df = records_to_frame(records)
        out: dict[str, TheftAssessment] = {}
        for client_id, group in df.groupby("client_id", sort=True):
            client_records = [r for r in records if r.client_id == client_id]
            model = group["model_id"].iloc[0] if group["model_id"].nunique() == 1 else None
            out[str(client_id)] = self._score_frame(group, client_records, str(client_id), model)
            self._log(out[str(client_id)])
        return out

    def is_alert(self, assessment: TheftAssessment) -> bool:
        return assessment.theft_probability > self.settings.theft_alert_threshold

    def _log(self, assessment: TheftAssessment) -> None:
        if self.is_alert(assessment):
            logger.warning("theft_pattern_detected", **assessment.to_dict())
        else:
            logger.debug("theft_pattern_scored", **assessment.to_dict())
