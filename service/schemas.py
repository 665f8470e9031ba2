from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field

class RecommendationItem(BaseModel):
    content_id: str
    score: float
    reasons: list[str] = Field(default_factory=list)
    source: str
    explanation: Optional[str] = None

class RecommendationSet(BaseModel):
    """
    One served recommendation list.

    algorithm: the strategy that produced it ("default" for cold-start users)
    """
    user_id: str
    recommendations: list[RecommendationItem]
    algorithm: str
    generated_at: datetime

class InteractionAck(BaseModel):
    success: bool

class SimilarityScore(BaseModel):
    content_id: str
    similarity: float = Field(..., ge=0.0, le=1.0)

class ExperimentTicket(BaseModel):
    """
    Returned as soon as an experiment starts; the test itself runs in the background.
    """
    test_id: str
    estimated_completion: datetime

class ExperimentReport(BaseModel):
    """
    Status of an experiment.

    results: algorithm -> metric -> {mean, std, count}
    winner: set only when the experiment completed with enough data
    """
    test_id: str
    status: str
    algorithms: list[str]
    metrics: list[str]
    primary_metric: str
    start_time: datetime
    estimated_completion: datetime
    finished_at: Optional[datetime] = None
    winner: Optional[str] = None
    results: dict[str, dict[str, dict[str, float]]] = Field(default_factory=dict)
    observation_counts: dict[str, dict[str, int]] = Field(default_factory=dict)
    group_sizes: dict[str, int] = Field(default_factory=dict)
    error_message: Optional[str] = None

class AnalyticsReport(BaseModel):
    summary: dict[str, Any]
    performance_by_algorithm: dict[str, dict[str, Any]]
    trends: list[dict[str, Any]]
