"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Following YAGNI - only what's needed.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Dict, List, Optional, Literal
from datetime import datetime, timedelta

from chat_sla.config import VALID_CHANNELS


# ========== Type Aliases for Literals ==========
TimeSystemStr = Literal["wall_clock", "business_hours"]
BreachTypeStr = Literal["pickup", "first_response", "avg_response", "resolution"]
BreachSortStr = Literal[
    "opened_at", "closed_at", "time_to_pickup",
    "first_response_time", "avg_response_time", "resolution_time"
]
SortOrderStr = Literal["asc", "desc"]
ComplianceStr = Literal["compliant", "breached", "unknown"]


# ========== Query DTOs ==========

class ConversationFilter(BaseModel):
    """Subset of conversations selected for reporting."""
    start_date: datetime = Field(..., description="Inclusive lower bound on opened_at")
    end_date: datetime = Field(..., description="Upper bound on opened_at")
    include_end: bool = Field(True, description="Whether end_date itself is in range")
    agent_ids: List[str] = Field(default_factory=list, description="Restrict to these agents")
    channel: Optional[str] = Field(None, description="Restrict to one messaging channel")

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v: Optional[str]) -> Optional[str]:
        """Ensure channel is a known messaging provider."""
        if v is not None and v not in VALID_CHANNELS:
            raise ValueError(f"channel must be one of {VALID_CHANNELS}")
        return v

    @model_validator(mode="after")
    def validate_range(self) -> "ConversationFilter":
        """Ensure the date range is not inverted."""
        if self.start_date > self.end_date:
            raise ValueError("start_date must be before end_date")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end_date - self.start_date

    def previous_period(self) -> "ConversationFilter":
        """Equal-length period ending just before this one starts."""
        return self.model_copy(update={
            "start_date": self.start_date - self.duration,
            "end_date": self.start_date,
            "include_end": False,
        })


class RecalculationQuery(BaseModel):
    """Which conversations to recompute."""
    start_date: Optional[datetime] = Field(None, description="Range start (default: look-back window)")
    end_date: Optional[datetime] = Field(None, description="Range end (default: now)")
    conversation_id: Optional[str] = Field(None, min_length=1, description="Recompute one conversation only")
    batch_size: int = Field(default=500, ge=1, le=2000, description="Conversations per batch")


class BreachQuery(BaseModel):
    """Query parameters for the breaches listing."""
    filter: ConversationFilter
    time_system: TimeSystemStr = Field(default="wall_clock", description="Verdict the listing is based on")
    breach_type: Optional[BreachTypeStr] = Field(None, description="Only conversations breaching this metric")
    sort_by: BreachSortStr = Field(default="opened_at")
    sort_order: SortOrderStr = Field(default="desc")
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


# ========== Response DTOs ==========

class TimeSystemMetricsResponse(BaseModel):
    """SLA metrics of one conversation in one time system."""
    pickup_time: Optional[float] = Field(None, description="Seconds to first agent assignment")
    first_response_time: Optional[float] = Field(None, description="Seconds to first agent message")
    avg_response_time: Optional[float] = Field(None, description="Mean customer-to-agent reply gap")
    resolution_time: Optional[float] = Field(None, description="Seconds to close")
    pickup_sla: ComplianceStr = "unknown"
    first_response_sla: ComplianceStr = "unknown"
    avg_response_sla: ComplianceStr = "unknown"
    resolution_sla: ComplianceStr = "unknown"
    overall_sla: ComplianceStr = "unknown"


class ConversationSLAResponse(BaseModel):
    """SLA state of a single conversation."""
    conversation_id: str
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    agent_id: Optional[str] = None
    channel: Optional[str] = None
    sla_available: bool = Field(..., description="False when the calculation failed")
    wall_clock: Optional[TimeSystemMetricsResponse] = None
    business_hours: Optional[TimeSystemMetricsResponse] = None
    calculated_at: Optional[datetime] = None
    message: Optional[str] = Field(None, description="Shown when SLA data is unavailable")


class ComplianceRateResponse(BaseModel):
    rate: float = Field(..., description="Percentage over known verdicts, 0 when none")
    total: int
    compliant: int
    breached: int


class PercentilesResponse(BaseModel):
    p50: float
    p90: float
    p95: float


class TimeSystemSummaryResponse(BaseModel):
    """Aggregates for one time system."""
    overall_compliance: ComplianceRateResponse
    compliance_by_metric: Dict[str, ComplianceRateResponse]
    average_durations: Dict[str, Optional[float]]
    first_response_percentiles: PercentilesResponse
    meets_target: bool


class TrendResponse(BaseModel):
    """Overall compliance of the preceding equal-length period."""
    previous_start_date: datetime
    previous_end_date: datetime
    previous_wall_clock_compliance: ComplianceRateResponse
    previous_business_hours_compliance: ComplianceRateResponse
    previous_total_conversations: int


class DateRangeResponse(BaseModel):
    start_date: datetime
    end_date: datetime


class MetricsResponse(BaseModel):
    """Response model for the aggregate SLA metrics endpoint."""
    date_range: DateRangeResponse
    total_conversations: int
    unavailable_conversations: int = Field(..., description="Conversations whose SLA data is unavailable")
    wall_clock: TimeSystemSummaryResponse
    business_hours: TimeSystemSummaryResponse
    targets: Dict[str, float]
    enabled_metrics: Dict[str, bool]
    trend: Optional[TrendResponse] = None


class BreachResponse(BaseModel):
    """A breached conversation with the metrics it breached."""
    conversation_id: str
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    agent_id: Optional[str] = None
    channel: Optional[str] = None
    wall_clock: TimeSystemMetricsResponse
    business_hours: TimeSystemMetricsResponse
    breach_types: List[str] = Field(default_factory=list, description="Breached metrics, wall-clock")
    breach_types_bh: List[str] = Field(default_factory=list, description="Breached metrics, business hours")


class PaginationResponse(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool


class BreachListResponse(BaseModel):
    """Response model for the breaches listing."""
    breaches: List[BreachResponse]
    pagination: PaginationResponse


class RecalculationResponse(BaseModel):
    """Response model for a recalculation run."""
    success: bool
    processed: int = Field(..., description="Conversations recomputed and stored")
    failed: int = Field(..., description="Conversations stored as unavailable")
    total: int
    batches: int
    duration_ms: int
    enabled_metrics: Dict[str, bool]
    errors: List[str] = Field(default_factory=list, description="First error messages, if any")


class ConfigResponse(BaseModel):
    """Current SLA configuration."""
    office_hours: Dict[str, object]
    targets: Dict[str, float]
    enabled_metrics: Dict[str, bool]
