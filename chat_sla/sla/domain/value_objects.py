"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared between concurrent
calculations.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Dict, FrozenSet, Iterable, List, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from chat_sla.config import SLAMetricName, SLA_METRICS
from chat_sla.core import ConfigurationException


def parse_time_of_day(value: str) -> time:
    """Parse an "HH:mm" 24-hour string into a time of day."""
    try:
        return datetime.strptime(value, "%H:%M").time()
    except (TypeError, ValueError):
        raise ConfigurationException(
            f"Invalid time of day {value!r}, expected HH:mm",
            {"value": value}
        )


@dataclass(frozen=True)
class OfficeHoursConfig:
    """
    Office-hours calendar configuration.

    `end` is exclusive. Weekdays use ISO numbering (1=Monday, 7=Sunday).
    Construction fails with ConfigurationException when the calendar
    could never contain a business instant or the timezone is unknown.
    """

    start: time
    end: time
    working_days: FrozenSet[int]
    timezone: str
    _zone: ZoneInfo = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        """Validate the calendar and resolve its timezone."""
        if isinstance(self.start, str):
            object.__setattr__(self, "start", parse_time_of_day(self.start))
        if isinstance(self.end, str):
            object.__setattr__(self, "end", parse_time_of_day(self.end))
        object.__setattr__(self, "working_days", frozenset(self.working_days))

        if self.start >= self.end:
            raise ConfigurationException(
                "Office hours start must be before end",
                {"start": self.start.isoformat(), "end": self.end.isoformat()}
            )

        if not self.working_days:
            raise ConfigurationException("Office hours need at least one working day")

        invalid_days = sorted(d for d in self.working_days if not 1 <= d <= 7)
        if invalid_days:
            raise ConfigurationException(
                "Working days must be between 1 (Monday) and 7 (Sunday)",
                {"invalid_days": invalid_days}
            )

        try:
            zone = ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError, TypeError):
            raise ConfigurationException(
                f"Unknown timezone {self.timezone!r}",
                {"timezone": self.timezone}
            )
        object.__setattr__(self, "_zone", zone)

    @classmethod
    def from_strings(
        cls,
        start: str = "09:00",
        end: str = "17:00",
        working_days: Iterable[int] = (1, 2, 3, 4, 5),
        timezone: str = "America/New_York"
    ) -> "OfficeHoursConfig":
        """Build a config from HH:mm strings."""
        return cls(
            start=parse_time_of_day(start),
            end=parse_time_of_day(end),
            working_days=frozenset(working_days),
            timezone=timezone,
        )

    @property
    def zone(self) -> ZoneInfo:
        """Resolved IANA zone."""
        return self._zone

    def is_working_day(self, iso_weekday: int) -> bool:
        """Check whether a weekday (1=Monday) is a working day."""
        return iso_weekday in self.working_days

    def open_at(self, local_date: date) -> datetime:
        """Office-open instant (UTC) of a local calendar date."""
        return datetime.combine(local_date, self.start, tzinfo=self._zone).astimezone(timezone.utc)

    def close_at(self, local_date: date) -> datetime:
        """Office-close instant (UTC) of a local calendar date."""
        return datetime.combine(local_date, self.end, tzinfo=self._zone).astimezone(timezone.utc)

    def window_for(self, local_date: date) -> Tuple[datetime, datetime]:
        """Open and close instants (UTC) of a local calendar date."""
        return self.open_at(local_date), self.close_at(local_date)

    def to_dict(self) -> dict:
        """Serialize using the HH:mm wire format."""
        return {
            "start": self.start.strftime("%H:%M"),
            "end": self.end.strftime("%H:%M"),
            "working_days": sorted(self.working_days),
            "timezone": self.timezone,
        }


@dataclass(frozen=True)
class SLATargets:
    """
    SLA targets in seconds, plus the compliance-rate target percentage.

    The compliance target is only consulted by the aggregate reporter.
    """

    pickup_target: float = 120
    first_response_target: float = 300
    avg_response_target: float = 300
    resolution_target: float = 7200
    compliance_target: float = 95.0

    def __post_init__(self):
        """Reject negative thresholds and out-of-range percentages."""
        for metric in SLA_METRICS:
            if self.target_for(metric) < 0:
                raise ConfigurationException(
                    f"SLA target for {metric.value} cannot be negative",
                    {"metric": metric.value, "target": self.target_for(metric)}
                )
        if not 0 <= self.compliance_target <= 100:
            raise ConfigurationException(
                "Compliance target must be a percentage between 0 and 100",
                {"compliance_target": self.compliance_target}
            )

    def target_for(self, metric: SLAMetricName) -> float:
        """Target in seconds for one metric."""
        return {
            SLAMetricName.PICKUP: self.pickup_target,
            SLAMetricName.FIRST_RESPONSE: self.first_response_target,
            SLAMetricName.AVG_RESPONSE: self.avg_response_target,
            SLAMetricName.RESOLUTION: self.resolution_target,
        }[SLAMetricName(metric)]

    def to_dict(self) -> dict:
        return {
            "pickup_target": self.pickup_target,
            "first_response_target": self.first_response_target,
            "avg_response_target": self.avg_response_target,
            "resolution_target": self.resolution_target,
            "compliance_target": self.compliance_target,
        }


@dataclass(frozen=True)
class EnabledMetrics:
    """Which metrics participate in the overall verdict."""

    pickup: bool = True
    first_response: bool = True
    avg_response: bool = True
    resolution: bool = True

    def is_enabled(self, metric: SLAMetricName) -> bool:
        return {
            SLAMetricName.PICKUP: self.pickup,
            SLAMetricName.FIRST_RESPONSE: self.first_response,
            SLAMetricName.AVG_RESPONSE: self.avg_response,
            SLAMetricName.RESOLUTION: self.resolution,
        }[SLAMetricName(metric)]

    def enabled(self) -> List[SLAMetricName]:
        """Enabled metrics in canonical order."""
        return [metric for metric in SLA_METRICS if self.is_enabled(metric)]

    def to_dict(self) -> Dict[str, bool]:
        return {
            "pickup": self.pickup,
            "first_response": self.first_response,
            "avg_response": self.avg_response,
            "resolution": self.resolution,
        }


@dataclass(frozen=True)
class SLAConfiguration:
    """
    Everything a calculation batch needs, read once per batch.
    """

    office_hours: OfficeHoursConfig
    targets: SLATargets
    enabled_metrics: EnabledMetrics

    def to_dict(self) -> dict:
        return {
            "office_hours": self.office_hours.to_dict(),
            "targets": self.targets.to_dict(),
            "enabled_metrics": self.enabled_metrics.to_dict(),
        }


# ========== YAML document schema ==========

class OfficeHoursDocument(BaseModel):
    """Office hours section of the SLA YAML file."""
    start: str = Field(default="09:00", description="Open time, HH:mm")
    end: str = Field(default="17:00", description="Close time, HH:mm (exclusive)")
    working_days: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    timezone: str = Field(default="America/New_York", description="IANA timezone")


class TargetsDocument(BaseModel):
    """Targets section of the SLA YAML file (seconds / percent)."""
    pickup: float = 120
    first_response: float = 300
    avg_response: float = 300
    resolution: float = 7200
    compliance: float = 95.0


class EnabledMetricsDocument(BaseModel):
    """Enabled metrics section of the SLA YAML file."""
    pickup: bool = True
    first_response: bool = True
    avg_response: bool = False
    resolution: bool = False


class SLAConfigDocument(BaseModel):
    """
    SLA configuration loaded from YAML.

    Example:
        office_hours:
          start: "09:00"
          end: "17:00"
          working_days: [1, 2, 3, 4, 5]
          timezone: America/New_York
        targets:
          pickup: 120
          first_response: 300
        enabled_metrics:
          pickup: true
          first_response: true
    """
    office_hours: OfficeHoursDocument = Field(default_factory=OfficeHoursDocument)
    targets: TargetsDocument = Field(default_factory=TargetsDocument)
    enabled_metrics: EnabledMetricsDocument = Field(default_factory=EnabledMetricsDocument)

    def to_domain(self) -> SLAConfiguration:
        """Convert to validated domain value objects."""
        return SLAConfiguration(
            office_hours=OfficeHoursConfig.from_strings(
                start=self.office_hours.start,
                end=self.office_hours.end,
                working_days=self.office_hours.working_days,
                timezone=self.office_hours.timezone,
            ),
            targets=SLATargets(
                pickup_target=self.targets.pickup,
                first_response_target=self.targets.first_response,
                avg_response_target=self.targets.avg_response,
                resolution_target=self.targets.resolution,
                compliance_target=self.targets.compliance,
            ),
            enabled_metrics=EnabledMetrics(
                pickup=self.enabled_metrics.pickup,
                first_response=self.enabled_metrics.first_response,
                avg_response=self.enabled_metrics.avg_response,
                resolution=self.enabled_metrics.resolution,
            ),
        )


def configuration_from_settings(app_settings) -> SLAConfiguration:
    """Build the fallback configuration from application settings."""
    return SLAConfiguration(
        office_hours=OfficeHoursConfig.from_strings(
            start=app_settings.office_hours_start,
            end=app_settings.office_hours_end,
            working_days=app_settings.office_hours_working_days,
            timezone=app_settings.office_hours_timezone,
        ),
        targets=SLATargets(
            pickup_target=app_settings.sla_pickup_target,
            first_response_target=app_settings.sla_first_response_target,
            avg_response_target=app_settings.sla_avg_response_target,
            resolution_target=app_settings.sla_resolution_target,
            compliance_target=app_settings.sla_compliance_target,
        ),
        enabled_metrics=EnabledMetrics(
            pickup=app_settings.sla_enable_pickup,
            first_response=app_settings.sla_enable_first_response,
            avg_response=app_settings.sla_enable_avg_response,
            resolution=app_settings.sla_enable_resolution,
        ),
    )
