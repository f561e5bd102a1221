"""
SLA Aggregate Reporting
========================

Statistical summaries over many persisted SLA metric records: compliance
rates, average durations and first-response percentiles, for both time
systems.

Records whose metrics are unavailable count as unknown everywhere; they
never appear as compliant or breached.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from chat_sla.config import SLAMetricName, TimeSystem, SLA_METRICS, TIME_SYSTEMS
from chat_sla.sla.domain.entities import Compliance, SLAMetricsRecord
from chat_sla.sla.domain.value_objects import SLATargets

REPORTED_PERCENTILES = (50, 90, 95)


def percentile(values: Sequence[float], p: float) -> float:
    """
    Percentile by linear interpolation between order statistics.

    index = p/100 * (n - 1); the result interpolates between the values at
    floor(index) and ceil(index). Empty input returns 0.
    """
    if not values:
        return 0.0

    ordered = sorted(values)
    index = (p / 100) * (len(ordered) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)

    if lower == upper:
        return float(ordered[lower])

    weight = index - lower
    return ordered[lower] * (1 - weight) + ordered[upper] * weight


@dataclass(frozen=True)
class ComplianceRate:
    """Compliance percentage over known verdicts only."""
    rate: float
    total: int
    compliant: int
    breached: int

    def to_dict(self) -> dict:
        return {
            "rate": self.rate,
            "total": self.total,
            "compliant": self.compliant,
            "breached": self.breached,
        }


def compliance_rate(flags: Iterable[Compliance]) -> ComplianceRate:
    """compliant / (compliant + breached) * 100; 0.0 when nothing is known."""
    compliant = 0
    breached = 0
    for flag in flags:
        if flag is Compliance.COMPLIANT:
            compliant += 1
        elif flag is Compliance.BREACHED:
            breached += 1

    total = compliant + breached
    rate = (compliant / total) * 100 if total else 0.0
    return ComplianceRate(rate=rate, total=total, compliant=compliant, breached=breached)


def average(values: Iterable[Optional[float]]) -> Optional[float]:
    """Mean over known values, None when none are known."""
    known = [value for value in values if value is not None]
    if not known:
        return None
    return sum(known) / len(known)


@dataclass(frozen=True)
class PercentileSummary:
    p50: float
    p90: float
    p95: float

    @classmethod
    def of(cls, values: Sequence[float]) -> "PercentileSummary":
        p50, p90, p95 = (percentile(values, p) for p in REPORTED_PERCENTILES)
        return cls(p50=p50, p90=p90, p95=p95)

    def to_dict(self) -> dict:
        return {"p50": self.p50, "p90": self.p90, "p95": self.p95}


@dataclass(frozen=True)
class TimeSystemSummary:
    """Aggregates for one time system."""
    time_system: TimeSystem
    overall: ComplianceRate
    by_metric: Dict[SLAMetricName, ComplianceRate]
    average_durations: Dict[SLAMetricName, Optional[float]]
    first_response_percentiles: PercentileSummary
    meets_target: bool

    def to_dict(self) -> dict:
        return {
            "overall_compliance": self.overall.to_dict(),
            "compliance_by_metric": {
                metric.value: rate.to_dict() for metric, rate in self.by_metric.items()
            },
            "average_durations": {
                metric.value: value for metric, value in self.average_durations.items()
            },
            "first_response_percentiles": self.first_response_percentiles.to_dict(),
            "meets_target": self.meets_target,
        }


@dataclass(frozen=True)
class AggregateReport:
    """Summary of a filtered set of conversations."""
    total_conversations: int
    unavailable_conversations: int
    wall_clock: TimeSystemSummary
    business_hours: TimeSystemSummary

    def for_system(self, time_system: TimeSystem) -> TimeSystemSummary:
        if TimeSystem(time_system) is TimeSystem.BUSINESS_HOURS:
            return self.business_hours
        return self.wall_clock

    def to_dict(self) -> dict:
        return {
            "total_conversations": self.total_conversations,
            "unavailable_conversations": self.unavailable_conversations,
            "wall_clock": self.wall_clock.to_dict(),
            "business_hours": self.business_hours.to_dict(),
        }


@dataclass(frozen=True)
class TrendComparison:
    """
    Overall compliance of the equal-length period preceding the query.

    Only the previous rates are reported; the size of the change is left
    to the presentation layer.
    """
    previous_wall_clock: ComplianceRate
    previous_business_hours: ComplianceRate
    previous_total_conversations: int = 0

    def to_dict(self) -> dict:
        return {
            "previous_wall_clock_compliance": self.previous_wall_clock.to_dict(),
            "previous_business_hours_compliance": self.previous_business_hours.to_dict(),
            "previous_total_conversations": self.previous_total_conversations,
        }


class AggregateMetricsReporter:
    """Pure aggregation over persisted records."""

    @staticmethod
    def summarize_time_system(
        records: List[SLAMetricsRecord],
        time_system: TimeSystem,
        targets: SLATargets
    ) -> TimeSystemSummary:
        overall = compliance_rate(record.overall(time_system) for record in records)

        by_metric = {
            metric: compliance_rate(record.compliance(time_system, metric) for record in records)
            for metric in SLA_METRICS
        }

        average_durations = {
            metric: average(record.duration(time_system, metric) for record in records)
            for metric in SLA_METRICS
        }

        first_responses = [
            value for value in (
                record.duration(time_system, SLAMetricName.FIRST_RESPONSE) for record in records
            )
            if value is not None
        ]

        return TimeSystemSummary(
            time_system=time_system,
            overall=overall,
            by_metric=by_metric,
            average_durations=average_durations,
            first_response_percentiles=PercentileSummary.of(first_responses),
            meets_target=overall.total > 0 and overall.rate >= targets.compliance_target,
        )

    @classmethod
    def summarize(
        cls,
        records: Iterable[SLAMetricsRecord],
        targets: SLATargets
    ) -> AggregateReport:
        """Summarize records in both time systems."""
        records = list(records)
        summaries = {
            time_system: cls.summarize_time_system(records, time_system, targets)
            for time_system in TIME_SYSTEMS
        }
        return AggregateReport(
            total_conversations=len(records),
            unavailable_conversations=sum(1 for record in records if not record.sla_available),
            wall_clock=summaries[TimeSystem.WALL_CLOCK],
            business_hours=summaries[TimeSystem.BUSINESS_HOURS],
        )

    @staticmethod
    def trend(previous_records: Iterable[SLAMetricsRecord]) -> TrendComparison:
        """Overall compliance of the preceding period, in both time systems."""
        previous_records = list(previous_records)
        return TrendComparison(
            previous_wall_clock=compliance_rate(
                record.overall(TimeSystem.WALL_CLOCK) for record in previous_records
            ),
            previous_business_hours=compliance_rate(
                record.overall(TimeSystem.BUSINESS_HOURS) for record in previous_records
            ),
            previous_total_conversations=len(previous_records),
        )
