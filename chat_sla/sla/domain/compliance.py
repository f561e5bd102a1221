"""
SLA Compliance Aggregator
==========================

Turns durations into per-metric compliance flags and folds the enabled
flags into one overall verdict per time system.

Unknown is a first-class value: a missing timestamp is neither a breach
nor a success, and an unknown enabled metric makes the overall verdict
unknown as well.
"""

from typing import Iterable, List, Mapping, Optional

from chat_sla.config import SLAMetricName, TimeSystem, SLA_METRICS
from chat_sla.sla.domain.entities import Compliance, SLAMetrics
from chat_sla.sla.domain.value_objects import EnabledMetrics


class ComplianceAggregator:
    """
    Stateless compliance logic.

    Pure functions for comparing durations to targets.
    """

    @staticmethod
    def calculate_sla_compliance(actual: Optional[float], target: float) -> Compliance:
        """
        Compare an actual duration with its target.

        The boundary is inclusive: a duration equal to the target complies.

        Args:
            actual: Measured duration in seconds, None when unknown
            target: Threshold in seconds

        Returns:
            UNKNOWN when actual is unknown, otherwise COMPLIANT or BREACHED
        """
        if actual is None:
            return Compliance.UNKNOWN
        return Compliance.COMPLIANT if actual <= target else Compliance.BREACHED

    @staticmethod
    def fold_overall_compliance(
        flags: Mapping[SLAMetricName, Compliance],
        enabled: EnabledMetrics
    ) -> Compliance:
        """
        Fold per-metric flags into the overall verdict.

        Only enabled metrics participate. No enabled metric, or any
        enabled metric unknown, gives UNKNOWN. All compliant gives
        COMPLIANT, anything else BREACHED.
        """
        considered = [
            flags.get(metric, Compliance.UNKNOWN)
            for metric in enabled.enabled()
        ]

        if not considered:
            return Compliance.UNKNOWN

        if any(flag is Compliance.UNKNOWN for flag in considered):
            return Compliance.UNKNOWN

        if all(flag is Compliance.COMPLIANT for flag in considered):
            return Compliance.COMPLIANT

        return Compliance.BREACHED

    @staticmethod
    def breach_types(
        metrics: Optional[SLAMetrics],
        time_system: TimeSystem,
        metric_names: Iterable[SLAMetricName] = SLA_METRICS
    ) -> List[str]:
        """Names of metrics whose flag is BREACHED in one time system."""
        if metrics is None:
            return []
        system_metrics = metrics.for_system(time_system)
        return [
            metric.value for metric in metric_names
            if system_metrics.compliance(metric) is Compliance.BREACHED
        ]


# Module-level aliases
calculate_sla_compliance = ComplianceAggregator.calculate_sla_compliance
fold_overall_compliance = ComplianceAggregator.fold_overall_compliance
breach_types = ComplianceAggregator.breach_types
