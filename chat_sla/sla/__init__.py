"""
SLA Analytics Module
====================

Bounded Context for chat Service Level Agreement analytics.

Responsibilities:
- Measure pickup, first response, average response and resolution times
- Measure each in wall-clock time and in business hours
- Judge each metric against its target with three-valued compliance
- Persist per-conversation results and aggregate them for reporting
- Reload office hours and targets from YAML without a restart
"""

__version__ = "1.0.0"
