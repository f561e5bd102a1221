"""
SLA Application Layer
======================

Application layer for SLA analytics.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from chat_sla.sla.application.dto import (
    ConversationFilter,
    RecalculationQuery,
    BreachQuery,
    TimeSystemMetricsResponse,
    ConversationSLAResponse,
    MetricsResponse,
    BreachListResponse,
    RecalculationResponse,
    ConfigResponse,
)
from chat_sla.sla.application.services import (
    SLAMetricsService,
    SLAReportingService,
    RecalculationResult,
    IConversationRepository,
    ISLAMetricsRepository,
    ISLAConfigProvider,
)

__all__ = [
    # DTOs
    "ConversationFilter",
    "RecalculationQuery",
    "BreachQuery",
    "TimeSystemMetricsResponse",
    "ConversationSLAResponse",
    "MetricsResponse",
    "BreachListResponse",
    "RecalculationResponse",
    "ConfigResponse",
    # Services
    "SLAMetricsService",
    "SLAReportingService",
    "RecalculationResult",
    # Interfaces
    "IConversationRepository",
    "ISLAMetricsRepository",
    "ISLAConfigProvider",
]
