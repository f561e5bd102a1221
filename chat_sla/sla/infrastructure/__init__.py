"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA analytics:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer and YAML configuration loading
- External: Config file watcher and background scheduler
"""

from chat_sla.sla.infrastructure.models import ConversationModel, MessageModel, SLAMetricsModel
from chat_sla.sla.infrastructure.repositories import (
    SQLAlchemyConversationRepository,
    SQLAlchemySLAMetricsRepository,
    YAMLConfigProvider,
    load_sla_configuration,
)

__all__ = [
    "ConversationModel",
    "MessageModel",
    "SLAMetricsModel",
    "SQLAlchemyConversationRepository",
    "SQLAlchemySLAMetricsRepository",
    "YAMLConfigProvider",
    "load_sla_configuration",
]
