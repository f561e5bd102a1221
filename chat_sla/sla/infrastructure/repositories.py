"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from typing import List, Optional, Tuple
from datetime import datetime
from pathlib import Path

import yaml
from pydantic import ValidationError
from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chat_sla.config import MessageRole, SLAMetricName, TimeSystem, get_settings
from chat_sla.core import ConfigurationException, RepositoryException
from chat_sla.shared.infrastructure.logging import get_logger
from chat_sla.sla.application import (
    IConversationRepository, ISLAMetricsRepository, ISLAConfigProvider,
    ConversationFilter, BreachQuery,
)
from chat_sla.sla.domain import (
    ChatMessage, ConversationLifecycle, SLAConfigDocument, SLAConfiguration,
    SLAMetrics, SLAMetricsRecord, configuration_from_settings, metric_column_names,
)
from chat_sla.sla.infrastructure.models import ConversationModel, SLAMetricsModel

logger = get_logger(__name__)

_BREACH_FLAG_COLUMNS = {
    SLAMetricName.PICKUP: "pickup_sla",
    SLAMetricName.FIRST_RESPONSE: "first_response_sla",
    SLAMetricName.AVG_RESPONSE: "avg_response_sla",
    SLAMetricName.RESOLUTION: "resolution_sla",
}

_SORT_COLUMNS = {
    "opened_at": ConversationModel.opened_at,
    "closed_at": ConversationModel.closed_at,
    "time_to_pickup": "time_to_pickup",
    "first_response_time": "first_response_time",
    "avg_response_time": "avg_response_time",
    "resolution_time": "resolution_time",
}


def lifecycle_from_model(model: ConversationModel) -> ConversationLifecycle:
    """
    Convert a conversation row and its messages to a domain lifecycle.

    A row that cannot be converted (e.g. an unknown message role) becomes a
    lifecycle with `data_error` set, so one bad conversation does not fail
    the whole page it was read in.
    """
    try:
        messages = tuple(
            ChatMessage(role=MessageRole(message.role), at=message.timestamp)
            for message in model.messages
        )
        data_error = None
    except ValueError as e:
        logger.warning(
            "Unreadable conversation row",
            extra={"conversation_id": model.id, "error": str(e)}
        )
        messages = ()
        data_error = str(e)

    return ConversationLifecycle(
        conversation_id=model.id,
        opened_at=model.opened_at,
        first_agent_assigned_at=model.first_agent_assigned_at,
        closed_at=model.closed_at,
        messages=messages,
        agent_id=model.agent_id,
        channel=model.channel,
        data_error=data_error,
    )


def record_from_models(
    conversation: ConversationModel,
    metrics_model: Optional[SLAMetricsModel]
) -> SLAMetricsRecord:
    """Build a reporting record; failed calculations have no metrics."""
    metrics = None
    calculated_at = None
    error = None

    if metrics_model is not None:
        calculated_at = metrics_model.calculated_at
        error = metrics_model.error
        if error is None:
            metrics = SLAMetrics.from_columns({
                column: getattr(metrics_model, column) for column in metric_column_names()
            })

    return SLAMetricsRecord(
        conversation_id=conversation.id,
        opened_at=conversation.opened_at,
        closed_at=conversation.closed_at,
        agent_id=conversation.agent_id,
        channel=conversation.channel,
        metrics=metrics,
        calculated_at=calculated_at,
        error=error,
    )


class SQLAlchemyConversationRepository(IConversationRepository):
    """
    SQLAlchemy implementation of the conversation repository.

    Read-only: conversations are written by the ingestion pipeline.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_lifecycle(self, conversation_id: str) -> Optional[ConversationLifecycle]:
        """Get one conversation with its messages in chronological order."""
        stmt = select(ConversationModel).where(ConversationModel.id == conversation_id)
        result = await self._session.execute(stmt)
        model = result.unique().scalar_one_or_none()
        if model is None:
            return None
        return lifecycle_from_model(model)

    async def list_lifecycles(
        self,
        start_date: datetime,
        end_date: datetime,
        after_id: Optional[str] = None,
        limit: int = 500
    ) -> List[ConversationLifecycle]:
        """List one cursor page of conversations opened within the range."""
        stmt = select(ConversationModel).where(
            ConversationModel.opened_at >= start_date,
            ConversationModel.opened_at <= end_date,
        )
        if after_id is not None:
            stmt = stmt.where(ConversationModel.id > after_id)

        stmt = stmt.order_by(ConversationModel.id.asc()).limit(limit)

        result = await self._session.execute(stmt)
        return [lifecycle_from_model(model) for model in result.unique().scalars().all()]

    async def count(self, start_date: datetime, end_date: datetime) -> int:
        """Count conversations opened within the range."""
        stmt = select(func.count(ConversationModel.id)).where(
            ConversationModel.opened_at >= start_date,
            ConversationModel.opened_at <= end_date,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()


class SQLAlchemySLAMetricsRepository(ISLAMetricsRepository):
    """
    SQLAlchemy implementation of the SLA metrics repository.

    Each upsert writes every metric column of a conversation in a single
    flush, so readers never see a partially updated record.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _write(self, conversation_id: str, columns: dict) -> None:
        try:
            model = await self._session.get(SLAMetricsModel, conversation_id)
            if model is None:
                model = SLAMetricsModel(conversation_id=conversation_id)
                self._session.add(model)

            for column, value in columns.items():
                setattr(model, column, value)

            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(
                f"Failed to store SLA metrics for conversation {conversation_id}",
                {"conversation_id": conversation_id, "error": str(e)}
            )

    async def upsert_metrics(
        self,
        conversation_id: str,
        metrics: SLAMetrics,
        calculated_at: datetime
    ) -> None:
        """Insert or overwrite all metric columns of a conversation."""
        columns = metrics.to_columns()
        columns["calculated_at"] = calculated_at
        columns["error"] = None
        await self._write(conversation_id, columns)

    async def mark_unavailable(
        self,
        conversation_id: str,
        error: str,
        calculated_at: datetime
    ) -> None:
        """Clear every metric column and record the failure."""
        columns = dict.fromkeys(metric_column_names())
        columns["calculated_at"] = calculated_at
        columns["error"] = error
        await self._write(conversation_id, columns)

    async def get_record(self, conversation_id: str) -> Optional[SLAMetricsRecord]:
        """Get the stored record of one conversation (None if never computed)."""
        stmt = (
            select(ConversationModel, SLAMetricsModel)
            .join(SLAMetricsModel, SLAMetricsModel.conversation_id == ConversationModel.id)
            .where(ConversationModel.id == conversation_id)
        )
        result = await self._session.execute(stmt)
        row = result.unique().first()
        if row is None:
            return None
        return record_from_models(row[0], row[1])

    def _filter_conditions(self, conversation_filter: ConversationFilter) -> list:
        conditions = [ConversationModel.opened_at >= conversation_filter.start_date]
        if conversation_filter.include_end:
            conditions.append(ConversationModel.opened_at <= conversation_filter.end_date)
        else:
            conditions.append(ConversationModel.opened_at < conversation_filter.end_date)
        if conversation_filter.agent_ids:
            conditions.append(ConversationModel.agent_id.in_(conversation_filter.agent_ids))
        if conversation_filter.channel:
            conditions.append(ConversationModel.channel == conversation_filter.channel)
        return conditions

    async def fetch_records(self, conversation_filter: ConversationFilter) -> List[SLAMetricsRecord]:
        """All records matching the filter; conversations never computed have no metrics."""
        stmt = (
            select(ConversationModel, SLAMetricsModel)
            .outerjoin(SLAMetricsModel, SLAMetricsModel.conversation_id == ConversationModel.id)
            .where(and_(*self._filter_conditions(conversation_filter)))
        )
        result = await self._session.execute(stmt)
        return [record_from_models(conversation, metrics) for conversation, metrics in result.unique().all()]

    async def list_breaches(self, query: BreachQuery) -> Tuple[List[SLAMetricsRecord], int]:
        """One page of conversations whose overall verdict is breached."""
        suffix = "_bh" if query.time_system == TimeSystem.BUSINESS_HOURS.value else ""

        conditions = self._filter_conditions(query.filter)
        conditions.append(getattr(SLAMetricsModel, f"overall_sla{suffix}").is_(False))
        if query.breach_type:
            flag_column = _BREACH_FLAG_COLUMNS[SLAMetricName(query.breach_type)]
            conditions.append(getattr(SLAMetricsModel, f"{flag_column}{suffix}").is_(False))

        count_stmt = (
            select(func.count(ConversationModel.id))
            .join(SLAMetricsModel, SLAMetricsModel.conversation_id == ConversationModel.id)
            .where(and_(*conditions))
        )
        total = (await self._session.execute(count_stmt)).scalar_one()

        sort_column = _SORT_COLUMNS[query.sort_by]
        if isinstance(sort_column, str):
            sort_column = getattr(SLAMetricsModel, f"{sort_column}{suffix}")
        order = sort_column.asc() if query.sort_order == "asc" else sort_column.desc()

        stmt = (
            select(ConversationModel, SLAMetricsModel)
            .join(SLAMetricsModel, SLAMetricsModel.conversation_id == ConversationModel.id)
            .where(and_(*conditions))
            .order_by(order, ConversationModel.id.asc())
            .offset(query.offset)
            .limit(query.page_size)
        )
        result = await self._session.execute(stmt)
        records = [record_from_models(conversation, metrics) for conversation, metrics in result.unique().all()]
        return records, total


def load_sla_configuration(path: Path) -> SLAConfiguration:
    """
    Load SLA configuration from a YAML file.

    A missing file falls back to the application settings.

    Raises:
        ConfigurationException: If the file cannot be parsed or is invalid
    """
    if not path.exists():
        logger.warning(f"SLA config file not found: {path}, using settings defaults")
        return configuration_from_settings(get_settings())

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationException(f"SLA configuration in {path} must be a mapping")
        return SLAConfigDocument(**data).to_domain()
    except yaml.YAMLError as e:
        raise ConfigurationException(f"Invalid YAML in {path}", {"error": str(e)})
    except ValidationError as e:
        raise ConfigurationException(f"Invalid SLA configuration in {path}", {"error": str(e)})


class YAMLConfigProvider(ISLAConfigProvider):
    """
    SLA configuration provider that loads from YAML once.

    Used by scripts; the service uses SLAConfigManager for hot-reload.
    """

    def __init__(self, config_path: Path):
        self._config_path = Path(config_path)
        self._config = load_sla_configuration(self._config_path)

    def get_configuration(self) -> SLAConfiguration:
        """Get current SLA configuration."""
        return self._config

    def reload(self) -> None:
        """Reload configuration from file."""
        self._config = load_sla_configuration(self._config_path)
