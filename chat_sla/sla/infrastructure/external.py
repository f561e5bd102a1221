"""
SLA External Service Integrations
==================================

External services for SLA analytics:
- YAML config file watcher (hot-reload)
- APScheduler for background recalculation
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from chat_sla.core import ConfigurationException
from chat_sla.shared.infrastructure.logging import SLAEventLogger, get_logger
from chat_sla.sla.application import ISLAConfigProvider
from chat_sla.sla.domain import SLAConfiguration
from chat_sla.sla.infrastructure.repositories import load_sla_configuration

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"Config file changed: {event.src_path}")
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA configuration manager with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the service. An invalid initial file fails fast;
    an invalid reload keeps the previous configuration.
    """

    def __init__(self, event_logger: Optional[SLAEventLogger] = None):
        self._config: Optional[SLAConfiguration] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None
        self._events = event_logger or SLAEventLogger()

    def load(self, path: Path) -> SLAConfiguration:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: If the file is invalid
        """
        self._path = Path(path)
        config = load_sla_configuration(self._path)
        with self._lock:
            self._config = config
        self._events.log_config_change(
            "SLA configuration loaded",
            path=str(self._path),
            configuration=config.to_dict(),
        )
        return config

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = load_sla_configuration(self._path)
        except ConfigurationException as e:
            logger.error(
                f"Failed to reload SLA config, keeping previous configuration: {e.message}",
                extra={"path": str(self._path), **e.details}
            )
            return False

        with self._lock:
            previous = self._config
            self._config = new_config

        self._events.log_config_change(
            "SLA configuration reloaded",
            path=str(self._path),
            configuration=new_config.to_dict(),
        )
        if previous is not None and previous.office_hours != new_config.office_hours:
            self._events.log_business_hours_change(
                previous.office_hours.to_dict(), new_config.office_hours.to_dict()
            )
        return True

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching if the file doesn't exist or inotify is unavailable.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                f"Config file doesn't exist, skipping file watch: {self._path}. "
                "Using settings defaults."
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info(f"Started watching config file: {self._path}")
        except OSError as e:
            logger.warning(
                f"File watching not available, using static config: {e}"
            )
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> SLAConfiguration:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config

    def get_configuration(self) -> SLAConfiguration:
        """Get current SLA configuration."""
        return self.config


class SLAScheduler:
    """
    Wrapper for APScheduler for background SLA recalculation.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(self, interval_seconds: int = 900):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[None]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_recalculation",
            name="SLA Recalculation Job",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
