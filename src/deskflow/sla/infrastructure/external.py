"""
SLA External Integrations
==========================

Process-level services for the SLA module:
- YAML team directory (default policy and business hours per team) with hot reload
- APScheduler job running the breach scanner
"""

import asyncio
import threading
from pathlib import Path
from typing import Dict, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import BaseModel, Field, ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from deskflow.core import ConfigurationException
from deskflow.shared.infrastructure.logging import get_logger, log_latency
from deskflow.sla.application.services import BreachScanner, ITeamSlaDirectory

logger = get_logger(__name__)


class TeamSlaSettings(BaseModel):
    """SLA settings of one team."""
    default_policy_id: Optional[str] = Field(None, description="Policy applied on assignment")
    business_hours: Optional[str] = Field(None, description="Business hours schedule name")


class TeamSlaConfig(BaseModel):
    """
    Contents of the team SLA YAML file.

    teams:
      billing:
        default_policy_id: 6f0c...
        business_hours: emea
    """
    teams: Dict[str, TeamSlaSettings] = Field(default_factory=dict)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for team SLA config file changes."""

    def __init__(self, config_manager: "TeamSlaConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Team SLA config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()

    on_created = on_modified


class TeamSlaConfigManager(ITeamSlaDirectory):
    """
    Thread-safe team SLA directory with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the service. A reload that fails validation keeps
    the previous configuration.
    """

    def __init__(self):
        self._config: Optional[TeamSlaConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> TeamSlaConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: when the file exists but is invalid
        """
        self._path = Path(path)
        try:
            self._config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError) as e:
            raise ConfigurationException(f"Invalid team SLA config {self._path}: {e}")
        return self._config

    def _load_from_file(self, path: Path) -> TeamSlaConfig:
        if not path.exists():
            logger.warning("Team SLA config file not found, no team defaults", extra={"path": str(path)})
            return TeamSlaConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return TeamSlaConfig.model_validate(data)

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.error("Failed to reload team SLA config", extra={"error": str(e)})
            return False

        with self._lock:
            self._config = new_config
        logger.info("Team SLA configuration reloaded", extra={"teams": len(new_config.teams)})
        return True

    def start_watching(self) -> None:
        """Start watching the configuration file's directory for changes."""
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.parent.exists():
            logger.info("Config directory doesn't exist, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                ConfigFileHandler(self, self._path),
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching team SLA config", extra={"path": str(self._path)})
        except OSError as e:
            # inotify unavailable (e.g. some containers)
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> TeamSlaConfig:
        if self._config is None:
            raise RuntimeError("Team SLA configuration not loaded")
        return self._config

    def _team(self, team_id: str) -> Optional[TeamSlaSettings]:
        with self._lock:
            config = self._config
        if config is None:
            return None
        return config.teams.get(str(team_id))

    def get_default_policy_id(self, team_id: str) -> Optional[str]:
        team = self._team(team_id)
        return team.default_policy_id if team else None

    def get_business_hours_name(self, team_id: str) -> Optional[str]:
        team = self._team(team_id)
        return team.business_hours if team else None


class BreachScanScheduler:
    """
    Wrapper for APScheduler running the breach scanner periodically.

    Ticks never overlap; ``stop`` waits for an in-flight tick.
    """

    def __init__(self, scanner: BreachScanner, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scanner = scanner
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._tick_lock = asyncio.Lock()
        self._running = False

    async def tick(self) -> int:
        async with self._tick_lock:
            try:
                with log_latency(logger, "breach_scan"):
                    return await self._scanner.scan_once()
            except Exception as e:
                logger.error("Breach scan tick failed", extra={"error": str(e)}, exc_info=True)
                return 0

    async def start(self) -> None:
        if self._running:
            logger.warning("Breach scan scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.interval_seconds,
            id="sla_breach_scan",
            name="SLA Breach Scan",
            misfire_grace_time=self.interval_seconds,
            coalesce=True,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("Breach scan scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        """Stop scheduling and wait for the current tick, if any."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        async with self._tick_lock:
            pass

        self._running = False
        logger.info("Breach scan scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
