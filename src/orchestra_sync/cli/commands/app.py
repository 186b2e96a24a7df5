"""Application context shared by CLI commands."""

import logging
from pathlib import Path
from typing import Optional

from ...config import Config, get_config
from ...core.sync import SyncOrchestrator
from ...database import DatabaseService

logger = logging.getLogger(__name__)


class OrchestraSyncApp:
    """Lazily builds the services a command needs."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        """Initialize application.

        Args:
            db_path: Database file overriding the configured one
        """
        self.config: Config = get_config()
        self.db_path = Path(db_path) if db_path else self.config.database_path
        self._db_service: Optional[DatabaseService] = None
        self._orchestrator: Optional[SyncOrchestrator] = None

    @property
    def db_service(self) -> DatabaseService:
        if self._db_service is None:
            self._db_service = DatabaseService(db_path=self.db_path)
        return self._db_service

    @property
    def orchestrator(self) -> SyncOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = SyncOrchestrator(self.db_service, config=self.config)
        return self._orchestrator

    def close(self) -> None:
        """Release the worker pool and database connections."""
        if self._orchestrator is not None:
            self._orchestrator.shutdown()
        if self._db_service is not None:
            self._db_service.close()
        logger.debug("Application closed")
