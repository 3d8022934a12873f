"""Application wiring – connectivity check and the long-running sync loop."""

from __future__ import annotations

import logging

from sync_album.clients.immich import ImmichClient, ImmichError
from sync_album.config import Config
from sync_album.scheduler import Scheduler

logger = logging.getLogger(__name__)


class App:
    def __init__(self, config: Config, immich: ImmichClient, scheduler: Scheduler):
        self._config = config
        self._immich = immich
        self._scheduler = scheduler

    def connect(self) -> None:
        """Verify Immich is reachable with the API key; exit the process if not."""
        try:
            user_id, name = self._immich.get_user()
        except ImmichError as exc:
            logger.error("Failed to connect to Immich: %s", exc)
            raise SystemExit(1) from exc
        logger.info("Connected to Immich as %s (%s)", name, user_id)

    def run(self, once: bool = False) -> None:
        """Connect, then sync forever (or a single pass with *once*)."""
        logger.info("Starting shared album sync")
        self.connect()
        if not self._config.albums:
            logger.warning("No albums configured")
            return
        if once:
            self._scheduler.run_pending(force=True)
            return
        self._scheduler.run()
