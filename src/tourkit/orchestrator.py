from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from .browser import BrowserOptions, BrowserSession
from .config import TourkitConfig, TourkitSettings
from .dsl.model import TourFile, load_tour
from .runner import ROUTE_READY_EVENT, RunConfig, RunResult, TourRunner

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExecutionResult:
    tour: TourFile
    config: RunConfig
    result: RunResult


def run_directory(artifacts_dir: Path, tour_id: str) -> Path:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return artifacts_dir / tour_id / stamp


class ExecutionOrchestrator:
    """High-level runner that ties tour loading with a fresh browser session."""

    def __init__(
        self,
        config: TourkitConfig,
        settings: TourkitSettings,
        *,
        options: BrowserOptions | None = None,
        route_ready: bool = True,
        session_factory: Callable[[BrowserOptions | None], BrowserSession] = BrowserSession,
    ) -> None:
        self._config = config
        self._settings = settings
        self._options = options or BrowserOptions(headless=settings.headless)
        self._route_ready = route_ready
        self._session_factory = session_factory

    def build_run_config(self, output_dir: Path) -> RunConfig:
        ready_event = None
        if self._route_ready and ROUTE_READY_EVENT in self._config.event_names:
            ready_event = ROUTE_READY_EVENT
        return RunConfig(
            base_url=self._settings.base_url,
            routes=self._config.route_paths,
            output_dir=output_dir,
            navigation_timeout_ms=self._options.navigation_timeout_ms,
            route_ready_event=ready_event,
            env=self._settings.env,
        )

    def execute(self, source: Path | dict[str, Any], *, output_dir: Path) -> ExecutionResult:
        tour = load_tour(source)
        run_config = self.build_run_config(output_dir)
        logger.info("Running tour %s (%d steps) against %s", tour.tour_id, len(tour.steps), run_config.base_url)
        with self._session_factory(self._options) as session:
            result = TourRunner(session.page, run_config).run(tour)
        return ExecutionResult(tour=tour, config=run_config, result=result)
