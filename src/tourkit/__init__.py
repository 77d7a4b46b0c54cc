"""Compile walkthrough guides, map a web app's anchors and replay tours in a browser."""

from .browser import BrowserOptions, BrowserSession
from .config import TourkitConfig, TourkitPaths, TourkitSettings, load_config
from .crawler import TourMapCrawler
from .errors import (
    BrowserLaunchError,
    CompileError,
    ConfigError,
    CrawlRouteError,
    RuntimeStepError,
    TourkitError,
    TourValidationError,
    ValidationIssue,
)
from .orchestrator import ExecutionOrchestrator, ExecutionResult
from .runner import FailureKind, RunConfig, RunResult, StepFailure, TourRunner
from .tourmap import MapMarkdownRenderer, RouteAnchors, TourMap, load_tour_map, write_tour_map

__all__ = [
    "BrowserLaunchError",
    "BrowserOptions",
    "BrowserSession",
    "CompileError",
    "ConfigError",
    "CrawlRouteError",
    "ExecutionOrchestrator",
    "ExecutionResult",
    "FailureKind",
    "MapMarkdownRenderer",
    "RouteAnchors",
    "RunConfig",
    "RunResult",
    "RuntimeStepError",
    "StepFailure",
    "TourMap",
    "TourMapCrawler",
    "TourRunner",
    "TourValidationError",
    "TourkitConfig",
    "TourkitError",
    "TourkitPaths",
    "TourkitSettings",
    "ValidationIssue",
    "load_config",
    "load_tour_map",
    "write_tour_map",
]
