"""Build the tour map from a source scan plus a live browser crawl.

Routes are visited one at a time in a single browser context. A failing
route is recorded with a ``skippedReason`` and the crawl moves on; only a
browser that cannot launch aborts the run.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from .artifacts import utc_now
from .browser import BrowserOptions, BrowserSession
from .config import (
    ANCHOR_ATTRIBUTE,
    RouteEntry,
    TourkitConfig,
    TourkitSettings,
    anchor_selector,
    build_route_url,
    same_path,
)
from .errors import CrawlRouteError
from .tourmap import STATIC_ROUTE_KEY, STATIC_ROUTE_PATH, RouteAnchors, TourMap

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_DIRS: tuple[str, ...] = ("app", "components", "lib", "src")
# Quoted literals only; bare property chains such as tour.steps.length are not anchors.
SCAN_PATTERN = r"""["'`]tour\.[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)+["'`]"""
_QUOTES = "\"'`"
EVENT_PREFIX = "tour.event."
_FILE_SUFFIX_RE = re.compile(r"\.(?:json|md|ts|tsx|js|jsx|mjs|css)$")

AUTH_EMAIL_ANCHOR = "tour.auth.form.input.email"
AUTH_PASSWORD_ANCHOR = "tour.auth.form.input.password"
AUTH_SUBMIT_ANCHOR = "tour.auth.form.btn.submit"

_COLLECT_ANCHORS_JS = f"nodes => nodes.map(node => node.getAttribute('{ANCHOR_ATTRIBUTE}')).filter(Boolean)"


@dataclass(slots=True)
class CrawlTimeouts:
    navigation_ms: int = 30_000
    idle_ms: int = 5_000
    settle_ms: int = 300
    login_ms: int = 20_000


def scan_source_anchors(root: Path, source_dirs: Sequence[str] = DEFAULT_SOURCE_DIRS) -> list[str]:
    """Best-effort ripgrep scan of the app source for anchor tokens."""
    rg = shutil.which("rg")
    if rg is None:
        logger.warning("ripgrep (rg) not found; static anchor scan skipped")
        return []
    targets = [str(root / name) for name in source_dirs if (root / name).exists()]
    if not targets:
        logger.warning("No source directories found under %s; static anchor scan skipped", root)
        return []

    command = [rg, "--only-matching", "--no-filename", "--no-line-number", "-e", SCAN_PATTERN, *targets]
    try:
        completed = subprocess.run(command, capture_output=True, text=True, check=False)
    except OSError as exc:
        logger.warning("Static anchor scan failed to start: %s", exc)
        return []
    if completed.returncode > 1:
        logger.warning("Static anchor scan reported errors: %s", completed.stderr.strip()[:300])
    return parse_scan_output(completed.stdout)


def parse_scan_output(output: str) -> list[str]:
    tokens = {line.strip().strip(_QUOTES) for line in output.splitlines() if line.strip()}
    return sorted(
        token
        for token in tokens
        if not token.startswith(EVENT_PREFIX) and not _FILE_SUFFIX_RE.search(token)
    )


def collect_page_anchors(page: Page) -> list[str]:
    values = page.eval_on_selector_all(f"[{ANCHOR_ATTRIBUTE}]", _COLLECT_ANCHORS_JS)
    return sorted({str(value) for value in values})


def login(page: Page, settings: TourkitSettings, config: TourkitConfig, timeouts: CrawlTimeouts) -> bool:
    """Sign in through the auth route's anchors; ``False`` means crawl unauthenticated."""
    if not settings.has_credentials:
        logger.info("E2E_EMAIL/E2E_PASSWORD not set; crawling unauthenticated")
        return False
    auth = config.auth_route
    if auth is None:
        logger.warning("No '%s' route configured; crawling unauthenticated", config.auth_route_key)
        return False

    try:
        page.goto(build_route_url(settings.base_url, auth.path), wait_until="load", timeout=timeouts.navigation_ms)
        page.locator(anchor_selector(AUTH_EMAIL_ANCHOR)).first.fill(settings.email or "", timeout=timeouts.login_ms)
        page.locator(anchor_selector(AUTH_PASSWORD_ANCHOR)).first.fill(settings.password or "", timeout=timeouts.login_ms)
        page.locator(anchor_selector(AUTH_SUBMIT_ANCHOR)).first.click(timeout=timeouts.login_ms)
        page.wait_for_url(lambda url: not same_path(url, auth.path), timeout=timeouts.login_ms)
    except PlaywrightError as exc:
        logger.warning("Login failed, continuing unauthenticated: %s", _first_line(exc))
        return False
    logger.info("Logged in as %s", settings.email)
    return True


def crawl_route(
    page: Page,
    route: RouteEntry,
    *,
    base_url: str,
    auth_path: str | None,
    logged_in: bool,
    timeouts: CrawlTimeouts,
) -> RouteAnchors:
    try:
        anchors = _visit(page, route, base_url=base_url, auth_path=auth_path, logged_in=logged_in, timeouts=timeouts)
    except CrawlRouteError as exc:
        logger.warning("%s skipped: %s", route.route_key, exc.reason)
        return RouteAnchors(path=route.path, anchors=[], skipped_reason=exc.reason)
    except PlaywrightError as exc:
        reason = _first_line(exc)
        logger.warning("%s skipped: %s", route.route_key, reason)
        return RouteAnchors(path=route.path, anchors=[], skipped_reason=reason)
    logger.info("%s: %d anchors", route.route_key, len(anchors))
    return RouteAnchors(path=route.path, anchors=anchors)


def _visit(
    page: Page,
    route: RouteEntry,
    *,
    base_url: str,
    auth_path: str | None,
    logged_in: bool,
    timeouts: CrawlTimeouts,
) -> list[str]:
    response = page.goto(build_route_url(base_url, route.path), wait_until="load", timeout=timeouts.navigation_ms)
    _wait_for_idle(page, timeouts)

    if auth_path is not None and route.path != auth_path and same_path(page.url, auth_path):
        qualifier = "despite login " if logged_in else ""
        raise CrawlRouteError(route.route_key, f"redirected to auth {qualifier}({page.url})")
    if response is not None and response.status >= 400:
        raise CrawlRouteError(route.route_key, f"HTTP {response.status}")
    return collect_page_anchors(page)


def _wait_for_idle(page: Page, timeouts: CrawlTimeouts) -> None:
    try:
        page.wait_for_load_state("networkidle", timeout=timeouts.idle_ms)
    except PlaywrightTimeoutError:
        logger.debug("Network did not go idle within %dms; continuing", timeouts.idle_ms)
    if timeouts.settle_ms > 0:
        page.wait_for_timeout(timeouts.settle_ms)


def _first_line(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__


class TourMapCrawler:
    """Produce a :class:`TourMap` for every configured route."""

    def __init__(
        self,
        config: TourkitConfig,
        settings: TourkitSettings,
        *,
        root: Path,
        source_dirs: Sequence[str] = DEFAULT_SOURCE_DIRS,
        options: BrowserOptions | None = None,
        timeouts: CrawlTimeouts | None = None,
        session_factory: Callable[[BrowserOptions | None], BrowserSession] = BrowserSession,
    ) -> None:
        self._config = config
        self._settings = settings
        self._root = root
        self._source_dirs = tuple(source_dirs)
        self._options = options or BrowserOptions(headless=settings.headless)
        self._timeouts = timeouts or CrawlTimeouts()
        self._session_factory = session_factory

    def crawl(self) -> TourMap:
        routes: dict[str, RouteAnchors] = {
            STATIC_ROUTE_KEY: RouteAnchors(
                path=STATIC_ROUTE_PATH,
                anchors=scan_source_anchors(self._root, self._source_dirs),
            )
        }
        auth = self._config.auth_route
        auth_path = auth.path if auth is not None else None

        # BrowserLaunchError is the one failure that aborts the crawl.
        with self._session_factory(self._options) as session:
            page = session.page
            logged_in = login(page, self._settings, self._config, self._timeouts)
            for route in self._config.routes:
                routes[route.route_key] = crawl_route(
                    page,
                    route,
                    base_url=self._settings.base_url,
                    auth_path=auth_path,
                    logged_in=logged_in,
                    timeouts=self._timeouts,
                )

        return TourMap(
            generated_at=utc_now(),
            routes=routes,
            events=[event.name for event in self._config.events],
        )
