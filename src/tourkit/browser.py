from __future__ import annotations

import logging
from dataclasses import dataclass

from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from .errors import BrowserLaunchError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BrowserOptions:
    """Launch and timeout settings for one isolated browser context."""

    headless: bool = True
    viewport_width: int = 1440
    viewport_height: int = 900
    navigation_timeout_ms: int = 45_000
    default_timeout_ms: int = 30_000


class BrowserSession:
    """Context manager owning one Chromium browser, context and page."""

    def __init__(self, options: BrowserOptions | None = None) -> None:
        self._options = options or BrowserOptions()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    def __enter__(self) -> "BrowserSession":
        options = self._options
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=options.headless)
            self._context = self._browser.new_context(
                viewport={"width": options.viewport_width, "height": options.viewport_height},
            )
            self._context.set_default_navigation_timeout(options.navigation_timeout_ms)
            self._context.set_default_timeout(options.default_timeout_ms)
            self._page = self._context.new_page()
        except PlaywrightError as exc:
            self._shutdown()
            msg = f"Browser failed to launch: {exc}"
            raise BrowserLaunchError(msg) from exc
        except BaseException:
            self._shutdown()
            raise
        logger.debug("Browser session started (headless=%s)", options.headless)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self._shutdown()

    @property
    def page(self) -> Page:
        if self._page is None:
            msg = "Browser session is not started"
            raise RuntimeError(msg)
        return self._page

    def _shutdown(self) -> None:
        try:
            if self._context is not None:
                self._context.close()
            if self._browser is not None:
                self._browser.close()
        except PlaywrightError as exc:  # pragma: no cover - teardown of a crashed browser
            logger.debug("Ignoring error while closing browser: %s", exc)
        finally:
            if self._playwright is not None:
                self._playwright.stop()
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None
