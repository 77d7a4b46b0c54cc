from __future__ import annotations

import pytest
from playwright.sync_api import Error as PlaywrightError

from tourkit.browser import BrowserOptions, BrowserSession
from tourkit.errors import BrowserLaunchError


class FakeContext:
    def __init__(self, page_error: BaseException | None) -> None:
        self.page_error = page_error
        self.closed = False

    def set_default_navigation_timeout(self, timeout: float) -> None:
        pass

    def set_default_timeout(self, timeout: float) -> None:
        pass

    def new_page(self) -> object:
        if self.page_error is not None:
            raise self.page_error
        return object()

    def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, context_error: BaseException | None, page_error: BaseException | None) -> None:
        self.context_error = context_error
        self.context = FakeContext(page_error)
        self.closed = False

    def new_context(self, **kwargs: object) -> FakeContext:
        if self.context_error is not None:
            raise self.context_error
        return self.context

    def close(self) -> None:
        self.closed = True


class FakePlaywright:
    def __init__(self, browser: FakeBrowser) -> None:
        self.browser = browser
        self.stopped = False
        self.chromium = self

    def launch(self, *, headless: bool) -> FakeBrowser:
        return self.browser

    def start(self) -> "FakePlaywright":
        return self

    def stop(self) -> None:
        self.stopped = True


def _install(
    monkeypatch: pytest.MonkeyPatch,
    *,
    context_error: BaseException | None = None,
    page_error: BaseException | None = None,
) -> FakePlaywright:
    playwright = FakePlaywright(FakeBrowser(context_error, page_error))
    monkeypatch.setattr("tourkit.browser.sync_playwright", lambda: playwright)
    return playwright


def test_session_opens_and_closes(monkeypatch: pytest.MonkeyPatch) -> None:
    playwright = _install(monkeypatch)

    with BrowserSession(BrowserOptions(headless=True)) as session:
        assert session.page is not None

    assert playwright.browser.context.closed
    assert playwright.browser.closed
    assert playwright.stopped


def test_context_failure_shuts_browser_down(monkeypatch: pytest.MonkeyPatch) -> None:
    playwright = _install(monkeypatch, context_error=PlaywrightError("context refused"))

    with pytest.raises(BrowserLaunchError, match="context refused"):
        with BrowserSession():
            pass

    assert playwright.browser.closed
    assert playwright.stopped


def test_interrupted_setup_shuts_everything_down(monkeypatch: pytest.MonkeyPatch) -> None:
    playwright = _install(monkeypatch, page_error=KeyboardInterrupt())

    with pytest.raises(KeyboardInterrupt):
        with BrowserSession():
            pass

    assert playwright.browser.context.closed
    assert playwright.browser.closed
    assert playwright.stopped


def test_page_requires_started_session() -> None:
    with pytest.raises(RuntimeError, match="not started"):
        BrowserSession().page
