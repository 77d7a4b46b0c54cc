from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlsplit

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from tourkit.config import EventDescriptor, RouteEntry, TourkitConfig, TourkitSettings, anchor_selector
from tourkit.tourmap import RouteAnchors, TourMap

BASE_URL = "http://app.test"

ANCHORS = [
    "tour.auth.form.btn.submit",
    "tour.auth.form.input.email",
    "tour.auth.form.input.password",
    "tour.studio.create.btn.generate",
    "tour.studio.create.input.prompt",
    "tour.studio.results.grid.first",
]


@pytest.fixture()
def artifact_dir(tmp_path: Path) -> Path:
    path = tmp_path / "artifacts"
    path.mkdir()
    return path


@pytest.fixture()
def tourkit_config() -> TourkitConfig:
    return TourkitConfig(
        routes=(
            RouteEntry("auth", "/auth"),
            RouteEntry("dashboard", "/dashboard"),
            RouteEntry("studio", "/studio/[id]"),
        ),
        events=(
            EventDescriptor("tour.event.route.ready"),
            EventDescriptor("tour.event.generate.completed"),
        ),
    )


@pytest.fixture()
def tour_map() -> TourMap:
    return TourMap(
        generated_at="2026-01-01T00:00:00Z",
        routes={
            "auth": RouteAnchors(path="/auth", anchors=ANCHORS[:3]),
            "studio": RouteAnchors(path="/studio/[id]", anchors=ANCHORS[3:]),
        },
        events=["tour.event.route.ready", "tour.event.generate.completed"],
    )


@pytest.fixture()
def settings() -> TourkitSettings:
    return TourkitSettings(
        base_url=BASE_URL,
        email="demo@example.com",
        password="hunter2",
        headless=True,
        env={"E2E_EMAIL": "demo@example.com", "E2E_PASSWORD": "hunter2"},
    )


@dataclass
class FakeResponse:
    status: int


@dataclass
class FakeRoute:
    status: int = 200
    anchors: list[str] = field(default_factory=list)
    redirect_to: str | None = None
    error: str | None = None
    events: list[tuple[str, dict[str, Any] | None]] = field(default_factory=list)


@dataclass
class FakeElement:
    visible: bool = True
    # Raised one at a time by the next actions before they succeed.
    errors: list[Exception] = field(default_factory=list)
    on_click: list[tuple[str, dict[str, Any] | None]] = field(default_factory=list)
    navigate_to: str | None = None


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str) -> None:
        self._page = page
        self._selector = selector

    @property
    def first(self) -> "FakeLocator":
        return self

    def count(self) -> int:
        return 1 if self._selector in self._page.elements else 0

    def wait_for(self, *, state: str = "visible", timeout: float | None = None) -> None:
        self._page.timeouts.append(("wait", timeout))
        if self._page.on_wait is not None:
            self._page.on_wait()
        element = self._page.elements.get(self._selector)
        if element is None or not element.visible:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self._selector}")

    def click(self, *, timeout: float | None = None) -> None:
        self._page.timeouts.append(("click", timeout))
        element = self._page.act("click", self._selector, None)
        self._page.fired_events.extend(element.on_click)
        if element.navigate_to is not None:
            self._page.url = BASE_URL + element.navigate_to

    def fill(self, value: str, *, timeout: float | None = None) -> None:
        self._page.timeouts.append(("fill", timeout))
        self._page.act("fill", self._selector, value)


class FakePage:
    """Just enough of ``playwright.sync_api.Page`` for the crawler and runner."""

    def __init__(
        self,
        *,
        anchors: list[str] | None = None,
        routes: dict[str, FakeRoute] | None = None,
    ) -> None:
        self.url = "about:blank"
        self.elements: dict[str, FakeElement] = {anchor_selector(a): FakeElement() for a in anchors or []}
        self.routes = routes or {}
        self.fired_events: list[tuple[str, dict[str, Any] | None]] = []
        self.actions: list[tuple[str, str, str | None]] = []
        self.visited: list[str] = []
        self.waits: list[float] = []
        self.init_scripts: list[str] = []
        self.screenshot_error: BaseException | None = None
        # (verb, timeout) for every locator wait/click/fill, in call order.
        self.timeouts: list[tuple[str, float | None]] = []
        self.on_wait: Callable[[], None] | None = None

    def element(self, anchor: str) -> FakeElement:
        return self.elements[anchor_selector(anchor)]

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    def act(self, verb: str, selector: str, value: str | None) -> FakeElement:
        element = self.elements[selector]
        if element.errors:
            raise element.errors.pop(0)
        self.actions.append((verb, selector, value))
        return element

    def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    def goto(self, url: str, *, wait_until: str | None = None, timeout: float | None = None) -> FakeResponse:
        self.visited.append(url)
        path = urlsplit(url).path
        route = self.routes.get(path, FakeRoute())
        if route.error is not None:
            raise PlaywrightError(route.error)
        self.url = url if route.redirect_to is None else BASE_URL + route.redirect_to
        self.fired_events.extend(route.events)
        return FakeResponse(route.status)

    def wait_for_load_state(self, state: str = "load", *, timeout: float | None = None) -> None:
        return None

    def wait_for_timeout(self, timeout: float) -> None:
        self.waits.append(timeout)

    def wait_for_url(self, predicate: Any, *, timeout: float | None = None) -> None:
        if not predicate(self.url):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for navigation")

    def wait_for_function(self, expression: str, *, arg: Any = None, timeout: float | None = None) -> bool:
        name, route_key = arg
        for fired, detail in self.fired_events:
            if fired != name:
                continue
            if route_key is None or not detail or detail.get("routeKey") in (None, route_key):
                return True
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded")

    def eval_on_selector_all(self, selector: str, expression: str) -> list[str]:
        route = self.routes.get(urlsplit(self.url).path, FakeRoute())
        return list(route.anchors)

    def screenshot(self, *, path: str, full_page: bool = False) -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        Path(path).write_bytes(b"\x89PNG")
        return b"\x89PNG"


class FakeSession:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.closed = False
        self.options: Any = None

    def __call__(self, options: Any = None) -> "FakeSession":
        self.options = options
        return self

    def __enter__(self) -> "FakeSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.closed = True


def route_ready(route_key: str) -> tuple[str, dict[str, Any]]:
    return ("tour.event.route.ready", {"routeKey": route_key, "anchorsPresent": True})
