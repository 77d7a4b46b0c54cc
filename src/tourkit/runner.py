from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, assert_never

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator, Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from .artifacts import (
    AnnotationJob,
    AnnotationQueue,
    RunLog,
    Screenshot,
    ScreenshotRegistry,
    Transcript,
    TranscriptEntry,
    utc_now,
    write_json,
)
from .config import anchor_selector, build_route_url
from .dsl.model import (
    DEFAULT_TIMEOUT_MS,
    AnnotateStep,
    ClickStep,
    ExpectVisibleStep,
    FillStep,
    GotoStep,
    NarrationStep,
    ScreenshotStep,
    StepCapture,
    TourFile,
    TourStep,
    WaitForEventStep,
    WaitMsStep,
    describe_step,
)
from .errors import RuntimeStepError

logger = logging.getLogger(__name__)

ROUTE_READY_EVENT = "tour.event.route.ready"
RETRY_INTERVAL_MS = 200
_RETRYABLE_MARKERS = ("detached", "intercept", "not attached")
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")

# Records every ``tour.event.*`` dispatched on window into window.__tourkit_events.
EVENT_CAPTURE_SCRIPT = """
(() => {
  if (window.__tourkit_patched) return;
  window.__tourkit_patched = true;
  window.__tourkit_events = window.__tourkit_events || [];
  const originalDispatch = window.dispatchEvent.bind(window);
  window.dispatchEvent = function (event) {
    if (event && typeof event.type === "string" && event.type.startsWith("tour.event.")) {
      window.__tourkit_events.push({ type: event.type, detail: event.detail ?? null, time: Date.now() });
    }
    return originalDispatch(event);
  };
})();
"""

_EVENT_FIRED_JS = """
([name, routeKey]) => (window.__tourkit_events || []).some((event) =>
  event.type === name &&
  (!routeKey || !event.detail || !event.detail.routeKey || event.detail.routeKey === routeKey)
)
"""


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    ELEMENT_NOT_FOUND = "element-not-found"
    NAVIGATION = "navigation"
    CONFIGURATION = "configuration"
    ERROR = "error"


@dataclass(slots=True)
class StepFailure:
    index: int
    step_type: str
    kind: FailureKind
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "type": self.step_type, "kind": self.kind.value, "message": self.message}


@dataclass(slots=True)
class StepRecord:
    index: int
    step_type: str
    key: str
    passed: bool
    duration_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "type": self.step_type,
            "key": self.key,
            "outcome": "pass" if self.passed else "fail",
            "durationMs": round(self.duration_ms, 1),
        }


@dataclass(slots=True)
class RunConfig:
    base_url: str
    routes: Mapping[str, str]
    output_dir: Path
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    navigation_timeout_ms: int = 45_000
    tour_mode: bool = True
    route_ready_event: str | None = ROUTE_READY_EVENT
    env: Mapping[str, str] | None = None


@dataclass(slots=True)
class RunResult:
    tour_id: str
    output_dir: Path
    started_at: str
    finished_at: str = ""
    records: list[StepRecord] = field(default_factory=list)
    failure: StepFailure | None = None
    screenshots: list[Screenshot] = field(default_factory=list)
    transcript: list[TranscriptEntry] = field(default_factory=list)
    annotation_count: int = 0

    @property
    def passed(self) -> bool:
        return self.failure is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tourId": self.tour_id,
            "verdict": "pass" if self.passed else "fail",
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "steps": [record.to_dict() for record in self.records],
            "failure": self.failure.to_dict() if self.failure else None,
            "screenshots": [shot.path for shot in self.screenshots],
            "annotations": self.annotation_count,
        }


@dataclass(slots=True)
class _RunState:
    tour_id: str
    log: RunLog
    transcript: Transcript
    screenshots: ScreenshotRegistry
    annotations: AnnotationQueue
    screens_dir: Path


class TourRunner:
    """Replay a compiled tour step by step against one page."""

    def __init__(
        self,
        page: Page,
        config: RunConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._page = page
        self._config = config
        self._clock = clock

    def run(self, tour: TourFile) -> RunResult:
        output_dir = self._config.output_dir
        screens_dir = output_dir / "screens"
        screens_dir.mkdir(parents=True, exist_ok=True)
        result = RunResult(tour_id=tour.tour_id, output_dir=output_dir, started_at=utc_now())

        with RunLog(output_dir / "runlog.txt") as log:
            state = _RunState(
                tour_id=tour.tour_id,
                log=log,
                transcript=Transcript(tour.tour_id),
                screenshots=ScreenshotRegistry(output_dir / "screens.json"),
                annotations=AnnotationQueue(output_dir / "annotations.jsonl"),
                screens_dir=screens_dir,
            )
            log.write(f"Tour {tour.tour_id} started ({len(tour.steps)} steps)")
            try:
                self._page.add_init_script(EVENT_CAPTURE_SCRIPT)
                self._execute_steps(tour, state, result)
            finally:
                result.finished_at = utc_now()
                result.screenshots = state.screenshots.records
                result.transcript = state.transcript.entries
                result.annotation_count = state.annotations.count
                state.transcript.flush(output_dir)
                state.screenshots.flush()
                write_json(output_dir / "result.json", result.to_dict())
                log.write(f"Tour {tour.tour_id} finished: {'pass' if result.passed else 'fail'}")
        return result

    def _execute_steps(self, tour: TourFile, state: _RunState, result: RunResult) -> None:
        for index, step in enumerate(tour.steps):
            started = self._clock()
            try:
                self._run_step(index, step, state)
            except RuntimeStepError as exc:
                failure = StepFailure(index=index, step_type=step.TYPE, kind=FailureKind(exc.kind), message=exc.message)
                result.failure = failure
                result.records.append(self._record(index, step, started, passed=False))
                state.log.write(f"[ERROR] step {index} type={step.TYPE} kind={failure.kind.value}: {failure.message}")
                logger.error("Step %d (%s) failed [%s]: %s", index, step.TYPE, failure.kind.value, failure.message)
                return
            except BaseException as exc:
                # Anything else aborts the run; it is still recorded as a failure.
                result.failure = StepFailure(
                    index=index,
                    step_type=step.TYPE,
                    kind=FailureKind.ERROR,
                    message=f"Run aborted: {_first_line(exc)}",
                )
                result.records.append(self._record(index, step, started, passed=False))
                state.log.write(f"[ERROR] step {index} type={step.TYPE} aborted: {_first_line(exc)}")
                raise
            result.records.append(self._record(index, step, started, passed=True))

    def _record(self, index: int, step: TourStep, started: float, *, passed: bool) -> StepRecord:
        return StepRecord(
            index=index,
            step_type=step.TYPE,
            key=describe_step(step),
            passed=passed,
            duration_ms=(self._clock() - started) * 1000,
        )

    def _run_step(self, index: int, step: TourStep, state: _RunState) -> None:
        state.log.write(f"[STEP {index}] type={step.TYPE} key={describe_step(step)} url={self._page.url}")
        logger.info("Step %d: %s %s", index, step.TYPE, describe_step(step))
        metadata = step.metadata

        try:
            if metadata.pre_delay_ms:
                state.log.write(f"  preDelayMs: {metadata.pre_delay_ms}")
                self._page.wait_for_timeout(metadata.pre_delay_ms)
            if metadata.narration:
                state.transcript.add(index, metadata.narration, source="metadata")
            self._capture(index, metadata.capture, "before", state)
            self._dispatch(index, step, state)
            self._capture(index, metadata.capture, "after", state)
        except PlaywrightTimeoutError as exc:
            raise RuntimeStepError(_first_line(exc), kind=FailureKind.TIMEOUT.value) from exc
        except PlaywrightError as exc:
            raise RuntimeStepError(_first_line(exc), kind=FailureKind.ERROR.value) from exc

        if metadata.annotate is not None:
            self._queue_annotation(
                index,
                label=_step_label(step, index),
                instructions=metadata.annotate.instructions,
                target=metadata.annotate.target_screenshot,
                state=state,
            )

    def _dispatch(self, index: int, step: TourStep, state: _RunState) -> None:
        if isinstance(step, NarrationStep):
            state.transcript.add(index, step.message)
            state.log.write(f"  narration: {step.message}")
        elif isinstance(step, GotoStep):
            self._goto(step)
        elif isinstance(step, ClickStep):
            self._interact(step.anchor, self._timeout(step.timeout_ms), "click", lambda loc, ms: loc.click(timeout=ms))
        elif isinstance(step, FillStep):
            value = self._fill_value(step)
            self._interact(
                step.anchor, self._timeout(step.timeout_ms), "fill", lambda loc, ms: loc.fill(value, timeout=ms)
            )
        elif isinstance(step, WaitForEventStep):
            self._wait_for_event(step.name, step.timeout_ms)
        elif isinstance(step, ExpectVisibleStep):
            self._expect_visible(step.anchor, step.timeout_ms)
        elif isinstance(step, WaitMsStep):
            self._page.wait_for_timeout(step.duration_ms)
        elif isinstance(step, ScreenshotStep):
            self._screenshot(index, step.name, True if step.full_page is None else step.full_page, state)
        elif isinstance(step, AnnotateStep):
            self._queue_annotation(
                index,
                label=_step_label(step, index),
                instructions=step.instructions,
                target=step.target_screenshot,
                state=state,
            )
        else:
            assert_never(step)

    def _timeout(self, value: int | None) -> int:
        return value if value is not None else self._config.default_timeout_ms

    def _goto(self, step: GotoStep) -> None:
        path = self._config.routes.get(step.route_key)
        if path is None:
            raise RuntimeStepError(f"Unknown routeKey in goto step: {step.route_key}", kind=FailureKind.CONFIGURATION.value)
        url = build_route_url(self._config.base_url, path, tour_mode=self._config.tour_mode)
        try:
            response = self._page.goto(url, wait_until="domcontentloaded", timeout=self._config.navigation_timeout_ms)
        except PlaywrightError as exc:
            raise RuntimeStepError(f"Navigation to {url} failed: {_first_line(exc)}", kind=FailureKind.NAVIGATION.value) from exc
        if response is not None and response.status >= 400:
            raise RuntimeStepError(f"Navigation to {url} returned HTTP {response.status}", kind=FailureKind.NAVIGATION.value)

        ready_event = self._config.route_ready_event
        if ready_event is not None:
            self._wait_for_event(ready_event, self._config.default_timeout_ms, route_key=step.route_key)

    def _wait_for_event(self, name: str, timeout_ms: int, *, route_key: str | None = None) -> None:
        try:
            self._page.wait_for_function(_EVENT_FIRED_JS, arg=[name, route_key], timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            target = f" for route {route_key}" if route_key else ""
            msg = f"Event {name}{target} not received within {timeout_ms}ms"
            raise RuntimeStepError(msg, kind=FailureKind.TIMEOUT.value) from exc

    def _interact(
        self,
        anchor: str,
        timeout_ms: int,
        verb: str,
        action: Callable[[Locator, int], None],
    ) -> None:
        selector = anchor_selector(anchor)
        deadline = self._clock() + timeout_ms / 1000
        while True:
            remaining = int((deadline - self._clock()) * 1000)
            if remaining <= 0:
                break
            locator = self._page.locator(selector).first
            try:
                locator.wait_for(state="visible", timeout=remaining)
                remaining = int((deadline - self._clock()) * 1000)
                if remaining <= 0:
                    break
                action(locator, remaining)
                return
            except PlaywrightTimeoutError:
                break
            except PlaywrightError as exc:
                if not _is_retryable(exc):
                    raise RuntimeStepError(f"{verb} failed for {anchor}: {_first_line(exc)}", kind=FailureKind.ERROR.value) from exc
                logger.debug("Retrying %s on %s after transient error: %s", verb, anchor, _first_line(exc))
                self._page.wait_for_timeout(RETRY_INTERVAL_MS)
        raise self._element_failure(anchor, timeout_ms, verb)

    def _expect_visible(self, anchor: str, timeout_ms: int) -> None:
        try:
            self._page.locator(anchor_selector(anchor)).first.wait_for(state="visible", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise self._element_failure(anchor, timeout_ms, "expectVisible") from exc

    def _element_failure(self, anchor: str, timeout_ms: int, verb: str) -> RuntimeStepError:
        if self._page.locator(anchor_selector(anchor)).count() == 0:
            return RuntimeStepError(
                f"Anchor {anchor} not found within {timeout_ms}ms ({verb})",
                kind=FailureKind.ELEMENT_NOT_FOUND.value,
            )
        return RuntimeStepError(
            f"{verb} timed out for anchor {anchor} ({timeout_ms}ms)",
            kind=FailureKind.TIMEOUT.value,
        )

    def _fill_value(self, step: FillStep) -> str:
        if step.value_env is not None:
            env = self._config.env if self._config.env is not None else os.environ
            value = env.get(step.value_env)
            if value is None:
                msg = f"Environment variable {step.value_env} is not set (fill {step.anchor})"
                raise RuntimeStepError(msg, kind=FailureKind.CONFIGURATION.value)
            return value
        if step.value is None:
            raise RuntimeStepError(f"Fill step has no value for {step.anchor}", kind=FailureKind.CONFIGURATION.value)
        return step.value

    def _screenshot(self, index: int, name: str, full_page: bool, state: _RunState) -> Screenshot:
        safe_name = _UNSAFE_NAME_RE.sub("_", name) or f"step-{index}"
        path = state.screens_dir / f"{index:03d}_{safe_name}.png"
        self._page.screenshot(path=str(path), full_page=full_page)
        state.log.write(f"  screenshot: {path}")
        return state.screenshots.record(name, path, step_index=index, full_page=full_page)

    def _capture(self, index: int, capture: StepCapture | None, when: str, state: _RunState) -> None:
        if capture is None or capture.when != when:
            return
        full_page = True if capture.full_page is None else capture.full_page
        try:
            self._screenshot(index, capture.name, full_page, state)
        except PlaywrightError as exc:
            logger.warning("Capture %s (%s) failed at step %d: %s", capture.name, when, index, _first_line(exc))
            state.log.write(f"  [WARN] capture {capture.name} failed: {_first_line(exc)}")

    def _queue_annotation(
        self,
        index: int,
        *,
        label: str,
        instructions: str,
        target: str | None,
        state: _RunState,
    ) -> None:
        if target is not None:
            shot = state.screenshots.resolve(target)
            screenshot_path = shot.path if shot is not None else target
        else:
            latest = state.screenshots.latest
            screenshot_path = latest.path if latest is not None else ""
        state.annotations.append(
            AnnotationJob(
                tour_id=state.tour_id,
                step_index=index,
                label=label,
                screenshot_path=screenshot_path,
                instructions=instructions,
            )
        )
        state.log.write(f"  annotate: {label} -> {screenshot_path or '(no screenshot)'}")


def _step_label(step: TourStep, index: int) -> str:
    label = getattr(step, "label", None) or getattr(step, "name", None)
    return str(label) if label else f"step-{index}"


def _is_retryable(exc: PlaywrightError) -> bool:
    message = str(exc)
    return any(marker in message for marker in _RETRYABLE_MARKERS)


def _first_line(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__
