from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Literal

from .schema import validate_tour_payload

CaptureWhen = Literal["before", "after"]

DEFAULT_TIMEOUT_MS = 10_000


@dataclass(slots=True)
class StepCapture:
    when: CaptureWhen
    name: str
    full_page: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"when": self.when, "name": self.name}
        if self.full_page is not None:
            data["fullPage"] = self.full_page
        return data


@dataclass(slots=True)
class StepAnnotate:
    instructions: str
    target_screenshot: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"instructions": self.instructions}
        if self.target_screenshot is not None:
            data["targetScreenshot"] = self.target_screenshot
        return data


@dataclass(slots=True)
class StepMetadata:
    pre_delay_ms: int | None = None
    narration: str | None = None
    capture: StepCapture | None = None
    annotate: StepAnnotate | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.pre_delay_ms is not None:
            data["preDelayMs"] = self.pre_delay_ms
        if self.narration is not None:
            data["narration"] = self.narration
        if self.capture is not None:
            data["capture"] = self.capture.to_dict()
        if self.annotate is not None:
            data["annotate"] = self.annotate.to_dict()
        return data


@dataclass(slots=True)
class NarrationStep:
    TYPE: ClassVar[str] = "narration"
    message: str
    metadata: StepMetadata = field(default_factory=StepMetadata)


@dataclass(slots=True)
class GotoStep:
    TYPE: ClassVar[str] = "goto"
    route_key: str
    metadata: StepMetadata = field(default_factory=StepMetadata)


@dataclass(slots=True)
class ClickStep:
    TYPE: ClassVar[str] = "click"
    label: str
    anchor: str
    timeout_ms: int | None = None
    metadata: StepMetadata = field(default_factory=StepMetadata)


@dataclass(slots=True)
class FillStep:
    TYPE: ClassVar[str] = "fill"
    label: str
    anchor: str
    value: str | None = None
    value_env: str | None = None
    timeout_ms: int | None = None
    metadata: StepMetadata = field(default_factory=StepMetadata)


@dataclass(slots=True)
class WaitForEventStep:
    TYPE: ClassVar[str] = "waitForEvent"
    label: str
    name: str
    timeout_ms: int
    metadata: StepMetadata = field(default_factory=StepMetadata)


@dataclass(slots=True)
class ExpectVisibleStep:
    TYPE: ClassVar[str] = "expectVisible"
    label: str
    anchor: str
    timeout_ms: int
    metadata: StepMetadata = field(default_factory=StepMetadata)


@dataclass(slots=True)
class WaitMsStep:
    TYPE: ClassVar[str] = "waitMs"
    duration_ms: int
    metadata: StepMetadata = field(default_factory=StepMetadata)


@dataclass(slots=True)
class ScreenshotStep:
    TYPE: ClassVar[str] = "screenshot"
    name: str
    label: str | None = None
    full_page: bool | None = None
    metadata: StepMetadata = field(default_factory=StepMetadata)


@dataclass(slots=True)
class AnnotateStep:
    TYPE: ClassVar[str] = "annotate"
    label: str
    instructions: str
    target_screenshot: str | None = None
    metadata: StepMetadata = field(default_factory=StepMetadata)


TourStep = (
    NarrationStep
    | GotoStep
    | ClickStep
    | FillStep
    | WaitForEventStep
    | ExpectVisibleStep
    | WaitMsStep
    | ScreenshotStep
    | AnnotateStep
)

# Wire key for each attribute; attributes missing here are never serialized.
_WIRE_KEYS: dict[str, str] = {
    "label": "label",
    "message": "message",
    "route_key": "routeKey",
    "anchor": "anchor",
    "name": "name",
    "value": "value",
    "value_env": "valueEnv",
    "timeout_ms": "timeoutMs",
    "duration_ms": "durationMs",
    "full_page": "fullPage",
    "target_screenshot": "targetScreenshot",
    "instructions": "instructions",
}


def step_to_dict(step: TourStep) -> dict[str, Any]:
    data: dict[str, Any] = {"type": step.TYPE}
    for attr, key in _WIRE_KEYS.items():
        value = getattr(step, attr, None)
        if value is not None:
            data[key] = value
    data.update(step.metadata.to_dict())
    return data


def describe_step(step: TourStep) -> str:
    """Short identifier used in logs and failure reports."""
    for attr in ("anchor", "name", "route_key", "label"):
        value = getattr(step, attr, None)
        if value:
            return str(value)
    return ""


@dataclass(slots=True)
class TourFile:
    tour_id: str
    steps: list[TourStep]
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"tourId": self.tour_id}
        if self.description is not None:
            data["description"] = self.description
        data["steps"] = [step_to_dict(step) for step in self.steps]
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"


def load_tour(source: Path | dict[str, Any]) -> TourFile:
    if isinstance(source, Path):
        data = json.loads(source.read_text(encoding="utf-8"))
    else:
        data = source
    validate_tour_payload(data)

    return TourFile(
        tour_id=data["tourId"],
        description=data.get("description"),
        steps=[_parse_step(raw_step) for raw_step in data["steps"]],
    )


def _parse_step(payload: dict[str, Any]) -> TourStep:
    kind = payload["type"]
    metadata = _parse_metadata(payload)
    # "say" and "snapshot" are accepted aliases from hand-written tours.
    if kind in {"narration", "say"}:
        return NarrationStep(message=payload.get("message") or payload.get("text", ""), metadata=metadata)
    if kind == "goto":
        return GotoStep(route_key=payload["routeKey"], metadata=metadata)
    if kind == "click":
        return ClickStep(
            label=payload.get("label", ""),
            anchor=payload["anchor"],
            timeout_ms=payload.get("timeoutMs"),
            metadata=metadata,
        )
    if kind == "fill":
        return FillStep(
            label=payload.get("label", ""),
            anchor=payload["anchor"],
            value=payload.get("value"),
            value_env=payload.get("valueEnv"),
            timeout_ms=payload.get("timeoutMs"),
            metadata=metadata,
        )
    if kind == "waitForEvent":
        return WaitForEventStep(
            label=payload.get("label", ""),
            name=payload["name"],
            timeout_ms=int(payload.get("timeoutMs", DEFAULT_TIMEOUT_MS)),
            metadata=metadata,
        )
    if kind == "expectVisible":
        return ExpectVisibleStep(
            label=payload.get("label", ""),
            anchor=payload["anchor"],
            timeout_ms=int(payload.get("timeoutMs", DEFAULT_TIMEOUT_MS)),
            metadata=metadata,
        )
    if kind == "waitMs":
        return WaitMsStep(duration_ms=int(payload["durationMs"]), metadata=metadata)
    if kind in {"screenshot", "snapshot"}:
        return ScreenshotStep(
            name=payload["name"],
            label=payload.get("label"),
            full_page=payload.get("fullPage"),
            metadata=metadata,
        )
    if kind == "annotate":
        return AnnotateStep(
            label=payload.get("label", ""),
            instructions=payload["instructions"],
            target_screenshot=payload.get("targetScreenshot"),
            metadata=metadata,
        )
    msg = f"Unsupported step kind: {kind}"
    raise ValueError(msg)


def _parse_metadata(payload: dict[str, Any]) -> StepMetadata:
    capture_raw = payload.get("capture")
    annotate_raw = payload.get("annotate")
    return StepMetadata(
        pre_delay_ms=payload.get("preDelayMs"),
        narration=payload.get("narration"),
        capture=StepCapture(
            when=capture_raw["when"],
            name=capture_raw["name"],
            full_page=capture_raw.get("fullPage"),
        )
        if capture_raw
        else None,
        annotate=StepAnnotate(
            instructions=annotate_raw["instructions"],
            target_screenshot=annotate_raw.get("targetScreenshot"),
        )
        if annotate_raw
        else None,
    )

