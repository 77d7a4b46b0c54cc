from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

import jsonschema

from ..artifacts import write_text
from ..config import TourkitConfig
from ..errors import CompileError, TourValidationError, ValidationIssue
from ..tourmap import TourMap
from .model import (
    ClickStep,
    ExpectVisibleStep,
    FillStep,
    GotoStep,
    NarrationStep,
    TourFile,
    TourStep,
    WaitForEventStep,
)
from .parser import guide_title, parse_guide
from .schema import validate_tour_payload
from .suggest import nearest

logger = logging.getLogger(__name__)

DEFAULT_INTRO_NARRATIONS: dict[str, str] = {
    "first-thumbnail": "Let's create your first thumbnail, from a blank studio to a finished result.",
    "onboarding": "Welcome! This quick tour shows you around so you can get started.",
}


@dataclass(slots=True)
class CompiledGuide:
    tour: TourFile
    warnings: list[str] = field(default_factory=list)


def compile_guide(
    guide_path: Path,
    *,
    config: TourkitConfig,
    tour_map: TourMap | None,
    fragments_dir: Path | None = None,
    intro_overrides: Mapping[str, str] | None = None,
) -> CompiledGuide:
    text = guide_path.read_text(encoding="utf-8")
    return compile_guide_text(
        text,
        tour_id=guide_path.stem,
        source=str(guide_path),
        config=config,
        tour_map=tour_map,
        fragments_dir=fragments_dir,
        intro_overrides=intro_overrides,
    )


def compile_guide_text(
    text: str,
    *,
    tour_id: str,
    config: TourkitConfig,
    tour_map: TourMap | None,
    source: str = "<guide>",
    fragments_dir: Path | None = None,
    intro_overrides: Mapping[str, str] | None = None,
) -> CompiledGuide:
    steps = parse_guide(text, source=source, fragments_dir=fragments_dir)
    steps = _with_intro(tour_id, steps, intro_overrides)
    tour = TourFile(tour_id=tour_id, description=guide_title(text), steps=steps)

    warnings: list[str] = []
    if tour_map is None:
        warnings.append("No tour map found; anchor validation skipped. Run generate-tour-map first.")
        for warning in warnings:
            logger.warning(warning)

    issues = validate_tour(tour, config, tour_map)
    if issues:
        raise TourValidationError(issues)
    try:
        validate_tour_payload(tour.to_dict())
    except jsonschema.ValidationError as exc:
        msg = f"Compiled tour does not match the tour schema: {exc.message}"
        raise CompileError(msg, source=source) from exc
    return CompiledGuide(tour=tour, warnings=warnings)


def _with_intro(
    tour_id: str,
    steps: Sequence[TourStep],
    overrides: Mapping[str, str] | None,
) -> list[TourStep]:
    if steps and isinstance(steps[0], NarrationStep):
        return list(steps)
    table = DEFAULT_INTRO_NARRATIONS if overrides is None else overrides
    message = table.get(tour_id) or _fallback_intro(tour_id)
    return [NarrationStep(message=message), *steps]


def _fallback_intro(tour_id: str) -> str:
    topic = tour_id.replace("-", " ").replace("_", " ").strip() or "this feature"
    return f"In this walkthrough we'll go through {topic} step by step."


def validate_tour(
    tour: TourFile,
    config: TourkitConfig,
    tour_map: TourMap | None,
) -> list[ValidationIssue]:
    """Collect every unknown route key, event and anchor in *tour*."""
    known: dict[str, frozenset[str]] = {
        "routeKey": config.route_keys,
        "event": config.event_names,
    }
    if tour_map is not None:
        known["anchor"] = frozenset(tour_map.all_anchors())

    unresolved: dict[tuple[str, str], list[int]] = {}
    for index, step in enumerate(tour.steps):
        reference = _reference(step)
        if reference is None:
            continue
        kind, value = reference
        if kind in known and value not in known[kind]:
            unresolved.setdefault((kind, value), []).append(index)

    universe = {kind: sorted(values) for kind, values in known.items()}
    return [
        ValidationIssue(
            kind=kind,
            value=value,
            step_indexes=indexes,
            suggestions=nearest(value, universe[kind]),
        )
        for (kind, value), indexes in unresolved.items()
    ]


def _reference(step: TourStep) -> tuple[str, str] | None:
    if isinstance(step, GotoStep):
        return "routeKey", step.route_key
    if isinstance(step, WaitForEventStep):
        return "event", step.name
    if isinstance(step, (ClickStep, FillStep, ExpectVisibleStep)):
        return "anchor", step.anchor
    return None


def anchor_references(tour: TourFile) -> list[str]:
    return [value for kind, value in filter(None, map(_reference, tour.steps)) if kind == "anchor"]


def write_tour(tour: TourFile, tours_dir: Path) -> Path:
    destination = tours_dir / f"{tour.tour_id}.tour.json"
    write_text(destination, tour.to_json())
    return destination
