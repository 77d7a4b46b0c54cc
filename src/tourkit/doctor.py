"""Environment and tour health checks printed by ``tourkit-doctor``."""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from typing import Literal, Mapping

import jsonschema

from .config import EVENTS_SCHEMA, ROUTES_SCHEMA, TourkitPaths, TourkitSettings
from .dsl.compiler import anchor_references
from .dsl.model import load_tour
from .errors import ConfigError
from .tourmap import load_tour_map

Level = Literal["PASS", "WARN", "FAIL"]


@dataclass(frozen=True, slots=True)
class CheckResult:
    level: Level
    message: str


def run_checks(paths: TourkitPaths, environ: Mapping[str, str] | None = None) -> list[CheckResult]:
    results: list[CheckResult] = []
    results.append(_check_json(paths.config_dir / "routes.json", ROUTES_SCHEMA))
    results.append(_check_json(paths.config_dir / "events.json", EVENTS_SCHEMA))

    map_anchors: set[str] | None = None
    try:
        tour_map = load_tour_map(paths.map_json)
    except ConfigError as exc:
        results.append(CheckResult("FAIL", str(exc)))
    else:
        if tour_map is None:
            results.append(CheckResult("WARN", "tour.map.json missing; run generate-tour-map"))
        else:
            results.append(CheckResult("PASS", "tour.map.json exists"))
            map_anchors = tour_map.all_anchors()

    if paths.env_file.exists():
        results.append(CheckResult("PASS", ".env.tourkit exists"))
    else:
        results.append(CheckResult("WARN", f".env.tourkit missing at {paths.env_file}"))

    settings = TourkitSettings.from_env(paths, environ=environ)
    for name, value in (("E2E_EMAIL", settings.email), ("E2E_PASSWORD", settings.password)):
        if value:
            results.append(CheckResult("PASS", f"{name} present"))
        else:
            results.append(CheckResult("FAIL", f"{name} missing; set it in {paths.env_file.name} or the environment"))

    results.append(_check_playwright())
    results.extend(_check_tours(paths.tours_dir, map_anchors))
    return results


def _check_json(path: Path, schema: dict) -> CheckResult:
    if not path.exists():
        return CheckResult("FAIL", f"{path.name} missing")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        jsonschema.validate(instance=payload, schema=schema)
    except json.JSONDecodeError as exc:
        return CheckResult("FAIL", f"{path.name} parse failed: {exc}")
    except jsonschema.ValidationError as exc:
        return CheckResult("FAIL", f"{path.name} exists but shape is invalid: {exc.message}")
    return CheckResult("PASS", f"{path.name} exists and valid")


def _check_playwright() -> CheckResult:
    try:
        version = metadata.version("playwright")
    except metadata.PackageNotFoundError:
        return CheckResult("FAIL", "Playwright is not installed (pip install playwright)")
    return CheckResult("PASS", f"Playwright installed ({version}); run 'playwright install chromium' if browsers are missing")


def _check_tours(tours_dir: Path, map_anchors: set[str] | None) -> list[CheckResult]:
    tour_files = sorted(tours_dir.glob("*.tour.json")) if tours_dir.exists() else []
    if not tour_files:
        return [CheckResult("WARN", f"No tour JSON files found in {tours_dir}")]

    results: list[CheckResult] = []
    for path in tour_files:
        try:
            tour = load_tour(path)
        except json.JSONDecodeError as exc:
            results.append(CheckResult("FAIL", f"{path.name} JSON parse failed: {exc}"))
            continue
        except jsonschema.ValidationError as exc:
            results.append(CheckResult("FAIL", f"{path.name} invalid: {exc.message}"))
            continue
        results.append(CheckResult("PASS", f"{path.name} valid against tour schema"))

        if map_anchors is None:
            continue
        missing = sorted({anchor for anchor in anchor_references(tour) if anchor not in map_anchors})
        if missing:
            results.append(CheckResult("FAIL", f"{path.name} references anchors not in map: {', '.join(missing)}"))
        else:
            results.append(CheckResult("PASS", f"{path.name} anchors found in tour.map.json"))
    return results


def render_report(results: list[CheckResult]) -> str:
    lines = ["TourKit Doctor", "=============="]
    lines.extend(f"[{result.level}] {result.message}" for result in results)
    counts = {level: sum(1 for result in results if result.level == level) for level in ("PASS", "WARN", "FAIL")}
    lines.append("")
    lines.append(f"{counts['PASS']} passed, {counts['WARN']} warnings, {counts['FAIL']} failures")
    return "\n".join(lines)


def has_failures(results: list[CheckResult]) -> bool:
    return any(result.level == "FAIL" for result in results)
