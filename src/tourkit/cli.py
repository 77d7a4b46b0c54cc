"""Console entry points: generate-tour-from-guide, generate-tour-map, run-tour, tourkit-doctor."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

import jsonschema

from .browser import BrowserOptions
from .config import TourkitConfig, TourkitPaths, TourkitSettings, load_config
from .crawler import DEFAULT_SOURCE_DIRS, TourMapCrawler
from .doctor import has_failures, render_report, run_checks
from .dsl.compiler import compile_guide, write_tour
from .errors import BrowserLaunchError, CompileError, ConfigError, TourValidationError
from .orchestrator import ExecutionOrchestrator, run_directory
from .tourmap import load_tour_map, write_tour_map

LOG_FORMAT = "[tourkit] %(levelname)s %(name)s: %(message)s"


def _base_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--root", type=Path, default=Path.cwd(), help="project root containing tourkit/ (default: cwd)")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def _add_browser_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--base-url", help="app base URL (overrides TOURKIT_BASE_URL)")
    parser.add_argument(
        "--headed",
        dest="headless",
        action="store_false",
        default=None,
        help="show the browser window",
    )
    parser.add_argument("--headless", dest="headless", action="store_true", default=None, help="run the browser headless")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def _settings(args: argparse.Namespace, paths: TourkitPaths) -> TourkitSettings:
    settings = TourkitSettings.from_env(paths)
    overrides = {}
    if getattr(args, "base_url", None):
        overrides["base_url"] = args.base_url.rstrip("/")
    if getattr(args, "headless", None) is not None:
        overrides["headless"] = args.headless
    return dataclasses.replace(settings, **overrides) if overrides else settings


def _load_config(paths: TourkitPaths) -> TourkitConfig | None:
    try:
        return load_config(paths.config_dir)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return None


def generate_tour_from_guide_main(argv: Sequence[str] | None = None) -> int:
    parser = _base_parser("Compile a guide into a validated tour JSON file.")
    parser.add_argument("guide", type=Path, help="path to the guide .md file")
    parser.add_argument("--fragments-dir", type=Path, help="fragment directory (default: tourkit/guides/fragments)")
    parser.add_argument("--out-dir", type=Path, help="output directory (default: tourkit/tours)")
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    paths = TourkitPaths(args.root)
    config = _load_config(paths)
    if config is None:
        return 1
    try:
        tour_map = load_tour_map(paths.map_json)
        compiled = compile_guide(
            args.guide,
            config=config,
            tour_map=tour_map,
            fragments_dir=args.fragments_dir or paths.fragments_dir,
        )
    except FileNotFoundError as exc:
        print(f"Guide not found: {exc.filename}", file=sys.stderr)
        return 1
    except (CompileError, TourValidationError, ConfigError) as exc:
        print(str(exc), file=sys.stderr)
        return 1

    destination = write_tour(compiled.tour, args.out_dir or paths.tours_dir)
    print(f"Wrote {destination} ({len(compiled.tour.steps)} steps)")
    return 0


def generate_tour_map_main(argv: Sequence[str] | None = None) -> int:
    parser = _base_parser("Crawl every configured route and write the tour map.")
    _add_browser_flags(parser)
    parser.add_argument(
        "--source-dir",
        action="append",
        dest="source_dirs",
        help=f"source directory to scan for anchors (repeatable; default: {', '.join(DEFAULT_SOURCE_DIRS)})",
    )
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    paths = TourkitPaths(args.root)
    config = _load_config(paths)
    if config is None:
        return 1
    settings = _settings(args, paths)
    crawler = TourMapCrawler(
        config,
        settings,
        root=args.root,
        source_dirs=args.source_dirs or DEFAULT_SOURCE_DIRS,
        options=BrowserOptions(headless=settings.headless),
    )
    try:
        tour_map = crawler.crawl()
    except BrowserLaunchError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    write_tour_map(tour_map, paths.map_json, paths.map_markdown)
    total = len(tour_map.all_anchors())
    print(f"Wrote {paths.map_json} and {paths.map_markdown} ({total} unique anchors)")
    skipped = tour_map.skipped_routes()
    for route_key, reason in skipped.items():
        print(f"  skipped {route_key}: {reason}")
    if skipped:
        print(f"{len(skipped)} of {len(config.routes)} routes skipped")
    return 0


def run_tour_main(argv: Sequence[str] | None = None) -> int:
    parser = _base_parser("Replay a compiled tour in a real browser.")
    _add_browser_flags(parser)
    parser.add_argument("tour", type=Path, help="path to <tourId>.tour.json")
    parser.add_argument("--output-dir", type=Path, help="artifact directory (default: tourkit/artifacts/<tourId>/<timestamp>)")
    parser.add_argument(
        "--no-route-ready",
        dest="route_ready",
        action="store_false",
        help="do not wait for tour.event.route.ready after each goto",
    )
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    paths = TourkitPaths(args.root)
    config = _load_config(paths)
    if config is None:
        return 1
    settings = _settings(args, paths)

    try:
        payload = json.loads(args.tour.read_text(encoding="utf-8"))
    except FileNotFoundError:
        print(f"Tour not found: {args.tour}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as exc:
        print(f"{args.tour} is not valid JSON: {exc}", file=sys.stderr)
        return 1

    tour_id = payload.get("tourId") if isinstance(payload, dict) else None
    output_dir = args.output_dir or run_directory(paths.artifacts_dir, str(tour_id or args.tour.stem))
    orchestrator = ExecutionOrchestrator(
        config,
        settings,
        options=BrowserOptions(headless=settings.headless),
        route_ready=args.route_ready,
    )
    try:
        execution = orchestrator.execute(payload, output_dir=output_dir)
    except jsonschema.ValidationError as exc:
        print(f"{args.tour} is not a valid tour: {exc.message}", file=sys.stderr)
        return 1
    except BrowserLaunchError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    result = execution.result
    print(f"Artifacts: {result.output_dir}")
    if result.failure is not None:
        failure = result.failure
        print(
            f"FAIL step {failure.index} ({failure.step_type}) [{failure.kind.value}]: {failure.message}",
            file=sys.stderr,
        )
        return 1
    print(f"PASS {result.tour_id}: {len(result.records)} steps, {len(result.screenshots)} screenshots")
    return 0


def doctor_main(argv: Sequence[str] | None = None) -> int:
    parser = _base_parser("Check the tourkit configuration, environment and tours.")
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    results = run_checks(TourkitPaths(args.root))
    print(render_report(results))
    return 1 if has_failures(results) else 0


def _entry(main) -> None:
    sys.exit(main())


def generate_tour_from_guide() -> None:
    _entry(generate_tour_from_guide_main)


def generate_tour_map() -> None:
    _entry(generate_tour_map_main)


def run_tour() -> None:
    _entry(run_tour_main)


def doctor() -> None:
    _entry(doctor_main)
