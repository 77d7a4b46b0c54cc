"""Static tour vocabulary (routes, events) and runtime settings."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import jsonschema
from dotenv import dotenv_values

from .errors import ConfigError

ANCHOR_ATTRIBUTE = "data-tour"
DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_AUTH_ROUTE_KEY = "auth"
PLACEHOLDER_SEGMENT = "tour-sample"
TOUR_QUERY_PARAM = "tour"

_DYNAMIC_SEGMENT_RE = re.compile(r"^(?:\[\[?\.{0,3}[^\]/]+\]?\]|:[A-Za-z_][A-Za-z0-9_]*)$")

ROUTES_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["routes"],
    "properties": {
        "routes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["routeKey", "path"],
                "properties": {
                    "routeKey": {"type": "string", "minLength": 1},
                    "path": {"type": "string", "pattern": "^/"},
                },
            },
        },
        "authRouteKey": {"type": "string"},
    },
}

EVENTS_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["events"],
    "properties": {
        "events": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {"name": {"type": "string", "minLength": 1}},
            },
        },
    },
}


@dataclass(frozen=True, slots=True)
class RouteEntry:
    route_key: str
    path: str


@dataclass(frozen=True, slots=True)
class EventDescriptor:
    name: str


@dataclass(frozen=True, slots=True)
class TourkitConfig:
    routes: tuple[RouteEntry, ...]
    events: tuple[EventDescriptor, ...]
    auth_route_key: str = DEFAULT_AUTH_ROUTE_KEY

    @property
    def route_keys(self) -> frozenset[str]:
        return frozenset(route.route_key for route in self.routes)

    @property
    def event_names(self) -> frozenset[str]:
        return frozenset(event.name for event in self.events)

    @property
    def route_paths(self) -> dict[str, str]:
        return {route.route_key: route.path for route in self.routes}

    def path_for(self, route_key: str) -> str | None:
        return self.route_paths.get(route_key)

    @property
    def auth_route(self) -> RouteEntry | None:
        for route in self.routes:
            if route.route_key == self.auth_route_key:
                return route
        return None


@dataclass(frozen=True, slots=True)
class TourkitPaths:
    """On-disk layout rooted at ``<root>/tourkit``."""

    root: Path

    @property
    def base(self) -> Path:
        return self.root / "tourkit"

    @property
    def config_dir(self) -> Path:
        return self.base / "config"

    @property
    def guides_dir(self) -> Path:
        return self.base / "guides"

    @property
    def fragments_dir(self) -> Path:
        return self.guides_dir / "fragments"

    @property
    def map_json(self) -> Path:
        return self.base / "maps" / "tour.map.json"

    @property
    def map_markdown(self) -> Path:
        return self.base / "maps" / "TOUR_MAP.md"

    @property
    def tours_dir(self) -> Path:
        return self.base / "tours"

    @property
    def artifacts_dir(self) -> Path:
        return self.base / "artifacts"

    @property
    def env_file(self) -> Path:
        return self.base / ".env.tourkit"


@dataclass(frozen=True, slots=True)
class TourkitSettings:
    base_url: str
    email: str | None
    password: str | None
    headless: bool
    env: Mapping[str, str]

    @property
    def has_credentials(self) -> bool:
        return bool(self.email and self.password)

    @classmethod
    def from_env(
        cls,
        paths: TourkitPaths | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> "TourkitSettings":
        # Values in the real environment win over .env.tourkit.
        merged: dict[str, str] = {}
        if paths is not None and paths.env_file.exists():
            merged.update({k: v for k, v in dotenv_values(paths.env_file).items() if v is not None})
        merged.update(os.environ if environ is None else environ)

        base_url = (
            merged.get("TOURKIT_BASE_URL")
            or merged.get("PLAYWRIGHT_BASE_URL")
            or merged.get("NEXT_PUBLIC_APP_URL")
            or DEFAULT_BASE_URL
        )
        headless = merged.get("TOURKIT_HEADLESS", "1").strip().lower() not in {"0", "false", "no"}
        return cls(
            base_url=base_url.rstrip("/"),
            email=merged.get("E2E_EMAIL") or None,
            password=merged.get("E2E_PASSWORD") or None,
            headless=headless,
            env=merged,
        )


def load_config(config_dir: Path) -> TourkitConfig:
    routes_raw = _read_json(config_dir / "routes.json", ROUTES_SCHEMA)
    events_raw = _read_json(config_dir / "events.json", EVENTS_SCHEMA)

    routes = tuple(
        RouteEntry(route_key=item["routeKey"], path=item["path"])
        for item in routes_raw["routes"]
    )
    seen: set[str] = set()
    for route in routes:
        if route.route_key in seen:
            msg = f"Duplicate routeKey in routes.json: {route.route_key}"
            raise ConfigError(msg)
        seen.add(route.route_key)

    events = tuple(EventDescriptor(name=item["name"]) for item in events_raw["events"])
    return TourkitConfig(
        routes=routes,
        events=events,
        auth_route_key=routes_raw.get("authRouteKey", DEFAULT_AUTH_ROUTE_KEY),
    )


def _read_json(path: Path, schema: dict[str, Any]) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        msg = f"{path.name} missing: {path}"
        raise ConfigError(msg) from exc
    except json.JSONDecodeError as exc:
        msg = f"{path.name} is not valid JSON: {exc}"
        raise ConfigError(msg) from exc
    try:
        jsonschema.validate(instance=payload, schema=schema)
    except jsonschema.ValidationError as exc:
        msg = f"{path.name} has an invalid shape: {exc.message}"
        raise ConfigError(msg) from exc
    return payload


def anchor_selector(anchor: str) -> str:
    return f'[{ANCHOR_ATTRIBUTE}="{anchor}"]'


def same_path(url: str, path: str) -> bool:
    return urlsplit(url).path.rstrip("/") == path.rstrip("/")


def fill_dynamic_segments(path: str, placeholder: str = PLACEHOLDER_SEGMENT) -> str:
    """Replace ``[id]``, ``[...slug]`` and ``:id`` path segments with *placeholder*."""
    segments = path.split("/")
    return "/".join(placeholder if _DYNAMIC_SEGMENT_RE.match(seg) else seg for seg in segments)


def ensure_tour_param(url: str) -> str:
    parts = urlsplit(url)
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != TOUR_QUERY_PARAM]
    query.append((TOUR_QUERY_PARAM, "1"))
    return urlunsplit(parts._replace(query=urlencode(query)))


def build_route_url(base_url: str, path: str, *, tour_mode: bool = True) -> str:
    url = base_url.rstrip("/") + fill_dynamic_segments(path)
    return ensure_tour_param(url) if tour_mode else url
