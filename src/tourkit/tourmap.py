from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema

from .artifacts import write_json, write_text
from .errors import ConfigError

STATIC_ROUTE_KEY = "_static"
STATIC_ROUTE_PATH = "(source scan)"

TOUR_MAP_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["routes", "events"],
    "properties": {
        "generatedAt": {"type": "string"},
        "routes": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["path", "anchors"],
                "properties": {
                    "path": {"type": "string"},
                    "anchors": {"type": "array", "items": {"type": "string"}},
                    "skippedReason": {"type": "string"},
                },
            },
        },
        "events": {"type": "array", "items": {"type": "string"}},
    },
}


@dataclass(slots=True)
class RouteAnchors:
    path: str
    anchors: list[str] = field(default_factory=list)
    skipped_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"path": self.path, "anchors": list(self.anchors)}
        if self.skipped_reason is not None:
            data["skippedReason"] = self.skipped_reason
        return data


@dataclass(slots=True)
class TourMap:
    generated_at: str
    routes: dict[str, RouteAnchors]
    events: list[str]

    def all_anchors(self) -> set[str]:
        return {anchor for route in self.routes.values() for anchor in route.anchors}

    def skipped_routes(self) -> dict[str, str]:
        return {
            key: route.skipped_reason
            for key, route in self.routes.items()
            if route.skipped_reason is not None
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "routes": {key: route.to_dict() for key, route in self.routes.items()},
            "events": list(self.events),
        }


def load_tour_map(path: Path) -> TourMap | None:
    """Read ``tour.map.json``; ``None`` when it has not been generated yet."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        jsonschema.validate(instance=data, schema=TOUR_MAP_SCHEMA)
    except (json.JSONDecodeError, jsonschema.ValidationError) as exc:
        msg = f"Tour map at {path} is invalid: {exc}"
        raise ConfigError(msg) from exc
    return TourMap(
        generated_at=data.get("generatedAt", ""),
        routes={
            key: RouteAnchors(
                path=raw["path"],
                anchors=list(raw["anchors"]),
                skipped_reason=raw.get("skippedReason"),
            )
            for key, raw in data["routes"].items()
        },
        events=list(data["events"]),
    )


def group_anchors(anchors: list[str]) -> dict[str, dict[str, dict[str, list[str]]]]:
    """Group anchors by domain, component and element kind (segments 2-4)."""
    grouped: dict[str, dict[str, dict[str, list[str]]]] = {}
    for anchor in sorted(anchors):
        parts = anchor.split(".")
        domain = parts[1] if len(parts) > 1 else "unknown"
        component = parts[2] if len(parts) > 2 else "unknown"
        element = parts[3] if len(parts) > 3 else "unknown"
        grouped.setdefault(domain, {}).setdefault(component, {}).setdefault(element, []).append(anchor)
    return grouped


class MapMarkdownRenderer:
    """Render a tour map into the human-readable ``TOUR_MAP.md`` companion."""

    def __init__(self, title: str = "Tour Map") -> None:
        self._title = title

    def render(self, tour_map: TourMap, path: Path) -> None:
        write_text(path, self.render_to_string(tour_map))

    def render_to_string(self, tour_map: TourMap) -> str:
        lines = [f"# {self._title}", "", f"Generated: {tour_map.generated_at}", ""]
        for route_key, route in tour_map.routes.items():
            lines.extend(self._render_route(route_key, route))
        lines.append("## Events")
        lines.extend(f"- `{name}`" for name in tour_map.events)
        lines.append("")
        return "\n".join(lines)

    def _render_route(self, route_key: str, route: RouteAnchors) -> list[str]:
        lines = [f"## {route_key} ({route.path})"]
        if route.skipped_reason is not None:
            lines.append(f"> skipped: {route.skipped_reason}")
        grouped = group_anchors(route.anchors)
        if not grouped:
            lines.extend(["- (no anchors found)", ""])
            return lines
        for domain in sorted(grouped):
            lines.append(f"- **{domain}**")
            for component in sorted(grouped[domain]):
                lines.append(f"  - *{component}*")
                for element in sorted(grouped[domain][component]):
                    lines.append(f"    - {element}")
                    lines.extend(f"      - `{anchor}`" for anchor in grouped[domain][component][element])
        lines.append("")
        return lines


def write_tour_map(tour_map: TourMap, json_path: Path, md_path: Path) -> None:
    write_json(json_path, tour_map.to_dict())
    MapMarkdownRenderer().render(tour_map, md_path)
