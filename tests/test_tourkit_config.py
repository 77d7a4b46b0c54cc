from __future__ import annotations

import json
from pathlib import Path

import pytest

from tourkit.config import (
    TourkitPaths,
    TourkitSettings,
    build_route_url,
    ensure_tour_param,
    fill_dynamic_segments,
    load_config,
)
from tourkit.errors import ConfigError


def _write_config(config_dir: Path, routes: object, events: object) -> None:
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "routes.json").write_text(json.dumps(routes), encoding="utf-8")
    (config_dir / "events.json").write_text(json.dumps(events), encoding="utf-8")


def test_load_config_reads_routes_and_events(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        {"routes": [{"routeKey": "auth", "path": "/auth"}, {"routeKey": "studio", "path": "/studio/[id]"}]},
        {"events": [{"name": "tour.event.route.ready"}]},
    )

    config = load_config(tmp_path)

    assert config.route_keys == {"auth", "studio"}
    assert config.event_names == {"tour.event.route.ready"}
    assert config.path_for("studio") == "/studio/[id]"
    assert config.path_for("missing") is None
    assert config.auth_route is not None and config.auth_route.path == "/auth"


@pytest.mark.parametrize(
    ("routes", "events", "message"),
    [
        ({"routes": [{"routeKey": "a"}]}, {"events": []}, "routes.json has an invalid shape"),
        ({"routes": []}, {"events": [{"title": "x"}]}, "events.json has an invalid shape"),
        (
            {"routes": [{"routeKey": "a", "path": "/a"}, {"routeKey": "a", "path": "/b"}]},
            {"events": []},
            "Duplicate routeKey",
        ),
    ],
)
def test_load_config_rejects_bad_files(tmp_path: Path, routes: object, events: object, message: str) -> None:
    _write_config(tmp_path, routes, events)

    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path)


def test_load_config_missing_and_malformed(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="routes.json missing"):
        load_config(tmp_path)

    (tmp_path / "routes.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="not valid JSON"):
        load_config(tmp_path)


def test_dynamic_segments_get_placeholder() -> None:
    assert fill_dynamic_segments("/studio/[id]") == "/studio/tour-sample"
    assert fill_dynamic_segments("/docs/[...slug]") == "/docs/tour-sample"
    assert fill_dynamic_segments("/shop/[[...rest]]") == "/shop/tour-sample"
    assert fill_dynamic_segments("/users/:userId/edit") == "/users/tour-sample/edit"
    assert fill_dynamic_segments("/plain/path") == "/plain/path"


def test_route_url_carries_tour_flag() -> None:
    assert build_route_url("http://app.test/", "/studio/[id]") == "http://app.test/studio/tour-sample?tour=1"
    assert build_route_url("http://app.test", "/a", tour_mode=False) == "http://app.test/a"
    assert ensure_tour_param("http://app.test/a?x=1&tour=0") == "http://app.test/a?x=1&tour=1"


def test_settings_prefer_environment_over_env_file(tmp_path: Path) -> None:
    paths = TourkitPaths(tmp_path)
    paths.base.mkdir()
    paths.env_file.write_text(
        "E2E_EMAIL=file@example.com\nE2E_PASSWORD=from-file\nPLAYWRIGHT_BASE_URL=http://file.test/\n",
        encoding="utf-8",
    )

    settings = TourkitSettings.from_env(
        paths,
        environ={"E2E_EMAIL": "env@example.com", "TOURKIT_HEADLESS": "false"},
    )

    assert settings.email == "env@example.com"
    assert settings.password == "from-file"
    assert settings.base_url == "http://file.test"
    assert settings.headless is False
    assert settings.has_credentials


def test_settings_defaults_without_env_file(tmp_path: Path) -> None:
    settings = TourkitSettings.from_env(TourkitPaths(tmp_path), environ={})

    assert settings.base_url == "http://localhost:3000"
    assert settings.headless is True
    assert not settings.has_credentials
