from __future__ import annotations

from pathlib import Path

import pytest

from tourkit.dsl.model import (
    DEFAULT_TIMEOUT_MS,
    AnnotateStep,
    ExpectVisibleStep,
    FillStep,
    NarrationStep,
    ScreenshotStep,
    WaitMsStep,
    step_to_dict,
)
from tourkit.dsl.parser import SourceLine, guide_title, parse_guide, parse_line, read_guide_lines, split_clauses
from tourkit.errors import CompileError


def _line(text: str, number: int = 1) -> SourceLine:
    return SourceLine(source="guide.md", number=number, text=text)


def test_click_line_has_no_metadata() -> None:
    step = parse_line(_line("Click Submit (tour.auth.form.btn.submit)"))

    assert step_to_dict(step) == {
        "type": "click",
        "label": "Submit",
        "anchor": "tour.auth.form.btn.submit",
    }


def test_wait_for_event_with_timeout() -> None:
    step = parse_line(_line("Wait for generation done (tour.event.generate.completed) timeout:20000"))

    assert step_to_dict(step) == {
        "type": "waitForEvent",
        "label": "generation done",
        "name": "tour.event.generate.completed",
        "timeoutMs": 20000,
    }


def test_expect_visible_defaults_timeout_and_ignores_case() -> None:
    step = parse_line(_line("expect VISIBLE Prompt box (tour.studio.create.input.prompt)"))

    assert isinstance(step, ExpectVisibleStep)
    assert step.anchor == "tour.studio.create.input.prompt"
    assert step.timeout_ms == DEFAULT_TIMEOUT_MS


def test_fill_with_literal_value_and_env() -> None:
    literal = parse_line(_line("Fill Prompt (tour.studio.create.input.prompt) value:A cat in a hat"))
    from_env = parse_line(_line("Fill Email (tour.auth.form.input.email) env:E2E_EMAIL"))

    assert isinstance(literal, FillStep)
    assert literal.value == "A cat in a hat"
    assert literal.value_env is None
    assert isinstance(from_env, FillStep)
    assert from_env.value is None
    assert from_env.value_env == "E2E_EMAIL"


def test_narration_and_say_are_equivalent() -> None:
    first = parse_line(_line("Narration: Welcome to the studio."))
    second = parse_line(_line("Say: Welcome to the studio."))

    assert first == second
    assert isinstance(first, NarrationStep)
    assert first.message == "Welcome to the studio."


def test_wait_ms_must_be_positive() -> None:
    assert parse_line(_line("Wait 750ms")) == WaitMsStep(duration_ms=750)
    with pytest.raises(CompileError, match="must be > 0ms"):
        parse_line(_line("Wait 0ms"))


def test_screenshot_and_snapshot_forms() -> None:
    labelled = parse_line(_line("Screenshot Results grid name:results-1 fullPage:false"))
    bare = parse_line(_line("Snapshot name:final"))

    assert labelled == ScreenshotStep(name="results-1", label="Results grid", full_page=False)
    assert bare == ScreenshotStep(name="final")


def test_annotate_with_target_but_no_label() -> None:
    step = parse_line(_line("Annotate target:results-1 instructions: Circle the first thumbnail"))

    assert isinstance(step, AnnotateStep)
    assert step.label == ""
    assert step.target_screenshot == "results-1"
    assert step.instructions == "Circle the first thumbnail"


def test_annotate_with_label_and_target() -> None:
    step = parse_line(_line("Annotate Results panel target:results-1 instructions: Arrow to grid"))

    assert isinstance(step, AnnotateStep)
    assert step.label == "Results panel"
    assert step.target_screenshot == "results-1"


def test_modifiers_populate_metadata() -> None:
    text = (
        "Click Generate (tour.studio.create.btn.generate)"
        ' | predelay:500 | narration:"Now we generate | and wait"'
        " | capture:after:generated:fullPage=false"
        ' | annotate:"Highlight the button"'
    )
    step = parse_line(_line(text))
    data = step_to_dict(step)

    assert data["preDelayMs"] == 500
    assert data["narration"] == "Now we generate | and wait"
    assert data["capture"] == {"when": "after", "name": "generated", "fullPage": False}
    assert data["annotate"] == {"instructions": "Highlight the button"}


def test_split_clauses_respects_quotes() -> None:
    assert split_clauses('Say: hi | narration:"a | b" | predelay:5') == [
        "Say: hi",
        'narration:"a | b"',
        "predelay:5",
    ]


def test_stray_quote_in_fill_value_does_not_swallow_modifiers() -> None:
    text = 'Fill Prompt (tour.studio.create.input.prompt) value:a "quoted cat | predelay:500'

    assert split_clauses(text) == [
        'Fill Prompt (tour.studio.create.input.prompt) value:a "quoted cat',
        "predelay:500",
    ]
    data = step_to_dict(parse_line(_line(text)))
    assert data["value"] == 'a "quoted cat'
    assert data["preDelayMs"] == 500


@pytest.mark.parametrize("text", ['Goto routeKey: studio | annotate:""', 'Wait 100ms | narration:""'])
def test_empty_quoted_modifiers_are_rejected(text: str) -> None:
    with pytest.raises(CompileError, match="Unknown modifier"):
        parse_line(_line(text))


@pytest.mark.parametrize(
    "text",
    [
        "Hover Submit (tour.auth.form.btn.submit)",
        "Click Submit",
        "Click Submit (auth.form.submit)",
        "Goto dashboard",
        "Wait for done (tour.generate.completed)",
        "Fill Email (tour.auth.form.input.email)",
        "Include fragment: login",
    ],
)
def test_unrecognized_lines_raise_compile_error(text: str) -> None:
    with pytest.raises(CompileError) as info:
        parse_line(_line(text, number=7))

    assert info.value.line_number == 7
    assert info.value.line == text
    assert "guide.md:7" in str(info.value)


def test_malformed_click_gets_usage_hint() -> None:
    with pytest.raises(CompileError, match="Click step needs an anchor"):
        parse_line(_line("Click Submit"))


def test_unknown_and_duplicate_modifiers_are_rejected() -> None:
    with pytest.raises(CompileError, match="Unknown modifier"):
        parse_line(_line("Wait 100ms | retries:3"))
    with pytest.raises(CompileError, match="Duplicate modifier"):
        parse_line(_line("Wait 100ms | predelay:1 | predelay:2"))


def test_comments_and_blank_lines_are_skipped() -> None:
    text = "# First thumbnail\n\n  # a note\nGoto routeKey: studio\n\nWait 100ms\n"
    lines = read_guide_lines(text, source="g.md")

    assert [(line.number, line.text) for line in lines] == [(4, "Goto routeKey: studio"), (6, "Wait 100ms")]
    assert guide_title(text) == "First thumbnail"


def test_error_reports_original_line_number() -> None:
    text = "# title\nGoto routeKey: studio\n\nTeleport somewhere\n"

    with pytest.raises(CompileError) as info:
        parse_guide(text, source="first.md")

    assert info.value.line_number == 4
    assert info.value.source == "first.md"


def test_fragment_include_is_expanded(tmp_path: Path) -> None:
    fragments = tmp_path / "fragments"
    fragments.mkdir()
    (fragments / "login.md").write_text(
        "# shared login\nFill Email (tour.auth.form.input.email) env:E2E_EMAIL\n"
        "Click Submit (tour.auth.form.btn.submit)\n",
        encoding="utf-8",
    )

    steps = parse_guide("Goto routeKey: auth\nInclude fragment: login\nWait 100ms\n", fragments_dir=fragments)

    assert [step.TYPE for step in steps] == ["goto", "fill", "click", "waitMs"]


def test_nested_and_missing_fragments_fail(tmp_path: Path) -> None:
    fragments = tmp_path / "fragments"
    fragments.mkdir()
    (fragments / "outer.md").write_text("Include fragment: inner\n", encoding="utf-8")

    with pytest.raises(CompileError, match="Nested fragment"):
        parse_guide("Include fragment: outer\n", fragments_dir=fragments)
    with pytest.raises(CompileError, match="Fragment not found: nowhere"):
        parse_guide("Include fragment: nowhere\n", fragments_dir=fragments)
