"""Line grammar for guide files.

One directive per line. Blank lines and ``#`` comments are skipped. A line
may carry ``" |"``-separated modifier clauses after the directive::

    Click Generate (tour.studio.create.btn.generate) | predelay:500 | capture:after:generated

Any line that matches no directive form raises :class:`CompileError`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from ..errors import CompileError
from .model import (
    DEFAULT_TIMEOUT_MS,
    AnnotateStep,
    ClickStep,
    ExpectVisibleStep,
    FillStep,
    GotoStep,
    NarrationStep,
    ScreenshotStep,
    StepAnnotate,
    StepCapture,
    StepMetadata,
    TourStep,
    WaitForEventStep,
    WaitMsStep,
)

ANCHOR_PATTERN = r"tour\.[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)+"
EVENT_PATTERN = r"tour\.event\.[A-Za-z0-9_.-]+"
_NAME = r"[A-Za-z0-9._-]+"
_TIMEOUT = r"(?:\s+timeout:(?P<timeout>\d+))?"

_NARRATION_RE = re.compile(r"^(?:Narration|Say):\s*(?P<message>.*\S)$")
_GOTO_RE = re.compile(r"^Goto\s+routeKey:\s*(?P<route>\S+)$")
_CLICK_RE = re.compile(rf"^Click\s+(?P<label>.+?)\s*\((?P<anchor>{ANCHOR_PATTERN})\)$")
_FILL_RE = re.compile(
    rf"^Fill\s+(?P<label>.+?)\s*\((?P<anchor>{ANCHOR_PATTERN})\)\s+"
    r"(?:value:(?P<value>.*\S)|env:(?P<env>[A-Za-z_][A-Za-z0-9_]*))$"
)
_WAIT_EVENT_RE = re.compile(rf"^Wait\s+for\s+(?P<label>.+?)\s*\((?P<event>{EVENT_PATTERN})\){_TIMEOUT}$")
_EXPECT_RE = re.compile(
    rf"^Expect\s+visible\s+(?P<label>.+?)\s*\((?P<anchor>{ANCHOR_PATTERN})\){_TIMEOUT}$",
    re.IGNORECASE,
)
_WAIT_MS_RE = re.compile(r"^Wait\s+(?P<ms>\d+)\s*ms$")
_SCREENSHOT_RE = re.compile(
    rf"^(?:Screenshot|Snapshot)(?:\s+(?P<label>.+?))?\s+name:(?P<name>{_NAME})"
    r"(?:\s+fullPage:(?P<full>true|false))?$"
)
_ANNOTATE_RE = re.compile(
    rf"^Annotate(?:\s+(?P<label>.+?))??(?:\s+target:(?P<target>{_NAME}))?\s+instructions:\s*(?P<text>.*\S)$"
)
INCLUDE_RE = re.compile(r"^Include\s+fragment:\s*(?P<name>\S+)$")

_PREDELAY_RE = re.compile(r"^predelay:(?P<ms>\d+)$")
_NARRATION_MOD_RE = re.compile(r'^narration:"(?P<text>.+)"$')
_CAPTURE_RE = re.compile(rf"^capture:(?P<when>before|after):(?P<name>{_NAME})(?::fullPage=(?P<full>true|false))?$")
_ANNOTATE_MOD_RE = re.compile(r'^annotate:"(?P<text>.+)"$')
_QUOTED_MODIFIERS = ("narration:", "annotate:")

# Usage hints for lines that start like a directive but do not match it.
_HINTS: tuple[tuple[str, str], ...] = (
    ("Click ", "Click step needs an anchor. Use: Click <label> (tour.<domain>.<component>.<element>)"),
    ("Fill ", "Fill step needs an anchor and value:<text> or env:<NAME>. Use: Fill <label> (tour....) env:E2E_EMAIL"),
    ("Wait for ", "Wait for step needs an event. Use: Wait for <label> (tour.event....) timeout:30000"),
    ("Wait ", "Wait step must be: Wait <ms>ms"),
    ("Expect ", "Expect step must be: Expect visible <label> (tour....) [timeout:<ms>]"),
    ("Screenshot", "Screenshot step needs name:<name>"),
    ("Snapshot", "Snapshot step needs name:<name>"),
    ("Annotate", "Annotate step needs instructions:<text>"),
    ("Goto", "Goto step must be: Goto routeKey: <key>"),
    ("Include", "Include must be: Include fragment: <name>"),
)


@dataclass(frozen=True, slots=True)
class SourceLine:
    source: str
    number: int
    text: str


def read_guide_lines(text: str, source: str = "<guide>") -> list[SourceLine]:
    lines: list[SourceLine] = []
    for number, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(SourceLine(source=source, number=number, text=stripped))
    return lines


def guide_title(text: str) -> str | None:
    """Text of the first ``# `` heading comment, if any."""
    for raw in text.splitlines():
        stripped = raw.strip()
        if stripped.startswith("# ") and stripped[2:].strip():
            return stripped[2:].strip()
    return None


def expand_fragments(lines: Sequence[SourceLine], fragments_dir: Path | None) -> list[SourceLine]:
    expanded: list[SourceLine] = []
    for line in lines:
        match = INCLUDE_RE.match(line.text)
        if match is None:
            expanded.append(line)
            continue
        fragment_lines = _load_fragment(match.group("name"), fragments_dir, line)
        for fragment_line in fragment_lines:
            if INCLUDE_RE.match(fragment_line.text):
                raise _error(fragment_line, "Nested fragment includes are not supported")
        expanded.extend(fragment_lines)
    return expanded


def _load_fragment(name: str, fragments_dir: Path | None, line: SourceLine) -> list[SourceLine]:
    if fragments_dir is None:
        raise _error(line, f"Fragment '{name}' included but no fragments directory is configured")
    candidates = [fragments_dir / name] if Path(name).suffix else [fragments_dir / f"{name}.md", fragments_dir / name]
    for path in candidates:
        if path.is_file():
            return read_guide_lines(path.read_text(encoding="utf-8"), source=str(path))
    raise _error(line, f"Fragment not found: {name} (looked in {fragments_dir})")


def parse_guide(text: str, *, source: str = "<guide>", fragments_dir: Path | None = None) -> list[TourStep]:
    lines = expand_fragments(read_guide_lines(text, source), fragments_dir)
    return [parse_line(line) for line in lines]


def parse_line(line: SourceLine) -> TourStep:
    base, *clauses = split_clauses(line.text)
    metadata = _parse_modifiers(clauses, line)
    for pattern, build in _DIRECTIVES:
        match = pattern.match(base)
        if match is not None:
            step = build(match, line)
            step.metadata = metadata
            return step
    raise _error(line, _hint_for(base))


def split_clauses(text: str) -> list[str]:
    """Split on ``" |"`` outside the quoted text of narration/annotate clauses."""
    parts: list[str] = []
    current: list[str] = []
    in_quotes = False
    index = 0
    while index < len(text):
        char = text[index]
        if char == '"':
            if in_quotes:
                in_quotes = False
            elif "".join(current).strip() in _QUOTED_MODIFIERS:
                in_quotes = True
        if not in_quotes and text.startswith(" |", index):
            parts.append("".join(current).strip())
            current = []
            index += 2
            continue
        current.append(char)
        index += 1
    parts.append("".join(current).strip())
    return parts


def _parse_modifiers(clauses: Sequence[str], line: SourceLine) -> StepMetadata:
    metadata = StepMetadata()
    seen: set[str] = set()
    for clause in clauses:
        key = clause.split(":", 1)[0]
        if key in seen:
            raise _error(line, f"Duplicate modifier: {key}")
        seen.add(key)
        if match := _PREDELAY_RE.match(clause):
            metadata.pre_delay_ms = int(match.group("ms"))
        elif match := _NARRATION_MOD_RE.match(clause):
            metadata.narration = match.group("text")
        elif match := _CAPTURE_RE.match(clause):
            metadata.capture = StepCapture(
                when=match.group("when"),  # type: ignore[arg-type]
                name=match.group("name"),
                full_page=_parse_bool(match.group("full")),
            )
        elif match := _ANNOTATE_MOD_RE.match(clause):
            metadata.annotate = StepAnnotate(instructions=match.group("text"))
        else:
            raise _error(line, f"Unknown modifier: {clause!r}")
    return metadata


def _timeout(match: re.Match[str]) -> int:
    raw = match.group("timeout")
    return int(raw) if raw is not None else DEFAULT_TIMEOUT_MS


def _build_wait_ms(match: re.Match[str], line: SourceLine) -> TourStep:
    duration = int(match.group("ms"))
    if duration <= 0:
        raise _error(line, "Wait duration must be > 0ms")
    return WaitMsStep(duration_ms=duration)


def _build_fill(match: re.Match[str], line: SourceLine) -> TourStep:
    return FillStep(
        label=match.group("label"),
        anchor=match.group("anchor"),
        value=match.group("value"),
        value_env=match.group("env"),
    )


def _build_include(match: re.Match[str], line: SourceLine) -> TourStep:
    raise _error(line, "Include lines must be expanded before parsing")


_Builder = Callable[[re.Match[str], SourceLine], TourStep]

# Order matters: "Wait for" must be tried before "Wait <ms>ms".
_DIRECTIVES: tuple[tuple[re.Pattern[str], _Builder], ...] = (
    (_NARRATION_RE, lambda m, _: NarrationStep(message=m.group("message"))),
    (_GOTO_RE, lambda m, _: GotoStep(route_key=m.group("route"))),
    (_CLICK_RE, lambda m, _: ClickStep(label=m.group("label"), anchor=m.group("anchor"))),
    (_FILL_RE, _build_fill),
    (
        _WAIT_EVENT_RE,
        lambda m, _: WaitForEventStep(label=m.group("label"), name=m.group("event"), timeout_ms=_timeout(m)),
    ),
    (
        _EXPECT_RE,
        lambda m, _: ExpectVisibleStep(label=m.group("label"), anchor=m.group("anchor"), timeout_ms=_timeout(m)),
    ),
    (_WAIT_MS_RE, _build_wait_ms),
    (
        _SCREENSHOT_RE,
        lambda m, _: ScreenshotStep(name=m.group("name"), label=m.group("label"), full_page=_parse_bool(m.group("full"))),
    ),
    (
        _ANNOTATE_RE,
        lambda m, _: AnnotateStep(
            label=m.group("label") or "",
            instructions=m.group("text"),
            target_screenshot=m.group("target"),
        ),
    ),
    (INCLUDE_RE, _build_include),
)


def _parse_bool(raw: str | None) -> bool | None:
    if raw is None:
        return None
    return raw == "true"


def _hint_for(base: str) -> str:
    for prefix, hint in _HINTS:
        if base.startswith(prefix):
            return f"Malformed directive. {hint}"
    return "Unsupported DSL line"


def _error(line: SourceLine, message: str) -> CompileError:
    return CompileError(message, source=line.source, line_number=line.number, line=line.text)
