from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


class TourkitError(Exception):
    """Base class for every error raised by tourkit."""


class ConfigError(TourkitError):
    pass


class CompileError(TourkitError):
    """A guide line that matches none of the directive forms."""

    def __init__(
        self,
        message: str,
        *,
        source: str = "<guide>",
        line_number: int | None = None,
        line: str | None = None,
    ) -> None:
        self.reason = message
        self.source = source
        self.line_number = line_number
        self.line = line
        location = source if line_number is None else f"{source}:{line_number}"
        text = f"{location}: {message}"
        if line is not None:
            text += f"\nLine: {line}"
        super().__init__(text)


@dataclass(slots=True)
class ValidationIssue:
    kind: str  # "routeKey" | "event" | "anchor"
    value: str
    step_indexes: list[int]
    suggestions: list[str]

    def describe(self) -> str:
        steps = ", ".join(str(index) for index in self.step_indexes)
        lines = [f"Unknown {self.kind}: {self.value} (step {steps})"]
        if self.suggestions:
            lines.append(f"  Nearest: {', '.join(self.suggestions)}")
        else:
            lines.append("  Nearest: (no candidates)")
        return "\n".join(lines)


class TourValidationError(TourkitError):
    """Every unresolved reference found in a parsed guide."""

    def __init__(self, issues: Sequence[ValidationIssue]) -> None:
        self.issues = list(issues)
        super().__init__(format_issues(self.issues))


def format_issues(issues: Sequence[ValidationIssue]) -> str:
    header = f"{len(issues)} validation error(s)"
    return "\n".join([header, *(issue.describe() for issue in issues)])


class CrawlRouteError(TourkitError):
    def __init__(self, route_key: str, reason: str) -> None:
        self.route_key = route_key
        self.reason = reason
        super().__init__(f"{route_key}: {reason}")


class RuntimeStepError(TourkitError):
    """A step that failed during replay; ``kind`` is a ``FailureKind`` value."""

    def __init__(self, message: str, *, kind: str, step_index: int = -1, step_type: str = "") -> None:
        self.message = message
        self.kind = kind
        self.step_index = step_index
        self.step_type = step_type
        super().__init__(message)


class BrowserLaunchError(TourkitError):
    pass
