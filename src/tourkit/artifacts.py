from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def write_text(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def write_json(path: Path, payload: Any) -> Path:
    return write_text(path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


class RunLog:
    """Append-only, timestamped run log."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = path.open("a", encoding="utf-8")

    @property
    def path(self) -> Path:
        return self._path

    def write(self, line: str) -> None:
        if self._file.closed:
            return
        self._file.write(f"{utc_now()} {line}\n")
        self._file.flush()

    def close(self) -> None:
        if self._file.closed:
            return
        self._file.flush()
        self._file.close()

    def __enter__(self) -> "RunLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()


@dataclass(slots=True)
class TranscriptEntry:
    step_index: int
    text: str
    source: str  # "narration" step or "metadata" modifier


class Transcript:
    def __init__(self, tour_id: str) -> None:
        self._tour_id = tour_id
        self._entries: list[TranscriptEntry] = []

    @property
    def entries(self) -> list[TranscriptEntry]:
        return list(self._entries)

    def add(self, step_index: int, text: str, *, source: str = "narration") -> TranscriptEntry:
        entry = TranscriptEntry(step_index=step_index, text=text, source=source)
        self._entries.append(entry)
        return entry

    def to_markdown(self) -> str:
        lines = [f"# {self._tour_id} narration script", ""]
        for entry in self._entries:
            lines.append(f"- [{entry.step_index:03d}] {entry.text}")
        lines.append("")
        return "\n".join(lines)

    def flush(self, directory: Path) -> None:
        write_json(directory / "transcript.json", [asdict(entry) for entry in self._entries])
        write_text(directory / "transcript.md", self.to_markdown())


@dataclass(slots=True)
class Screenshot:
    name: str
    path: str
    step_index: int
    full_page: bool


class ScreenshotRegistry:
    """Track captured screenshots by name during a run."""

    def __init__(self, json_path: Path) -> None:
        self._json_path = json_path
        self._json_path.parent.mkdir(parents=True, exist_ok=True)
        self._records: list[Screenshot] = []

    @property
    def records(self) -> list[Screenshot]:
        return list(self._records)

    @property
    def latest(self) -> Screenshot | None:
        return self._records[-1] if self._records else None

    def record(self, name: str, path: Path, *, step_index: int, full_page: bool) -> Screenshot:
        shot = Screenshot(name=name, path=str(path), step_index=step_index, full_page=full_page)
        self._records.append(shot)
        return shot

    def resolve(self, name: str) -> Screenshot | None:
        for shot in reversed(self._records):
            if shot.name == name:
                return shot
        return None

    def flush(self) -> None:
        write_json(self._json_path, [asdict(shot) for shot in self._records])


@dataclass(slots=True)
class AnnotationJob:
    tour_id: str
    step_index: int
    label: str
    screenshot_path: str
    instructions: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "tourId": self.tour_id,
            "stepIndex": self.step_index,
            "label": self.label,
            "screenshotPath": self.screenshot_path,
            "instructions": self.instructions,
        }


class AnnotationQueue:
    """JSON-lines queue read by the screenshot markup process."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._count = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def count(self) -> int:
        return self._count

    def append(self, job: AnnotationJob) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(job.to_dict(), ensure_ascii=False) + "\n")
        self._count += 1
