from __future__ import annotations

from .compiler import CompiledGuide, compile_guide, compile_guide_text, validate_tour, write_tour
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
    TourFile,
    TourStep,
    WaitForEventStep,
    WaitMsStep,
    load_tour,
)
from .parser import parse_guide, parse_line
from .schema import TOUR_SCHEMA, validate_tour_payload
from .suggest import levenshtein, nearest

__all__ = [
    "AnnotateStep",
    "ClickStep",
    "CompiledGuide",
    "DEFAULT_TIMEOUT_MS",
    "ExpectVisibleStep",
    "FillStep",
    "GotoStep",
    "NarrationStep",
    "ScreenshotStep",
    "StepAnnotate",
    "StepCapture",
    "StepMetadata",
    "TOUR_SCHEMA",
    "TourFile",
    "TourStep",
    "WaitForEventStep",
    "WaitMsStep",
    "compile_guide",
    "compile_guide_text",
    "levenshtein",
    "load_tour",
    "nearest",
    "parse_guide",
    "parse_line",
    "validate_tour",
    "validate_tour_payload",
    "write_tour",
]
