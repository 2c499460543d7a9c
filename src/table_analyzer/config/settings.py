from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import yaml


@dataclass
class AnalyzerSettings:
    delimiter: str = ","
    missing_markers: list[str] = field(default_factory=lambda: ["", "NA"])
    temporal_format: str | None = None
    solver: Literal["qr", "lsqr"] = "qr"
    max_iterations: int | None = None
    rank_tolerance: float = 1e-7
    assumption_alpha: float = 0.05
    figure_format: str = "png"
    figure_dpi: int = 150
    figure_width: float = 8.0
    figure_height: float = 5.0
    theme: Literal["default", "minimal", "dark"] = "default"
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if len(self.delimiter) != 1:
            raise ValueError(f"Delimiter must be a single character, got {self.delimiter!r}.")
        if self.solver not in {"qr", "lsqr"}:
            raise ValueError(f"Unknown solver: {self.solver!r}")
        if self.max_iterations is not None and self.max_iterations < 1:
            raise ValueError("max_iterations must be a positive integer when set.")

    @classmethod
    def from_yaml(cls, path: Path | None) -> "AnalyzerSettings":
        if path is None:
            return cls()
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")

        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
        return cls(**payload)
