"""Runtime configuration for the ingestion/export pipeline."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MOTIONREC_CONFIG"


@dataclass(slots=True)
class PipelineConfig:
    """
    Tuning knobs for buffering, flushing, rate statistics and CSV export.

    The defaults assume a ~140 Hz producer sending small batches.
    """

    normal_threshold: int = 2000
    emergency_threshold: int = 5000
    bulk_append_cutoff: int = 100

    flush_interval_s: float = 2.0
    rate_window_size: int = 20
    recent_rate_count: int = 5
    stats_throttle_s: float = 1.0

    csv_chunk_size: int = 1000
    frequency_window_size: int = 10
    decimal_places: int = 6
    coarse_decimal_places: int = 2
    coarse_threshold: float = 100.0
    timestamp_format: str = "iso"

    # Where the controller saves CSV exports; ``None`` keeps them in memory.
    export_dir: Optional[Path] = None

    def sanitized(self) -> PipelineConfig:
        """Return a copy with derived limits applied."""
        normal = max(1, int(self.normal_threshold))
        timestamp_format = str(self.timestamp_format).lower()
        if timestamp_format not in ("iso", "epoch_ms"):
            timestamp_format = "iso"
        export_dir = self.export_dir
        if export_dir is not None:
            export_dir = Path(export_dir).expanduser()
        return PipelineConfig(
            normal_threshold=normal,
            emergency_threshold=max(normal + 1, int(self.emergency_threshold)),
            bulk_append_cutoff=max(0, int(self.bulk_append_cutoff)),
            flush_interval_s=max(0.05, float(self.flush_interval_s)),
            rate_window_size=max(1, int(self.rate_window_size)),
            recent_rate_count=max(1, int(self.recent_rate_count)),
            stats_throttle_s=max(0.0, float(self.stats_throttle_s)),
            csv_chunk_size=max(1, int(self.csv_chunk_size)),
            frequency_window_size=max(1, int(self.frequency_window_size)),
            decimal_places=max(0, int(self.decimal_places)),
            coarse_decimal_places=max(0, int(self.coarse_decimal_places)),
            coarse_threshold=abs(float(self.coarse_threshold)),
            timestamp_format=timestamp_format,
            export_dir=export_dir,
        )

    @property
    def flush_interval_ms(self) -> int:
        return max(1, int(round(self.flush_interval_s * 1000.0)))


def _field_kinds() -> Dict[str, type]:
    """Map every :class:`PipelineConfig` field to the type its value is coerced to."""
    return {f.name: Path if f.default is None else type(f.default) for f in fields(PipelineConfig)}


def _coerce_value(name: str, kind: type, value: Any) -> Any:
    """Convert a raw YAML value for field ``name``; raise ``ValueError`` on a type mismatch."""
    if kind is Path:
        if value is None:
            return None
        if not isinstance(value, (str, os.PathLike)):
            raise ValueError(f"Config field {name!r} expects a path, got {value!r}")
        return Path(value)
    if value is None or isinstance(value, bool):
        raise ValueError(f"Config field {name!r} expects {kind.__name__}, got {value!r}")
    if kind is str:
        return str(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Config field {name!r} expects {kind.__name__}, got {value!r}") from None
    if kind is int:
        if not number.is_integer():
            raise ValueError(f"Config field {name!r} expects an integer, got {value!r}")
        return int(number)
    return number


def _flatten_sections(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge a top-level ``pipeline`` block over the root keys."""
    merged = {key: value for key, value in data.items() if key != "pipeline"}
    section = data.get("pipeline")
    if isinstance(section, Mapping):
        merged.update(section)
    return merged


def config_from_mapping(data: Mapping[str, Any] | None) -> PipelineConfig:
    """
    Build :class:`PipelineConfig` from ``data``.

    Values are coerced to each field's type (``"0.5"`` is accepted for a float,
    ``2.5`` is rejected for an integer). Unknown keys are logged and ignored.
    """
    if not data:
        return PipelineConfig()
    kinds = _field_kinds()
    payload: Dict[str, Any] = {}
    unknown = []
    for key, value in _flatten_sections(data).items():
        kind = kinds.get(key)
        if kind is None:
            unknown.append(str(key))
            continue
        payload[key] = _coerce_value(key, kind, value)
    if unknown:
        logger.debug("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
    return PipelineConfig(**payload).sanitized()


def load_config(path: str | Path | None = None) -> PipelineConfig:
    """
    Load configuration from ``path``.

    When ``path`` is omitted the ``MOTIONREC_CONFIG`` environment variable is
    consulted. Missing files fall back to the default :class:`PipelineConfig`.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is None:
        return PipelineConfig()
    cfg_path = Path(path).expanduser()
    if not cfg_path.exists():
        return PipelineConfig()
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Expected mapping in {cfg_path}, got {type(raw).__name__}")
    return config_from_mapping(raw)


__all__ = ["CONFIG_ENV_VAR", "PipelineConfig", "config_from_mapping", "load_config"]
