"""
Manifest serialization module.

Exports the per-tick output of an offline run (normalized and smoothed
metrics plus parameter deltas) to JSON or NumPy for inspection and
downstream tooling.
"""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence, Union

import numpy as np
import structlog

from mixscope.core.metrics import MetricId

if TYPE_CHECKING:
    from mixscope.pipeline import TickResult

logger = structlog.get_logger()


@dataclass
class ManifestMetadata:
    """Metadata header for the mix manifest."""

    duration: float
    fps: int
    n_frames: int
    channels: int
    sample_rate: int
    version: str = "1.0"
    schema_version: str = "1.0"


class ManifestExporter:
    """
    Exports tick results to manifest format.

    Each frame holds the normalized metrics a renderer would read, the
    smoothed metrics they were derived from, and the parameter deltas the
    modulation router produced for that tick.
    """

    def __init__(self, precision: int = 4):
        """
        Initialize the exporter.

        Args:
            precision: Decimal places for floating point values.
        """
        self.precision = precision

    def _round(self, value: float) -> float:
        """Round to configured precision."""
        return round(float(value), self.precision)

    def _round_dict(self, values: dict[str, float]) -> dict[str, float]:
        return {k: self._round(v) for k, v in values.items()}

    def _build_frame(self, index: int, tick: "TickResult", fps: int) -> dict[str, Any]:
        return {
            "frame_index": index,
            "time": self._round(index / fps),
            "normalized": self._round_dict(tick.normalized.flat()),
            "smoothed": self._round_dict(tick.smoothed.flat()),
            "deltas": self._round_dict(tick.deltas),
        }

    def build_manifest(
        self,
        ticks: Sequence["TickResult"],
        metadata: ManifestMetadata,
    ) -> dict[str, Any]:
        """
        Build the complete manifest dictionary.

        Args:
            ticks: Tick results in order.
            metadata: Run metadata.

        Returns:
            Complete manifest dictionary ready for serialization.
        """
        header = asdict(metadata)
        header["duration"] = self._round(metadata.duration)
        return {
            "metadata": header,
            "frames": [
                self._build_frame(i, tick, metadata.fps) for i, tick in enumerate(ticks)
            ],
        }

    def export_json(
        self,
        manifest: dict[str, Any],
        output_path: Union[str, Path],
        indent: int = 2,
    ) -> Path:
        """
        Write a built manifest to a JSON file.

        Args:
            manifest: Output of build_manifest().
            output_path: Path for output JSON file.
            indent: JSON indentation level.

        Returns:
            Path to written file.
        """
        output_path = Path(output_path)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=indent)

        logger.info("manifest.exported", path=str(output_path), format="json")
        return output_path

    def export_numpy(
        self,
        ticks: Sequence["TickResult"],
        metadata: ManifestMetadata,
        output_path: Union[str, Path],
    ) -> Path:
        """
        Export per-metric time series as a NumPy .npz archive.

        Metrics absent for the run's channel mode are stored as NaN.
        Parameter deltas are stored as delta_<param>.

        Args:
            ticks: Tick results in order.
            metadata: Run metadata.
            output_path: Path for output .npz file.

        Returns:
            Path to written file.
        """
        output_path = Path(output_path)
        n = len(ticks)

        arrays: dict[str, np.ndarray] = {}
        for metric in MetricId:
            normalized = np.full(n, np.nan)
            smoothed = np.full(n, np.nan)
            for i, tick in enumerate(ticks):
                value = tick.normalized.value(metric)
                if value is not None:
                    normalized[i] = value
                value = tick.smoothed.value(metric)
                if value is not None:
                    smoothed[i] = value
            arrays[metric.value] = normalized
            arrays[f"smoothed_{metric.value}"] = smoothed

        params = sorted({p for tick in ticks for p in tick.deltas})
        for param in params:
            arrays[f"delta_{param}"] = np.array(
                [tick.deltas.get(param, 0.0) for tick in ticks]
            )

        np.savez_compressed(
            output_path,
            frame_times=np.arange(n) / metadata.fps,
            fps=metadata.fps,
            n_frames=n,
            channels=metadata.channels,
            sample_rate=metadata.sample_rate,
            duration=metadata.duration,
            **arrays,
        )

        logger.info("manifest.exported", path=str(output_path), format="numpy")
        return output_path
