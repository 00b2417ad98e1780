"""
Main mix analysis pipeline.

Owns one capture session and runs the per-tick flow: buffers, raw
metrics, smoothed metrics, normalized metrics and modulation deltas.
Also runs whole files offline through the same tick loop.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

import structlog

from mixscope.config import AnalysisConfig
from mixscope.core.analyzer import FeatureExtractor
from mixscope.core.metrics import MetricSet
from mixscope.core.polisher import AdaptiveNormalizer, TemporalSmoother
from mixscope.core.source import CaptureError, FileBufferSource, SpectralBufferSource
from mixscope.io.exporter import ManifestExporter, ManifestMetadata
from mixscope.modulation.router import ModulationRouter

logger = structlog.get_logger()


@dataclass
class TickResult:
    """Everything one tick produced."""

    raw: MetricSet
    smoothed: MetricSet
    normalized: MetricSet
    deltas: dict[str, float] = field(default_factory=dict)

    @classmethod
    def neutral(cls) -> "TickResult":
        return cls(
            raw=MetricSet.neutral(),
            smoothed=MetricSet.neutral(),
            normalized=MetricSet.neutral(),
        )


class MixAnalysisPipeline:
    """
    Single-stream capture session and tick loop.

    Ticks are strictly sequential. start() while running is a no-op,
    stop() is idempotent, and every start performs a full reset so that
    no statistics leak from one session into the next.
    """

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        router: ModulationRouter | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Analysis tunables.
            router: Modulation router. A router with default mappings is
                    created if None.
        """
        self.config = config or AnalysisConfig()
        self.extractor = FeatureExtractor()
        self.smoother = TemporalSmoother(self.config.smoothing_factor)
        self.normalizer = AdaptiveNormalizer(self.config)
        self.router = router or ModulationRouter()
        self.exporter = ManifestExporter()

        self._source: SpectralBufferSource | None = None
        self._enabled = False
        self._channels: int | None = None
        self._ticks = 0
        self._last: TickResult | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def source(self) -> SpectralBufferSource | None:
        return self._source

    @property
    def last_result(self) -> TickResult:
        return self._last or TickResult.neutral()

    def reset(self) -> None:
        """Clear every piece of per-session state."""
        self.extractor.reset()
        self.smoother.reset()
        self.normalizer.reset()
        self.router.reset_smoothing()
        self._channels = None
        self._ticks = 0
        self._last = None

    def start(self, source: SpectralBufferSource) -> None:
        """
        Begin a capture session.

        Args:
            source: Buffer source to read one frame per tick from.

        Raises:
            CaptureError: If the source is unusable.
        """
        if self._enabled:
            return

        if not isinstance(source, SpectralBufferSource):
            raise CaptureError(f"Not a spectral buffer source: {type(source).__name__}")
        if source.channels not in (1, 2):
            raise CaptureError(f"Unsupported channel count: {source.channels}")

        self.reset()
        self._source = source
        self._enabled = True
        logger.info(
            "capture.started",
            channels=source.channels,
            sample_rate=source.sample_rate,
        )

    def stop(self) -> None:
        """End the capture session; safe to call repeatedly."""
        if not self._enabled:
            return

        source = self._source
        self._enabled = False
        self._source = None
        close = getattr(source, "close", None)
        if callable(close):
            close()
        logger.info("capture.stopped", ticks=self._ticks)

    def tick(self) -> TickResult:
        """
        Run one tick.

        Never raises. While disabled, after the source runs dry, or if
        anything fails, the neutral placeholder is returned.

        Returns:
            Raw, smoothed and normalized metrics plus parameter deltas.
        """
        if not self._enabled:
            return TickResult.neutral()

        try:
            frame = self._source.read()
            if frame is None:
                logger.info("capture.exhausted", ticks=self._ticks)
                self.stop()
                return TickResult.neutral()

            if self._channels is not None and frame.channels != self._channels:
                logger.warning(
                    "capture.channel_mode_changed",
                    previous=self._channels,
                    channels=frame.channels,
                )
            self._channels = frame.channels

            raw = self.extractor.extract(frame)
            smoothed = self.smoother.update(raw)
            normalized = self.normalizer.update(smoothed)
            deltas = self.router.compute_deltas(smoothed)
        except Exception:
            logger.exception("tick.failed", tick=self._ticks)
            return TickResult.neutral()

        self._ticks += 1
        self._last = TickResult(raw=raw, smoothed=smoothed, normalized=normalized, deltas=deltas)
        return self._last

    def apply(self, base_params: dict[str, float]) -> dict[str, float]:
        """
        Modulate parameter values with the latest tick's deltas.

        The router is not evaluated again, so slot smoothing advances once
        per tick no matter how often this is called.

        Returns:
            Values for the modulated parameters only.
        """
        return self.router.apply_deltas(base_params, self.last_result.deltas)

    def process(
        self,
        audio_path: Union[str, Path],
        output_path: Union[str, Path] | None = None,
        format: str = "json",
        mappings: str | dict[str, Any] | None = None,
        sample_rate: int | None = None,
        mono: bool = False,
    ) -> dict[str, Any]:
        """
        Run a whole audio file through the tick loop.

        Args:
            audio_path: Path to input audio file.
            output_path: Path for output manifest. If None, only returns dict.
            format: Output format ("json" or "numpy").
            mappings: Modulation table to import before running.
            sample_rate: Resample to this rate. None keeps the file's rate.
            mono: Downmix the file before analysis.

        Returns:
            Dictionary containing manifest data and processing info.

        Raises:
            CaptureError: If the file cannot be loaded.
            ValueError: If mappings are given and fail to import.
        """
        if mappings is not None and not self.router.import_mappings(mappings):
            raise ValueError("Modulation mappings failed to import")

        source = FileBufferSource(
            audio_path,
            config=self.config,
            sample_rate=sample_rate,
            mono=mono,
        )
        duration = source.duration
        channels = source.channels
        sr = source.sample_rate

        self.stop()
        self.start(source)
        ticks: list[TickResult] = []
        for _ in range(source.n_frames + 1):
            result = self.tick()
            if not self._enabled:
                break
            ticks.append(result)
        self.stop()

        metadata = ManifestMetadata(
            duration=duration,
            fps=self.config.target_fps,
            n_frames=len(ticks),
            channels=channels,
            sample_rate=sr,
        )
        manifest = self.exporter.build_manifest(ticks, metadata)

        result = {
            "manifest": manifest,
            "duration": duration,
            "n_frames": len(ticks),
            "fps": self.config.target_fps,
            "channels": channels,
        }

        if output_path:
            if format == "numpy":
                written = self.exporter.export_numpy(ticks, metadata, output_path)
            else:
                written = self.exporter.export_json(manifest, output_path)
            result["output_path"] = str(written)

        return result
