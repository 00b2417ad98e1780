"""Mix-quality audio analysis and modulation routing for reactive visuals."""

from mixscope.config import AnalysisConfig
from mixscope.core.analyzer import FeatureExtractor
from mixscope.core.metrics import MetricId, MetricSet
from mixscope.core.polisher import AdaptiveNormalizer, TemporalSmoother
from mixscope.core.source import ArrayBufferSource, CaptureError, FileBufferSource
from mixscope.io.exporter import ManifestExporter
from mixscope.modulation.router import ModulationRouter
from mixscope.pipeline import MixAnalysisPipeline, TickResult

__version__ = "0.1.0"
__all__ = [
    "AnalysisConfig",
    "FeatureExtractor",
    "TemporalSmoother",
    "AdaptiveNormalizer",
    "ArrayBufferSource",
    "FileBufferSource",
    "CaptureError",
    "MetricId",
    "MetricSet",
    "ModulationRouter",
    "ManifestExporter",
    "MixAnalysisPipeline",
    "TickResult",
]
