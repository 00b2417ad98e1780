"""Core analysis modules."""

from mixscope.core.analyzer import FeatureExtractor
from mixscope.core.frame import AudioFrame
from mixscope.core.metrics import MetricId, MetricSet
from mixscope.core.polisher import AdaptiveNormalizer, MinMaxBounds, TemporalSmoother
from mixscope.core.source import (
    AnalyserNode,
    ArrayBufferSource,
    CaptureError,
    FileBufferSource,
    SpectralBufferSource,
)

__all__ = [
    "AdaptiveNormalizer",
    "AnalyserNode",
    "ArrayBufferSource",
    "AudioFrame",
    "CaptureError",
    "FeatureExtractor",
    "FileBufferSource",
    "MetricId",
    "MetricSet",
    "MinMaxBounds",
    "SpectralBufferSource",
    "TemporalSmoother",
]
