"""Tests for the MixAnalysisPipeline module."""

import json

import numpy as np
import pytest

from mixscope.core.metrics import MetricSet
from mixscope.core.source import ArrayBufferSource, CaptureError
from mixscope.modulation.router import ModulationRouter
from mixscope.pipeline import MixAnalysisPipeline, TickResult


class FailingSource:
    """Source whose every read raises."""

    sample_rate = 22050
    channels = 1

    def read(self):
        raise RuntimeError("device lost")


class ScriptedSource:
    """Source that replays a fixed list of frames."""

    sample_rate = 22050

    def __init__(self, frames):
        self._frames = list(frames)
        self.channels = self._frames[0].channels
        self.closed = False

    def read(self):
        return self._frames.pop(0) if self._frames else None

    def close(self):
        self.closed = True


class TestCaptureLifecycle:
    """Tests for start, stop and tick gating."""

    @pytest.fixture
    def pipeline(self, config):
        return MixAnalysisPipeline(config=config)

    def test_disabled_tick_is_neutral(self, pipeline):
        result = pipeline.tick()

        assert isinstance(result, TickResult)
        assert result.normalized.amplitude == 0.5
        assert result.normalized.coherence == 1.0
        assert result.deltas == {}

    def test_start_stop(self, pipeline, pure_sine, config):
        y, sr = pure_sine
        pipeline.start(ArrayBufferSource(y, sr, config))

        assert pipeline.enabled
        pipeline.stop()
        assert not pipeline.enabled
        assert pipeline.source is None

    def test_start_while_running_is_noop(self, pipeline, pure_sine, config):
        y, sr = pure_sine
        first = ArrayBufferSource(y, sr, config)
        pipeline.start(first)
        pipeline.start(ArrayBufferSource(y, sr, config))

        assert pipeline.source is first

    def test_stop_is_idempotent(self, pipeline, make_frame):
        source = ScriptedSource([make_frame()])
        pipeline.start(source)
        pipeline.stop()
        pipeline.stop()

        assert source.closed
        assert not pipeline.enabled

    def test_rejects_non_source(self, pipeline):
        with pytest.raises(CaptureError):
            pipeline.start(object())
        assert not pipeline.enabled

    def test_exhaustion_stops(self, pipeline, make_frame):
        pipeline.start(ScriptedSource([make_frame(), make_frame()]))
        pipeline.tick()
        pipeline.tick()
        result = pipeline.tick()

        assert not pipeline.enabled
        assert result.normalized.amplitude == 0.5

    def test_failing_source_degrades(self, pipeline):
        pipeline.start(FailingSource())
        result = pipeline.tick()

        assert pipeline.enabled
        assert result.normalized.coherence == 1.0
        assert result.deltas == {}

    def test_restart_resets_state(self, pipeline, pure_sine, config):
        y, sr = pure_sine
        pipeline.start(ArrayBufferSource(y, sr, config))
        for _ in range(15):
            pipeline.tick()
        pipeline.stop()

        pipeline.start(ArrayBufferSource(y, sr, config))

        assert pipeline.normalizer.history_length("amplitude") == 0
        assert pipeline.smoother.smoothed is None
        assert pipeline.last_result.smoothed.amplitude == 0.5


class TestTick:
    """Tests for the per-tick metric flow."""

    def test_outputs_in_range(self, mixed_signal, config):
        y, sr = mixed_signal
        pipeline = MixAnalysisPipeline(config=config)
        pipeline.start(ArrayBufferSource(y, sr, config))

        for _ in range(30):
            result = pipeline.tick()

        for value in result.normalized.flat().values():
            assert 0.0 <= value <= 1.0
        assert set(result.deltas) == {"scale", "spikiness", "fill_size"}

    def test_mono_has_no_stereo_metrics(self, pure_sine, config):
        y, sr = pure_sine
        pipeline = MixAnalysisPipeline(config=config)
        pipeline.start(ArrayBufferSource(y, sr, config))
        result = pipeline.tick()

        assert result.raw.phase_risk is None
        assert result.normalized.pan_position is None

    def test_stereo_metrics(self, mixed_signal, config):
        y, sr = mixed_signal
        panned = np.stack([0.3 * y, 0.9 * y])
        pipeline = MixAnalysisPipeline(config=config)
        pipeline.start(ArrayBufferSource(panned, sr, config))
        for _ in range(20):
            result = pipeline.tick()

        assert result.raw.phase_risk is not None
        assert result.raw.stereo_width is not None
        # The chord sits in the mid band, louder on the right
        assert result.raw.pan_position[1] > 0.0

    def test_channel_mode_change(self, config, make_frame):
        mono = make_frame(frequency=0.3)
        stereo = make_frame(frequency=0.3, left=0.2, right=0.4)
        pipeline = MixAnalysisPipeline(config=config)
        pipeline.start(ScriptedSource([mono, mono, stereo]))

        pipeline.tick()
        pipeline.tick()
        result = pipeline.tick()

        assert pipeline.enabled
        assert result.smoothed.phase_risk == result.raw.phase_risk

    def test_deltas_use_smoothed_metrics(self, config, make_frame):
        router = ModulationRouter({})
        router.import_mappings(
            {"fill_size": {"enabled": True, "slots": [{"source": "rms", "amount": 1, "smoothing": 0}]}}
        )
        t = np.arange(2048) / 22050
        loud = make_frame(time=0.4 * np.sin(2 * np.pi * 440 * t))
        pipeline = MixAnalysisPipeline(config=config, router=router)
        pipeline.start(ScriptedSource([loud, make_frame()]))

        pipeline.tick()
        result = pipeline.tick()

        assert result.deltas["fill_size"] == pytest.approx(result.smoothed.amplitude)

    def test_apply(self, pure_sine, config):
        y, sr = pure_sine
        pipeline = MixAnalysisPipeline(config=config)
        pipeline.start(ArrayBufferSource(y, sr, config))
        pipeline.tick()

        params = pipeline.apply({"scale": 0.5, "hue": 180.0})

        assert "hue" not in params
        assert 0.1 <= params["scale"] <= 2.0

    def test_apply_reuses_tick_deltas(self, config, make_frame):
        """apply() adds the tick's deltas without stepping slot smoothing again."""
        router = ModulationRouter({})
        router.import_mappings(
            {"fill_size": {"enabled": True, "slots": [{"source": "rms", "amount": 1, "smoothing": 0.9}]}}
        )
        t = np.arange(2048) / 22050
        loud = make_frame(time=0.4 * np.sin(2 * np.pi * 440 * t))
        pipeline = MixAnalysisPipeline(config=config, router=router)
        pipeline.start(ScriptedSource([make_frame(), loud]))

        pipeline.tick()
        result = pipeline.tick()
        accumulator = router.accumulator("fill_size", 0)

        first = pipeline.apply({"fill_size": 0.0})
        second = pipeline.apply({"fill_size": 0.0})

        assert first == {"fill_size": pytest.approx(result.deltas["fill_size"])}
        assert second == first
        assert router.accumulator("fill_size", 0) == accumulator


class TestProcess:
    """Tests for offline file processing."""

    def test_process_returns_manifest(self, temp_audio_file):
        pipeline = MixAnalysisPipeline()
        result = pipeline.process(temp_audio_file)

        assert "manifest" in result
        assert result["channels"] == 1
        assert result["fps"] == 60
        assert result["duration"] == pytest.approx(2.0, abs=0.01)
        assert result["n_frames"] == len(result["manifest"]["frames"])
        assert result["n_frames"] > 100
        assert not pipeline.enabled

    def test_process_writes_json(self, temp_stereo_file, tmp_path):
        output = tmp_path / "out.json"
        result = MixAnalysisPipeline().process(temp_stereo_file, output_path=output)

        assert result["output_path"] == str(output)
        with open(output) as f:
            manifest = json.load(f)
        assert manifest["metadata"]["channels"] == 2
        assert "phase_risk" in manifest["frames"][0]["normalized"]

    def test_process_writes_numpy(self, temp_audio_file, tmp_path):
        output = tmp_path / "out.npz"
        MixAnalysisPipeline().process(temp_audio_file, output_path=output, format="numpy")

        data = np.load(output)
        assert "rms" in data
        assert "smoothed_harshness" in data
        assert "delta_scale" in data
        assert np.all(np.isnan(data["phase_risk"]))

    def test_process_with_mappings(self, temp_audio_file):
        mappings = {"hue": {"enabled": True, "slots": [{"source": "mid"}]}}
        result = MixAnalysisPipeline().process(temp_audio_file, mappings=mappings)

        assert "hue" in result["manifest"]["frames"][-1]["deltas"]

    def test_process_rejects_bad_mappings(self, temp_audio_file):
        with pytest.raises(ValueError):
            MixAnalysisPipeline().process(temp_audio_file, mappings={"brightness": {}})

    def test_process_missing_file(self, tmp_path):
        with pytest.raises(CaptureError):
            MixAnalysisPipeline().process(tmp_path / "missing.wav")

    def test_process_mono_downmix(self, temp_stereo_file):
        result = MixAnalysisPipeline().process(temp_stereo_file, mono=True)

        assert result["channels"] == 1


def test_tick_result_neutral():
    result = TickResult.neutral()

    assert isinstance(result.raw, MetricSet)
    assert result.deltas == {}
