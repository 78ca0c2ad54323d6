"""Unit tests for src.core.sound_classifier – microphone classification wrapper.

Hardware- and model-independent: sounddevice and the transformers pipeline
are mocked so that tests run on any machine without a microphone or model.

Tests cover:
    - ClassifierConfig defaults and derived window sizes
    - load(): missing model, pipeline construction, wrapped failures
    - rank(): ordering and probability threshold
    - predict(): pipeline input format
    - _audio_callback mono conversion and queueing
    - _classify_loop windowing / hop and callback contract
    - _run error path: one callback(error, None), no retry
    - classify() guards (not loaded, already started)
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from src.core.sound_classifier import (
    DEFAULT_MODEL_PATH,
    ClassificationResult,
    ClassifierConfig,
    ClassifierError,
    SoundClassifier,
)


def _small_config(**overrides: Any) -> ClassifierConfig:
    """8 kHz, 0.25 s windows, 50 % overlap → window 2000, hop 1000."""
    values: dict[str, Any] = {
        "sample_rate": 8000,
        "window_seconds": 0.25,
        "overlap_factor": 0.5,
        "device": "cpu",
    }
    values.update(overrides)
    return ClassifierConfig(**values)


# ---------------------------------------------------------------------------
# ClassifierConfig
# ---------------------------------------------------------------------------

class TestClassifierConfig:

    def test_defaults(self) -> None:
        cfg = ClassifierConfig()
        assert cfg.probability_threshold == 0.1
        assert cfg.sample_rate == 16000
        assert cfg.chunk_size == 1024
        assert cfg.device_name is None
        assert cfg.device in ("cpu", "cuda")

    def test_model_path_relative_to_project(self) -> None:
        assert ClassifierConfig().model_path == DEFAULT_MODEL_PATH
        assert DEFAULT_MODEL_PATH.name == "audio-model"

    def test_window_and_hop(self) -> None:
        cfg = _small_config()
        assert cfg.window_samples == 2000
        assert cfg.hop_samples == 1000


# ---------------------------------------------------------------------------
# load
# ---------------------------------------------------------------------------

class TestLoad:

    def test_missing_model_raises(self, tmp_path: Path) -> None:
        classifier = SoundClassifier(_small_config(model_path=tmp_path / "missing"))
        with pytest.raises(ClassifierError):
            classifier.load()
        assert not classifier.loaded

    @patch("src.core.sound_classifier.pipeline")
    def test_builds_audio_classification_pipeline(
        self, mock_pipeline: MagicMock, tmp_path: Path,
    ) -> None:
        classifier = SoundClassifier(_small_config(model_path=tmp_path))
        classifier.load()

        mock_pipeline.assert_called_once_with(
            "audio-classification",
            model=str(tmp_path),
            device="cpu",
        )
        assert classifier.loaded

    @patch("src.core.sound_classifier.pipeline")
    def test_adopts_feature_extractor_rate(
        self, mock_pipeline: MagicMock, tmp_path: Path,
    ) -> None:
        mock_pipeline.return_value.feature_extractor.sampling_rate = 22050
        classifier = SoundClassifier(_small_config(model_path=tmp_path, sample_rate=16000))
        classifier.load()
        assert classifier.config.sample_rate == 22050
        assert classifier.config.window_samples == int(22050 * 0.25)

    @patch("src.core.sound_classifier.pipeline")
    def test_matching_rate_kept(
        self, mock_pipeline: MagicMock, tmp_path: Path,
    ) -> None:
        mock_pipeline.return_value.feature_extractor.sampling_rate = 16000
        classifier = SoundClassifier(_small_config(model_path=tmp_path, sample_rate=16000))
        classifier.load()
        assert classifier.config.sample_rate == 16000

    @patch("src.core.sound_classifier.pipeline")
    def test_pipeline_failure_wrapped(
        self, mock_pipeline: MagicMock, tmp_path: Path,
    ) -> None:
        mock_pipeline.side_effect = OSError("no config.json")
        classifier = SoundClassifier(_small_config(model_path=tmp_path))
        with pytest.raises(ClassifierError, match="no config.json"):
            classifier.load()


# ---------------------------------------------------------------------------
# rank / predict
# ---------------------------------------------------------------------------

class TestRank:

    def test_sorted_by_confidence(self) -> None:
        classifier = SoundClassifier(_small_config())
        ranked = classifier.rank([
            {"label": "Knock", "score": 0.2},
            {"label": "Clap", "score": 0.7},
        ])
        assert ranked == [
            ClassificationResult("Clap", 0.7),
            ClassificationResult("Knock", 0.2),
        ]

    def test_threshold_drops_low_scores(self) -> None:
        classifier = SoundClassifier(_small_config(probability_threshold=0.3))
        ranked = classifier.rank([
            {"label": "Clap", "score": 0.65},
            {"label": "Knock", "score": 0.29},
        ])
        assert [r.label for r in ranked] == ["Clap"]

    def test_all_below_threshold(self) -> None:
        classifier = SoundClassifier(_small_config(probability_threshold=0.5))
        assert classifier.rank([{"label": "Clap", "score": 0.1}]) == []

    def test_to_dict(self) -> None:
        assert ClassificationResult("Clap", 0.5).to_dict() == {"label": "Clap", "confidence": 0.5}


class TestPredict:

    def test_requires_loaded_model(self) -> None:
        with pytest.raises(ClassifierError):
            SoundClassifier(_small_config()).predict(np.zeros(2000, dtype=np.float32))

    def test_pipeline_input(self) -> None:
        classifier = SoundClassifier(_small_config(top_k=3))
        classifier._pipeline = MagicMock(return_value=[{"label": "Clap", "score": 0.9}])
        audio = np.zeros(2000, dtype=np.float32)

        results = classifier.predict(audio)

        args, kwargs = classifier._pipeline.call_args
        assert args[0]["sampling_rate"] == 8000
        assert args[0]["raw"] is audio
        assert kwargs == {"top_k": 3}
        assert results == [ClassificationResult("Clap", 0.9)]
        assert classifier.inference_count == 1


# ---------------------------------------------------------------------------
# _audio_callback
# ---------------------------------------------------------------------------

class TestAudioCallback:

    def test_enqueues_mono_float32(self) -> None:
        classifier = SoundClassifier(_small_config())
        stereo = np.stack([np.full(1024, 0.5), np.full(1024, -0.1)], axis=1).astype(np.float32)

        classifier._audio_callback(stereo, frames=1024, time_info=None, status=None)

        chunk = classifier._queue.get_nowait()
        assert chunk.shape == (1024,)
        assert chunk.dtype == np.float32
        assert np.allclose(chunk, 0.2)
        assert classifier.callback_count == 1

    def test_clips_out_of_range(self) -> None:
        classifier = SoundClassifier(_small_config())
        loud = np.full((16, 1), 3.0, dtype=np.float32)
        classifier._audio_callback(loud, frames=16, time_info=None, status=None)
        assert classifier._queue.get_nowait().max() == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# _classify_loop
# ---------------------------------------------------------------------------

class TestClassifyLoop:
    """Windowing, hop and the callback contract."""

    def _feed(self, classifier: SoundClassifier, chunks: int, size: int = 1000) -> None:
        for _ in range(chunks):
            classifier._queue.put_nowait(np.zeros(size, dtype=np.float32))

    def test_first_inference_after_full_window(self) -> None:
        classifier = SoundClassifier(_small_config())
        calls: list[tuple[Any, Any]] = []

        def _pipe(inputs: dict[str, Any], top_k: int) -> list[dict[str, Any]]:
            assert len(inputs["raw"]) == 2000
            return [{"label": "Clap", "score": 0.8}]

        def _callback(error: Any, results: Any) -> None:
            calls.append((error, results))
            if len(calls) == 3:
                classifier.stop()

        classifier._pipeline = _pipe
        # 1000-sample chunks: inference on chunks 2, 3, 4 (hop = 1000).
        self._feed(classifier, 4)
        classifier._classify_loop(_callback)

        assert len(calls) == 3
        assert all(error is None for error, _ in calls)
        assert calls[0][1] == [ClassificationResult("Clap", 0.8)]

    def test_no_callback_below_threshold(self) -> None:
        classifier = SoundClassifier(_small_config(probability_threshold=0.5))
        callback = MagicMock()

        def _pipe(inputs: dict[str, Any], top_k: int) -> list[dict[str, Any]]:
            classifier.stop()
            return [{"label": "Clap", "score": 0.2}]

        classifier._pipeline = _pipe
        self._feed(classifier, 2)
        classifier._classify_loop(callback)

        callback.assert_not_called()
        assert classifier.inference_count == 1


# ---------------------------------------------------------------------------
# _run error path
# ---------------------------------------------------------------------------

class TestRunErrors:

    @patch("src.core.sound_classifier.sd")
    def test_inference_error_reported_once(self, mock_sd: MagicMock) -> None:
        classifier = SoundClassifier(_small_config())
        classifier._pipeline = MagicMock(side_effect=RuntimeError("bad tensor"))
        for _ in range(3):
            classifier._queue.put_nowait(np.zeros(1000, dtype=np.float32))
        callback = MagicMock()

        classifier._run(callback)

        callback.assert_called_once()
        error, results = callback.call_args[0]
        assert isinstance(error, RuntimeError)
        assert results is None
        assert classifier.running is False
        # No retry: only the failing inference ran.
        assert classifier._pipeline.call_count == 1

    @patch("src.core.sound_classifier.sd")
    def test_stream_open_error_reported(self, mock_sd: MagicMock) -> None:
        mock_sd.InputStream.side_effect = OSError("No device")
        classifier = SoundClassifier(_small_config())
        classifier._pipeline = MagicMock()
        callback = MagicMock()

        classifier._run(callback)

        error, results = callback.call_args[0]
        assert isinstance(error, OSError)
        assert results is None


# ---------------------------------------------------------------------------
# classify guards / stop
# ---------------------------------------------------------------------------

class TestClassify:

    def test_requires_loaded_model(self) -> None:
        with pytest.raises(ClassifierError):
            SoundClassifier(_small_config()).classify(MagicMock())

    def test_second_call_rejected(self) -> None:
        classifier = SoundClassifier(_small_config())
        classifier._pipeline = MagicMock()
        started = threading.Event()

        with patch.object(SoundClassifier, "_run", side_effect=lambda cb: started.set()):
            classifier.classify(MagicMock())
            assert started.wait(timeout=2)
            with pytest.raises(ClassifierError):
                classifier.classify(MagicMock())

    def test_stop_is_idempotent(self) -> None:
        classifier = SoundClassifier(_small_config())
        classifier.stop()
        classifier.stop()
        assert classifier.running is False


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------

class TestDevices:

    @patch("src.core.sound_classifier.sd")
    def test_list_devices(self, mock_sd: MagicMock) -> None:
        mock_sd.query_devices.return_value = [{"name": "USB Mic"}, {"name": "Built-in"}]
        assert [d["name"] for d in SoundClassifier.list_devices()] == ["USB Mic", "Built-in"]

    @patch("src.core.sound_classifier.sd")
    def test_resolve_device_by_name(self, mock_sd: MagicMock) -> None:
        mock_sd.query_devices.return_value = [{"name": "Built-in"}, {"name": "USB Mic"}]
        classifier = SoundClassifier(_small_config(device_name="usb"))
        assert classifier._resolve_device() == 1

    @patch("src.core.sound_classifier.sd")
    def test_unknown_device_falls_back(self, mock_sd: MagicMock) -> None:
        mock_sd.query_devices.return_value = [{"name": "Built-in"}]
        classifier = SoundClassifier(_small_config(device_name="Missing"))
        assert classifier._resolve_device() is None
