"""Microphone sound classification with a pretrained audio model.

Wraps an externally trained Hugging Face ``audio-classification`` model
(loaded from a local directory) behind a small callback API:

    classifier = SoundClassifier(ClassifierConfig())
    classifier.load()
    classifier.classify(callback)      # callback(error, results), repeatedly

The classifier itself is not implemented here — the ``transformers``
pipeline does feature extraction and inference.  This module only feeds it
audio and ranks its output.

Architecture
------------
::

    ┌────────────┐  float32   ┌──────────┐  rolling window  ┌────────────┐
    │ sounddevice│ ─callback→ │  Queue   │ ─worker thread→  │ transformers│ → callback
    │ InputStream│            │ (chunks) │   (hop = 50 %)   │  pipeline  │
    └────────────┘            └──────────┘                  └────────────┘

The PortAudio callback runs on a C-level audio thread and must stay cheap,
so it only copies the chunk into a ``queue.Queue``.  The worker thread keeps
a window of ``window_seconds`` audio and classifies it every
``window_seconds * (1 - overlap_factor)`` seconds.

Results passed to the callback are ordered by confidence (highest first).
Entries below ``probability_threshold`` are dropped; when nothing is left,
the callback is not invoked for that window.  An inference failure is
reported once as ``callback(error, None)`` and ends classification.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import numpy as np
import sounddevice as sd
import torch
from transformers import pipeline

# ---------------------------------------------------------------------------
# Module-level logger
# ---------------------------------------------------------------------------

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PROJECT_ROOT: Path = Path(__file__).resolve().parents[2]

DEFAULT_MODEL_PATH: Path = PROJECT_ROOT / "audio-model"
"""Fixed model location, relative to the project root."""


def _default_device() -> str:
    return "cuda" if torch.cuda.is_available() else "cpu"


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class ClassifierError(RuntimeError):
    """The model could not be loaded or classification could not run."""


@dataclass(frozen=True)
class ClassificationResult:
    """One ranked (label, confidence) pair."""

    label: str
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {"label": self.label, "confidence": self.confidence}


ClassificationCallback = Callable[
    [Optional[BaseException], Optional[list[ClassificationResult]]],
    None,
]


@dataclass
class ClassifierConfig:
    """Parameters for :class:`SoundClassifier`.

    Attributes
    ----------
    model_path:
        Directory holding the pretrained model (``config.json``, weights and
        feature-extractor config).
    probability_threshold:
        Minimum confidence for a label to be reported.
    sample_rate:
        Capture rate in Hz.  Should match the model's feature extractor.
    chunk_size:
        Samples per PortAudio callback (1024 at 16 kHz ≈ 64 ms).
    window_seconds:
        Length of audio classified at once.
    overlap_factor:
        Overlap between consecutive windows, in [0, 1).  0.5 classifies
        twice per window length.
    top_k:
        Number of labels requested from the pipeline.
    device:
        PyTorch device for inference.
    device_name:
        Optional substring matched against input device names.  ``None``
        selects the system default.
    """

    model_path: Path = DEFAULT_MODEL_PATH
    probability_threshold: float = 0.1
    sample_rate: int = 16000
    chunk_size: int = 1024
    window_seconds: float = 1.0
    overlap_factor: float = 0.5
    top_k: int = 10
    device: str = field(default_factory=_default_device)
    device_name: str | None = None

    @property
    def window_samples(self) -> int:
        return int(self.sample_rate * self.window_seconds)

    @property
    def hop_samples(self) -> int:
        return max(1, int(self.window_samples * (1.0 - self.overlap_factor)))


# ---------------------------------------------------------------------------
# SoundClassifier
# ---------------------------------------------------------------------------


class SoundClassifier:
    """Continuously classifies microphone audio with a pretrained model."""

    _QUEUE_MAXSIZE: int = 256

    def __init__(self, config: ClassifierConfig | None = None) -> None:
        self.config: ClassifierConfig = config or ClassifierConfig()

        self._pipeline: Any = None
        self._queue: queue.Queue[np.ndarray] = queue.Queue(
            maxsize=self._QUEUE_MAXSIZE,
        )
        self._stop_event: threading.Event = threading.Event()
        self._worker: threading.Thread | None = None

        # Counters for observability.
        self.callback_count: int = 0
        self.inference_count: int = 0

        self.running: bool = False

    @property
    def loaded(self) -> bool:
        return self._pipeline is not None

    # -- Static helpers ------------------------------------------------------

    @staticmethod
    def list_devices() -> list[dict[str, Any]]:
        """Return the available audio devices as ``sounddevice`` dicts."""
        devices = sd.query_devices()
        if isinstance(devices, dict):
            return [devices]
        return list(devices)

    # -- Model ---------------------------------------------------------------

    def load(self) -> None:
        """Build the inference pipeline from ``config.model_path``.

        Raises
        ------
        ClassifierError
            If the directory is missing or the model cannot be loaded.
        """
        model_path = Path(self.config.model_path)
        if not model_path.exists():
            raise ClassifierError(f"Model not found at {model_path}")

        logger.info("Loading sound model from %s on %s", model_path, self.config.device)
        t_start = time.perf_counter()
        try:
            self._pipeline = pipeline(
                "audio-classification",
                model=str(model_path),
                device=self.config.device,
            )
        except Exception as exc:
            raise ClassifierError(f"Could not load model from {model_path}: {exc}") from exc

        self._match_model_rate()

        logger.info(
            "Sound model ready in %.0f ms",
            (time.perf_counter() - t_start) * 1_000.0,
        )

    def _match_model_rate(self) -> None:
        """Capture at the feature extractor's rate so no resampling is needed."""
        extractor = getattr(self._pipeline, "feature_extractor", None)
        model_rate = getattr(extractor, "sampling_rate", None)
        if not isinstance(model_rate, int) or model_rate == self.config.sample_rate:
            return
        logger.warning(
            "Model expects %d Hz audio, configured for %d Hz – capturing at %d Hz",
            model_rate,
            self.config.sample_rate,
            model_rate,
        )
        self.config.sample_rate = model_rate

    def rank(self, raw: list[dict[str, Any]]) -> list[ClassificationResult]:
        """Convert pipeline output to ranked, thresholded results."""
        results = [
            ClassificationResult(
                label=str(item.get("label", "")),
                confidence=float(item.get("score", 0.0)),
            )
            for item in raw
        ]
        results = [
            r for r in results
            if r.confidence >= self.config.probability_threshold
        ]
        results.sort(key=lambda r: r.confidence, reverse=True)
        return results

    def predict(self, audio: np.ndarray) -> list[ClassificationResult]:
        """Classify one window of float32 audio."""
        if self._pipeline is None:
            raise ClassifierError("Model is not loaded")

        raw = self._pipeline(
            {"raw": audio, "sampling_rate": self.config.sample_rate},
            top_k=self.config.top_k,
        )
        self.inference_count += 1
        return self.rank(raw)

    # -- Sounddevice callback ------------------------------------------------

    def _audio_callback(
        self,
        indata: np.ndarray,
        frames: int,
        time_info: Any,
        status: sd.CallbackFlags | None,
    ) -> None:
        """Copy a mono float32 chunk onto the queue (PortAudio thread)."""
        if status:
            logger.warning("Audio callback status: %s", status)

        self.callback_count += 1
        chunk: np.ndarray = np.clip(indata, -1.0, 1.0).mean(axis=1).astype(np.float32)

        try:
            self._queue.put_nowait(chunk)
        except queue.Full:
            logger.warning("Audio queue full – dropping chunk")

    # -- Lifecycle -----------------------------------------------------------

    def classify(self, callback: ClassificationCallback) -> None:
        """Start classifying microphone audio in a background thread.

        May be called once per instance.

        Raises
        ------
        ClassifierError
            If the model is not loaded or classification already started.
        """
        if self._pipeline is None:
            raise ClassifierError("Model is not loaded")
        if self._worker is not None:
            raise ClassifierError("Classification already started")

        self._stop_event.clear()
        self._worker = threading.Thread(
            target=self._run,
            args=(callback,),
            daemon=True,
            name="sound-classifier",
        )
        self._worker.start()

    def stop(self) -> None:
        """Signal the worker to exit.  Thread-safe and idempotent."""
        self._stop_event.set()
        self.running = False
        logger.info("Classifier stop signal sent")

    def _run(self, callback: ClassificationCallback) -> None:
        device_index = self._resolve_device()
        logger.info(
            "Starting classification: %d Hz, window=%.2fs, hop=%d samples, device=%s",
            self.config.sample_rate,
            self.config.window_seconds,
            self.config.hop_samples,
            device_index if device_index is not None else "default",
        )

        self.running = True
        try:
            stream = sd.InputStream(
                samplerate=self.config.sample_rate,
                channels=1,
                blocksize=self.config.chunk_size,
                dtype="float32",
                device=device_index,
                callback=self._audio_callback,
            )
            with stream:
                self._classify_loop(callback)
        except Exception as exc:
            logger.exception("Sound classification failed")
            callback(exc, None)
        finally:
            self.running = False
            logger.info(
                "Classification stopped: callbacks=%d inferences=%d",
                self.callback_count,
                self.inference_count,
            )

    def _classify_loop(self, callback: ClassificationCallback) -> None:
        window_samples = self.config.window_samples
        hop_samples = self.config.hop_samples

        window: np.ndarray = np.zeros(0, dtype=np.float32)
        since_last: int = 0

        while not self._stop_event.is_set():
            try:
                chunk = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue

            window = np.concatenate([window, chunk])[-window_samples:]
            since_last += len(chunk)

            if len(window) < window_samples or since_last < hop_samples:
                continue
            since_last = 0

            results = self.predict(window)
            if self.inference_count == 1 or self.inference_count % 50 == 0:
                logger.info(
                    "Inference #%d: %s",
                    self.inference_count,
                    results[0] if results else "(below threshold)",
                )
            if results:
                callback(None, results)

    def _resolve_device(self) -> int | None:
        """Match ``config.device_name`` to a PortAudio device index."""
        if self.config.device_name is None:
            return None

        for idx, dev in enumerate(self.list_devices()):
            if self.config.device_name.lower() in dev.get("name", "").lower():
                logger.info("Matched device %r → index %d", dev["name"], idx)
                return idx

        logger.warning(
            "Device %r not found – falling back to system default",
            self.config.device_name,
        )
        return None


# ---------------------------------------------------------------------------
# Standalone smoke test
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import sys

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    print("\n=== Available audio devices ===")
    for i, dev in enumerate(SoundClassifier.list_devices()):
        in_ch = dev.get("max_input_channels", 0)
        marker = " <-- input" if in_ch > 0 else ""
        print(f"  [{i}] {dev.get('name', '?')} (in={in_ch}){marker}")

    RUN_SECONDS: float = 15.0
    classifier = SoundClassifier()
    try:
        classifier.load()
    except ClassifierError as exc:
        print(f"  FAILED to load model: {exc}")
        sys.exit(1)

    def _print_result(
        error: BaseException | None,
        results: list[ClassificationResult] | None,
    ) -> None:
        if error is not None:
            print(f"  ERROR: {error}")
            return
        top = results[0]
        print(f"  {top.label:<24} {top.confidence * 100:5.1f}%")

    print(f"\n=== Classifying for {RUN_SECONDS}s — try clap, whistle, knock ===")
    classifier.classify(_print_result)
    time.sleep(RUN_SECONDS)
    classifier.stop()
