"""One-shot demo session: load the model, start classifying, publish events.

Nothing happens until the user presses *start*.  The first
:meth:`DemoSession.start` call spawns a loader thread; every later call is a
no-op, so the model is never reloaded and only one classification stream
ever exists.

The session talks to the dashboard exclusively through the message bus:

* ``status``      — ``{"state": "loading" | "listening" | "error", "text"}``
* ``prediction``  — ``{"results": [{"label", "confidence"}, …]}``

Errors (model load or inference) are logged and surfaced as the ``error``
status.  There is no retry; the page has to be reloaded and the server
restarted to try again.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import zmq

from src.core.message_bus import (
    PREDICTION_PORT,
    PREDICTION_TOPIC,
    STATUS_TOPIC,
    MessageBus,
)
from src.core.sound_classifier import (
    ClassificationResult,
    ClassifierConfig,
    SoundClassifier,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Status messages
# ---------------------------------------------------------------------------

STATE_LOADING: str = "loading"
STATE_LISTENING: str = "listening"
STATE_ERROR: str = "error"

STATUS_TEXT: dict[str, str] = {
    STATE_LOADING: "🔄 Loading AI model…",
    STATE_LISTENING: "🎧 Listening… try clap, whistle, knock or scream!",
    STATE_ERROR: "❌ Error – check console",
}

SLOW_JOINER_DELAY: float = 0.5
"""Seconds to wait after binding so connected subscribers see the first message."""


class DemoSession:
    """Owns the classifier and the publishing side of the bus.

    Parameters
    ----------
    bus:
        Message bus used to publish status and predictions.
    config:
        Classifier configuration.
    classifier_factory:
        Builds the classifier from *config*.  Defaults to
        :class:`SoundClassifier`.
    port:
        Port the publisher binds to.
    """

    def __init__(
        self,
        bus: MessageBus | None = None,
        config: ClassifierConfig | None = None,
        classifier_factory: Callable[[ClassifierConfig], SoundClassifier] = SoundClassifier,
        port: int = PREDICTION_PORT,
    ) -> None:
        self.bus: MessageBus = bus or MessageBus()
        self.config: ClassifierConfig = config or ClassifierConfig()
        self.classifier_factory = classifier_factory
        self.port: int = port

        self.classifier: SoundClassifier | None = None
        self.state: str | None = None
        self.result_count: int = 0

        self._started: bool = False
        self._start_lock: threading.Lock = threading.Lock()
        self._publisher: zmq.Socket | None = None
        self._publish_lock: threading.Lock = threading.Lock()
        self._loader: threading.Thread | None = None

    @property
    def started(self) -> bool:
        return self._started

    # -- Lifecycle -----------------------------------------------------------

    def start(self) -> bool:
        """Start the session once.

        Returns
        -------
        bool
            ``True`` for the call that actually started the session,
            ``False`` for every repeat.
        """
        with self._start_lock:
            if self._started:
                logger.debug("Start requested again – ignoring")
                return False
            self._started = True

        self._loader = threading.Thread(
            target=self._load_and_classify,
            daemon=True,
            name="session-loader",
        )
        self._loader.start()
        logger.info("Demo session started")
        return True

    def stop(self) -> None:
        if self.classifier is not None:
            self.classifier.stop()
        with self._publish_lock:
            if self._publisher is not None:
                self._publisher.close()
                self._publisher = None

    def join(self, timeout: float | None = None) -> None:
        """Wait for the loader thread (model load + classify call) to finish."""
        if self._loader is not None:
            self._loader.join(timeout=timeout)

    def _load_and_classify(self) -> None:
        try:
            with self._publish_lock:
                self._publisher = self.bus.create_publisher(self.port)
        except zmq.ZMQError:
            logger.exception("Could not bind the session publisher on port %d", self.port)
            self.state = STATE_ERROR
            return
        time.sleep(SLOW_JOINER_DELAY)

        self._publish_status(STATE_LOADING)
        try:
            self.classifier = self.classifier_factory(self.config)
            self.classifier.load()
            logger.info("✅ Model is ready")
            self._publish_status(STATE_LISTENING)
            self.classifier.classify(self._on_result)
        except Exception:
            logger.exception("Could not start sound classification")
            self._publish_status(STATE_ERROR)

    # -- Classifier callback -------------------------------------------------

    def _on_result(
        self,
        error: BaseException | None,
        results: list[ClassificationResult] | None,
    ) -> None:
        if error is not None:
            logger.error("Classification error: %s", error)
            self._publish_status(STATE_ERROR)
            return

        if not results:
            return

        self.result_count += 1
        self._publish(PREDICTION_TOPIC, {
            "results": [r.to_dict() for r in results],
        })

    # -- Publishing ----------------------------------------------------------

    def _publish_status(self, state: str) -> None:
        self.state = state
        self._publish(STATUS_TOPIC, {"state": state, "text": STATUS_TEXT[state]})

    def _publish(self, topic: str, data: dict[str, Any]) -> None:
        # Loader and classifier threads both publish; zmq sockets are not thread-safe.
        with self._publish_lock:
            if self._publisher is None:
                logger.debug("Publisher closed – dropping %s message", topic)
                return
            self.bus.publish(self._publisher, topic=topic, data=data)
