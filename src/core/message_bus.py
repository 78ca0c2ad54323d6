"""ZeroMQ message bus — the event channel between classifier and dashboard.

The classifier runs on its own worker thread and never touches dashboard
state.  Instead every result (and every session status change) is published
on a ZeroMQ PUB socket; the dashboard render loop owns the matching SUB
socket and is the only consumer.  Messages are JSON-encoded with a standard
envelope:

    {"timestamp": "<ISO 8601>", "topic": "<str>", "data": {…}}

The publisher sends a two-frame ZeroMQ message:
    Frame 0 (topic):  UTF-8 topic string used for SUB filtering.
    Frame 1 (body):   JSON-encoded envelope.

Usage:
    bus  = MessageBus()
    pub  = bus.create_publisher(PREDICTION_PORT)
    sub  = bus.create_subscriber([PREDICTION_PORT])
    bus.publish(pub, PREDICTION_TOPIC, {"results": [...]})
    pending = bus.drain(sub)
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any

import zmq

# ---------------------------------------------------------------------------
# Ports and topics
# ---------------------------------------------------------------------------

PREDICTION_PORT: int = 5555
"""Classifier results and session status, published by the demo session."""

PREDICTION_TOPIC: str = "prediction"
"""Payload: ``{"results": [{"label": str, "confidence": float}, …]}``."""

STATUS_TOPIC: str = "status"
"""Payload: ``{"state": "loading" | "listening" | "error", "text": str}``."""

# ---------------------------------------------------------------------------
# Module-level logger
# ---------------------------------------------------------------------------

logger = logging.getLogger(__name__)


class MessageBus:
    """Thin wrapper around ZeroMQ PUB/SUB.

    All instances in a process share one ``zmq.Context`` (the context is
    thread-safe; sockets are not, so each socket stays on the thread that
    created it).
    """

    _context: zmq.Context | None = None
    _lock: threading.Lock = threading.Lock()

    def __init__(self, host: str = "127.0.0.1") -> None:
        self.host: str = host
        self.context: zmq.Context = self._get_context()

    @classmethod
    def _get_context(cls) -> zmq.Context:
        """Return the process-wide ``zmq.Context``, creating it on first use."""
        if cls._context is None:
            with cls._lock:
                if cls._context is None:
                    cls._context = zmq.Context()
                    logger.debug("Created new zmq.Context")
        return cls._context

    # -- Socket factories ----------------------------------------------------

    def create_publisher(self, port: int) -> zmq.Socket:
        """Create a PUB socket bound to ``tcp://<host>:<port>``."""
        socket: zmq.Socket = self.context.socket(zmq.PUB)
        socket.bind(f"tcp://{self.host}:{port}")
        logger.info("PUB socket bound on port %d", port)
        return socket

    def create_subscriber(
        self,
        ports: list[int],
        topics: list[str] | None = None,
    ) -> zmq.Socket:
        """Create a SUB socket connected to every port in *ports*.

        Parameters
        ----------
        ports:
            TCP ports on ``host`` to connect to.  Connecting before the
            publisher binds is fine; ZeroMQ reconnects in the background.
        topics:
            Topic prefixes to subscribe to.  ``None`` subscribes to all.
        """
        if topics is None:
            topics = [""]

        socket: zmq.Socket = self.context.socket(zmq.SUB)
        for port in ports:
            socket.connect(f"tcp://{self.host}:{port}")
            logger.debug("SUB socket connected to port %d", port)

        for topic in topics:
            socket.setsockopt_string(zmq.SUBSCRIBE, topic)
            logger.debug("Subscribed to topic %r", topic)

        return socket

    # -- Publish / Receive ---------------------------------------------------

    def publish(self, socket: zmq.Socket, topic: str, data: dict[str, Any]) -> None:
        """Publish *data* under *topic* as a two-frame envelope message."""
        envelope: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "topic": topic,
            "data": data,
        }
        payload: str = json.dumps(envelope, ensure_ascii=False)
        socket.send_multipart(
            [topic.encode("utf-8"), payload.encode("utf-8")]
        )
        logger.debug("Published [%s]: %s", topic, payload[:120])

    def receive(
        self,
        socket: zmq.Socket,
        timeout_ms: int = 1000,
    ) -> tuple[str, dict[str, Any]] | None:
        """Wait up to *timeout_ms* for one message.

        Returns
        -------
        tuple[str, dict] | None
            ``(topic, envelope)`` on success, ``None`` on timeout.
        """
        poller = zmq.Poller()
        poller.register(socket, zmq.POLLIN)

        events = dict(poller.poll(timeout=timeout_ms))
        if socket not in events:
            return None

        frames: list[bytes] = socket.recv_multipart()
        topic: str = frames[0].decode("utf-8")
        message: dict[str, Any] = json.loads(frames[1].decode("utf-8"))
        return topic, message

    def drain(
        self,
        socket: zmq.Socket,
        limit: int = 100,
    ) -> list[tuple[str, dict[str, Any]]]:
        """Return every message already queued on *socket*, without blocking.

        At most *limit* messages are read per call so a flooding publisher
        cannot starve the caller.
        """
        messages: list[tuple[str, dict[str, Any]]] = []
        while len(messages) < limit:
            result = self.receive(socket, timeout_ms=0)
            if result is None:
                break
            messages.append(result)
        return messages
