"""Live dashboard for the SafeRide sound demo.

Serves a single page on port 8080 with an animated equalizer, the current
label and emoji, the classifier confidence and a *Safe Ride / Alert* bus
panel.  Everything is pushed to the browser over WebSockets via
Flask-SocketIO; the page only paints what it receives.

Architecture
------------
::

    SoundClassifier ─callback→ DemoSession ─ZMQ :5555→ render loop ═WS═→ Browser
                                                       (AppState,
                                                        BarAnimator,
                                                        Renderer)

One background task runs the render loop at a fixed frame rate.  Each
tick it drains the bus, applies new predictions to the :class:`AppState`,
steps the bar animation and emits a ``frame`` event.  Being the only
consumer of the bus, it serialises classifier results with rendering.

SocketIO events
---------------
Server → browser:
    ``frame``       canvas frame description (see ``renderer.Renderer``)
    ``prediction``  label / emoji / confidence / bus panel state
    ``status``      status line text
Browser → server:
    ``start``       start button pressed (one-shot)
    ``resize``      ``{"width": <holder width in px>}``

Usage::

    python -m src.viz.dashboard                       # from project root
    python -m src.viz.dashboard --threshold 0.3 --fps 30
"""

from __future__ import annotations

# -- Path fixup for direct execution ----------------------------------------
import sys
from pathlib import Path

_PROJECT_ROOT = str(Path(__file__).resolve().parents[2])
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

# -- Standard / third-party imports -----------------------------------------
import argparse
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

import zmq
from flask import Flask, render_template_string
from flask_socketio import SocketIO, emit

from src.core.app_state import CANVAS_HEIGHT, NUM_BARS, AppState
from src.core.message_bus import (
    PREDICTION_PORT,
    PREDICTION_TOPIC,
    STATUS_TOPIC,
    MessageBus,
)
from src.core.session import STATE_ERROR, STATUS_TEXT, DemoSession
from src.core.sound_classifier import ClassifierConfig, SoundClassifier
from src.viz.bar_animator import BarAnimator
from src.viz.renderer import Renderer, prediction_view

# ---------------------------------------------------------------------------
# Module-level logger
# ---------------------------------------------------------------------------

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DASHBOARD_HOST: str = "0.0.0.0"  # noqa: S104 – intentional for LAN demo
DASHBOARD_PORT: int = 8080
FRAME_RATE: int = 60

FRAME_LOG_INTERVAL: int = 600
"""Log a progress line every *N* frames (10 s at 60 fps)."""


@dataclass
class DashboardConfig:
    """Web server and render-loop settings."""

    host: str = DASHBOARD_HOST
    port: int = DASHBOARD_PORT
    fps: int = FRAME_RATE
    num_bars: int = NUM_BARS
    canvas_height: int = CANVAS_HEIGHT


# ---------------------------------------------------------------------------
# HTML template (inline)
# ---------------------------------------------------------------------------

DASHBOARD_HTML: str = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>ISI Safe Ride — Sound Demo</title>
<style>
  *, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }
  :root {
    --bg:     #fdf0fb;
    --card:   #ffffff;
    --text:   #3c1446;
    --dim:    #8a6a93;
    --pink:   #ec407a;
    --purple: #7b1fa2;
    --safe:   #2e9e6b;
    --alert:  #d32f2f;
  }
  body {
    font-family: system-ui, -apple-system, "Segoe UI", sans-serif;
    background: var(--bg);
    color: var(--text);
    min-height: 100vh;
    display: flex;
    flex-direction: column;
    align-items: center;
    padding: 16px;
    gap: 12px;
  }
  header { text-align: center; }
  header h1 { font-size: 1.6rem; color: var(--purple); }
  #status { font-size: 0.95rem; color: var(--dim); margin-top: 4px; }

  .stack { width: 100%; max-width: 960px; display: flex; flex-direction: column; gap: 12px; }
  .card {
    background: var(--card);
    border-radius: 16px;
    box-shadow: 0 4px 18px rgba(123, 31, 162, 0.10);
    padding: 14px 18px;
  }

  .prediction { display: flex; align-items: center; gap: 18px; }
  #emoji { font-size: 3rem; line-height: 1; }
  #label-text { font-size: 1.6rem; font-weight: 600; }
  #confidence { font-size: 1rem; color: var(--dim); margin-left: auto; }

  #eq-canvas-holder { width: 100%; overflow: hidden; border-radius: 12px; }
  #eq-canvas-holder canvas { display: block; }

  #bus-panel {
    display: flex;
    align-items: center;
    justify-content: space-between;
    transition: background 0.25s, color 0.25s;
  }
  #bus-panel.safe  { background: #e6f7ef; color: var(--safe); }
  #bus-panel.alert { background: #fde7e7; color: var(--alert); animation: pulse 0.8s ease-in-out infinite; }
  #bus-chip {
    font-weight: 700;
    letter-spacing: 0.06em;
    padding: 6px 14px;
    border-radius: 999px;
    border: 2px solid currentColor;
  }
  @keyframes pulse { 0%, 100% { opacity: 1; } 50% { opacity: 0.8; } }

  #start-btn {
    align-self: center;
    font-size: 1rem;
    font-weight: 600;
    padding: 10px 26px;
    border: none;
    border-radius: 999px;
    color: #fff;
    background: linear-gradient(90deg, var(--pink), var(--purple));
    cursor: pointer;
  }
  #start-btn:disabled { opacity: 0.5; cursor: default; }
</style>
</head>
<body>

<header>
  <h1>🚌 ISI Safe Ride — Sound Demo</h1>
  <p id="status">Press start to begin listening.</p>
</header>

<div class="stack">
  <div class="card prediction">
    <span id="emoji">🎧</span>
    <span id="label-text">Waiting…</span>
    <span id="confidence">0.0%</span>
  </div>

  <div class="card">
    <div id="eq-canvas-holder"></div>
  </div>

  <div class="card safe" id="bus-panel">
    <span>Bus status</span>
    <span id="bus-chip">SAFE RIDE</span>
  </div>

  <button id="start-btn" type="button">▶ Start demo</button>
</div>

<script src="https://cdnjs.cloudflare.com/ajax/libs/socket.io/4.7.4/socket.io.min.js"></script>
<script>
(function() {
  "use strict";

  const socket = io({
    reconnection: true,
    reconnectionAttempts: Infinity,
    reconnectionDelay: 1000,
    reconnectionDelayMax: 5000,
  });

  /* ── Elements (every one of them is optional) ────────────────── */
  const byId = (id) => document.getElementById(id);
  const statusEl = byId("status");
  const emojiEl = byId("emoji");
  const labelEl = byId("label-text");
  const confEl = byId("confidence");
  const startBtn = byId("start-btn");
  const busPanel = byId("bus-panel");
  const busChip = byId("bus-chip");
  const holder = byId("eq-canvas-holder");

  function setText(el, text) { if (el) el.textContent = text; }

  /* ── Canvas ──────────────────────────────────────────────────── */
  const HEIGHT = 130;
  let canvas = null;
  let ctx = null;
  if (holder) {
    canvas = document.createElement("canvas");
    canvas.width = holder.offsetWidth || 900;
    canvas.height = HEIGHT;
    holder.appendChild(canvas);
    ctx = canvas.getContext("2d");
  }

  function reportWidth() {
    const w = holder ? holder.offsetWidth : 900;
    socket.emit("resize", { width: w || 900 });
  }
  window.addEventListener("resize", reportWidth);

  function rgba(c) {
    return "rgba(" + c[0] + "," + c[1] + "," + c[2] + "," + (c[3] / 255) + ")";
  }

  function roundedRect(x0, y0, x1, y1, r) {
    const w = x1 - x0, h = y1 - y0;
    r = Math.max(0, Math.min(r, w / 2, h / 2));
    ctx.beginPath();
    ctx.moveTo(x0 + r, y0);
    ctx.arcTo(x1, y0, x1, y1, r);
    ctx.arcTo(x1, y1, x0, y1, r);
    ctx.arcTo(x0, y1, x0, y0, r);
    ctx.arcTo(x0, y0, x1, y0, r);
    ctx.closePath();
    ctx.fill();
  }

  socket.on("frame", (f) => {
    if (!ctx) return;
    if (canvas.width !== f.width) canvas.width = f.width;
    if (canvas.height !== f.height) canvas.height = f.height;

    const grad = ctx.createLinearGradient(0, 0, 0, f.height);
    grad.addColorStop(0, "rgb(" + f.background.top.join(",") + ")");
    grad.addColorStop(1, "rgb(" + f.background.bottom.join(",") + ")");
    ctx.fillStyle = grad;
    ctx.fillRect(0, 0, f.width, f.height);

    for (const b of f.bars) {
      ctx.fillStyle = rgba(b.color);
      roundedRect(b.x0, b.y0, b.x1, b.y1, b.radius);
    }

    const label = f.label;
    ctx.fillStyle = rgba(label.color);
    ctx.font = label.size + "px system-ui, sans-serif";
    ctx.textAlign = "center";
    ctx.textBaseline = "bottom";
    ctx.fillText(label.text, label.x, label.y);
  });

  /* ── Prediction & bus panel ──────────────────────────────────── */
  socket.on("prediction", (p) => {
    setText(labelEl, p.label_text);
    setText(emojiEl, p.emoji);
    setText(confEl, p.confidence);
    if (busPanel && busChip) {
      busPanel.classList.toggle("alert", p.panel.alert);
      busPanel.classList.toggle("safe", p.panel.safe);
      busChip.textContent = p.chip;
    }
  });

  socket.on("status", (s) => { setText(statusEl, s.text); });

  socket.on("connect", reportWidth);

  /* ── Start (one-shot) ────────────────────────────────────────── */
  if (startBtn) {
    startBtn.addEventListener("click", () => {
      socket.emit("start");
      startBtn.disabled = true;
    });
  }
})();
</script>
</body>
</html>
"""


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    session: DemoSession | None = None,
    state: AppState | None = None,
) -> tuple[Flask, SocketIO]:
    """Create and configure the Flask + SocketIO application.

    Parameters
    ----------
    session:
        Demo session started by the ``start`` event.  A default
        :class:`DemoSession` is created when omitted.
    state:
        Shared application state; read here for connect snapshots and
        canvas resizes, written by :func:`render_loop`.

    Returns
    -------
    tuple[Flask, SocketIO]
        Neither is started — call ``socketio.run(app, ...)`` to serve.
    """
    if session is None:
        session = DemoSession()
    if state is None:
        state = AppState()

    app = Flask(__name__)
    app.config["SECRET_KEY"] = "saferide-demo"  # non-secret; local demo only

    socketio = SocketIO(
        app,
        cors_allowed_origins="*",  # LAN demo — no auth
        async_mode="threading",
    )

    @app.route("/")
    def index() -> str:
        return render_template_string(DASHBOARD_HTML)

    @socketio.on("connect")
    def on_connect(auth: Any = None) -> None:
        # Late joiners get the current picture immediately.
        if session.state == STATE_ERROR:
            emit("status", {"state": STATE_ERROR, "text": STATUS_TEXT[STATE_ERROR]})
        else:
            emit("status", {"text": state.status_text})
        emit("prediction", prediction_view(state))

    @socketio.on("start")
    def on_start() -> None:
        if session.start():
            logger.info("Start requested by client")
        if session.state == STATE_ERROR:
            emit("status", {"state": STATE_ERROR, "text": STATUS_TEXT[STATE_ERROR]})

    @socketio.on("resize")
    def on_resize(data: dict[str, Any]) -> None:
        try:
            state.resize(int(data.get("width", 0)))
        except (TypeError, ValueError, AttributeError):
            logger.debug("Ignoring malformed resize event: %r", data)

    return app, socketio


# ---------------------------------------------------------------------------
# Bus message handling
# ---------------------------------------------------------------------------


def handle_message(
    socketio: SocketIO,
    state: AppState,
    topic: str,
    envelope: dict[str, Any],
) -> None:
    """Apply one bus message to *state* and emit the matching page update."""
    data: dict[str, Any] = envelope.get("data", {})

    if topic == PREDICTION_TOPIC:
        if state.update(data.get("results")):
            socketio.emit("prediction", prediction_view(state))

    elif topic == STATUS_TOPIC:
        text: str = data.get("text", "")
        state.status_text = text
        socketio.emit("status", {"state": data.get("state"), "text": text})
        if data.get("state") == STATE_ERROR:
            logger.error("Session reported an error: %s", text)

    else:
        logger.debug("Unknown topic: %s", topic)


# ---------------------------------------------------------------------------
# Render loop (background task)
# ---------------------------------------------------------------------------


def render_loop(
    socketio: SocketIO,
    state: AppState,
    bus: MessageBus | None = None,
    subscriber: zmq.Socket | None = None,
    animator: BarAnimator | None = None,
    renderer: Renderer | None = None,
    fps: int = FRAME_RATE,
    stop_event: threading.Event | None = None,
) -> None:
    """Drive the dashboard at *fps* frames per second.

    Designed to run as a daemon thread / SocketIO background task.  Loops
    until *stop_event* is set (forever when it is ``None``).

    Parameters
    ----------
    socketio:
        The SocketIO instance to emit events on.
    state:
        Application state; this loop is its only writer.
    bus / subscriber:
        Optional overrides (useful for testing).  By default a subscriber
        on ``PREDICTION_PORT`` is created.
    """
    if bus is None:
        bus = MessageBus()
    if subscriber is None:
        subscriber = bus.create_subscriber(ports=[PREDICTION_PORT])
    if animator is None:
        animator = BarAnimator(canvas_height=state.canvas_height)
    if renderer is None:
        renderer = Renderer()

    period: float = 1.0 / fps
    next_tick: float = time.monotonic()
    messages_seen: int = 0

    logger.info("Render loop started at %d fps with %d bars", fps, len(state.bars))

    while stop_event is None or not stop_event.is_set():
        state.frame_count += 1

        for topic, envelope in bus.drain(subscriber):
            messages_seen += 1
            try:
                handle_message(socketio, state, topic, envelope)
            except Exception:
                logger.exception("Error processing %s message", topic)

        state.bars = animator.step(state.prediction, state.frame_count, state.bars)
        socketio.emit("frame", renderer.render(state))

        if state.frame_count % FRAME_LOG_INTERVAL == 0:
            logger.info(
                "Frame %d: label=%r confidence=%.2f safety=%s messages=%d",
                state.frame_count,
                state.prediction.label,
                state.prediction.confidence,
                state.safety.value,
                messages_seen,
            )

        next_tick += period
        delay = next_tick - time.monotonic()
        if delay > 0:
            socketio.sleep(delay)
        else:
            # Running behind: drop the backlog instead of bursting frames.
            next_tick = time.monotonic()
            socketio.sleep(0)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    defaults = ClassifierConfig()
    parser = argparse.ArgumentParser(description="SafeRide sound demo dashboard")
    parser.add_argument("--host", default=DASHBOARD_HOST)
    parser.add_argument("--port", type=int, default=DASHBOARD_PORT)
    parser.add_argument("--fps", type=int, default=FRAME_RATE)
    parser.add_argument("--model-path", type=Path, default=defaults.model_path)
    parser.add_argument(
        "--threshold",
        type=float,
        default=defaults.probability_threshold,
        help="minimum confidence for a label to be reported",
    )
    parser.add_argument("--device-name", default=None, help="input device name substring")
    parser.add_argument("--list-devices", action="store_true")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = _parse_args(argv)

    if args.list_devices:
        for i, dev in enumerate(SoundClassifier.list_devices()):
            print(f"  [{i}] {dev.get('name', '?')} (in={dev.get('max_input_channels', 0)})")
        return

    config = DashboardConfig(host=args.host, port=args.port, fps=args.fps)
    classifier_config = ClassifierConfig(
        model_path=args.model_path,
        probability_threshold=args.threshold,
        device_name=args.device_name,
    )

    bus = MessageBus()
    state = AppState(num_bars=config.num_bars, canvas_height=config.canvas_height)
    session = DemoSession(bus=bus, config=classifier_config)
    app, socketio = create_app(session=session, state=state)

    socketio.start_background_task(
        render_loop, socketio, state, bus=bus, fps=config.fps,
    )

    print("\n" + "=" * 56)
    print("  ISI SAFE RIDE — Sound Demo")
    print("=" * 56)
    print(f"  Local:   http://127.0.0.1:{config.port}")
    print(f"  Network: http://{config.host}:{config.port}")
    print()
    print(f"  Model:   {classifier_config.model_path}")
    print("  Open in a browser and press Start.")
    print("=" * 56 + "\n")

    try:
        socketio.run(
            app,
            host=config.host,
            port=config.port,
            debug=False,
            allow_unsafe_werkzeug=True,  # required for Flask 3.x dev server
        )
    finally:
        session.stop()


if __name__ == "__main__":
    main()
