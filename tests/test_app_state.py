"""Unit tests for src.core.app_state – prediction state updates."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from src.core.app_state import (
    INITIAL_LABEL,
    NUM_BARS,
    AppState,
    PredictionState,
    apply_results,
)
from src.core.labels import SafetyStatus


# ---------------------------------------------------------------------------
# PredictionState
# ---------------------------------------------------------------------------

class TestPredictionState:

    def test_initial_placeholder(self) -> None:
        state = PredictionState()
        assert state.label == "Waiting…" == INITIAL_LABEL
        assert state.confidence == 0.0
        assert state.last_change_frame == 0


# ---------------------------------------------------------------------------
# apply_results
# ---------------------------------------------------------------------------

class TestApplyResults:
    """Only the top result is used; label changes are edge-triggered."""

    def test_empty_results_ignored(self) -> None:
        assert apply_results(PredictionState(), [], frame=5) is None

    def test_none_results_ignored(self) -> None:
        assert apply_results(PredictionState(), None, frame=5) is None

    def test_uses_first_result(self) -> None:
        nxt = apply_results(
            PredictionState(),
            [{"label": "Clap", "confidence": 0.8}, {"label": "Knock", "confidence": 0.1}],
            frame=3,
        )
        assert nxt == PredictionState("Clap", 0.8, 3)

    def test_missing_label_defaults_to_unknown(self) -> None:
        nxt = apply_results(PredictionState(), [{"confidence": 0.4}], frame=1)
        assert nxt.label == "Unknown"

    def test_missing_confidence_defaults_to_zero(self) -> None:
        nxt = apply_results(PredictionState(), [{"label": "Clap"}], frame=1)
        assert nxt.confidence == 0.0

    def test_confidence_clamped(self) -> None:
        high = apply_results(PredictionState(), [{"label": "a", "confidence": 1.7}], frame=1)
        low = apply_results(PredictionState(), [{"label": "a", "confidence": -0.2}], frame=1)
        assert high.confidence == 1.0
        assert low.confidence == 0.0

    def test_numeric_label_coerced_to_text(self) -> None:
        nxt = apply_results(PredictionState(), [{"label": 5, "confidence": 0.5}], frame=1)
        assert nxt.label == "5"

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_confidence_becomes_zero(self, value: float) -> None:
        nxt = apply_results(PredictionState(), [{"label": "Clap", "confidence": value}], frame=1)
        assert nxt.confidence == 0.0

    def test_same_label_keeps_change_frame(self) -> None:
        prev = PredictionState("Clap", 0.5, last_change_frame=10)
        nxt = apply_results(prev, [{"label": "Clap", "confidence": 0.9}], frame=42)
        assert nxt.last_change_frame == 10
        assert nxt.confidence == 0.9

    def test_new_label_records_frame(self) -> None:
        prev = PredictionState("Clap", 0.5, last_change_frame=10)
        nxt = apply_results(prev, [{"label": "Knock", "confidence": 0.9}], frame=42)
        assert nxt.last_change_frame == 42

    def test_previous_state_untouched(self) -> None:
        prev = PredictionState()
        apply_results(prev, [{"label": "Clap", "confidence": 0.9}], frame=2)
        assert prev == PredictionState()


# ---------------------------------------------------------------------------
# AppState
# ---------------------------------------------------------------------------

class TestAppState:

    def test_defaults(self) -> None:
        state = AppState()
        assert len(state.bars) == NUM_BARS == 40
        assert not state.bars.any()
        assert state.safety is SafetyStatus.SAFE
        assert (state.canvas_width, state.canvas_height) == (900, 130)

    def test_update_uses_frame_count(self) -> None:
        state = AppState()
        state.frame_count = 17
        assert state.update([{"label": "Clap", "confidence": 0.6}]) is True
        assert state.prediction.last_change_frame == 17

    def test_update_empty_is_noop(self) -> None:
        state = AppState()
        assert state.update([]) is False
        assert state.prediction == PredictionState()

    def test_scream_sets_alert_and_clears(self) -> None:
        state = AppState()
        state.update([{"label": "Scream", "confidence": 0.7}])
        assert state.safety is SafetyStatus.ALERT
        state.update([{"label": "Clap", "confidence": 0.7}])
        assert state.safety is SafetyStatus.SAFE

    def test_failed_update_leaves_state_untouched(self) -> None:
        state = AppState()
        with patch("src.core.app_state.safety_status", side_effect=RuntimeError("bad label")):
            with pytest.raises(RuntimeError):
                state.update([{"label": "Scream", "confidence": 0.7}])
        assert state.prediction == PredictionState()
        assert state.safety is SafetyStatus.SAFE

    def test_bar_count_constant(self) -> None:
        state = AppState(num_bars=12)
        state.update([{"label": "Clap", "confidence": 0.7}])
        assert len(state.bars) == 12

    @pytest.mark.parametrize("width", [0, -5])
    def test_resize_ignores_non_positive(self, width: int) -> None:
        state = AppState()
        state.resize(width)
        assert state.canvas_width == 900

    def test_resize(self) -> None:
        state = AppState()
        state.resize(640)
        assert state.canvas_width == 640
