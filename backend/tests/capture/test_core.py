"""
Unit tests for the capture core: timing model, duplicate gate, scheduler
and configuration.
"""

import asyncio
import logging
import os
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "app"))

from capture.config import CaptureConfig, SelectorConfig
from capture.core.dedup import IDENTITY_CHECKS, DuplicateGate, selectors_equal
from capture.core.scheduler import AsyncioScheduler, CancellationToken, ManualScheduler
from capture.core.timing import ESTIMATORS, ActionTimingModel
from capture.dom.document import PageDocument
from capture.models import (
    ACTION_TYPES,
    ClickAction,
    InputAction,
    ScrollAction,
    SelectorStrategy,
    SelectorType,
    assert_exhaustive,
)
from capture.recorder.event_listener import EventListener


def selector(css: str = "button.go", **extra) -> SelectorStrategy:
    return SelectorStrategy(css=css, priority=[SelectorType.CSS], **extra)


def click(action_id: str = "act_001", timestamp: int = 0, **fields) -> ClickAction:
    fields.setdefault("selector", selector())
    return ClickAction(id=action_id, timestamp=timestamp, tag_name="button", **fields)


# ==================== Timing ====================

class TestTimingModel:
    """Test completed_at estimation."""

    def test_every_action_type_has_estimator(self):
        """Test that the estimator table covers the whole action union."""
        for action_type in ACTION_TYPES:
            assert action_type in ESTIMATORS

    def test_missing_entry_fails_fast(self):
        """Test that a dispatch table missing a variant is rejected."""
        table = dict(ESTIMATORS)
        del table[ScrollAction]

        with pytest.raises(TypeError, match="ScrollAction"):
            assert_exhaustive(table, "test")

    def test_input_estimate_uses_typing_delay(self):
        """Test that typing time scales with value length."""
        model = ActionTimingModel()
        action = InputAction(id="a", timestamp=0, selector=selector(), tag_name="input", value="abcd", typing_delay=80)

        assert model.estimate(action) == 320

    def test_window_scroll_is_clamped(self):
        """Test window scroll estimates stay within their bounds."""
        model = ActionTimingModel()

        assert model.estimate(ScrollAction(id="a", timestamp=0, scroll_y=90)) == 200
        assert model.estimate(ScrollAction(id="b", timestamp=0, scroll_y=900)) == 300
        assert model.estimate(ScrollAction(id="c", timestamp=0, scroll_y=-9000)) == 800

    def test_completed_at_never_goes_backwards(self):
        """Test that a quick action after a long one inherits the later completion."""
        model = ActionTimingModel()
        typed = model.stamp(
            InputAction(id="a", timestamp=0, selector=selector(), tag_name="input", value="x" * 10, typing_delay=100)
        )
        clicked = model.stamp(click(timestamp=100))

        assert typed.completed_at == 1000
        assert clicked.completed_at == 1000
        assert clicked.completed_at >= clicked.timestamp

    def test_preview_does_not_commit(self):
        """Test that previewing a suppressed action leaves the high-water mark alone."""
        model = ActionTimingModel()

        preview = model.preview(click(timestamp=500))

        assert preview.completed_at == 550
        assert model.last_completed_at == 0


# ==================== Duplicate gate ====================

class TestDuplicateGate:
    """Test duplicate suppression."""

    def test_identity_table_is_exhaustive(self):
        """Test that every action type has an identity check."""
        for action_type in ACTION_TYPES:
            assert action_type in IDENTITY_CHECKS

    def test_repeat_within_window_is_suppressed(self):
        """Test that the same click within 200ms is a duplicate."""
        gate = DuplicateGate()
        assert gate.accept(click("act_001", 0)) is True

        repeat = click("act_002", 150)

        assert gate.duplicate_of(repeat) == "act_001"
        assert gate.accept(repeat) is False

    def test_repeat_after_window_is_accepted(self):
        """Test that the window is exclusive at its end."""
        gate = DuplicateGate()
        gate.accept(click("act_001", 0))

        assert gate.accept(click("act_002", 200)) is True

    def test_submit_clicks_get_longer_protection(self):
        """Test the submit protection window."""
        gate = DuplicateGate()
        gate.accept(click("act_001", 0, click_type="submit"))

        assert gate.accept(click("act_002", 1500, click_type="submit")) is False
        assert gate.accept(click("act_003", 2100, click_type="submit")) is True

    def test_different_click_count_is_not_duplicate(self):
        """Test that a double-click is not a repeat of a single click."""
        gate = DuplicateGate()
        gate.accept(click("act_001", 0))

        assert gate.accept(click("act_002", 50, click_count=2)) is True

    def test_inputs_compare_values(self):
        """Test that inputs are duplicates only with equal values."""
        gate = DuplicateGate()
        base = dict(selector=selector("input#q"), tag_name="input")
        gate.accept(InputAction(id="a", timestamp=0, value="lamp", **base))

        assert gate.accept(InputAction(id="b", timestamp=10, value="lamp", **base)) is False
        assert gate.accept(InputAction(id="c", timestamp=20, value="lamps", **base)) is True

    def test_first_shared_field_decides(self):
        """Test that selector identity uses the first field both sides carry."""
        a = SelectorStrategy(id="left", css="button", priority=[SelectorType.ID])
        b = SelectorStrategy(id="right", css="button", priority=[SelectorType.ID])

        assert selectors_equal(a, b) is False
        assert selectors_equal(a, None) is False

    def test_replace_keeps_reference_current(self):
        """Test that a patched action replaces the gate reference."""
        gate = DuplicateGate()
        gate.accept(click("act_001", 0))

        gate.replace(click("act_001", 0, click_count=2))

        assert gate.last_action.click_count == 2


# ==================== Scheduler ====================

class TestManualScheduler:
    """Test the virtual clock."""

    def test_call_later_fires_when_due(self):
        """Test that tasks run only once their delay has elapsed."""
        scheduler = ManualScheduler()
        fired = []
        scheduler.call_later(100, lambda: fired.append(scheduler.now()))

        scheduler.advance(99)
        assert fired == []
        scheduler.advance(1)
        assert fired == [100]

    def test_token_cancels_pending_tasks(self):
        """Test that cancelling a token drops its tasks."""
        scheduler = ManualScheduler()
        token = CancellationToken()
        fired = []
        scheduler.call_later(50, lambda: fired.append("a"), token)
        scheduler.call_every(10, lambda: fired.append("b"), token)

        token.cancel()
        scheduler.advance(1000)

        assert fired == []
        assert scheduler.pending == 0

    def test_tasks_on_cancelled_token_never_arm(self):
        """Test that work scheduled after cancellation is inert."""
        scheduler = ManualScheduler()
        token = CancellationToken()
        token.cancel()

        task = scheduler.call_later(10, lambda: None, token)

        assert task.active is False

    def test_call_every_repeats(self):
        """Test repeating tasks."""
        scheduler = ManualScheduler()
        ticks = []
        task = scheduler.call_every(100, lambda: ticks.append(scheduler.now()))

        scheduler.advance(350)
        task.cancel()
        scheduler.advance(500)

        assert ticks == [100, 200, 300]

    def test_failing_task_is_logged(self, caplog):
        """Test that a crashing callback does not break the clock."""
        scheduler = ManualScheduler()
        fired = []
        scheduler.call_later(10, lambda: 1 / 0)
        scheduler.call_later(20, lambda: fired.append(True))

        with caplog.at_level(logging.ERROR):
            scheduler.advance(30)

        assert fired == [True]
        assert "Deferred task failed" in caplog.text

    def test_run_until_idle(self):
        """Test draining one-shot work while a poll keeps running."""
        scheduler = ManualScheduler()
        fired = []
        scheduler.call_every(100, lambda: None)
        scheduler.call_later(700, lambda: fired.append(scheduler.now()))

        scheduler.run_until_idle()

        assert fired == [700]


class TestAsyncioScheduler:
    """Test the event-loop scheduler."""

    @pytest.mark.asyncio
    async def test_call_later_runs_on_loop(self):
        """Test that tasks run on the running loop."""
        scheduler = AsyncioScheduler()
        fired = asyncio.Event()
        scheduler.call_later(10, fired.set)

        await asyncio.wait_for(fired.wait(), timeout=1)

        assert fired.is_set()

    @pytest.mark.asyncio
    async def test_cancelled_task_does_not_run(self):
        """Test cancellation of loop-backed tasks."""
        scheduler = AsyncioScheduler()
        fired = []
        task = scheduler.call_later(10, lambda: fired.append(True))

        task.cancel()
        await asyncio.sleep(0.05)

        assert fired == []

    def test_now_without_running_loop(self):
        """Test that the clock can be read before any loop is running."""
        scheduler = AsyncioScheduler()

        first = scheduler.now()
        second = scheduler.now()

        assert second >= first > 0

    def test_listener_starts_outside_loop(self):
        """Test the default scheduler when a listener is started synchronously."""
        listener = EventListener(PageDocument(), on_action=lambda action: None)

        listener.start()
        try:
            assert listener.is_listening is True
            assert listener.recording_start > 0
        finally:
            listener.destroy()


# ==================== Page document ====================

class TestDocumentHandles:
    """Test element handles across snapshot reloads."""

    def test_identical_reload_keeps_handles(self, make_document):
        """Test that reloading the same markup maps handles onto the new elements."""
        document = make_document('<input class="field"><input class="field">')
        before = [document.handle_of(field) for field in document.query_all("input")]

        document.load('<html><head><title>Shop</title></head><body><input class="field"><input class="field"></body></html>')
        after = document.query_all("input")

        assert [document.handle_of(field) for field in after] == before
        assert document.element_by_handle(before[1]) is after[1]

    def test_generated_handles_skip_markup_handles(self):
        """Test that generated handles never collide with handles in the markup."""
        document = PageDocument('<html><body><p data-capture-handle="h1">a</p><p>b</p></body></html>')

        handles = [document.handle_of(element) for element in document.root.iter()]

        assert len(set(handles)) == len(handles)
        assert document.element_by_handle("h1").text == "a"


# ==================== Configuration ====================

class TestCaptureConfig:
    """Test configuration defaults and environment overrides."""

    def test_defaults(self):
        """Test the tuned default windows."""
        config = CaptureConfig()

        assert config.debounce_ms == 200
        assert config.submit_protection_ms == 2000
        assert config.sensitive_debounce_ms == 300
        assert config.navigation_probe_ms == 500
        assert config.selectors == SelectorConfig()

    def test_from_env_overrides(self, monkeypatch):
        """Test CAPTURE_* overrides for both config levels."""
        monkeypatch.setenv("CAPTURE_DEBOUNCE_MS", "350")
        monkeypatch.setenv("CAPTURE_INCLUDE_XPATH", "no")
        monkeypatch.setenv("CAPTURE_MAX_CSS_DEPTH", "3")

        config = CaptureConfig.from_env()

        assert config.debounce_ms == 350
        assert config.selectors.include_xpath is False
        assert config.selectors.max_css_depth == 3

    def test_invalid_number_keeps_default(self, monkeypatch, caplog):
        """Test that malformed numbers are ignored with a warning."""
        monkeypatch.setenv("CAPTURE_POLL_INTERVAL_MS", "fast")

        with caplog.at_level(logging.WARNING):
            config = CaptureConfig.from_env()

        assert config.poll_interval_ms == 100
        assert "CAPTURE_POLL_INTERVAL_MS" in caplog.text

    def test_from_env_reads_dotenv_file(self, tmp_path, monkeypatch):
        """Test that an explicit .env file is honoured."""
        env_file = tmp_path / ".env"
        env_file.write_text("CAPTURE_MIN_HOVER_DURATION_MS=450\n")
        monkeypatch.delenv("CAPTURE_MIN_HOVER_DURATION_MS", raising=False)

        try:
            config = CaptureConfig.from_env(str(env_file))
        finally:
            os.environ.pop("CAPTURE_MIN_HOVER_DURATION_MS", None)

        assert config.min_hover_duration_ms == 450


class TestConfigureLogging:
    """Test package logging setup."""

    def test_handler_is_added_once(self):
        """Test that repeated setup does not duplicate handlers."""
        from capture import configure_logging

        package_logger = configure_logging(logging.DEBUG)
        configure_logging(logging.DEBUG)

        handlers = [h for h in package_logger.handlers if getattr(h, "_capture_handler", False)]
        try:
            assert package_logger.name == "capture"
            assert package_logger.level == logging.DEBUG
            assert len(handlers) == 1
        finally:
            for handler in handlers:
                package_logger.removeHandler(handler)
            package_logger.setLevel(logging.NOTSET)
