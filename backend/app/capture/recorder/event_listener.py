"""
Event Listener

Turns the raw DOM event stream of a page into recorded actions.

Features:
- Interactive-ancestor resolution for clicks on icons and SVG parts
- Click suppression (same-element repeats, carousel bursts, OS double-click merge)
- Typing sessions with per-field debounce and forced flushes
- Select and checkbox/radio change gating
- Dropdown hover and opener tracking
- Post-submit navigation probe that patches the emitted click
- Field polling and value observers for pages that swallow input events
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple

from ..config import CaptureConfig
from ..core.dedup import DuplicateGate
from ..core.intent_classifier import ClickContext, IntentClassifier
from ..core.interactive_rules import InteractiveRuleTable
from ..core.scheduler import AsyncioScheduler, CancellationToken, Scheduler
from ..core.timing import ActionTimingModel
from ..dom.document import PageDocument, is_element, tag_name, text_content
from ..dom.events import DomEvent, DomEventType
from ..models import (
    CheckpointAction,
    ClickAction,
    Coordinates,
    HoverAction,
    InputAction,
    KeypressAction,
    NavigationAction,
    ScrollAction,
    SelectAction,
    SelectedOption,
    SelectorStrategy,
    SubmitAction,
    generate_action_id,
)
from ..selectors.carousel import CarouselDetector
from ..selectors.selector_generator import SelectorGenerator
from .content_signature import generate_content_signature
from .dropdowns import DropdownTracker, find_dropdown_parent, is_dropdown_parent
from .element_state import capture_element_state, create_url_change_expectation, detect_navigation_intent
from .form_fields import (
    debounce_for,
    generate_variable_name,
    input_type,
    is_sensitive_input,
    is_submit_button,
    is_toggle_input,
    select_skip_reason,
)
from .navigation_probe import NavigationProbe
from .typing_sessions import TypingSession, TypingSessionArena
from .validation import generate_validation

# Configure logging
logger = logging.getLogger(__name__)

ActionSink = Callable[[object], None]

SPECIAL_KEYS = ("Enter", "Tab", "Escape", "ArrowUp", "ArrowDown", "ArrowLeft", "ArrowRight")
MODIFIER_KEYS = ("Shift", "Control", "Alt", "Meta")
TEXT_FIELD_TAGS = ("input", "textarea")
MOUSE_BUTTONS = {0: "left", 1: "middle"}
HOVER_TEXT_LENGTH = 50
# popstate right after a click/submit is that action's own navigation
POPSTATE_ACTION_WINDOW_MS = 100
SYNTHETIC_CLICK_OFFSET = 2


@dataclass
class Diagnostic:
    """Something the user should know about that did not become an action"""
    kind: str
    message: str
    element_handle: Optional[str] = None
    timestamp: int = 0


@dataclass
class PendingClick:
    """Last emitted click, open for an OS double-click merge"""
    action_id: str
    handle: str
    time: float


class EventListener:
    """
    Records semantic actions from DOM events dispatched on a PageDocument.

    Every action passes through the timing model and the duplicate gate
    before it reaches on_action. A click may later be re-sent with the same
    id once (navigation probe result or merged double-click count).

    Usage:
        log = ActionLog()
        listener = EventListener(document, on_action=log, scheduler=ManualScheduler())
        listener.start()
        document.dispatch_event(DomEvent(DomEventType.CLICK, target=button))
        listener.stop()
    """

    def __init__(
        self,
        document: PageDocument,
        on_action: ActionSink,
        config: Optional[CaptureConfig] = None,
        scheduler: Optional[Scheduler] = None,
        on_diagnostic: Optional[Callable[[Diagnostic], None]] = None,
        selector_generator: Optional[SelectorGenerator] = None,
    ):
        """
        Initialize event listener.

        Args:
            document: The page being recorded
            on_action: Sink called with every emitted (and re-sent) action
            config: Timing windows and selector toggles
            scheduler: Clock and deferred work (asyncio loop by default)
            on_diagnostic: Optional callback for skipped inputs
            selector_generator: Shared generator (one is created if omitted)
        """
        self.document = document
        self.on_action = on_action
        self.config = config or CaptureConfig()
        self.scheduler = scheduler or AsyncioScheduler()
        self.on_diagnostic = on_diagnostic

        self.carousel = CarouselDetector(document)
        self.selector_generator = selector_generator or SelectorGenerator(
            document, self.config.selectors, carousel_detector=self.carousel
        )
        self.rules = InteractiveRuleTable(document, self.carousel)
        self.classifier = IntentClassifier(document)
        self.gate = DuplicateGate(self.config)
        self.timing = ActionTimingModel()
        self.typing = TypingSessionArena(document)
        self.dropdowns = DropdownTracker(
            document, self.selector_generator, self.scheduler, self.config, last_click=lambda: self.last_click_id
        )

        self.is_listening = False
        self.recording_start: Optional[float] = None
        self.previous_url = document.url
        self.last_action = None
        self.last_click_id: Optional[str] = None
        self._sequence = 0
        self._token: Optional[CancellationToken] = None

        # Click bookkeeping
        self.last_click_handle: Optional[str] = None
        self.last_click_time = 0.0
        self.click_history: Deque[Tuple[str, float]] = deque(maxlen=self.config.max_click_history)
        self.recent_actions: Deque = deque(maxlen=self.config.max_recent_actions)
        self.pending_click: Optional[PendingClick] = None
        self._processed_event_keys: Set[str] = set()
        self._checkbox_markers: Set[str] = set()

        # Field tracking
        self.last_known_values: Dict[str, str] = {}
        self._observed_fields: Set[str] = set()
        self._focused_handle: Optional[str] = None
        self._poll_task = None

        # Hover, scroll, probes
        self._hovered_handle: Optional[str] = None
        self._hover_started = 0.0
        self._scroll_task = None
        self._probes: List[NavigationProbe] = []

        self._handlers = {
            DomEventType.CLICK: self._guard(self.on_click),
            DomEventType.MOUSEDOWN: self._guard(self.on_mousedown),
            DomEventType.DBLCLICK: self._guard(self.on_dblclick),
            DomEventType.INPUT: self._guard(self.on_input),
            DomEventType.CHANGE: self._guard(self.on_change),
            DomEventType.SUBMIT: self._guard(self.on_submit),
            DomEventType.KEYDOWN: self._guard(self.on_keydown),
            DomEventType.SCROLL: self._guard(self.on_scroll),
            DomEventType.POPSTATE: self._guard(self.on_popstate),
            DomEventType.MOUSEENTER: self._guard(self.on_mouseenter),
            DomEventType.MOUSELEAVE: self._guard(self.on_mouseleave),
            DomEventType.FOCUS: self._guard(self.on_focus),
            DomEventType.BLUR: self._guard(self.on_blur),
            DomEventType.BEFOREUNLOAD: self._guard(self.on_beforeunload),
        }

    # ==================== Lifecycle ====================

    def start(self, recording_start: Optional[float] = None):
        """
        Begin listening. Calling start() while listening does nothing.

        Args:
            recording_start: Scheduler time that action timestamps are relative to.
                Defaults to now on the first start; kept across stop/start otherwise.
        """
        if self.is_listening:
            return
        if recording_start is not None:
            self.recording_start = recording_start
        elif self.recording_start is None:
            self.recording_start = self.scheduler.now()

        self.is_listening = True
        self._token = CancellationToken("event-listener")
        self.previous_url = self.document.url
        for event_type, handler in self._handlers.items():
            self.document.add_event_listener(event_type.value, handler)
        self.document.observe(self._on_value_mutations)
        self.dropdowns.start(self._token)
        logger.info(f"Event listener started on {self.document.url}")

    def stop(self):
        """Flush pending typing, then detach and cancel all deferred work."""
        if not self.is_listening:
            return
        self.flush_pending_inputs("stop")
        self._stop_polling()

        self.is_listening = False
        for event_type, handler in self._handlers.items():
            self.document.remove_event_listener(event_type.value, handler)
        self.document.disconnect(self._on_value_mutations)
        self.dropdowns.stop()
        for probe in self._probes:
            probe.cancel()
        self._probes.clear()
        if self._token is not None:
            self._token.cancel()
            self._token = None

        self.typing.clear()
        self.last_known_values.clear()
        self._observed_fields.clear()
        self.click_history.clear()
        self.recent_actions.clear()
        self.dropdowns.clear()
        self._checkbox_markers.clear()
        self._processed_event_keys.clear()
        self.pending_click = None
        self._hovered_handle = None
        self._scroll_task = None
        logger.info(f"Event listener stopped after {self._sequence} action(s)")

    def destroy(self):
        """stop() plus a full reset of timing, dedup and session state."""
        self.stop()
        self.gate.reset()
        self.timing.reset()
        self.last_action = None
        self.last_click_id = None
        self.last_click_handle = None
        self.recording_start = None

    # ==================== Emission ====================

    def _elapsed(self, at: Optional[float] = None) -> int:
        now = self.scheduler.now() if at is None else at
        return int(now - (self.recording_start or 0))

    def _base_fields(self) -> dict:
        return {"id": "", "timestamp": self._elapsed(), "url": self.document.url}

    def _emit(self, action):
        """Stamp, gate and deliver an action. Returns the emitted action, or None if suppressed."""
        candidate = self.timing.preview(action.model_copy(update={"id": generate_action_id(self._sequence + 1)}))
        if not self.gate.accept(candidate):
            return None
        self._sequence += 1
        self.timing.commit(candidate)
        self.last_action = candidate
        self.recent_actions.append(candidate)
        if isinstance(candidate, ClickAction):
            self.last_click_id = candidate.id
        logger.debug(f"Emitting {candidate.type} {candidate.id} at {candidate.timestamp}ms")
        self.on_action(candidate)
        return candidate

    def _find_recent(self, action_id: str):
        for action in self.recent_actions:
            if action.id == action_id:
                return action
        return None

    def _patch(self, action_id: str, **updates):
        """Re-send an emitted action with updated fields under the same id."""
        original = self._find_recent(action_id)
        if original is None:
            logger.warning(f"Could not find action {action_id} to update")
            return None
        patched = original.model_copy(update=updates)
        position = list(self.recent_actions).index(original)
        self.recent_actions[position] = patched
        self.gate.replace(patched)
        if self.last_action is not None and self.last_action.id == action_id:
            self.last_action = patched
        logger.debug(f"Updated {action_id}: {', '.join(updates)}")
        self.on_action(patched)
        return patched

    def _report(self, diagnostic: Diagnostic):
        if self.on_diagnostic is None:
            return
        callback = self.on_diagnostic
        self.scheduler.call_later(0, lambda: callback(diagnostic))

    def _guard(self, handler: Callable[[DomEvent], None]) -> Callable[[DomEvent], None]:
        def run(event: DomEvent):
            if not self.is_listening:
                return
            try:
                handler(event)
            except Exception:
                logger.exception(f"Failed to handle {getattr(event.type, 'value', event.type)} event")

        return run

    # ==================== Clicks ====================

    def on_click(self, event: DomEvent):
        clicked = event.target
        if not is_element(clicked):
            return
        now = self.scheduler.now()

        event_key = f"{event.time_stamp or now}-{self.document.handle_of(clicked)}"
        if event_key in self._processed_event_keys:
            return
        self._processed_event_keys.add(event_key)
        self.scheduler.call_later(
            self.config.processed_key_ttl_ms, lambda: self._processed_event_keys.discard(event_key), self._token
        )

        target = self.rules.find_interactive_element(clicked)
        if target is None:
            logger.debug(f"No interactive element for click on <{tag_name(clicked)}>, skipping")
            return
        if self._is_hidden_toggle(target):
            return
        handle = self.document.handle_of(target)

        if self._merge_os_double_click(handle, now, event.detail):
            return
        if self._is_repeated_click(target, handle, now):
            return

        self.last_click_handle = handle
        self.last_click_time = now
        self.click_history.append((handle, now))

        if tag_name(target) in TEXT_FIELD_TAGS and is_sensitive_input(target):
            logger.debug(f"Click on sensitive field {self._describe(target)}, tracking value")
            self.typing.ensure(target, now)
            self._begin_tracking(target)

        self.flush_pending_inputs("click")
        self._emit_hover_before_click(target, now)

        emitted = self._emit(self._build_click(event, target, clicked, click_count=1))
        if emitted is None:
            return
        self._remember_pending(emitted, handle, now)
        if emitted.click_type == "submit":
            self._start_probe(emitted)
        elif emitted.context is not None and emitted.context.navigation_intent:
            self._follow_url_change(emitted)
        self.previous_url = self.document.url

    def on_mousedown(self, event: DomEvent):
        """Dropdown options can vanish before click fires; record them on mousedown."""
        clicked = event.target
        if not is_element(clicked):
            return
        target = self.rules.find_interactive_element(clicked)
        if target is None or self._is_hidden_toggle(target):
            return
        if tag_name(target) == "a" and target.get("href"):
            return
        if self.dropdowns.containing_dropdown(target) is None:
            return

        now = self.scheduler.now()
        handle = self.document.handle_of(target)
        self.flush_pending_inputs("click")
        emitted = self._emit(self._build_click(event, target, clicked, click_count=1))
        if emitted is None:
            return
        self.last_click_handle = handle
        self.last_click_time = now
        self.click_history.append((handle, now))
        self._remember_pending(emitted, handle, now)
        logger.debug(f"Recorded dropdown option {emitted.id} on mousedown")

    def on_dblclick(self, event: DomEvent):
        clicked = event.target
        if not is_element(clicked):
            return
        target = self.rules.find_interactive_element(clicked)
        if target is None:
            return
        handle = self.document.handle_of(target)

        pending = self.pending_click
        if pending is not None and pending.handle == handle:
            logger.debug(f"Updating {pending.action_id} to a double-click")
            self._patch(pending.action_id, click_count=2)
            self.pending_click = None
            return

        logger.warning("Double-click without a pending click, recording a new action")
        self._emit(self._build_click(event, target, clicked, click_count=2))

    def _merge_os_double_click(self, handle: str, now: float, detail: int) -> bool:
        pending = self.pending_click
        if pending is None:
            return False
        gap = now - pending.time
        if pending.handle == handle and gap < self.config.double_click_merge_ms and detail > 1:
            logger.info(f"Merging OS double-click into {pending.action_id} ({gap:.0f}ms, detail={detail})")
            self._patch(pending.action_id, click_count=detail)
            self.pending_click = None
            return True
        if gap > self.config.pending_click_ttl_ms:
            self.pending_click = None
        return False

    def _is_repeated_click(self, target, handle: str, now: float) -> bool:
        if handle != self.last_click_handle:
            return False
        gap = now - self.last_click_time
        is_carousel = self.carousel.control_for(target) is not None

        if gap < self.config.debounce_ms:
            logger.debug(f"Skipping repeated {'carousel ' if is_carousel else ''}click ({gap:.0f}ms)")
            return True
        if is_carousel and gap < self.config.carousel_burst_gap_ms:
            recent = self._recent_clicks_on(handle, now)
            if recent > self.config.carousel_burst_limit:
                logger.debug(f"Skipping excessive carousel clicks ({recent} in {self.config.carousel_burst_window_ms}ms)")
                return True
        return False

    def _recent_clicks_on(self, handle: str, now: float) -> int:
        window = self.config.carousel_burst_window_ms
        return sum(1 for clicked, at in self.click_history if clicked == handle and now - at < window)

    def _remember_pending(self, action: ClickAction, handle: str, now: float):
        self.pending_click = PendingClick(action_id=action.id, handle=handle, time=now)

        def expire():
            if self.pending_click is not None and self.pending_click.action_id == action.id:
                self.pending_click = None

        self.scheduler.call_later(self.config.pending_click_ttl_ms, expire, self._token)

    def _is_hidden_toggle(self, element) -> bool:
        return is_toggle_input(element) and not self.document.is_visible(element)

    def _build_click(self, event: DomEvent, target, clicked, click_count: int) -> ClickAction:
        control = self.carousel.control_for(target)
        is_carousel = control is not None
        if is_carousel:
            selector = self.selector_generator.generate_carousel_selectors(target, control=control)
        else:
            selector = self.selector_generator.generate_selectors(target)

        quality = self.selector_generator.validate_selector_quality(target, selector)
        if not quality.can_record:
            logger.error(f"Cannot record reliable selector: {quality.message}")
        elif quality.should_warn:
            logger.warning(f"Selector quality warning: {quality.message}")

        rect = self.document.bounding_rect(target)
        x = event.client_x - rect.left
        y = event.client_y - rect.top
        button = MOUSE_BUTTONS.get(event.button, "right")
        # Chromium fires a synthetic right-click at the corner when a native select opens
        if tag_name(target) == "select" and button == "right":
            if abs(x) < SYNTHETIC_CLICK_OFFSET and abs(y) < SYNTHETIC_CLICK_OFFSET:
                logger.warning(f"Correcting synthetic right-click on <select> at ({x:.2f}, {y:.2f})")
                button = "left"

        state, conditions, context = capture_element_state(self.document, target)
        self._add_navigation_intent(target, context)

        fields = dict(self._base_fields())
        fields.update(
            selector=selector,
            tag_name=tag_name(target),
            text=text_content(target) or None,
            coordinates=Coordinates(x=x, y=y),
            button=button,
            click_count=click_count,
            modifiers=event.modifiers,
            element_state=state,
            wait_conditions=conditions,
            context=context,
            content_signature=generate_content_signature(self.document, target),
        )

        click_type = "standard"
        if is_toggle_input(target):
            click_type = "toggle-input"
            fields["input_type"] = input_type(target)
            fields["checked"] = self.document.is_checked(target)
            self._mark_checkbox(self.document.handle_of(target))
        if not is_carousel and is_submit_button(self.document, target):
            click_type = "submit"
        if is_carousel:
            click_type = "carousel-navigation"
            container = self.selector_generator.find_unique_parent_container(control)
            fields["carousel_context"] = self.carousel.build_context(control, container.selector)
        fields["click_type"] = click_type

        fields.update(self.dropdowns.analyze(target))
        fields["click_intent"] = self.classifier.classify(
            target, ClickContext(is_carousel=is_carousel, is_form_submit=click_type == "submit")
        )
        fields["validation"] = generate_validation(
            self.document,
            target,
            event.detail,
            [at for _, at in self.click_history],
            self._elapsed(),
            rapid_fire_window_ms=self.config.rapid_fire_window_ms,
            startup_grace_ms=self.config.startup_grace_ms,
        )
        if clicked is not target:
            logger.debug(f"Click on <{tag_name(clicked)}> recorded on <{tag_name(target)}>")
        return ClickAction(**fields)

    def _add_navigation_intent(self, element, context):
        intent = detect_navigation_intent(self.document, element)
        if intent == "none":
            return
        context.navigation_intent = intent
        if intent == "checkout-complete":
            context.is_terminal_action = True
        expectation = create_url_change_expectation(self.document.url, intent)
        if expectation is not None:
            context.expected_url_change = expectation

    # ==================== Navigation follow-up ====================

    def _start_probe(self, action: ClickAction):
        """Watch for navigation after a submit click and patch the click with the result."""
        before_url = self.document.url
        probe = NavigationProbe(
            self.document,
            self.scheduler,
            self.config.navigation_probe_ms,
            on_result=lambda navigated: self._on_probe_result(probe, action.id, before_url, navigated),
            token=self._token,
        )
        self._probes.append(probe)
        probe.start()

    def _on_probe_result(self, probe: NavigationProbe, action_id: str, before_url: str, navigated: bool):
        if probe in self._probes:
            self._probes.remove(probe)
        if not self.is_listening:
            logger.debug(f"Navigation probe for {action_id} finished after stop, ignoring")
            return
        updates = {"expects_navigation": navigated, "is_ajax_form": not navigated}
        context = self._settled_context(action_id, before_url)
        if context is not None:
            updates["context"] = context
        self._patch(action_id, **updates)

    def _follow_url_change(self, action: ClickAction):
        before_url = self.document.url

        def settle():
            context = self._settled_context(action.id, before_url)
            if context is not None:
                self._patch(action.id, context=context)

        self.scheduler.call_later(self.config.navigation_probe_ms, settle, self._token)

    def _settled_context(self, action_id: str, before_url: str):
        """Context with the observed URL change, or None when the URL did not change."""
        action = self._find_recent(action_id)
        after_url = self.document.url
        if action is None or action.context is None or after_url == before_url:
            return None
        intent = action.context.navigation_intent
        if intent is None or action.context.expected_url_change is None:
            return None
        expectation = create_url_change_expectation(before_url, intent, after_url)
        logger.info(f"Detected URL change after {action_id}: {before_url} -> {after_url} ({intent})")
        return action.context.model_copy(update={"expected_url_change": expectation})

    # ==================== Typing ====================

    def on_input(self, event: DomEvent):
        target = event.target
        if not self._is_typing_target(target):
            return
        now = self.scheduler.now()
        session = self.typing.ensure(target, now)
        session.record_keystroke(now)
        self._arm_debounce(session)

    def on_focus(self, event: DomEvent):
        target = event.target
        if not self._is_typing_target(target):
            return
        for session in self.typing.others(target):
            if session.debounce is not None:
                self._flush(self._live_element(session))

        session = self.typing.get(target)
        if session is None or session.debounce is None:
            self.typing.begin(target, self.scheduler.now())
        self._begin_tracking(target)
        logger.debug(f"Field focused: {self._describe(target)}")

    def on_blur(self, event: DomEvent):
        target = event.target
        if not self._is_typing_target(target):
            return
        self._stop_tracking(target)
        if target in self.typing:
            if self.document.field_value(target):
                self._flush(target)
            else:
                self.typing.release(target)

    def on_beforeunload(self, event: DomEvent):
        self.flush_pending_inputs("unload")

    def flush_pending_inputs(self, reason: str = ""):
        """Record every field with typing still inside its debounce window."""
        pending = [session for session in self.typing.sessions() if session.debounce is not None]
        if pending:
            logger.debug(f"Flushing {len(pending)} pending input(s) before {reason or 'request'}")
        for session in pending:
            self._flush(self._live_element(session))

    def _is_typing_target(self, element) -> bool:
        return is_element(element) and tag_name(element) in TEXT_FIELD_TAGS and not is_toggle_input(element)

    def _live_element(self, session: TypingSession):
        """Current element for a session; snapshots reloaded by the host replace element objects."""
        live = self.document.element_by_handle(session.handle)
        return live if live is not None else session.element

    def _arm_debounce(self, session: TypingSession):
        session.cancel_debounce()
        session.debounce = self.scheduler.call_later(
            debounce_for(session.element, self.config),
            lambda: self._flush(self._live_element(session)),
            self._token,
        )

    def _flush(self, element):
        session = self.typing.release(element)
        self._stop_tracking(element)
        value = self.document.field_value(element)

        if session is None or not value:
            reason = "missing start time" if session is None else "empty value"
            logger.warning(f"Input skipped for {self._describe(element)}: {reason}")
            self._report(
                Diagnostic(
                    kind="input-skipped",
                    message=f"Input field skipped: {self._describe(element)} ({reason})",
                    element_handle=self.document.handle_of(element),
                    timestamp=self._elapsed(),
                )
            )
            return

        sensitive = is_sensitive_input(element)
        state, conditions, context = capture_element_state(self.document, element)
        action = InputAction(
            id="",
            timestamp=self._elapsed(session.started_at),
            url=self.document.url,
            selector=self.selector_generator.generate_selectors(element),
            tag_name=tag_name(element),
            value=value,
            input_type=input_type(element),
            is_sensitive=sensitive,
            simulation_type="type",
            typing_delay=session.typing_delay(self.config.default_typing_delay_ms),
            variable_name=generate_variable_name(self.document, element) if sensitive else None,
            element_state=state,
            wait_conditions=conditions,
            context=context,
        )
        self._emit(action)

    # ==================== Field polling and value observers ====================

    def _begin_tracking(self, element):
        handle = self.document.handle_of(element)
        self._observed_fields.add(handle)
        self.last_known_values[handle] = self.document.field_value(element)
        self._start_polling(handle)

    def _stop_tracking(self, element):
        handle = self.document.handle_of(element)
        self._observed_fields.discard(handle)
        self.last_known_values.pop(handle, None)
        if self._focused_handle == handle:
            self._stop_polling()

    def _start_polling(self, handle: str):
        self._stop_polling()
        self._focused_handle = handle
        self._poll_task = self.scheduler.call_every(self.config.poll_interval_ms, self._poll_focused_field, self._token)

    def _stop_polling(self):
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        self._focused_handle = None

    def _poll_focused_field(self):
        element = self.document.element_by_handle(self._focused_handle)
        if element is None or not self.is_listening:
            self._stop_polling()
            return
        self._check_value(element, "poll")

    def _on_value_mutations(self, records):
        for record in records:
            if record.attribute_name != "value":
                continue
            if self.document.handle_of(record.target) in self._observed_fields:
                self._check_value(record.target, "observer")

    def _check_value(self, element, source: str):
        handle = self.document.handle_of(element)
        current = self.document.field_value(element)
        if current == self.last_known_values.get(handle, ""):
            return
        logger.debug(f"Value change on {self._describe(element)} detected by {source}")
        self.last_known_values[handle] = current
        now = self.scheduler.now()
        session = self.typing.ensure(element, now)
        session.record_keystroke(now)
        self._arm_debounce(session)

    # ==================== Change, submit, keys, scroll ====================

    def on_change(self, event: DomEvent):
        target = event.target
        if not is_element(target):
            return
        if is_toggle_input(target):
            self._record_toggle_change(target)
            return
        if tag_name(target) != "select":
            return
        reason = select_skip_reason(self.document, target)
        if reason is not None:
            logger.warning(f"Select {self._describe(target)} not recorded: {reason}")
            return
        self._record_select(target)

    def _record_toggle_change(self, target):
        handle = self.document.handle_of(target)
        if handle in self._checkbox_markers:
            logger.debug("Skipping checkbox/radio change already recorded as a click")
            return
        if not self.document.is_visible(target):
            logger.debug("Skipping hidden checkbox/radio change")
            return

        state, conditions, context = capture_element_state(self.document, target)
        action = ClickAction(
            **self._base_fields(),
            selector=self.selector_generator.generate_selectors(target),
            tag_name="input",
            text=text_content(target) or None,
            coordinates=Coordinates(),
            click_type="toggle-input",
            input_type=input_type(target),
            checked=self.document.is_checked(target),
            is_programmatic=True,
            element_state=state,
            wait_conditions=conditions,
            context=context,
        )
        logger.debug(f"Recording programmatic {input_type(target)} change on {self._describe(target)}")
        self._emit(action)

    def _mark_checkbox(self, handle: str):
        self._checkbox_markers.add(handle)
        self.scheduler.call_later(
            self.config.checkbox_debounce_ms, lambda: self._checkbox_markers.discard(handle), self._token
        )

    def _record_select(self, select):
        options = self.document.options(select)
        selected = self.document.selected_options(select)
        index = self.document.selected_index(select)

        def describe(option) -> SelectedOption:
            text = text_content(option)
            return SelectedOption(
                text=text,
                value=option.get("value", text),
                index=options.index(option),
                label=option.get("label"),
            )

        state, conditions, context = capture_element_state(self.document, select)
        fields = dict(self._base_fields())
        fields.update(
            selector=self.selector_generator.generate_selectors(select),
            selected_value=self.document.field_value(select),
            selected_index=index,
            select_id=select.get("id") or None,
            select_name=select.get("name") or None,
            element_state=state,
            wait_conditions=conditions,
            context=context,
        )
        if select.get("multiple") is not None:
            chosen = [describe(option) for option in selected]
            fields.update(
                is_multiple=True,
                selected_options=chosen,
                selected_text=", ".join(option.text for option in chosen),
            )
        else:
            chosen = describe(selected[0])
            fields.update(is_multiple=False, selected_option=chosen, selected_text=chosen.text)

        emitted = self._emit(SelectAction(**fields))
        if emitted is not None:
            logger.info(f"Recorded select change: {self._describe(select)} -> {emitted.selected_text!r}")

    def on_submit(self, event: DomEvent):
        form = event.target
        if not is_element(form) or tag_name(form) != "form":
            return
        self.flush_pending_inputs("submit")
        self._emit(SubmitAction(**self._base_fields(), selector=self.selector_generator.generate_selectors(form)))

    def on_keydown(self, event: DomEvent):
        target = event.target
        key = event.key

        # Backup for pages that block input events
        if self._is_typing_target(target) and key not in SPECIAL_KEYS and key not in MODIFIER_KEYS:
            session = self.typing.get(target)
            if session is None or session.debounce is None:
                logger.debug(f"Keydown started input tracking on {self._describe(target)}")
            self._arm_debounce(self.typing.ensure(target, self.scheduler.now()))

        if key == "Enter" and self._is_typing_target(target) and target in self.typing:
            self._flush(target)

        if key not in SPECIAL_KEYS:
            return
        self._emit(KeypressAction(**self._base_fields(), key=key, code=event.code, modifiers=event.modifiers))

    def on_scroll(self, event: DomEvent):
        self.flush_pending_inputs("scroll")
        if event.scroll_x is not None:
            self.document.scroll_x = event.scroll_x
        if event.scroll_y is not None:
            self.document.scroll_y = event.scroll_y
        if self._scroll_task is not None:
            self._scroll_task.cancel()
        self._scroll_task = self.scheduler.call_later(self.config.debounce_ms, self._record_scroll, self._token)

    def _record_scroll(self):
        self._scroll_task = None
        self._emit(
            ScrollAction(
                **self._base_fields(),
                scroll_x=self.document.scroll_x,
                scroll_y=self.document.scroll_y,
                element="window",
            )
        )

    def on_popstate(self, event: DomEvent):
        current_url = self.document.url
        last = self.last_action
        if last is not None and last.type in ("click", "submit"):
            if self._elapsed() - last.timestamp < POPSTATE_ACTION_WINDOW_MS:
                logger.debug(f"popstate follows {last.type} {last.id}, not recording navigation")
                return

        action = NavigationAction(
            **self._base_fields(),
            from_url=self.previous_url,
            to_url=current_url,
            navigation_trigger="back",
            wait_until="load",
            duration=0,
        )
        logger.info(f"Back/forward navigation: {self.previous_url} -> {current_url}")
        self.previous_url = current_url
        self._emit(action)

    # ==================== Hover ====================

    def on_mouseenter(self, event: DomEvent):
        target = event.target
        if is_element(target) and is_dropdown_parent(target):
            self._hovered_handle = self.document.handle_of(target)
            self._hover_started = self.scheduler.now()

    def on_mouseleave(self, event: DomEvent):
        target = event.target
        if not is_element(target) or self.document.handle_of(target) != self._hovered_handle:
            return
        duration = int(self.scheduler.now() - self._hover_started)
        if duration >= self.config.min_hover_duration_ms and is_dropdown_parent(target):
            self._record_hover(target, duration)
        else:
            logger.debug(f"Skipping brief hover ({duration}ms)")
        self._hovered_handle = None

    def _emit_hover_before_click(self, target, now: float):
        if self._hovered_handle is None:
            return
        parent = find_dropdown_parent(target)
        if parent is not None and self.document.handle_of(parent) == self._hovered_handle:
            self._record_hover(parent, int(now - self._hover_started))

    def _record_hover(self, element, duration: int):
        state, conditions, context = capture_element_state(self.document, element)
        text = text_content(element)
        self._emit(
            HoverAction(
                **self._base_fields(),
                selector=self.selector_generator.generate_selectors(element),
                tag_name=tag_name(element),
                text=text[:HOVER_TEXT_LENGTH] if text else None,
                duration=duration,
                is_dropdown_parent=True,
                element_state=state,
                wait_conditions=conditions,
                context=context,
            )
        )
        self._hovered_handle = None

    # ==================== Checkpoints ====================

    def record_checkpoint(
        self,
        check_type: str,
        element=None,
        expected_url: Optional[str] = None,
        expected_value: Optional[str] = None,
        selector: Optional[SelectorStrategy] = None,
    ) -> Optional[CheckpointAction]:
        """
        Record an explicit verification step in the action stream.

        Args:
            check_type: urlMatch, elementVisible, elementText or pageLoad
            element: Element the check is about (elementVisible/elementText)
            expected_url: URL (or URL fragment) for urlMatch
            expected_value: Text expected inside element for elementText
            selector: Selector to record; generated from element when omitted

        Returns:
            The emitted checkpoint
        """
        if element is not None and selector is None:
            selector = self.selector_generator.generate_selectors(element)

        actual_url = self.document.url
        actual_value = text_content(element) if element is not None else None
        if check_type == "urlMatch":
            passed = bool(expected_url) and expected_url in actual_url
        elif check_type == "elementVisible":
            passed = element is not None and self.document.is_visible(element)
        elif check_type == "elementText":
            passed = actual_value is not None and (expected_value or "") in actual_value
        else:
            passed = True

        checkpoint = CheckpointAction(
            **self._base_fields(),
            check_type=check_type,
            expected_url=expected_url,
            actual_url=actual_url if check_type == "urlMatch" else None,
            selector=selector,
            expected_value=expected_value,
            actual_value=actual_value,
            passed=passed,
        )
        return self._emit(checkpoint)

    # ==================== Helpers ====================

    def _describe(self, element) -> str:
        return element.get("id") or element.get("name") or f"<{tag_name(element)}>"
