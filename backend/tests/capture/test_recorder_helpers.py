"""
Unit tests for recorder helpers: form field rules, element state,
navigation intent, content signatures, click validation, ActionLog and
the action models.
"""

import json
import pytest
from pathlib import Path
from pydantic import ValidationError
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "app"))

from capture.config import CaptureConfig
from capture.core.scheduler import CancellationToken, ManualScheduler
from capture.models import (
    ClickAction,
    NavigationAction,
    SelectorStrategy,
    SelectorType,
    parse_action,
)
from capture.recorder.action_log import ActionLog
from capture.recorder.content_signature import generate_content_signature
from capture.recorder.dropdowns import DropdownTracker
from capture.recorder.element_state import (
    EXPECTED_SUCCESS_PATTERNS,
    capture_element_state,
    create_url_change_expectation,
    detect_navigation_intent,
    extract_url_pattern,
    is_success_url,
)
from capture.recorder.form_fields import (
    debounce_for,
    generate_variable_name,
    is_sensitive_input,
    is_submit_button,
    select_skip_reason,
)
from capture.recorder.validation import generate_validation
from capture.selectors.selector_generator import SelectorGenerator


# ==================== Form fields ====================

class TestSensitiveFields:
    """Test sensitive field detection and variable naming."""

    def test_password_type_is_sensitive(self, make_document):
        """Test password inputs."""
        document = make_document('<input type="password">')

        assert is_sensitive_input(document.query("input")) is True

    def test_secret_looking_name_is_sensitive(self, make_document):
        """Test names that look like secrets."""
        document = make_document('<input type="text" name="card_cvv"><input type="text" name="city">')
        cvv, city = document.query_all("input")

        assert is_sensitive_input(cvv) is True
        assert is_sensitive_input(city) is False

    def test_variable_name_from_id(self, make_document):
        """Test that the id becomes an upper-snake variable name."""
        document = make_document('<form id="signin"><input id="password" type="password"></form>')

        assert generate_variable_name(document, document.query("input")) == "PASSWORD"

    def test_variable_name_gets_login_prefix(self, make_document):
        """Test the login form prefix."""
        document = make_document('<form id="login-form"><input name="pass-word" type="password"></form>')

        assert generate_variable_name(document, document.query("input")) == "LOGIN_PASS_WORD"

    def test_variable_name_falls_back_to_type(self, make_document):
        """Test naming a bare password input."""
        document = make_document('<div><input type="password"></div>')

        assert generate_variable_name(document, document.query("input")) == "PASSWORD"

    def test_debounce_windows(self, make_document):
        """Test per-field debounce selection."""
        document = make_document(
            '<input type="password" id="pw"><input type="email" id="mail">'
            '<input id="zip" maxlength="10"><textarea id="notes"></textarea>'
        )
        config = CaptureConfig()

        assert debounce_for(document.query("#pw"), config) == 300
        assert debounce_for(document.query("#mail"), config) == 400
        assert debounce_for(document.query("#zip"), config) == 400
        assert debounce_for(document.query("#notes"), config) == 500


class TestSubmitDetection:
    """Test submit button detection."""

    def test_default_button_in_form(self, make_document):
        """Test that an untyped button inside a form submits."""
        document = make_document('<form><button>Send</button></form>')

        assert is_submit_button(document, document.query("button")) is True

    def test_type_button_does_not_submit(self, make_document):
        """Test explicit type=button."""
        document = make_document('<form><button type="button">Preview</button></form>')

        assert is_submit_button(document, document.query("button")) is False

    def test_submit_input(self, make_document):
        """Test input type=submit."""
        document = make_document('<form><input type="submit" value="Go"></form>')

        assert is_submit_button(document, document.query("input")) is True

    def test_primary_styled_button_near_inputs(self, make_document):
        """Test SPA forms without a form element."""
        document = make_document(
            '<div class="signup"><input name="email"><div class="btn-primary" role="button">Join</div></div>'
        )

        assert is_submit_button(document, document.query("[role=button]")) is True


class TestSelectGating:
    """Test select change gating."""

    def test_valid_select_is_recorded(self, make_document):
        """Test that a normal selection passes."""
        document = make_document('<select><option value="a">A</option><option value="b">B</option></select>')

        assert select_skip_reason(document, document.query("select")) is None

    def test_disabled_select(self, make_document):
        """Test disabled selects."""
        document = make_document('<select disabled><option>A</option></select>')

        assert select_skip_reason(document, document.query("select")) == "disabled"

    def test_disabled_option(self, make_document):
        """Test selections of disabled options."""
        document = make_document('<select><option>A</option><option disabled selected>B</option></select>')

        assert select_skip_reason(document, document.query("select")) == "disabled-option"

    def test_empty_multiple_select(self, make_document):
        """Test multi-selects with nothing selected."""
        document = make_document('<select multiple><option>A</option></select>')

        assert select_skip_reason(document, document.query("select")) == "no-selection"

    def test_hidden_select(self, make_document):
        """Test hidden selects."""
        document = make_document('<select style="display: none"><option>A</option></select>')

        assert select_skip_reason(document, document.query("select")) == "hidden"

    def test_select_without_options(self, make_document):
        """Test empty selects."""
        document = make_document('<select></select>')

        assert select_skip_reason(document, document.query("select")) == "no-options"


# ==================== Element state ====================

class TestElementState:
    """Test smart-wait state capture."""

    def test_image_state_from_host_hints(self, make_document):
        """Test image load state and lazy loading."""
        document = make_document('<img src="lamp.jpg" loading="lazy">')
        image = document.query("img")
        document.set_computed_style(image, natural_width="640", natural_height="480", complete="true")

        state, conditions, context = capture_element_state(document, image)

        assert state.image_natural_width == 640
        assert state.image_complete is True
        assert conditions.image_loaded is True
        assert context.is_lazy_loaded is True

    def test_hidden_parent(self, make_document):
        """Test parent visibility."""
        document = make_document('<div style="display:none"><button>Hidden</button></div>')

        state, conditions, _ = capture_element_state(document, document.query("button"))

        assert conditions.parent_visible is False

    def test_viewport_from_rect(self, make_document):
        """Test in-viewport detection from host rects."""
        document = make_document('<button id="low">Low</button><button id="high">High</button>')
        document.set_bounding_rect(document.query("#low"), 10, 2000, 80, 20)
        document.set_bounding_rect(document.query("#high"), 10, 10, 80, 20)

        low, _, _ = capture_element_state(document, document.query("#low"))
        high, _, _ = capture_element_state(document, document.query("#high"))

        assert low.in_viewport is False
        assert high.in_viewport is True

    def test_disabled_element(self, make_document):
        """Test enabled state."""
        document = make_document('<button disabled>Wait</button>')

        state, _, _ = capture_element_state(document, document.query("button"))

        assert state.enabled is False


class TestNavigationIntent:
    """Test navigation intent detection."""

    @pytest.mark.parametrize("body,selector,expected", [
        ('<form><button>Sign in</button></form>', "button", "submit-form"),
        ('<button type="submit" id="place-order">Place order</button>', "button", "checkout-complete"),
        ('<a class="btn" href="/checkout">Checkout</a>', "a", "checkout-complete"),
        ('<a href="/logout">Log out</a>', "a", "logout"),
        ('<a href="/about">About</a>', "a", "navigate-to-page"),
        ('<div role="tab">Details</div>', "div", "none"),
        (
            '<div role="dialog"><p class="success">Saved!</p><button type="button" class="close">Close</button></div>',
            "button",
            "close-modal-and-redirect",
        ),
    ])
    def test_intents(self, make_document, body, selector, expected):
        """Test each navigation intent."""
        document = make_document(body)

        assert detect_navigation_intent(document, document.query(selector)) == expected

    def test_url_patterns(self):
        """Test URL pattern extraction."""
        patterns = extract_url_pattern("https://shop.test/orders/42?ref=mail")

        assert patterns == ["/orders/42", "/orders/", "/orders/42/", "/orders/42?ref=mail"]

    def test_success_urls(self):
        """Test success URL recognition."""
        assert is_success_url("https://shop.test/thank-you") is True
        assert is_success_url("https://shop.test/cart") is False

    def test_predicted_expectation(self):
        """Test expectations before the URL is known."""
        expectation = create_url_change_expectation("https://shop.test/cart", "checkout-complete")

        assert expectation.type == "success"
        assert expectation.patterns == EXPECTED_SUCCESS_PATTERNS
        assert create_url_change_expectation("https://shop.test/", "none") is None

    def test_observed_expectation(self):
        """Test expectations once the URL changed."""
        expectation = create_url_change_expectation(
            "https://shop.test/cart", "checkout-complete", "https://shop.test/confirmation"
        )

        assert expectation.type == "success"
        assert expectation.is_success_flow is True
        assert expectation.after_url == "https://shop.test/confirmation"


# ==================== Content signature ====================

class TestContentSignature:
    """Test content fingerprints for list items."""

    def test_card_signature(self, make_document):
        """Test a product card fingerprint."""
        document = make_document(
            '<ul class="results">'
            '<li class="card" data-id="p7"><h3>Blue Lamp</h3><span class="price">$20</span>'
            '<img src="lamp.png" alt="Lamp"><button>Add</button></li>'
            '</ul>'
        )

        signature = generate_content_signature(document, document.query("button"))

        assert signature.element_type == "card"
        assert signature.content_fingerprint["heading"] == "Blue Lamp"
        assert signature.content_fingerprint["price"] == "$20"
        assert signature.content_fingerprint["imageAlt"] == "Lamp"
        assert signature.content_fingerprint["dataId"] == "p7"
        assert signature.list_container.selector == "ul.results"
        assert signature.visual_hints["hasImage"] is True
        assert signature.fallback_position == 0

    def test_table_row(self, make_document):
        """Test table rows."""
        document = make_document(
            '<table><tr><td><a href="/orders/1">Order 1</a></td></tr>'
            '<tr><td><a href="/orders/2">Order 2</a></td></tr></table>'
        )

        signature = generate_content_signature(document, document.query_all("a")[1])

        assert signature.element_type == "table-row"
        assert signature.content_fingerprint["linkHref"] == "/orders/2"

    def test_outside_lists(self, make_document):
        """Test that free-standing elements have no signature."""
        document = make_document('<div><button>Go</button></div>')

        assert generate_content_signature(document, document.query("button")) is None


# ==================== Dropdown linkage ====================

class TestDropdownLinkage:
    """Test opener linkage windows."""

    def make_tracker(self, document, scheduler):
        return DropdownTracker(document, SelectorGenerator(document), scheduler, CaptureConfig())

    def test_link_is_reported_inside_window(self, make_document):
        """Test that a fresh opener is returned."""
        document = make_document('<ul role="menu" id="menu"><li>Edit</li></ul>')
        scheduler = ManualScheduler()
        tracker = self.make_tracker(document, scheduler)
        tracker.start(CancellationToken())
        menu = document.query("#menu")

        tracker.on_dropdown_open(menu, "act_004")
        scheduler.advance(59999)

        assert tracker.opening_action(menu) == "act_004"

    def test_stale_link_is_ignored_without_cleanup(self, make_document):
        """Test the age check when the cleanup task never ran."""
        document = make_document('<ul role="menu" id="menu"><li>Edit</li></ul>')
        scheduler = ManualScheduler()
        tracker = self.make_tracker(document, scheduler)
        token = CancellationToken()
        token.cancel()
        tracker.start(token)
        menu = document.query("#menu")

        tracker.on_dropdown_open(menu, "act_004")
        scheduler.advance(60000)

        assert document.handle_of(menu) in tracker.links
        assert tracker.opening_action(menu) is None


# ==================== Validation ====================

class TestClickValidation:
    """Test click validation metadata."""

    def test_clean_click(self, make_document):
        """Test a deliberate click well after start."""
        document = make_document('<button>Go</button>')

        validation = generate_validation(document, document.query("button"), 1, [1000.0], 5000)

        assert validation.confidence == 100
        assert validation.flags == []

    def test_penalties_accumulate(self, make_document):
        """Test rapid-fire, moving-target and too-soon penalties."""
        document = make_document('<button>Go</button>')
        button = document.query("button")
        document.set_computed_style(button, transition="transform 0.3s ease")

        validation = generate_validation(document, button, 2, [0.0, 100.0, 200.0], 300)

        assert validation.flags == ["rapid-fire", "moving-target", "too-soon-after-load", "os-event-detail-2"]
        assert validation.confidence == 30
        assert validation.is_os_event is True


# ==================== ActionLog and models ====================

def make_click(action_id: str, **fields) -> ClickAction:
    return ClickAction(
        id=action_id,
        timestamp=0,
        tag_name="button",
        selector=SelectorStrategy(css="button", priority=[SelectorType.CSS]),
        **fields,
    )


class TestActionLog:
    """Test the collecting sink."""

    def test_patch_replaces_in_place(self):
        """Test that an action re-sent with the same id is updated, not appended."""
        log = ActionLog()
        log(make_click("act_001"))
        log(make_click("act_002"))

        log(make_click("act_001", click_count=2))

        assert len(log) == 2
        assert [action.id for action in log] == ["act_001", "act_002"]
        assert log.get("act_001").click_count == 2

    def test_checkpoint_ids(self):
        """Test generated checkpoint ids."""
        log = ActionLog()
        log(make_click("act_001"))

        checkpoint = log.add_checkpoint("urlMatch", timestamp=10, expected_url="/cart", actual_url="/cart")

        assert checkpoint.id == "chk_002"
        assert log.get("chk_002") is checkpoint

    def test_json_is_camel_case(self):
        """Test the hand-off format."""
        log = ActionLog()
        log(make_click("act_001", click_type="submit"))

        payload = json.loads(log.to_json())

        assert payload[0]["clickType"] == "submit"
        assert payload[0]["tagName"] == "button"
        assert "click_type" not in payload[0]

    def test_clear(self):
        """Test clearing."""
        log = ActionLog()
        log(make_click("act_001"))

        log.clear()

        assert len(log) == 0
        assert log.get("act_001") is None


class TestModels:
    """Test action model behaviour."""

    def test_navigation_uses_from_and_to(self):
        """Test wire aliases of navigation actions."""
        action = NavigationAction(id="n", timestamp=0, from_url="https://a/", to_url="https://b/")

        data = action.to_dict()

        assert data["from"] == "https://a/"
        assert data["to"] == "https://b/"

    def test_parse_action_dispatches_on_type(self):
        """Test discriminated parsing of camelCase dicts."""
        action = parse_action({
            "type": "click",
            "id": "act_001",
            "timestamp": 5,
            "tagName": "a",
            "selector": {"css": "a.more", "priority": ["css"]},
        })

        assert isinstance(action, ClickAction)
        assert action.selector.primary == SelectorType.CSS

    def test_priority_must_reference_populated_fields(self):
        """Test the selector priority invariant."""
        with pytest.raises(ValidationError):
            SelectorStrategy(css="a", priority=[SelectorType.ID])
