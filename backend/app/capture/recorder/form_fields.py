"""
Form field helpers: sensitivity, variable naming, debounce windows, submit
button detection and select-change gating.
"""

import logging
import re
from typing import Optional

from ..config import CaptureConfig
from ..dom.document import PageDocument, ancestors, class_name, tag_name

# Configure logging
logger = logging.getLogger(__name__)

SENSITIVE_PATTERNS = ("password", "passwd", "pwd", "secret", "pin", "cvv", "ssn")
SHORT_FIELD_TYPES = ("email", "tel", "number")
SHORT_FIELD_MAX_LENGTH = 50
TEXT_FIELD_TYPES = (
    "text", "email", "password", "search", "tel", "url", "number",
    "date", "datetime-local", "month", "week", "time", "color",
)
VARIABLE_PREFIXES = ("USER_", "LOGIN_", "ACCOUNT_", "INPUT_")
PRIMARY_BUTTON_PATTERNS = ("primary", "cta", "main", "action", "default", "positive", "success", "confirm")
FORM_CONTEXT_DEPTH = 5


def input_type(element) -> str:
    if tag_name(element) == "textarea":
        return "textarea"
    return (element.get("type") or "text").lower()


def is_text_field(element) -> bool:
    tag = tag_name(element)
    if tag == "textarea":
        return True
    if element.get("contenteditable") in ("", "true"):
        return True
    return tag == "input" and input_type(element) in TEXT_FIELD_TYPES


def is_toggle_input(element) -> bool:
    return tag_name(element) == "input" and input_type(element) in ("checkbox", "radio")


def is_sensitive_input(element) -> bool:
    """Password-type inputs, or inputs whose name/id look like secrets."""
    if tag_name(element) != "input":
        return False
    if input_type(element) == "password":
        return True
    name = (element.get("name") or "").lower()
    element_id = (element.get("id") or "").lower()
    return any(pattern in name or pattern in element_id for pattern in SENSITIVE_PATTERNS)


def is_short_field(element) -> bool:
    if input_type(element) in SHORT_FIELD_TYPES:
        return True
    try:
        max_length = int(element.get("maxlength") or 0)
    except ValueError:
        return False
    return 0 < max_length < SHORT_FIELD_MAX_LENGTH


def debounce_for(element, config: CaptureConfig) -> int:
    """Per-field input debounce window in ms."""
    if is_sensitive_input(element):
        return config.sensitive_debounce_ms
    if is_short_field(element):
        return config.short_field_debounce_ms
    return config.default_debounce_ms


def generate_variable_name(document: PageDocument, element) -> str:
    """
    Placeholder name for a sensitive value, e.g. PASSWORD or LOGIN_PASSWORD.

    Source: id > name > placeholder > input type, upper-snake-cased, then
    prefixed with the form's context (login/signup) when it has none.
    """
    field_type = input_type(element)
    base = (
        element.get("id")
        or element.get("name")
        or element.get("placeholder")
        or field_type
    ).lower()
    base = re.sub(r"[^a-z0-9_]", "_", base)
    base = re.sub(r"_+", "_", base).strip("_").upper()

    if len(base) < 2:
        base = "PASSWORD" if field_type == "password" else "SECRET"

    if not base.startswith(VARIABLE_PREFIXES):
        form = document.closest(element, "form")
        form_id = (form.get("id") or "").lower() if form is not None else ""
        form_name = (form.get("name") or "").lower() if form is not None else ""
        if "login" in form_id or "login" in form_name:
            base = f"LOGIN_{base}"
        elif "signup" in form_id or "signup" in form_name or "register" in form_id:
            base = f"SIGNUP_{base}"
    return base


# ==================== Submit detection ====================

def is_primary_button(document: PageDocument, element) -> bool:
    classes = class_name(element).lower()
    if any(pattern in classes for pattern in PRIMARY_BUTTON_PATTERNS):
        return True
    style = document.computed_style(element)
    background = style.get("background-color", "")
    has_background = bool(background) and background not in ("transparent", "rgba(0, 0, 0, 0)")
    weight = style.get("font-weight", "")
    is_bold = weight == "bold" or (weight.isdigit() and int(weight) >= 600)
    try:
        is_large = float(style.get("font-size", "0").replace("px", "")) >= 14
    except ValueError:
        is_large = False
    return has_background and (is_bold or is_large)


def has_form_context(document: PageDocument, element) -> bool:
    """Inside a <form>, or near inputs (SPA forms without a form tag)."""
    if document.closest(element, "form") is not None:
        return True
    for depth, node in enumerate(ancestors(element)):
        if depth >= FORM_CONTEXT_DEPTH:
            break
        if document.query_within(node, "input, textarea, select"):
            return True
    return False


def is_submit_button(document: PageDocument, element) -> bool:
    tag = tag_name(element)
    if tag == "button":
        button_type = (element.get("type") or "submit").lower()
        if button_type == "submit" and element.get("type") is not None:
            return True
        if document.closest(element, "form") is not None and button_type not in ("button", "reset"):
            return True
    if tag == "input":
        return input_type(element) == "submit"

    if element.get("role") == "button" and document.closest(element, "form") is not None:
        if is_primary_button(document, element):
            return True
        if element.get("aria-label") or element.get("aria-describedby"):
            return True

    return has_form_context(document, element) and is_primary_button(document, element)


# ==================== Select gating ====================

def select_skip_reason(document: PageDocument, select) -> Optional[str]:
    """Why a select change should not be recorded, or None to record it."""
    if select.get("disabled") is not None:
        return "disabled"
    options = document.options(select)
    if not options:
        return "no-options"
    selected = document.selected_options(select)
    if not selected:
        return "no-selection"
    if any(option.get("disabled") is not None for option in selected):
        return "disabled-option"
    if not document.is_visible(select):
        return "hidden"
    return None
