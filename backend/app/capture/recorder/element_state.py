"""
Element state and navigation intent.

Captures what replay needs to wait for before acting on an element
(visibility, enabled state, image load) and predicts whether acting on it
will navigate, and where to.
"""

import logging
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from ..dom.document import PageDocument, ancestors, class_list, tag_name, text_content
from ..models import ActionContext, ElementState, NavigationIntent, UrlChangeExpectation, WaitConditions

# Configure logging
logger = logging.getLogger(__name__)

PARENT_VISIBILITY_DEPTH = 10

SUBMIT_COMPLETION_TEXT = ("complete", "place order", "confirm", "pay now", "submit order")
CHECKOUT_TEXT = ("complete order", "place order", "confirm payment", "pay now", "checkout", "complete purchase")
CHECKOUT_IDS = ("checkout", "complete-order", "place-order")
MODAL_SELECTOR = '[role="dialog"], [id*="modal"], [class*="modal"]'
MODAL_CLOSE_TEXT = ("close", "ok", "done", "×")
MODAL_SUCCESS_SELECTOR = '[class*="success"], [id*="success"], [class*="complete"], [id*="complete"]'
LOGOUT_TEXT = ("log out", "logout", "sign out")

EXPECTED_SUCCESS_PATTERNS = ["/account/", "/orders/", "/order/", "/thank-you", "/confirmation", "/success"]
LOGOUT_PATTERNS = ["/", "/login", "/signin"]
SUCCESS_URL_PATTERNS = (
    "/account/",
    "/orders/",
    "/order/",
    "/thank-you",
    "/thankyou",
    "/success",
    "/confirmation",
    "/complete",
    "/receipt",
    "/dashboard",
    "success=true",
    "completed=true",
    "order_id=",
    "order-id=",
)


def _opacity(style: dict) -> float:
    try:
        return float(style.get("opacity", "1"))
    except ValueError:
        return 1.0


def _hidden_by_style(style: dict) -> bool:
    return style.get("display") == "none" or style.get("visibility") == "hidden" or _opacity(style) == 0


def capture_visibility_state(document: PageDocument, element) -> ElementState:
    style = document.computed_style(element)
    rect = document.bounding_rect(element)
    in_viewport = None
    if rect.known:
        in_viewport = (
            rect.top >= 0
            and rect.left >= 0
            and rect.bottom <= document.viewport_height
            and rect.right <= document.viewport_width
        )
    return ElementState(
        visible=document.is_visible(element),
        enabled=element.get("disabled") is None,
        in_viewport=in_viewport,
        opacity=style.get("opacity", "1"),
        display=style.get("display", ""),
        z_index=style.get("z-index", "auto"),
    )


def capture_image_state(document: PageDocument, image) -> dict:
    """Load state reported by the host as natural-width/natural-height/complete style hints."""
    style = document.computed_style(image)

    def as_int(key: str) -> Optional[int]:
        try:
            return int(float(style[key]))
        except (KeyError, ValueError):
            return None

    complete = style.get("complete")
    return {
        "image_complete": complete.lower() == "true" if complete is not None else None,
        "image_natural_width": as_int("natural-width"),
        "image_natural_height": as_int("natural-height"),
    }


def is_parent_visible(document: PageDocument, element) -> bool:
    for depth, parent in enumerate(ancestors(element)):
        if depth >= PARENT_VISIBILITY_DEPTH:
            break
        if _hidden_by_style(document.computed_style(parent)):
            return False
    return True


def is_lazy_loaded(element) -> bool:
    if tag_name(element) != "img":
        return False
    classes = class_list(element)
    return (
        element.get("loading") == "lazy"
        or element.get("data-src") is not None
        or "lazy" in classes
        or "lazyload" in classes
    )


def capture_element_state(document: PageDocument, element) -> Tuple[ElementState, WaitConditions, ActionContext]:
    """
    Snapshot element state for smart waits.

    Args:
        document: The page being recorded
        element: Target element

    Returns:
        (element_state, wait_conditions, context)
    """
    state = capture_visibility_state(document, element)
    conditions = WaitConditions(
        element_visible=state.visible,
        parent_visible=is_parent_visible(document, element),
        element_stable=True,
    )
    if tag_name(element) == "img":
        image = capture_image_state(document, element)
        state = state.model_copy(update=image)
        if image["image_complete"] is not None:
            conditions.image_loaded = bool(image["image_complete"]) and (image["image_natural_width"] or 0) > 0
    context = ActionContext(is_lazy_loaded=is_lazy_loaded(element))

    if not state.visible:
        logger.debug(f"Element <{tag_name(element)}> not visible (display={state.display!r}, opacity={state.opacity})")
    return state, conditions, context


# ==================== Navigation intent ====================

def detect_navigation_intent(document: PageDocument, element) -> NavigationIntent:
    text = text_content(element).lower()
    element_id = (element.get("id") or "").lower()
    classes = " ".join(class_list(element)).lower()
    element_type = (element.get("type") or "").lower()
    if tag_name(element) == "button" and not element_type:
        element_type = "submit"
    role = (element.get("role") or "").lower()

    if element_type == "submit" or (role == "button" and document.closest(element, "form") is not None):
        if (
            any(keyword in text for keyword in SUBMIT_COMPLETION_TEXT)
            or "complete" in element_id
            or "submit" in element_id
            or "complete" in classes
            or "submit" in classes
        ):
            return "checkout-complete"
        return "submit-form"

    if any(keyword in text for keyword in CHECKOUT_TEXT) or any(keyword in element_id for keyword in CHECKOUT_IDS):
        return "checkout-complete"

    modal = document.closest(element, MODAL_SELECTOR)
    if modal is not None:
        closes = any(keyword in text for keyword in MODAL_CLOSE_TEXT) or "close" in element_id or "close" in classes
        if closes and document.query_within(modal, MODAL_SUCCESS_SELECTOR):
            return "close-modal-and-redirect"

    if any(keyword in text for keyword in LOGOUT_TEXT) or "logout" in element_id or "logout" in classes:
        return "logout"

    if tag_name(element) == "a" or element.get("href") is not None:
        return "navigate-to-page"
    return "none"


def extract_url_pattern(url: str) -> List[str]:
    parsed = urlparse(url)
    if not parsed.scheme:
        return [url]
    path = parsed.path or "/"
    patterns = [path]
    segments = [segment for segment in path.split("/") if segment]
    for index in range(len(segments)):
        patterns.append("/" + "/".join(segments[: index + 1]) + "/")
    if parsed.query:
        patterns.append(f"{path}?{parsed.query}")
    return patterns


def is_success_url(url: str) -> bool:
    lower = url.lower()
    return any(pattern in lower for pattern in SUCCESS_URL_PATTERNS)


def create_url_change_expectation(
    before_url: str,
    intent: NavigationIntent,
    after_url: Optional[str] = None,
) -> Optional[UrlChangeExpectation]:
    """Predicted (or, once after_url is known, observed) URL change for an intent."""
    if intent == "none":
        return None
    expectation = UrlChangeExpectation(before_url=before_url)

    if after_url:
        expectation.after_url = after_url
        expectation.patterns = extract_url_pattern(after_url)
        if intent in ("checkout-complete", "close-modal-and-redirect"):
            expectation.is_success_flow = is_success_url(after_url)
            expectation.type = "success" if expectation.is_success_flow else "redirect"
        else:
            expectation.type = "redirect" if before_url != after_url else "same-page"
        return expectation

    if intent == "checkout-complete":
        expectation.type = "success"
        expectation.is_success_flow = True
        expectation.patterns = list(EXPECTED_SUCCESS_PATTERNS)
    elif intent == "logout":
        expectation.type = "redirect"
        expectation.patterns = list(LOGOUT_PATTERNS)
    elif intent == "navigate-to-page":
        expectation.type = "redirect"
    return expectation
