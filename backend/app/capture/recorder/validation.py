"""
Click validation metadata: a confidence score plus the flags that lowered it.
"""

from typing import Sequence

from ..dom.document import PageDocument
from ..models import ActionValidation

RAPID_FIRE_CLICKS = 3
RAPID_FIRE_PENALTY = 30
MOVING_TARGET_PENALTY = 20
TOO_SOON_PENALTY = 20
STATIC_TRANSITIONS = ("none", "all 0s ease 0s")


def is_rapid_fire(click_times: Sequence[float], window_ms: int) -> bool:
    if len(click_times) < RAPID_FIRE_CLICKS:
        return False
    recent = list(click_times)[-RAPID_FIRE_CLICKS:]
    return recent[-1] - recent[0] < window_ms


def is_element_moving(document: PageDocument, element) -> bool:
    style = document.computed_style(element)
    animation = style.get("animation", "none")
    transition = style.get("transition", "none")
    return animation != "none" or transition not in STATIC_TRANSITIONS


def generate_validation(
    document: PageDocument,
    element,
    detail: int,
    click_times: Sequence[float],
    elapsed_ms: float,
    rapid_fire_window_ms: int = 500,
    startup_grace_ms: int = 500,
) -> ActionValidation:
    flags = []
    confidence = 100

    if is_rapid_fire(click_times, rapid_fire_window_ms):
        flags.append("rapid-fire")
        confidence -= RAPID_FIRE_PENALTY
    if is_element_moving(document, element):
        flags.append("moving-target")
        confidence -= MOVING_TARGET_PENALTY
    if elapsed_ms < startup_grace_ms:
        flags.append("too-soon-after-load")
        confidence -= TOO_SOON_PENALTY

    is_os_event = detail > 1
    if is_os_event:
        flags.append(f"os-event-detail-{detail}")

    return ActionValidation(
        is_os_event=is_os_event,
        confidence=max(0, min(100, confidence)),
        flags=flags,
    )
