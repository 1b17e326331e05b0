"""
Shared selector heuristics: dynamic-token detection, escaping, and the
class/attribute vocabularies used across selector generation.
"""

import re
from typing import List

from ..dom.document import class_list, tag_name

# Framework prefixes, long digit runs, timestamps, hash-like ids
DYNAMIC_ID_PATTERNS = [
    re.compile(r"^(react-|vue-|ng-|ember-)", re.IGNORECASE),
    re.compile(r"\d{6,}"),
    re.compile(r"-\d{13,}"),
    re.compile(r"^[a-f0-9]{8,}", re.IGNORECASE),
]

# CSS-in-JS prefixes, hashed module classes, long digit runs
DYNAMIC_CLASS_PATTERNS = [
    re.compile(r"^(css-|jss-)", re.IGNORECASE),
    re.compile(r"^_[a-f0-9]+", re.IGNORECASE),
    re.compile(r"\d{5,}"),
]

DIRECTION_CLASS = re.compile(r"(^|[-_])(next|prev|previous|left|right|forward|back|backward)([-_]|$)", re.IGNORECASE)

# Containers whose items are better addressed by content than position
DROPDOWN_CONTAINER_SELECTORS = [
    '[role="menu"]',
    '[role="listbox"]',
    '[role="menubar"]',
    ".dropdown-menu",
    ".dropdown-content",
    ".select-dropdown",
    ".autocomplete-results",
    '[class*="dropdown"]',
    '[class*="menu"]',
    "datalist",
]

TEXT_XPATH_TAGS = {"li", "a", "button", "option", "span"}


def is_dynamic_id(value: str) -> bool:
    return any(pattern.search(value) for pattern in DYNAMIC_ID_PATTERNS)


def is_dynamic_class(value: str) -> bool:
    return any(pattern.search(value) for pattern in DYNAMIC_CLASS_PATTERNS)


def is_direction_class(value: str) -> bool:
    return bool(DIRECTION_CLASS.search(value))


def css_escape(value: str) -> str:
    """CSS.escape() for identifiers."""
    out: List[str] = []
    for index, char in enumerate(value):
        code = ord(char)
        if code == 0:
            out.append("�")
        elif 0x01 <= code <= 0x1F or code == 0x7F:
            out.append(f"\\{code:x} ")
        elif index == 0 and char.isdigit() and char.isascii():
            out.append(f"\\{code:x} ")
        elif index == 1 and char.isdigit() and char.isascii() and value[0] == "-":
            out.append(f"\\{code:x} ")
        elif index == 0 and char == "-" and len(value) == 1:
            out.append("\\-")
        elif code >= 0x80 or char in "-_" or (char.isascii() and char.isalnum()):
            out.append(char)
        else:
            out.append("\\" + char)
    return "".join(out)


def css_string(value: str) -> str:
    """Double-quoted CSS attribute value."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def xpath_literal(value: str) -> str:
    """XPath 1.0 string literal; prefers single quotes, falls back to concat()."""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in parts) + ")"


def class_contains(class_token: str) -> str:
    return f"contains(@class, {xpath_literal(class_token)})"


def stable_classes(element, prefer_stable: bool = True) -> List[str]:
    classes = class_list(element)
    if not prefer_stable:
        return classes
    return [cls for cls in classes if not is_dynamic_class(cls)]


def element_selector_part(element, prefer_stable: bool = True) -> str:
    """Compact `tag#id`, `tag.c1.c2` or `tag` step for one element."""
    tag = tag_name(element)
    element_id = element.get("id")
    if element_id and not (prefer_stable and is_dynamic_id(element_id)):
        return f"{tag}#{css_escape(element_id)}"
    classes = stable_classes(element, prefer_stable)[:2]
    if classes:
        return tag + "".join(f".{css_escape(cls)}" for cls in classes)
    return tag
