"""
Content signatures for items in dynamic lists.

A card or row that moves around between page loads can still be found by
what it shows (title, price, link). The signature records that content
alongside the item's position as a last resort.
"""

import logging
from typing import Dict, Optional

from ..dom.document import PageDocument, child_index, class_name, tag_name, text_content
from ..models import ContentSignature, ListContainer
from ..selectors.patterns import element_selector_part

# Configure logging
logger = logging.getLogger(__name__)

LIST_CONTAINER_SELECTOR = 'ul, ol, [class*="list"], [class*="grid"], [role="list"], table, [class*="container"]'
LIST_ITEM_SELECTOR = 'li, [class*="card"], [class*="item"], [role="listitem"], tr, [class*="row"]'

# Fingerprint key -> selector of the descendant it is read from
FINGERPRINT_SELECTORS = {
    "heading": 'h1, h2, h3, h4, h5, h6, [class*="title"], [class*="name"], [class*="heading"]',
    "subheading": '[class*="subtitle"], [class*="description"], [class*="location"], [class*="address"], [class*="caption"]',
    "price": '[class*="price"], [class*="cost"], [class*="amount"], [data-price]',
    "rating": '[class*="rating"], [class*="stars"], [class*="score"], [aria-label*="rating"]',
    "buttonText": 'button, [role="button"], a.button, a.btn',
}

VISUAL_HINT_SELECTORS = {
    "hasImage": "img",
    "hasButton": 'button, [role="button"]',
    "hasLink": "a[href]",
    "hasPrice": '[class*="price"], [class*="cost"]',
    "hasRating": '[class*="rating"], [class*="stars"]',
}


def _first(document: PageDocument, scope, selector: str):
    found = document.query_within(scope, selector)
    return found[0] if found else None


def extract_content_fingerprint(document: PageDocument, item) -> Dict[str, str]:
    fingerprint: Dict[str, str] = {}

    for key, selector in FINGERPRINT_SELECTORS.items():
        node = _first(document, item, selector)
        if node is None:
            continue
        value = text_content(node)
        if not value and key == "price":
            value = node.get("data-price") or ""
        if not value and key == "rating":
            value = node.get("aria-label") or ""
        if value:
            fingerprint[key] = value

    image = _first(document, item, "img")
    if image is not None:
        alt = image.get("alt") or image.get("title")
        if alt:
            fingerprint["imageAlt"] = alt
        if image.get("src"):
            fingerprint["imageSrc"] = image.get("src")

    link = _first(document, item, "a[href]")
    if link is not None:
        href = link.get("href")
        if href and not href.startswith("#"):
            fingerprint["linkHref"] = href

    data_id = item.get("data-id") or item.get("data-item-id") or item.get("id")
    if data_id:
        fingerprint["dataId"] = data_id
    return fingerprint


def generate_content_signature(document: PageDocument, element) -> Optional[ContentSignature]:
    """Signature for an element inside a list/grid/table item, or None."""
    container = document.closest(element, LIST_CONTAINER_SELECTOR)
    if container is None:
        return None
    item = document.closest(element, LIST_ITEM_SELECTOR)
    if item is None:
        return None

    fingerprint = extract_content_fingerprint(document, item)
    if not fingerprint:
        return None

    if tag_name(item) == "tr" or tag_name(container) == "table":
        element_type = "table-row"
    elif "card" in class_name(item).lower():
        element_type = "card"
    elif "grid" in class_name(container).lower():
        element_type = "grid-item"
    else:
        element_type = "list-item"

    signature = ContentSignature(
        element_type=element_type,
        list_container=ListContainer(
            selector=element_selector_part(container),
            item_selector=element_selector_part(item),
        ),
        content_fingerprint=fingerprint,
        visual_hints={
            key: bool(document.query_within(item, selector)) for key, selector in VISUAL_HINT_SELECTORS.items()
        },
        fallback_position=child_index(item),
    )
    logger.debug(f"Content signature {element_type}: {fingerprint.get('heading', '')!r} at {signature.fallback_position}")
    return signature
