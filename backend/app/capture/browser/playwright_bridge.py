"""
Playwright Capture Bridge

Feeds a live Playwright page into the capture engine. An init script hooks
the page's DOM events and forwards them through an exposed binding; each
payload names its target by handle and, when the DOM changed since the last
event, carries a fresh annotated snapshot for the PageDocument.
"""

import logging
from typing import Any, Dict, Optional

from playwright.async_api import Frame, Page

from ..dom.document import MutationRecord
from ..dom.events import DomEvent, DomEventType
from ..recorder.event_listener import EventListener

# Configure logging
logger = logging.getLogger(__name__)

BINDING_NAME = "__capture_event__"


class CaptureBridgeError(Exception):
    """Raised when the bridge is used out of order (e.g. attached twice)."""


CAPTURE_SCRIPT = r"""
(() => {
  if (window.__captureInstalled) return;
  window.__captureInstalled = true;

  const HANDLE = "data-capture-handle";
  const STYLE_PROPS = [
    "display", "visibility", "opacity", "cursor", "z-index", "background-color",
    "font-weight", "font-size", "animation", "transition",
  ];
  const EVENTS = [
    "click", "mousedown", "dblclick", "input", "change", "submit", "keydown",
    "mouseenter", "mouseleave", "focus", "blur",
  ];
  let counter = 0;
  let dirty = true;
  let mutations = [];

  function handleOf(el) {
    if (!el || el.nodeType !== 1) return null;
    let handle = el.getAttribute(HANDLE);
    if (!handle) {
      handle = "p" + (++counter);
      el.setAttribute(HANDLE, handle);
    }
    return handle;
  }

  function annotate(source, copy) {
    const style = getComputedStyle(source);
    const parts = STYLE_PROPS.map((prop) => `${prop}: ${style.getPropertyValue(prop)}`);
    if (source.tagName === "IMG") {
      parts.push(`natural-width: ${source.naturalWidth}`);
      parts.push(`natural-height: ${source.naturalHeight}`);
      parts.push(`complete: ${source.complete}`);
    }
    copy.setAttribute("data-computed-style", parts.join("; "));
    const rect = source.getBoundingClientRect();
    copy.setAttribute("data-computed-rect", [rect.left, rect.top, rect.width, rect.height].join(","));
    if (source.tagName === "INPUT" || source.tagName === "TEXTAREA") {
      copy.setAttribute("data-capture-value", source.value || "");
      if (source.type === "checkbox" || source.type === "radio") {
        copy.setAttribute("data-capture-checked", String(source.checked));
      }
    }
    if (source.tagName === "OPTION") {
      if (source.selected) copy.setAttribute("selected", "selected");
      else copy.removeAttribute("selected");
    }
  }

  function snapshot() {
    const live = Array.from(document.querySelectorAll("*"));
    live.forEach(handleOf);
    const clone = document.documentElement.cloneNode(true);
    const copies = [clone].concat(Array.from(clone.querySelectorAll("*")));
    const sources = [document.documentElement].concat(live.filter((el) => el !== document.documentElement));
    copies.forEach((copy, index) => {
      if (sources[index]) annotate(sources[index], copy);
    });
    clone.querySelectorAll("script").forEach((node) => node.remove());
    return "<!DOCTYPE html>" + clone.outerHTML;
  }
  window.__captureSnapshot = snapshot;

  function liveState(el) {
    if (!el || el.nodeType !== 1) return {};
    if (el.tagName === "SELECT") {
      return { selectedIndexes: Array.from(el.options).filter((o) => o.selected).map((o) => o.index) };
    }
    if (el.tagName === "INPUT" || el.tagName === "TEXTAREA") {
      return { value: el.value, checked: el.checked };
    }
    return {};
  }

  function send(event, target) {
    const payload = Object.assign({
      type: event.type,
      handle: handleOf(target),
      timeStamp: event.timeStamp,
      clientX: event.clientX || 0,
      clientY: event.clientY || 0,
      button: event.button || 0,
      detail: event.detail || 1,
      ctrlKey: !!event.ctrlKey,
      shiftKey: !!event.shiftKey,
      altKey: !!event.altKey,
      metaKey: !!event.metaKey,
      key: event.key || "",
      code: event.code || "",
      isTrusted: event.isTrusted,
      url: location.href,
      scrollX: window.scrollX,
      scrollY: window.scrollY,
    }, liveState(target));
    if (dirty) {
      payload.snapshot = snapshot();
      payload.mutations = mutations;
      mutations = [];
      dirty = false;
    }
    try {
      window.__capture_event__(payload);
    } catch (_) {}
  }

  function observe() {
    new MutationObserver((records) => {
      dirty = true;
      for (const record of records) {
        if (record.type === "attributes" && record.attributeName !== HANDLE) {
          mutations.push({
            handle: handleOf(record.target),
            attributeName: record.attributeName,
            oldValue: record.oldValue,
          });
        }
      }
    }).observe(document.documentElement, {
      attributes: true, attributeOldValue: true, childList: true, subtree: true, characterData: true,
    });
  }

  EVENTS.forEach((type) => document.addEventListener(type, (event) => send(event, event.target), true));
  window.addEventListener("scroll", (event) => send(event, null), true);
  window.addEventListener("popstate", (event) => send(event, null));
  window.addEventListener("beforeunload", (event) => send(event, null));

  if (document.documentElement) observe();
  else document.addEventListener("DOMContentLoaded", observe);
})();
"""

# payload key -> DomEvent field
_EVENT_FIELDS = {
    "timeStamp": "time_stamp",
    "clientX": "client_x",
    "clientY": "client_y",
    "button": "button",
    "detail": "detail",
    "ctrlKey": "ctrl_key",
    "shiftKey": "shift_key",
    "altKey": "alt_key",
    "metaKey": "meta_key",
    "key": "key",
    "code": "code",
    "scrollX": "scroll_x",
    "scrollY": "scroll_y",
    "isTrusted": "is_trusted",
}


class PlaywrightCaptureBridge:
    """
    Connects a Playwright page to an EventListener.

    Usage:
        listener = EventListener(PageDocument(), on_action=log)
        bridge = PlaywrightCaptureBridge(page, listener)
        await bridge.attach()
        ...
        await bridge.detach()
    """

    def __init__(self, page: Page, listener: EventListener):
        """
        Initialize the bridge.

        Args:
            page: Playwright async Page
            listener: Listener whose document mirrors the page
        """
        self.page = page
        self.listener = listener
        self.document = listener.document
        self.attached = False
        self.events_handled = 0

    async def attach(self):
        """Install the capture script, take an initial snapshot and start listening."""
        if self.attached:
            raise CaptureBridgeError("Bridge is already attached to a page")

        await self.page.expose_binding(BINDING_NAME, self._on_binding)
        await self.page.add_init_script(CAPTURE_SCRIPT)
        self.page.on("framenavigated", self._on_frame_navigated)

        try:
            await self.page.evaluate(CAPTURE_SCRIPT)
            markup = await self.page.evaluate("window.__captureSnapshot()")
            if isinstance(markup, str) and markup:
                self.document.load(markup, url=self.page.url)
        except Exception as e:
            logger.warning(f"Could not snapshot the current page, waiting for the first event: {e}")

        self.attached = True
        self.listener.start()
        logger.info(f"Capture bridge attached to {self.page.url}")

    async def detach(self):
        """Stop the listener (flushing pending input) and stop forwarding navigations."""
        if not self.attached:
            return
        self.attached = False
        self.listener.stop()
        self.page.remove_listener("framenavigated", self._on_frame_navigated)
        logger.info(f"Capture bridge detached after {self.events_handled} event(s)")

    def _on_binding(self, source, payload):
        if not self.attached:
            return
        try:
            self.handle_payload(payload)
        except Exception:
            logger.exception("Failed to handle captured page event")

    def _on_frame_navigated(self, frame: Frame):
        if frame != self.page.main_frame or not self.attached:
            return
        url = frame.url
        if url and url != self.document.url:
            self.listener.flush_pending_inputs("navigation")
            self.document.navigate(url)

    def handle_payload(self, payload: Dict[str, Any]) -> Optional[DomEvent]:
        """
        Apply one page payload to the document and dispatch it.

        Args:
            payload: Event dict sent by the capture script

        Returns:
            The dispatched DomEvent, or None for unknown event types
        """
        try:
            event_type = DomEventType(payload.get("type"))
        except ValueError:
            logger.debug(f"Ignoring unsupported page event {payload.get('type')!r}")
            return None

        url = payload.get("url") or self.document.url
        snapshot = payload.get("snapshot")
        if snapshot:
            self.document.load(snapshot, url=url)
        elif url != self.document.url:
            self.document.navigate(url)

        target = self.document.element_by_handle(payload.get("handle"))
        if target is not None:
            self._apply_live_state(target, payload)

        records = self._mutation_records(payload.get("mutations") or [])
        if records:
            self.document.notify(records)

        fields = {name: payload[key] for key, name in _EVENT_FIELDS.items() if payload.get(key) is not None}
        if "scroll_x" in fields:
            self.document.scroll_x = fields["scroll_x"]
        if "scroll_y" in fields:
            self.document.scroll_y = fields["scroll_y"]

        event = DomEvent(type=event_type, target=target, **fields)
        self.document.dispatch_event(event)
        self.events_handled += 1
        return event

    def _apply_live_state(self, target, payload: Dict[str, Any]):
        if "selectedIndexes" in payload:
            self.document.select_options(target, payload["selectedIndexes"])
        if payload.get("value") is not None:
            self.document.set_field_value(target, payload["value"])
        if payload.get("checked") is not None and (target.get("type") or "").lower() in ("checkbox", "radio"):
            self.document.set_checked(target, bool(payload["checked"]))

    def _mutation_records(self, entries):
        records = []
        for entry in entries:
            element = self.document.element_by_handle(entry.get("handle"))
            if element is not None and entry.get("attributeName"):
                records.append(MutationRecord(element, entry["attributeName"], entry.get("oldValue")))
        return records
