"""
Live browser integration: mirrors a Playwright page into the capture engine.
"""

from .playwright_bridge import BINDING_NAME, CAPTURE_SCRIPT, CaptureBridgeError, PlaywrightCaptureBridge

__all__ = [
    "BINDING_NAME",
    "CAPTURE_SCRIPT",
    "CaptureBridgeError",
    "PlaywrightCaptureBridge",
]
