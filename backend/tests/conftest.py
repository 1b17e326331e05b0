"""
Pytest configuration and shared fixtures for capture engine tests.
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import Mock, AsyncMock
from typing import List

# Add backend app to path
sys.path.insert(0, str(Path(__file__).parent.parent / "app"))

from capture.config import CaptureConfig
from capture.core.scheduler import ManualScheduler
from capture.dom.document import PageDocument
from capture.recorder.event_listener import EventListener


# ==================== Mock Page Fixture ====================

@pytest.fixture
def mock_page():
    """Create a mock Playwright page object."""
    page = AsyncMock()

    # Basic properties
    page.url = "https://shop.test/"

    # Capture hooks
    page.expose_binding = AsyncMock(return_value=None)
    page.add_init_script = AsyncMock(return_value=None)
    page.evaluate = AsyncMock(return_value={})

    # Event emitter methods are synchronous on Playwright pages
    page.on = Mock()
    page.remove_listener = Mock()

    page.main_frame = Mock()
    page.main_frame.url = "https://shop.test/"

    return page


# ==================== Capture Fixtures ====================

@pytest.fixture
def scheduler():
    """Virtual clock starting at zero."""
    return ManualScheduler()


@pytest.fixture
def make_document():
    """Factory building a PageDocument around a body fragment."""
    def factory(body: str, url: str = "https://shop.test/") -> PageDocument:
        return PageDocument(f"<html><head><title>Shop</title></head><body>{body}</body></html>", url=url)
    return factory


@pytest.fixture
def recorded() -> List:
    """Every action passed to on_action, patches included."""
    return []


@pytest.fixture
def diagnostics() -> List:
    return []


@pytest.fixture
def listener_factory(make_document, scheduler, recorded, diagnostics):
    """Factory returning a started EventListener over a body fragment."""
    listeners = []

    def factory(body: str, url: str = "https://shop.test/", config: CaptureConfig = None) -> EventListener:
        listener = EventListener(
            make_document(body, url),
            on_action=recorded.append,
            config=config,
            scheduler=scheduler,
            on_diagnostic=diagnostics.append,
        )
        listener.start()
        listeners.append(listener)
        return listener

    yield factory

    for listener in listeners:
        listener.destroy()
