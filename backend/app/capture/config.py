"""
Capture configuration.

Defaults mirror the recorder's tuned timings; any of them can be overridden
through CAPTURE_* environment variables (a .env file is honoured).
"""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Optional

from dotenv import load_dotenv

# Configure logging
logger = logging.getLogger(__name__)

ENV_PREFIX = "CAPTURE_"
_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class SelectorConfig:
    """Which selector candidate families to generate"""
    include_xpath: bool = True
    include_text: bool = True
    include_position: bool = True
    max_css_depth: int = 5
    prefer_stable_selectors: bool = True


@dataclass
class CaptureConfig:
    """Timing windows and limits for the event capture state machine (milliseconds)"""
    debounce_ms: int = 200
    submit_protection_ms: int = 2000
    carousel_burst_limit: int = 8
    carousel_burst_window_ms: int = 5000
    carousel_burst_gap_ms: int = 500
    min_hover_duration_ms: int = 300
    dropdown_link_timeout_ms: int = 60000
    checkbox_debounce_ms: int = 100
    poll_interval_ms: int = 100
    sensitive_debounce_ms: int = 300
    short_field_debounce_ms: int = 400
    default_debounce_ms: int = 500
    navigation_probe_ms: int = 500
    double_click_merge_ms: int = 50
    pending_click_ttl_ms: int = 100
    processed_key_ttl_ms: int = 1000
    rapid_fire_window_ms: int = 500
    startup_grace_ms: int = 500
    max_click_history: int = 10
    max_recent_actions: int = 20
    default_typing_delay_ms: int = 50

    selectors: SelectorConfig = field(default_factory=SelectorConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "CaptureConfig":
        """
        Build a config from CAPTURE_* environment variables.

        Args:
            env_file: Optional .env path; the default dotenv lookup is used otherwise

        Returns:
            CaptureConfig with overrides applied
        """
        load_dotenv(env_file)
        config = cls(selectors=_apply_env(SelectorConfig()))
        return _apply_env(config)


def _apply_env(config):
    for config_field in fields(config):
        if config_field.name == "selectors":
            continue
        env_name = f"{ENV_PREFIX}{config_field.name.upper()}"
        raw = os.getenv(env_name)
        if raw is None or raw.strip() == "":
            continue
        current = getattr(config, config_field.name)
        if isinstance(current, bool):
            setattr(config, config_field.name, raw.strip().lower() in _TRUE_VALUES)
            continue
        try:
            setattr(config, config_field.name, int(raw))
        except ValueError:
            logger.warning(f"Ignoring {env_name}={raw!r}: not an integer, keeping {current}")
    return config
