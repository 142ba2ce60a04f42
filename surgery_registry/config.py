"""
Runtime configuration for the surgery registry.

Values come from defaults, then environment variables, then command-line
flags (see ``main.py``).
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# API Configuration - Default values
DEFAULT_PANEL_URL = "http://localhost:3005"
DEFAULT_HOSPITAL = "Asya"
DEFAULT_TIME_MIN = "2024-01-01T00:00:00Z"
DEFAULT_TIMEZONE = "Europe/Istanbul"
DEFAULT_PAGE_SIZE = 2500
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_PROBE_TIMEOUT = 3.0

_FALSE_VALUES = {'0', 'false', 'no', 'off'}


@dataclass
class RegistryConfig:
    """Connection and behaviour settings."""
    calendar_id: Optional[str] = None
    access_token: Optional[str] = None
    panel_url: str = DEFAULT_PANEL_URL
    default_hospital: str = DEFAULT_HOSPITAL
    time_min: str = DEFAULT_TIME_MIN
    timezone: str = DEFAULT_TIMEZONE
    page_size: int = DEFAULT_PAGE_SIZE
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    verify_ssl: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")
        if self.request_timeout <= 0 or self.probe_timeout <= 0:
            raise ValueError("Timeouts must be positive")
        if not self.default_hospital or not self.default_hospital.strip():
            raise ValueError("default_hospital is required")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'RegistryConfig':
        """
        Load configuration from environment variables.

        Recognised variables: CALENDAR_ID, GOOGLE_ACCESS_TOKEN, PANEL_APP_URL,
        DEFAULT_HOSPITAL, CALENDAR_TIME_MIN, REGISTRY_TIMEZONE,
        REGISTRY_VERIFY_SSL.
        """
        env = os.environ if environ is None else environ

        return cls(
            calendar_id=env.get('CALENDAR_ID') or None,
            access_token=env.get('GOOGLE_ACCESS_TOKEN') or None,
            panel_url=env.get('PANEL_APP_URL') or DEFAULT_PANEL_URL,
            default_hospital=env.get('DEFAULT_HOSPITAL') or DEFAULT_HOSPITAL,
            time_min=env.get('CALENDAR_TIME_MIN') or DEFAULT_TIME_MIN,
            timezone=env.get('REGISTRY_TIMEZONE') or DEFAULT_TIMEZONE,
            verify_ssl=env.get('REGISTRY_VERIFY_SSL', 'true').strip().lower() not in _FALSE_VALUES,
        )
