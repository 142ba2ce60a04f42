"""Health probes for the panel and helper services."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from ..config import DEFAULT_PROBE_TIMEOUT

VERSION_PATH = "/api/version"

logger = logging.getLogger(__name__)


@dataclass
class ServiceStatus:
    """Outcome of one probe."""
    name: str
    url: str
    online: bool
    status_code: Optional[int] = None
    version: Optional[str] = None
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'url': self.url,
            'status': 'online' if self.online else 'offline',
            'statusCode': self.status_code,
            'version': self.version,
            'latencyMs': self.latency_ms,
            'error': self.error,
        }


def probe_status(name: str, url: str, timeout: float = DEFAULT_PROBE_TIMEOUT,
                 session: Optional[requests.Session] = None) -> ServiceStatus:
    """
    Probe a service's version endpoint.

    Never raises: connection problems are reported on the returned status.

    Args:
        name: Display name of the service
        url: Base URL of the service
        timeout: Seconds before the service counts as offline
        session: Optional requests session

    Returns:
        ServiceStatus
    """
    target = url.rstrip('/') + VERSION_PATH
    http = session or requests
    started = time.monotonic()

    try:
        response = http.get(target, timeout=timeout)
    except requests.RequestException as e:
        logger.warning(f"SERVICE_OFFLINE - {name} ({target}): {e}")
        return ServiceStatus(name=name, url=url, online=False, error=str(e))

    latency = round((time.monotonic() - started) * 1000, 1)
    version = None
    try:
        payload = response.json()
        if isinstance(payload, dict):
            version = payload.get('version')
    except ValueError:
        # Some helpers answer with plain text; the status code still counts
        pass

    online = response.status_code == 200
    if not online:
        logger.warning(f"SERVICE_UNHEALTHY - {name} ({target}): Status {response.status_code}")

    return ServiceStatus(
        name=name,
        url=url,
        online=online,
        status_code=response.status_code,
        version=version,
        latency_ms=latency,
        error=None if online else f"HTTP {response.status_code}",
    )
