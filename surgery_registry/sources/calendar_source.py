"""
Calendar event sources.

The live source pages through the Google Calendar v3 events endpoint; the
snapshot source reads a JSON export so a build can run offline. Callers pick
one explicitly, there is no silent fallback from one to the other.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import requests
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from ..config import DEFAULT_PAGE_SIZE, DEFAULT_REQUEST_TIMEOUT, DEFAULT_TIME_MIN
from ..core.data_models import RawEvent
from ..core.event_classifier import resolve_color
from ..core.exceptions import MalformedEventError, UpstreamFetchError

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"

logger = logging.getLogger(__name__)


def parse_events(items: Iterable[Dict[str, Any]]) -> Tuple[List[RawEvent], int]:
    """
    Validate raw calendar items into RawEvents.

    Malformed items are logged and skipped; they never abort the batch.

    Args:
        items: Google Calendar items or processed snapshot entries

    Returns:
        Tuple of (valid events, number of skipped items)
    """
    events = []
    skipped = 0

    for item in items:
        try:
            events.append(RawEvent.from_api(item))
        except MalformedEventError as e:
            skipped += 1
            logger.warning(f"MALFORMED_EVENT - {e}")

    return events, skipped


class EventSource(ABC):
    """A place calendar events can be read from."""

    supports_updates = False

    def __init__(self):
        self.skipped_events = 0

    @abstractmethod
    def fetch_items(self) -> List[Dict[str, Any]]:
        """Return the raw event items."""

    def fetch_events(self) -> List[RawEvent]:
        """
        Fetch and validate events.

        Raises:
            UpstreamFetchError: If the source cannot be read
        """
        events, self.skipped_events = parse_events(self.fetch_items())
        logger.info(f"Fetched {len(events)} events from {self.describe()} "
                    f"({self.skipped_events} malformed skipped)")
        return events

    def update_event_description(self, event_id: str, description: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} is read-only")

    def describe(self) -> str:
        return type(self).__name__


class GoogleCalendarSource(EventSource):
    """Google Calendar v3 events, read page by page with a bearer token."""

    supports_updates = True

    def __init__(self,
                 calendar_id: str,
                 access_token: str,
                 time_min: str = DEFAULT_TIME_MIN,
                 page_size: int = DEFAULT_PAGE_SIZE,
                 timeout: float = DEFAULT_REQUEST_TIMEOUT,
                 verify_ssl: bool = True,
                 session: Optional[requests.Session] = None):
        """
        Initialize the Google Calendar source.

        Args:
            calendar_id: Calendar to read
            access_token: OAuth bearer token
            time_min: Earliest event start to fetch (RFC 3339)
            page_size: maxResults per page
            timeout: Per-request timeout in seconds
            verify_ssl: Verify TLS certificates
            session: Optional requests session (for connection reuse)
        """
        super().__init__()
        if not calendar_id or not access_token:
            raise ValueError("calendar_id and access_token are required")

        self.calendar_id = calendar_id
        self.time_min = time_min
        self.page_size = page_size
        self.timeout = timeout
        self.verify_ssl = verify_ssl

        if not verify_ssl:
            # Suppress SSL warnings for insecure requests
            urllib3.disable_warnings(InsecureRequestWarning)

        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {access_token}',
            'Accept': 'application/json',
        })

    @property
    def events_url(self) -> str:
        return f"{GOOGLE_CALENDAR_API}/calendars/{quote(self.calendar_id, safe='')}/events"

    def describe(self) -> str:
        return f"Google Calendar '{self.calendar_id}'"

    def fetch_items(self) -> List[Dict[str, Any]]:
        """Follow nextPageToken until the calendar is exhausted."""
        items: List[Dict[str, Any]] = []
        page_token = None

        while True:
            params = {
                'timeMin': self.time_min,
                'maxResults': self.page_size,
                'singleEvents': 'true',
                'orderBy': 'startTime',
            }
            if page_token:
                params['pageToken'] = page_token

            data = self._get_json(params)
            items.extend(data.get('items') or [])

            page_token = data.get('nextPageToken')
            if not page_token:
                break
            logger.debug(f"Fetched {len(items)} items so far, requesting next page")

        return items

    def update_event_description(self, event_id: str, description: str) -> None:
        """
        Write a new description into one event.

        Raises:
            UpstreamFetchError: If the PATCH fails
        """
        url = f"{self.events_url}/{quote(event_id, safe='')}"
        try:
            response = self.session.patch(
                url,
                json={'description': description},
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
        except requests.RequestException as e:
            raise UpstreamFetchError(f"Updating event {event_id} failed: {e}",
                                     source=self.describe()) from e

        if response.status_code != 200:
            raise UpstreamFetchError(
                f"Updating event {event_id} failed (Status: {response.status_code})",
                source=self.describe(), status_code=response.status_code)

    def _get_json(self, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.get(
                self.events_url,
                params=params,
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
        except requests.RequestException as e:
            raise UpstreamFetchError(f"Calendar request failed: {e}", source=self.describe()) from e

        if response.status_code != 200:
            raise UpstreamFetchError(
                f"Calendar request failed (Status: {response.status_code}): {response.text[:200]}",
                source=self.describe(), status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFetchError(f"Calendar returned invalid JSON: {e}", source=self.describe()) from e


class LocalSnapshotSource(EventSource):
    """A JSON export of events, either raw Google items or processed entries."""

    def __init__(self, path: str):
        super().__init__()
        self.path = path

    def describe(self) -> str:
        return f"snapshot '{self.path}'"

    def fetch_items(self) -> List[Dict[str, Any]]:
        if not os.path.isfile(self.path):
            raise UpstreamFetchError(f"Snapshot file '{self.path}' not found", source=self.describe())

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise UpstreamFetchError(f"Cannot read snapshot '{self.path}': {e}",
                                     source=self.describe()) from e

        # Accept a bare list or a Google-style {"items": [...]} envelope
        if isinstance(data, dict):
            data = data.get('items')
        if not isinstance(data, list):
            raise UpstreamFetchError(f"Snapshot '{self.path}' does not contain an event list",
                                     source=self.describe())
        return data


def save_snapshot(events: Iterable[RawEvent], path: str) -> None:
    """
    Write events in the processed snapshot shape.

    Each entry carries the hex color next to the colorId so the panel can
    render it without the palette.
    """
    entries = []
    for event in events:
        entry = event.to_dict()
        entry['colorHex'] = resolve_color(event.color_id)
        entries.append(entry)

    with open(path, 'w', encoding='utf-8') as f:
        json.dump(entries, f, ensure_ascii=False, indent=2)
    logger.info(f"Snapshot of {len(entries)} events written to: {path}")
