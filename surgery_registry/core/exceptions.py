"""
Error types for the surgery registry.

Ambiguous and missing patient matches are not errors; they are reported
through ``MatchKind`` on a ``MatchOutcome``.
"""


class RegistryError(Exception):
    """Base class for all registry errors."""


class MalformedEventError(RegistryError):
    """A single calendar event is structurally invalid (e.g. missing start/end)."""

    def __init__(self, message: str, event_id: str = ""):
        super().__init__(message)
        self.event_id = event_id


class UpstreamFetchError(RegistryError):
    """A calendar or patient-source fetch failed; the dependent operation must abort."""

    def __init__(self, message: str, source: str = "", status_code: int = 0):
        super().__init__(message)
        self.source = source
        self.status_code = status_code
