"""Error taxonomy shared by the statistics and alerting components."""


class MonitoringError(Exception):
    """Base exception for monitoring errors."""


class InvalidArgument(MonitoringError):
    """Caller error: bad query bounds, unknown enum value, duplicate name.

    Surfaced immediately, never retried.
    """


class NotFound(InvalidArgument):
    """Referenced rule or history record does not exist."""


class UpstreamUnavailable(MonitoringError):
    """Every consulted metric source failed, or the rule store is unreachable."""

    def __init__(self, message: str, causes: list[Exception] | None = None):
        super().__init__(message)
        self.causes = causes or []
