"""Errors raised by the relay and rendered as ``{"error": ...}`` responses."""


class RelayError(Exception):
    status_code = 500
    reason = "relay_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(RelayError):
    """A credential needed by the route is not configured."""

    reason = "configuration_error"


class UpstreamError(RelayError):
    """The upstream service answered with a non-success status."""

    reason = "upstream_error"

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(body, status_code=status_code)


class TransportError(RelayError):
    """The upstream call failed before a usable response was read."""

    status_code = 502
    reason = "transport_error"


class RequestBodyError(RelayError):
    status_code = 400
    reason = "bad_request"
