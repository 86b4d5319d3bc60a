from typing import Optional


class ProxyError(Exception):
    pass


class ClientInputError(ProxyError):
    """Request is missing something the proxy needs to pick a target."""


class MissingParameterError(ClientInputError):
    def __init__(self, parameter: str):
        super().__init__(f"Missing {parameter} parameter")
        self.parameter = parameter


class InvalidParameterError(ClientInputError):
    def __init__(self, parameter: str, value: str):
        super().__init__(f"Invalid {parameter} parameter: {value}")
        self.parameter = parameter
        self.value = value


class NoOriginError(ClientInputError):
    def __init__(self, path: str):
        super().__init__(f"Missing origin parameter. Path: {path}")
        self.path = path


class InvalidURLError(ProxyError):
    def __init__(self, raw: str, reason: Optional[str] = None):
        message = f"Cannot resolve URL: {raw!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.raw = raw


class UpstreamError(ProxyError):
    """Transport-level failure talking to the upstream (DNS, connect, timeout)."""

    def __init__(self, target_url: str, message: str):
        super().__init__(message)
        self.target_url = target_url
        self.message = message
