from __future__ import annotations


class GatewayError(Exception):
    pass


class ConfigError(GatewayError):
    pass


class TransportError(GatewayError):
    pass


class ApiCallFailed(TransportError):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PollFailed(TransportError):
    def __init__(self, reason: str, retry_after: float | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.retry_after = retry_after


class ProtocolError(GatewayError):
    pass


class AuthError(GatewayError):
    pass


class UnknownBotError(GatewayError, LookupError):
    pass
