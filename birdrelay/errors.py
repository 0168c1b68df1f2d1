class RelayError(Exception):
    """Base class for failures surfaced to the client as a 500 with an error message."""


class InputMissing(RelayError):
    pass


class InvalidPayload(RelayError):
    pass


class ConfigurationError(RelayError):
    pass


class UpstreamError(RelayError):
    def __init__(self, service: str, status: int, body: str, message: str = ""):
        self.service = service
        self.status = status
        self.body = body
        super().__init__(message or f"{service} error: {status}")
