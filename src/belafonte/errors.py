from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    CONFIGURATION_INVALID = "CONFIGURATION_INVALID"
    SESSION_FAILED = "SESSION_FAILED"
    FETCH_FAILED = "FETCH_FAILED"
    URL_NOT_ALLOWED = "URL_NOT_ALLOWED"


class BelafonteError(Exception):
    """Base class for every expected failure condition.

    Only ``ConfigurationError`` is allowed to escape to the caller. The other
    subclasses are raised by collaborators (engine, fetcher) and caught at the
    component boundary, where the affected URL degrades to an uncached link.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "recoverable": self.recoverable,
            }
        }


class ConfigurationError(BelafonteError):
    """Missing or malformed input. Fatal: the client refuses to start."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.CONFIGURATION_INVALID, message, recoverable=False)


class SessionFailure(BelafonteError):
    """A swarm join or publish could not complete."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.SESSION_FAILED, message, recoverable=False)


class FetchFailure(BelafonteError):
    """The seeder could not obtain source content from the origin."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.FETCH_FAILED,
        recoverable: bool = True,
    ) -> None:
        super().__init__(code, message, recoverable=recoverable)
