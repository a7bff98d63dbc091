"""Error types raised by codestash.

Every error carries a human-readable ``message`` and an optional ``hint``
pointing the user at the command that fixes it. The CLI prints both and
exits non-zero.
"""

from typing import Optional


class CodestashError(Exception):
    def __init__(self, message: str, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        return self.message


class NetworkError(CodestashError):
    """Transport failure talking to the service."""


class ProtocolError(CodestashError):
    """Unexpected or malformed server response."""

    def __init__(self, message: str, code: Optional[str] = None, hint: Optional[str] = None) -> None:
        super().__init__(message, hint=hint)
        self.code = code


class ApiError(ProtocolError):
    def __init__(
        self,
        message: str,
        status_code: int,
        code: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message, code=code, hint=hint)
        self.status_code = status_code


class DeviceFlowError(CodestashError):
    """Terminal outcome of the device authorization poll loop."""


class Denied(DeviceFlowError):
    pass


class Expired(DeviceFlowError):
    pass


class Timeout(DeviceFlowError):
    pass


class Cancelled(DeviceFlowError):
    pass


class NotFound(CodestashError):
    pass


class NoActiveContext(CodestashError):
    pass


class NotInNoteScope(CodestashError):
    pass


class NoActiveNote(CodestashError):
    pass


class InvalidArgument(CodestashError):
    pass


class WrongScope(CodestashError):
    pass


class NotLoggedIn(CodestashError):
    pass


class StateIOError(CodestashError):
    """Reading or writing a local file failed."""


class DecodeError(CodestashError):
    """A local JSON file could not be decoded."""
