"""
Exceptions raised by wizroom.

Network conditions (loss, timeout, unreachable bulbs) are ordinary outcomes:
the client raises them and the control layer records them per bulb.
"""

from typing import Optional


class WizroomError(Exception):
    """Base class for all wizroom errors."""


class ValidationError(WizroomError, ValueError):
    """A command parameter, room name or address was rejected before any I/O."""


class DecodeError(WizroomError):
    """A datagram could not be understood as a bulb reply."""


class MalformedResponse(DecodeError):
    pass


class ProtocolError(DecodeError):
    """The bulb answered with an ``error`` object."""

    def __init__(self, code: Optional[int], message: str = "", method: Optional[str] = None):
        self.code = code
        self.message = message
        self.method = method
        super().__init__(f"bulb returned error {code}: {message}" if message else f"bulb returned error {code}")


class ClientError(WizroomError):
    def __init__(self, address, detail: str):
        self.address = address
        super().__init__(f"{address}: {detail}")


class BulbTimeout(ClientError):
    def __init__(self, address, attempts: int):
        self.attempts = attempts
        super().__init__(address, f"no reply after {attempts} attempt(s)")


class BulbUnreachable(ClientError):
    def __init__(self, address, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(address, f"unreachable ({cause})" if cause else "unreachable")


class RequestCancelled(ClientError):
    def __init__(self, address):
        super().__init__(address, "cancelled before a reply arrived")


class RegistryError(WizroomError):
    pass


class RoomNotFound(RegistryError, LookupError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"no such room: {name}")


class RoomExists(RegistryError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"room already exists: {name}")


class PersistenceError(RegistryError):
    """Writing the registry file failed; the mutation was not applied."""


class RegistryLoadError(RegistryError):
    """The registry file exists but cannot be trusted."""
