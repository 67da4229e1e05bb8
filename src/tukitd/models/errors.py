"""
Error taxonomy

Every error a caller can observe derives from TukitError and carries the
bus error name it is reported under, a human readable message and a numeric
code (negative errno style where one applies).
"""

import errno
from typing import Optional

ERROR_NAME = "org.opensuse.tukit.Error"


class TukitError(Exception):
    """Base class for errors surfaced to bus callers"""

    error_name = ERROR_NAME

    def __init__(self, message: str, code: int = -1):
        self.message = message
        self.code = code
        super().__init__(message)


class BusyError(TukitError):
    """The transaction is locked by another operation; the caller may retry"""

    error_name = f"{ERROR_NAME}.Busy"

    def __init__(self, transaction: str):
        self.transaction = transaction
        super().__init__(
            "The transaction is currently in use by another thread.",
            code=-errno.EBUSY
        )


class ResourceExhaustedError(TukitError):
    """Allocation failure while acquiring a lock or starting a worker"""

    error_name = f"{ERROR_NAME}.NoMemory"

    def __init__(self, message: str = "Error while allocating space for transaction."):
        super().__init__(message, code=-errno.ENOMEM)


class InvalidInputError(TukitError):
    """Unreadable or malformed request parameters"""

    error_name = f"{ERROR_NAME}.InvalidArgs"

    def __init__(self, message: str = "Could not read D-Bus parameters."):
        super().__init__(message, code=-errno.EINVAL)


class EngineFailure(TukitError):
    """Failure reported by the transaction engine; message passed through"""


class ShuttingDownError(TukitError):
    """The daemon is draining and no longer accepts new work"""

    error_name = f"{ERROR_NAME}.ShuttingDown"

    def __init__(self, message: str = "The service is shutting down."):
        super().__init__(message, code=-errno.ESHUTDOWN)


class TransportError(TukitError):
    """A broadcast could not be sent"""


class CommandExpansionError(Exception):
    """
    Command text could not be turned into an argument vector.

    `code` uses the POSIX wordexp() return codes.
    """

    WRDE_NOSPACE = 1
    WRDE_BADCHAR = 2
    WRDE_BADVAL = 3
    WRDE_CMDSUB = 4
    WRDE_SYNTAX = 5

    def __init__(self, code: int, message: str, position: Optional[int] = None):
        self.code = code
        self.message = message
        self.position = position
        super().__init__(message)


class RegistryError(RuntimeError):
    """Programming-logic error in registry usage (e.g. unknown record)"""
