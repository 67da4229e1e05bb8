"""
Error translation for the bus surface

Method handlers report failures by raising DBusError; dbus-fast turns that
into an error reply carrying the name and message.
"""

from dbus_fast import DBusError

from tukitd.models.errors import ERROR_NAME, TukitError
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.BUS)


def to_dbus_error(ex: BaseException) -> DBusError:
    """
    Map an exception from the service layer to a bus error reply.

    TukitError keeps its own name and message; anything else is an
    unexpected failure and is reported under the generic name.
    """
    if isinstance(ex, DBusError):
        return ex
    if isinstance(ex, TukitError):
        return DBusError(ex.error_name, ex.message)

    log.error(f"Unexpected {type(ex).__name__} in method handler", error=str(ex))
    return DBusError(ERROR_NAME, str(ex) or type(ex).__name__)
