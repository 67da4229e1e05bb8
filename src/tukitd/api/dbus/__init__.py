from .bus_broadcaster import BusBroadcaster
from .bus_connection import BusConnection
from .errors import to_dbus_error
from .transaction_interface import TransactionInterface, INTERFACE_NAME

__all__ = [
    "BusBroadcaster",
    "BusConnection",
    "TransactionInterface",
    "INTERFACE_NAME",
    "to_dbus_error",
]
