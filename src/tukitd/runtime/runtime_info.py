import os
import sys

from tukitd.engine.libtukit_engine import find_library

SYSTEM_BUS_SOCKET = "/run/dbus/system_bus_socket"


class RuntimeInfo:
    """Facts about the host, used to pick backends and warn early."""

    @classmethod
    def is_linux(cls) -> bool:
        return sys.platform.startswith("linux")

    @classmethod
    def is_root(cls) -> bool:
        return hasattr(os, "geteuid") and os.geteuid() == 0

    @classmethod
    def has_libtukit(cls) -> bool:
        if not cls.is_linux():
            return False
        try:
            return find_library() is not None
        except OSError:
            return False

    @classmethod
    def has_system_bus(cls) -> bool:
        if os.environ.get("DBUS_SYSTEM_BUS_ADDRESS"):
            return True
        return os.path.exists(SYSTEM_BUS_SOCKET)

    @classmethod
    def has_session_bus(cls) -> bool:
        return bool(os.environ.get("DBUS_SESSION_BUS_ADDRESS"))
