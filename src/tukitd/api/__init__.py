"""
Outer surfaces of the daemon:
- dbus: org.opensuse.tukit.Transaction (dbus-fast)
- status: optional read-only HTTP status (FastAPI)
"""
