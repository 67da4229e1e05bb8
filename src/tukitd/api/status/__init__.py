from .dependencies import StatusContext, set_status_context, get_status_context
from .main import create_app

__all__ = ["StatusContext", "set_status_context", "get_status_context", "create_app"]
