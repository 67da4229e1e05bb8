"""
Middleware for the ControlSerializer

Middleware = pipeline functions that see every control message before the
handlers do. They can pass it on, rewrite it, or block it.
"""

from tukitd.models.messages import ControlMessage
from tukitd.utils.enum_helper import EnumHelper
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SERIALIZER)


def log_middleware(msg: ControlMessage) -> ControlMessage:
    """
    Log all control messages at debug level

    Usage:
        serializer.add_middleware(log_middleware)
    """
    data = msg.to_data()
    outcome = data.pop("outcome", None)
    if outcome is not None:
        data["outcome"] = type(outcome).__name__
    data_str = ", ".join(f"{k}={v}" for k, v in data.items())
    log.debug(f"Message: {EnumHelper.to_string(msg.type, lowercase=False)} | {data_str}")
    return msg
