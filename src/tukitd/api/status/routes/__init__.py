from . import system

__all__ = ["system"]
