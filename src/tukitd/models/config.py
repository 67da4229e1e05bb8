"""
Daemon configuration models

Parsed from YAML by ConfigManager. Each section maps to one dataclass.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from tukitd.models.enums import BusType, EngineBackend, LogLevel
from tukitd.utils.enum_helper import EnumHelper


@dataclass
class BusConfig:
    type: BusType = BusType.SYSTEM
    service_name: str = "org.opensuse.tukit"
    object_path: str = "/org/opensuse/tukit/Transaction"
    interface: str = "org.opensuse.tukit.Transaction"
    signal_path: str = "/org/opensuse/tukit"
    error_interface: str = "org.opensuse.tukit"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BusConfig":
        return cls(
            type=EnumHelper.to_enum(BusType, data.get("type", "system")),
            service_name=str(data.get("service_name", cls.service_name)),
            object_path=str(data.get("object_path", cls.object_path)),
            interface=str(data.get("interface", cls.interface)),
            signal_path=str(data.get("signal_path", cls.signal_path)),
            error_interface=str(data.get("error_interface", cls.error_interface)),
        )


@dataclass
class EngineConfig:
    backend: EngineBackend = EngineBackend.AUTO
    library: Optional[str] = None       # explicit path to libtukit.so
    virtual_root: Optional[str] = None  # scratch directory for the virtual engine

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        return cls(
            backend=EnumHelper.to_enum(EngineBackend, data.get("backend", "auto")),
            library=data.get("library"),
            virtual_root=data.get("virtual_root"),
        )


@dataclass
class ShutdownConfig:
    accept_during_drain: bool = False
    timeout_per_handler: float = 5.0
    total_timeout: float = 15.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShutdownConfig":
        cfg = cls(
            accept_during_drain=bool(data.get("accept_during_drain", False)),
            timeout_per_handler=float(data.get("timeout_per_handler", 5.0)),
            total_timeout=float(data.get("total_timeout", 15.0)),
        )
        if cfg.timeout_per_handler <= 0 or cfg.total_timeout <= 0:
            raise ValueError("Shutdown timeouts must be positive")
        return cfg


@dataclass
class StatusApiConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8765

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusApiConfig":
        port = int(data.get("port", 8765))
        if not 0 < port < 65536:
            raise ValueError(f"Invalid status API port: {port}")
        return cls(
            enabled=bool(data.get("enabled", False)),
            host=str(data.get("host", "127.0.0.1")),
            port=port,
        )


@dataclass
class LoggingConfig:
    level: LogLevel = LogLevel.INFO
    use_colors: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        return cls(
            level=EnumHelper.to_enum(LogLevel, data.get("level", "info")),
            use_colors=bool(data.get("use_colors", True)),
        )


@dataclass
class DaemonConfig:
    bus: BusConfig = field(default_factory=BusConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    shutdown: ShutdownConfig = field(default_factory=ShutdownConfig)
    status_api: StatusApiConfig = field(default_factory=StatusApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DaemonConfig":
        data = data or {}
        return cls(
            bus=BusConfig.from_dict(data.get("bus") or {}),
            engine=EngineConfig.from_dict(data.get("engine") or {}),
            shutdown=ShutdownConfig.from_dict(data.get("shutdown") or {}),
            status_api=StatusApiConfig.from_dict(data.get("status_api") or {}),
            logging=LoggingConfig.from_dict(data.get("logging") or {}),
        )
