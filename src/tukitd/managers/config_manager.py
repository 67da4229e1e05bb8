"""
Config Manager

Loads the daemon YAML configuration (with include: support) and turns it
into a DaemonConfig.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from tukitd.models.config import DaemonConfig
from tukitd.utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.CONFIG)

DEFAULT_CONFIG_PATH = "/etc/tukitd/tukitd.yaml"
CONFIG_ENV_VAR = "TUKITD_CONFIG"
FACTORY_DEFAULTS_PATH = Path(__file__).parent.parent / "config" / "factory_defaults.yaml"


class ConfigManager:
    """
    Main configuration manager with include system support

    The configuration file may be monolithic or contain an `include:` list of
    further YAML files (relative to the file's directory), merged in order.
    A missing or unreadable file falls back to the packaged factory defaults.
    Values that parse but do not validate (unknown backend, bad port) are
    errors: the daemon refuses to start rather than guess.

    Example:
        config = ConfigManager("/etc/tukitd/tukitd.yaml").load()
        config.engine.backend  # EngineBackend.AUTO
    """

    def __init__(self, config_path: Optional[str] = None, defaults_path: Optional[Path] = None):
        """
        Args:
            config_path: Main YAML file; defaults to $TUKITD_CONFIG, then /etc/tukitd/tukitd.yaml
            defaults_path: Factory defaults fallback
        """
        self.config_path = Path(config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
        self.factory_defaults_path = Path(defaults_path or FACTORY_DEFAULTS_PATH)
        self.data: Dict = {}
        self.source: Optional[Path] = None

    def load(self) -> DaemonConfig:
        """
        Load YAML configuration

        Returns:
            Validated DaemonConfig

        Raises:
            ValueError: a section holds invalid values
            OSError / yaml.YAMLError: the factory defaults themselves are unusable
        """
        try:
            self.data = self._load_file(self.config_path)
            self.source = self.config_path
        except (OSError, yaml.YAMLError, TypeError) as ex:
            log.warn(
                "Failed to load configuration, falling back to factory defaults",
                path=str(self.config_path),
                error=str(ex),
                error_type=type(ex).__name__
            )
            self.data = self._load_file(self.factory_defaults_path)
            self.source = self.factory_defaults_path

        config = DaemonConfig.from_dict(self.data)
        log.info(
            "Configuration loaded",
            source=str(self.source),
            bus=config.bus.type.name.lower(),
            engine=config.engine.backend.name.lower()
        )
        return config

    def _load_file(self, path: Path) -> Dict:
        with open(path, "r", encoding="utf-8") as f:
            main_config = yaml.safe_load(f) or {}

        if not isinstance(main_config, dict):
            raise TypeError(f"{path}: top level must be a mapping")

        if "include" in main_config:
            log.debug("Using include-based configuration", path=str(path))
            merged = self._load_with_includes(main_config.pop("include") or [], path.parent)
            merged.update(main_config)
            return merged

        return main_config

    def _load_with_includes(self, include_list: List[str], config_dir: Path) -> Dict:
        """
        Load and merge multiple YAML files from include list

        Args:
            include_list: Filenames to load (e.g. ["bus.yaml", "engine.yaml"])
            config_dir: Directory the filenames are relative to

        Returns:
            Merged config dict (later files win)
        """
        merged: Dict = {}

        for filename in include_list:
            filepath = config_dir / filename
            with open(filepath, "r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f)
            if file_data:
                if not isinstance(file_data, dict):
                    raise TypeError(f"{filepath}: top level must be a mapping")
                merged.update(file_data)
                log.debug(f"Loaded {filename}", keys=str(list(file_data.keys())))

        return merged
