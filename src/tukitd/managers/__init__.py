from .config_manager import ConfigManager, DEFAULT_CONFIG_PATH, CONFIG_ENV_VAR

__all__ = ["ConfigManager", "DEFAULT_CONFIG_PATH", "CONFIG_ENV_VAR"]
