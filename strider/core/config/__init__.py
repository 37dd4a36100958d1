from strider.core.config.manager import ConfigManager
from strider.core.config.models import StriderConfig
from strider.core.config.paths import DataPaths, StriderPaths

__all__ = ["ConfigManager", "StriderConfig", "DataPaths", "StriderPaths"]
