from .config import (
    DEFAULT_SHIM_BASE_DIR,
    SETTINGS_FILENAME,
    ContainerSettings,
    DefinitionSettings,
    InvalidSettings,
    LauncherSettings,
    LoggingConfig,
    Settings,
    ShimSettings,
    get_class_path,
    import_string,
    load_settings,
    resolve_settings_path,
)

__all__ = [
    "DEFAULT_SHIM_BASE_DIR",
    "SETTINGS_FILENAME",
    "ContainerSettings",
    "DefinitionSettings",
    "InvalidSettings",
    "LauncherSettings",
    "LoggingConfig",
    "Settings",
    "ShimSettings",
    "get_class_path",
    "import_string",
    "load_settings",
    "resolve_settings_path",
]
