from .settings import Settings, EngineCfg, ScanCfg, Paths, LoggingCfg, DEFAULT_EXTENSIONS

__all__ = ["Settings", "EngineCfg", "ScanCfg", "Paths", "LoggingCfg", "DEFAULT_EXTENSIONS"]
