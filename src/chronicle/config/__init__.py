from src.chronicle.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
