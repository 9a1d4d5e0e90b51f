from src.chronicle.utils.logging import setup_logging, ColorFormatter

__all__ = ["setup_logging", "ColorFormatter"]
