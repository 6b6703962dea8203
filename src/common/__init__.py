# === MODULE PURPOSE ===
# Common utilities shared across all modules.

from .config import Config, load_config, resolve_env

__all__ = [
    "Config",
    "load_config",
    "resolve_env",
]
