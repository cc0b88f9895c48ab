"""Configuration system for tensorsafe.

Configuration Sources (Priority Order):
1. Programmatic (highest) - Direct API calls
2. Environment Variables - TENSORSAFE_* prefixed variables
3. Project Config - ./tensorsafe.toml (or an explicit file)
4. User Config - ~/.config/tensorsafe/config.toml (global)
5. Defaults (lowest) - Built-in defaults

Example Usage:
    from tensorsafe.config import load_config

    config = load_config()
    print(config.reader.use_mmap)        # True
    print(config.reader.max_header_size) # 100000000

Environment Variables:
    - TENSORSAFE_READER_USE_MMAP=false
    - TENSORSAFE_WRITER_ATOMIC=false
    - TENSORSAFE_LOGGING_LEVEL=DEBUG
"""

from .loader import (
    ConfigLoader,
    get_default_config,
    load_config,
)
from .schema import (
    LoggingConfig,
    LogLevel,
    ReaderConfig,
    TensorsafeConfig,
    WriterConfig,
)
from .validation import (
    ValidationError,
    ValidationResult,
    validate_config,
    validate_value,
)

__all__ = [
    "TensorsafeConfig",
    "ReaderConfig",
    "WriterConfig",
    "LoggingConfig",
    "LogLevel",
    "ConfigLoader",
    "load_config",
    "get_default_config",
    "validate_config",
    "validate_value",
    "ValidationError",
    "ValidationResult",
]
