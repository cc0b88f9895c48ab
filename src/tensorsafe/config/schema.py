"""Configuration schema dataclasses for tensorsafe.

Each section is a typed dataclass holding its defaults; ``TensorsafeConfig``
groups the sections.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from tensorsafe.header import MAX_HEADER_SIZE


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class ReaderConfig:
    """Settings used when opening containers."""

    use_mmap: bool = True
    max_header_size: int = MAX_HEADER_SIZE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "use_mmap": self.use_mmap,
            "max_header_size": self.max_header_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReaderConfig:
        """Create from dictionary."""
        return cls(
            use_mmap=data.get("use_mmap", True),
            max_header_size=data.get("max_header_size", MAX_HEADER_SIZE),
        )

    def reader_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``TensorReader``."""
        return {"use_mmap": self.use_mmap, "max_header_size": self.max_header_size}


@dataclass
class WriterConfig:
    """Settings used when writing containers."""

    atomic: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"atomic": self.atomic}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WriterConfig:
        return cls(atomic=data.get("atomic", True))


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(levelname)s - %(name)s - %(message)s"
    file: Optional[str] = None
    console: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "level": self.level,
            "format": self.format,
            "file": self.file,
            "console": self.console,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingConfig:
        """Create from dictionary."""
        return cls(
            level=data.get("level", "INFO"),
            format=data.get("format", "%(levelname)s - %(name)s - %(message)s"),
            file=data.get("file"),
            console=data.get("console", True),
        )


@dataclass
class TensorsafeConfig:
    """Main configuration container for tensorsafe.

    Configuration is loaded from multiple sources with the following priority:
    1. Programmatic (highest) - Direct API calls
    2. Environment Variables - TENSORSAFE_* prefixed
    3. Project Config - ./tensorsafe.toml or an explicit file
    4. User Config - ~/.config/tensorsafe/config.toml
    5. Defaults (lowest) - Built-in defaults
    """

    reader: ReaderConfig = field(default_factory=ReaderConfig)
    writer: WriterConfig = field(default_factory=WriterConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "reader": self.reader.to_dict(),
            "writer": self.writer.to_dict(),
            "logging": self.logging.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TensorsafeConfig:
        """Create configuration from dictionary."""
        return cls(
            reader=ReaderConfig.from_dict(data.get("reader", {})),
            writer=WriterConfig.from_dict(data.get("writer", {})),
            logging=LoggingConfig.from_dict(data.get("logging", {})),
        )

    def get_nested(self, key: str, default: Any = None) -> Any:
        """Get a nested configuration value using dot notation.

        Args:
            key: Dot-separated key path (e.g., "reader.use_mmap")
            default: Default value if key not found

        Returns:
            The configuration value or default
        """
        obj: Any = self
        for part in key.split("."):
            if hasattr(obj, part):
                obj = getattr(obj, part)
            else:
                return default
        return obj

    def set_nested(self, key: str, value: Any) -> None:
        """Set a nested configuration value using dot notation.

        Raises:
            KeyError: If the key does not name a setting
        """
        parts = key.split(".")
        obj: Any = self
        for part in parts[:-1]:
            if hasattr(obj, part):
                obj = getattr(obj, part)
            else:
                raise KeyError(f"Invalid configuration key: {key}")
        if not hasattr(obj, parts[-1]):
            raise KeyError(f"Invalid configuration key: {key}")
        setattr(obj, parts[-1], value)
