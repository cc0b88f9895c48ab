#!/usr/bin/env python3
"""
tensorsafe CLI - inspect, validate and convert tensor containers
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
from tqdm import tqdm

from tensorsafe.config import (
    LoggingConfig,
    TensorsafeConfig,
    load_config,
    validate_config,
)
from tensorsafe.exceptions import InvalidInput
from tensorsafe.reader import TensorReader
from tensorsafe.writer import TensorWriter

logger = logging.getLogger(__name__)


def configure_logging(config: LoggingConfig, verbose: bool = False) -> None:
    """Attach handlers described by ``config`` to the package logger.

    Handlers installed by a previous call are replaced.
    """
    package_logger = logging.getLogger("tensorsafe")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.format)
    handlers: List[logging.Handler] = []
    if config.console:
        handlers.append(logging.StreamHandler())
    if config.file:
        handlers.append(logging.FileHandler(config.file))
    for handler in handlers:
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    package_logger.setLevel(logging.DEBUG if verbose else str(config.level).upper())


class TensorsafeCLI:
    """Main CLI interface for tensorsafe."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser."""
        parser = argparse.ArgumentParser(
            prog="tensorsafe", description="Safe storage for named tensors"
        )
        parser.add_argument("--config", help="Path to a tensorsafe.toml file")
        parser.add_argument(
            "-v", "--verbose", action="store_true", help="Enable verbose logging"
        )

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        # Inspect command
        inspect_parser = subparsers.add_parser(
            "inspect", help="Show the tensors stored in a container"
        )
        inspect_parser.add_argument("file", help="Container file")
        inspect_parser.add_argument(
            "--json", action="store_true", help="Output as JSON"
        )

        # Validate command
        validate_parser = subparsers.add_parser(
            "validate", help="Check a container's header and layout"
        )
        validate_parser.add_argument("file", help="Container file")

        # Metadata command
        metadata_parser = subparsers.add_parser(
            "metadata", help="Show a container's metadata"
        )
        metadata_parser.add_argument("file", help="Container file")
        metadata_parser.add_argument(
            "--json", action="store_true", help="Output as JSON"
        )

        # Convert command
        convert_parser = subparsers.add_parser(
            "convert", help="Convert .npz/.npy arrays into a container"
        )
        convert_parser.add_argument("input", help="Input .npz or .npy file")
        convert_parser.add_argument("output", help="Output container file")
        convert_parser.add_argument(
            "-m",
            "--metadata",
            action="append",
            help="Add metadata (format: key=value)",
        )

        # Config command
        config_parser = subparsers.add_parser("config", help="Manage configuration")
        config_subparsers = config_parser.add_subparsers(
            dest="config_command", help="Config commands"
        )
        config_show = config_subparsers.add_parser(
            "show", help="Show effective configuration"
        )
        config_show.add_argument("--json", action="store_true", help="Output as JSON")
        config_subparsers.add_parser("validate", help="Validate configuration")

        return parser

    def run(self, args=None) -> int:
        """Run the CLI."""
        args = self.parser.parse_args(args)

        if not args.command:
            self.parser.print_help()
            return 0

        try:
            config = load_config(config_path=args.config)
            # config commands must still run when the configuration is invalid
            if args.command != "config":
                result = validate_config(config)
                if not result.valid:
                    print("Error: Invalid configuration:", file=sys.stderr)
                    for error in result.errors:
                        print(f"  - {error}", file=sys.stderr)
                    return 1
                configure_logging(config.logging, verbose=args.verbose)

            if args.command == "inspect":
                return self._cmd_inspect(args, config)
            elif args.command == "validate":
                return self._cmd_validate(args, config)
            elif args.command == "metadata":
                return self._cmd_metadata(args, config)
            elif args.command == "convert":
                return self._cmd_convert(args, config)
            elif args.command == "config":
                return self._cmd_config(args, config)
            else:
                print(f"Error: Unknown command '{args.command}'", file=sys.stderr)
                return 1
        except Exception as e:
            logger.debug("Command failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1

    def _open(self, path: str, config: TensorsafeConfig) -> TensorReader:
        return TensorReader(path, **config.reader.reader_kwargs())

    def _cmd_inspect(self, args, config: TensorsafeConfig) -> int:
        """Show the tensors stored in a container."""
        with self._open(args.file, config) as reader:
            info = reader.get_file_info()

        if args.json:
            print(json.dumps(info, indent=2))
            return 0

        print(f"File: {info['file_path']}")
        print(f"Size: {self._format_bytes(info['file_size'])}")
        print(f"Header: {self._format_bytes(info['header_size'])}")
        print(f"Tensors: {info['num_tensors']}")
        print(f"Parameters: {info['total_parameters']:,}")
        if info["metadata"]:
            print(f"Metadata keys: {', '.join(sorted(info['metadata']))}")
        print()

        if info["tensors"]:
            width = max(len(t["name"]) for t in info["tensors"])
            width = max(width, len("Name"))
            print(f"{'Name':<{width}}  {'DType':<8} {'Shape':<20} {'Size':>10}")
            print("-" * (width + 42))
            for tensor in info["tensors"]:
                shape = "[" + ", ".join(str(d) for d in tensor["shape"]) + "]"
                print(
                    f"{tensor['name']:<{width}}  {tensor['dtype']:<8} {shape:<20} "
                    f"{self._format_bytes(tensor['bytes']):>10}"
                )
        return 0

    def _cmd_validate(self, args, config: TensorsafeConfig) -> int:
        """Open a container and touch every tensor."""
        total = 0
        with self._open(args.file, config) as reader:
            names = reader.keys()
            for name in tqdm(names, desc="Validating", unit="tensor", disable=None):
                total += reader.get_tensor(name).nbytes

        print(f"{args.file}: OK ({len(names)} tensors, {self._format_bytes(total)})")
        return 0

    def _cmd_metadata(self, args, config: TensorsafeConfig) -> int:
        """Show a container's metadata."""
        with self._open(args.file, config) as reader:
            metadata = reader.metadata()

        if args.json:
            print(json.dumps(metadata, indent=2, sort_keys=True))
        elif not metadata:
            print("No metadata")
        else:
            for key in sorted(metadata):
                print(f"{key} = {metadata[key]}")
        return 0

    def _cmd_convert(self, args, config: TensorsafeConfig) -> int:
        """Convert numpy arrays into a container."""
        path = Path(args.input)
        if not path.exists():
            print(f"Error: File not found: {args.input}", file=sys.stderr)
            return 1

        metadata = self._parse_metadata(args.metadata)
        arrays = self._load_arrays(path)
        if not arrays:
            print(f"Error: No arrays found in {args.input}", file=sys.stderr)
            return 1

        with TensorWriter(
            args.output, metadata=metadata, use_temp_file=config.writer.atomic
        ) as writer:
            for name, array in tqdm(
                arrays.items(), desc="Converting", unit="tensor", disable=None
            ):
                writer.add_tensor(name, array)
            writer.write()

        print(f"Wrote {len(arrays)} tensor(s) to {args.output}")
        return 0

    def _load_arrays(self, path: Path) -> Dict[str, np.ndarray]:
        if path.suffix == ".npz":
            with np.load(path, allow_pickle=False) as archive:
                return {name: archive[name] for name in archive.files}
        if path.suffix == ".npy":
            return {path.stem: np.load(path, allow_pickle=False)}
        raise InvalidInput(f"Unsupported file format: {path.suffix}")

    def _parse_metadata(self, items: Optional[List[str]]) -> Dict[str, str]:
        """Parse key=value pairs."""
        metadata: Dict[str, str] = {}
        for item in items or []:
            key, sep, value = item.partition("=")
            if not sep or not key:
                raise InvalidInput(f"Invalid metadata '{item}', expected key=value")
            metadata[key] = value
        return metadata

    def _cmd_config(self, args, config: TensorsafeConfig) -> int:
        """Show or validate configuration."""
        if not args.config_command or args.config_command == "show":
            if getattr(args, "json", False):
                print(json.dumps(config.to_dict(), indent=2))
                return 0
            self._print_config(config)
            return 0

        elif args.config_command == "validate":
            result = validate_config(config)

            if result.valid:
                print("Configuration is valid")
            else:
                print("Configuration has errors:")
                for error in result.errors:
                    print(f"  - {error}")
            if result.warnings:
                print("\nWarnings:")
                for warning in result.warnings:
                    print(f"  - {warning}")
            return 0 if result.valid else 1

        return 0

    def _print_config(self, config: TensorsafeConfig) -> None:
        """Print configuration in human-readable format."""
        print("tensorsafe Configuration")
        print("=" * 50)
        for section, values in config.to_dict().items():
            print()
            print(f"[{section}]")
            for key, value in values.items():
                if isinstance(value, bool):
                    value = str(value).lower()
                elif isinstance(value, str):
                    value = repr(value)
                print(f"  {key} = {value}")

    def _format_bytes(self, size: float) -> str:
        """Format bytes as human-readable string."""
        for unit in ["B", "KB", "MB", "GB", "TB"]:
            if size < 1024:
                return f"{size:.1f} {unit}"
            size /= 1024
        return f"{size:.1f} PB"


def main():
    """Main entry point."""
    cli = TensorsafeCLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
