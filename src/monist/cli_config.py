"""
Configuration management for monist.

Settings come from built-in defaults, then the repository's ``monistrc.json``
(or ``monistrc.toml``), then ``MONIST_*`` environment variables. Options
given on the command line win over all of them.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import toml
from rich.console import Console

from .error_handling import ConfigError, InvalidCommand

console = Console(stderr=True)

CONFIG_FILE_NAMES = ("monistrc.json", "monistrc.toml")

LOCAL_DEPS_CHOICES = ("link", "install", "symlink")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Options a command line, or a cli_options entry, may set.
COMMON_OPTION_NAMES = ("serial", "local_deps", "inhibit_subprocess_output")

# camelCase spellings accepted in configuration files.
_CAMEL_CASE_KEYS = {
    "localDeps": "local_deps",
    "inhibitSubprocessOutput": "inhibit_subprocess_output",
    "buildDir": "build_dir",
    "maxParallel": "max_parallel",
}


@dataclass
class ExecConfig:
    """Defaults for commands run on every member."""

    serial: bool = False
    local_deps: Optional[str] = None
    inhibit_subprocess_output: bool = False
    max_parallel: int = 0  # 0 means no limit
    npm_program: str = "npm"


@dataclass
class LocalDepsConfig:
    """How local dependencies are made available before a command."""

    build_dir: str = "build/dist"


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    log_level: str = "WARNING"


@dataclass
class MonistConfig:
    """Main configuration containing all subsections."""

    exec: ExecConfig = field(default_factory=ExecConfig)
    local_deps: LocalDepsConfig = field(default_factory=LocalDepsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    # command -> script name or "*" -> option overrides
    cli_options: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    source: Optional[str] = None

    @property
    def build_dir(self) -> str:
        return self.local_deps.build_dir


_global_config: Optional[MonistConfig] = None
_global_root: Optional[Path] = None


def _normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {_CAMEL_CASE_KEYS.get(key, key): value for key, value in data.items()}


def validate_config_values(config: MonistConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    if not isinstance(config.exec.serial, bool):
        errors.append("exec.serial must be a boolean")
    if config.exec.local_deps is not None and config.exec.local_deps not in LOCAL_DEPS_CHOICES:
        errors.append(f"exec.local_deps must be one of {', '.join(LOCAL_DEPS_CHOICES)}")
    if not isinstance(config.exec.inhibit_subprocess_output, bool):
        errors.append("exec.inhibit_subprocess_output must be a boolean")
    if not isinstance(config.exec.max_parallel, int) or config.exec.max_parallel < 0:
        errors.append("exec.max_parallel must be a non-negative integer")
    if not isinstance(config.exec.npm_program, str) or not config.exec.npm_program:
        errors.append("exec.npm_program must be a non-empty string")

    if not isinstance(config.local_deps.build_dir, str) or not config.local_deps.build_dir:
        errors.append("local_deps.build_dir must be a non-empty string")
    elif Path(config.local_deps.build_dir).is_absolute():
        errors.append("local_deps.build_dir must be relative to the package")

    if str(config.logging.log_level).upper() not in LOG_LEVELS:
        errors.append(f"logging.log_level must be one of {', '.join(LOG_LEVELS)}")

    if not isinstance(config.cli_options, dict):
        errors.append("cli_options must be an object")
        return errors

    for command, scripts in config.cli_options.items():
        if not isinstance(scripts, dict):
            errors.append(f"cli_options.{command} must be an object")
            continue
        for script, options in scripts.items():
            where = f"cli_options.{command}.{script}"
            if not isinstance(options, dict):
                errors.append(f"{where} must be an object")
                continue
            for key, value in options.items():
                if key not in COMMON_OPTION_NAMES:
                    errors.append(f"{where}: unknown option {key}")
                elif key == "local_deps":
                    if value is not None and value not in LOCAL_DEPS_CHOICES:
                        errors.append(
                            f"{where}.local_deps must be one of {', '.join(LOCAL_DEPS_CHOICES)}"
                        )
                elif not isinstance(value, bool):
                    errors.append(f"{where}.{key} must be a boolean")

    return errors


def find_config_file(root: Path) -> Optional[Path]:
    """Find the configuration file of a repository."""
    for name in CONFIG_FILE_NAMES:
        location = root / name
        if location.exists():
            return location
    return None


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """
    Load a configuration file.

    Raises:
        ConfigError: If the file cannot be parsed
    """
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() == ".toml":
                data = toml.load(f)
            else:
                data = json.load(f)
    except (OSError, ValueError, toml.TomlDecodeError) as e:
        raise ConfigError(f"cannot load {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain an object")
    return data


def apply_config_section(config: Any, section_data: Any, section_name: str) -> None:
    """Apply configuration from dictionary to config section."""
    if not isinstance(section_data, dict):
        raise ConfigError(f"{section_name} must be an object")
    for key, value in _normalize_keys(section_data).items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            console.print(
                f"⚠️  Unknown config key in {section_name}: {key}",
                style="yellow",
                highlight=False,
            )


def apply_file_config(config: MonistConfig, file_config: Dict[str, Any]) -> None:
    """Apply a parsed configuration document."""
    file_config = _normalize_keys(file_config)

    if "exec" in file_config:
        apply_config_section(config.exec, file_config["exec"], "exec")
    if "local_deps" in file_config:
        apply_config_section(config.local_deps, file_config["local_deps"], "local_deps")
    if "logging" in file_config:
        apply_config_section(config.logging, file_config["logging"], "logging")
    if "build_dir" in file_config:
        config.local_deps.build_dir = file_config["build_dir"]

    cli_options = file_config.get("cli_options", file_config.get("cliOptions"))
    if cli_options is not None:
        if not isinstance(cli_options, dict):
            raise ConfigError("cli_options must be an object")
        config.cli_options = {
            command: {
                script: _normalize_keys(options) if isinstance(options, dict) else options
                for script, options in scripts.items()
            }
            if isinstance(scripts, dict)
            else scripts
            for command, scripts in cli_options.items()
        }


def load_environment_overrides(config: MonistConfig) -> None:
    """Load environment variable overrides."""

    def get_env_bool(key: str, default: bool) -> bool:
        value = os.environ.get(key, "").lower()
        return value in ["true", "1", "yes", "on"] if value else default

    if "MONIST_SERIAL" in os.environ:
        config.exec.serial = get_env_bool("MONIST_SERIAL", config.exec.serial)
    if "MONIST_INHIBIT_SUBPROCESS_OUTPUT" in os.environ:
        config.exec.inhibit_subprocess_output = get_env_bool(
            "MONIST_INHIBIT_SUBPROCESS_OUTPUT", config.exec.inhibit_subprocess_output
        )
    if local_deps := os.environ.get("MONIST_LOCAL_DEPS"):
        config.exec.local_deps = None if local_deps.lower() == "none" else local_deps.lower()
    if max_parallel := os.environ.get("MONIST_MAX_PARALLEL"):
        try:
            config.exec.max_parallel = int(max_parallel)
        except ValueError:
            console.print(
                "⚠️  Invalid integer value for MONIST_MAX_PARALLEL, using default",
                style="yellow",
            )
    if npm_program := os.environ.get("MONIST_NPM"):
        config.exec.npm_program = npm_program
    if build_dir := os.environ.get("MONIST_BUILD_DIR"):
        config.local_deps.build_dir = build_dir
    if log_level := os.environ.get("MONIST_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()


def load_config(root: str = ".") -> MonistConfig:
    """
    Load the configuration of the repository at ``root``.

    Raises:
        ConfigError: If the configuration file is malformed or invalid
    """
    global _global_config, _global_root

    root_path = Path(root).resolve()
    if _global_config is not None and _global_root == root_path:
        return _global_config

    config = MonistConfig()

    config_file = find_config_file(root_path)
    if config_file:
        file_config = load_config_file(config_file)
        if file_config:
            apply_file_config(config, file_config)
        config.source = str(config_file)

    load_environment_overrides(config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        raise ConfigError(
            "the configuration passed to monist is not valid: "
            + "; ".join(validation_errors)
        )

    _global_config = config
    _global_root = root_path
    return config


def get_config() -> MonistConfig:
    """Get the global configuration instance."""
    if _global_config is None:
        return load_config()
    return _global_config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config, _global_root
    _global_config = None
    _global_root = None


def combine_common_options_with_config(
    command: str, args: Mapping[str, Any], config: MonistConfig
) -> Dict[str, Any]:
    """
    Resolve the execution options of a command.

    Precedence, lowest first: ``exec`` defaults, ``cli_options[command]["*"]``,
    ``cli_options[command][<first word of cmd>]``, then the options present
    in ``args`` with a value other than None.

    Raises:
        InvalidCommand: If ``args`` has no non-empty ``cmd``
    """
    cmd = args.get("cmd")
    if not cmd:
        raise InvalidCommand(
            "args must have a cmd property set which must contain at least one element"
        )

    options: Dict[str, Any] = {
        "serial": config.exec.serial,
        "local_deps": config.exec.local_deps,
        "inhibit_subprocess_output": config.exec.inhibit_subprocess_output,
    }

    command_options = config.cli_options.get(command, {})
    for key in ("*", cmd[0]):
        for name, value in command_options.get(key, {}).items():
            if name in COMMON_OPTION_NAMES:
                options[name] = value

    for name in COMMON_OPTION_NAMES:
        if args.get(name) is not None:
            options[name] = args[name]

    return options


def create_sample_config() -> str:
    """Generate a sample monistrc.json."""
    sample_config = {
        "exec": {
            "serial": False,
            "local_deps": None,
            "inhibit_subprocess_output": False,
            "max_parallel": 0,
            "npm_program": "npm",
        },
        "local_deps": {"build_dir": "build/dist"},
        "logging": {"log_level": "WARNING"},
        "cli_options": {
            "run": {
                "*": {"serial": False},
                "build": {"local_deps": "link"},
            },
        },
    }
    return json.dumps(sample_config, indent=2)
