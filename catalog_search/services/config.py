"""Loading, validating and saving search settings as JSON."""

import dataclasses
import json
from pathlib import Path
from typing import Any

import structlog

from ..models import SearchConfig
from .errors import ConfigurationError

log = structlog.stdlib.get_logger()

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "game-catalog-search" / "config.json"
DEFAULT_CATALOG_PATH = Path.home() / ".cache" / "game-catalog-search" / "catalog.json"

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# (setting, lowest allowed, highest allowed or None)
INTEGER_RULES = (
    ("scan_window", 1, None),
    ("max_limit", 1, None),
    ("default_limit", 1, None),
    ("min_cached_results", 0, None),
    ("provider_limit", 1, 500),
    ("max_retries", 0, 10),
)
NUMBER_RULES = (
    ("debounce_delay", 0.0, 10.0),
    ("rate_limit_delay", 0.0, None),
)


class ValidationResult:
    """Outcome of validate_config: is_valid plus one message per problem."""

    def __init__(self, is_valid: bool, errors: list[str] | None = None) -> None:
        self.is_valid: bool = is_valid
        self.errors: list[str] = errors or []


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_range(name: str, value: Any, lowest: float, highest: float | None, integer: bool) -> str | None:
    kind = "integer" if integer else "number"
    if not (_is_int(value) if integer else _is_number(value)) or value < lowest:
        bound = "positive" if lowest > 0 else "non-negative"
        return f"{name} must be a {bound} {kind}"
    if highest is not None and value > highest:
        return f"{name} should not exceed {highest:g}"
    return None


class ConfigurationService:
    """Reads and writes SearchConfig at config_path."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path: Path = config_path or DEFAULT_CONFIG_PATH
        log.debug("Configuration service initialized", config_path=str(self.config_path))

    def load_config(self) -> SearchConfig:
        """Read the configuration file.

        Missing settings take their default values. A missing, unreadable or
        invalid file gives the default configuration rather than an error,
        so a bad file never stops a search.
        """
        if not self.config_path.exists():
            log.debug("No configuration file, using defaults", config_path=str(self.config_path))
            return self._get_default_config()

        try:
            with open(self.config_path, encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            config = self._dict_to_config(data)
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            log.error("Configuration file unreadable, using defaults", config_path=str(self.config_path), error=str(e))
            return self._get_default_config()

        result = self.validate_config(config)
        if not result.is_valid:
            log.warning("Configuration file rejected, using defaults", errors=result.errors)
            return self._get_default_config()

        log.info("Configuration loaded", config_path=str(self.config_path))
        return config

    def save_config(self, config: SearchConfig) -> None:
        """Write a configuration, refusing one that fails validation.

        Raises:
            ConfigurationError: If the configuration is invalid
            OSError: If the file cannot be written
        """
        result = self.validate_config(config)
        if not result.is_valid:
            raise ConfigurationError(f"Invalid configuration: {', '.join(result.errors)}")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self._config_to_dict(config), f, indent=2, ensure_ascii=False)
        except OSError as e:
            log.error("Could not write configuration", config_path=str(self.config_path), error=str(e))
            raise
        log.info("Configuration saved", config_path=str(self.config_path))

    def validate_config(self, config: SearchConfig) -> ValidationResult:
        errors: list[str] = []

        if not isinstance(config.catalog_path, Path):
            errors.append("catalog_path must be a Path object")

        for name, lowest, highest in INTEGER_RULES:
            problem = _check_range(name, getattr(config, name), lowest, highest, integer=True)
            if problem:
                errors.append(problem)

        if (
            _is_int(config.default_limit)
            and _is_int(config.max_limit)
            and config.default_limit > config.max_limit >= 1
        ):
            errors.append("default_limit must not exceed max_limit")

        for name, lowest, highest in NUMBER_RULES:
            problem = _check_range(name, getattr(config, name), lowest, highest, integer=False)
            if problem:
                errors.append(problem)

        if not _is_number(config.request_timeout) or config.request_timeout <= 0:
            errors.append("request_timeout must be a positive number")

        if config.log_level not in VALID_LOG_LEVELS:
            errors.append(f"log_level must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}")

        return ValidationResult(not errors, errors)

    def _get_default_config(self) -> SearchConfig:
        return SearchConfig(catalog_path=DEFAULT_CATALOG_PATH)

    def _config_to_dict(self, config: SearchConfig) -> dict[str, Any]:
        data = dataclasses.asdict(config)
        data["catalog_path"] = str(config.catalog_path)
        return data

    def _dict_to_config(self, data: dict[str, Any]) -> SearchConfig:
        """Overlay known keys from data onto the defaults."""
        values = self._config_to_dict(self._get_default_config())
        values.update({key: value for key, value in data.items() if key in values})
        values["catalog_path"] = Path(str(values["catalog_path"])).expanduser()
        values["log_level"] = str(values["log_level"]).upper()
        return SearchConfig(**values)
