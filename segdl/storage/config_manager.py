"""
INI persistence for :class:`DownloadConfig`.

All settings live in the ``[DEFAULT]`` section of ``config.ini`` under the user
config directory. Values are converted according to the type annotation of the
matching model field; keys added in newer releases are written back with their
defaults the first time an older file is loaded.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from segdl.exceptions import ConfigurationError
from segdl.models.config import DownloadConfig

log = logging.getLogger(__name__)

SECTION = "DEFAULT"


def default_config_dir() -> Path:
    """``$XDG_CONFIG_HOME/segdl`` (``%APPDATA%\\segdl`` on Windows)."""
    if os.name == "nt":
        base = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base.expanduser() / "segdl"


def _ini_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    # % starts an interpolation in configparser
    return str(value).replace("%", "%%")


class ConfigManager:
    """Loads, creates and upgrades one config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = Path(config_file_path)
        self._parser = configparser.ConfigParser()

    def load_config(self, cli_options: Optional[dict[str, Any]] = None) -> DownloadConfig:
        """
        Builds the effective configuration: file values, then CLI options that
        were actually given (``None`` means "not passed").

        A missing file is fine and yields the model defaults.

        Raises:
            ConfigurationError: If the file cannot be parsed, holds a value of
                the wrong type, or the merged settings fail validation.
        """
        settings: dict[str, Any] = {}
        if self.config_file_path.is_file():
            settings = self._read_file()
        else:
            log.debug(f"No config file at '{self.config_file_path}', using defaults")

        settings.update({k: v for k, v in (cli_options or {}).items() if v is not None})

        try:
            return DownloadConfig(**settings, config_path=str(self.config_file_path.parent))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Writes a complete config file: every INI key, taken from ``settings``
        when present and from the model defaults otherwise.

        Raises:
            ConfigurationError: If the file cannot be written.
        """
        defaults = DownloadConfig.model_construct()
        parser = configparser.ConfigParser()
        for key in sorted(DownloadConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key))
            if value is not None:
                parser[SECTION][key] = _ini_value(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            self._write(parser)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _read_file(self) -> dict[str, Any]:
        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Cannot parse '{self.config_file_path}': {e}") from e

        added = self._add_missing_keys()
        if added:
            log.info(
                f"[yellow]Added {len(added)} new setting(s) to "
                f"{self.config_file_path.name}: {', '.join(added)}[/yellow]"
            )
        return self._typed_values()

    def _typed_values(self) -> dict[str, Any]:
        section = self._parser[SECTION]
        getters = {bool: section.getboolean, int: section.getint, float: section.getfloat}
        values: dict[str, Any] = {}
        for key in DownloadConfig.get_ini_keys() & set(section):
            getter = getters.get(DownloadConfig.model_fields[key].annotation, section.get)
            try:
                values[key] = getter(key)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for '{key}' in config file: {e}") from e
        return values

    def _add_missing_keys(self) -> list[str]:
        """Fills keys absent from an older file with defaults; returns their names."""
        defaults = DownloadConfig.model_construct()
        section = self._parser[SECTION]
        added = sorted(DownloadConfig.get_ini_keys() - set(section))
        if not added:
            return []

        for key in added:
            section[key] = _ini_value(getattr(defaults, key))
        try:
            self._write(self._parser)
        except OSError as e:
            log.error(f"Could not save the upgraded config file: {e}")
        return added

    def _write(self, parser: configparser.ConfigParser) -> None:
        with open(self.config_file_path, "w", encoding="utf-8") as f:
            parser.write(f)
