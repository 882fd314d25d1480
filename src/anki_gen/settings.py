"""
Configuration loading.
Priority: CLI args > config file > defaults.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from anki_gen.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "model": "llama3",
    "ollama_url": "http://localhost:11434",
    "anki_url": "http://localhost:8765",
    "deck": None,
    "note_type": "Kiku",
    "fields": [],
    "storage_path": "storage/used_grammar.json",
    "optional_fields": False,
    "timeout": 120,
    "anki_timeout": 10,
    "log_file": None,
}

CONFIG_SEARCH_PATHS = [
    "config.yaml",
    "config.yml",
    "config.json",
    ".anki_gen.yaml",
    ".anki_gen.json",
    "config/settings.yaml",
]

# argparse dest -> settings key
CLI_OVERRIDES = [
    "model",
    "ollama_url",
    "anki_url",
    "deck",
    "note_type",
    "storage_path",
    "log_file",
]


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    with open(config_path, 'r', encoding='utf-8') as f:
        if config_path.suffix.lower() in ('.yaml', '.yml'):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"top level must be a mapping, got {type(data).__name__}")
    return data


def _apply(settings: Dict[str, Any], data: Dict[str, Any], source: Path) -> None:
    for key, value in data.items():
        if key not in DEFAULTS:
            logger.warning(f"Ignoring unknown config key '{key}' in {source}")
            continue
        settings[key] = value

    if isinstance(settings["fields"], str):
        settings["fields"] = [f.strip() for f in settings["fields"].split(',') if f.strip()]


def load_settings(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML or JSON file.

    With an explicit path, any read or parse error raises ConfigError.
    Otherwise the first readable file from CONFIG_SEARCH_PATHS is used;
    broken files there are skipped with a warning.
    """
    settings = dict(DEFAULTS)
    settings["fields"] = list(DEFAULTS["fields"])

    if config_path is not None:
        path = Path(config_path)
        try:
            data = _read_config_file(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config file {path}: {e}") from e
        _apply(settings, data, path)
        logger.info(f"✓ Loaded config from: {path}")
        return settings

    for candidate in CONFIG_SEARCH_PATHS:
        path = Path(candidate)
        if not path.exists():
            continue
        try:
            data = _read_config_file(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning(f"⚠ Error parsing config file {path}: {e}, skipping")
            continue
        _apply(settings, data, path)
        logger.info(f"✓ Loaded config from: {path}")
        return settings

    return settings


def merge_cli_overrides(settings: Dict[str, Any], args) -> Dict[str, Any]:
    """Override settings with CLI arguments that were explicitly given."""
    merged = dict(settings)
    for key in CLI_OVERRIDES:
        value = getattr(args, key, None)
        if value is not None:
            merged[key] = value

    fields = getattr(args, "fields", None)
    if fields:
        merged["fields"] = list(fields)

    # the flag can only switch optional mode on
    if getattr(args, "optional_fields", False):
        merged["optional_fields"] = True

    return merged


def example_config(fmt: str = "yaml") -> str:
    """Render the default settings as an example config file."""
    fmt = fmt.lower()
    if fmt in ("yaml", "yml"):
        return yaml.safe_dump(DEFAULTS, sort_keys=False, allow_unicode=True)
    if fmt == "json":
        return json.dumps(DEFAULTS, indent=2)
    raise ConfigError(f"Unknown format '{fmt}'. Use 'yaml' or 'json'.")
