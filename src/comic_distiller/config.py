"""Persisted user defaults for the converter.

The configuration file is a YAML mapping shaped like ConverterOptions,
restricted to the settings that make sense across runs:

    profile: SR
    author: Comic Distiller
    limit_mb: 0
    strip_first_directory_from_toc: false
    sort_path_mode: alphanumeric
    title_page: always
    image:
      quality: 85
      grayscale: true
      crop_ratio: {left: 1, up: 1, right: 1, bottom: 3}
      ...

CLI flags are layered over these values before the options are validated.
"""

import logging
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

from comic_distiller.exceptions import ConfigError
from schemas.options import ConverterOptions, CropRatios, ImageOptions

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".comic-distiller.yaml"

PACKAGING_KEYS = (
    "profile",
    "author",
    "limit_mb",
    "strip_first_directory_from_toc",
    "sort_path_mode",
    "title_page",
)

# The viewport comes from the profile and is never persisted
IMAGE_KEYS = tuple(name for name in ImageOptions.model_fields if name != "view")


def default_config() -> dict[str, Any]:
    """Built-in defaults, in the persisted layout."""
    config = {key: ConverterOptions.model_fields[key].get_default() for key in PACKAGING_KEYS}
    config["image"] = ImageOptions().model_dump(exclude={"view"})
    return config


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries where overlay values win.

    Examples:
        >>> deep_merge({"a": 1, "image": {"b": 2, "c": 3}}, {"image": {"c": 4}})
        {'a': 1, 'image': {'b': 2, 'c': 4}}
    """
    merged = deepcopy(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def validate_keys(config: dict[str, Any], allowed: set[str], ctx: str) -> None:
    """Fail on keys that are not part of the persisted layout.

    Raises:
        ConfigError: If ``config`` holds an unknown key
    """
    unknown = sorted(key for key in config if key not in allowed)
    if unknown:
        raise ConfigError(
            f"Unknown keys in {ctx}: {', '.join(unknown)}. "
            f"Allowed keys: {', '.join(sorted(allowed))}."
        )


def _validate(config: dict[str, Any]) -> None:
    validate_keys(config, set(PACKAGING_KEYS) | {"image"}, "config")
    image = config.get("image") or {}
    if not isinstance(image, dict):
        raise ConfigError("image must be a mapping")
    validate_keys(image, set(IMAGE_KEYS), "image")
    crop_ratio = image.get("crop_ratio") or {}
    if not isinstance(crop_ratio, dict):
        raise ConfigError("image.crop_ratio must be a mapping")
    validate_keys(crop_ratio, set(CropRatios.model_fields), "image.crop_ratio")


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> dict[str, Any]:
    """Load persisted defaults merged over the built-in ones.

    A missing file yields the built-in defaults.

    Raises:
        ConfigError: If the file cannot be read or parsed, or holds unknown keys
    """
    if not path.exists():
        logger.debug(f"No config file at {path}, using defaults")
        return default_config()

    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config {path}: {e}", path=path) from e
    except OSError as e:
        raise ConfigError(f"Failed to read config {path}: {e}", path=path) from e

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config {path} must contain a YAML mapping at top level", path=path)

    _validate(loaded)
    logger.debug(f"Loaded config from {path}")
    return deep_merge(default_config(), loaded)


def dump_config(config: dict[str, Any]) -> str:
    """Serialize a configuration as YAML."""
    return yaml.safe_dump(config, sort_keys=False).rstrip()


def save_config(config: dict[str, Any], path: Path = DEFAULT_CONFIG_PATH) -> None:
    """Write a configuration to ``path``.

    Raises:
        ConfigError: If the configuration holds unknown keys or cannot be written
    """
    _validate(config)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dump_config(config) + "\n", encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to write config {path}: {e}", path=path) from e
    logger.info(f"Saved config to {path}")


def reset_config(path: Path = DEFAULT_CONFIG_PATH) -> dict[str, Any]:
    """Overwrite ``path`` with the built-in defaults and return them."""
    config = default_config()
    save_config(config, path)
    return config


def persistable(options: ConverterOptions) -> dict[str, Any]:
    """Extract the persisted settings from a full set of options."""
    config = {key: getattr(options, key) for key in PACKAGING_KEYS}
    config["image"] = options.image.model_dump(exclude={"view"})
    return config


def build_options(config: dict[str, Any], overrides: dict[str, Any]) -> ConverterOptions:
    """Validate options from persisted defaults layered under run overrides.

    Args:
        config: Persisted configuration (see ``load_config``)
        overrides: Values for this run, including ``input``; nested under
                   ``image`` for image options

    Raises:
        pydantic.ValidationError: If a value is out of range
    """
    merged = deep_merge(config, overrides)
    return ConverterOptions.model_validate(merged)
