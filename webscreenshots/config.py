import copy
import importlib.util
import json
import logging
import os
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigFileError
from .models import Config, validate_config

"""
Layered configuration.

Four sources, lowest precedence first:
    1. DEFAULT_CONFIG
    2. a config file (JSON, YAML or a Python module exposing 'config')
    3. environment variables (WEBSCREENSHOTS__OUTPUTDIR, WEBSCREENSHOTS__CAPTUREOPTIONS__FULLPAGE, ...)
    4. explicit overrides (CLI flags)

Object-valued sections merge key by key; scalars and lists are replaced by the
highest layer that defines them. None always means "not set here".

Example YAML file (webscreenshots.yaml):
    url: https://example.com
    routes: ["/", "/about"]
    crawl: true
    crawlOptions:
      crawlLimit: 50
      dynamicRoutesLimit: 3
    viewports:
      - name: mobile
        width: 390
        height: 844
        deviceScaleFactor: 2
"""

logger = logging.getLogger(__name__)

ENV_PREFIX = "WEBSCREENSHOTS"

DEFAULT_CONFIG_FILES = [
    "webscreenshots.json",
    "webscreenshots.yaml",
    "webscreenshots.yml",
    "webscreenshots.config.py",
]

# sections merged key by key instead of being replaced wholesale
MERGED_SECTIONS = (
    "browserOptions",
    "captureOptions",
    "crawlOptions",
    "retryOptions",
    "authOptions",
)

DEFAULT_CONFIG: Dict[str, Any] = {
    "url": "",
    "outputDir": "screenshots",
    "outputPattern": "{host}/{viewport}/{host}-{viewport}-{route}.{ext}",
    "routes": [""],
    "browserOptions": {
        "headless": True,
    },
    "captureOptions": {
        "fullPage": True,
        "imageType": "png",
    },
    "viewports": [
        {
            "name": "desktop",
            "width": 1920,
            "height": 1080,
            "deviceScaleFactor": 1,
        }
    ],
    "crawl": False,
    "retryOptions": {
        "maxAttempts": 3,
        "delayMs": 0,
    },
}


# ------------- Environment parsing helpers -------------


def get_string(env: Mapping[str, str], key: str) -> Optional[str]:
    return env.get(key)


def get_list(env: Mapping[str, str], key: str) -> Optional[List[str]]:
    value = env.get(key)
    if value is None:
        return None
    return value.split(",")


def get_number(env: Mapping[str, str], key: str) -> Optional[int]:
    """Integer value of 'key', or None when unset or not a number."""
    value = env.get(key)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        try:
            number = float(value)
        except ValueError:
            return None
        return int(number) if number.is_integer() else None


def get_boolean(env: Mapping[str, str], key: str) -> Optional[bool]:
    value = env.get(key)
    if value is None:
        return None
    return value.strip().lower() == "true"


def get_json(env: Mapping[str, str], key: str) -> Optional[Any]:
    value = env.get(key)
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring {key}: value is not valid JSON.")
        return None


# key path (camelCase) -> parser; the variable name is derived from the path
ENV_FIELDS: List[Tuple[Tuple[str, ...], Callable[[Mapping[str, str], str], Any]]] = [
    (("url",), get_string),
    (("outputDir",), get_string),
    (("outputPattern",), get_string),
    (("routes",), get_list),
    (("browserOptions", "headless"), get_boolean),
    (("browserOptions", "args"), get_list),
    (("captureOptions", "fullPage"), get_boolean),
    (("captureOptions", "imageType"), get_string),
    (("captureOptions", "quality"), get_number),
    (("viewports",), get_json),
    (("crawl",), get_boolean),
    (("crawlOptions", "crawlLimit"), get_number),
    (("crawlOptions", "excludeRoutes"), get_list),
    (("crawlOptions", "dynamicRoutesLimit"), get_number),
    (("retryOptions", "maxAttempts"), get_number),
    (("retryOptions", "delayMs"), get_number),
    (("authOptions", "method"), get_string),
    (("authOptions", "basic", "username"), get_string),
    (("authOptions", "basic", "password"), get_string),
    (("authOptions", "cookiesPath"), get_string),
    (("authOptions", "form", "loginUrl"), get_string),
    (("authOptions", "form", "inputs"), get_json),
    (("authOptions", "form", "submit"), get_string),
    (("authOptions", "form", "errorSelector"), get_string),
    (("authOptions", "form", "successSelector"), get_string),
    (("authOptions", "form", "timeoutMs"), get_number),
    (("authOptions", "token", "header"), get_string),
    (("authOptions", "token", "value"), get_string),
]


def env_var_name(path: Tuple[str, ...]) -> str:
    """('captureOptions', 'fullPage') -> 'WEBSCREENSHOTS__CAPTUREOPTIONS__FULLPAGE'"""
    return "__".join([ENV_PREFIX] + [part.upper() for part in path])


def clean_object(value: Any) -> Any:
    """
    Recursively drop None values from dicts; a dict left empty becomes None.
    Lists and scalars are returned unchanged.
    """
    if not isinstance(value, dict):
        return value
    cleaned = {}
    for key, item in value.items():
        item = clean_object(item)
        if item is None:
            continue
        cleaned[key] = item
    return cleaned or None


# ------------- Layers -------------


def _load_python_config(path: str) -> Any:
    spec = importlib.util.spec_from_file_location("webscreenshots_user_config", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    if hasattr(module, "config"):
        return module.config
    if hasattr(module, "default"):
        return module.default
    raise AttributeError("module defines neither 'config' nor 'default'")


def load_config_from_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the file layer. With no explicit path, the first of DEFAULT_CONFIG_FILES
    found in the working directory is used; finding none is not an error.
    Any read or parse failure raises ConfigFileError.
    """
    if config_path:
        resolved = os.path.abspath(config_path)
    else:
        candidates = [os.path.abspath(name) for name in DEFAULT_CONFIG_FILES]
        resolved = next((p for p in candidates if os.path.exists(p)), None)

    if not resolved:
        logger.info("No config file found, using defaults.")
        return {}

    try:
        if resolved.endswith(".py"):
            loaded = _load_python_config(resolved)
        else:
            with open(resolved, "r", encoding="utf-8") as f:
                if resolved.endswith((".yaml", ".yml")):
                    loaded = yaml.safe_load(f)
                else:
                    loaded = json.load(f)
    except Exception as e:
        raise ConfigFileError(f"Failed to load config from {resolved}: {e}") from e

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigFileError(
            f"Failed to load config from {resolved}: config must be a mapping of settings."
        )

    logger.info(f"Loaded config from {resolved}")
    return loaded


def load_config_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Build the environment layer; variables that are unset are simply absent."""
    env = os.environ if environ is None else environ

    raw: Dict[str, Any] = {}
    for path, parse in ENV_FIELDS:
        value = parse(env, env_var_name(path))
        if value is None:
            continue
        target = raw
        for part in path[:-1]:
            target = target.setdefault(part, {})
        target[path[-1]] = value

    config = clean_object(raw) or {}
    if config:
        logger.info("Loaded config from environment variables.")
    else:
        logger.debug("No environment variables found.")
    return config


def merge_config_layers(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Merge partial configurations, later layers winning.
    Sections in MERGED_SECTIONS merge key by key; every other key is replaced.
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        layer = clean_object(copy.deepcopy(dict(layer or {}))) or {}
        for key, value in layer.items():
            if key in MERGED_SECTIONS and isinstance(value, dict):
                section = merged.get(key)
                merged[key] = {**(section if isinstance(section, dict) else {}), **value}
            else:
                merged[key] = value
    return merged


def get_config(
    overrides: Optional[Mapping[str, Any]] = None,
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Resolve defaults < file < environment < overrides into a validated Config.
    Raises ConfigFileError or ConfigValidationError.
    """
    file_config = load_config_from_file(config_path)
    env_config = load_config_from_env(environ)

    merged = merge_config_layers(DEFAULT_CONFIG, file_config, env_config, overrides)
    return validate_config(merged)
