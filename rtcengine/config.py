"""
Profile loading.

Profiles are YAML mappings of signaling defaults keyed by profile name::

    default:
      default_schema: "http:"
      publish_path: /rtc/v1/whip/
      exchange_timeout: 10

``RTCENGINE_PROFILES`` points at a different file than the bundled one.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from . import EngineConfig

LOG = logging.getLogger(__name__)

ENV_PROFILES_VAR = "RTCENGINE_PROFILES"
CONFIG_DIR = Path(__file__).resolve().parent / "configs"
PROFILES_PATH = CONFIG_DIR / "profiles.yaml"

_FIELDS = (
    "default_schema",
    "publish_path",
    "play_path",
    "exchange_timeout",
    "ice_servers",
    "media_source",
    "media_format",
    "media_options",
)


class ProfileNotFound(KeyError):
    """Raised when the requested profile is not defined."""


def profiles_path() -> Path:
    env_path = os.environ.get(ENV_PROFILES_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return PROFILES_PATH


def load_profiles(path: Optional[Path] = None) -> Dict[str, Dict[str, Any]]:
    target = path or profiles_path()
    try:
        with Path(target).open("r", encoding="utf-8") as handle:
            profiles = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        LOG.warning("Profiles file %s not found; using built-in defaults.", target)
        return {}
    if not isinstance(profiles, dict):
        raise ValueError(f"{target}: expected a mapping of profiles")
    return profiles


def load_config(profile: str = "default", path: Optional[Path] = None) -> EngineConfig:
    """
    Resolve ``profile`` into an :class:`EngineConfig`.

    A missing file yields the defaults; a missing profile in an existing file
    raises :class:`ProfileNotFound`.
    """

    profiles = load_profiles(path)
    if not profiles:
        return EngineConfig(profile=profile)
    if profile not in profiles:
        raise ProfileNotFound(profile)
    entry = profiles.get(profile) or {}
    unknown = sorted(set(entry) - set(_FIELDS))
    if unknown:
        LOG.warning("Ignoring unknown keys in profile %s: %s", profile, ", ".join(unknown))
    kwargs = {key: entry[key] for key in _FIELDS if key in entry}
    if kwargs.get("exchange_timeout") is not None:
        kwargs["exchange_timeout"] = float(kwargs["exchange_timeout"])
    return EngineConfig(profile=profile, **kwargs)


__all__ = ["PROFILES_PATH", "ProfileNotFound", "load_config", "load_profiles", "profiles_path"]
