from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .builtins import DEFAULT_PROFILE
from .models import FEATURE_KEYS, TAG_ALIASES
from .registry import ProfileRegistry


_log = logging.getLogger("bootforge.profiles")

_TRUE = {"true", "1", "yes", "on"}


def _configured_value(key: str, configured: Mapping[str, str]) -> bool:
    raw = configured.get(key)
    if raw is None or str(raw).strip() == "":
        return True
    return str(raw).strip().lower() in _TRUE


def resolve_toggles(
    profile_name: str,
    configured: Mapping[str, str],
    registry: Optional[ProfileRegistry] = None,
) -> Mapping[str, bool]:
    """Return the read-only feature toggle map for a profile.

    Starts from the configured ``ENABLE_*`` values (unset means enabled) and
    applies the profile's forced overrides. Unknown names fall back to "full".
    """
    registry = registry or ProfileRegistry()
    profile = registry.get(profile_name)
    if profile is None:
        _log.warning("Unknown stack profile '%s', falling back to '%s'", profile_name, DEFAULT_PROFILE)
        profile = registry.get(DEFAULT_PROFILE)

    toggles = {feature: _configured_value(key, configured) for feature, key in FEATURE_KEYS.items()}
    if profile is not None:
        for feature, value in profile.overrides.items():
            if feature not in FEATURE_KEYS:
                _log.warning("Profile '%s' overrides unknown feature '%s'", profile.name, feature)
                continue
            toggles[feature] = value
    return MappingProxyType(dict(sorted(toggles.items())))


def feature_for_tag(tag: str) -> Optional[str]:
    """Map a unit profile tag to a feature name, or None for informational tags."""
    t = tag.strip().lower()
    if t in FEATURE_KEYS:
        return t
    if t in TAG_ALIASES:
        return TAG_ALIASES[t]
    for feature, key in FEATURE_KEYS.items():
        if t == key.lower():
            return feature
    return None


def disabled_tags(tags: Iterable[str], toggles: Mapping[str, bool]) -> list[str]:
    out: list[str] = []
    for tag in tags:
        feature = feature_for_tag(tag)
        if feature is not None and not toggles.get(feature, True):
            out.append(tag)
    return out
