from .models import FEATURE_KEYS, StackProfile
from .registry import ProfileRegistry
from .resolver import disabled_tags, feature_for_tag, resolve_toggles

__all__ = [
    "FEATURE_KEYS",
    "ProfileRegistry",
    "StackProfile",
    "disabled_tags",
    "feature_for_tag",
    "resolve_toggles",
]
