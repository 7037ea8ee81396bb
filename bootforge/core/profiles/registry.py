from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from .builtins import builtin_profiles
from .models import StackProfile


_log = logging.getLogger("bootforge.profiles")


class ProfileRegistry:
    """Loads stack profiles.

    Resolution order:
      1) Built-in profiles (always present)
      2) Optional <project_root>/profiles/*.json, overriding by name
    """

    def __init__(self, project_root: Optional[Path] = None):
        self.project_root = project_root
        self._profiles: Dict[str, StackProfile] = {}
        self._load_all()

    def _load_all(self) -> None:
        self._profiles = {p.name: p for p in builtin_profiles()}

        if self.project_root is None:
            return
        profiles_dir = self.project_root / "profiles"
        if not profiles_dir.is_dir():
            return

        for p in sorted(profiles_dir.glob("*.json")):
            try:
                data = json.loads(p.read_text(encoding="utf-8"))
                profile = StackProfile(**data)
            except (OSError, ValueError, TypeError, ValidationError) as e:
                _log.warning("Ignoring invalid profile file %s: %s", p, e)
                continue
            self._profiles[profile.name] = profile

    def list_names(self) -> list[str]:
        return sorted(self._profiles.keys())

    def get(self, name: str) -> Optional[StackProfile]:
        return self._profiles.get(name)
