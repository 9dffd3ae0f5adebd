"""
Profile loader for stack profiles.

Supports:
- YAML (.yaml, .yml) and JSON (.json) files
- A single profile per file, or several under a top-level ``profiles`` key
- CALLGUARD_PROFILE environment variable as the default path
- Caching of parsed files
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from callguard.config.profile import StackProfile
from callguard.errors import ConfigurationError

_PROFILE_ENV = "CALLGUARD_PROFILE"


class ProfileLoader:
    """Loads stack profiles from files.

    Example:
        >>> loader = ProfileLoader()
        >>> profile = loader.load("guards.yaml", name="inventory-lookup")
        >>> guarded = build_stack(fetch_inventory, profile)
    """

    def __init__(self, cache_enabled: bool = True) -> None:
        """Initialize the profile loader.

        Args:
            cache_enabled: Enable caching of parsed files
        """
        self._cache_enabled = cache_enabled
        self._cache: dict[Path, dict[str, StackProfile]] = {}

    def _resolve_path(self, path: str | Path | None) -> Path:
        if path is None:
            env_path = os.getenv(_PROFILE_ENV)
            if not env_path:
                raise ConfigurationError(
                    "No profile path given and CALLGUARD_PROFILE is not set"
                ).with_hint(f"Pass a path or export {_PROFILE_ENV}")
            path = env_path
        resolved = Path(path)
        if not resolved.is_file():
            raise ConfigurationError(
                f"Profile file not found: {resolved}", path=str(resolved)
            )
        return resolved

    def _read(self, path: Path) -> Any:
        text = path.read_text(encoding="utf-8")
        try:
            if path.suffix == ".json":
                return json.loads(text)
            return yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Invalid profile syntax: {e}", path=str(path)
            ) from e

    def _parse(self, path: Path, data: Any) -> dict[str, StackProfile]:
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Profile file must contain a mapping", path=str(path)
            )

        raw_profiles: dict[str, Any]
        if "profiles" in data:
            if not isinstance(data["profiles"], dict):
                raise ConfigurationError(
                    "'profiles' must be a mapping of name to profile", path=str(path)
                )
            raw_profiles = {
                name: {"name": name, **(body or {})}
                for name, body in data["profiles"].items()
            }
        else:
            name = data.get("name", "default")
            raw_profiles = {name: data}

        profiles: dict[str, StackProfile] = {}
        for name, body in raw_profiles.items():
            try:
                profiles[name] = StackProfile.model_validate(body)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid profile '{name}': {e}", path=str(path)
                ) from e
        return profiles

    def load_all(self, path: str | Path | None = None) -> dict[str, StackProfile]:
        """Load every profile in a file.

        Args:
            path: Profile file; defaults to CALLGUARD_PROFILE

        Returns:
            Mapping of profile name to profile

        Raises:
            ConfigurationError: If the file is missing, malformed or invalid
        """
        resolved = self._resolve_path(path)
        if self._cache_enabled and resolved in self._cache:
            return self._cache[resolved]

        profiles = self._parse(resolved, self._read(resolved))
        if self._cache_enabled:
            self._cache[resolved] = profiles
        return profiles

    def load(
        self, path: str | Path | None = None, name: str | None = None
    ) -> StackProfile:
        """Load one profile.

        Args:
            path: Profile file; defaults to CALLGUARD_PROFILE
            name: Profile name; may be omitted when the file holds exactly one

        Returns:
            The profile

        Raises:
            ConfigurationError: If the profile cannot be found or is invalid
        """
        profiles = self.load_all(path)
        if name is None:
            if len(profiles) != 1:
                raise ConfigurationError(
                    f"File holds {len(profiles)} profiles, pass a name",
                ).with_hint(f"Available: {', '.join(sorted(profiles))}")
            return next(iter(profiles.values()))
        if name not in profiles:
            raise ConfigurationError(f"Unknown profile '{name}'").with_hint(
                f"Available: {', '.join(sorted(profiles))}"
            )
        return profiles[name]

    def clear_cache(self) -> None:
        """Clear the parsed-file cache."""
        self._cache.clear()


def load_profile(
    path: str | Path | None = None, name: str | None = None
) -> StackProfile:
    """Load one profile without caching.

    Args:
        path: Profile file; defaults to CALLGUARD_PROFILE
        name: Profile name

    Returns:
        The profile
    """
    return ProfileLoader(cache_enabled=False).load(path, name)
