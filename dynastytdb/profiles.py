"""Config profiles for storing save and layout paths."""
from __future__ import annotations

import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import click

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

_PROFILE_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


@dataclass
class Profile:
    name: str
    save: Path
    layout: Optional[Path] = None


@dataclass
class Config:
    default_profile: str | None = None
    profiles: dict[str, Profile] = field(default_factory=dict)


def get_config_path() -> Path:
    """Return the TOML config file path via click.get_app_dir."""
    return Path(click.get_app_dir("dyntdb")) / "config.toml"


def load_config() -> Config:
    """Read TOML config. Returns empty Config if file missing."""
    path = get_config_path()
    if not path.exists():
        return Config()

    with open(path, "rb") as f:
        data = tomllib.load(f)

    config = Config(default_profile=data.get("default_profile"))
    for name, info in data.get("profiles", {}).items():
        layout = info.get("layout")
        config.profiles[name] = Profile(
            name=name,
            save=Path(info["save"]),
            layout=Path(layout) if layout else None,
        )
    return config


def save_config(config: Config) -> Path:
    """Write config to TOML using literal strings for paths."""
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    lines: list[str] = []
    if config.default_profile:
        lines.append(f"default_profile = \"{config.default_profile}\"")
    lines.append("")

    for name, profile in config.profiles.items():
        lines.append(f"[profiles.{name}]")
        # Use TOML literal strings (single quotes) so backslashes aren't escapes
        lines.append(f"save = '{profile.save}'")
        if profile.layout is not None:
            lines.append(f"layout = '{profile.layout}'")
        lines.append("")

    path.write_text("\n".join(lines), encoding="utf-8")
    return path


def validate_profile_name(name: str) -> bool:
    """Check that a profile name is a valid TOML bare key."""
    return bool(_PROFILE_NAME_RE.match(name))


def _get_profile(config: Config, name: str) -> Profile:
    profile = config.profiles.get(name)
    if profile is None:
        available = ", ".join(config.profiles) or "(none)"
        raise click.UsageError(
            f"Profile '{name}' not found. Available profiles: {available}"
        )
    if not profile.save.exists():
        raise click.UsageError(
            f"Save file not found for profile '{name}': {profile.save}\n"
            "Run 'dyntdb init' to update the path."
        )
    return profile


def resolve_profile(save: Path | None, profile_name: str | None) -> Profile:
    """Resolve the save to work on: --save > --profile > default profile.

    Raises click.UsageError with a helpful message if nothing resolves.
    """
    if save is not None:
        if not save.exists():
            raise click.UsageError(f"Save file not found: {save}")
        return Profile(name="(command line)", save=save)

    config = load_config()

    name = profile_name or config.default_profile
    if name is None:
        raise click.UsageError(
            "No save file provided. Either:\n"
            "  1. Run 'dyntdb init' to set up a profile\n"
            "  2. Pass --save <path> explicitly\n"
            "  3. Pass --profile <name> to use a named profile"
        )

    return _get_profile(config, name)
