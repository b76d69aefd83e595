"""
User preferences (theme and language).

Preferences are an explicit object with a load/save lifecycle instead of
ambient lookups: callers load them once, pass them where needed and save them
back. Hooks registered on the store run after every load and save.
"""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from config import settings
from i18n import normalize_locale

logger = logging.getLogger(__name__)

THEME_PREFERENCES = ("light", "dark", "system")


@dataclass
class Preferences:
    theme: str = "system"
    language: str = "en"

    def __post_init__(self) -> None:
        if self.theme not in THEME_PREFERENCES:
            raise ValueError(f"Invalid theme preference {self.theme!r}. Allowed: {', '.join(THEME_PREFERENCES)}")
        self.language = normalize_locale(self.language)

    @classmethod
    def defaults(cls) -> "Preferences":
        theme = settings.default_theme if settings.default_theme in THEME_PREFERENCES else "system"
        return cls(theme=theme, language=settings.default_language)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def resolve_theme(preference: str, system_dark: bool = False) -> str:
    """Concrete theme (light/dark) for a preference."""
    if preference == "light":
        return "light"
    if preference == "dark":
        return "dark"
    return "dark" if system_dark else "light"


def toggle_theme(prefs: Preferences, system_dark: bool = False) -> Preferences:
    """Flip the displayed theme and pin it as an explicit preference."""
    current = resolve_theme(prefs.theme, system_dark)
    prefs.theme = "light" if current == "dark" else "dark"
    return prefs


Hook = Callable[[str, Preferences], None]


class PreferencesStore:
    """Per-user preferences kept in one JSON file."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path or settings.preferences_file)
        self.on_load: List[Hook] = []
        self.on_save: List[Hook] = []

    def _read_all(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read preferences from %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, user_id: str) -> Preferences:
        """Load a user's preferences, falling back to defaults for anything missing or invalid."""
        section = self._read_all().get(user_id) or {}
        defaults = Preferences.defaults()
        try:
            prefs = Preferences(
                theme=section.get("theme", defaults.theme),
                language=section.get("language", defaults.language),
            )
        except ValueError as e:
            logger.warning("Ignoring invalid preferences for %s: %s", user_id, e)
            prefs = defaults
        for hook in self.on_load:
            hook(user_id, prefs)
        return prefs

    def save(self, user_id: str, prefs: Preferences) -> None:
        data = self._read_all()
        data[user_id] = prefs.to_dict()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        for hook in self.on_save:
            hook(user_id, prefs)

    def reset(self, user_id: str) -> Preferences:
        prefs = Preferences.defaults()
        self.save(user_id, prefs)
        return prefs
