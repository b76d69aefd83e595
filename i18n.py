import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from config import settings

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).resolve().parent / "locales"
SUPPORTED_LOCALES = ("en", "es", "fr", "de", "zh")
FALLBACK_LOCALE = "en"

# Authentication views are always rendered in English
ALWAYS_ENGLISH_PATHS = ("/login", "/signup", "/forgot-password")


@lru_cache(maxsize=None)
def load_catalogue(locale: str) -> Dict[str, Any]:
    """Load the nested translation mapping for a locale."""
    path = LOCALES_DIR / f"{locale}.json"
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not load translations for %s: %s", locale, e)
        return {}


def normalize_locale(locale: Optional[str]) -> str:
    value = (locale or "").strip().lower()
    return value if value in SUPPORTED_LOCALES else FALLBACK_LOCALE


def effective_locale(path: Optional[str], preference: Optional[str]) -> str:
    """Locale to render ``path`` in for a user who prefers ``preference``."""
    if path and any(path.startswith(p) for p in ALWAYS_ENGLISH_PATHS):
        return FALLBACK_LOCALE
    return normalize_locale(preference or settings.default_language)


def _lookup(catalogue: Dict[str, Any], key: str) -> Optional[str]:
    node: Any = catalogue
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node if isinstance(node, str) else None


def translate(key: str, default: Optional[str] = None, locale: Optional[str] = None) -> str:
    """Dotted-key lookup (``navbar.home``).

    A key missing from the locale is looked up in English, then ``default``
    is used, then the key itself.
    """
    locale = normalize_locale(locale or settings.default_language)
    value = _lookup(load_catalogue(locale), key)
    if value is None and locale != FALLBACK_LOCALE:
        value = _lookup(load_catalogue(FALLBACK_LOCALE), key)
    return value if value is not None else default or key


class Translator:
    """Translation function bound to one locale."""

    def __init__(self, locale: Optional[str] = None, path: Optional[str] = None) -> None:
        self.preference = locale
        self.locale = effective_locale(path, locale)

    def t(self, key: str, default: Optional[str] = None) -> str:
        return translate(key, default, self.locale)

    __call__ = t
