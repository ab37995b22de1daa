import json
import locale
import logging
import os
from typing import Any, Dict

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("en", "zh")

# Loaded translations for the active language. English strings are the keys.
_translations: Dict[str, str] = {}
_language: str = "en"


def _detect_language() -> str:
    """
    Picks the language for user-visible strings.

    `CST_LANG` wins when set to a supported language, otherwise the process
    locale decides. Anything unrecognised falls back to English.
    """
    env_lang = os.environ.get("CST_LANG", "").lower()
    if env_lang in SUPPORTED_LANGUAGES:
        return env_lang

    try:
        lang_code, _encoding = locale.getlocale()
    except ValueError:
        lang_code = None
    if lang_code and lang_code.lower().startswith("zh"):
        return "zh"
    return "en"


def load_translations(language: str = "") -> str:
    """
    Loads the translation table for `language` (or the detected one).

    Returns the language that ended up active. A missing or broken locale file
    leaves an empty table so the English keys are used verbatim.
    """
    global _translations, _language

    _language = language.lower() if language else _detect_language()
    locales_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "locales")
    translation_file = os.path.join(locales_dir, f"{_language}.json")

    if _language == "en" or not os.path.exists(translation_file):
        _translations = {}
        return _language

    try:
        with open(translation_file, "r", encoding="utf-8") as f:
            _translations = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Could not load translation file '%s': %s", translation_file, e)
        _translations = {}
    return _language


def current_language() -> str:
    return _language


def _(key: str, /, **kwargs: Any) -> str:
    """
    Translates `key` and formats it with `kwargs`.

    Args:
        key: The English source string, used as the lookup key.
        **kwargs: Values for the `{placeholders}` in the string.

    Returns:
        The translated, formatted string, or the formatted key when no
        translation exists.
    """
    translated_str = _translations.get(key, key)
    if not kwargs:
        return translated_str

    try:
        return translated_str.format(**kwargs)
    except KeyError as e:
        # Placeholders drifted between languages; the English key still works.
        logger.warning("Formatting error in translation for key '%s'. Missing placeholder: %s", key, e)
        try:
            return key.format(**kwargs)
        except KeyError:
            return key


load_translations()
