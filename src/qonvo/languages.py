"""Human-readable language labels for voice language tags."""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Iterable

from .models import LanguageInfo, VoiceInfo

LabelResolver = Callable[[str], "str | None"]

_LANGUAGE_NAMES: dict[str, str] = {
    "ar": "Arabic",
    "cs": "Czech",
    "da": "Danish",
    "de": "German",
    "el": "Greek",
    "en": "English",
    "es": "Spanish",
    "fi": "Finnish",
    "fr": "French",
    "he": "Hebrew",
    "hi": "Hindi",
    "hu": "Hungarian",
    "id": "Indonesian",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "nb": "Norwegian Bokmål",
    "nl": "Dutch",
    "pl": "Polish",
    "pt": "Portuguese",
    "ro": "Romanian",
    "ru": "Russian",
    "sk": "Slovak",
    "sv": "Swedish",
    "th": "Thai",
    "tr": "Turkish",
    "uk": "Ukrainian",
    "vi": "Vietnamese",
    "zh": "Chinese",
}

_REGION_NAMES: dict[str, str] = {
    "AR": "Argentina",
    "AU": "Australia",
    "BR": "Brazil",
    "CA": "Canada",
    "CH": "Switzerland",
    "CN": "China",
    "DE": "Germany",
    "ES": "Spain",
    "FR": "France",
    "GB": "United Kingdom",
    "HK": "Hong Kong",
    "IE": "Ireland",
    "IN": "India",
    "IT": "Italy",
    "JP": "Japan",
    "KR": "South Korea",
    "MX": "Mexico",
    "NL": "Netherlands",
    "NZ": "New Zealand",
    "PT": "Portugal",
    "RU": "Russia",
    "TW": "Taiwan",
    "US": "United States",
    "ZA": "South Africa",
}


def builtin_label(tag: str) -> str | None:
    """Resolve ``en-US`` style tags from the built-in name tables."""
    parts = tag.replace("_", "-").split("-")
    language = _LANGUAGE_NAMES.get(parts[0].lower())
    if language is None:
        return None
    if len(parts) < 2:
        return language
    region = _REGION_NAMES.get(parts[-1].upper(), parts[-1].upper())
    return f"{language} ({region})"


def language_label(tag: str, resolver: LabelResolver | None = None) -> str:
    """Friendly label for ``tag``, or the raw tag when it cannot be resolved."""
    resolve = resolver or builtin_label
    try:
        label = resolve(tag)
    except (LookupError, ValueError):
        label = None
    return label or tag


def group_languages(voices: Iterable[VoiceInfo], resolver: LabelResolver | None = None) -> list[LanguageInfo]:
    """Group voices by language tag, counting distinct voice names, sorted by label."""
    names_by_tag: dict[str, set[str]] = defaultdict(set)
    for voice in voices:
        names_by_tag[voice.language_tag].add(voice.name)

    languages = [
        LanguageInfo(code=tag, name=language_label(tag, resolver), voice_count=len(names))
        for tag, names in names_by_tag.items()
    ]
    return sorted(languages, key=lambda language: language.name.casefold())
