from typing import Dict

# Map of ISO 639-1 language codes accepted for evidence and disputes.
SUPPORTED_LANGUAGES: Dict[str, str] = {
    "en": "English",
    "fr": "French",
    "sw": "Swahili",
    "ar": "Arabic",
}

DEFAULT_LANGUAGE: str = "en"

# Dispute window after preliminary resolution, anchored on market end_time.
DEFAULT_DISPUTE_WINDOW_HOURS: int = 168

# Confidence (0-100) below which a market is refunded instead of resolved.
DEFAULT_MIN_CONFIDENCE: float = 80.0

# Signal caps (points out of 100).
BETTING_SIGNAL_CAP: float = 25.0
EVIDENCE_SIGNAL_CAP: float = 45.0
EXTERNAL_SIGNAL_CAP: float = 30.0

# Market categories that always need elevated review.
SENSITIVE_CATEGORIES: frozenset[str] = frozenset({
    "politics",
    "political",
    "elections",
    "religion",
    "conflict",
})

# Bond token symbol used in reasons and logs.
BOND_TOKEN_SYMBOL: str = "CAST"


def get_language_name(code: str) -> str:
    """Return the full English name for a language code, defaulting to English."""
    return SUPPORTED_LANGUAGES.get((code or "").lower(), "English")


def is_supported_language(code: str) -> bool:
    return (code or "").lower() in SUPPORTED_LANGUAGES
