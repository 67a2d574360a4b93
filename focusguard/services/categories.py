"""Website category classification."""

from focusguard.utils import normalize_domain

NEUTRAL = 1
PRODUCTIVITY = 2
PROCRASTINATION = 3
DOUBLE_EDGED = 4

CATEGORY_NAMES: dict[int, str] = {
    NEUTRAL: "Neutral",
    PRODUCTIVITY: "Productividad",
    PROCRASTINATION: "Procrastinación",
    DOUBLE_EDGED: "Doble Filo",
}

# Domains with a known category; everything else gets the configured default.
KNOWN_DOMAINS: dict[str, int] = {
    "youtube.com": DOUBLE_EDGED,
    "facebook.com": PROCRASTINATION,
    "aulavirtual.upc.edu.pe": PRODUCTIVITY,
    "google.com": NEUTRAL,
}


def classify_domain(domain: str, default: int = NEUTRAL) -> int:
    """Return the category id suggested for a domain."""
    return KNOWN_DOMAINS.get(normalize_domain(domain), default)


def category_name(category_id: int | None) -> str:
    """Human-readable name of a category id."""
    if category_id is None:
        return "Sin categoría"
    return CATEGORY_NAMES.get(category_id, "Sin categoría")
