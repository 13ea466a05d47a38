"""Shared map configuration and theme parsing utilities."""

from __future__ import annotations

from typing import Dict, List, Tuple

CARTO_ATTRIBUTION = "© OpenStreetMap contributors © CARTO"

MAP_STYLES: Dict[str, Dict[str, object]] = {
    "light": {
        "url": "https://{s}.basemaps.cartocdn.com/light_all/{z}/{x}/{y}{r}.png",
        "attribution": CARTO_ATTRIBUTION,
        "max_zoom": 19,
        "indicator": "fa-moon",
    },
    "dark": {
        "url": "https://{s}.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}{r}.png",
        "attribution": CARTO_ATTRIBUTION,
        "max_zoom": 19,
        "indicator": "fa-sun",
    },
}

THEMES = tuple(MAP_STYLES.keys())
DEFAULT_THEME = "light"
THEME_STORAGE_KEY = "theme"

# Continental US, southwest then northeast corner.
US_BOUNDS: List[Tuple[float, float]] = [(20.0, -130.0), (50.0, -65.0)]
US_CENTER = (39.8283, -98.5795)
DEFAULT_ZOOM = 4
MIN_ZOOM = 3
MAX_ZOOM = 10

MARKER_SIZE = 25


def other_theme(theme: str) -> str:
    return "light" if theme == "dark" else "dark"


def parse_theme(raw: str) -> str:
    theme = raw.strip().lower()
    if not theme:
        return DEFAULT_THEME
    if theme not in THEMES:
        raise ValueError(
            f"Unknown theme: '{raw}'. Valid themes: {', '.join(THEMES)}."
        )
    return theme
