"""Light/dark tile theme state and its persisted preference."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional

import folium
from branca.element import MacroElement, Template

from map_config import (
    DEFAULT_THEME,
    MAP_STYLES,
    THEME_STORAGE_KEY,
    THEMES,
    other_theme,
)

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = Path("data/preferences.json")


class ThemeStore:
    """Durable key-value storage backed by a small JSON file."""

    def __init__(self, path: Path = DEFAULT_STATE_FILE) -> None:
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable preferences file %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def load_theme(self) -> str:
        stored = self.get(THEME_STORAGE_KEY)
        if stored is None:
            return DEFAULT_THEME
        if stored not in THEMES:
            logger.warning("Unknown stored theme %r, using %s", stored, DEFAULT_THEME)
            return DEFAULT_THEME
        return stored


def build_tile_layer(theme: str) -> folium.TileLayer:
    style = MAP_STYLES[theme]
    return folium.TileLayer(
        tiles=str(style["url"]),
        attr=str(style["attribution"]),
        max_zoom=int(style["max_zoom"]),
        name=f"{theme.title()} basemap",
        control=False,
    )


class DarkModeClass(MacroElement):
    """Sets the page-level ``dark-mode`` class from the session theme."""

    _template = Template(
        """
        {% macro script(this, kwargs) %}
        document.body.classList.toggle("dark-mode", {{ "true" if this.session.is_dark else "false" }});
        {% endmacro %}
        """
    )

    def __init__(self, session: "RenderSession") -> None:
        super().__init__()
        self._name = "DarkModeClass"
        self.session = session


class RenderSession:
    """Owns the current theme, its tile layer and the map it is drawn on."""

    def __init__(self, store: Optional[ThemeStore] = None, theme: Optional[str] = None) -> None:
        self.store = store
        if theme is None:
            theme = store.load_theme() if store is not None else DEFAULT_THEME
        self.theme = theme
        self.tile_layer = build_tile_layer(theme)
        self.map: Optional[folium.Map] = None

    @property
    def is_dark(self) -> bool:
        return self.theme == "dark"

    @property
    def indicator_icon(self) -> str:
        return str(MAP_STYLES[self.theme]["indicator"])

    @property
    def tile_url(self) -> str:
        return str(MAP_STYLES[self.theme]["url"])

    def attach(self, map_object: folium.Map) -> None:
        self.map = map_object
        self.tile_layer.add_to(map_object)
        DarkModeClass(self).add_to(map_object)

    def toggle_theme(self) -> str:
        self.theme = other_theme(self.theme)
        new_layer = build_tile_layer(self.theme)

        if self.map is not None:
            # branca keys children by their generated name.
            self.map._children.pop(self.tile_layer.get_name(), None)
            new_layer.add_to(self.map)
        self.tile_layer = new_layer

        if self.store is not None:
            self.store.set(THEME_STORAGE_KEY, self.theme)
        logger.info("Switched map theme to %s", self.theme)
        return self.theme
