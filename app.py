from __future__ import annotations

from pathlib import Path
from typing import List

import pandas as pd
import streamlit as st
import streamlit.components.v1 as components
import streamlit.runtime as st_runtime

from map_config import MAP_STYLES
from rudeness_map import (
    DEFAULT_COORDINATES_FILE,
    DEFAULT_SOURCE,
    CoordinateTable,
    Observation,
    RenderResult,
    build_rudeness_map,
    load_coordinate_table,
)
from theme import DEFAULT_STATE_FILE, RenderSession, ThemeStore

DEFAULT_OUTPUT_FILE = Path("output/rudeness_map.html")

INDICATOR_EMOJI = {
    "fa-moon": ":crescent_moon:",
    "fa-sun": ":sunny:",
}

DEFAULT_UI_STATE = {
    "source": str(DEFAULT_SOURCE),
}


def _initialize_ui_state(store: ThemeStore) -> None:
    for key, value in DEFAULT_UI_STATE.items():
        st.session_state.setdefault(key, value)
    if "theme" not in st.session_state:
        st.session_state["theme"] = store.load_theme()


def _toggle_theme(store: ThemeStore) -> None:
    session = RenderSession(store=store, theme=st.session_state["theme"])
    st.session_state["theme"] = session.toggle_theme()


def _theme_button_label(theme: str) -> str:
    indicator = str(MAP_STYLES[theme]["indicator"])
    target = "dark" if theme == "light" else "light"
    return f"{INDICATOR_EMOJI[indicator]} Switch to {target} map"


def _streamlit_runtime_exists() -> bool:
    try:
        return bool(st_runtime.exists())
    except Exception:
        return False


def _cache_data_passthrough(*_args, **_kwargs):
    def decorator(func):
        return func

    return decorator


def _safe_cache_data(*args, **kwargs):
    if _streamlit_runtime_exists():
        return st.cache_data(*args, **kwargs)
    return _cache_data_passthrough(*args, **kwargs)


@_safe_cache_data(show_spinner=False)
def load_cached_coordinates(path_str: str, modified_time: float) -> CoordinateTable:
    _ = modified_time
    return load_coordinate_table(Path(path_str))


def _legend_frame(result: RenderResult) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "category": entry.bucket.label,
                "range": entry.range_label,
                "cities": entry.count,
                "color": entry.color,
            }
            for entry in result.legend
        ],
        columns=["category", "range", "cities", "color"],
    )


def _observation_frame(observations: List[Observation]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"kind": obs.kind, "city": obs.city_name or "", "message": obs.message}
            for obs in observations
        ],
        columns=["kind", "city", "message"],
    )


def app() -> None:
    st.set_page_config(
        page_title="Rudest Cities Map",
        page_icon=":world_map:",
        layout="wide",
    )

    st.title("Rudest Cities in America")
    st.caption("Cities ranked by rudeness score, grouped into quartiles.")

    store = ThemeStore(DEFAULT_STATE_FILE)
    _initialize_ui_state(store)

    with st.sidebar:
        st.header("Data")
        source = st.text_input(
            "Score CSV path or URL",
            key="source",
            help="Needs rank, city_state and score columns.",
        )
        st.header("Map Theme")
        st.button(
            _theme_button_label(st.session_state["theme"]),
            on_click=_toggle_theme,
            args=(store,),
        )

    coordinates_file = DEFAULT_COORDINATES_FILE
    if not coordinates_file.exists():
        st.error(f"Coordinate table not found: {coordinates_file}")
        st.stop()
    try:
        coordinates = load_cached_coordinates(
            str(coordinates_file), coordinates_file.stat().st_mtime
        )
    except ValueError as exc:
        st.error(str(exc))
        st.stop()

    session = RenderSession(store=store, theme=st.session_state["theme"])
    with st.spinner("Rendering map..."):
        result = build_rudeness_map(source, coordinates, session)

    output_file = DEFAULT_OUTPUT_FILE
    output_file.parent.mkdir(parents=True, exist_ok=True)
    result.map_obj.save(str(output_file))

    if result.halted:
        for observation in result.observations:
            st.error(f"{observation.kind}: {observation.message}")

    map_html = result.map_obj.get_root().render()
    components.html(map_html, height=680, scrolling=False)

    if result.legend:
        columns = st.columns(len(result.legend))
        for column, entry in zip(columns, result.legend):
            column.metric(entry.bucket.label, f"{entry.count}", entry.range_label, delta_color="off")
        with st.expander("Legend details"):
            st.dataframe(_legend_frame(result), use_container_width=True, hide_index=True)

    skipped = [] if result.halted else result.observations
    if skipped:
        st.warning(f"{len(skipped)} rows were not placed on the map.")
        with st.expander("Skipped rows"):
            st.dataframe(_observation_frame(skipped), use_container_width=True, hide_index=True)

    st.download_button(
        label="Download Map HTML",
        data=output_file.read_bytes(),
        file_name=output_file.name,
        mime="text/html",
    )


if __name__ == "__main__":
    if not _streamlit_runtime_exists():
        raise SystemExit("Run this UI with: python3 -m streamlit run app.py")
    app()
