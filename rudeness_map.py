"""City rudeness ranking pipeline.

This module loads a CSV of ranked cities and rudeness scores, buckets the
scores into quartiles, and renders one color-coded marker per city on a
Folium map together with a legend summarizing each bucket.
"""

from __future__ import annotations

import html
import io
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, TextIO, Tuple, Union

import pandas as pd
import requests

try:
    import folium
    from branca.element import MacroElement, Template
except ImportError as exc:
    raise SystemExit(
        "Folium dependencies are missing. Run: pip3 install -e ."
    ) from exc

from dataset_schema import SCORE_COLUMNS, missing_score_columns, validate_coordinate_table
from map_config import (
    DEFAULT_ZOOM,
    MARKER_SIZE,
    MAX_ZOOM,
    MIN_ZOOM,
    US_BOUNDS,
    US_CENTER,
)
from quartiles import Bucket, Quartiles, classify, compute_quartiles, format_score
from theme import RenderSession

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = Path("data/rudest_cities.csv")
DEFAULT_COORDINATES_FILE = Path("data/city_coordinates.csv")
FETCH_TIMEOUT_SECONDS = 60

Source = Union[str, Path, TextIO]
CoordinateTable = Dict[str, Tuple[float, float]]

SOURCE_UNAVAILABLE = "SourceUnavailable"
NO_DATA = "NoData"
CITY_NOT_FOUND = "CityNotFound"
INVALID_ROW = "InvalidRow"


class SourceUnavailable(ValueError):
    """The score source could not be fetched or parsed."""


class NoData(ValueError):
    """The score source holds no valid rows."""


def empty_counts() -> Dict[Bucket, int]:
    return {bucket: 0 for bucket in Bucket}


@dataclass(frozen=True)
class ScoreRecord:
    rank: int
    city_name: str
    score: float


@dataclass(frozen=True)
class Observation:
    kind: str
    message: str
    city_name: Optional[str] = None


@dataclass(frozen=True)
class LegendEntry:
    bucket: Bucket
    color: str
    range_label: str
    count: int

    @property
    def text(self) -> str:
        noun = "city" if self.count == 1 else "cities"
        return f"{self.bucket.label} ({self.range_label}) - {self.count} {noun}"


@dataclass
class RenderResult:
    map_obj: folium.Map
    markers: int = 0
    counts: Dict[Bucket, int] = field(default_factory=empty_counts)
    quartiles: Optional[Quartiles] = None
    legend: List[LegendEntry] = field(default_factory=list)
    observations: List[Observation] = field(default_factory=list)

    @property
    def halted(self) -> bool:
        return any(obs.kind in (SOURCE_UNAVAILABLE, NO_DATA) for obs in self.observations)

    def observations_of(self, kind: str) -> List[Observation]:
        return [obs for obs in self.observations if obs.kind == kind]


class RudenessLegend(MacroElement):
    """Legend panel; at most one is kept on a map at a time."""


def _is_url(source: Source) -> bool:
    return isinstance(source, str) and source.startswith(("http://", "https://"))


def _read_score_table(source: Source, bad_lines: List[List[str]]) -> pd.DataFrame:
    def _skip_bad_line(fields: List[str]) -> None:
        bad_lines.append(fields)
        return None

    read_kwargs = {
        "dtype": str,
        "keep_default_na": False,
        "engine": "python",
        "on_bad_lines": _skip_bad_line,
    }
    try:
        if _is_url(source):
            response = requests.get(str(source), timeout=FETCH_TIMEOUT_SECONDS)
            response.raise_for_status()
            return pd.read_csv(io.StringIO(response.text), **read_kwargs)
        return pd.read_csv(source, **read_kwargs)
    except pd.errors.EmptyDataError:
        return pd.DataFrame(columns=list(SCORE_COLUMNS))
    except requests.RequestException as exc:
        raise SourceUnavailable(f"Could not fetch score data from {source}: {exc}") from exc
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as exc:
        raise SourceUnavailable(f"Could not read score data from {source}: {exc}") from exc


def _parse_rank(raw: str) -> Optional[int]:
    try:
        rank = int(raw)
    except ValueError:
        return None
    return rank if rank >= 1 else None


def _parse_score(raw: str) -> Optional[float]:
    try:
        score = float(raw)
    except ValueError:
        return None
    return score if math.isfinite(score) else None


def load_records(
    source: Source,
    observations: Optional[List[Observation]] = None,
) -> List[ScoreRecord]:
    """Parse ``source`` into score records, in file order.

    Rows missing any of ``rank``, ``city_state`` or ``score`` are dropped
    silently. Rows with the wrong number of fields, or a non-numeric rank or
    score, are dropped with an ``InvalidRow`` observation.
    """
    bad_lines: List[List[str]] = []
    data = _read_score_table(source, bad_lines).fillna("")
    logger.info("Loaded %d rows from %s", len(data), source)

    for fields in bad_lines:
        raw_line = ",".join(fields)
        logger.warning("Skipping malformed row: %s", raw_line)
        if observations is not None:
            observations.append(
                Observation(INVALID_ROW, f"Skipping malformed row: {raw_line}")
            )

    missing = missing_score_columns(data)
    if missing:
        logger.warning("Score data missing columns: %s", ", ".join(sorted(missing)))
        data = data.reindex(columns=list(SCORE_COLUMNS), fill_value="")

    records: List[ScoreRecord] = []
    dropped = 0
    for row in data.loc[:, list(SCORE_COLUMNS)].to_dict("records"):
        rank_text = str(row["rank"]).strip()
        city_text = str(row["city_state"]).strip()
        score_text = str(row["score"]).strip()
        if not (rank_text and city_text and score_text):
            dropped += 1
            continue

        city_name = city_text.replace('"', "")
        rank = _parse_rank(rank_text)
        score = _parse_score(score_text)
        if rank is None or score is None:
            message = (
                f"Skipping {city_name}: rank={rank_text!r} score={score_text!r} "
                "is not a valid ranking."
            )
            logger.warning(
                "Skipping %s: rank=%r score=%r is not a valid ranking.",
                city_name,
                rank_text,
                score_text,
            )
            if observations is not None:
                observations.append(Observation(INVALID_ROW, message, city_name))
            continue

        records.append(ScoreRecord(rank=rank, city_name=city_name, score=score))

    if dropped:
        logger.debug("Dropped %d incomplete rows", dropped)
    logger.info("Valid records: %d", len(records))
    return records


def load_coordinate_table(path: Path = DEFAULT_COORDINATES_FILE) -> CoordinateTable:
    data = pd.read_csv(path)
    validate_coordinate_table(data)
    data = data.dropna(subset=["city_state", "lat", "lon"])
    return {
        str(row["city_state"]): (float(row["lat"]), float(row["lon"]))
        for row in data.to_dict("records")
    }


def create_base_map(session: RenderSession) -> folium.Map:
    (south, west), (north, east) = US_BOUNDS
    base_map = folium.Map(
        location=list(US_CENTER),
        zoom_start=DEFAULT_ZOOM,
        min_zoom=MIN_ZOOM,
        max_zoom=MAX_ZOOM,
        tiles=None,
        max_bounds=True,
        min_lat=south,
        max_lat=north,
        min_lon=west,
        max_lon=east,
        control_scale=True,
        zoom_snap=0.5,
        zoom_delta=1,
        wheel_px_per_zoom_level=60,
        max_bounds_viscosity=1.0,
    )
    session.attach(base_map)
    return base_map


def _marker_icon(color: str, size: int = MARKER_SIZE) -> folium.DivIcon:
    return folium.DivIcon(
        html=(
            f'<i class="fas fa-location-dot" style="color: {color}; '
            f"font-size: {size}px; text-shadow: 2px 2px 4px rgba(0,0,0,0.3);\"></i>"
        ),
        icon_size=(size, size),
        icon_anchor=(size // 2, size),
        popup_anchor=(0, -size),
        class_name="font-awesome-marker",
    )


def _city_popup(record: ScoreRecord, color: str) -> str:
    return f"""
    <div class="popup-content" style="font-family:Arial,sans-serif;">
      <div class="popup-title" style="color:{color};font-weight:700;">#{record.rank} {html.escape(record.city_name)}</div>
      <div class="popup-score">Rudeness score: {format_score(record.score)}</div>
    </div>
    """


def _city_tooltip(record: ScoreRecord) -> str:
    return f"#{record.rank} {html.escape(record.city_name)}"


def build_legend(quartiles: Quartiles, counts: Dict[Bucket, int]) -> List[LegendEntry]:
    return [
        LegendEntry(
            bucket=bucket,
            color=bucket.color,
            range_label=bucket.range_label(quartiles),
            count=counts.get(bucket, 0),
        )
        for bucket in Bucket
    ]


def _add_legend(map_object: folium.Map, legend: List[LegendEntry]) -> None:
    root = map_object.get_root()
    for key, child in list(root._children.items()):
        if isinstance(child, RudenessLegend):
            del root._children[key]

    items = "".join(
        (
            '<div class="quartile-item">'
            f'<i class="fas fa-location-dot" style="color:{entry.color};font-size:12px;"></i> '
            f"<span>{html.escape(entry.text)}</span></div>"
        )
        for entry in legend
    )

    template = Template(
        f"""
        {{% macro html(this, kwargs) %}}
        <style>
          #rudeness-legend {{
            position: fixed;
            bottom: 18px;
            left: 50%;
            transform: translateX(-50%);
            z-index: 9999;
            background: rgba(255, 255, 255, 0.96);
            border-radius: 10px;
            border: 1px solid #d6dde8;
            box-shadow: 0 8px 20px rgba(10, 25, 47, 0.15);
            padding: 10px 14px;
            font-family: Arial, sans-serif;
          }}
          #rudeness-legend h4 {{
            text-align: center;
            margin: 0 0 8px 0;
            font-size: 0.9em;
            font-weight: 600;
            color: #0f172a;
          }}
          #rudeness-legend .quartile-legend {{
            display: flex;
            flex-direction: row;
            justify-content: space-between;
            gap: 15px;
            font-size: 12px;
            color: #1f2937;
          }}
          body.dark-mode #rudeness-legend {{
            background: rgba(30, 41, 59, 0.94);
            border-color: #334155;
          }}
          body.dark-mode #rudeness-legend h4,
          body.dark-mode #rudeness-legend .quartile-legend {{
            color: #e2e8f0;
          }}
          .font-awesome-marker {{
            background: none !important;
            border: none !important;
            text-align: center;
            display: flex;
            align-items: center;
            justify-content: center;
          }}
        </style>
        <div id="rudeness-legend">
          <h4>Rudeness Categories</h4>
          <div class="quartile-legend">{items}</div>
        </div>
        {{% endmacro %}}
        """
    )

    macro = RudenessLegend()
    macro._template = template
    root.add_child(macro)


def render(
    records: List[ScoreRecord],
    coordinates: CoordinateTable,
    map_object: folium.Map,
    observations: Optional[List[Observation]] = None,
) -> RenderResult:
    """Place one marker per resolvable record and attach the legend.

    Raises ``NoData`` when ``records`` is empty; nothing is drawn in that case.
    """
    if not records:
        raise NoData("No valid score rows to render.")

    result = RenderResult(
        map_obj=map_object,
        observations=observations if observations is not None else [],
    )
    scores = [record.score for record in records]
    quartiles = compute_quartiles(scores)
    result.quartiles = quartiles
    logger.info("Score range: %s to %s", format_score(min(scores)), format_score(max(scores)))
    logger.info("Quartiles: %s", ", ".join(format_score(q) for q in quartiles.as_tuple()))

    marker_layer = folium.FeatureGroup(name="Cities", show=True, control=False)
    for record in records:
        location = coordinates.get(record.city_name)
        if location is None:
            message = f"Coordinates not found for: {record.city_name}"
            logger.warning("Coordinates not found for: %s", record.city_name)
            result.observations.append(Observation(CITY_NOT_FOUND, message, record.city_name))
            continue

        bucket = classify(record.score, quartiles)
        result.counts[bucket] += 1
        folium.Marker(
            location=list(location),
            icon=_marker_icon(bucket.color),
            popup=folium.Popup(_city_popup(record, bucket.color), max_width=260),
            tooltip=_city_tooltip(record),
        ).add_to(marker_layer)
        result.markers += 1
    marker_layer.add_to(map_object)

    result.legend = build_legend(quartiles, result.counts)
    _add_legend(map_object, result.legend)
    logger.info("Placed %d markers", result.markers)
    return result


def build_rudeness_map(
    source: Source,
    coordinates: CoordinateTable,
    session: RenderSession,
) -> RenderResult:
    """Load ``source`` and render it onto a fresh map for ``session``.

    Halting errors are logged and recorded; the returned map is always usable.
    """
    map_object = create_base_map(session)
    observations: List[Observation] = []
    try:
        records = load_records(source, observations=observations)
        return render(records, coordinates, map_object, observations=observations)
    except SourceUnavailable as exc:
        logger.error("Error loading CSV: %s", exc)
        observations.append(Observation(SOURCE_UNAVAILABLE, str(exc)))
    except NoData as exc:
        logger.error("No valid data found: %s", exc)
        observations.append(Observation(NO_DATA, str(exc)))
    return RenderResult(map_obj=map_object, observations=observations)
