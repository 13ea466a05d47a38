import io
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import requests

from quartiles import Bucket
from rudeness_map import (
    CITY_NOT_FOUND,
    INVALID_ROW,
    NO_DATA,
    SOURCE_UNAVAILABLE,
    NoData,
    Observation,
    RudenessLegend,
    ScoreRecord,
    SourceUnavailable,
    _city_tooltip,
    build_rudeness_map,
    create_base_map,
    load_coordinate_table,
    load_records,
    render,
)
from theme import RenderSession

COORDINATES = {
    "Springfield, IL": (39.7817, -89.6501),
    "Portland, OR": (45.5152, -122.6784),
    "Austin, TX": (30.2672, -97.7431),
    "Boise, ID": (43.6150, -116.2023),
}


def _csv(text: str) -> io.StringIO:
    return io.StringIO(text)


def _legend_children(map_object):
    return [
        child
        for child in map_object.get_root()._children.values()
        if isinstance(child, RudenessLegend)
    ]


class LoadRecordsTests(unittest.TestCase):
    def test_parses_rows_in_order_and_strips_quotes(self) -> None:
        records = load_records(
            _csv(
                "rank,city_state,score\n"
                '1,"Portland, OR",7.5\n'
                '2,"""Austin, TX""",6\n'
            )
        )
        self.assertEqual(
            records,
            [
                ScoreRecord(rank=1, city_name="Portland, OR", score=7.5),
                ScoreRecord(rank=2, city_name="Austin, TX", score=6.0),
            ],
        )

    def test_rows_with_empty_fields_are_dropped(self) -> None:
        observations = []
        records = load_records(
            _csv(
                "rank,city_state,score\n"
                ',"Portland, OR",7.5\n'
                "2,,6.1\n"
                '3,"Austin, TX",\n'
                '4,"Boise, ID"\n'
                '5,"Springfield, IL",3.2\n'
            ),
            observations=observations,
        )
        self.assertEqual([record.rank for record in records], [5])
        self.assertEqual(observations, [])

    def test_non_numeric_rows_are_reported(self) -> None:
        observations = []
        records = load_records(
            _csv(
                "rank,city_state,score\n"
                'first,"Portland, OR",7.5\n'
                '2,"Austin, TX",rude\n'
                '3,"Boise, ID",4\n'
            ),
            observations=observations,
        )
        self.assertEqual([record.city_name for record in records], ["Boise, ID"])
        self.assertEqual([obs.kind for obs in observations], [INVALID_ROW, INVALID_ROW])
        self.assertEqual(observations[0].city_name, "Portland, OR")

    def test_row_with_extra_field_is_skipped_alone(self) -> None:
        observations = []
        records = load_records(
            _csv(
                "rank,city_state,score\n"
                '1,"Austin, TX",5\n'
                "2,Boise, ID,4\n"
                '3,"Boise, ID",3\n'
            ),
            observations=observations,
        )
        self.assertEqual(
            records,
            [ScoreRecord(1, "Austin, TX", 5.0), ScoreRecord(3, "Boise, ID", 3.0)],
        )
        self.assertEqual([obs.kind for obs in observations], [INVALID_ROW])
        self.assertIn("2,Boise, ID,4", observations[0].message)

    def test_missing_column_drops_every_row(self) -> None:
        records = load_records(_csv('rank,city_state\n1,"Austin, TX"\n'))
        self.assertEqual(records, [])

    def test_header_only_source_yields_no_records(self) -> None:
        self.assertEqual(load_records(_csv("rank,city_state,score\n")), [])

    def test_missing_file_is_unavailable(self) -> None:
        with self.assertRaises(SourceUnavailable):
            load_records(Path("does/not/exist.csv"))

    def test_url_fetch_failure_is_unavailable(self) -> None:
        with mock.patch(
            "rudeness_map.requests.get",
            side_effect=requests.ConnectionError("offline"),
        ):
            with self.assertRaises(SourceUnavailable):
                load_records("https://example.com/scores.csv")

    def test_url_source_is_fetched(self) -> None:
        response = mock.Mock()
        response.text = 'rank,city_state,score\n1,"Austin, TX",5\n'
        response.raise_for_status.return_value = None
        with mock.patch("rudeness_map.requests.get", return_value=response) as get:
            records = load_records("https://example.com/scores.csv")
        get.assert_called_once()
        self.assertEqual(records, [ScoreRecord(1, "Austin, TX", 5.0)])


class RenderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = RenderSession()
        self.map_object = create_base_map(self.session)

    def test_counts_markers_and_legend(self) -> None:
        records = [
            ScoreRecord(1, "Portland, OR", 9.0),
            ScoreRecord(2, "Austin, TX", 7.0),
            ScoreRecord(3, "Boise, ID", 4.0),
            ScoreRecord(4, "Springfield, IL", 1.0),
        ]
        result = render(records, COORDINATES, self.map_object)

        self.assertEqual(result.markers, 4)
        self.assertEqual(result.quartiles.as_tuple(), (4.0, 7.0, 9.0))
        self.assertEqual(
            result.counts,
            {
                Bucket.MOST_POLITE: 2,
                Bucket.POLITE: 1,
                Bucket.RUDE: 1,
                Bucket.RUDEST: 0,
            },
        )
        self.assertEqual([entry.count for entry in result.legend], [2, 1, 1, 0])
        self.assertEqual(result.legend[0].text, "Most Polite (≤4) - 2 cities")
        self.assertEqual(result.legend[1].text, "Polite (4–7) - 1 city")
        self.assertEqual(len(_legend_children(self.map_object)), 1)
        self.assertIn("Rudeness Categories", self.map_object.get_root().render())

    def test_unknown_city_is_skipped_and_reported(self) -> None:
        records = [
            ScoreRecord(1, "Atlantis, XX", 9.0),
            ScoreRecord(2, "Austin, TX", 5.0),
        ]
        result = render(records, COORDINATES, self.map_object)

        self.assertEqual(result.markers, 1)
        self.assertEqual(sum(result.counts.values()), 1)
        not_found = result.observations_of(CITY_NOT_FOUND)
        self.assertEqual(len(not_found), 1)
        self.assertEqual(not_found[0].city_name, "Atlantis, XX")

    def test_unknown_city_still_shapes_quartiles(self) -> None:
        records = [
            ScoreRecord(1, "Atlantis, XX", 1.0),
            ScoreRecord(2, "Austin, TX", 2.0),
        ]
        result = render(records, COORDINATES, self.map_object)
        self.assertEqual(result.quartiles.as_tuple(), (1.0, 2.0, 2.0))
        self.assertEqual(result.counts[Bucket.POLITE], 1)

    def test_unknown_city_warning_names_city(self) -> None:
        with self.assertLogs("rudeness_map", level="WARNING") as logs:
            render([ScoreRecord(1, "Atlantis, XX", 9.0)], COORDINATES, self.map_object)
        self.assertIn("Coordinates not found for: Atlantis, XX", logs.output[0])

    def test_tooltip_escapes_city_name(self) -> None:
        tooltip = _city_tooltip(ScoreRecord(7, "<b>Austin</b>, TX", 5.0))
        self.assertEqual(tooltip, "#7 &lt;b&gt;Austin&lt;/b&gt;, TX")

    def test_legend_has_dark_variant(self) -> None:
        render([ScoreRecord(1, "Austin, TX", 5.0)], COORDINATES, self.map_object)
        self.assertIn("body.dark-mode #rudeness-legend", self.map_object.get_root().render())

    def test_rerender_replaces_legend(self) -> None:
        records = [ScoreRecord(1, "Austin, TX", 5.0)]
        render(records, COORDINATES, self.map_object)
        render(records, COORDINATES, self.map_object)
        self.assertEqual(len(_legend_children(self.map_object)), 1)

    def test_empty_records_raise_before_drawing(self) -> None:
        with self.assertRaises(NoData):
            render([], COORDINATES, self.map_object)
        self.assertEqual(_legend_children(self.map_object), [])

    def test_existing_observations_are_kept(self) -> None:
        earlier = [Observation(INVALID_ROW, "bad row")]
        result = render(
            [ScoreRecord(1, "Austin, TX", 5.0)],
            COORDINATES,
            self.map_object,
            observations=earlier,
        )
        self.assertEqual([obs.kind for obs in result.observations], [INVALID_ROW])


class BuildRudenessMapTests(unittest.TestCase):
    def test_full_pipeline(self) -> None:
        source = _csv(
            "rank,city_state,score\n"
            '1,"Portland, OR",8\n'
            '2,"Nowhere, ZZ",7\n'
            ',"Austin, TX",6\n'
            '3,"Boise, ID",5\n'
        )
        result = build_rudeness_map(source, COORDINATES, RenderSession())
        self.assertFalse(result.halted)
        self.assertEqual(result.markers, 2)
        self.assertEqual(sum(result.counts.values()), result.markers)
        self.assertEqual(len(result.observations_of(CITY_NOT_FOUND)), 1)

    def test_ragged_row_does_not_halt_pipeline(self) -> None:
        source = _csv(
            "rank,city_state,score\n"
            '1,"Austin, TX",5\n'
            "2,Boise, ID,4\n"
            '3,"Boise, ID",3\n'
        )
        result = build_rudeness_map(source, COORDINATES, RenderSession())
        self.assertFalse(result.halted)
        self.assertEqual(result.markers, 2)
        self.assertEqual(len(result.observations_of(INVALID_ROW)), 1)

    def test_header_only_source_halts_with_no_data(self) -> None:
        result = build_rudeness_map(
            _csv("rank,city_state,score\n"), COORDINATES, RenderSession()
        )
        self.assertTrue(result.halted)
        self.assertEqual([obs.kind for obs in result.observations], [NO_DATA])
        self.assertEqual(result.markers, 0)
        self.assertEqual(result.legend, [])
        self.assertEqual(_legend_children(result.map_obj), [])

    def test_unavailable_source_still_returns_map(self) -> None:
        result = build_rudeness_map(
            Path("missing/scores.csv"), COORDINATES, RenderSession()
        )
        self.assertTrue(result.halted)
        self.assertEqual(result.observations[0].kind, SOURCE_UNAVAILABLE)
        self.assertIn("leaflet", result.map_obj.get_root().render().lower())


class CoordinateTableTests(unittest.TestCase):
    def test_load_coordinate_table(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "coords.csv"
            path.write_text(
                'city_state,lat,lon\n"Austin, TX",30.2672,-97.7431\n',
                encoding="utf-8",
            )
            table = load_coordinate_table(path)
        self.assertEqual(table, {"Austin, TX": (30.2672, -97.7431)})

    def test_missing_columns_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "coords.csv"
            path.write_text("city_state,lat\nAustin,30.2\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_coordinate_table(path)


if __name__ == "__main__":
    unittest.main()
