"""Tests for GPX parsing and replay."""
from datetime import datetime, timezone

import pytest

from territory_conquest.core.gpx import GpxReplaySource, parse_gpx_fixes

TIMED_GPX = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <trk><trkseg>
    <trkpt lat="37.7700" lon="-122.4200"><ele>12.5</ele><time>2026-10-01T08:00:00Z</time></trkpt>
    <trkpt lat="37.7701" lon="-122.4200"><ele>13.0</ele><time>2026-10-01T08:00:05Z</time></trkpt>
    <trkpt lat="37.7702" lon="-122.4200"><ele>13.5</ele><time>2026-10-01T08:00:10Z</time></trkpt>
  </trkseg></trk>
</gpx>
"""

UNTIMED_GPX = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <trk><trkseg>
    <trkpt lat="37.7700" lon="-122.4200"></trkpt>
    <trkpt lat="37.7701" lon="-122.4200"></trkpt>
    <trkpt lat="37.7702" lon="-122.4200"></trkpt>
  </trkseg></trk>
</gpx>
"""


@pytest.fixture
def timed_gpx(tmp_path):
    path = tmp_path / "timed.gpx"
    path.write_text(TIMED_GPX)
    return str(path)


class TestParseGpxFixes:
    def test_reads_points_in_order(self, timed_gpx):
        fixes = parse_gpx_fixes(timed_gpx)
        assert len(fixes) == 3
        assert fixes[0].lat == pytest.approx(37.77)
        assert fixes[0].lng == pytest.approx(-122.42)
        assert fixes[2].lat == pytest.approx(37.7702)

    def test_timestamps_in_epoch_ms(self, timed_gpx):
        fixes = parse_gpx_fixes(timed_gpx)
        start = int(datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc).timestamp() * 1000)
        assert [f.timestamp_ms for f in fixes] == [start, start + 5000, start + 10_000]

    def test_elevation_kept_as_altitude(self, timed_gpx):
        assert parse_gpx_fixes(timed_gpx)[1].altitude_m == pytest.approx(13.0)

    def test_accuracy_left_unset(self, timed_gpx):
        assert parse_gpx_fixes(timed_gpx)[0].accuracy_m is None

    def test_missing_times_spaced_one_second(self, tmp_path):
        path = tmp_path / "untimed.gpx"
        path.write_text(UNTIMED_GPX)
        assert [f.timestamp_ms for f in parse_gpx_fixes(str(path))] == [0, 1000, 2000]


class TestGpxReplaySource:
    def test_replay_delivers_every_fix(self, timed_gpx):
        source = GpxReplaySource.from_file(timed_gpx)
        received = []
        source.subscribe(received.append)
        assert source.replay() == 3
        assert received == source.fixes

    def test_unsubscribe(self, timed_gpx):
        source = GpxReplaySource.from_file(timed_gpx)
        received = []
        unsubscribe = source.subscribe(received.append)
        assert source.subscriber_count == 1
        unsubscribe()
        assert source.subscriber_count == 0
        source.replay()
        assert received == []
