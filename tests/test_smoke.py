"""Tests for the single-station smoke test."""

import pytest

from weather_spine.errors import UpstreamUnavailable
from weather_spine.smoke import SMOKE_JOB_PREFIX, SmokeTest
from weather_spine.sources import StaticItemSource


class TestSmokeTest:
    def test_writes_one_artifact(self, pipeline):
        result = SmokeTest().run()

        assert result.job_id.startswith(SMOKE_JOB_PREFIX)
        assert result.artifact_path == f"{result.job_id}/station-000.jpg"
        assert result.station["station_name"] == "Meetstation De Bilt"
        assert pipeline["storage"].get(result.artifact_path) == b"image:Meetstation De Bilt"
        assert result.size_bytes == len(b"image:Meetstation De Bilt")

    def test_fetches_a_single_station(self, pipeline):
        SmokeTest().run()

        assert len(pipeline["transformer"].calls) == 1

    def test_leaves_job_history_and_queues_alone(self, pipeline):
        SmokeTest().run()

        assert pipeline["store"].list() == []
        assert pipeline["dead_letters"].list() == []

    def test_no_stations(self, storage, transformer):
        smoke = SmokeTest(item_source=StaticItemSource([]), transformer=transformer, storage=storage)

        with pytest.raises(UpstreamUnavailable, match="No weather stations"):
            smoke.run()

        assert transformer.calls == []
