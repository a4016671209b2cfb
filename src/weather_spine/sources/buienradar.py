"""Weather stations from the Buienradar JSON feed."""

from typing import Any

import httpx
import structlog

from weather_spine.errors import UpstreamUnavailable
from weather_spine.models import WorkItem

logger = structlog.get_logger()

# Feed field -> work item field
_FIELD_MAP = {
    "stationid": "station_id",
    "stationname": "station_name",
    "lat": "lat",
    "lon": "lon",
    "regio": "region",
    "temperature": "temperature",
    "weatherdescription": "weather_description",
    "iconurl": "icon_url",
    "windspeed": "wind_speed",
    "winddirection": "wind_direction",
    "humidity": "humidity",
}


def _lower_keys(data: Any) -> Any:
    if isinstance(data, dict):
        return {str(k).lower(): v for k, v in data.items()}
    return data


def parse_stations(payload: dict[str, Any], max_items: int) -> list[WorkItem]:
    """Map the feed's station measurements to work items.

    Stations without a temperature reading are skipped. A document whose
    ``actual`` block or station list has the wrong shape raises
    UpstreamUnavailable.
    """
    actual = _lower_keys(_lower_keys(payload).get("actual") or {})
    if not isinstance(actual, dict):
        raise UpstreamUnavailable(
            f"Weather feed \"actual\" block is a {type(actual).__name__}, expected an object"
        )
    measurements = actual.get("stationmeasurements") or []
    if not isinstance(measurements, list):
        raise UpstreamUnavailable(
            f"Weather feed station list is a {type(measurements).__name__}, expected an array"
        )

    stations: list[WorkItem] = []
    for raw in measurements:
        measurement = _lower_keys(raw)
        if not isinstance(measurement, dict) or measurement.get("temperature") is None:
            continue
        stations.append({target: measurement.get(source) for source, target in _FIELD_MAP.items()})
        if len(stations) >= max_items:
            break
    return stations


class BuienradarSource:
    """
    Fetch current station measurements over HTTP.

    One GET per call, bounded by ``timeout``; retries belong to the queue.
    """

    name = "buienradar"

    def __init__(self, url: str, timeout: float = 15.0, client: httpx.Client | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def fetch(self, max_items: int) -> list[WorkItem]:
        if max_items <= 0:
            return []

        logger.info("item_source_fetch_started", source=self.name, max_items=max_items)
        try:
            if self._client is not None:
                response = self._client.get(self.url, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(self.url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("item_source_fetch_failed", source=self.name, error=str(e))
            raise UpstreamUnavailable(
                f"Weather feed unavailable: {e}", source=self.name, url=self.url, cause=e
            )

        if not isinstance(payload, dict):
            raise UpstreamUnavailable(
                "Weather feed returned an unexpected document", source=self.name, url=self.url
            )

        stations = parse_stations(payload, max_items)
        logger.info("item_source_fetch_completed", source=self.name, count=len(stations))
        return stations
