"""Annotate a background image with a weather station's measurements."""

from io import BytesIO
from typing import Any

import httpx
import structlog
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from weather_spine.errors import UpstreamUnavailable
from weather_spine.models import WorkItem
from weather_spine.transform.base import Artifact

logger = structlog.get_logger()

BAND_HEIGHT = 150
BAND_COLOR = (0, 0, 0, 204)
TEXT_COLOR = (255, 255, 255, 255)
FALLBACK_COLOR = (100, 149, 237)  # cornflower blue


def _get_font(size: int, bold: bool = False) -> ImageFont.ImageFont:
    """Try to load a TrueType font, falling back to Pillow's default."""
    candidates = ["DejaVuSans-Bold.ttf", "Arial Bold.ttf"] if bold else ["DejaVuSans.ttf", "arial.ttf"]
    for name in candidates:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default()


def _reading(value: Any, fmt: str) -> str:
    """Format a numeric reading; feeds sometimes send numbers as text."""
    try:
        return format(float(value), fmt)
    except (TypeError, ValueError):
        return str(value)


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def describe_station(item: WorkItem) -> str:
    """One-line summary of the measurements, skipping missing values."""
    temperature = item.get("temperature")
    parts = [
        f"Temperature: {_reading(temperature, '.1f')}°C"
        if temperature is not None
        else "Temperature: n/a"
    ]
    if item.get("weather_description"):
        parts.append(str(item["weather_description"]))
    if item.get("wind_speed") is not None:
        wind = f"Wind: {_reading(item['wind_speed'], '.1f')} m/s"
        if item.get("wind_direction"):
            wind += f" {item['wind_direction']}"
        parts.append(wind)
    if item.get("humidity") is not None:
        parts.append(f"Humidity: {_reading(item['humidity'], '.0f')}%")
    return " | ".join(parts)


def result_metadata(item: WorkItem) -> dict[str, Any]:
    return {
        "station_name": item.get("station_name") or "Unknown",
        "temperature": _as_float(item.get("temperature"), 0.0),
        "weather_description": item.get("weather_description") or "Unknown",
    }


class WeatherImageAnnotator:
    """
    Fetch a background picture and draw the station data over it.

    A failed background fetch degrades to a plain image so one flaky image
    host does not stall the unit; undecodable image data is an error.
    """

    def __init__(
        self,
        image_url: str,
        timeout: float = 15.0,
        width: int = 1600,
        height: int = 900,
        client: httpx.Client | None = None,
    ):
        self.image_url = image_url
        self.timeout = timeout
        self.width = width
        self.height = height
        self._client = client

    def transform(self, item: WorkItem) -> Artifact:
        background = self.fetch_background()
        content = self.annotate(background, item)
        return Artifact(content=content, content_type="image/jpeg", metadata=result_metadata(item))

    def fetch_background(self) -> bytes:
        try:
            if self._client is not None:
                response = self._client.get(self.image_url, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                    response = client.get(self.image_url)
            response.raise_for_status()
            return response.content
        except httpx.HTTPError as e:
            logger.warning("background_fetch_failed", url=self.image_url, error=str(e))
            return self.fallback_image()

    def fallback_image(self) -> bytes:
        buffer = BytesIO()
        Image.new("RGB", (self.width, self.height), FALLBACK_COLOR).save(buffer, format="JPEG")
        return buffer.getvalue()

    def annotate(self, image_data: bytes, item: WorkItem) -> bytes:
        try:
            base = Image.open(BytesIO(image_data))
            base.load()
        except (UnidentifiedImageError, OSError) as e:
            raise UpstreamUnavailable(f"Background image could not be decoded: {e}", cause=e)

        image = base.convert("RGBA")
        width, height = image.size
        band_height = min(BAND_HEIGHT, height)
        top = height - band_height

        band = Image.new("RGBA", image.size, (0, 0, 0, 0))
        ImageDraw.Draw(band).rectangle([0, top, width, height], fill=BAND_COLOR)
        image = Image.alpha_composite(image, band)

        draw = ImageDraw.Draw(image)
        draw.text(
            (20, top + 10),
            item.get("station_name") or "Unknown Station",
            fill=TEXT_COLOR,
            font=_get_font(32, bold=True),
        )
        data_font = _get_font(24)
        draw.text((20, top + 60), describe_station(item), fill=TEXT_COLOR, font=data_font)
        if item.get("region"):
            draw.text((20, top + 100), f"Region: {item['region']}", fill=TEXT_COLOR, font=data_font)

        buffer = BytesIO()
        image.convert("RGB").save(buffer, format="JPEG", quality=90)
        return buffer.getvalue()
