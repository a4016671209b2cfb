"""Pytest configuration and fixtures."""

import os

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("BACKEND_TYPE", "local")
os.environ.setdefault("INTAKE_MODE", "deferred")
os.environ.setdefault("STATUS_STORE_TYPE", "memory")
os.environ.setdefault("STORAGE_TYPE", "local")
os.environ.setdefault("STORAGE_LOCAL_PATH", "/tmp/weather_spine_test_storage")
os.environ.setdefault("QUEUE_RETRY_BACKOFF_SECONDS", "0")
os.environ.setdefault("FOLD_RETRY_DELAY_SECONDS", "0")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.pop("API_KEY", None)

from weather_spine.config import reset_settings  # noqa: E402
from weather_spine.orchestration import (  # noqa: E402
    LocalBackend,
    MemoryDeadLetterStore,
    set_backend,
    set_dead_letter_store,
)
from weather_spine.sources import StaticItemSource, set_item_source  # noqa: E402
from weather_spine.status import MemoryJobStore, reset_status_store, set_status_store  # noqa: E402
from weather_spine.storage import LocalStorage, reset_storage, set_storage  # noqa: E402
from weather_spine.transform import Artifact, set_transformer  # noqa: E402


class FakeTransformer:
    """Produces small deterministic artifacts without touching the network."""

    def __init__(self):
        self.calls: list[dict] = []

    def transform(self, item):
        self.calls.append(item)
        name = item.get("station_name", "unknown")
        return Artifact(
            content=f"image:{name}".encode(),
            content_type="image/jpeg",
            metadata={
                "station_name": name,
                "temperature": item.get("temperature", 0.0),
                "weather_description": item.get("weather_description", "Unknown"),
            },
        )


@pytest.fixture(autouse=True)
def reset_singletons():
    """Every test starts from fresh settings and collaborators."""
    reset_settings()
    yield
    reset_settings()
    set_backend(None)
    set_dead_letter_store(None)
    set_item_source(None)
    set_transformer(None)
    reset_status_store()
    reset_storage()


@pytest.fixture
def stations():
    """Three work items shaped like parsed Buienradar stations."""
    return [
        {
            "station_id": 6260,
            "station_name": "Meetstation De Bilt",
            "region": "Utrecht",
            "temperature": 12.4,
            "weather_description": "Licht bewolkt",
            "wind_speed": 3.2,
            "wind_direction": "ZW",
            "humidity": 81.0,
        },
        {
            "station_id": 6240,
            "station_name": "Meetstation Schiphol",
            "region": "Amsterdam",
            "temperature": 11.9,
            "weather_description": "Zwaar bewolkt",
            "wind_speed": 5.1,
            "wind_direction": "W",
            "humidity": 88.0,
        },
        {
            "station_id": 6380,
            "station_name": "Meetstation Maastricht",
            "region": "Maastricht",
            "temperature": 14.0,
            "weather_description": "Zonnig",
            "wind_speed": 1.4,
            "wind_direction": "Z",
            "humidity": 65.0,
        },
    ]


@pytest.fixture
def store():
    store = MemoryJobStore(retry_delay=0)
    set_status_store(store)
    return store


@pytest.fixture
def storage(tmp_path):
    storage = LocalStorage(tmp_path / "artifacts")
    set_storage(storage)
    return storage


@pytest.fixture
def dead_letters():
    dlq = MemoryDeadLetterStore()
    set_dead_letter_store(dlq)
    return dlq


@pytest.fixture
def item_source(stations):
    source = StaticItemSource(stations)
    set_item_source(source)
    return source


@pytest.fixture
def transformer():
    fake = FakeTransformer()
    set_transformer(fake)
    return fake


@pytest.fixture
def backend(dead_letters):
    """Synchronous local backend: a publish returns after full delivery."""
    backend = LocalBackend(max_redeliveries=2, backoff_seconds=0, dead_letters=dead_letters)
    set_backend(backend)
    yield backend
    backend.stop()


@pytest.fixture
def pipeline(store, storage, dead_letters, item_source, transformer, backend):
    """All collaborators wired to in-process fakes."""
    return {
        "store": store,
        "storage": storage,
        "dead_letters": dead_letters,
        "item_source": item_source,
        "transformer": transformer,
        "backend": backend,
    }
