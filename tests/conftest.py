"""Pytest configuration and fixtures for camera-hub tests.

Every test gets a fresh default provider binding (digital twin without
streaming) and a clean logging configuration, so module-level singletons
never leak between tests.
"""

from __future__ import annotations

import pytest

from camera_hub.devices import Camera, CameraConfig
from camera_hub.drivers import config as hub_config
from camera_hub.drivers.providers import ProviderBinding
from camera_hub.observability import AcquisitionStats, reset_logging
from tests.helpers import RecordingProvider


@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset the default binding and logging around each test."""
    hub_config.configure(hub_config.HubConfig(frame_rate=0, seed=0))
    yield
    hub_config.configure(hub_config.HubConfig(frame_rate=0, seed=0))
    reset_logging()


@pytest.fixture
def provider() -> RecordingProvider:
    """Recording provider with default results (start True, stop False)."""
    return RecordingProvider()


@pytest.fixture
def binding(provider: RecordingProvider) -> ProviderBinding:
    """Binding holding the recording provider."""
    return ProviderBinding(provider)


@pytest.fixture
def stats() -> AcquisitionStats:
    return AcquisitionStats()


@pytest.fixture
def camera(binding: ProviderBinding, stats: AcquisitionStats) -> Camera:
    """Camera 7 ("left", serial SN007) on the recording provider."""
    config = CameraConfig(camera_id=7, model="MV-CA050", serial="SN007", name="left")
    return Camera(config, provider=binding, stats=stats)
