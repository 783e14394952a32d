"""Tests for the digital twin capability provider.

Runs real Camera and Subscription objects against the twin. Most tests
disable streaming (``frame_rate=0``) and noise so frames are
deterministic; the streaming tests use a high frame rate and short
sleeps.

Example:
    pdm run pytest tests/drivers/providers/test_twin_provider.py -v
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import numpy as np
import pytest

from camera_hub.devices import AcquisitionMode, Camera, CameraConfig
from camera_hub.drivers.providers import (
    DEFAULT_EXPOSURE_TIME,
    DigitalTwinConfig,
    DigitalTwinProvider,
    ProviderBinding,
    create_twin_provider,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def twin() -> DigitalTwinProvider:
    """Twin without streaming or noise."""
    return DigitalTwinProvider(DigitalTwinConfig(frame_rate=0, noise_level=0))


@pytest.fixture
def twin_camera(twin: DigitalTwinProvider) -> Camera:
    config = CameraConfig(camera_id=0, model="TWIN", serial="TW0001", name="twin")
    return Camera(config, provider=ProviderBinding(twin))


def _collector() -> tuple[list[np.ndarray], object]:
    frames: list[np.ndarray] = []
    return frames, lambda frame, sub: frames.append(frame)


# =============================================================================
# Tests
# =============================================================================


class TestTwinAcquisition:
    """Tests for start/stop acquisition on the twin."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, twin_camera: Camera) -> None:
        await twin_camera.start_acquisition()
        assert twin_camera.is_acquiring is True

        await twin_camera.stop_acquisition()
        assert twin_camera.is_acquiring is False

    @pytest.mark.asyncio
    async def test_rejected_start_leaves_idle(self) -> None:
        """reject_start simulates a device that refuses to start."""
        twin = create_twin_provider(frame_rate=0, reject_start=True)
        camera = Camera(CameraConfig(camera_id=1), provider=ProviderBinding(twin))

        await camera.start_acquisition()

        assert camera.is_acquiring is False

    def test_repr(self, twin: DigitalTwinProvider) -> None:
        assert repr(twin) == "DigitalTwinProvider(frame_rate=0, feeds=0)"


class TestTwinSettings:
    """Tests for exposure and distortion storage."""

    @pytest.mark.asyncio
    async def test_default_exposure(self, twin_camera: Camera) -> None:
        assert await twin_camera.get_exposure_time() == DEFAULT_EXPOSURE_TIME

    @pytest.mark.asyncio
    async def test_exposure_is_per_camera(
        self, twin: DigitalTwinProvider, twin_camera: Camera
    ) -> None:
        other = Camera(CameraConfig(camera_id=5), provider=ProviderBinding(twin))

        await twin_camera.set_exposure_time(2500)

        assert await twin_camera.get_exposure_time() == 2500.0
        assert await other.get_exposure_time() == DEFAULT_EXPOSURE_TIME

    @pytest.mark.asyncio
    async def test_distortion_set_and_cleared(
        self, twin: DigitalTwinProvider, twin_camera: Camera
    ) -> None:
        await twin_camera.apply_distortion_correction([0.1, -0.05, 0, 0, 0.01])
        assert twin.distortion(twin_camera) == [0.1, -0.05, 0.0, 0.0, 0.01]

        await twin_camera.apply_distortion_correction(None)
        assert twin.distortion(twin_camera) is None


class TestTwinFeeds:
    """Tests for feed start/stop and frame content."""

    @pytest.mark.asyncio
    async def test_feed_start_delivers_viewport_frame(
        self, twin: DigitalTwinProvider, twin_camera: Camera
    ) -> None:
        """Starting a feed delivers one frame sized to the viewport.

        Arrangement:
        1. Mono camera, twin without streaming.
        2. Subscription with the default 192x108 viewport.

        Action:
        Starts the feed.

        Assertion Strategy:
        - Exactly one frame delivered.
        - Frame is a 2-D uint8 array of shape (108, 192).
        - Twin reports the feed as active.
        """
        frames, handler = _collector()
        sub = twin_camera.create_subscription(handler)

        await sub.start_acquisition_feed()

        assert len(frames) == 1
        assert frames[0].shape == (108, 192)
        assert frames[0].dtype == np.uint8
        assert twin.is_feeding(sub)

    @pytest.mark.asyncio
    async def test_color_camera_frames_have_channels(
        self, twin: DigitalTwinProvider
    ) -> None:
        config = CameraConfig(camera_id=2, channel=3)
        camera = Camera(config, provider=ProviderBinding(twin))
        frames, handler = _collector()
        sub = camera.create_subscription(handler)

        await sub.start_acquisition_feed()

        assert frames[0].shape == (108, 192, 3)

    @pytest.mark.asyncio
    async def test_stop_feed_unregisters(
        self, twin: DigitalTwinProvider, twin_camera: Camera
    ) -> None:
        sub = twin_camera.create_subscription(lambda frame, s: None)
        await sub.start_acquisition_feed()

        await sub.stop_acquisition_feed()

        assert not twin.is_feeding(sub)

    @pytest.mark.asyncio
    async def test_viewport_change_resizes_frames(
        self, twin_camera: Camera
    ) -> None:
        sub = twin_camera.create_subscription(lambda frame, s: None)
        await sub.start_acquisition_feed()

        await sub.update_viewport([64, 32, 8, 1024, 512])
        frame = await sub.grab_image()

        assert frame.shape == (32, 64)

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_break_feed(
        self, twin: DigitalTwinProvider, twin_camera: Camera
    ) -> None:
        def broken(frame, sub):
            raise RuntimeError("display closed")

        sub = twin_camera.create_subscription(broken)

        await sub.start_acquisition_feed()

        assert sub.is_subscribed
        assert twin.is_feeding(sub)


class TestTwinFrames:
    """Tests for synthetic frame rendering."""

    def test_seeded_frames_are_reproducible(self, twin_camera: Camera) -> None:
        sub = twin_camera.create_subscription(lambda frame, s: None)
        first = DigitalTwinProvider(DigitalTwinConfig(frame_rate=0, seed=7))
        second = DigitalTwinProvider(DigitalTwinConfig(frame_rate=0, seed=7))

        np.testing.assert_array_equal(
            first.render_frame(sub, 3), second.render_frame(sub, 3)
        )

    @pytest.mark.asyncio
    async def test_longer_exposure_is_brighter(
        self, twin: DigitalTwinProvider, twin_camera: Camera
    ) -> None:
        sub = twin_camera.create_subscription(lambda frame, s: None)
        await sub.update_viewport([192, 108, 16, 0, 0])
        dim = twin.render_frame(sub).mean()

        await twin_camera.set_exposure_time(DEFAULT_EXPOSURE_TIME * 2)
        bright = twin.render_frame(sub).mean()

        assert bright > dim

    def test_bar_moves_with_sequence(
        self, twin: DigitalTwinProvider, twin_camera: Camera
    ) -> None:
        sub = twin_camera.create_subscription(lambda frame, s: None)

        assert not np.array_equal(twin.render_frame(sub, 1), twin.render_frame(sub, 20))


class TestTwinCapture:
    """Tests for grab_image()."""

    @pytest.mark.asyncio
    async def test_grab_returns_frame(self, twin_camera: Camera) -> None:
        sub = twin_camera.create_subscription(lambda frame, s: None)
        await sub.start_acquisition_feed()

        frame = await twin_camera.grab_image()

        assert isinstance(frame, np.ndarray)

    @pytest.mark.asyncio
    async def test_grab_to_path_writes_png(
        self, twin_camera: Camera, tmp_path: Path
    ) -> None:
        sub = twin_camera.create_subscription(lambda frame, s: None)
        await sub.start_acquisition_feed()
        target = tmp_path / "captures" / "frame.png"

        result = await twin_camera.grab_image(target)

        assert result == target
        assert target.stat().st_size > 0


class TestTwinTriggerAndStreaming:
    """Tests for external triggers and the background stream."""

    @pytest.mark.asyncio
    async def test_trigger_ignored_in_internal_mode(
        self, twin: DigitalTwinProvider, twin_camera: Camera
    ) -> None:
        sub = twin_camera.create_subscription(lambda frame, s: None)
        await sub.start_acquisition_feed()

        assert await twin.trigger(twin_camera) == 0

    @pytest.mark.asyncio
    async def test_trigger_delivers_to_every_feed(
        self, twin: DigitalTwinProvider, twin_camera: Camera
    ) -> None:
        """An external trigger pulse produces one frame per active feed."""
        frames, handler = _collector()
        await twin_camera.switch_acquisition_mode(AcquisitionMode.EXTERNAL_TRIGGER)
        for _ in range(2):
            await twin_camera.create_subscription(handler).start_acquisition_feed()
        frames.clear()

        delivered = await twin.trigger(twin_camera)

        assert delivered == 2
        assert len(frames) == 2

    @pytest.mark.asyncio
    async def test_stream_delivers_while_acquiring(self) -> None:
        twin = DigitalTwinProvider(DigitalTwinConfig(frame_rate=200, seed=0))
        camera = Camera(CameraConfig(camera_id=3), provider=ProviderBinding(twin))
        frames, handler = _collector()
        sub = camera.create_subscription(handler)

        await sub.start_acquisition_feed()
        await asyncio.sleep(0.1)
        await sub.stop_acquisition_feed()
        count = len(frames)
        await asyncio.sleep(0.05)

        assert count > 2
        assert len(frames) == count

    @pytest.mark.asyncio
    async def test_stream_paused_while_idle(self) -> None:
        """Silent feeds on an idle camera only get the initial frame."""
        twin = DigitalTwinProvider(DigitalTwinConfig(frame_rate=200, seed=0))
        camera = Camera(CameraConfig(camera_id=4), provider=ProviderBinding(twin))
        frames, handler = _collector()
        sub = camera.create_subscription(handler)

        await sub.start_acquisition_feed(silent=True)
        await asyncio.sleep(0.05)
        await camera.close()

        assert len(frames) == 1

    @pytest.mark.asyncio
    async def test_render_failure_ends_stream_quietly(self) -> None:
        """A frame that cannot be rendered ends the stream without raising.

        Arrangement:
        1. Streaming twin, acquiring camera, one active feed.
        2. Viewport width set to NaN so rendering fails.

        Action:
        Lets the stream run, then stops the feed.

        Assertion Strategy:
        - stop_acquisition_feed() completes without an exception.
        - No frames arrive once the viewport is broken.
        """
        twin = DigitalTwinProvider(DigitalTwinConfig(frame_rate=200, seed=0))
        camera = Camera(CameraConfig(camera_id=5), provider=ProviderBinding(twin))
        frames, handler = _collector()
        sub = camera.create_subscription(handler)
        await sub.start_acquisition_feed()

        await sub.update_viewport([float("nan"), 108, 1, 0, 0])
        count = len(frames)
        await asyncio.sleep(0.05)
        await sub.stop_acquisition_feed()

        assert len(frames) == count
        assert not twin.is_feeding(sub)
