"""Digital twin capability provider.

Simulates a camera backend so cameras and subscriptions can be exercised
without hardware. Every call is logged. Acquisition start reports True
and stop reports False. Exposure and distortion settings are remembered
per camera. Each started feed receives one frame immediately and then,
while the camera is acquiring in internal-trigger mode, a new frame at the
configured frame rate.

Frames are synthetic numpy arrays sized to the subscription viewport: a
diagonal gradient across the virtual sensor, a vertical bar that moves
with the frame sequence, sensor noise, and the sequence number drawn in
the corner.

Example:
    provider = DigitalTwinProvider(DigitalTwinConfig(frame_rate=5.0))
    camera = Camera(config, provider=ProviderBinding(provider))

    sub = camera.create_subscription(lambda frame, s: print(frame.shape))
    await sub.start_acquisition_feed()   # prints (108, 192)
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import cv2
import numpy as np

from camera_hub.drivers.providers.types import (
    AcquisitionMode,
    FrameCallback,
    ProviderError,
    ProviderRejection,
)
from camera_hub.observability import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from camera_hub.devices.camera import Camera
    from camera_hub.devices.subscription import Subscription

logger = get_logger(__name__)

# --- Constants ---

#: Frames per second delivered to each feed while acquiring.
DEFAULT_FRAME_RATE: float = 10.0

#: Exposure time reported before any set_exposure_time() call.
DEFAULT_EXPOSURE_TIME: float = 1000.0

#: Upper bound of the uniform noise added to each pixel.
DEFAULT_NOISE_LEVEL: int = 8

_MAX_EXPOSURE_GAIN = 4.0
_BAR_PERIOD_FRAMES = 50
_LABEL_MIN_WIDTH = 48
_LABEL_MIN_HEIGHT = 20


@dataclass
class DigitalTwinConfig:
    """Behaviour of the simulated backend.

    Attributes:
        frame_rate: Streamed frames per second per feed. 0 disables
            streaming; only the frame delivered on feed start is sent.
        noise_level: Max per-pixel noise added to frames (0 = none).
        exposure_time: Initial exposure reported for every camera.
        seed: Seed for the noise generator, for reproducible frames.
        reject_start: Make start_acquisition raise ProviderRejection.
    """

    frame_rate: float = DEFAULT_FRAME_RATE
    noise_level: int = DEFAULT_NOISE_LEVEL
    exposure_time: float = DEFAULT_EXPOSURE_TIME
    seed: int | None = None
    reject_start: bool = False


@dataclass
class _Feed:
    """Delivery state of one started subscription feed."""

    callback: FrameCallback
    task: asyncio.Task[None] | None = None
    sequence: int = 0


class DigitalTwinProvider:
    """Simulated implementation of the capability provider contract."""

    def __init__(self, config: DigitalTwinConfig | None = None) -> None:
        self.config = config or DigitalTwinConfig()
        self._rng = np.random.default_rng(self.config.seed)
        self._exposure: dict[int, float] = {}
        self._distortion: dict[int, list[float]] = {}
        self._feeds: dict[Subscription, _Feed] = {}

    def __repr__(self) -> str:
        return (
            f"DigitalTwinProvider(frame_rate={self.config.frame_rate}, "
            f"feeds={len(self._feeds)})"
        )

    # --- Acquisition ---

    async def start_acquisition(self, camera: Camera) -> bool:
        logger.info(
            "Twin acquisition start",
            camera=camera.description,
            mode=camera.acquisition_mode.value,
        )
        if self.config.reject_start:
            raise ProviderRejection(
                f"{camera.description}: simulated start failure",
                is_acquiring=False,
            )
        return True

    async def stop_acquisition(self, camera: Camera) -> bool:
        logger.info("Twin acquisition stop", camera=camera.description)
        return False

    # --- Camera settings ---

    async def set_exposure_time(self, camera: Camera, value: float) -> None:
        logger.info("Twin set exposure", camera=camera.description, value=value)
        self._exposure[camera.id] = float(value)

    async def get_exposure_time(self, camera: Camera) -> float:
        value = self._exposure.get(camera.id, self.config.exposure_time)
        logger.debug("Twin get exposure", camera=camera.description, value=value)
        return value

    async def apply_distortion(
        self, camera: Camera, params: list[float] | None
    ) -> None:
        logger.info("Twin distortion", camera=camera.description, params=params)
        if params is None:
            self._distortion.pop(camera.id, None)
        else:
            self._distortion[camera.id] = [float(p) for p in params]

    def distortion(self, camera: Camera) -> list[float] | None:
        """Coefficients last applied to ``camera``, or None if cleared."""
        return self._distortion.get(camera.id)

    # --- Feeds ---

    async def start_feed(
        self, subscription: Subscription, callback: FrameCallback
    ) -> None:
        """Register the feed, deliver one frame, then stream in the background."""
        if subscription in self._feeds:
            await self.stop_feed(subscription)

        logger.info(
            "Twin feed start",
            camera=subscription.camera.description,
            subscription=subscription.name,
        )
        feed = _Feed(callback=callback)
        self._feeds[subscription] = feed
        self._deliver(subscription, feed)

        if self.config.frame_rate > 0:
            feed.task = asyncio.create_task(
                self._stream(subscription, feed),
                name=f"twin-feed-{subscription.name}",
            )

    async def stop_feed(self, subscription: Subscription) -> None:
        feed = self._feeds.pop(subscription, None)
        if feed is None:
            return
        logger.info("Twin feed stop", subscription=subscription.name)
        if feed.task is not None:
            feed.task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await feed.task

    async def update_feed(self, subscription: Subscription) -> None:
        # Frames are rendered from the live viewport, nothing to reconfigure.
        logger.info(
            "Twin feed update",
            subscription=subscription.name,
            viewport=list(subscription.viewport),
        )

    def is_feeding(self, subscription: Subscription) -> bool:
        """Whether a feed is currently registered for ``subscription``."""
        return subscription in self._feeds

    async def trigger(self, camera: Camera) -> int:
        """Simulate an external trigger pulse on ``camera``.

        Delivers one frame to every feed of the camera, provided it is
        acquiring in external-trigger mode.

        Returns:
            Number of feeds that received a frame.
        """
        if not (
            camera.is_acquiring
            and camera.acquisition_mode is AcquisitionMode.EXTERNAL_TRIGGER
        ):
            logger.debug("Trigger ignored", camera=camera.description)
            return 0

        delivered = 0
        for subscription, feed in list(self._feeds.items()):
            if subscription.belongs_to(camera):
                self._deliver(subscription, feed)
                delivered += 1
        return delivered

    # --- Capture ---

    async def grab_image(
        self, subscription: Subscription, path: str | Path | None = None
    ) -> NDArray[np.uint8] | Path:
        """Render one frame; write it with OpenCV when ``path`` is given.

        Returns:
            The frame array, or the written file path.

        Raises:
            ProviderError: OpenCV could not write ``path``.
        """
        frame = self.render_frame(subscription)
        if path is None:
            return frame

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(target), frame):
            raise ProviderError(f"Could not write image to {target}")
        logger.info("Twin image saved", subscription=subscription.name, path=target)
        return target

    def render_frame(
        self, subscription: Subscription, sequence: int = 0
    ) -> NDArray[np.uint8]:
        """Render a synthetic frame for the subscription's viewport.

        The viewport maps output pixel (x, y) to sensor coordinate
        (dx + x * scale, dy + y * scale). Mono cameras produce a 2-D array,
        others ``(height, width, channel)``.
        """
        camera = subscription.camera
        width, height, scale, dx, dy = subscription.viewport
        width, height = max(int(width), 1), max(int(height), 1)
        scale = float(scale) or 1.0

        xs = dx + np.arange(width, dtype=np.float64) * scale
        ys = dy + np.arange(height, dtype=np.float64) * scale
        image = (xs[None, :] / camera.width + ys[:, None] / camera.height) * 127.5

        exposure = self._exposure.get(camera.id, self.config.exposure_time)
        image *= min(exposure / DEFAULT_EXPOSURE_TIME, _MAX_EXPOSURE_GAIN)

        bar_x = (sequence % _BAR_PERIOD_FRAMES) * camera.width / _BAR_PERIOD_FRAMES
        bar = np.abs(xs - bar_x) < camera.width / 100
        image[:, bar] += 64

        if self.config.noise_level > 0:
            image += self._rng.integers(
                0, self.config.noise_level + 1, size=image.shape
            )

        frame = np.clip(image, 0, 255).astype(np.uint8)

        if width >= _LABEL_MIN_WIDTH and height >= _LABEL_MIN_HEIGHT:
            cv2.putText(
                frame,
                f"#{sequence}",
                (4, 14),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.4,
                255,
                1,
            )

        if camera.channel > 1:
            frame = np.repeat(frame[:, :, None], camera.channel, axis=2)
        return frame

    # --- Internals ---

    def _deliver(self, subscription: Subscription, feed: _Feed) -> None:
        """Render the next frame and hand it to the feed callback."""
        frame = self.render_frame(subscription, feed.sequence)
        feed.sequence += 1
        try:
            feed.callback(frame)
        except Exception as e:
            # A failing handler must not end the stream for this feed.
            logger.error(
                "Frame callback failed",
                subscription=subscription.name,
                sequence=feed.sequence,
                error=str(e),
            )

    async def _stream(self, subscription: Subscription, feed: _Feed) -> None:
        """Deliver frames at ``frame_rate`` until cancelled by stop_feed().

        A frame that fails to render is logged and ends the stream.
        """
        from camera_hub.devices.subscription import SubscriptionError

        interval = 1.0 / self.config.frame_rate
        while True:
            await asyncio.sleep(interval)
            try:
                camera = subscription.camera
            except SubscriptionError:
                logger.warning("Feed camera released", subscription=subscription.name)
                self._feeds.pop(subscription, None)
                return
            if not (
                camera.is_acquiring
                and camera.acquisition_mode is AcquisitionMode.INTERNAL_TRIGGER
            ):
                continue
            try:
                self._deliver(subscription, feed)
            except Exception as e:
                logger.error(
                    "Feed stream stopped",
                    subscription=subscription.name,
                    sequence=feed.sequence,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return


def create_twin_provider(**kwargs: Any) -> DigitalTwinProvider:
    """Build a twin provider from :class:`DigitalTwinConfig` keyword fields.

    Example:
        >>> provider = create_twin_provider(frame_rate=0, seed=1)
    """
    return DigitalTwinProvider(DigitalTwinConfig(**kwargs))
