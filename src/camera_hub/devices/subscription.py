"""Frame subscriptions on a logical camera.

A Subscription is one consumer's demand for frames from one camera: a
viewport (crop origin, size and scale on the sensor) plus a handler that
receives every frame the provider delivers for it. Subscriptions are
created by :meth:`Camera.create_subscription` and keep only a weak
reference back to their camera.

Example:
    def show(frame, sub):
        print(sub.name, frame.shape)

    sub = camera.create_subscription(show)
    await sub.update_viewport([640, 360, 2, 100, 50])
    await sub.start_acquisition_feed()
    ...
    await sub.stop_acquisition_feed()
"""

from __future__ import annotations

import time
import weakref
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple

from camera_hub.observability import LogContext, get_logger

if TYPE_CHECKING:
    from camera_hub.devices.camera import Camera
    from camera_hub.drivers.providers import FrameCallback

logger = get_logger(__name__)

__all__ = [
    "DEFAULT_VIEWPORT",
    "FrameHandler",
    "Subscription",
    "SubscriptionError",
    "Viewport",
]

#: Application callback, invoked as ``handler(frame, subscription)``.
FrameHandler = Callable[[Any, "Subscription"], None]


class Viewport(NamedTuple):
    """Region of the sensor delivered to a subscriber."""

    width: float
    height: float
    scale: float
    dx: float
    dy: float


DEFAULT_VIEWPORT = Viewport(width=192, height=108, scale=1, dx=0, dy=0)


class SubscriptionError(Exception):
    """Raised when a subscription's camera no longer exists."""

    pass


class Subscription:
    """One consumer's frame feed from a camera.

    Attributes:
        name: Time-based token assigned at construction. Best-effort unique.
        handler: Callable receiving ``(frame, subscription)`` per frame.
        width, height, scale, dx, dy: Viewport geometry.
    """

    def __init__(self, camera: Camera, handler: FrameHandler) -> None:
        """Bind a new, unsubscribed subscription to ``camera``.

        Use :meth:`Camera.create_subscription` instead of calling this
        directly; the camera registers the subscription in its set.
        """
        self._camera_ref: weakref.ReferenceType[Camera] = weakref.ref(camera)
        self.name: str = str(time.time_ns())
        self.handler = handler
        self.width, self.height, self.scale, self.dx, self.dy = DEFAULT_VIEWPORT
        self._is_subscribed = False
        self._forward = self._make_forwarder()

    def _make_forwarder(self) -> FrameCallback:
        """Build the callback handed to the provider on feed start."""

        def forward(frame: Any) -> None:
            camera = self._camera_ref()
            if camera is not None and camera.stats is not None:
                camera.stats.record_frame(camera.id)
            self.handler(frame, self)

        return forward

    # --- State ---

    @property
    def camera(self) -> Camera:
        """The owning camera.

        Raises:
            SubscriptionError: The camera has been garbage collected.
        """
        camera = self._camera_ref()
        if camera is None:
            raise SubscriptionError(
                f"Camera of subscription {self.name} no longer exists"
            )
        return camera

    def belongs_to(self, camera: Camera) -> bool:
        """Whether ``camera`` is this subscription's owner."""
        return self._camera_ref() is camera

    @property
    def is_subscribed(self) -> bool:
        """Whether the provider feed for this subscription is active."""
        return self._is_subscribed

    @property
    def viewport(self) -> Viewport:
        """Current ``(width, height, scale, dx, dy)``."""
        return Viewport(self.width, self.height, self.scale, self.dx, self.dy)

    @property
    def frame_callback(self) -> FrameCallback:
        """Callback the provider invokes with each delivered frame."""
        return self._forward

    # --- Feed control ---

    async def start_acquisition_feed(self, silent: bool = False) -> None:
        """Register with the camera, then start the provider feed.

        No-op when already subscribed. Camera registration (which starts
        acquisition unless ``silent``) completes before the provider is
        asked to deliver frames.

        Args:
            silent: Join the camera without starting acquisition.

        Raises:
            SubscriptionError: The camera no longer exists.
            Exception: Any provider failure from start_feed, unchanged.
        """
        if self._is_subscribed:
            return

        camera = self.camera
        with LogContext(camera=camera.description, subscription=self.name):
            await camera.add_subscription(self, silent)
            await camera.call_provider("start_feed", self, self._forward)
            self._is_subscribed = True
            logger.info("Feed started", silent=silent)

    async def update_viewport(self, params: Sequence[float]) -> None:
        """Replace the viewport with ``[width, height, scale, dx, dy]``.

        All five values are required and overwrite the current geometry.
        When subscribed, the provider updates the running feed in place;
        otherwise the change is local.

        Raises:
            ValueError: ``params`` does not hold exactly five values.
        """
        values = tuple(params)
        if len(values) != len(Viewport._fields):
            raise ValueError(
                "Viewport needs [width, height, scale, dx, dy], "
                f"got {len(values)} values"
            )
        self.width, self.height, self.scale, self.dx, self.dy = values

        if not self._is_subscribed:
            return
        camera = self.camera
        logger.debug(
            "Viewport updated",
            camera=camera.description,
            subscription=self.name,
            viewport=list(values),
        )
        await camera.call_provider("update_feed", self)

    async def stop_acquisition_feed(self, silent: bool = False) -> None:
        """Stop the provider feed, then leave the camera.

        Mirror image of :meth:`start_acquisition_feed`: the provider stops
        delivering before the camera deregisters the subscription (and
        stops acquisition unless ``silent``). No-op when not subscribed.
        """
        if not self._is_subscribed:
            return

        camera = self.camera
        with LogContext(camera=camera.description, subscription=self.name):
            await camera.call_provider("stop_feed", self)
            self._is_subscribed = False
            await camera.remove_subscription(self, silent)
            logger.info("Feed stopped", silent=silent)

    async def grab_image(self, path: str | Path | None = None) -> Any:
        """Ask the provider for a single capture of this viewport.

        Returns:
            Whatever the provider produces (frame, file path, ...), or
            None when grab_image is not bound.
        """
        return await self.camera.call_provider("grab_image", self, path)

    def __repr__(self) -> str:
        state = "subscribed" if self._is_subscribed else "idle"
        return f"Subscription(name={self.name!r}, viewport={tuple(self.viewport)}, {state})"
