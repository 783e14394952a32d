"""Logical device layer - cameras and their frame subscriptions."""

from camera_hub.devices.camera import (
    DEFAULT_CHANNEL,
    DEFAULT_HEIGHT,
    DEFAULT_WIDTH,
    Camera,
    CameraConfig,
)
from camera_hub.devices.subscription import (
    DEFAULT_VIEWPORT,
    FrameHandler,
    Subscription,
    SubscriptionError,
    Viewport,
)
from camera_hub.drivers.providers import AcquisitionMode

__all__ = [
    # Camera
    "Camera",
    "CameraConfig",
    "AcquisitionMode",
    "DEFAULT_WIDTH",
    "DEFAULT_HEIGHT",
    "DEFAULT_CHANNEL",
    # Subscription
    "Subscription",
    "SubscriptionError",
    "FrameHandler",
    "Viewport",
    "DEFAULT_VIEWPORT",
]
