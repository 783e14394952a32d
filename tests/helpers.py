"""Test helpers for camera-hub.

Provides a recording capability provider for call-order assertions and a
protocol compliance check.

Example:
    from tests.helpers import RecordingProvider

    provider = RecordingProvider()
    camera = Camera(CameraConfig(camera_id=0), provider=ProviderBinding(provider))
    ...
    assert provider.operations() == ["start_acquisition", "start_feed"]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class Call:
    """One recorded provider call."""

    operation: str
    args: tuple[Any, ...]
    mode: str | None = None


@dataclass
class RecordingProvider:
    """Capability provider that records every call.

    Attributes:
        start_result: Value returned by start_acquisition.
        stop_result: Value returned by stop_acquisition.
        start_error: Exception raised by start_acquisition instead.
        stop_error: Exception raised by stop_acquisition instead.
        exposure: Value returned by get_exposure_time.
        grab_result: Value returned by grab_image.
        error: Exception raised by every passthrough operation instead.
        calls: Recorded calls, in order.
        callbacks: Frame callbacks registered through start_feed.
    """

    start_result: Any = True
    stop_result: Any = False
    start_error: Exception | None = None
    stop_error: Exception | None = None
    exposure: float = 1000.0
    grab_result: Any = "artifact"
    error: Exception | None = None
    calls: list[Call] = field(default_factory=list)
    callbacks: dict[Any, Any] = field(default_factory=dict)

    def operations(self) -> list[str]:
        """Recorded operation names, in call order."""
        return [call.operation for call in self.calls]

    def count(self, operation: str) -> int:
        """How many times ``operation`` was called."""
        return self.operations().count(operation)

    def deliver(self, subscription: Any, frame: Any) -> None:
        """Push ``frame`` through the callback registered for ``subscription``."""
        self.callbacks[subscription](frame)

    def _record(self, operation: str, *args: Any) -> None:
        mode = None
        if args and hasattr(args[0], "acquisition_mode"):
            mode = args[0].acquisition_mode.value
        self.calls.append(Call(operation, args, mode))

    async def start_acquisition(self, camera: Any) -> Any:
        self._record("start_acquisition", camera)
        if self.start_error is not None:
            raise self.start_error
        return self.start_result

    async def stop_acquisition(self, camera: Any) -> Any:
        self._record("stop_acquisition", camera)
        if self.stop_error is not None:
            raise self.stop_error
        return self.stop_result

    async def set_exposure_time(self, camera: Any, value: float) -> None:
        self._record("set_exposure_time", camera, value)
        if self.error is not None:
            raise self.error
        self.exposure = value

    async def get_exposure_time(self, camera: Any) -> float:
        self._record("get_exposure_time", camera)
        if self.error is not None:
            raise self.error
        return self.exposure

    async def apply_distortion(self, camera: Any, params: Any) -> None:
        self._record("apply_distortion", camera, params)
        if self.error is not None:
            raise self.error

    async def start_feed(self, subscription: Any, callback: Any) -> None:
        self._record("start_feed", subscription, callback)
        if self.error is not None:
            raise self.error
        self.callbacks[subscription] = callback

    async def stop_feed(self, subscription: Any) -> None:
        self._record("stop_feed", subscription)
        if self.error is not None:
            raise self.error
        self.callbacks.pop(subscription, None)

    async def update_feed(self, subscription: Any) -> None:
        self._record("update_feed", subscription)
        if self.error is not None:
            raise self.error

    async def grab_image(self, subscription: Any, path: Any = None) -> Any:
        self._record("grab_image", subscription, path)
        if self.error is not None:
            raise self.error
        return self.grab_result


def assert_implements_protocol(instance: object, protocol: type[Protocol]) -> None:
    """Assert ``instance`` satisfies a ``@runtime_checkable`` Protocol.

    Raises:
        AssertionError: Listing the protocol members the instance lacks.
    """
    if isinstance(instance, protocol):
        return

    protocol_members = {
        attr
        for attr in set(dir(protocol)) - set(dir(object))
        if not attr.startswith("_")
    }
    missing = sorted(m for m in protocol_members if not hasattr(instance, m))
    raise AssertionError(
        f"{type(instance).__name__} does not implement {protocol.__name__}. "
        f"Missing: {', '.join(missing) or 'unknown'}"
    )
