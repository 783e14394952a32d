"""Logical camera with an injected capability provider.

This module provides a hardware-agnostic Camera that coordinates shared
acquisition state across its frame subscriptions. All device work goes
through a :class:`ProviderBinding`; the camera itself only keeps state
consistent:

- Start/stop acquisition are idempotent against the current flag.
- Provider start/stop outcomes are tagged as ``Succeeded``/``Failed`` and
  the camera decides the resulting flag explicitly.
- Exposure, distortion and capture calls pass straight through and
  propagate provider errors unchanged.

Example:
    from camera_hub.devices import Camera, CameraConfig

    async with Camera(CameraConfig(camera_id=0, model="MV-CA050", serial="SN01")) as cam:
        sub = cam.create_subscription(lambda frame, s: print(frame.shape))
        await sub.start_acquisition_feed()   # starts acquisition, then the feed
        await cam.switch_acquisition_mode(AcquisitionMode.EXTERNAL_TRIGGER)
    # close() stopped every feed and acquisition
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Generator, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any

from camera_hub.devices.subscription import FrameHandler, Subscription
from camera_hub.drivers.providers import (
    AcquisitionMode,
    AcquisitionResult,
    Failed,
    ProviderBinding,
    Succeeded,
)
from camera_hub.observability import get_logger

if TYPE_CHECKING:
    from camera_hub.observability import AcquisitionStats

logger = get_logger(__name__)

__all__ = [
    "DEFAULT_CHANNEL",
    "DEFAULT_HEIGHT",
    "DEFAULT_WIDTH",
    "Camera",
    "CameraConfig",
]

# --- Constants ---

DEFAULT_WIDTH: int = 5120
"""Frame width used when the configuration gives 0."""

DEFAULT_HEIGHT: int = 5120
"""Frame height used when the configuration gives 0."""

DEFAULT_CHANNEL: int = 1
"""Channel count used when the configuration gives 0."""

_START = "start_acquisition"
_STOP = "stop_acquisition"


# --- Configuration ---


@dataclass(slots=True)
class CameraConfig:
    """Identity and geometry of a camera.

    Attributes:
        camera_id: Unique device id.
        model: Device model (not unique).
        serial: Unique serial number.
        name: Optional friendly name.
        width: Frame width in pixels (0 selects the default).
        height: Frame height in pixels (0 selects the default).
        channel: Channels per pixel (0 selects the default).
    """

    camera_id: int
    model: str = ""
    serial: str = ""
    name: str = ""
    width: int = 0
    height: int = 0
    channel: int = 0


# --- Camera Class ---


class Camera:
    """Logical camera owning its subscriptions and acquisition state.

    Injectable Dependencies:
        - provider: ProviderBinding (default: process-wide binding from
          ``camera_hub.drivers.config``)
        - stats: AcquisitionStats collector (optional)

    Acquisition start and stop are scheduled as tasks, so calls that reach
    the provider need a running asyncio event loop. Silent and ignored
    membership changes return an already-resolved awaitable and work
    without one.

    Attributes:
        id, model, serial: Immutable identity.
        name: Friendly name, may be empty.
        width, height, channel: Frame geometry.
        is_acquiring: Whether the device is producing frames.
        acquisition_mode: Trigger mode used at the next acquisition start.
    """

    def __init__(
        self,
        config: CameraConfig,
        provider: ProviderBinding | None = None,
        stats: AcquisitionStats | None = None,
    ) -> None:
        """Create an idle camera. No provider call is made.

        Args:
            config: Identity and geometry; falsy width/height/channel
                become 5120/5120/1.
            provider: Binding to call for device work. None selects the
                process-wide default binding.
            stats: Collector for provider-call and frame statistics.
        """
        if provider is None:
            from camera_hub.drivers.config import get_binding

            provider = get_binding()

        self._config = config
        self._provider = provider
        self._stats = stats

        self._name = config.name or ""
        self._width = config.width or DEFAULT_WIDTH
        self._height = config.height or DEFAULT_HEIGHT
        self._channel = config.channel or DEFAULT_CHANNEL

        self._subscriptions: list[Subscription] = []
        self._is_acquiring = False
        self._acquisition_mode = AcquisitionMode.INTERNAL_TRIGGER
        # Strong references keep fire-and-forget tasks alive until done.
        self._pending: set[asyncio.Task[None]] = set()

    # --- Identity ---

    @property
    def config(self) -> CameraConfig:
        """Configuration passed at construction."""
        return self._config

    @property
    def id(self) -> int:
        """Unique device id."""
        return self._config.camera_id

    @property
    def model(self) -> str:
        """Device model, shared by identical devices."""
        return self._config.model

    @property
    def serial(self) -> str:
        """Unique serial number."""
        return self._config.serial

    @property
    def name(self) -> str:
        """Friendly name, empty when unset."""
        return self._name

    @property
    def description(self) -> str:
        """Human-readable ``name(serial)`` used in logs."""
        return f"{self._name}({self.serial})"

    def set_name(self, name: str) -> None:
        """Set the friendly name."""
        self._name = name

    def clear_name(self) -> None:
        """Clear the friendly name."""
        self._name = ""

    # --- Geometry and state ---

    @property
    def width(self) -> int:
        """Frame width in pixels."""
        return self._width

    @property
    def height(self) -> int:
        """Frame height in pixels."""
        return self._height

    @property
    def channel(self) -> int:
        """Channels per pixel."""
        return self._channel

    @property
    def is_acquiring(self) -> bool:
        """Whether the device is producing frames.

        Updated when a provider start/stop call settles, which may be after
        :meth:`start_acquisition` returns. Await the returned task to read
        a settled value.
        """
        return self._is_acquiring

    @property
    def acquisition_mode(self) -> AcquisitionMode:
        """Trigger mode the provider sees at the next acquisition start."""
        return self._acquisition_mode

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        """Snapshot of member subscriptions, in insertion order."""
        return tuple(self._subscriptions)

    @property
    def provider(self) -> ProviderBinding:
        """Binding used for every provider call."""
        return self._provider

    @property
    def stats(self) -> AcquisitionStats | None:
        """Collector for call and frame statistics, if any."""
        return self._stats

    # --- Subscriptions ---

    def create_subscription(self, handler: FrameHandler) -> Subscription:
        """Create a subscription on this camera and add it to the set.

        Acquisition state is untouched; call
        :meth:`Subscription.start_acquisition_feed` to receive frames.
        """
        subscription = Subscription(self, handler)
        self._subscriptions.append(subscription)
        logger.debug(
            "Subscription created",
            camera=self.description,
            subscription=subscription.name,
        )
        return subscription

    def add_subscription(
        self, subscription: Subscription, silent: bool = False
    ) -> Awaitable[None]:
        """Add ``subscription`` to the set if absent, then start acquisition.

        Args:
            subscription: A subscription created by this camera.
            silent: Only update membership; do not start acquisition.

        Returns:
            The pending :meth:`start_acquisition` operation, or an
            already-resolved awaitable when ``silent`` or when the subscription belongs to a
            different camera (ignored).
        """
        if not subscription.belongs_to(self):
            logger.warning(
                "Ignoring subscription of another camera",
                camera=self.description,
                subscription=subscription.name,
            )
            return _completed()

        if subscription not in self._subscriptions:
            self._subscriptions.append(subscription)
        if silent:
            return _completed()
        return self.start_acquisition()

    def remove_subscription(
        self, subscription: Subscription, silent: bool = False
    ) -> Awaitable[None]:
        """Remove ``subscription`` from the set if present, then stop acquisition.

        A member that is still subscribed has its feed stopped first, which
        re-enters this method once it is no longer subscribed.

        Args:
            subscription: A subscription created by this camera.
            silent: Only update membership; do not stop acquisition.

        Returns:
            The pending stop operation, or an already-resolved awaitable when
            ``silent`` or the subscription belongs to another camera.
        """
        if not subscription.belongs_to(self):
            logger.warning(
                "Ignoring subscription of another camera",
                camera=self.description,
                subscription=subscription.name,
            )
            return _completed()

        if subscription.is_subscribed and subscription in self._subscriptions:
            return self._track(
                subscription.stop_acquisition_feed(silent),
                name=f"stop-feed-{subscription.name}",
            )

        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        if silent:
            return _completed()
        return self.stop_acquisition()

    # --- Acquisition ---

    def start_acquisition(self) -> Awaitable[None]:
        """Ask the provider to start acquisition, without waiting for it.

        No provider call is made when already acquiring or when the start
        operation is not bound.

        Returns:
            Task that settles once ``is_acquiring`` has been updated, or a
            resolved awaitable for the no-op cases.
        """
        if self._is_acquiring:
            logger.debug("Acquisition already running", camera=self.description)
            return _completed()
        return self._schedule(_START)

    def stop_acquisition(self) -> Awaitable[None]:
        """Ask the provider to stop acquisition, without waiting for it.

        Symmetric to :meth:`start_acquisition`; no-op when not acquiring.
        """
        if not self._is_acquiring:
            logger.debug("Acquisition already stopped", camera=self.description)
            return _completed()
        return self._schedule(_STOP)

    async def switch_acquisition_mode(self, mode: AcquisitionMode | str) -> None:
        """Change the trigger mode, restarting acquisition around the change.

        The provider sees the new mode only on the next start call: when
        acquiring, acquisition is stopped (and awaited), the mode changed,
        then acquisition restarted.

        Args:
            mode: AcquisitionMode or its string value.

        Raises:
            ValueError: Unknown mode string.
        """
        mode = AcquisitionMode(mode)
        if mode is self._acquisition_mode:
            return

        was_acquiring = self._is_acquiring
        if was_acquiring:
            await self.stop_acquisition()
        previous, self._acquisition_mode = self._acquisition_mode, mode
        logger.info(
            "Acquisition mode changed",
            camera=self.description,
            previous=previous.value,
            mode=mode.value,
        )
        if was_acquiring:
            await self.start_acquisition()

    def _schedule(self, operation: str) -> Awaitable[None]:
        if not self._provider.is_bound(operation):
            logger.debug(
                "Acquisition operation not bound",
                camera=self.description,
                operation=operation,
            )
            return _completed()
        return self._track(
            self._run_acquisition(operation),
            name=f"{operation}-{self.id}",
        )

    async def _run_acquisition(self, operation: str) -> None:
        result = await self._call_acquisition(operation)
        self._apply_acquisition_result(operation, result)

    async def _call_acquisition(self, operation: str) -> AcquisitionResult:
        started = time.perf_counter()
        try:
            value = await self._provider.call(operation, self)
        except Exception as e:
            self._record_call(operation, started, e)
            return Failed(e)
        self._record_call(operation, started)
        return Succeeded(bool(value))

    def _apply_acquisition_result(
        self, operation: str, result: AcquisitionResult
    ) -> None:
        """Decide ``is_acquiring`` from a tagged provider outcome.

        Success adopts the reported state. Failure adopts the state carried
        by a ProviderRejection when present; otherwise a failed start means
        not acquiring and a failed stop means still acquiring.
        """
        if isinstance(result, Succeeded):
            new_state = result.is_acquiring
        else:
            reported = result.reported_state
            new_state = reported if reported is not None else operation == _STOP
            logger.warning(
                "Acquisition call rejected",
                camera=self.description,
                operation=operation,
                error=str(result.reason),
                error_type=type(result.reason).__name__,
                is_acquiring=new_state,
            )

        self._is_acquiring = new_state
        logger.info(
            "Acquisition state updated",
            camera=self.description,
            operation=operation,
            is_acquiring=new_state,
            mode=self._acquisition_mode.value,
        )

    # --- Provider passthrough ---

    async def set_exposure_time(self, value: float) -> None:
        """Set camera-wide exposure time via the provider."""
        await self.call_provider("set_exposure_time", self, value)

    async def get_exposure_time(self) -> float | None:
        """Read camera-wide exposure time (None if the operation is unbound)."""
        return await self.call_provider("get_exposure_time", self)

    async def apply_distortion_correction(
        self, params: Sequence[float] | None
    ) -> None:
        """Apply distortion coefficients, or clear correction with None."""
        coefficients = None if params is None else list(params)
        await self.call_provider("apply_distortion", self, coefficients)

    async def grab_image(
        self,
        path: str | Path | None = None,
        subscription: Subscription | None = None,
    ) -> Any:
        """Capture one image through a subscription's viewport.

        Args:
            path: Optional destination handed to the provider.
            subscription: Subscription to capture through. Defaults to the
                first member that is currently subscribed.

        Returns:
            The provider's artifact, or None without any provider call when
            no subscription is eligible.
        """
        if subscription is None:
            subscription = next(
                (s for s in self._subscriptions if s.is_subscribed), None
            )
        elif not subscription.belongs_to(self):
            logger.warning(
                "Ignoring subscription of another camera",
                camera=self.description,
                subscription=subscription.name,
            )
            return None

        if subscription is None:
            logger.debug("No active subscription to grab from", camera=self.description)
            return None
        return await subscription.grab_image(path)

    async def call_provider(self, operation: str, *args: Any) -> Any:
        """Invoke a provider operation on behalf of this camera.

        Used for every passthrough call, including the feed operations
        issued by subscriptions. Records timing in ``stats`` and logs
        failures before re-raising them unchanged.
        """
        started = time.perf_counter()
        try:
            result = await self._provider.call(operation, *args)
        except Exception as e:
            self._record_call(operation, started, e)
            logger.error(
                "Provider call failed",
                camera=self.description,
                operation=operation,
                error=str(e),
            )
            raise
        self._record_call(operation, started)
        return result

    def _record_call(
        self, operation: str, started: float, error: Exception | None = None
    ) -> None:
        if self._stats is None or not self._provider.is_bound(operation):
            return
        self._stats.record_call(
            self.id,
            operation,
            duration_ms=(time.perf_counter() - started) * 1000,
            success=error is None,
            error_type=type(error).__name__ if error is not None else None,
        )

    # --- Lifecycle ---

    async def close(self) -> None:
        """Stop every active feed, then acquisition, and wait for both.

        Start/stop operations still in flight settle first, so an unawaited
        :meth:`start_acquisition` cannot leave the device running. Feeds
        are stopped silently so acquisition is stopped once, at the end.
        Stopped subscriptions leave the camera but can be restarted.

        Acquisition is stopped even when a feed fails to stop.

        Raises:
            Exception: The first provider error raised while stopping feeds.
        """
        errors: list[Exception] = []
        try:
            await self._wait_pending()
            for subscription in list(self._subscriptions):
                if not subscription.is_subscribed:
                    continue
                try:
                    await subscription.stop_acquisition_feed(silent=True)
                except Exception as e:
                    errors.append(e)
        finally:
            await self._wait_pending()
            await self.stop_acquisition()
            await self._wait_pending()

        if errors:
            logger.error(
                "Camera closed with feed errors",
                camera=self.description,
                errors=[str(e) for e in errors],
                is_acquiring=self._is_acquiring,
            )
            raise errors[0]
        logger.info("Camera closed", camera=self.description)

    async def _wait_pending(self) -> None:
        """Wait until no tracked task is running, including ones they spawn."""
        while pending := [task for task in self._pending if not task.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    async def __aenter__(self) -> Camera:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _track(self, coro: Any, name: str) -> asyncio.Task[None]:
        task: asyncio.Task[None] = asyncio.get_running_loop().create_task(
            coro, name=name
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def __repr__(self) -> str:
        return (
            f"Camera(id={self.id}, desc={self.description!r}, "
            f"acquiring={self._is_acquiring}, mode={self._acquisition_mode.value}, "
            f"subscriptions={len(self._subscriptions)})"
        )


class _Completed:
    """Awaitable that resolves to None at once, with or without a loop."""

    __slots__ = ()

    def __await__(self) -> Generator[Any, None, None]:
        yield from ()

    def __repr__(self) -> str:
        return "<completed>"


_COMPLETED = _Completed()


def _completed() -> Awaitable[None]:
    """Already-resolved result for no-op operations."""
    return _COMPLETED
