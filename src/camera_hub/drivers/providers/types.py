"""Capability provider contract and the binding that holds it.

A capability provider performs the actual device I/O: starting and stopping
acquisition, exposure and distortion control, and per-subscription frame
feeds. Cameras never call a provider directly. They go through a
:class:`ProviderBinding`, an indirection record with one slot per
operation that the caller may rebind at any time.

Every provider operation is optional. An unbound operation is a silent
no-op that returns None.

Example:
    class MyDriver:
        async def start_acquisition(self, camera):
            return await sdk.start(camera.serial)

        async def stop_acquisition(self, camera):
            return await sdk.stop(camera.serial)

    binding = ProviderBinding(MyDriver())
    binding.update(get_exposure_time=my_exposure_reader)  # partial rebind
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias, runtime_checkable

from camera_hub.observability import get_logger

if TYPE_CHECKING:
    from camera_hub.devices.camera import Camera
    from camera_hub.devices.subscription import Subscription

logger = get_logger(__name__)

__all__ = [
    "OPERATIONS",
    "AcquisitionMode",
    "AcquisitionResult",
    "CapabilityProvider",
    "Failed",
    "FrameCallback",
    "ProviderBinding",
    "ProviderError",
    "ProviderRejection",
    "Succeeded",
]

#: Provider operation names, in the order they appear in the contract.
OPERATIONS: tuple[str, ...] = (
    "start_acquisition",
    "stop_acquisition",
    "set_exposure_time",
    "get_exposure_time",
    "apply_distortion",
    "start_feed",
    "stop_feed",
    "update_feed",
    "grab_image",
)


class AcquisitionMode(Enum):
    """Trigger mode a provider observes when acquisition starts."""

    INTERNAL_TRIGGER = "internal_trigger"
    EXTERNAL_TRIGGER = "external_trigger"
    SINGLE_SHOT = "single_shot"

    @property
    def label(self) -> str:
        """Human-readable name for UIs and logs."""
        return _MODE_LABELS[self]


_MODE_LABELS = {
    AcquisitionMode.INTERNAL_TRIGGER: "Internal trigger",
    AcquisitionMode.EXTERNAL_TRIGGER: "External trigger",
    AcquisitionMode.SINGLE_SHOT: "Single shot",
}

#: Callback a provider invokes once per delivered frame.
FrameCallback: TypeAlias = Callable[[Any], None]


# --- Exceptions ---


class ProviderError(Exception):
    """Base exception for capability provider failures."""

    pass


class ProviderRejection(ProviderError):
    """A provider refused or failed an operation.

    Providers may attach the acquisition state the device reported at the
    time of failure. For start/stop acquisition the camera adopts that
    state instead of guessing.

    Attributes:
        is_acquiring: Device-reported acquisition state, or None if unknown.
    """

    def __init__(self, message: str = "", *, is_acquiring: bool | None = None):
        super().__init__(message)
        self.is_acquiring = is_acquiring


# --- Acquisition results ---


@dataclass(frozen=True, slots=True)
class Succeeded:
    """Provider start/stop call returned a state."""

    is_acquiring: bool


@dataclass(frozen=True, slots=True)
class Failed:
    """Provider start/stop call raised."""

    reason: BaseException

    @property
    def reported_state(self) -> bool | None:
        """Acquisition state carried by the failure, if any."""
        if isinstance(self.reason, ProviderRejection):
            return self.reason.is_acquiring
        return None


AcquisitionResult: TypeAlias = Succeeded | Failed


# --- Provider protocol ---


@runtime_checkable
class CapabilityProvider(Protocol):  # pragma: no cover
    """Device backend consumed by Camera and Subscription.

    Methods may be coroutines or plain callables. Implementations are free
    to leave any of them out; :class:`ProviderBinding` treats a missing
    method as a no-op.
    """

    async def start_acquisition(self, camera: Camera) -> bool:
        """Start producing frames; return whether the device is acquiring.

        The camera's ``acquisition_mode`` at call time selects the trigger
        mode. Raise :class:`ProviderRejection` on failure.
        """
        ...

    async def stop_acquisition(self, camera: Camera) -> bool:
        """Stop producing frames; return whether the device is still acquiring."""
        ...

    async def set_exposure_time(self, camera: Camera, value: float) -> None:
        """Set camera-wide exposure time."""
        ...

    async def get_exposure_time(self, camera: Camera) -> float:
        """Read camera-wide exposure time."""
        ...

    async def apply_distortion(
        self, camera: Camera, params: list[float] | None
    ) -> None:
        """Apply distortion coefficients, or clear correction when None."""
        ...

    async def start_feed(
        self, subscription: Subscription, callback: FrameCallback
    ) -> None:
        """Begin delivering frames for ``subscription`` through ``callback``."""
        ...

    async def stop_feed(self, subscription: Subscription) -> None:
        """Stop delivering frames for ``subscription``."""
        ...

    async def update_feed(self, subscription: Subscription) -> None:
        """Apply the subscription's new viewport without interrupting it."""
        ...

    async def grab_image(
        self, subscription: Subscription, path: str | Path | None = None
    ) -> Any:
        """Capture one image for the subscription's viewport."""
        ...


# --- Binding ---


class ProviderBinding:
    """Rebindable record of provider operations.

    Holds one slot per name in :data:`OPERATIONS`. Assignments are partial
    and the last one wins, so a binding can mix operations from several
    providers. Cameras created with a binding see every later rebind.

    Example:
        binding = ProviderBinding()
        await binding.call("get_exposure_time", camera)  # None, unbound
        binding.bind(DigitalTwinProvider())
        await binding.call("get_exposure_time", camera)  # 1000.0
    """

    __slots__ = ("_operations",)

    def __init__(
        self,
        provider: object | None = None,
        **operations: Callable[..., Any] | None,
    ) -> None:
        self._operations: dict[str, Callable[..., Any] | None] = dict.fromkeys(
            OPERATIONS
        )
        if provider is not None:
            self.bind(provider)
        if operations:
            self.update(**operations)

    def bind(self, provider: object) -> None:
        """Copy every contract method ``provider`` defines into the binding.

        Slots the provider does not define keep their current operation.
        """
        bound = []
        for name in OPERATIONS:
            operation = getattr(provider, name, None)
            if callable(operation):
                self._operations[name] = operation
                bound.append(name)
        logger.debug(
            "Provider bound",
            provider=type(provider).__name__,
            operations=bound,
        )

    def update(self, **operations: Callable[..., Any] | None) -> None:
        """Assign individual slots. None unbinds a slot.

        Raises:
            TypeError: Unknown operation name or non-callable value.
        """
        for name, operation in operations.items():
            if name not in self._operations:
                raise TypeError(f"Unknown provider operation: {name!r}")
            if operation is not None and not callable(operation):
                raise TypeError(f"Provider operation {name!r} must be callable")
        self._operations.update(operations)

    def clear(self) -> None:
        """Unbind every operation."""
        self._operations = dict.fromkeys(OPERATIONS)

    def is_bound(self, operation: str) -> bool:
        """Whether ``operation`` currently has an implementation."""
        return self._operations[operation] is not None

    @property
    def bound_operations(self) -> tuple[str, ...]:
        """Names of the operations that are currently bound."""
        return tuple(name for name, op in self._operations.items() if op)

    async def call(self, operation: str, *args: Any) -> Any:
        """Invoke ``operation`` with ``args``, awaiting it if needed.

        Returns None without error when the slot is unbound. Exceptions
        raised by the provider propagate unchanged.

        Raises:
            KeyError: ``operation`` is not part of the contract.
        """
        implementation = self._operations[operation]
        if implementation is None:
            logger.debug("Provider operation not bound", operation=operation)
            return None
        result = implementation(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"ProviderBinding(bound={list(self.bound_operations)})"

