"""Capability providers.

Protocols and records:
    CapabilityProvider: Contract a device backend implements (all optional).
    ProviderBinding: Rebindable record of provider operations.
    AcquisitionResult: Succeeded(is_acquiring) | Failed(reason).

Implementations:
    DigitalTwinProvider: Simulated backend with synthetic frames.
"""

from camera_hub.drivers.providers.twin import (
    DEFAULT_EXPOSURE_TIME,
    DEFAULT_FRAME_RATE,
    DigitalTwinConfig,
    DigitalTwinProvider,
    create_twin_provider,
)
from camera_hub.drivers.providers.types import (
    OPERATIONS,
    AcquisitionMode,
    AcquisitionResult,
    CapabilityProvider,
    Failed,
    FrameCallback,
    ProviderBinding,
    ProviderError,
    ProviderRejection,
    Succeeded,
)

__all__ = [
    # Contract
    "OPERATIONS",
    "AcquisitionMode",
    "AcquisitionResult",
    "CapabilityProvider",
    "Failed",
    "FrameCallback",
    "ProviderBinding",
    "Succeeded",
    # Errors
    "ProviderError",
    "ProviderRejection",
    # Digital twin
    "DEFAULT_EXPOSURE_TIME",
    "DEFAULT_FRAME_RATE",
    "DigitalTwinConfig",
    "DigitalTwinProvider",
    "create_twin_provider",
]
