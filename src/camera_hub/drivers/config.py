"""Provider configuration and the process-wide default binding.

Cameras take an explicit :class:`ProviderBinding`. Those created without
one share the default binding returned by :func:`get_binding`, which this
module owns. Reconfiguring rebinds that record in place, so cameras that
already exist pick up the new provider on their next call.

Example:
    from camera_hub.drivers import config

    config.use_digital_twin(frame_rate=0)     # deterministic, no streaming
    config.update_binding(get_exposure_time=read_from_sdk)  # override one op
    config.use_null_provider()                # every operation a no-op
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from camera_hub.drivers.providers import (
    DEFAULT_EXPOSURE_TIME,
    DEFAULT_FRAME_RATE,
    DigitalTwinConfig,
    DigitalTwinProvider,
    ProviderBinding,
)
from camera_hub.drivers.providers.twin import DEFAULT_NOISE_LEVEL
from camera_hub.observability import get_logger

logger = get_logger(__name__)


class ProviderMode(Enum):
    """Which provider the default binding is built from."""

    DIGITAL_TWIN = "digital_twin"  # Simulated backend
    NULL = "null"  # Nothing bound; all operations are no-ops


@dataclass
class HubConfig:
    """Settings for the default provider binding.

    Attributes:
        mode: DIGITAL_TWIN for the simulator, NULL for an empty binding.
        frame_rate: Twin frames per second per feed (0 disables streaming).
        noise_level: Twin per-pixel noise amplitude.
        exposure_time: Twin initial exposure.
        seed: Twin noise seed.
    """

    mode: ProviderMode = ProviderMode.DIGITAL_TWIN
    frame_rate: float = DEFAULT_FRAME_RATE
    noise_level: int = DEFAULT_NOISE_LEVEL
    exposure_time: float = DEFAULT_EXPOSURE_TIME
    seed: int | None = None


class ProviderFactory:
    """Creates the provider object a :class:`HubConfig` describes."""

    def __init__(self, config: HubConfig | None = None):
        self.config = config or HubConfig()

    def create_provider(self) -> DigitalTwinProvider | None:
        """Return the configured provider, or None in NULL mode."""
        if self.config.mode == ProviderMode.NULL:
            return None
        return DigitalTwinProvider(
            DigitalTwinConfig(
                frame_rate=self.config.frame_rate,
                noise_level=self.config.noise_level,
                exposure_time=self.config.exposure_time,
                seed=self.config.seed,
            )
        )


# =============================================================================
# Global Singletons
# =============================================================================
# Not thread-safe. Configure from the event loop thread, or before starting
# worker threads that create cameras.

_factory: ProviderFactory | None = None
_binding: ProviderBinding | None = None


def get_factory() -> ProviderFactory:
    """Return the global factory, creating a digital-twin one on first use."""
    global _factory
    if _factory is None:
        _factory = ProviderFactory()
    return _factory


def get_config() -> HubConfig:
    """Return the active :class:`HubConfig`."""
    return get_factory().config


def get_binding() -> ProviderBinding:
    """Return the process-wide default binding.

    Built from the factory on first access. The same object is returned
    for the life of the process; :func:`configure` rebinds it in place.
    """
    global _binding
    if _binding is None:
        _binding = ProviderBinding()
        provider = get_factory().create_provider()
        if provider is not None:
            _binding.bind(provider)
    return _binding


def configure(config: HubConfig) -> None:
    """Replace the global configuration and rebind the default binding.

    Every operation is cleared first, so overrides made with
    :func:`update_binding` do not survive a reconfigure.
    """
    global _factory
    _factory = ProviderFactory(config)

    binding = get_binding()
    binding.clear()
    provider = _factory.create_provider()
    if provider is not None:
        binding.bind(provider)
    logger.info(
        "Default provider configured",
        mode=config.mode.value,
        bound=list(binding.bound_operations),
    )


def bind_provider(provider: object) -> None:
    """Bind every contract method ``provider`` defines; others are kept."""
    get_binding().bind(provider)


def update_binding(**operations: Any) -> None:
    """Assign individual operations on the default binding."""
    get_binding().update(**operations)


def use_digital_twin(**overrides: Any) -> None:
    """Switch the default binding to a fresh digital twin.

    Args:
        **overrides: HubConfig fields to change, e.g. ``frame_rate=0``.
    """
    configure(replace(get_config(), mode=ProviderMode.DIGITAL_TWIN, **overrides))


def use_null_provider() -> None:
    """Unbind every operation on the default binding."""
    configure(replace(get_config(), mode=ProviderMode.NULL))
