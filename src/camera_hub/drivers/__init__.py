"""Device backends for camera-hub.

Cameras reach hardware only through a capability provider held in a
ProviderBinding. Two default modes are available:
- DIGITAL_TWIN: simulated backend with synthetic frames (default)
- NULL: nothing bound, every operation is a silent no-op

Use drivers.config to switch the default binding:
    from camera_hub.drivers import config
    config.use_digital_twin(frame_rate=0)
"""

from camera_hub.drivers import config, providers
from camera_hub.drivers.config import (
    HubConfig,
    ProviderFactory,
    ProviderMode,
    bind_provider,
    configure,
    get_binding,
    get_config,
    update_binding,
    use_digital_twin,
    use_null_provider,
)

__all__ = [
    # Submodules
    "config",
    "providers",
    # Configuration
    "HubConfig",
    "ProviderFactory",
    "ProviderMode",
    "bind_provider",
    "configure",
    "get_binding",
    "get_config",
    "update_binding",
    "use_digital_twin",
    "use_null_provider",
]
