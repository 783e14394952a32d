"""camera-hub: camera acquisition and subscription coordination.

Cameras share one acquisition state across many frame subscriptions;
device work is delegated to a pluggable asynchronous capability provider.

Packages:
    devices: Camera and Subscription
    drivers: Capability provider contract, digital twin, default binding
    observability: Structured logging and acquisition statistics
"""

__version__ = "0.1.0"
