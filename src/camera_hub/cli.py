"""CLI entry point for camera-hub.

Provides the ``camera-hub`` console script with one subcommand:

- ``demo``: run subscriptions against the digital twin and report stats

Usage::

    # Two subscriptions for three seconds at 10 fps
    camera-hub demo

    # Four subscriptions, external trigger, JSON logs
    camera-hub demo --subscriptions 4 --mode external_trigger --json-logs
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections import Counter
from typing import Any

from camera_hub.devices import AcquisitionMode, Camera, CameraConfig
from camera_hub.drivers.providers import (
    DigitalTwinConfig,
    DigitalTwinProvider,
    ProviderBinding,
)
from camera_hub.observability import AcquisitionStats, configure_logging, get_logger

logger = get_logger(__name__)

PROG_NAME = "camera-hub"
DEFAULT_SUBSCRIPTIONS = 2
DEFAULT_DURATION_S = 3.0


async def run_demo(
    subscriptions: int = DEFAULT_SUBSCRIPTIONS,
    duration: float = DEFAULT_DURATION_S,
    fps: float = 10.0,
    mode: AcquisitionMode = AcquisitionMode.INTERNAL_TRIGGER,
) -> dict[str, Any]:
    """Drive one twin camera with ``subscriptions`` feeds for ``duration`` s.

    In external-trigger mode the demo pulses the twin's trigger at ``fps``
    instead of relying on its internal stream.

    Returns:
        ``{"frames": {subscription_name: count}, "stats": summary_dict}``
    """
    provider = DigitalTwinProvider(DigitalTwinConfig(frame_rate=fps, seed=0))
    stats = AcquisitionStats()
    frames: Counter[str] = Counter()

    def count(frame: Any, sub: Any) -> None:
        frames[sub.name] += 1

    config = CameraConfig(camera_id=0, model="TWIN", serial="DEMO0001", name="demo")
    async with Camera(config, provider=ProviderBinding(provider), stats=stats) as camera:
        await camera.switch_acquisition_mode(mode)
        for index in range(subscriptions):
            sub = camera.create_subscription(count)
            # Stagger the viewports so every feed looks at a different region.
            await sub.update_viewport([192, 108, 4, index * 768, index * 432])
            await sub.start_acquisition_feed()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration
        while loop.time() < deadline:
            if mode is AcquisitionMode.EXTERNAL_TRIGGER and fps > 0:
                await provider.trigger(camera)
            await asyncio.sleep(1.0 / fps if fps > 0 else duration)

        exposure = await camera.get_exposure_time()
        logger.info("Demo finished", exposure=exposure, frames=sum(frames.values()))

    return {
        "frames": dict(frames),
        "stats": stats.get_summary(camera.id).to_dict(),
    }


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch the subcommand.

    Returns:
        Exit code (0 on success).
    """
    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="camera-hub: camera acquisition and subscription coordination",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Minimum log level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as one JSON object per line",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    demo_parser = subparsers.add_parser(
        "demo", help="Run subscriptions against the digital twin"
    )
    demo_parser.add_argument(
        "--subscriptions",
        type=int,
        default=DEFAULT_SUBSCRIPTIONS,
        help=f"Number of subscriptions (default: {DEFAULT_SUBSCRIPTIONS})",
    )
    demo_parser.add_argument(
        "--duration",
        type=float,
        default=DEFAULT_DURATION_S,
        help=f"Seconds to stream (default: {DEFAULT_DURATION_S})",
    )
    demo_parser.add_argument(
        "--fps", type=float, default=10.0, help="Frames per second (default: 10)"
    )
    demo_parser.add_argument(
        "--mode",
        default=AcquisitionMode.INTERNAL_TRIGGER.value,
        choices=[m.value for m in AcquisitionMode],
        help="Acquisition mode (default: internal_trigger)",
    )

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, json_format=args.json_logs, force=True)

    if args.command != "demo":
        parser.print_help()
        return 0

    if args.subscriptions < 1:
        parser.error("--subscriptions must be at least 1")

    result = asyncio.run(
        run_demo(
            subscriptions=args.subscriptions,
            duration=args.duration,
            fps=args.fps,
            mode=AcquisitionMode(args.mode),
        )
    )
    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
