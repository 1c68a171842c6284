"""iOS simulator discovery and target selection."""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

from medic.project.cli import PlatformCli
from medic.shared.exceptions import NoMatchingSimulatorError, ProcessError, TargetResolutionError
from medic.shared.models import TargetHandle
from medic.shared.process import run_command
from medic.targets.interfaces import SimulatorDiscovery

logger = logging.getLogger(__name__)

DEFAULT_MODEL_FILTER = "^iPhone"

# <device> (<version>) [<simulator-id>]
_DEVICE_LINE = re.compile(r"^([a-zA-Z\d ]+) \(([\d.]+)\) \[([a-zA-Z\d-]*)\].*$")
# simctl section header, e.g. "-- iOS 17.2 --"
_SIMCTL_RUNTIME = re.compile(r"^--\s+iOS\s+([\d.]+)\s+--$")
# simctl device row, e.g. "    iPhone 15 (0C5A...-...) (Shutdown)"
_SIMCTL_DEVICE = re.compile(r"^\s+(.+?) \(([0-9A-Fa-f-]{36})\) \((\w[\w ]*)\)")


class SimctlDiscovery:
    """Lists simulator models through the platform CLI and instances through ``xcrun simctl``."""

    def __init__(self, cli: PlatformCli, *, xcrun_bin: str = "xcrun") -> None:
        self._cli = cli
        self._xcrun_bin = xcrun_bin

    async def list_models(self) -> list[str]:
        return await self._cli.list_emulators("ios")

    async def list_devices(self) -> list[str]:
        """Normalise ``simctl list devices`` into ``"<name> (<version>) [<udid>]"`` lines."""
        try:
            result = await run_command(self._xcrun_bin, "simctl", "list", "devices", timeout=60)
        except ProcessError as exc:
            raise TargetResolutionError(f"failed to list simulators: {exc}") from exc
        if not result.ok:
            raise TargetResolutionError(f"failed to list simulators: {result.stderr}")
        return parse_simctl_devices(result.stdout)


def parse_simctl_devices(output: str) -> list[str]:
    lines: list[str] = []
    version: str | None = None
    for raw in output.splitlines():
        header = _SIMCTL_RUNTIME.match(raw.strip())
        if header:
            version = header.group(1)
            continue
        if raw.strip().startswith("--"):
            # Non-iOS runtime (watchOS, tvOS, unavailable); skip its rows.
            version = None
            continue
        row = _SIMCTL_DEVICE.match(raw)
        if row and version is not None:
            lines.append(f"{row.group(1)} ({version}) [{row.group(2)}]")
    return lines


class IosTargetChooser:
    """Filters simulator models by a regex and resolves the simulator id of the match."""

    def __init__(self, discovery: SimulatorDiscovery) -> None:
        self._discovery = discovery

    async def choose(self, target: str | None) -> TargetHandle | None:
        model_filter = target or DEFAULT_MODEL_FILTER
        pattern = re.compile(model_filter)
        models = [line.strip() for line in await self._discovery.list_models() if pattern.search(line)]
        if not models:
            raise NoMatchingSimulatorError(f"unable to locate an emulator with the filter of: {model_filter}")
        emulator = models[-1]

        # "iPhone-XR, 12.2" -> ("iPhone XR", "12.2")
        name, _, version = emulator.partition(", ")
        device = name.replace("-", " ").strip()
        version = version.strip()

        simulator_ids: list[str] = []
        for line in await self._discovery.list_devices():
            match = _DEVICE_LINE.match(line.replace("ʀ", "R"))
            if match and match.group(1) == device and match.group(2) == version:
                simulator_ids.append(quote(match.group(3)))

        if not simulator_ids:
            raise NoMatchingSimulatorError(f"no matching simulator for {device} ({version})")
        if len(simulator_ids) > 1:
            logger.warning("multiple matching simulators found for %s (%s), using the last one", device, version)

        handle = TargetHandle(
            target_id=emulator,
            simulator_id=simulator_ids[-1],
            device_name=device,
            os_version=version,
        )
        logger.info("chose simulator %s (%s) [%s]", device, version, handle.simulator_id)
        return handle
