"""
ARP table snapshot sources.

The detector only depends on the SnapshotSource interface. The default
implementation reads the operating system's neighbour table by running the
platform's ARP listing command and parsing its output. It never writes to the
table and never sends packets.
"""

import logging
import platform
import shlex
import subprocess
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from arpguard.errors import SnapshotQueryError
from arpguard.models.binding import SnapshotRow
from arpguard.parsers.arp import ArpParser
from arpguard.parsers.route import RouteParser

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT_SECONDS = 10

_ARP_COMMANDS = {
    "Linux": ["ip", "-4", "neigh", "show"],
    "Darwin": ["arp", "-an"],
    "Windows": ["arp", "-a"],
}

_ROUTE_COMMANDS = {
    "Linux": ["ip", "-4", "route", "show", "default"],
    "Darwin": ["route", "-n", "get", "default"],
    "Windows": ["route", "print", "0.0.0.0"],
}

_PLATFORM_FORMATS = {"Linux": "linux", "Darwin": "macos", "Windows": "windows"}

Runner = Callable[..., subprocess.CompletedProcess]


class SnapshotSource(ABC):
    """Supplies the current set of ARP table rows on demand."""

    @abstractmethod
    def query(self) -> Sequence[SnapshotRow]:
        """
        Read the ARP table.

        Raises:
            SnapshotQueryError: If the table cannot be read
        """


def _run(command: List[str], runner: Runner) -> str:
    try:
        completed = runner(
            command,
            capture_output=True,
            text=True,
            timeout=COMMAND_TIMEOUT_SECONDS,
            check=True,
        )
    except FileNotFoundError as e:
        raise SnapshotQueryError(f"Command not found: {command[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise SnapshotQueryError(f"'{' '.join(command)}' timed out after {COMMAND_TIMEOUT_SECONDS}s") from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise SnapshotQueryError(
            f"'{' '.join(command)}' exited with status {e.returncode}: {stderr}"
        ) from e
    except OSError as e:
        raise SnapshotQueryError(f"Could not run '{' '.join(command)}': {e}") from e
    return completed.stdout


class SystemArpTableSource(SnapshotSource):
    """Snapshot source backed by `ip neigh` (Linux) or `arp -a` (macOS, Windows)."""

    def __init__(
        self,
        command: Optional[str] = None,
        system: Optional[str] = None,
        runner: Runner = subprocess.run,
    ):
        self.system = system or platform.system()
        if command:
            self.command = shlex.split(command)
        elif self.system in _ARP_COMMANDS:
            self.command = list(_ARP_COMMANDS[self.system])
        else:
            self.command = ["arp", "-a"]
        self.runner = runner
        self.parser = ArpParser()

    def query(self) -> List[SnapshotRow]:
        output = _run(self.command, self.runner)

        # An empty neighbour table is a valid snapshot
        if not output.strip():
            return []

        result = self.parser.parse(output, platform=_PLATFORM_FORMATS.get(self.system))
        if not result.success:
            raise SnapshotQueryError(f"Could not parse ARP output: {'; '.join(result.errors)}")

        rows = [entry.to_snapshot_row() for entry in result.arp_entries]
        logger.debug(f"Read {len(rows)} ARP rows via '{' '.join(self.command)}'")
        return rows


def detect_default_gateway(
    system: Optional[str] = None,
    runner: Runner = subprocess.run,
) -> Optional[str]:
    """Return the default IPv4 gateway, or None when it cannot be determined."""
    system = system or platform.system()
    command = _ROUTE_COMMANDS.get(system, ["netstat", "-rn"])
    try:
        output = _run(command, runner)
    except SnapshotQueryError as e:
        logger.warning(f"Default gateway detection failed: {e}")
        return None

    result = RouteParser().parse(output)
    if result.gateway:
        logger.info(f"Detected default gateway {result.gateway}")
    return result.gateway
