"""Scan planning and execution: port specs, timing profiles and the concurrent scan."""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from rich.console import Console
from rich.text import Text

from .fingerprint import Fingerprint, probe_port

MAX_PORT = 65535
AUTO_PROBE_PORTS = (80, 443, 22, 53, 3389, 8080, 1337, 31337)
AUTO_PROBE_TIMEOUT = 2.0
FD_HEADROOM = 50

_PORT_NUMBER = re.compile(r"\+?[0-9]+")
_console = Console()


@dataclass(frozen=True)
class ScanSettings:
    """How many probes run at once and how long a connect may take (seconds)."""

    concurrency: int
    timeout: float


class PortSpecError(ValueError):
    """Raised when a port specification cannot be parsed."""


_FIXED_TIMINGS = {
    0: ScanSettings(concurrency=5, timeout=15.0),
    1: ScanSettings(concurrency=100, timeout=5.0),
    2: ScanSettings(concurrency=400, timeout=1.2),
    3: ScanSettings(concurrency=1000, timeout=0.8),
    5: ScanSettings(concurrency=5000, timeout=0.3),
}

_UNRESPONSIVE_DEFAULT = ScanSettings(concurrency=500, timeout=3.0)


def _parse_port_number(text: str) -> int | None:
    if not _PORT_NUMBER.fullmatch(text):
        return None
    value = int(text)
    return value if value <= MAX_PORT else None


def parse_port_spec(spec: str) -> list[int]:
    """Expand a spec such as "22,80,1000-2000" or "-" into sorted unique ports."""
    ports: set[int] = set()
    for raw_part in spec.split(","):
        part = raw_part.strip()
        if not part:
            continue
        if part == "-":
            ports.update(range(1, MAX_PORT + 1))
        elif "-" in part:
            start_text, _, end_text = part.partition("-")
            start = _parse_port_number(start_text)
            if start is None:
                raise PortSpecError(f"Invalid start of range: '{start_text}'")
            end = _parse_port_number(end_text)
            if end is None:
                raise PortSpecError(f"Invalid end of range: '{end_text}'")
            if start == 0 or end == 0 or start > end:
                raise PortSpecError(f"Invalid port range: '{part}'.")
            ports.update(range(start, end + 1))
        else:
            port = _parse_port_number(part)
            if port is None:
                raise PortSpecError(f"Invalid port: '{part}'")
            if port == 0:
                raise PortSpecError(f"Invalid port '{part}'. Port must be > 0.")
            ports.add(port)
    return sorted(ports)


def timing_settings(level: int) -> ScanSettings | None:
    """Return the fixed settings for a timing level, or None for the adaptive level 4."""
    if level not in range(6):
        raise ValueError(f"timing level must be between 0 and 5, got {level}")
    return _FIXED_TIMINGS.get(level)


def settings_from_rtts(rtts: Sequence[float], fd_limit: int | None = None) -> ScanSettings:
    """Derive settings from measured round-trip times, capped by a descriptor limit."""
    if not rtts:
        return _UNRESPONSIVE_DEFAULT
    average = sum(rtts) / len(rtts)
    timeout = min(max(average * 5 + 0.4, 0.5), 4.0)
    if average < 0.1:
        concurrency = 2500
    elif average < 0.25:
        concurrency = 1800
    else:
        concurrency = 1000
    if fd_limit is not None:
        concurrency = min(concurrency, max(fd_limit - FD_HEADROOM, 0))
    return ScanSettings(concurrency=concurrency, timeout=timeout)


def _soft_fd_limit() -> int | None:
    try:
        import resource
    except ImportError:
        return None
    try:
        soft, _ = resource.getrlimit(resource.RLIMIT_NOFILE)
    except (OSError, ValueError):
        return None
    if soft == resource.RLIM_INFINITY or soft < 0:
        return None
    return soft


def _format_duration(seconds: float) -> str:
    if seconds >= 1:
        return f"{seconds:g}s"
    if seconds >= 1e-3:
        return f"{seconds * 1e3:g}ms"
    if seconds >= 1e-6:
        return f"{seconds * 1e6:g}µs"
    return f"{seconds * 1e9:g}ns"


async def _time_connect(ip: str, port: int) -> float | None:
    start = time.perf_counter()
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(ip, port), AUTO_PROBE_TIMEOUT
        )
    except asyncio.TimeoutError:
        return None
    except OSError:
        # A refusal still answers within the deadline and so measures the round trip.
        return time.perf_counter() - start
    elapsed = time.perf_counter() - start
    writer.close()
    return elapsed


async def determine_optimal_settings(ip: str) -> ScanSettings:
    """Probe a few common ports on the target and derive scan settings from their RTT."""
    _console.print("Probing target to determine optimal settings...", style="cyan", highlight=False)
    measured = await asyncio.gather(*(_time_connect(ip, port) for port in AUTO_PROBE_PORTS))
    rtts = [rtt for rtt in measured if rtt is not None]

    if not rtts:
        _console.print(
            "Warning: Target did not respond to probes. Using conservative default settings.",
            style="yellow",
            highlight=False,
        )
        return settings_from_rtts(rtts)

    uncapped = settings_from_rtts(rtts)
    fd_limit = _soft_fd_limit()
    settings = settings_from_rtts(rtts, fd_limit)
    if settings.concurrency < uncapped.concurrency:
        _console.print(
            f"Warning: Capping concurrency at {settings.concurrency} "
            "to respect file descriptor limit.",
            style="yellow",
            highlight=False,
        )

    average = sum(rtts) / len(rtts)
    _console.print(
        Text.assemble(
            ("Probe complete. ", "green"),
            ("Average RTT: ", "dim"),
            (f"{_format_duration(average)}. ", "bold"),
            ("Using: ", "dim"),
            (
                f"concurrency={settings.concurrency}, "
                f"timeout={_format_duration(settings.timeout)}",
                "bold",
            ),
        ),
        soft_wrap=True,
    )
    return settings


async def scan_ports(
    ip: str,
    ports: Sequence[int],
    settings: ScanSettings,
    on_progress: Callable[[], object] | None = None,
) -> list[tuple[int, Fingerprint]]:
    """Probe every port concurrently and return the open ones, sorted by port."""
    pending = iter(ports)
    found: list[tuple[int, Fingerprint]] = []

    async def worker() -> None:
        for port in pending:
            fingerprint = await probe_port(ip, port, settings.timeout)
            if fingerprint is not None:
                found.append((port, fingerprint))
            if on_progress is not None:
                on_progress()

    workers = max(1, min(settings.concurrency, len(ports)))
    await asyncio.gather(*(worker() for _ in range(workers)))
    return sorted(found, key=lambda item: item[0])