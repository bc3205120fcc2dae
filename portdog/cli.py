"""Command-line front end: argument handling, progress display and reporting."""

from __future__ import annotations

import argparse
import asyncio
import ipaddress
import json
import sys
from collections.abc import Sequence
from typing import Any

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.text import Text

from .fingerprint import Fingerprint
from .scanner import (
    PortSpecError,
    determine_optimal_settings,
    parse_port_spec,
    scan_ports,
    timing_settings,
)

ASCII_ART = r"""
 ____            _     ____
|  _ \ ___  _ __| |_  |  _ \  ___   __ _
| |_) / _ \| '__| __| | | | |/ _ \ / _` |
|  __/ (_) | |  | |_  | |_| | (_) | (_| |
|_|   \___/|_|   \__| |____/ \___/ \__, |
                                   |___/
A lightning-fast port scanner.
"""

_PROFILE_LABELS = {
    5: ("Insane (-T5)", "red"),
    4: ("Aggressive (-T4, auto)", "yellow"),
    3: ("Normal (-T3)", "green"),
    2: ("Polite (-T2)", "blue"),
    1: ("Sneaky (-T1)", "dim"),
    0: ("Paranoid (-T0)", "dim"),
}

Results = Sequence[tuple[int, Fingerprint]]


def build_report(target: str, results: Results) -> dict[str, Any]:
    """Build the JSON-serialisable report of a finished scan."""
    return {
        "target": target,
        "open_ports": [
            {
                "port": port,
                "state": "open",
                "service": fingerprint.service_name,
                "banner": fingerprint.banner,
            }
            for port, fingerprint in results
        ],
    }


def format_table(results: Results) -> Text:
    """Render the open ports as a styled, column-aligned table."""
    if not results:
        return Text("No open ports found.")
    table = Text()
    table.append(f"{'PORT':<10}", "bold")
    table.append(" ")
    table.append(f"{'STATE':<10}", "bold")
    table.append(" ")
    table.append(f"{'SERVICE':<15}", "bold")
    table.append(" ")
    table.append("BANNER", "bold")
    table.append("\n")
    table.append(" ".join("-" * width for width in (10, 10, 15, 50)))
    for port, fingerprint in results:
        banner = fingerprint.banner.replace("\r", " ").replace("\n", " ").strip()
        table.append("\n")
        table.append(f"{f'{port}/tcp':<10}", "yellow")
        table.append(" ")
        table.append(f"{'open':<10}", "green")
        table.append(" ")
        table.append(f"{fingerprint.service_name:<15}", "blue")
        table.append(" ")
        table.append(banner)
    return table


def _ip_address(text: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid IP address: '{text}'") from None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portdog",
        description="A lightning-fast asynchronous port scanner with adaptive timing "
        "and fingerprinting.",
    )
    parser.add_argument("ipaddr", type=_ip_address, help="The IP address to scan.")
    parser.add_argument(
        "-p", "--ports", default="1-1024", help="Ports to scan. Ex: 80,443 | 1-1024 | -"
    )
    parser.add_argument(
        "-T",
        "--timing",
        type=int,
        default=3,
        choices=range(6),
        metavar="0-5",
        help="Set timing template (0-5, default: 3). Higher is faster and more aggressive.",
    )
    parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Output results in JSON format, suppressing all other output.",
    )
    parser.add_argument("-V", "--version", action="version", version="%(prog)s 0.1.0")
    return parser


async def _run(args: argparse.Namespace) -> int:
    console = Console()
    quiet: bool = args.json
    target = str(args.ipaddr)

    if not quiet:
        console.print(ASCII_ART, style="bold cyan", highlight=False, soft_wrap=True)
        label, colour = _PROFILE_LABELS[args.timing]
        console.print(Text.assemble(("Timing Profile:", "bold"), " ", (label, colour)))

    settings = timing_settings(args.timing)
    if settings is None:
        settings = await determine_optimal_settings(target)

    try:
        ports = parse_port_spec(args.ports)
    except PortSpecError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if not quiet:
        console.print(
            Text.assemble(
                "\n",
                ("Scanning", "green"),
                " ",
                (target, "bold"),
                " ",
                ("with", "dim"),
                " ",
                (f"{settings.concurrency} concurrent tasks...", "bold"),
            ),
            soft_wrap=True,
        )

    progress = Progress(
        SpinnerColumn(style="green"),
        TimeElapsedColumn(),
        BarColumn(bar_width=40, style="blue", complete_style="cyan"),
        MofNCompleteColumn(),
        TaskProgressColumn(),
        TextColumn("| ETA:"),
        TimeRemainingColumn(),
        console=console,
        disable=quiet,
    )
    with progress:
        task = progress.add_task("scan", total=len(ports))
        results = await scan_ports(target, ports, settings, lambda: progress.advance(task))

    if quiet:
        print(json.dumps(build_report(target, results), indent=2, ensure_ascii=False))
        return 0

    console.print(f"\n{'-' * 80}\n", highlight=False, soft_wrap=True)
    console.print(format_table(results), soft_wrap=True)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the scanner from the command line and return the exit status."""
    args = _build_parser().parse_args(argv)
    return asyncio.run(_run(args))