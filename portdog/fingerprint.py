"""Service fingerprinting: banner grabbing, active probes and response analysis."""

from __future__ import annotations

import asyncio
import re
import ssl
from dataclasses import dataclass

READ_BUFFER_SIZE = 2048
BANNER_TIMEOUT = 4.0
MAX_HEX_BYTES = 24

TLS_PORTS = frozenset({443, 993, 995})
SMB_PORTS = frozenset({139, 445})

_HTTP_REQUEST = b"GET / HTTP/1.0\r\n\r\n"

_MATCHERS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("ssh", re.compile(r"(?i)^SSH-2.0-([^\s]+)")),
    ("http", re.compile(r"Server: ([^\r\n]+)")),
    ("http", re.compile(r"HTTP/\d\.\d")),
    ("ftp", re.compile(r"(?i)^220 .*FTP")),
    ("smtp", re.compile(r"(?i)^220 .*SMTP")),
)


@dataclass(frozen=True)
class _Probe:
    name: str
    payload: bytes
    ports: frozenset[int]


_PROBES: tuple[_Probe, ...] = (
    _Probe(
        "SMB",
        b"\x00\x00\x00\x85\xff\x53\x4d\x42\x72\x00\x00\x00\x00\x18\x53\xc8"
        b"\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\x00\xff\xfe"
        b"\x00\x00\x00\x00\x00\x62\x00\x02\x50\x43\x20\x4e\x45\x54\x57\x4f"
        b"\x52\x4b\x20\x50\x52\x4f\x47\x52\x41\x4d\x20\x31\x2e\x30\x00\x02"
        b"\x4d\x49\x43\x52\x4f\x53\x4f\x46\x54\x20\x4e\x45\x54\x57\x4f\x52"
        b"\x4b\x53\x20\x31\x2e\x30\x33\x00\x02\x4d\x49\x43\x52\x4f\x53\x4f"
        b"\x46\x54\x20\x4e\x45\x54\x57\x4f\x52\x4b\x53\x20\x33\x2e\x30\x00"
        b"\x02\x4c\x41\x4e\x4d\x41\x4e\x31\x2e\x30\x00\x02\x4c\x4d\x31\x2e"
        b"\x32\x58\x30\x30\x32\x00\x02\x53\x41\x4d\x42\x41\x00\x02\x4e\x54"
        b"\x20\x4c\x41\x4e\x4d\x41\x4e\x20\x31\x2e\x30\x00\x02\x4e\x54\x20"
        b"\x4c\x4d\x20\x30\x2e\x31\x32\x00",
        frozenset({139, 445}),
    ),
    _Probe(
        "RDP",
        b"\x03\x00\x00\x13\x0e\xe0\x00\x00\x00\x00\x00\x01\x00\x08\x00\x03\x00\x00\x00",
        frozenset({3389}),
    ),
    _Probe("HTTP", _HTTP_REQUEST, frozenset({80, 8000, 8080, 9993})),
    _Probe("Generic-Newline", b"\r\n\r\n", frozenset()),
)

_PORT_SERVICES = {
    21: "ftp",
    22: "ssh",
    23: "telnet",
    25: "smtp",
    53: "dns",
    80: "http",
    110: "pop3",
    139: "netbios-ssn",
    143: "imap",
    443: "https",
    445: "microsoft-ds",
    993: "imaps",
    995: "pop3s",
    1433: "mssql",
    3306: "mysql",
    3389: "ms-wbt-server",
    5432: "postgresql",
    6379: "redis",
    27017: "mongodb",
}


@dataclass(frozen=True)
class Fingerprint:
    """What was learned about the service behind an open port."""

    service_name: str
    banner: str


def service_name_for_port(port: int) -> str:
    """Return the conventional service name for a well-known port."""
    return _PORT_SERVICES.get(port, "unknown")


def to_hex_string(data: bytes) -> str:
    """Render up to the first 24 bytes as upper-case hex, marking truncation."""
    parts = [f"{byte:02X}" for byte in data[:MAX_HEX_BYTES]]
    if len(data) > MAX_HEX_BYTES:
        parts.append("...")
    return " ".join(parts)


def _first_line(text: str) -> str:
    line, newline, _ = text.partition("\n")
    if newline and line.endswith("\r"):
        line = line[:-1]
    return line


def analyze_text_banner(banner: str, port: int) -> Fingerprint:
    """Identify a service from a textual banner, falling back to the port."""
    for service, pattern in _MATCHERS:
        match = pattern.search(banner)
        if match is None:
            continue
        info = (match.group(1) if pattern.groups else None) or ""
        info = info.strip()
        return Fingerprint(service, info if info else _first_line(banner))
    return Fingerprint(service_name_for_port(port), _first_line(banner.strip()))


def analyze_response(data: bytes, port: int) -> Fingerprint:
    """Identify a service from the raw bytes it sent."""
    if port in SMB_PORTS and data.startswith(b"\x00\x00") and b"\xffSMB" in data:
        return Fingerprint(
            "smb", f"[SMB Response: {len(data)} bytes] {to_hex_string(data)}"
        )
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return Fingerprint(
            service_name_for_port(port),
            f"[Binary data: {len(data)} bytes] {to_hex_string(data)}",
        )
    return analyze_text_banner(text, port)


async def _read(reader: asyncio.StreamReader) -> bytes | None:
    try:
        data = await asyncio.wait_for(reader.read(READ_BUFFER_SIZE), BANNER_TIMEOUT)
    except (asyncio.TimeoutError, OSError, ssl.SSLError):
        return None
    return data or None


async def _send(writer: asyncio.StreamWriter, payload: bytes) -> bool:
    try:
        writer.write(payload)
        await writer.drain()
    except (OSError, ssl.SSLError):
        return False
    return True


def _insecure_context() -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


async def _probe_tls(
    reader: asyncio.StreamReader, writer: asyncio.StreamWriter, port: int
) -> Fingerprint:
    loop = asyncio.get_running_loop()
    transport = writer.transport
    try:
        tls_transport = await asyncio.wait_for(
            loop.start_tls(
                transport,
                transport.get_protocol(),
                _insecure_context(),
                server_hostname="localhost",
            ),
            BANNER_TIMEOUT,
        )
    except (asyncio.TimeoutError, OSError, ssl.SSLError, ConnectionError):
        transport.close()
        return Fingerprint("tls", "Could not complete TLS handshake")
    if tls_transport is None:
        transport.close()
        return Fingerprint("tls", "Could not complete TLS handshake")
    try:
        if port == 443:
            try:
                tls_transport.write(_HTTP_REQUEST)
            except (OSError, ssl.SSLError):
                pass
        data = await _read(reader) or b""
        return analyze_response(data, port)
    finally:
        tls_transport.close()


async def _probe_cleartext(
    reader: asyncio.StreamReader, writer: asyncio.StreamWriter, port: int
) -> Fingerprint:
    try:
        data = await _read(reader)
        if data:
            return analyze_response(data, port)
        targeted = [probe for probe in _PROBES if port in probe.ports]
        fallback = [probe for probe in _PROBES if not probe.ports]
        for probe in targeted + fallback:
            if await _send(writer, probe.payload):
                data = await _read(reader)
                if data:
                    return analyze_response(data, port)
        return Fingerprint(service_name_for_port(port), "[unresponsive]")
    finally:
        writer.close()


async def probe_port(host: str, port: int, connect_timeout: float) -> Fingerprint | None:
    """Connect to host:port and fingerprint the service; None if the port is closed."""
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), connect_timeout
        )
    except (asyncio.TimeoutError, OSError):
        return None
    if port in TLS_PORTS:
        return await _probe_tls(reader, writer, port)
    return await _probe_cleartext(reader, writer, port)