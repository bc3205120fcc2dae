import asyncio
import socket

import pytest

from portdog import fingerprint
from portdog.fingerprint import (
    Fingerprint,
    analyze_response,
    analyze_text_banner,
    probe_port,
    service_name_for_port,
    to_hex_string,
)


def test_service_name_known_ports():
    assert service_name_for_port(22) == "ssh"
    assert service_name_for_port(445) == "microsoft-ds"
    assert service_name_for_port(27017) == "mongodb"


def test_service_name_unknown_port():
    assert service_name_for_port(12345) == "unknown"


def test_hex_string_round_trip_short():
    data = b"\x00\xffSMB\x10"
    text = to_hex_string(data)
    assert bytes.fromhex(text) == data
    assert text == text.upper()


def test_hex_string_empty():
    assert to_hex_string(b"") == ""


def test_hex_string_exactly_limit_not_truncated():
    data = bytes(range(24))
    text = to_hex_string(data)
    assert not text.endswith("...")
    assert bytes.fromhex(text) == data


def test_hex_string_truncated():
    data = bytes(range(40))
    text = to_hex_string(data)
    assert text.endswith(" ...")
    assert bytes.fromhex(text[: -len(" ...")]) == data[:24]


def test_ssh_banner():
    fp = analyze_text_banner("SSH-2.0-OpenSSH_8.9p1 Ubuntu\r\n", 2222)
    assert fp == Fingerprint("ssh", "OpenSSH_8.9p1")


def test_ssh_banner_case_insensitive():
    fp = analyze_text_banner("ssh-2.0-dropbear\r\n", 2222)
    assert fp == Fingerprint("ssh", "dropbear")


def test_http_server_header():
    fp = analyze_text_banner("HTTP/1.1 200 OK\r\nServer: nginx/1.18\r\n\r\n", 8081)
    assert fp == Fingerprint("http", "nginx/1.18")


def test_http_generic_uses_first_line():
    fp = analyze_text_banner("HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\n", 8081)
    assert fp == Fingerprint("http", "HTTP/1.1 404 Not Found")


def test_ftp_banner():
    fp = analyze_text_banner("220 ProFTPD FTP server ready\r\n", 2121)
    assert fp == Fingerprint("ftp", "220 ProFTPD FTP server ready")


def test_smtp_banner():
    fp = analyze_text_banner("220 mail.example.com ESMTP Postfix\r\n", 2525)
    assert fp == Fingerprint("smtp", "220 mail.example.com ESMTP Postfix")


def test_fallback_trims_and_takes_first_line():
    fp = analyze_text_banner("  hello world\nsecond line", 6379)
    assert fp == Fingerprint("redis", "hello world")


def test_empty_banner_fallback():
    assert analyze_text_banner("", 5432) == Fingerprint("postgresql", "")


def test_analyze_response_text():
    fp = analyze_response(b"SSH-2.0-OpenSSH_9.0\r\n", 22)
    assert fp == Fingerprint("ssh", "OpenSSH_9.0")


def test_analyze_response_binary():
    data = b"\xff\xfe\x00\x01"
    fp = analyze_response(data, 3306)
    assert fp.service_name == "mysql"
    prefix = "[Binary data: 4 bytes] "
    assert fp.banner.startswith(prefix)
    assert bytes.fromhex(fp.banner[len(prefix):]) == data


def test_analyze_response_smb():
    data = b"\x00\x00\x00\x10\xffSMBr\x00\x00\x00"
    fp = analyze_response(data, 445)
    assert fp.service_name == "smb"
    prefix = f"[SMB Response: {len(data)} bytes] "
    assert fp.banner.startswith(prefix)
    assert bytes.fromhex(fp.banner[len(prefix):]) == data


def test_smb_signature_ignored_on_other_port():
    data = b"\x00\x00\x00\x10\xffSMBr\x00\x00\x00"
    fp = analyze_response(data, 80)
    assert fp.service_name == "http"
    assert fp.banner.startswith("[Binary data: ")


def test_smb_port_without_signature_is_text():
    fp = analyze_response(b"hello\r\n", 139)
    assert fp == Fingerprint("netbios-ssn", "hello")


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.asyncio
async def test_probe_closed_port_returns_none():
    port = _free_port()
    assert await probe_port("127.0.0.1", port, 1.0) is None


@pytest.mark.asyncio
async def test_probe_reads_greeting_banner():
    async def handle(reader, writer):
        writer.write(b"SSH-2.0-TestServer_1.0\r\n")
        await writer.drain()
        await asyncio.sleep(0.5)
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    async with server:
        result = await probe_port("127.0.0.1", port, 2.0)
    assert result == Fingerprint("ssh", "TestServer_1.0")


@pytest.mark.asyncio
async def test_probe_falls_back_to_newline_probe(monkeypatch):
    monkeypatch.setattr(fingerprint, "BANNER_TIMEOUT", 0.3)
    received = []

    async def handle(reader, writer):
        data = await reader.read(64)
        received.append(data)
        writer.write(b"HTTP/1.0 400 Bad Request\r\n\r\n")
        await writer.drain()
        await asyncio.sleep(0.5)
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    async with server:
        result = await probe_port("127.0.0.1", port, 2.0)
    assert received == [b"\r\n\r\n"]
    assert result == Fingerprint("http", "HTTP/1.0 400 Bad Request")


@pytest.mark.asyncio
async def test_probe_unresponsive_service(monkeypatch):
    monkeypatch.setattr(fingerprint, "BANNER_TIMEOUT", 0.2)

    async def handle(reader, writer):
        await asyncio.sleep(1.5)
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    async with server:
        result = await probe_port("127.0.0.1", port, 2.0)
    assert result == Fingerprint(service_name_for_port(port), "[unresponsive]")