# portdog

portdog is an asynchronous TCP port scanner. It sets its speed from a timing
template. For every open port it finds, it reads the banner, sends small
protocol probes if needed, and matches the answer to name the service.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Usage

```
portdog IPADDR [-p PORTS] [-T LEVEL] [-j] [-V]
```

- `IPADDR`: the IPv4 or IPv6 address to scan. Host names are not accepted.
- `-p`, `--ports`: the ports to scan. The default is `1-1024`. The option takes a
  comma-separated list of single ports (`80,443`), ranges (`1-1024`), or `-` for
  all ports from 1 to 65535. The ports are sorted, and duplicates are removed.
  Port 0, a reversed range or a port above 65535 is an error: the message goes
  to standard error and the exit status is 1.
- `-T`, `--timing`: the timing template, 0 to 5. The default is 3.
- `-j`, `--json`: print a JSON report instead of the banner, progress bar and table.
- `-V`, `--version`: print the version and exit.

### Timing templates

| Level | Name       | Concurrency | Connect timeout |
|-------|------------|-------------|-----------------|
| 0     | Paranoid   | 5           | 15 s            |
| 1     | Sneaky     | 100         | 5 s             |
| 2     | Polite     | 400         | 1.2 s           |
| 3     | Normal     | 1000        | 0.8 s           |
| 4     | Aggressive | auto        | auto            |
| 5     | Insane     | 5000        | 0.3 s           |

At level 4, portdog first connects to ports 80, 443, 22, 53, 3389, 8080, 1337
and 31337 with a 2-second limit and measures the average round-trip time (a
refused connection counts as an answer). The timeout is then five times that
average plus 0.4 s, kept between 0.5 s and 4 s. The concurrency is 2500 below
100 ms, 1800 below 250 ms, and 1000 otherwise. Where the open-file limit is
known, the concurrency is capped at that limit minus 50. If no probe answers,
portdog uses a concurrency of 500 and a 3-second timeout. The messages from
this step are printed even with `--json`.

### Fingerprinting

- Ports 443, 993 and 995 are opened with TLS, without checking the certificate.
  On 443 an HTTP `GET /` is sent. If the handshake fails, the service is
  reported as `tls`.
- On other ports, portdog waits up to 4 seconds for a banner. If none comes, it
  sends a probe for the port (SMB on 139/445, RDP on 3389, HTTP on 80, 8000,
  8080 and 9993) and then a bare `\r\n\r\n`. A port that never answers is
  reported as `[unresponsive]`.
- Answers are matched against SSH, HTTP, FTP and SMTP patterns, and SMB replies
  are recognised by their header. Binary answers are shown as hex (the first 24
  bytes). Otherwise the service name comes from the port number.

### Examples

```
portdog 192.0.2.10
portdog 192.0.2.10 -p 22,80,443,8000-8100 -T4
portdog 192.0.2.10 -p - --json
```

The JSON report lists the target and each open port, with its state, its
service and its banner:

```json
{
  "target": "192.0.2.10",
  "open_ports": [
    {"port": 22, "state": "open", "service": "ssh", "banner": "OpenSSH_9.6"}
  ]
}
```

## Using it as a library

```python
import asyncio
from portdog.scanner import parse_port_spec, timing_settings, scan_ports

ports = parse_port_spec("22,80,443")
settings = timing_settings(3)
results = asyncio.run(scan_ports("192.0.2.10", ports, settings))
for port, fp in results:
    print(port, fp.service_name, fp.banner)
```

- `portdog.scanner`: `parse_port_spec` (raises `PortSpecError`),
  `timing_settings` (returns `None` for level 4), `settings_from_rtts`,
  `determine_optimal_settings`, `scan_ports` and the `ScanSettings` dataclass.
- `portdog.fingerprint`: `probe_port(host, port, connect_timeout)` fingerprints
  a single port and returns `None` when the connection fails;
  `analyze_response`, `analyze_text_banner`, `to_hex_string` and
  `service_name_for_port` work on data already read. Results are `Fingerprint`
  objects with `service_name` and `banner`.
- `portdog.cli`: `build_report` and `format_table` build the JSON report and the
  text table; `main` runs the command.

## What it does not do

portdog only makes full TCP connections. It does not scan UDP, does not resolve
host names, and scans one address per run.

Only scan hosts you are allowed to scan.