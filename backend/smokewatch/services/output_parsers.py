"""
Output parsers for ping, traceroute and mtr.

Pure functions: raw tool output in, structured measurement out. A
ParseError means the output had no recognisable shape; a probe that ran but
got no replies parses fine and reports 100% loss.
"""
import ipaddress
import json
import re
from typing import Any, Dict, List, Optional, Tuple

from smokewatch.errors import ParseError
from smokewatch.schemas.probe import Hop

BSD_PLATFORMS = ("darwin", "freebsd", "openbsd", "netbsd")

# Linux: "10 packets transmitted, 9 received, 10% packet loss, time 9012ms"
#        "5 packets transmitted, 0 received, +5 errors, 100% packet loss, time 4001ms"
# BSD:   "10 packets transmitted, 10 packets received, 0.0% packet loss"
_SUMMARY_RE = re.compile(
    r"(\d+)\s+packets transmitted,\s+(\d+)\s+(?:packets\s+)?received,.*?([\d.]+)%\s+packet loss"
)

# BSD:   "round-trip min/avg/max/stddev = 14.117/15.052/16.310/0.658 ms"
# Linux: "rtt min/avg/max/mdev = 14.117/15.052/16.310/0.658 ms"
_RTT_RE = {
    "stddev": re.compile(r"min/avg/max/stddev\s*=\s*([\d.]+)/([\d.]+)/([\d.]+)/([\d.]+)\s*ms"),
    "mdev": re.compile(r"min/avg/max/mdev\s*=\s*([\d.]+)/([\d.]+)/([\d.]+)/([\d.]+)\s*ms"),
}

_MTR_HOST_RE = re.compile(r"^(\S+)\s+\(([^)]+)\)$")


def is_bsd_platform(platform: str) -> bool:
    return platform.lower().startswith(BSD_PLATFORMS)


def parse_ping(raw_stdout: str, platform: str = "linux") -> Dict[str, Any]:
    """
    Parse the summary block of a ping run.
    Returns the PingSample measurement fields (counts, loss, min/avg/max RTT, jitter).
    Either RTT format is accepted; the platform only decides which is tried first.
    """
    output = raw_stdout or ""
    summary = _SUMMARY_RE.search(output)
    if not summary:
        raise ParseError("ping", "packet summary line not found", raw_output=raw_stdout)

    sent = int(summary.group(1))
    received = int(summary.group(2))
    if received > sent:
        raise ParseError("ping", f"{received} received out of {sent} transmitted", raw_output=raw_stdout)

    fields: Dict[str, Any] = {
        "packets_sent": sent,
        "packets_received": received,
        "packet_loss": float(summary.group(3)),
        "min_rtt": None,
        "avg_rtt": None,
        "max_rtt": None,
        "jitter": None,
    }

    if received == 0:
        fields["packet_loss"] = 100.0
        return fields

    order = ("stddev", "mdev") if is_bsd_platform(platform) else ("mdev", "stddev")
    for key in order:
        rtt_match = _RTT_RE[key].search(output)
        if rtt_match:
            fields["min_rtt"] = float(rtt_match.group(1))
            fields["avg_rtt"] = float(rtt_match.group(2))
            fields["max_rtt"] = float(rtt_match.group(3))
            fields["jitter"] = float(rtt_match.group(4))
            break

    return fields


def _as_float(token: str) -> Optional[float]:
    try:
        return float(token)
    except ValueError:
        return None


def _is_ip(token: str) -> bool:
    try:
        ipaddress.ip_address(token)
    except ValueError:
        return False
    return True


def parse_traceroute(raw_stdout: str) -> List[Hop]:
    """
    Parse classic traceroute text output, one hop per line.

    The header ("traceroute to ...") and continuation lines do not start with
    a hop number and are skipped. "*" marks a probe without reply; a hop
    whose probes all timed out has no ip and no hostname.
    """
    hops: List[Hop] = []

    for line in (raw_stdout or "").splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        try:
            hop_num = int(parts[0])
        except ValueError:
            continue

        hostname: Optional[str] = None
        ip: Optional[str] = None
        rtts: List[float] = []

        for i, token in enumerate(parts[1:], start=1):
            next_token = parts[i + 1] if i + 1 < len(parts) else None
            if token in ("*", "ms") or token.startswith("!"):
                continue
            if next_token == "ms" and _as_float(token) is not None:
                rtts.append(float(token))
            elif token.endswith("ms") and _as_float(token[:-2]) is not None:
                rtts.append(float(token[:-2]))
            elif token.startswith("(") and token.endswith(")"):
                if ip is None:
                    ip = token[1:-1]
            elif hostname is None:
                # first responder only; later responders on the same line are ignored
                hostname = token
                if _is_ip(token):
                    ip = token

        rtts = rtts[:3]
        hops.append(Hop(
            hop=hop_num,
            ip=ip,
            hostname=hostname,
            loss=0.0,
            avg_rtt=sum(rtts) / len(rtts) if rtts else None,
            min_rtt=min(rtts) if rtts else None,
            max_rtt=max(rtts) if rtts else None,
            rtts=rtts,
        ))

    for expected, hop in enumerate(hops, start=1):
        if hop.hop != expected:
            raise ParseError(
                "traceroute",
                f"hop numbers are not contiguous (expected {expected}, got {hop.hop})",
                raw_output=raw_stdout,
            )
    return hops


def _number(value: Any, default: Optional[float] = None) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _split_mtr_host(host: Any) -> Tuple[Optional[str], Optional[str]]:
    """Returns (ip, hostname). mtr reports "???" for a silent hop."""
    if not isinstance(host, str) or not host.strip() or host.strip() == "???":
        return None, None
    host = host.strip()
    both = _MTR_HOST_RE.match(host)
    if both:
        return both.group(2), both.group(1)
    return (host if _is_ip(host) else None), host


def parse_mtr_json(raw_json: str) -> List[Hop]:
    """
    Map `mtr --json` hubs onto Hop records.

    mtr emits capitalised keys (Loss%, Snt, Last, Avg, Best, Wrst, StDev).
    Missing Last/Best/Wrst fall back to Avg; missing Loss% and StDev count
    as 0 and a missing Snt falls back to the report's test count.
    """
    try:
        data = json.loads(raw_json)
    except (TypeError, ValueError) as e:
        raise ParseError("mtr", f"invalid JSON: {e}", raw_output=raw_json) from e

    report = data.get("report") if isinstance(data, dict) else None
    hubs = report.get("hubs") if isinstance(report, dict) else None
    if not isinstance(hubs, list):
        raise ParseError("mtr", "report.hubs missing from JSON", raw_output=raw_json)

    meta = report.get("mtr") if isinstance(report.get("mtr"), dict) else {}
    default_sent = _number(meta.get("tests"))

    hops: List[Hop] = []
    for index, hub in enumerate(hubs, start=1):
        if not isinstance(hub, dict):
            raise ParseError("mtr", f"hub {index} is not an object", raw_output=raw_json)
        ip, hostname = _split_mtr_host(hub.get("host"))
        avg = _number(hub.get("Avg"))
        sent = _number(hub.get("Snt"), default_sent)
        hops.append(Hop(
            hop=index,
            ip=ip,
            hostname=hostname,
            loss=_number(hub.get("Loss%"), 0.0),
            sent=int(sent) if sent is not None else None,
            last=_number(hub.get("Last"), avg),
            avg_rtt=avg,
            min_rtt=_number(hub.get("Best"), avg),
            max_rtt=_number(hub.get("Wrst"), avg),
            std_dev=_number(hub.get("StDev"), 0.0),
        ))
    return hops
