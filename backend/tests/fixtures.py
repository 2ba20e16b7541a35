"""Canned tool output and a scripted tool runner for tests."""
import asyncio
import json

from smokewatch.errors import ToolFailed, ToolUnavailable
from smokewatch.services.tool_runner import ToolOutput

GNU_PING = """\
PING 8.8.8.8 (8.8.8.8) 56(84) bytes of data.
64 bytes from 8.8.8.8: icmp_seq=1 ttl=117 time=14.1 ms
64 bytes from 8.8.8.8: icmp_seq=2 ttl=117 time=16.3 ms
64 bytes from 8.8.8.8: icmp_seq=3 ttl=117 time=15.0 ms
64 bytes from 8.8.8.8: icmp_seq=4 ttl=117 time=14.8 ms
64 bytes from 8.8.8.8: icmp_seq=5 ttl=117 time=15.1 ms

--- 8.8.8.8 ping statistics ---
5 packets transmitted, 5 received, 0% packet loss, time 4005ms
rtt min/avg/max/mdev = 14.117/15.052/16.310/0.658 ms
"""

BSD_PING = """\
PING 8.8.8.8 (8.8.8.8): 56 data bytes
64 bytes from 8.8.8.8: icmp_seq=0 ttl=117 time=14.117 ms
64 bytes from 8.8.8.8: icmp_seq=1 ttl=117 time=16.310 ms
64 bytes from 8.8.8.8: icmp_seq=2 ttl=117 time=15.002 ms
64 bytes from 8.8.8.8: icmp_seq=3 ttl=117 time=14.810 ms
64 bytes from 8.8.8.8: icmp_seq=4 ttl=117 time=15.021 ms

--- 8.8.8.8 ping statistics ---
5 packets transmitted, 5 packets received, 0.0% packet loss
round-trip min/avg/max/stddev = 14.117/15.052/16.310/0.658 ms
"""

GNU_PING_PARTIAL = """\
PING 1.1.1.1 (1.1.1.1) 56(84) bytes of data.

--- 1.1.1.1 ping statistics ---
10 packets transmitted, 7 received, 30% packet loss, time 9012ms
rtt min/avg/max/mdev = 9.950/12.400/20.310/3.120 ms
"""

GNU_PING_DEAD = """\
PING 10.255.255.1 (10.255.255.1) 56(84) bytes of data.

--- 10.255.255.1 ping statistics ---
5 packets transmitted, 0 received, 100% packet loss, time 4081ms
"""

GNU_PING_ERRORS = """\
PING 192.0.2.10 (192.0.2.10) 56(84) bytes of data.
From 192.0.2.1 icmp_seq=1 Destination Host Unreachable

--- 192.0.2.10 ping statistics ---
5 packets transmitted, 0 received, +5 errors, 100% packet loss, time 4006ms
"""

TRACEROUTE_NUMERIC = """\
traceroute to 8.8.8.8 (8.8.8.8), 30 hops max, 60 byte packets
 1  192.168.1.1  1.123 ms  0.987 ms  1.050 ms
 2  * * *
 3  10.20.30.1  8.500 ms  9.100 ms *
 4  8.8.8.8  14.200 ms  14.000 ms  14.400 ms
"""

TRACEROUTE_NAMED = """\
traceroute to example.com (93.184.216.34), 30 hops max, 60 byte packets
 1  router.lan (192.168.1.1)  1.123 ms  0.987 ms  1.050 ms
 2  core1.isp.net (10.0.0.1)  5.000 ms  5.500 ms  6.000 ms
"""

MTR_REPORT = {
    "report": {
        "mtr": {"src": "probe-1", "dst": "8.8.8.8", "tos": 0, "tests": 10, "psize": "64", "bitpattern": "0x00"},
        "hubs": [
            {"count": 1, "host": "192.168.1.1", "Loss%": 0.0, "Snt": 10,
             "Last": 1.1, "Avg": 1.2, "Best": 0.9, "Wrst": 2.0, "StDev": 0.3},
            {"count": 2, "host": "???", "Loss%": 100.0, "Snt": 10,
             "Last": 0.0, "Avg": 0.0, "Best": 0.0, "Wrst": 0.0, "StDev": 0.0},
            {"count": 3, "host": "8.8.8.8", "Loss%": 10.0, "Snt": 10,
             "Last": 14.2, "Avg": 14.5, "Best": 13.9, "Wrst": 16.0, "StDev": 0.6},
        ],
    }
}

MTR_JSON = json.dumps(MTR_REPORT)


class FakeToolRunner:
    """
    Scripts tool results by binary name. A response may be a stdout string,
    a ToolOutput, an exception instance to raise, or an async callable taking
    the command. Binaries without a response are reported as unavailable.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []
        self.killed = 0

    async def run(self, cmd, timeout, check=True):
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        response = self.responses.get(cmd[0])
        if response is None:
            raise ToolUnavailable(cmd[0], "No such file or directory")
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = await response(cmd)
        if isinstance(response, str):
            response = ToolOutput(stdout=response, stderr="", returncode=0)
        if check and response.returncode != 0:
            raise ToolFailed(cmd[0], response.returncode, response.stderr)
        return response

    def kill_all(self):
        self.killed += 1
        return 0

    def tools_called(self):
        return [c[0] for c in self.calls]


def slow(stdout, delay):
    async def respond(cmd):
        await asyncio.sleep(delay)
        return stdout
    return respond
