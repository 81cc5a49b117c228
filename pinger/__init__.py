"""Container pinger.

Periodic container-health reconciler:
 - discovers live containers from the Docker runtime
 - pings each of them concurrently (ICMP echo)
 - upserts reachability/latency into a remote status store
 - deletes store records for containers that disappeared

The loop survives individual probe and store failures; a bad cycle is
logged and the next tick starts fresh.
"""

__version__ = "0.2.0"
