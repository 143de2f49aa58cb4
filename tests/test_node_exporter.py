import asyncio

import httpx
import pytest

from gamewatch.models.host import HostMetricsSnapshot
from gamewatch.services import node_exporter
from gamewatch.services.node_exporter import fetch_metrics, parse_prometheus_metrics

SAMPLE_METRICS = """\
# HELP node_cpu_seconds_total Seconds the CPUs spent in each mode.
# TYPE node_cpu_seconds_total counter
node_cpu_seconds_total{cpu="0",mode="idle"} 60
node_cpu_seconds_total{cpu="0",mode="user"} 200
node_cpu_seconds_total{cpu="1",mode="idle"} 40
node_cpu_seconds_total{cpu="1",mode="system"} 100
# HELP node_memory_MemTotal_bytes Memory information field MemTotal_bytes.
node_memory_MemTotal_bytes 17179869184
node_memory_MemAvailable_bytes 4294967296
node_filesystem_avail_bytes{device="/dev/sda1",fstype="ext4",mountpoint="/"} 6e+10
node_filesystem_size_bytes{device="/dev/sda1",fstype="ext4",mountpoint="/"} 1e+11
node_filesystem_free_bytes{device="/dev/sda1",fstype="ext4",mountpoint="/"} 7e+10
node_filesystem_size_bytes{device="tank",fstype="zfs",mountpoint="/mnt/tank"} 2e+12
node_filesystem_free_bytes{device="tank",fstype="zfs",mountpoint="/mnt/tank"} 5e+11
node_filesystem_size_bytes{device="proc",fstype="ext4",mountpoint="/proc/foo"} 1000
node_filesystem_avail_bytes{device="proc",fstype="ext4",mountpoint="/proc/foo"} 10
node_filesystem_size_bytes{device="tmpfs",fstype="tmpfs",mountpoint="/tmp"} 8e+09
node_filesystem_size_bytes{device="/dev/sdb1",fstype="xfs",mountpoint="/data"} 0
node_filesystem_size_bytes{device="/dev/sda1",fstype="ext4",mountpoint="/etc/hosts"} 1e+11
"""


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_single_snapshot_cpu_usage():
    text = (
        'node_cpu_seconds_total{mode="idle"} 100\n'
        'node_cpu_seconds_total{mode="user"} 300\n'
        "node_memory_MemTotal_bytes 1024\n"
    )
    snapshot = parse_prometheus_metrics(text)

    assert snapshot.is_valid is True
    assert snapshot.cpu_idle_seconds_total == 100
    assert snapshot.cpu_total_seconds_total == 400
    assert snapshot.cpu_usage_percent == 75.0


def test_sample_metrics_are_aggregated():
    snapshot = parse_prometheus_metrics(SAMPLE_METRICS)

    assert snapshot.is_valid is True
    assert snapshot.error_message is None
    assert snapshot.cpu_total_seconds_total == 400
    assert snapshot.cpu_idle_seconds_total == 100
    assert snapshot.cpu_usage_percent == 75.0
    assert snapshot.memory_total_bytes == 16 * 1024**3
    assert snapshot.memory_available_bytes == 4 * 1024**3
    assert snapshot.memory_used_bytes == 12 * 1024**3


def test_mounts_are_filtered_and_sorted():
    snapshot = parse_prometheus_metrics(SAMPLE_METRICS)

    assert [m.mount_point for m in snapshot.mounts] == ["/", "/mnt/tank"]

    root, tank = snapshot.mounts
    # avail wins over free, even when free comes later
    assert root.available_bytes == 60_000_000_000
    assert root.filesystem_type == "ext4"
    assert root.used_bytes == 40_000_000_000
    assert root.usage_percent == pytest.approx(40.0)
    # free is used when avail is missing
    assert tank.available_bytes == 500_000_000_000
    assert tank.filesystem_type == "zfs"


def test_pseudo_mount_with_allowed_type_is_excluded():
    text = (
        'node_cpu_seconds_total{mode="idle"} 1\n'
        "node_memory_MemTotal_bytes 1024\n"
        'node_filesystem_size_bytes{fstype="ext4",mountpoint="/proc/foo"} 5000\n'
        'node_filesystem_size_bytes{fstype="ext4",mountpoint="/srv"} 0\n'
    )
    assert parse_prometheus_metrics(text).mounts == []


def test_missing_cpu_metrics_marks_snapshot_invalid():
    snapshot = parse_prometheus_metrics("node_memory_MemTotal_bytes 1024\n")

    assert snapshot.is_valid is False
    assert snapshot.error_message == "No CPU metrics parsed"
    assert snapshot.cpu_usage_percent == 0.0


def test_missing_memory_does_not_override_cpu_error():
    snapshot = parse_prometheus_metrics("# nothing here\n")
    assert snapshot.is_valid is False
    assert snapshot.error_message == "No CPU metrics parsed"

    snapshot = parse_prometheus_metrics('node_cpu_seconds_total{mode="idle"} 5\n')
    assert snapshot.is_valid is False
    assert snapshot.error_message == "No memory metrics parsed"


def test_malformed_lines_are_skipped():
    text = (
        'node_cpu_seconds_total{mode="idle"} 100\n'
        'node_cpu_seconds_total{mode="user"} not-a-number\n'
        'node_cpu_seconds_total{mode="nice"} NaN\n'
        "garbage line without value\n"
        'node_cpu_seconds_total{mode="user"} 300 1700000000000\n'
        "node_memory_MemTotal_bytes 2048\n"
    )
    snapshot = parse_prometheus_metrics(text)

    assert snapshot.is_valid is True
    assert snapshot.cpu_total_seconds_total == 400
    assert snapshot.memory_total_bytes == 2048


def test_fetch_metrics_parses_response():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/metrics"
        return httpx.Response(200, text=SAMPLE_METRICS)

    async def run():
        async with _mock_client(handler) as client:
            return await fetch_metrics("http://node-exporter:9100/metrics", client=client)

    snapshot = asyncio.run(run())
    assert snapshot.is_valid is True
    assert snapshot.cpu_usage_percent == 75.0


def test_unreachable_endpoint_returns_invalid_snapshot():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    async def run():
        async with _mock_client(handler) as client:
            return await fetch_metrics("http://node-exporter:9100/metrics", client=client)

    snapshot = asyncio.run(run())

    assert snapshot.is_valid is False
    assert snapshot.error_message
    assert "Connection failed" in snapshot.error_message
    assert snapshot.cpu_usage_percent == 0.0
    assert snapshot.cpu_idle_seconds_total == 0.0
    assert snapshot.cpu_total_seconds_total == 0.0
    assert snapshot.memory_total_bytes == 0
    assert snapshot.memory_available_bytes == 0
    assert snapshot.mounts == []


def test_timeout_returns_invalid_snapshot():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async def run():
        async with _mock_client(handler) as client:
            return await fetch_metrics("http://node-exporter:9100/metrics", client=client)

    snapshot = asyncio.run(run())
    assert snapshot.is_valid is False
    assert snapshot.error_message == "Request timeout"


def test_non_2xx_returns_invalid_snapshot():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    async def run():
        async with _mock_client(handler) as client:
            return await fetch_metrics("http://node-exporter:9100/metrics", client=client)

    snapshot = asyncio.run(run())
    assert snapshot.is_valid is False
    assert "503" in snapshot.error_message


def test_fetch_without_client_uses_own_client(monkeypatch):
    """Without an injected client fetch_metrics opens and closes its own."""
    created = []
    real_client = httpx.AsyncClient

    def fake_client(**kwargs):
        created.append(kwargs)
        return real_client(transport=httpx.MockTransport(lambda r: httpx.Response(200, text=SAMPLE_METRICS)))

    monkeypatch.setattr(node_exporter.httpx, "AsyncClient", fake_client)

    snapshot = asyncio.run(fetch_metrics("http://node-exporter:9100/metrics"))
    assert snapshot.is_valid is True
    assert created == [{"timeout": 5.0}]


def test_negative_cpu_counter_is_skipped():
    body = (
        'node_cpu_seconds_total{mode="idle"} 5\n'
        'node_cpu_seconds_total{mode="user"} -20\n'
        "node_memory_MemTotal_bytes 1024\n"
    )

    async def run():
        async with _mock_client(lambda request: httpx.Response(200, text=body)) as client:
            return await fetch_metrics("http://node-exporter:9100/metrics", client=client)

    snapshot = asyncio.run(run())
    assert snapshot.is_valid is True
    assert snapshot.cpu_total_seconds_total == 5.0
    assert snapshot.cpu_idle_seconds_total == 5.0
    assert snapshot.memory_total_bytes == 1024


def test_snapshot_validation_error_returns_invalid_snapshot(monkeypatch):
    def rejecting_parser(text: str) -> HostMetricsSnapshot:
        return HostMetricsSnapshot(memory_total_bytes=-1)

    monkeypatch.setattr(node_exporter, "parse_prometheus_metrics", rejecting_parser)

    async def run():
        async with _mock_client(lambda request: httpx.Response(200, text=SAMPLE_METRICS)) as client:
            return await fetch_metrics("http://node-exporter:9100/metrics", client=client)

    snapshot = asyncio.run(run())
    assert snapshot.is_valid is False
    assert snapshot.error_message.startswith("Parse error:")
