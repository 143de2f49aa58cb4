import logging
import math
import re
from typing import Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from gamewatch.exceptions import FetchError, ParseError
from gamewatch.models.host import DiskMount, HostMetricsSnapshot

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0

CPU_METRIC = "node_cpu_seconds_total"
MEM_TOTAL_METRIC = "node_memory_MemTotal_bytes"
MEM_AVAILABLE_METRIC = "node_memory_MemAvailable_bytes"
FS_SIZE_METRIC = "node_filesystem_size_bytes"
FS_AVAIL_METRIC = "node_filesystem_avail_bytes"
FS_FREE_METRIC = "node_filesystem_free_bytes"

# Pseudo and ephemeral mounts, plus single-file bind mounts like /etc/hosts
_IGNORED_MOUNT_PREFIXES = ("/proc", "/sys", "/dev", "/run", "/etc/")
_ALLOWED_FS_TYPES = frozenset({"overlay", "ext4", "xfs", "btrfs", "zfs", "apfs"})

# metric_name{label="value",...} value [timestamp]
_SAMPLE_PATTERN = re.compile(
    r"^(?P<name>[a-zA-Z_:][a-zA-Z0-9_:]*)"
    r"(?:\{(?P<labels>.*)\})?"
    r"\s+(?P<value>\S+)"
    r"(?:\s+-?\d+)?\s*$"
)
_LABEL_PATTERN = re.compile(r'([a-zA-Z_][a-zA-Z0-9_]*)\s*=\s*"((?:[^"\\]|\\.)*)"')


def _parse_sample(line: str) -> Tuple[str, Dict[str, str], float]:
    """
    Split one exposition line into (name, labels, value).

    Raises ParseError if the line is not a sample or the value is not a
    finite number.
    """
    match = _SAMPLE_PATTERN.match(line)
    if not match:
        raise ParseError(f"not a sample line: {line[:80]!r}")

    try:
        value = float(match.group("value"))
    except ValueError as exc:
        raise ParseError(f"invalid sample value in {line[:80]!r}") from exc
    if not math.isfinite(value):
        raise ParseError(f"non-finite sample value in {line[:80]!r}")

    labels = dict(_LABEL_PATTERN.findall(match.group("labels") or ""))
    return match.group("name"), labels, value


def _is_reported_mount(mount: DiskMount) -> bool:
    if mount.mount_point.startswith(_IGNORED_MOUNT_PREFIXES):
        return False
    if mount.filesystem_type not in _ALLOWED_FS_TYPES:
        return False
    return mount.total_bytes > 0


def parse_prometheus_metrics(text: str) -> HostMetricsSnapshot:
    """
    Turn node-exporter text output into a HostMetricsSnapshot.

    CPU counters of all cores and modes are summed into one host-wide total,
    samples with mode="idle" are additionally summed into the idle total.
    Filesystem samples are grouped by their mountpoint label and may arrive
    in any order. Lines that cannot be parsed and negative CPU counters are
    skipped and leave the affected value at its default.
    """
    cpu_idle = 0.0
    cpu_total = 0.0
    memory_total = 0
    memory_available = 0
    mounts: Dict[str, DiskMount] = {}
    free_bytes: Dict[str, int] = {}
    seen_avail = set()
    skipped = 0

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        try:
            name, labels, value = _parse_sample(line)
        except ParseError as exc:
            skipped += 1
            logger.debug("Skipping metrics line: %s", exc)
            continue

        if name == CPU_METRIC:
            if value < 0:
                skipped += 1
                logger.debug("Skipping negative CPU counter: %s", line[:80])
                continue
            cpu_total += value
            if labels.get("mode") == "idle":
                cpu_idle += value
        elif name == MEM_TOTAL_METRIC:
            memory_total = int(max(0.0, value))
        elif name == MEM_AVAILABLE_METRIC:
            memory_available = int(max(0.0, value))
        elif name in (FS_SIZE_METRIC, FS_AVAIL_METRIC, FS_FREE_METRIC):
            mount_point = labels.get("mountpoint")
            if not mount_point:
                continue
            mount = mounts.setdefault(mount_point, DiskMount(mount_point=mount_point))
            if labels.get("fstype") and not mount.filesystem_type:
                mount.filesystem_type = labels["fstype"]

            num_bytes = int(max(0.0, value))
            if name == FS_SIZE_METRIC:
                mount.total_bytes = num_bytes
            elif name == FS_AVAIL_METRIC:
                mount.available_bytes = num_bytes
                seen_avail.add(mount_point)
            else:
                free_bytes[mount_point] = num_bytes

    if skipped:
        logger.debug("Skipped %d unparseable metrics lines", skipped)

    # avail wins over free, regardless of line order
    for mount_point, num_bytes in free_bytes.items():
        if mount_point not in seen_avail:
            mounts[mount_point].available_bytes = num_bytes

    reported: List[DiskMount] = sorted(
        (mount for mount in mounts.values() if _is_reported_mount(mount)),
        key=lambda mount: mount.mount_point,
    )

    error_message: Optional[str] = None
    cpu_usage = 0.0
    if cpu_total > 0:
        cpu_usage = min(100.0, max(0.0, (cpu_total - cpu_idle) / cpu_total * 100))
    else:
        error_message = "No CPU metrics parsed"

    if memory_total == 0 and error_message is None:
        error_message = "No memory metrics parsed"

    return HostMetricsSnapshot(
        cpu_usage_percent=cpu_usage,
        cpu_idle_seconds_total=cpu_idle,
        cpu_total_seconds_total=cpu_total,
        memory_total_bytes=memory_total,
        memory_available_bytes=memory_available,
        mounts=reported,
        is_valid=error_message is None,
        error_message=error_message,
    )


async def _download(url: str, client: Optional[httpx.AsyncClient], timeout: float) -> str:
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.get(url)
        else:
            response = await client.get(url, timeout=timeout)
        response.raise_for_status()
    except httpx.TimeoutException as exc:
        raise FetchError("Request timeout") from exc
    except httpx.HTTPStatusError as exc:
        raise FetchError(f"HTTP {exc.response.status_code} from {url}") from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"Connection failed: {exc}") from exc

    try:
        return response.text
    except UnicodeDecodeError as exc:
        raise FetchError(f"Parse error: {exc}") from exc


async def fetch_metrics(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> HostMetricsSnapshot:
    """
    Fetch node-exporter metrics from ``url`` and parse them.

    This function never raises. Unreachable endpoints, timeouts, non-2xx
    responses and undecodable bodies produce an invalid snapshot whose
    error_message describes the problem.
    """
    try:
        text = await _download(url, client, timeout)
    except FetchError as exc:
        logger.error("Host metrics error: %s", exc)
        return HostMetricsSnapshot.invalid(str(exc))

    logger.debug("node-exporter returned %d bytes", len(text))
    try:
        snapshot = parse_prometheus_metrics(text)
    except ValidationError as exc:
        logger.error("Host metrics error: %s", exc)
        return HostMetricsSnapshot.invalid(f"Parse error: {exc}")
    if not snapshot.is_valid:
        logger.error("Host metrics incomplete: %s", snapshot.error_message)
    return snapshot
