from typing import List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(num_bytes: int) -> str:
    """Format a byte count with binary multiples, e.g. 1536 -> '1.5 KB'."""
    value = float(num_bytes)
    order = 0
    while value >= 1024 and order < len(_SIZE_UNITS) - 1:
        value /= 1024
        order += 1
    return f"{value:.2f}".rstrip("0").rstrip(".") + f" {_SIZE_UNITS[order]}"


class DiskMount(BaseModel):
    """A filesystem mount point and its usage."""

    mount_point: str = Field(..., description="Mount path, e.g. / or /mnt/storage")
    total_bytes: int = Field(0, ge=0, description="Filesystem size in bytes")
    available_bytes: int = Field(0, ge=0, description="Bytes available to unprivileged users")
    filesystem_type: Optional[str] = Field(None, description="Filesystem type, e.g. ext4")

    @computed_field  # type: ignore[misc]
    @property
    def used_bytes(self) -> int:
        return max(0, self.total_bytes - self.available_bytes)

    @computed_field  # type: ignore[misc]
    @property
    def usage_percent(self) -> float:
        if self.total_bytes == 0:
            return 0.0
        return self.used_bytes / self.total_bytes * 100

    @computed_field  # type: ignore[misc]
    @property
    def used_human(self) -> str:
        return format_bytes(self.used_bytes)

    @computed_field  # type: ignore[misc]
    @property
    def total_human(self) -> str:
        return format_bytes(self.total_bytes)


class HostMetricsSnapshot(BaseModel):
    """
    Host metrics scraped from node-exporter at one point in time.

    The two ``cpu_*_seconds_total`` fields are cumulative counters. They are
    only carried forward so the next snapshot can compute a usage delta and
    mean nothing on their own. When ``is_valid`` is False the numeric fields
    must not be trusted and ``error_message`` says why.
    """

    cpu_usage_percent: float = Field(0.0, ge=0, le=100)
    cpu_idle_seconds_total: float = Field(0.0, ge=0)
    cpu_total_seconds_total: float = Field(0.0, ge=0)
    memory_total_bytes: int = Field(0, ge=0)
    memory_available_bytes: int = Field(0, ge=0)
    mounts: List[DiskMount] = Field(default_factory=list)
    is_valid: bool = False
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def _invalid_needs_reason(self) -> "HostMetricsSnapshot":
        if not self.is_valid and not self.error_message:
            raise ValueError("an invalid snapshot must carry an error_message")
        return self

    @classmethod
    def invalid(cls, message: str) -> "HostMetricsSnapshot":
        """Return a snapshot with all numeric fields at zero and the given reason."""
        return cls(is_valid=False, error_message=message)

    @computed_field  # type: ignore[misc]
    @property
    def memory_used_bytes(self) -> int:
        return max(0, self.memory_total_bytes - self.memory_available_bytes)

    @computed_field  # type: ignore[misc]
    @property
    def memory_used_percent(self) -> float:
        if self.memory_total_bytes == 0:
            return 0.0
        return self.memory_used_bytes / self.memory_total_bytes * 100
