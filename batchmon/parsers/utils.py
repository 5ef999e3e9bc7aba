"""Unit conversion and efficiency helpers shared by the jobstat and jmanl parsers.

Unlike a lenient ``safe_int``-style converter, every helper here raises
ParseError on bad input: a record with a malformed field is dropped by the
caller rather than stored with a silent zero.
"""

from datetime import datetime, timezone

from ..exceptions import ParseError

# Kilobytes → gigabytes (1 / 1024**2, truncated as used on the cluster side)
KB_TO_GB = 0.0000009536743

# Date format used by jobstat for stime / estimated.start_time
JOBSTAT_DATE_FORMAT = "%a %b %d %H:%M:%S %Y"


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------

def convert_mem_to_gb(mem_str: str) -> float:
    """Convert a PBS memory string to gigabytes.

    Args:
        mem_str: Memory string like "1048576kb", "16gb", or a bare number
                 (already in GB)

    Returns:
        Memory in GB as float

    Raises:
        ParseError: If the string has no number or an unrecognised suffix

    Examples:
        >>> convert_mem_to_gb("16")
        16.0
        >>> convert_mem_to_gb("16gb")
        16.0
        >>> round(convert_mem_to_gb("1048576kb"), 6)
        1.0
    """
    if mem_str is None:
        raise ParseError("Missing memory value")
    value = mem_str.strip().lower()
    try:
        return float(value)
    except ValueError:
        pass

    for suffix, factor in (("kb", KB_TO_GB), ("gb", 1.0)):
        if value.endswith(suffix):
            number = value[: -len(suffix)]
            try:
                return float(number) * factor
            except ValueError:
                raise ParseError(f"Invalid memory value: {mem_str!r}") from None

    raise ParseError(f"Unrecognised memory unit: {mem_str!r}")


def trim_reserved_mem(mem_str: str) -> str:
    """Strip a trailing "gb" from a Resource_List.mem value ("16gb" → "16")."""
    value = mem_str.strip()
    if value.lower().endswith("gb"):
        return value[:-2]
    return value


def mem_efficiency(used_gb: float, reserved_gb: float) -> float:
    """Percent of reserved memory actually used."""
    if reserved_gb == 0:
        raise ParseError("Reserved memory cannot be zero")
    return used_gb / reserved_gb * 100


# ---------------------------------------------------------------------------
# Walltime
# ---------------------------------------------------------------------------

def walltime_to_seconds(time_str: str) -> int:
    """Convert HH:MM:SS time string to seconds.

    Args:
        time_str: Time in HH:MM:SS format (e.g., "00:14:18"); hours may
                  exceed 24

    Returns:
        Total seconds as integer

    Raises:
        ParseError: If the string does not have exactly three integer fields

    Examples:
        >>> walltime_to_seconds("00:14:18")
        858
        >>> walltime_to_seconds("57:17:49")
        206269
    """
    if not time_str:
        raise ParseError(f"Invalid time format: {time_str!r}")
    parts = time_str.strip().split(":")
    if len(parts) != 3:
        raise ParseError(f"Invalid time format: {time_str!r}")
    try:
        hours, minutes, seconds = map(int, parts)
    except ValueError:
        raise ParseError(f"Invalid time format: {time_str!r}") from None
    return hours * 3600 + minutes * 60 + seconds


def walltime_efficiency(reserved: str, used: str) -> float:
    """Percent of reserved walltime used; reserved must be non-zero."""
    reserved_seconds = walltime_to_seconds(reserved)
    used_seconds = walltime_to_seconds(used)
    if reserved_seconds == 0:
        raise ParseError("Reserved walltime cannot be zero")
    return used_seconds / reserved_seconds * 100


# ---------------------------------------------------------------------------
# CPU
# ---------------------------------------------------------------------------

def cpu_efficiency(used_cpu_percent: float, reserved_cpus: int) -> float:
    """CPU efficiency from PBS cpupercent (100 per fully busy core).

    Examples:
        >>> cpu_efficiency(400.0, 8)
        50.0
    """
    if reserved_cpus == 0:
        raise ParseError("Reserved CPU count cannot be zero")
    return used_cpu_percent / (reserved_cpus * 100) * 100


# ---------------------------------------------------------------------------
# Misc field helpers
# ---------------------------------------------------------------------------

def parse_exec_host(exec_host: str) -> str:
    """Reduce an exec_host string to a comma-joined, de-duplicated node list.

    Examples:
        >>> parse_exec_host("node3/1+node3/0+node7/2")
        'node3,node7'
    """
    nodes = []
    for chunk in exec_host.split("+"):
        node = chunk.split("/", 1)[0].strip()
        if node and node not in nodes:
            nodes.append(node)
    return ",".join(nodes)


def parse_job_id(raw: str) -> int:
    """Return the numeric job id from "1234" or "1234.server"."""
    try:
        return int(raw.strip().split(".", 1)[0])
    except (ValueError, AttributeError):
        raise ParseError(f"Invalid job id: {raw!r}") from None


def date_to_unix_timestamp(date_str: str) -> int:
    """Convert a jobstat date ("Mon Oct 14 10:00:00 2024", taken as UTC) to epoch seconds."""
    try:
        dt = datetime.strptime(" ".join(date_str.split()), JOBSTAT_DATE_FORMAT)
    except (ValueError, AttributeError):
        raise ParseError(f"Failed to parse date: {date_str!r}") from None
    timestamp = int(dt.replace(tzinfo=timezone.utc).timestamp())
    if timestamp < 0:
        raise ParseError(f"Negative timestamp for date: {date_str!r}")
    return timestamp


def to_int(value: str, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ParseError(f"Invalid integer for {field}: {value!r}") from None


def to_float(value: str, field: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ParseError(f"Invalid number for {field}: {value!r}") from None
