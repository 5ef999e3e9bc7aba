"""Canonical job record produced by the scheduler-output parsers."""

import enum
from dataclasses import asdict, dataclass

from ..exceptions import ParseError
from .utils import (
    convert_mem_to_gb,
    cpu_efficiency,
    mem_efficiency,
    parse_exec_host,
    parse_job_id,
    to_float,
    to_int,
    trim_reserved_mem,
    walltime_efficiency,
)

# Timestamp meaning "not yet known" (start of a queued job, end of a live job)
NOT_YET_KNOWN = 2**31 - 1


class JobState(str, enum.Enum):
    """Lifecycle states tracked in the Jobs table."""
    QUEUED = "Q"
    RUNNING = "R"
    ENDED = "E"


@dataclass
class JobRecord:
    """One job as reported by jobstat or jmanl, validated and with derived fields.

    Field names match the Jobs table columns so a record maps straight onto
    a row.
    """

    pbs_id: int
    name: str
    owner: str
    state: str
    queue: str
    start_time: int
    end_time: int
    nodes: str
    req_mem: float
    req_cpus: int
    req_gpus: int
    req_walltime: str
    req_select: str
    used_cpu_percent: float
    used_mem: float
    used_walltime: str
    used_cpu_time: str
    mem_efficiency: float
    walltime_efficiency: float
    cpu_efficiency: float
    chunks: int | None = None
    exit_status: int | None = None
    est_start_time: int | None = None

    def to_row(self) -> dict:
        return asdict(self)


def _require(fields: dict, key: str) -> str:
    value = fields.get(key)
    if value is None or value == "":
        raise ParseError(f"Missing field {key!r}")
    return value


def _optional_int(fields: dict, key: str) -> int | None:
    value = fields.get(key)
    if value is None or value == "":
        return None
    return to_int(value, key)


def record_from_fields(fields: dict[str, str]) -> JobRecord:
    """Build a JobRecord from a parser's raw field map.

    The field map uses the scheduler's own key names (``Job_Owner``,
    ``Resource_List.mem``, ``resources_used.walltime`` ...) plus the
    normalised keys ``job_id``, ``start_time``, ``end_time``,
    ``est_start_time`` and ``chunks`` set by the individual parsers.

    Raises:
        ParseError: If a required field is missing or malformed
    """
    used_mem = convert_mem_to_gb(_require(fields, "resources_used.mem"))
    req_mem = convert_mem_to_gb(trim_reserved_mem(_require(fields, "Resource_List.mem")))
    req_cpus = to_int(_require(fields, "Resource_List.ncpus"), "Resource_List.ncpus")
    used_cpu_percent = to_float(
        _require(fields, "resources_used.cpupercent"), "resources_used.cpupercent"
    )
    req_walltime = _require(fields, "Resource_List.walltime")
    used_walltime = _require(fields, "resources_used.walltime")

    exec_host = fields.get("exec_host")
    nodes = parse_exec_host(exec_host) if exec_host else "None"

    start_time = _optional_int(fields, "start_time")
    end_time = _optional_int(fields, "end_time")

    return JobRecord(
        pbs_id=parse_job_id(_require(fields, "job_id")),
        name=_require(fields, "Job_Name"),
        owner=_require(fields, "Job_Owner"),
        state=_require(fields, "job_state"),
        queue=_require(fields, "queue"),
        start_time=NOT_YET_KNOWN if start_time is None else start_time,
        end_time=NOT_YET_KNOWN if end_time is None else end_time,
        nodes=nodes,
        req_mem=req_mem,
        req_cpus=req_cpus,
        req_gpus=_optional_int(fields, "Resource_List.ngpus") or 0,
        req_walltime=req_walltime,
        req_select=fields.get("Resource_List.select", ""),
        used_cpu_percent=used_cpu_percent,
        used_mem=used_mem,
        used_walltime=used_walltime,
        used_cpu_time=fields.get("resources_used.cput") or "00:00:00",
        mem_efficiency=mem_efficiency(used_mem, req_mem),
        walltime_efficiency=walltime_efficiency(req_walltime, used_walltime),
        cpu_efficiency=cpu_efficiency(used_cpu_percent, req_cpus),
        chunks=_optional_int(fields, "chunks"),
        exit_status=_optional_int(fields, "Exit_status"),
        est_start_time=_optional_int(fields, "est_start_time"),
    )
