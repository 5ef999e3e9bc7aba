"""Parser for ``jobstat -anL`` output (all users, long format).

The output has a banner, a dashed delimiter line, then blank-line separated
blocks.  One block is the cluster summary::

    nodes: 14 of 28 in use
    cpus: 620 of 1792 in use
    gpus: 9 of 56 in use

Every other block describes one job; the first line is the job id and the
rest are ``key = value`` lines::

    4231.cm
        Job_Name = relax
        Job_Owner = alice@login1
        job_state = R
        ...
"""

import logging
import re
from dataclasses import dataclass, field

from ..exceptions import ParseError
from .records import JobRecord, JobState, NOT_YET_KNOWN, record_from_fields
from .utils import date_to_unix_timestamp, parse_job_id

logger = logging.getLogger(__name__)

SECTION_DELIMITER = "--------------------\n"
CLUSTER_BLOCK_PREFIX = "nodes: "

# "key = value" or "key =" with an empty value; anything else continues the previous field
FIELD_LINE = re.compile(r"^(\S+) =(?: (.*))?$")

# Usage placeholders for jobs that have not started yet
QUEUED_PLACEHOLDERS = {
    "resources_used.mem": "0",
    "resources_used.walltime": "00:00:00",
    "resources_used.cpupercent": "0",
    "resources_used.cput": "00:00:00",
    "start_time": str(NOT_YET_KNOWN),
}


@dataclass
class ClusterStatus:
    """Cluster-wide utilisation from the jobstat summary block."""
    nodes_used: int
    nodes_total: int
    cpus_used: int
    cpus_total: int
    gpus_used: int
    gpus_total: int


@dataclass
class JobstatSnapshot:
    """Result of parsing one jobstat invocation.

    ``active_ids`` holds the id of every listed job block, including blocks
    whose fields failed to parse.
    """
    jobs: list[JobRecord] = field(default_factory=list)
    cluster: ClusterStatus | None = None
    errors: int = 0
    active_ids: set[int] = field(default_factory=set)


def parse_cluster_status(block: str) -> ClusterStatus:
    """Extract the six counters from the summary block by line/field position.

    Raises:
        ParseError: If the block does not have the expected shape
    """
    lines = [line.split() for line in block.strip().splitlines()]
    try:
        values = [int(lines[row][col]) for row in range(3) for col in (1, 3)]
    except (IndexError, ValueError):
        raise ParseError(f"Invalid cluster status block: {block!r}") from None
    return ClusterStatus(*values)


def parse_jobstat_fields(block: str) -> dict[str, str]:
    """Split one job block into its raw field map.

    Raises:
        ParseError: If a line is not ``key = value`` or a date is malformed
    """
    fields: dict[str, str] = {}
    lines = block.strip("\n").splitlines()
    if not lines:
        raise ParseError("Empty job block")

    fields["job_id"] = lines[0].strip()
    last_name = None
    for line in lines[1:]:
        line = line.strip()
        if not line or line.startswith(CLUSTER_BLOCK_PREFIX):
            continue
        match = FIELD_LINE.match(line)
        if match is None:
            # Long values wrap onto continuation lines
            if last_name not in fields:
                raise ParseError(f"Invalid field line: {line!r}")
            fields[last_name] += line
            continue
        name, value = match.group(1), (match.group(2) or "").strip()
        last_name = name

        if name == "stime":
            fields["start_time"] = str(date_to_unix_timestamp(value))
        elif name == "estimated.start_time":
            fields["est_start_time"] = str(date_to_unix_timestamp(value))
        elif name == "Job_Owner":
            fields[name] = value.split("@", 1)[0]
        else:
            fields[name] = value
    return fields


def parse_jobstat_job(block: str) -> JobRecord:
    """Parse one job block into a JobRecord.

    Queued jobs get zeroed usage placeholders and an unknown start time.

    Raises:
        ParseError: If the block lacks job_state or any other required field
    """
    fields = parse_jobstat_fields(block)

    state = fields.get("job_state")
    if state is None:
        raise ParseError("Job state not found")
    if state == JobState.QUEUED:
        fields.update(QUEUED_PLACEHOLDERS)
        fields.pop("exec_host", None)
        fields.setdefault("Resource_List.walltime", "00:00:01")

    # Live jobs never carry an end time
    fields.pop("end_time", None)
    return record_from_fields(fields)


def parse_jobstat_output(output: str) -> JobstatSnapshot:
    """Parse a full jobstat output into job records and cluster status.

    Bad job blocks are logged and counted, never fatal to their siblings.
    Their ids still land in ``active_ids`` so reconciliation leaves them be.
    A bad cluster block is logged and leaves ``cluster`` as None.

    Raises:
        ParseError: If the section delimiter is missing entirely
    """
    text = output.replace("\r\n", "\n")
    _, sep, body = text.partition(SECTION_DELIMITER)
    if not sep:
        raise ParseError(f"Invalid jobstat output (no delimiter): {output[:200]!r}")

    snapshot = JobstatSnapshot()
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        if block.lstrip("\n").startswith(CLUSTER_BLOCK_PREFIX):
            try:
                snapshot.cluster = parse_cluster_status(block)
            except ParseError as e:
                logger.error(f"Couldn't parse cluster status: {e}")
            continue
        try:
            snapshot.active_ids.add(parse_job_id(block.strip("\n").splitlines()[0]))
        except ParseError as e:
            logger.warning(f"Job block without a readable id: {e}")
        try:
            snapshot.jobs.append(parse_jobstat_job(block))
        except ParseError as e:
            snapshot.errors += 1
            logger.error(f"Couldn't parse jobstat job block: {e}\nJob block: {block}")

    return snapshot
