"""Parser for ``jmanl <user> <window> raw`` output (per-user job history).

The output starts with a human-readable preamble that, among other things,
lists the chunk count of each job::

    Job 4102.cm-pbs-01 (16 CPUs, 2 node(s), 2 chunk(s))

followed by a ``Raw records::`` marker and one PBS accounting end record
per line::

    10/14/2024 12:00:00;E;4102.cm-pbs-01;user=alice group=chem jobname=relax queue=short ...
"""

import logging
import re

from ..exceptions import ParseError
from .records import JobRecord, record_from_fields
from .utils import to_int

logger = logging.getLogger(__name__)

RAW_MARKER = "Raw records::"

CHUNKS_PATTERN = re.compile(
    r"Job (\d+)\.\S+ \(\d+ CPUs, \d+ node\(s\), (\d+) chunk\(s\)\)"
)

# jmanl key → key used by record_from_fields
FIELD_RENAMES = {
    "start": "start_time",
    "user": "Job_Owner",
    "jobname": "Job_Name",
}


def extract_chunks(output: str) -> dict[str, str]:
    """Map job id → chunk count from the preamble."""
    return {job_id: chunks for job_id, chunks in CHUNKS_PATTERN.findall(output)}


def split_raw_records(output: str) -> list[str]:
    """Return the non-empty record lines after the ``Raw records::`` marker.

    Tries LF line endings first and falls back to CRLF when the LF-based split
    does not find the marker.

    Raises:
        ParseError: If the marker is missing under both conventions
    """
    parts = output.split(RAW_MARKER + "\n", 1)
    if len(parts) == 2:
        lines = parts[1].split("\n")
    else:
        logger.info("Couldn't use LF as delimiter! Trying CRLF...")
        parts = output.split(RAW_MARKER + "\r\n", 1)
        if len(parts) != 2:
            raise ParseError(f"Invalid jmanl output (no raw records): {output[:200]!r}")
        lines = parts[1].split("\r\n")
    return [line for line in lines if line.strip()]


def parse_jmanl_fields(line: str) -> dict[str, str]:
    """Split one raw record line into its field map.

    Raises:
        ParseError: If the positional prefix is incomplete
    """
    parts = line.split(";", 3)
    if len(parts) < 4:
        raise ParseError(f"Invalid jmanl record line: {line!r}")

    fields = {
        "job_state": parts[1].strip(),
        "job_id": parts[2].strip().split(".", 1)[0],
    }
    for token in parts[3].split():
        token = token.rstrip(";")
        if not token:
            continue
        name, _, value = token.partition("=")
        fields[FIELD_RENAMES.get(name, name)] = value
    return fields


def parse_jmanl_line(line: str, chunks: dict[str, str] | None = None) -> JobRecord:
    """Parse one raw record line, merging its chunk count by job id.

    Raises:
        ParseError: If the owner, end time or any other required field is
            missing or malformed
    """
    fields = parse_jmanl_fields(line)
    if not fields.get("Job_Owner"):
        raise ParseError("Missing field 'user'")
    if not fields.get("end"):
        raise ParseError("Missing field 'end'")
    fields["end_time"] = str(to_int(fields["end"], "end"))

    if chunks and fields["job_id"] in chunks:
        fields["chunks"] = chunks[fields["job_id"]]
    return record_from_fields(fields)


def parse_jmanl_output(output: str) -> tuple[list[JobRecord], int]:
    """Parse full jmanl output.

    Returns:
        Tuple of (records, errors): records in output order, and the number of
        lines that were dropped because they could not be parsed

    Raises:
        ParseError: If the output has no raw-record section at all
    """
    chunks = extract_chunks(output)
    records = []
    errors = 0
    for line in split_raw_records(output):
        try:
            records.append(parse_jmanl_line(line, chunks))
        except ParseError as e:
            errors += 1
            logger.error(f"Couldn't parse jmanl job line: {e}\nJob line: {line}")
    return records, errors
