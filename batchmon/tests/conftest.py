"""Shared fixtures and sample scheduler output for batchmon tests."""

import pytest

from batchmon.database import JobStore
from batchmon.parsers import NOT_YET_KNOWN, JobRecord

# 2024-10-14 10:00:00 UTC
OCT_14_10AM = 1728900000
# 2024-10-15 08:30:00 UTC
OCT_15_0830 = 1728981000

JOBSTAT_OUTPUT = (
    "Metis job status (all users)\r\n"
    "--------------------\r\n"
    "nodes: 14 of 28 in use\r\n"
    "cpus: 620 of 1792 in use\r\n"
    "gpus: 9 of 56 in use\r\n"
    "\r\n"
    "4231.cm\r\n"
    "    Job_Name = relax\r\n"
    "    Job_Owner = alice@login1\r\n"
    "    job_state = R\r\n"
    "    queue = short\r\n"
    "    stime = Mon Oct 14 10:00:00 2024\r\n"
    "    exec_host = node3/0*8+node3/1*8+node7/0*8\r\n"
    "    Resource_List.mem = 32gb\r\n"
    "    Resource_List.ncpus = 16\r\n"
    "    Resource_List.ngpus = 1\r\n"
    "    Resource_List.walltime = 04:00:00\r\n"
    "    Resource_List.select = 2:ncpus=8:mem=16gb\r\n"
    "    resources_used.mem = 8388608kb\r\n"
    "    resources_used.cpupercent = 800\r\n"
    "    resources_used.walltime = 01:00:00\r\n"
    "    resources_used.cput = 08:00:00\r\n"
    "\r\n"
    "4232.cm\r\n"
    "    Job_Name = sweep\r\n"
    "    Job_Owner = bob@login2\r\n"
    "    job_state = Q\r\n"
    "    queue = long\r\n"
    "    estimated.start_time = Tue Oct 15 08:30:00 2024\r\n"
    "    Resource_List.mem = 4gb\r\n"
    "    Resource_List.ncpus = 4\r\n"
    "    Resource_List.walltime = 10:00:00\r\n"
    "\r\n"
    "4233.cm\r\n"
    "    Job_Name = broken\r\n"
    "    Job_Owner = carol@login1\r\n"
    "    queue = short\r\n"
)

JMANL_OUTPUT = (
    "Jobs for alice in the last year\n"
    "Job 4102.cm-pbs-01 (16 CPUs, 2 node(s), 2 chunk(s))\n"
    "Job 4103.cm-pbs-01 (4 CPUs, 1 node(s), 1 chunk(s))\n"
    "\n"
    "Raw records::\n"
    "10/14/2024 13:00:00;E;4102.cm-pbs-01;user=alice group=chem jobname=relax queue=short "
    "start=1728900000 end=1728910800 exec_host=node3/0*8+node4/0*8 Resource_List.mem=32gb "
    "Resource_List.ncpus=16 Resource_List.walltime=04:00:00 Resource_List.select=2:ncpus=8 "
    "resources_used.mem=16777216kb resources_used.cpupercent=1200 "
    "resources_used.walltime=03:00:00 resources_used.cput=36:00:00 Exit_status=0\n"
    "10/14/2024 13:30:00;E;4104.cm-pbs-01;group=chem jobname=orphan queue=short "
    "start=1728911000 end=1728914600 Resource_List.mem=8gb Resource_List.ncpus=4 "
    "Resource_List.walltime=02:00:00 resources_used.mem=1gb resources_used.cpupercent=100 "
    "resources_used.walltime=01:00:00\n"
    "10/14/2024 14:00:00;E;4103.cm-pbs-01;user=alice group=chem jobname=post queue=short "
    "start=1728911000 end=1728914600 exec_host=node5/0 Resource_List.mem=8gb "
    "Resource_List.ncpus=4 Resource_List.walltime=02:00:00 resources_used.mem=1gb "
    "resources_used.cpupercent=100 resources_used.walltime=01:00:00 Exit_status=1\n"
)


def build_record(pbs_id=100, owner="alice", state="R", **overrides) -> JobRecord:
    """A valid JobRecord with sensible defaults."""
    fields = dict(
        pbs_id=pbs_id,
        name=f"job{pbs_id}",
        owner=owner,
        state=state,
        queue="short",
        start_time=OCT_14_10AM,
        end_time=NOT_YET_KNOWN,
        nodes="node1",
        req_mem=16.0,
        req_cpus=8,
        req_gpus=0,
        req_walltime="04:00:00",
        req_select="1:ncpus=8",
        used_cpu_percent=400.0,
        used_mem=4.0,
        used_walltime="01:00:00",
        used_cpu_time="04:00:00",
        mem_efficiency=25.0,
        walltime_efficiency=25.0,
        cpu_efficiency=50.0,
    )
    fields.update(overrides)
    return JobRecord(**fields)


@pytest.fixture
def store():
    """Fresh in-memory JobStore."""
    job_store = JobStore(":memory:")
    yield job_store
    job_store.close()


@pytest.fixture
def make_record():
    """Factory fixture for build_record()."""
    return build_record
