"""Operator command-line interface for batchmon."""

import threading
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.table import Table

from .config import BatchmonConfig
from .database import JobStore, init_db
from .log_config import configure_logging
from .parsers import NOT_YET_KNOWN, JobState
from .remote import RemoteExecutor, make_verifier
from .sync import (
    backfill_user,
    build_daemons,
    sync_all_groups,
    sync_all_histories,
    sync_current_jobs,
    sync_user_groups,
    sync_user_history,
)

STATE_NAMES = {"Q": "Queued", "R": "Running", "E": "Ended"}


def db_option(func):
    return click.option(
        "--db", "db_path", default=None,
        type=click.Path(dir_okay=False),
        help=f"SQLite database file (default: {BatchmonConfig.DB_PATH})",
    )(func)


def format_timestamp(value: int | None) -> str:
    if value is None or value == NOT_YET_KNOWN:
        return "-"
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def print_stats(title: str, stats: dict) -> None:
    click.echo(f"\n{title}:")
    for key, value in stats.items():
        if isinstance(value, list):
            value = ", ".join(value) or "-"
        click.echo(f"  {key.replace('_', ' ').capitalize()}: {value}")


@click.group()
@click.option("--log-level", default=None, help="Log level (default: BATCHMON_LOG_LEVEL or INFO)")
def cli(log_level):
    """Monitor PBS jobs on a remote cluster."""
    configure_logging(log_level or BatchmonConfig.LOG_LEVEL)


@cli.command()
@db_option
def init(db_path):
    """Create the database tables and seed the admin group."""
    engine = init_db(db_path)
    click.echo(f"Initialized database: {engine.url}")


@cli.command()
@db_option
@click.option("--max-workers", type=int, default=None,
              help="Cap on concurrent per-user tasks (default: one per user)")
@click.option("--timeout", type=float, default=None, help="Per-command timeout in seconds")
def serve(db_path, max_workers, timeout):
    """Run the jobs, old-jobs and groups daemons until interrupted."""
    executor = RemoteExecutor.from_config(timeout=timeout)
    store = JobStore(db_path)
    stop_event = threading.Event()
    daemons = build_daemons(executor, store, stop_event=stop_event, max_workers=max_workers)

    click.echo("[ Starting daemons... ]")
    for daemon in daemons:
        daemon.start()
    try:
        while any(d.is_alive() for d in daemons):
            stop_event.wait(1)
    except KeyboardInterrupt:
        click.echo("\n[ Stopping daemons... ]")
        stop_event.set()
        for daemon in daemons:
            daemon.join()
    finally:
        executor.close()
        store.close()


@cli.command()
@click.argument("what", type=click.Choice(["jobs", "old-jobs", "groups"]))
@click.option("-u", "--user", default=None, help="Only this user (old-jobs and groups)")
@click.option("--window", default=None, help=f"jmanl window (default: {BatchmonConfig.HISTORY_WINDOW})")
@db_option
def poll(what, user, window, db_path):
    """Run one poll cycle now and print what it did.

    \b
    Examples:
      batchmon poll jobs
      batchmon poll old-jobs -u alice --window month
      batchmon poll groups
    """
    executor = RemoteExecutor.from_config()
    store = JobStore(db_path)
    try:
        if what == "jobs":
            print_stats("Current jobs", sync_current_jobs(executor, store))
            status = store.cluster_status
            if status is not None:
                click.echo(
                    f"  Nodes: {status.nodes_used}/{status.nodes_total}  "
                    f"CPUs: {status.cpus_used}/{status.cpus_total}  "
                    f"GPUs: {status.gpus_used}/{status.gpus_total}"
                )
        elif what == "old-jobs":
            if user:
                print_stats("Old jobs", sync_user_history(executor, store, user, window=window))
            else:
                print_stats("Old jobs", sync_all_histories(executor, store, window=window))
        elif user:
            groups = sync_user_groups(executor, store, user)
            click.echo(f"{user}: {' '.join(groups)}")
        else:
            print_stats("Groups", sync_all_groups(executor, store))
    finally:
        executor.close()
        store.close()


@cli.command()
@click.option("-u", "--user", default=None, help="Jobs owned by this user")
@click.option("-g", "--group", default=None, help="Jobs owned by members of this group")
@click.option("-s", "--state", "states", multiple=True,
              type=click.Choice([s.value for s in JobState]), help="Job state (repeatable)")
@click.option("-q", "--queue", default=None)
@click.option("-n", "--name", default=None, help="Substring of the job name")
@click.option("--censor", is_flag=True, help="Hide job owners")
@db_option
def jobs(user, group, states, queue, name, censor, db_path):
    """List jobs in the store."""
    store = JobStore(db_path)
    try:
        if user:
            rows = store.get_user_jobs(user, states=states, queue=queue, name=name)
        elif group:
            rows = store.get_group_jobs(group, states=states, queue=queue, name=name)
        else:
            rows = store.get_all_jobs(states=states, queue=queue, name=name, censor=censor)
    finally:
        store.close()

    console = Console()
    table = Table(title=f"Jobs ({len(rows)})")
    for header in ("ID", "Name", "Owner", "State", "Queue", "Start", "End",
                   "CPU %", "Mem %", "Wall %"):
        table.add_column(header, justify="right" if header.endswith("%") else "left")
    for row in rows:
        table.add_row(
            str(row["pbs_id"]), row["name"], row["owner"],
            STATE_NAMES.get(row["state"], row["state"]), row["queue"],
            format_timestamp(row["start_time"]), format_timestamp(row["end_time"]),
            f"{row['cpu_efficiency']:.1f}", f"{row['mem_efficiency']:.1f}",
            f"{row['walltime_efficiency']:.1f}",
        )
    console.print(table)


@cli.command()
@click.argument("pbs_id", type=int)
@db_option
def stats(pbs_id, db_path):
    """Show one job and its recorded usage samples."""
    store = JobStore(db_path)
    try:
        job = store.get_job(pbs_id)
        samples = store.get_job_stats(pbs_id)
    finally:
        store.close()

    if job is None:
        click.echo(f"Error: no job {pbs_id}", err=True)
        raise click.Abort()

    console = Console()
    console.print(f"[bold]{job['pbs_id']}[/bold] {job['name']} ({job['owner']}, "
                  f"{STATE_NAMES.get(job['state'], job['state'])}, queue {job['queue']})")
    table = Table(title=f"Usage samples ({len(samples)})")
    table.add_column("Time")
    table.add_column("CPU %", justify="right")
    table.add_column("Mem (GB)", justify="right")
    for sample in samples:
        table.add_row(format_timestamp(sample["datetime"]),
                      f"{sample['cpu_percent']:.1f}", f"{sample['mem']:.2f}")
    console.print(table)


@cli.command()
@click.argument("username")
@click.password_option(confirmation_prompt=False)
@click.option("--no-backfill", is_flag=True, help="Skip fetching a new user's groups and history")
@db_option
def login(username, password, no_backfill, db_path):
    """Verify cluster credentials and register the user."""
    executor = RemoteExecutor.from_config()
    store = JobStore(db_path)
    try:
        result = store.login(username, password, make_verifier(executor))
        if not result.success:
            click.echo("Login failed", err=True)
            raise click.Abort()
        click.echo(f"Logged in as {username}" + (" (new user)" if result.created_new else ""))
        if result.created_new and not no_backfill:
            print_stats("Backfill", backfill_user(executor, store, username))
    finally:
        executor.close()
        store.close()


if __name__ == "__main__":
    cli()
