"""Reconciliation store shared by the poll daemons and the reporting layer.

``JobStore`` owns the SQLAlchemy session factory and serialises every
database operation on one mutex.  Two small in-memory snapshots live beside
it: the group-membership cache and the latest cluster status.  Both are
advisory and may be read while a daemon is replacing them.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..parsers import ClusterStatus, JobRecord, JobState
from .models import Base, Group, Job, PastStat, User, UserGroup
from .session import ADMIN_GROUP, get_session_factory, init_db

logger = logging.getLogger(__name__)

# Owner value shown to users outside the privileged view
REDACTED_OWNER = "REDACTED"


@dataclass(frozen=True)
class LoginResult:
    success: bool
    created_new: bool = False


def _state_values(states) -> list[str]:
    if isinstance(states, (str, JobState)):
        states = [states]
    return [JobState(s).value for s in states]


class JobStore:
    """Durable job, user and group state plus the in-memory snapshots.

    Args:
        db_path: SQLite file, ``":memory:"``, or None for the configured path
        engine: Existing engine to use instead of opening ``db_path``
    """

    def __init__(self, db_path=None, engine=None, echo: bool = False):
        if engine is None:
            engine = init_db(db_path, echo=echo)
        else:
            Base.metadata.create_all(engine)
        self.engine = engine
        self._session_factory = get_session_factory(engine)
        self._lock = threading.Lock()

        self._cache_lock = threading.Lock()
        self._groups_cache: dict[str, set[str]] = {}
        self._cluster_status: ClusterStatus | None = None

        with self._session() as session:
            session.merge(Group(name=ADMIN_GROUP))
            for edge in session.scalars(select(UserGroup)):
                self._groups_cache.setdefault(edge.user_name, set()).add(edge.group_name)

    @contextmanager
    def _session(self):
        """Yield a session under the store mutex; commit on success, roll back on error."""
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def close(self):
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def upsert_job(self, record: JobRecord, now: int | None = None) -> None:
        """Insert or overwrite one job row and append a usage sample."""
        self.upsert_jobs([record], now=now)

    def upsert_jobs(self, records: Iterable[JobRecord], now: int | None = None) -> int:
        """Insert or overwrite job rows in one transaction.

        Each record also registers its owner in Users (if new) and appends one
        PastStats row stamped with ``now`` (defaults to the current time).
        A persistence error rolls back the whole batch and propagates.

        Returns:
            Number of records written
        """
        records = list(records)
        if not records:
            return 0
        if now is None:
            now = int(time.time())

        with self._session() as session:
            for owner in sorted({r.owner for r in records}):
                _ensure_user(session, owner)
            session.flush()

            for record in records:
                session.merge(Job(**record.to_row()))
                session.add(PastStat(
                    pbs_id=record.pbs_id,
                    cpu_percent=record.used_cpu_percent,
                    mem=record.used_mem,
                    datetime=now,
                ))
        logger.debug(f"Upserted {len(records)} jobs")
        return len(records)

    def mark_completed(self, active: Iterable[JobRecord | int], now: int | None = None) -> list[int]:
        """Mark running jobs absent from the active snapshot as ended.

        ``active`` holds records or bare job ids; a listed job whose record
        failed to parse is passed by id so it is not ended by mistake.  Only
        rows in state R are considered; queued and already-ended rows are
        left alone.

        Returns:
            Sorted ids of the jobs that transitioned to E
        """
        active_ids = {a if isinstance(a, int) else a.pbs_id for a in active}
        if now is None:
            now = int(time.time())

        completed = []
        with self._session() as session:
            running = session.scalars(
                select(Job).where(Job.state == JobState.RUNNING.value).order_by(Job.pbs_id)
            )
            for job in running:
                if job.pbs_id in active_ids:
                    continue
                job.state = JobState.ENDED.value
                job.end_time = now
                completed.append(job.pbs_id)

        if completed:
            logger.info(f"Marked {len(completed)} jobs as completed")
        return completed

    def _query_jobs(
        self,
        *conditions,
        states=None,
        queue: str | None = None,
        owner: str | None = None,
        name: str | None = None,
        min_start_time: int | None = None,
        censor: bool = False,
    ) -> list[dict]:
        stmt = select(Job).where(*conditions)
        if states:
            stmt = stmt.where(Job.state.in_(_state_values(states)))
        if queue:
            stmt = stmt.where(Job.queue == queue)
        if owner:
            stmt = stmt.where(Job.owner == owner)
        if name:
            stmt = stmt.where(Job.name.contains(name))
        if min_start_time is not None:
            stmt = stmt.where(Job.start_time >= min_start_time)
        stmt = stmt.order_by(Job.pbs_id)

        with self._session() as session:
            jobs = [job.to_dict() for job in session.scalars(stmt)]
        if censor:
            for job in jobs:
                job["owner"] = REDACTED_OWNER
        return jobs

    def get_user_jobs(self, username: str, states=None, queue=None, owner=None,
                      name=None, min_start_time=None) -> list[dict]:
        """Jobs owned by ``username``, narrowed by the optional filters."""
        return self._query_jobs(
            Job.owner == username,
            states=states, queue=queue, owner=owner, name=name,
            min_start_time=min_start_time,
        )

    def get_all_jobs(self, states=None, queue=None, owner=None, name=None,
                     min_start_time=None, censor: bool = False) -> list[dict]:
        """All jobs matching the filters; ``censor`` hides every owner."""
        return self._query_jobs(
            states=states, queue=queue, owner=owner, name=name,
            min_start_time=min_start_time, censor=censor,
        )

    def get_group_jobs(self, group: str, states=None, queue=None, owner=None,
                       name=None, min_start_time=None) -> list[dict]:
        """Jobs owned by any member of ``group``."""
        members = select(UserGroup.user_name).where(UserGroup.group_name == group)
        return self._query_jobs(
            Job.owner.in_(members),
            states=states, queue=queue, owner=owner, name=name,
            min_start_time=min_start_time,
        )

    def get_job(self, pbs_id: int) -> dict | None:
        with self._session() as session:
            job = session.get(Job, pbs_id)
            return job.to_dict() if job is not None else None

    def get_job_stats(self, pbs_id: int) -> list[dict]:
        """Usage samples of one job in ingestion order."""
        stmt = select(PastStat).where(PastStat.pbs_id == pbs_id).order_by(PastStat.stat_id)
        with self._session() as session:
            return [stat.to_dict() for stat in session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Users and groups
    # ------------------------------------------------------------------

    def get_users(self) -> list[str]:
        with self._session() as session:
            return list(session.scalars(select(User.name).order_by(User.name)))

    def insert_user(self, name: str) -> bool:
        """Insert a user if absent.  Returns True when the user was created."""
        with self._session() as session:
            return _ensure_user(session, name)

    def insert_user_group(self, user: str, group: str) -> None:
        """Record one membership edge (idempotent) and add it to the cache."""
        with self._session() as session:
            _ensure_membership(session, user, group)
        with self._cache_lock:
            self._groups_cache.setdefault(user, set()).add(group)

    def set_user_groups(self, user: str, groups: Iterable[str]) -> None:
        """Record a user's current groups and replace their cache entry.

        Edges are only ever added to the store; the cache reflects the latest
        sync.
        """
        groups = set(groups)
        with self._session() as session:
            _ensure_user(session, user)
            for group in sorted(groups):
                _ensure_membership(session, user, group)
        with self._cache_lock:
            self._groups_cache[user] = groups

    def get_groups_cache(self) -> dict[str, set[str]]:
        """Copy of the user → groups snapshot."""
        with self._cache_lock:
            return {user: set(groups) for user, groups in self._groups_cache.items()}

    def is_user_in_group(self, user: str, group: str) -> bool:
        with self._cache_lock:
            return group in self._groups_cache.get(user, ())

    def is_user_admin(self, user: str) -> bool:
        return self.is_user_in_group(user, ADMIN_GROUP)

    def login(self, username: str, password: str,
              verifier: Callable[[str, str], bool]) -> LoginResult:
        """Check credentials with ``verifier``; register the user on success.

        ``created_new`` tells the caller to backfill the new user's groups
        and job history.
        """
        if not verifier(username, password):
            logger.info(f"Failed login for {username}")
            return LoginResult(success=False)
        created_new = self.insert_user(username)
        if created_new:
            logger.info(f"Registered new user {username}")
        return LoginResult(success=True, created_new=created_new)

    # ------------------------------------------------------------------
    # Cluster status
    # ------------------------------------------------------------------

    @property
    def cluster_status(self) -> ClusterStatus | None:
        with self._cache_lock:
            return self._cluster_status

    def set_cluster_status(self, status: ClusterStatus | None) -> None:
        with self._cache_lock:
            self._cluster_status = status


def _ensure_user(session: Session, name: str) -> bool:
    if session.get(User, name) is not None:
        return False
    session.add(User(name=name))
    session.flush()
    return True


def _ensure_membership(session: Session, user: str, group: str) -> None:
    _ensure_user(session, user)
    if session.get(Group, group) is None:
        session.add(Group(name=group))
        session.flush()
    if session.get(UserGroup, (user, group)) is None:
        session.add(UserGroup(user_name=user, group_name=group))
