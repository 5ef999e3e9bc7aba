"""SQLAlchemy ORM models for the batchmon job store."""

from sqlalchemy import Column, Float, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class User(Base):
    """Cluster user, created when first seen as a job owner or at login."""
    __tablename__ = "Users"
    name = Column(Text, primary_key=True)

    def __repr__(self):
        return f"<User(name='{self.name}')>"


class Group(Base):
    """Unix group on the cluster."""
    __tablename__ = "Groups"
    name = Column(Text, primary_key=True)

    def __repr__(self):
        return f"<Group(name='{self.name}')>"


class UserGroup(Base):
    """User ↔ Group membership edge."""
    __tablename__ = "UserGroups"
    user_name = Column(Text, ForeignKey("Users.name"), primary_key=True)
    group_name = Column(Text, ForeignKey("Groups.name"), primary_key=True, index=True)

    def __repr__(self):
        return f"<UserGroup(user='{self.user_name}', group='{self.group_name}')>"


class Job(Base):
    """Latest known state of one scheduler job.

    One row per PBS job id; every poll that reports the job overwrites the
    row.  Times are Unix epoch seconds, with 2**31 - 1 meaning "not yet
    known".  Memory is in GB, walltimes are HH:MM:SS strings.
    """

    __tablename__ = "Jobs"

    pbs_id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(Text, nullable=False)
    owner = Column(Text, ForeignKey("Users.name"), nullable=False)
    state = Column(Text, nullable=False)
    start_time = Column(Integer, nullable=False)
    end_time = Column(Integer, nullable=False)
    queue = Column(Text, nullable=False)
    nodes = Column(Text, nullable=False)

    # Requested resources
    req_mem = Column(Float, nullable=False)
    req_cpus = Column(Integer, nullable=False)
    req_gpus = Column(Integer, nullable=False)
    req_walltime = Column(Text, nullable=False)
    req_select = Column(Text, nullable=False)

    # Derived efficiencies (percent)
    mem_efficiency = Column(Float, nullable=False)
    walltime_efficiency = Column(Float, nullable=False)
    cpu_efficiency = Column(Float, nullable=False)

    # Latest usage
    used_cpu_percent = Column(Float, nullable=False)
    used_mem = Column(Float, nullable=False)
    used_walltime = Column(Text, nullable=False)
    used_cpu_time = Column(Text, nullable=False)

    # Only known for some sources
    chunks = Column(Integer)
    exit_status = Column(Integer)
    est_start_time = Column(Integer)

    stats = relationship("PastStat", back_populates="job", order_by="PastStat.stat_id")

    __table_args__ = (
        Index("ix_jobs_owner_state", "owner", "state"),
        Index("ix_jobs_state_start", "state", "start_time"),
    )

    def __repr__(self):
        return f"<Job(pbs_id={self.pbs_id}, owner='{self.owner}', state='{self.state}')>"

    def to_dict(self):
        """Convert job row to dictionary."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class PastStat(Base):
    """Usage sample recorded each time a job is ingested.  Append-only."""

    __tablename__ = "PastStats"

    stat_id = Column(Integer, primary_key=True, autoincrement=True)
    pbs_id = Column(Integer, ForeignKey("Jobs.pbs_id"), nullable=False, index=True)
    cpu_percent = Column(Float, nullable=False)
    mem = Column(Float, nullable=False)
    datetime = Column(Integer, nullable=False)

    job = relationship("Job", back_populates="stats")

    def __repr__(self):
        return f"<PastStat(stat_id={self.stat_id}, pbs_id={self.pbs_id})>"

    def to_dict(self):
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}
