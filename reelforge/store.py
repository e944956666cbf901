"""
Persistence adapter for job records.

Every pipeline stage does read-modify-write through JobStore. Each call opens
its own short session, so a single update is atomic and pollers never see a
half-written job.
"""

import copy
import logging
import re
from datetime import datetime, timezone

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError

from reelforge.models import Job, JobStatus, OPTIONAL_COLUMNS, TERMINAL_STATUSES

_MISSING_COLUMN = re.compile(
    r"no such column|has no column|unknown column|column .+ does not exist",
    re.IGNORECASE,
)


class JobStoreError(Exception):
    """Raised when the job table rejects a read or write."""


class JobNotFoundError(JobStoreError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidTransitionError(JobStoreError):
    """Raised when a job is asked to leave a terminal state."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_missing_column(exc: Exception) -> bool:
    return bool(_MISSING_COLUMN.search(str(exc)))


def _without_optional(values: dict) -> dict:
    return {k: v for k, v in values.items() if k not in OPTIONAL_COLUMNS}


class JobStore:
    """Durable record of job and section state, backed by SQLAlchemy."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.table = Job.__table__

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _write(self, build, values: dict):
        """
        Executes build(values) and commits. If the database is missing one of
        the optional columns, retries once with those fields dropped.
        """
        try:
            return self._commit(build(values))
        except JobStoreError:
            raise
        except DBAPIError as e:
            stripped = _without_optional(values)
            if not _is_missing_column(e) or stripped == values:
                raise JobStoreError(str(e.orig or e)) from e
            logging.warning(f"⚠️ Job table is missing an optional column, retrying without {sorted(set(values) - set(stripped))}")
        try:
            return self._commit(build(stripped))
        except DBAPIError as e:
            raise JobStoreError(str(e.orig or e)) from e

    def _commit(self, statement):
        with self.session_factory() as db:
            try:
                result = db.execute(statement)
                db.commit()
                return result
            except IntegrityError as e:
                db.rollback()
                raise JobStoreError(f"Constraint violation: {e.orig}") from e
            except DBAPIError:
                db.rollback()
                raise

    def _select(self, where=None, order_by=None):
        columns = list(self.table.c)
        with self.session_factory() as db:
            try:
                rows = db.execute(self._select_statement(columns, where, order_by)).mappings().all()
            except DBAPIError as e:
                if not _is_missing_column(e):
                    raise JobStoreError(str(e.orig or e)) from e
                db.rollback()
                columns = [c for c in columns if c.name not in OPTIONAL_COLUMNS]
                rows = db.execute(self._select_statement(columns, where, order_by)).mappings().all()
        return [self._to_dict(row) for row in rows]

    @staticmethod
    def _select_statement(columns, where, order_by):
        statement = select(*columns)
        if where is not None:
            statement = statement.where(where)
        if order_by is not None:
            statement = statement.order_by(order_by)
        return statement

    @staticmethod
    def _to_dict(row) -> dict:
        job = {name: None for name in OPTIONAL_COLUMNS}
        job.update(dict(row))
        job["sections"] = copy.deepcopy(job.get("sections"))
        job["captions"] = copy.deepcopy(job.get("captions"))
        return job

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    def insert(self, job: dict) -> dict:
        now = utcnow()
        values = {
            "status": JobStatus.QUEUED.value,
            "sections": [],
            "created_at": now,
            "updated_at": now,
        }
        values.update(job)
        self._write(lambda v: insert(self.table).values(**v), values)
        return self.get(values["id"])

    def update(self, job_id: str, **fields) -> dict:
        """Applies a partial update, stamps updated_at and returns the fresh record."""
        values = dict(fields, updated_at=utcnow())
        result = self._write(
            lambda v: update(self.table).where(self.table.c.id == job_id).values(**v),
            values,
        )
        if result.rowcount == 0:
            raise JobNotFoundError(job_id)
        return self.get(job_id)

    def get(self, job_id: str) -> dict:
        rows = self._select(where=self.table.c.id == job_id)
        if not rows:
            raise JobNotFoundError(job_id)
        return rows[0]

    def list_for_owner(self, owner_id: str) -> list:
        return self._select(
            where=self.table.c.owner_id == owner_id,
            order_by=self.table.c.created_at.desc(),
        )

    def delete(self, job_id: str) -> None:
        result = self._commit(delete(self.table).where(self.table.c.id == job_id))
        if result.rowcount == 0:
            raise JobNotFoundError(job_id)

    def transition(self, job_id: str, status: str, **fields) -> dict:
        """
        Moves a job that is still running to status, along with any extra
        fields. Raises InvalidTransitionError if the job already finished, so a
        cancellation is never overwritten by a late stage update.
        """
        result = self._commit(
            update(self.table)
            .where(self.table.c.id == job_id)
            .where(self.table.c.status.notin_(TERMINAL_STATUSES))
            .values(status=status, updated_at=utcnow(), **fields)
        )
        if result.rowcount == 0:
            job = self.get(job_id)
            raise InvalidTransitionError(f"Job {job_id} has already finished ({job['status']})")
        return self.get(job_id)

    def cancel(self, job_id: str) -> dict:
        return self.transition(job_id, JobStatus.CANCELLED.value)
