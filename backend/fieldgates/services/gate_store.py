"""
Entity store adapter over the SQLAlchemy session.

Every write commits on its own. The one exception is ``resolve_gate``, which
stores a gate's new photos, its terminal status and any job side effect in a
single commit guarded by a status predicate, so a gate that was resolved
concurrently is never overwritten.
"""

import uuid
from collections.abc import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from fieldgates.core.exceptions import GateAlreadyResolvedError, NotFoundError
from fieldgates.models.gate import Gate
from fieldgates.models.job import Job
from fieldgates.models.photo import Photo
from fieldgates.services.gate_state import (
    OPEN_STATUSES,
    STAGE_ORDER,
    GateStatus,
    stage_position,
)


class GateStore:
    def __init__(self, db: Session):
        self.db = db

    # -- reads ---------------------------------------------------------------

    def get_job(self, job_id: str) -> Job:
        job = self.db.query(Job).filter(Job.id == job_id).first()
        if not job:
            raise NotFoundError(resource="Job", resource_id=job_id)
        return job

    def get_gate(self, gate_id: str) -> Gate:
        gate = self.db.query(Gate).filter(Gate.id == gate_id).first()
        if not gate:
            raise NotFoundError(resource="Gate", resource_id=gate_id)
        return gate

    def list_gates(self, job_id: str) -> list[Gate]:
        gates = self.db.query(Gate).filter(Gate.job_id == job_id).all()
        return sorted(gates, key=lambda g: stage_position(g.stage_name))

    def list_photos(self, job_id: str, gate_id: str | None = None) -> list[Photo]:
        query = self.db.query(Photo).filter(Photo.job_id == job_id)
        if gate_id is not None:
            query = query.filter(Photo.gate_id == gate_id)
        return query.order_by(Photo.created_at).all()

    def get_photo(self, job_id: str, photo_id: str) -> Photo:
        photo = self.db.query(Photo).filter(Photo.id == photo_id, Photo.job_id == job_id).first()
        if not photo:
            raise NotFoundError(resource="Photo", resource_id=photo_id)
        return photo

    def list_jobs(self, lead_tech_id: str | None = None) -> list[Job]:
        query = self.db.query(Job)
        if lead_tech_id is not None:
            query = query.filter(Job.lead_tech_id == lead_tech_id)
        return query.order_by(Job.updated_at.desc()).all()

    def exception_counts(self) -> list[tuple[Job, int]]:
        rows = (
            self.db.query(Job, func.count(Gate.id).label("n"))
            .join(Gate, Gate.job_id == Job.id)
            .filter(Gate.requires_exception.is_(True))
            .group_by(Job.id)
            .order_by(func.count(Gate.id).desc())
            .all()
        )
        return [(job, n) for job, n in rows]

    def completed_gates_without_photos(self, stage_names: Iterable[str],
                                       job_id: str | None = None) -> list[tuple[Gate, Job]]:
        has_photo = (
            self.db.query(Photo.id).filter(Photo.gate_id == Gate.id).exists()
        )
        query = (
            self.db.query(Gate, Job)
            .join(Job, Job.id == Gate.job_id)
            .filter(
                Gate.stage_name.in_(list(stage_names)),
                Gate.status == GateStatus.COMPLETE.value,
                Gate.requires_exception.is_(False),
                ~has_photo,
            )
        )
        if job_id is not None:
            query = query.filter(Gate.job_id == job_id)
        return query.order_by(Gate.completed_at.desc()).all()

    # -- writes --------------------------------------------------------------

    def create_job_with_gates(self, title: str, address: str | None,
                              lead_tech_id: str | None, now: str) -> Job:
        job = Job(
            id=str(uuid.uuid4()),
            title=title,
            address=address,
            status="lead",
            lead_tech_id=lead_tech_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(job)
        for stage in STAGE_ORDER:
            self.db.add(Gate(
                id=str(uuid.uuid4()),
                job_id=job.id,
                stage_name=stage.value,
                status=GateStatus.PENDING.value,
                gate_metadata={},
                requires_exception=False,
                created_at=now,
                updated_at=now,
            ))
        self.db.commit()
        self.db.refresh(job)
        return job

    def update_job(self, job_id: str, patch: dict, now: str) -> Job:
        job = self.get_job(job_id)
        for key, value in patch.items():
            setattr(job, key, value)
        job.updated_at = now
        self.db.commit()
        self.db.refresh(job)
        return job

    def update_gate(self, gate_id: str, patch: dict, now: str,
                    expected_status: Iterable[str] | None = None) -> Gate | None:
        """Apply ``patch`` to a gate.

        With ``expected_status`` the write is conditional on the row's current
        status; ``None`` is returned when the predicate did not match.
        """
        if expected_status is None:
            gate = self.get_gate(gate_id)
            for key, value in patch.items():
                setattr(gate, key, value)
            gate.updated_at = now
            self.db.commit()
            self.db.refresh(gate)
            return gate

        matched = self._conditional_gate_update(gate_id, patch, now, expected_status)
        self.db.commit()
        return self.get_gate(gate_id) if matched else None

    def create_photo(self, record: dict) -> Photo:
        photo = Photo(**record)
        self.db.add(photo)
        self.db.commit()
        self.db.refresh(photo)
        return photo

    def resolve_gate(self, gate_id: str, patch: dict, now: str,
                     photos: Iterable[dict] = (), job_patch: dict | None = None) -> Gate:
        """Move an open gate to a terminal status, in one commit with its side effects.

        Raises ``GateAlreadyResolvedError`` and writes nothing if the gate was
        no longer open when the update ran.
        """
        try:
            for record in photos:
                self.db.add(Photo(**record))
            self.db.flush()
            if not self._conditional_gate_update(gate_id, patch, now, OPEN_STATUSES):
                self.db.rollback()
                current = self.get_gate(gate_id)
                raise GateAlreadyResolvedError(current.id, current.stage_name, current.status)
            if job_patch:
                gate = self.db.query(Gate.job_id).filter(Gate.id == gate_id).one()
                job = self.get_job(gate.job_id)
                for key, value in job_patch.items():
                    setattr(job, key, value)
                job.updated_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return self.get_gate(gate_id)

    def _conditional_gate_update(self, gate_id: str, patch: dict, now: str,
                                 expected_status: Iterable[str]) -> bool:
        values = {getattr(Gate, key): value for key, value in patch.items()}
        values[Gate.updated_at] = now
        matched = (
            self.db.query(Gate)
            .filter(Gate.id == gate_id, Gate.status.in_(list(expected_status)))
            .update(values, synchronize_session=False)
        )
        # Bulk UPDATE bypasses the identity map.
        self.db.expire_all()
        return matched > 0
