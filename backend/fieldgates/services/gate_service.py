"""
Gate completion orchestrator.

``GateWorkflow`` is what routers call. Completion runs in a fixed order:

    load gate + job -> reject terminal gate -> check assignment
    -> stage validator -> cross-gate checks -> upload photos
    -> one commit: photo rows + conditional status write + job side effect

Nothing is written until validation passes. If an upload fails after its
retries, blobs stored earlier in the same call are deleted and the gate is
left untouched. The terminal check is repeated by the store's conditional
UPDATE, so two racing completions cannot both win.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from fieldgates.config import Settings, settings as default_settings
from fieldgates.core.exceptions import (
    NotAssignedError,
    NotFoundError,
    UploadFailedError,
    ValidationFailedError,
    WrongStageError,
)
from fieldgates.models.gate import Gate
from fieldgates.models.job import Job
from fieldgates.models.photo import Photo
from fieldgates.schemas.gate import ValidationResult
from fieldgates.schemas.metadata import (
    DepartureMetadata,
    MoistureReading,
    StageMetadata,
    parse_stage_metadata,
)
from fieldgates.services.consistency import check_cross_gate
from fieldgates.services.exception_monitor import ExceptionFrequency, ExceptionFrequencyMonitor
from fieldgates.services.gate_state import (
    GateStatus,
    Stage,
    completion_patch,
    ensure_open,
    format_timestamp,
    skip_patch,
    start_patch,
    utcnow,
    validate_transition,
)
from fieldgates.services.gate_store import GateStore
from fieldgates.services.photo_service import PhotoStorage, PhotoUpload, StoredPhoto, upload_with_retry
from fieldgates.services.validators import validate_stage

logger = logging.getLogger(__name__)

# Departure "job status" choices and the job status each one sets.
DEPARTURE_JOB_STATUS = {
    "ready for estimate": "ready_for_estimate",
    "needs follow-up": "needs_follow_up",
    "complete": "complete",
}

MISSING_ARTIFACT_STAGES = (Stage.ARRIVAL.value, Stage.PHOTOS.value)


@dataclass
class CompletionResult:
    gate: Gate
    warnings: list[str] = field(default_factory=list)


def departure_job_status(label: str | None) -> str | None:
    if not label:
        return None
    key = label.strip().lower()
    if key in DEPARTURE_JOB_STATUS:
        return DEPARTURE_JOB_STATUS[key]
    normalized = key.replace(" ", "_").replace("-", "_")
    return normalized if normalized in DEPARTURE_JOB_STATUS.values() else None


class GateWorkflow:
    def __init__(
        self,
        store: GateStore,
        storage: PhotoStorage,
        monitor: ExceptionFrequencyMonitor,
        config: Settings = default_settings,
        clock=utcnow,
        sleep=time.sleep,
    ):
        self.store = store
        self.storage = storage
        self.monitor = monitor
        self.config = config
        self.clock = clock
        self.sleep = sleep

    # -- helpers -------------------------------------------------------------

    def _load(self, gate_id: str) -> tuple[Gate, Job]:
        gate = self.store.get_gate(gate_id)
        job = self.store.get_job(gate.job_id)
        return gate, job

    @staticmethod
    def _ensure_assigned(job: Job, actor_id: str) -> None:
        if not actor_id or job.lead_tech_id != actor_id:
            logger.warning("Actor %s is not assigned to job %s", actor_id, job.id)
            raise NotAssignedError(job.id, job.title, actor_id)

    def _pending_photo(self, gate: Gate, upload: PhotoUpload, actor_id: str) -> Photo:
        # Transient row used only so validators can count photos not yet stored.
        return Photo(
            id=f"pending-{uuid.uuid4()}",
            job_id=gate.job_id,
            gate_id=gate.id,
            storage_path="",
            photo_metadata=self._photo_metadata(gate, upload),
            is_ppe=upload.is_ppe,
            taken_by=actor_id,
        )

    @staticmethod
    def _photo_metadata(gate: Gate, upload: PhotoUpload) -> dict:
        meta = dict(upload.metadata)
        if gate.stage_name == Stage.ARRIVAL.value:
            meta.setdefault("type", "arrival")
        meta.setdefault("stage", gate.stage_name)
        return meta

    def _photo_record(self, gate: Gate, upload: PhotoUpload, stored: StoredPhoto,
                      actor_id: str, now: str) -> dict:
        return {
            "id": str(uuid.uuid4()),
            "job_id": gate.job_id,
            "gate_id": gate.id,
            "storage_path": stored.storage_path,
            "photo_metadata": self._photo_metadata(gate, upload),
            "is_ppe": upload.is_ppe,
            "taken_by": actor_id,
            "file_hash": stored.file_hash,
            "file_size_bytes": stored.file_size_bytes,
            "mime_type": upload.content_type,
            "created_at": now,
        }

    def _upload_all(self, job_id: str, uploads: list[PhotoUpload]) -> list[StoredPhoto]:
        stored: list[StoredPhoto] = []
        try:
            for upload in uploads:
                stored.append(upload_with_retry(
                    self.storage,
                    job_id,
                    upload,
                    max_attempts=self.config.upload_max_attempts,
                    backoff_seconds=self.config.upload_backoff_seconds,
                    max_bytes=self.config.max_upload_bytes,
                    sleep=self.sleep,
                ))
        except UploadFailedError:
            self._discard(stored)
            raise
        return stored

    def _discard(self, stored: list[StoredPhoto]) -> None:
        for blob in stored:
            self.storage.delete(blob.storage_path)
        if stored:
            logger.info("Discarded %d uploaded photo(s) after a failed completion", len(stored))

    def _evaluate(self, gate: Gate, job: Job, metadata: StageMetadata, now: datetime,
                  extra_photos: list[Photo] = ()) -> ValidationResult:
        photos = self.store.list_photos(job.id) + list(extra_photos)
        gates = self.store.list_gates(job.id)
        stage_result = validate_stage(gate, job, photos, metadata)
        cross_result = check_cross_gate(gate, metadata, gates, photos, now)
        return stage_result.merge(cross_result)

    # -- operations ----------------------------------------------------------

    def complete_gate(self, gate_id: str, actor_id: str, metadata: dict | None = None,
                      uploads: list[PhotoUpload] = ()) -> CompletionResult:
        gate, job = self._load(gate_id)
        ensure_open(gate)
        self._ensure_assigned(job, actor_id)

        raw = metadata if metadata is not None else gate.gate_metadata
        meta = parse_stage_metadata(gate.stage_name, raw)
        uploads = list(uploads)
        pending = [self._pending_photo(gate, u, actor_id) for u in uploads]

        moment = self.clock()
        result = self._evaluate(gate, job, meta, moment, pending)
        if not result.is_valid:
            logger.info("Completion of %s gate %s blocked: %d error(s)",
                        gate.stage_name, gate.id, len(result.errors))
            raise ValidationFailedError(result.errors, result.warnings)

        stored = self._upload_all(job.id, uploads)
        now = format_timestamp(moment)
        records = [self._photo_record(gate, u, s, actor_id, now) for u, s in zip(uploads, stored)]

        job_patch = None
        if isinstance(meta, DepartureMetadata):
            new_status = departure_job_status(meta.job_status)
            if new_status:
                job_patch = {"status": new_status}
            elif meta.job_status:
                logger.warning("Unknown departure job status %r on job %s", meta.job_status, job.id)

        patch = completion_patch(actor_id, now)
        patch["gate_metadata"] = meta.to_json()
        try:
            completed = self.store.resolve_gate(gate.id, patch, now, photos=records, job_patch=job_patch)
        except Exception:
            self._discard(stored)
            raise

        logger.info("Gate %s (%s) on job %s completed by %s",
                    completed.id, completed.stage_name, job.id, actor_id)
        return CompletionResult(gate=completed, warnings=result.warnings)

    def log_exception(self, gate_id: str, actor_id: str, reason: str | None) -> Gate:
        gate, job = self._load(gate_id)
        ensure_open(gate)
        self._ensure_assigned(job, actor_id)

        now = format_timestamp(self.clock())
        patch = skip_patch(actor_id, reason, now)
        skipped = self.store.resolve_gate(gate.id, patch, now)

        logger.info("Exception logged on %s gate %s (job %s) by %s: %s",
                    skipped.stage_name, skipped.id, job.id, actor_id, patch["exception_reason"])
        frequency = self.monitor.check(self.store.list_gates(job.id))
        if frequency.needs_review:
            logger.warning("Job %s has %d gate exceptions and needs manager review",
                           job.id, frequency.exception_count)
        return skipped

    def validate_gate(self, gate_id: str, job_id: str) -> ValidationResult:
        gate = self.store.get_gate(gate_id)
        if gate.job_id != job_id:
            raise NotFoundError(resource="Gate", resource_id=gate_id)
        job = self.store.get_job(job_id)
        meta = parse_stage_metadata(gate.stage_name, gate.gate_metadata)
        return self._evaluate(gate, job, meta, self.clock())

    def check_exception_frequency(self, job_id: str) -> ExceptionFrequency:
        self.store.get_job(job_id)
        return self.monitor.check(self.store.list_gates(job_id))

    def save_gate_metadata(self, gate_id: str, actor_id: str, metadata: dict) -> Gate:
        """Autosave: overwrite metadata, never validate, never resolve the gate.

        The payload is stored exactly as sent; half-filled forms are normal
        here and are only checked against the stage model on completion.
        """
        if not isinstance(metadata, dict):
            raise TypeError("Gate metadata must be a JSON object")
        gate, job = self._load(gate_id)
        self._ensure_assigned(job, actor_id)
        return self._write_metadata(gate, dict(metadata))

    def _write_metadata(self, gate: Gate, metadata: dict) -> Gate:
        now = format_timestamp(self.clock())
        gate = self.store.update_gate(gate.id, {"gate_metadata": metadata}, now)
        if validate_transition(gate, "start")["valid"]:
            started = self.store.update_gate(
                gate.id, start_patch(), now, expected_status=[GateStatus.PENDING.value]
            )
            gate = started or self.store.get_gate(gate.id)
        return gate

    def add_moisture_reading(self, gate_id: str, actor_id: str, reading: dict) -> Gate:
        gate, job = self._load(gate_id)
        if gate.stage_name != Stage.MOISTURE_EQUIPMENT.value:
            raise WrongStageError(Stage.MOISTURE_EQUIPMENT.value, gate.stage_name)
        self._ensure_assigned(job, actor_id)

        entry = MoistureReading.model_validate({
            **reading,
            "id": str(uuid.uuid4()),
            "timestamp": format_timestamp(self.clock()),
        })
        metadata = dict(gate.gate_metadata or {})
        metadata["readings"] = [*(metadata.get("readings") or []), entry.to_json()]
        return self._write_metadata(gate, metadata)

    def capture_photo(self, gate_id: str, actor_id: str, upload: PhotoUpload) -> Photo:
        """Store one photo against an open gate outside of completion."""
        gate, job = self._load(gate_id)
        ensure_open(gate)
        self._ensure_assigned(job, actor_id)

        stored = self._upload_all(job.id, [upload])[0]
        now = format_timestamp(self.clock())
        try:
            photo = self.store.create_photo(self._photo_record(gate, upload, stored, actor_id, now))
        except Exception:
            self._discard([stored])
            raise
        if gate.status == GateStatus.PENDING.value:
            self.store.update_gate(gate.id, start_patch(), now, expected_status=[GateStatus.PENDING.value])
        return photo

    def create_job(self, title: str, address: str | None = None,
                   lead_tech_id: str | None = None) -> Job:
        now = format_timestamp(self.clock())
        job = self.store.create_job_with_gates(title, address, lead_tech_id, now)
        logger.info("Created job %s with %d gates", job.id, len(job.gates))
        return job

    def assign_job(self, job_id: str, lead_tech_id: str) -> Job:
        job = self.store.get_job(job_id)
        previous = job.lead_tech_id
        job = self.store.update_job(job_id, {"lead_tech_id": lead_tech_id}, format_timestamp(self.clock()))
        logger.info("Job %s reassigned from %s to %s", job_id, previous, lead_tech_id)
        return job

    def find_missing_artifacts(self, job_id: str | None = None) -> list[tuple[Gate, Job]]:
        """Completed Arrival/Photos gates with no photo and no exception."""
        if job_id is not None:
            self.store.get_job(job_id)
        return self.store.completed_gates_without_photos(MISSING_ARTIFACT_STAGES, job_id)

    def flagged_jobs(self) -> list[tuple[Job, int]]:
        return [(job, n) for job, n in self.store.exception_counts() if n > self.monitor.threshold]


def build_workflow(store: GateStore, config: Settings = default_settings) -> GateWorkflow:
    return GateWorkflow(
        store=store,
        storage=PhotoStorage(config.photos_dir),
        monitor=ExceptionFrequencyMonitor(config.exception_review_threshold),
        config=config,
    )
