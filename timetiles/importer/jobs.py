"""Import job records and their stage progression."""

import logging
import traceback
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from timetiles.core.store import DataStore

logger = logging.getLogger(__name__)

IMPORT_JOBS_COLLECTION = "import-jobs"
IMPORT_FILES_COLLECTION = "import-files"
USERS_COLLECTION = "users"


class ProcessingStage(str, Enum):
    ANALYZE_DUPLICATES = "analyze-duplicates"
    DETECT_SCHEMA = "detect-schema"
    VALIDATE_SCHEMA = "validate-schema"
    AWAIT_APPROVAL = "await-approval"
    GEOCODE_BATCH = "geocode-batch"
    CREATE_EVENTS = "create-events"
    COMPLETED = "completed"
    FAILED = "failed"


# Pipeline order; completed and failed are terminal and not part of it
STAGE_ORDER: tuple[ProcessingStage, ...] = (
    ProcessingStage.ANALYZE_DUPLICATES,
    ProcessingStage.DETECT_SCHEMA,
    ProcessingStage.VALIDATE_SCHEMA,
    ProcessingStage.AWAIT_APPROVAL,
    ProcessingStage.GEOCODE_BATCH,
    ProcessingStage.CREATE_EVENTS,
)

# Stages that map to a queued background job of the same name
QUEUEABLE_STAGES = frozenset(STAGE_ORDER) - {ProcessingStage.AWAIT_APPROVAL}


class ImportJob(BaseModel):
    """One sheet of an uploaded file moving through the pipeline."""

    id: str
    stage: ProcessingStage = ProcessingStage.ANALYZE_DUPLICATES
    last_successful_stage: ProcessingStage | None = None
    retry_attempts: int = 0
    error_log: dict[str, Any] = Field(default_factory=dict)
    import_file: str | None = None
    sheet_index: int = 0
    last_retry_at: str | None = None
    next_retry_at: str | None = None

    model_config = ConfigDict(extra="allow")

    @property
    def last_error(self) -> str:
        return str(self.error_log.get("last_error") or "")

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "ImportJob":
        return cls.model_validate(doc)


def next_stage(stage: ProcessingStage) -> ProcessingStage:
    """Stage following ``stage``; the last pipeline stage leads to completed."""
    index = STAGE_ORDER.index(stage)
    if index + 1 < len(STAGE_ORDER):
        return STAGE_ORDER[index + 1]
    return ProcessingStage.COMPLETED


def job_type_for_stage(stage: ProcessingStage | str) -> str | None:
    """Background job type that runs ``stage``, or None if it is not queued."""
    stage = ProcessingStage(stage)
    return stage.value if stage in QUEUEABLE_STAGES else None


async def create_import_job(
    store: DataStore, import_file: str | None, sheet_index: int = 0, **extra: Any
) -> ImportJob:
    doc = await store.create(
        IMPORT_JOBS_COLLECTION,
        {
            "stage": ProcessingStage.ANALYZE_DUPLICATES.value,
            "last_successful_stage": None,
            "retry_attempts": 0,
            "error_log": {},
            "import_file": import_file,
            "sheet_index": sheet_index,
            **extra,
        },
    )
    return ImportJob.from_document(doc)


async def get_import_job(store: DataStore, job_id: str) -> ImportJob | None:
    doc = await store.find_by_id(IMPORT_JOBS_COLLECTION, job_id)
    return ImportJob.from_document(doc) if doc else None


async def complete_stage(
    store: DataStore, job_id: str, stage: ProcessingStage
) -> ImportJob:
    """Record ``stage`` as done and advance the job to the following stage.

    Raises:
        KeyError: If the job does not exist
        ValueError: If completing ``stage`` would move the job backwards
    """
    job = await get_import_job(store, job_id)
    if job is None:
        raise KeyError(job_id)
    if stage not in STAGE_ORDER:
        raise ValueError(f"Cannot complete terminal stage {stage.value}")
    if (
        job.last_successful_stage is not None
        and STAGE_ORDER.index(stage) < STAGE_ORDER.index(job.last_successful_stage)
    ):
        raise ValueError(
            f"Job {job_id} already completed {job.last_successful_stage.value}; "
            f"cannot complete earlier stage {stage.value}"
        )

    doc = await store.update(
        IMPORT_JOBS_COLLECTION,
        job_id,
        {"stage": next_stage(stage).value, "last_successful_stage": stage.value},
    )
    return ImportJob.from_document(doc)


async def fail_job(store: DataStore, job_id: str, error: BaseException | str) -> ImportJob:
    """Move a job to ``failed`` and record the error; the checkpoint is kept.

    Raises:
        KeyError: If the job does not exist
    """
    job = await get_import_job(store, job_id)
    if job is None:
        raise KeyError(job_id)

    error_log = {**job.error_log, "last_error": str(error)}
    if isinstance(error, BaseException):
        error_log["stack"] = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )

    logger.warning(f"Import job {job_id} failed at {job.stage.value}: {error}")
    doc = await store.update(
        IMPORT_JOBS_COLLECTION,
        job_id,
        {"stage": ProcessingStage.FAILED.value, "error_log": error_log},
    )
    return ImportJob.from_document(doc)
