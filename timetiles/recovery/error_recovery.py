"""Error recovery for failed import jobs.

Failed jobs are classified by their last error message. Retryable failures
are rescheduled with exponential backoff and resume from the stage after
their last checkpoint (or from schema validation for schema problems).
Every decision is returned as a ``RecoveryResult`` with an action code:

    retry_scheduled, job_not_found, not_failed, not_retryable,
    max_retries_exceeded, quota_exceeded, recovery_failed,
    manual_reset, reset_failed
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from prometheus_client import REGISTRY, Counter

from timetiles.core.store import DataStore, to_timestamp, utc_now
from timetiles.importer.jobs import (
    IMPORT_FILES_COLLECTION,
    IMPORT_JOBS_COLLECTION,
    QUEUEABLE_STAGES,
    STAGE_ORDER,
    USERS_COLLECTION,
    ImportJob,
    ProcessingStage,
    get_import_job,
    job_type_for_stage,
)
from timetiles.recovery.quota import QuotaService, QuotaType

logger = logging.getLogger(__name__)

RECOVERY_ACTIONS = Counter(
    "timetiles_import_recoveries_total",
    "Total number of import job recovery decisions",
    ["action"],
)

try:
    REGISTRY.register(RECOVERY_ACTIONS)
except ValueError:
    # Metric already registered
    pass

Enqueue = Callable[[str, dict[str, Any]], Awaitable[Any]]


class ErrorType(str, Enum):
    RECOVERABLE = "recoverable"
    PERMANENT = "permanent"
    USER_ACTION_REQUIRED = "user-action-required"


@dataclass(frozen=True)
class ErrorClassification:
    type: ErrorType
    reason: str
    retryable: bool
    suggested_action: str | None = None
    # Forces where a retry resumes, regardless of the job's checkpoint
    resume_stage: ProcessingStage | None = None


# Checked in order; the first rule with a matching keyword wins
CLASSIFICATION_RULES: tuple[tuple[tuple[str, ...], ErrorClassification], ...] = (
    (
        ("enoent", "file not found", "no such file"),
        ErrorClassification(
            ErrorType.PERMANENT, "File not found - file may have been deleted", False
        ),
    ),
    (
        ("permission", "unauthorized", "forbidden", "eacces"),
        ErrorClassification(
            ErrorType.PERMANENT, "Permission denied - needs configuration fix", False
        ),
    ),
    (
        ("rate limit", "429", "too many requests"),
        ErrorClassification(
            ErrorType.RECOVERABLE, "Rate limiting - will resolve with delay", True
        ),
    ),
    (
        ("quota", "limit exceeded"),
        ErrorClassification(
            ErrorType.USER_ACTION_REQUIRED,
            "Quota limit exceeded - will retry after quota resets",
            False,
            suggested_action="Wait for daily quota reset or upgrade plan",
        ),
    ),
    (
        ("connection", "timeout", "timed out", "econnrefused", "econnreset"),
        ErrorClassification(
            ErrorType.RECOVERABLE, "Network or database connection issue", True
        ),
    ),
    (
        ("memory", "resource"),
        ErrorClassification(
            ErrorType.RECOVERABLE, "Resource exhaustion - may resolve with delay", True
        ),
    ),
    (
        ("schema", "validation"),
        ErrorClassification(
            ErrorType.USER_ACTION_REQUIRED,
            "Schema or validation error - may need manual review",
            True,
            suggested_action="Review schema configuration or data format",
            resume_stage=ProcessingStage.VALIDATE_SCHEMA,
        ),
    ),
)

UNKNOWN_ERROR = ErrorClassification(
    ErrorType.RECOVERABLE, "Unknown error - attempting recovery", True
)


def classify_error(message: str | None) -> ErrorClassification:
    """Bucket an error message (case-insensitive keyword match)."""
    text = (message or "").lower()
    for keywords, classification in CLASSIFICATION_RULES:
        if any(keyword in text for keyword in keywords):
            return classification
    return UNKNOWN_ERROR


@dataclass
class RetryConfig:
    """Retry policy for failed import jobs."""

    max_retries: int = 3
    base_delay_ms: int = 30000
    max_delay_ms: int = 300000
    backoff_multiplier: float = 2.0
    pending_batch_limit: int = 10
    scan_limit: int = 100

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be non-negative, got {self.base_delay_ms}")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= base_delay_ms ({self.base_delay_ms})"
            )
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be at least 1, got {self.backoff_multiplier}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RetryConfig":
        known_fields = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known_fields})

    def merge(self, overrides: dict[str, Any]) -> "RetryConfig":
        """Create new config with overrides applied."""
        return self.from_dict({**self.to_dict(), **overrides})

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        from timetiles.core.config import settings

        return cls(
            max_retries=settings.RETRY_MAX_RETRIES,
            base_delay_ms=settings.RETRY_BASE_DELAY_MS,
            max_delay_ms=settings.RETRY_MAX_DELAY_MS,
            backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
            pending_batch_limit=settings.RETRY_PENDING_BATCH_LIMIT,
            scan_limit=settings.RECOVERY_SCAN_LIMIT,
        )


def compute_backoff_delay(retry_attempts: int, config: RetryConfig) -> int:
    """Delay in milliseconds before retry number ``retry_attempts + 1``."""
    delay = config.base_delay_ms * (config.backoff_multiplier ** max(0, retry_attempts))
    return int(min(delay, config.max_delay_ms))


def determine_recovery_stage(
    job: ImportJob, classification: ErrorClassification
) -> ProcessingStage:
    """Stage a retry should resume from.

    The classification may force a stage. Otherwise the stage after the last
    checkpoint is used; a job whose final stage was its checkpoint re-runs
    that stage. Without a checkpoint the pipeline restarts from the top.
    """
    if classification.resume_stage is not None:
        return classification.resume_stage
    if job.last_successful_stage in STAGE_ORDER:
        index = STAGE_ORDER.index(job.last_successful_stage)
        return STAGE_ORDER[min(index + 1, len(STAGE_ORDER) - 1)]
    return STAGE_ORDER[0]


@dataclass(frozen=True)
class RecoveryResult:
    success: bool
    action: str
    error: str | None = None
    retry_scheduled: bool = False
    next_retry_at: datetime | None = None


@dataclass(frozen=True)
class RecoveryRecommendation:
    job_id: str
    stage: str
    classification: ErrorClassification
    recommended_action: str
    retry_count: int


class ErrorRecoveryService:
    """Schedule, reset and report on failed import jobs.

    Args:
        store: Data store holding import jobs, files and users
        quota_service: Optional quota collaborator consulted before retrying
        config: Retry policy; defaults come from settings
        clock: Returns the current aware datetime
    """

    def __init__(
        self,
        store: DataStore,
        quota_service: QuotaService | None = None,
        config: RetryConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.quota_service = quota_service
        self.config = config or RetryConfig.from_settings()
        self.clock = clock

    def _result(self, result: RecoveryResult) -> RecoveryResult:
        RECOVERY_ACTIONS.labels(action=result.action).inc()
        return result

    async def _check_retry_quota(self, job: ImportJob) -> RecoveryResult | None:
        """Block a retry when the owner is over their daily import quota.

        Failures of the check itself are logged and do not block the retry.
        """
        if self.quota_service is None or not job.import_file:
            return None
        try:
            import_file = await self.store.find_by_id(IMPORT_FILES_COLLECTION, job.import_file)
            user_id = (import_file or {}).get("user")
            if not user_id:
                return None
            user = await self.store.find_by_id(USERS_COLLECTION, user_id)
            check = await self.quota_service.check_quota(user, QuotaType.IMPORT_JOBS_PER_DAY, 1)
        except Exception as e:
            logger.warning(f"Quota check failed for import job {job.id}, continuing: {e}")
            return None

        if not check.allowed:
            logger.warning(
                f"Retry of import job {job.id} blocked by quota "
                f"({check.current}/{check.limit})"
            )
            return RecoveryResult(
                success=False,
                action="quota_exceeded",
                error="User has exceeded their daily import quota. "
                "Retry will be attempted after quota resets.",
            )
        return None

    async def recover_failed_job(
        self, job_id: str, retry_config: RetryConfig | dict[str, Any] | None = None
    ) -> RecoveryResult:
        """Schedule a retry for a failed job if its error allows it."""
        if isinstance(retry_config, dict):
            config = self.config.merge(retry_config)
        else:
            config = retry_config or self.config

        try:
            job = await get_import_job(self.store, job_id)
            if job is None:
                return self._result(
                    RecoveryResult(False, "job_not_found", error="Import job not found")
                )
            if job.stage != ProcessingStage.FAILED:
                return self._result(
                    RecoveryResult(False, "not_failed", error="Job is not in failed state")
                )

            classification = classify_error(job.last_error)
            if not classification.retryable:
                return self._result(
                    RecoveryResult(
                        False,
                        "not_retryable",
                        error=f"Error is not retryable: {classification.reason}",
                    )
                )

            retry_count = job.retry_attempts
            if retry_count >= config.max_retries:
                return self._result(
                    RecoveryResult(
                        False,
                        "max_retries_exceeded",
                        error=f"Maximum retry attempts ({config.max_retries}) exceeded",
                    )
                )

            quota_error = await self._check_retry_quota(job)
            if quota_error is not None:
                return self._result(quota_error)

            now = self.clock()
            delay_ms = compute_backoff_delay(retry_count, config)
            next_retry_at = now + timedelta(milliseconds=delay_ms)
            recovery_stage = determine_recovery_stage(job, classification)

            await self.store.update(
                IMPORT_JOBS_COLLECTION,
                job.id,
                {
                    "stage": recovery_stage.value,
                    "retry_attempts": retry_count + 1,
                    "last_retry_at": to_timestamp(now),
                    "next_retry_at": to_timestamp(next_retry_at),
                    "error_log": {
                        **job.error_log,
                        "recovery_attempt": {
                            "attempt": retry_count + 1,
                            "previous_error": job.error_log.get("last_error"),
                            "recovery_stage": recovery_stage.value,
                            "classification": classification.type.value,
                        },
                    },
                },
            )
            logger.info(
                f"Scheduled recovery of import job {job.id}: attempt {retry_count + 1} "
                f"from {recovery_stage.value} in {delay_ms}ms"
            )
            return self._result(
                RecoveryResult(
                    True,
                    "retry_scheduled",
                    retry_scheduled=True,
                    next_retry_at=next_retry_at,
                )
            )
        except Exception as e:
            logger.error(f"Failed to recover import job {job_id}: {e}")
            return self._result(RecoveryResult(False, "recovery_failed", error=str(e)))

    async def _clear_next_retry(self, job_id: str) -> None:
        try:
            await self.store.update(IMPORT_JOBS_COLLECTION, job_id, {"next_retry_at": None})
        except Exception as e:
            logger.error(f"Failed to clear retry schedule for import job {job_id}: {e}")

    async def process_pending_retries(self, enqueue: Enqueue) -> list[str]:
        """Queue jobs whose scheduled retry time has arrived.

        Args:
            enqueue: Coroutine taking ``(job_type, input)`` that queues work

        Returns:
            IDs of the jobs that were queued
        """
        now = to_timestamp(self.clock())
        docs = await self.store.find(
            IMPORT_JOBS_COLLECTION,
            {
                "next_retry_at": {"less_than_equal": now},
                "or": [
                    {
                        "stage": ProcessingStage.FAILED.value,
                        "retry_attempts": {"less_than": self.config.max_retries},
                    },
                    {"stage": {"in": [stage.value for stage in QUEUEABLE_STAGES]}},
                ],
            },
            limit=self.config.pending_batch_limit,
        )

        queued: list[str] = []
        for doc in docs:
            job = ImportJob.from_document(doc)
            if job.stage == ProcessingStage.FAILED:
                classification = classify_error(job.last_error)
                if not classification.retryable:
                    # Drop the schedule so it stops matching later scans
                    await self._clear_next_retry(job.id)
                    continue
                stage = determine_recovery_stage(job, classification)
            elif job.stage in STAGE_ORDER:
                stage = job.stage
            else:
                continue

            try:
                await self.store.update(
                    IMPORT_JOBS_COLLECTION,
                    job.id,
                    {"stage": stage.value, "next_retry_at": None},
                )
                job_type = job_type_for_stage(stage)
                if job_type is None:
                    continue
                await enqueue(job_type, {"import_job_id": job.id, "batch_number": 0})
            except Exception as e:
                logger.error(f"Failed to queue retry for import job {job.id}: {e}")
                continue

            logger.info(f"Queued {job_type} for import job {job.id}")
            queued.append(job.id)
        return queued

    async def reset_job_to_stage(
        self, job_id: str, target_stage: ProcessingStage, clear_retries: bool = True
    ) -> RecoveryResult:
        """Operator override: move a job to ``target_stage``."""
        try:
            job = await get_import_job(self.store, job_id)
            if job is None:
                return self._result(
                    RecoveryResult(False, "job_not_found", error="Import job not found")
                )

            now = to_timestamp(self.clock())
            update: dict[str, Any] = {
                "stage": target_stage.value,
                "last_retry_at": now,
                "error_log": {
                    **job.error_log,
                    "manual_reset": {
                        "reset_at": now,
                        "previous_stage": job.stage.value,
                        "target_stage": target_stage.value,
                    },
                },
            }
            if clear_retries:
                update["retry_attempts"] = 0

            await self.store.update(IMPORT_JOBS_COLLECTION, job.id, update)
            logger.info(
                f"Manually reset import job {job.id} from {job.stage.value} "
                f"to {target_stage.value} (cleared retries: {clear_retries})"
            )
            return self._result(RecoveryResult(True, "manual_reset"))
        except Exception as e:
            logger.error(f"Failed to reset import job {job_id} to {target_stage.value}: {e}")
            return self._result(RecoveryResult(False, "reset_failed", error=str(e)))

    def recommend(self, job: ImportJob) -> RecoveryRecommendation:
        classification = classify_error(job.last_error)
        retry_count = job.retry_attempts
        max_retries = self.config.max_retries

        if classification.retryable and retry_count < max_retries:
            action = "Automatic retry available"
        elif classification.type == ErrorType.USER_ACTION_REQUIRED:
            action = classification.suggested_action or "Manual review required"
        elif retry_count >= max_retries:
            action = "Manual intervention required - max retries exceeded"
        else:
            action = "No action recommended"

        return RecoveryRecommendation(
            job_id=job.id,
            stage=job.stage.value,
            classification=classification,
            recommended_action=action,
            retry_count=retry_count,
        )

    async def get_recovery_recommendations(self) -> list[RecoveryRecommendation]:
        """Recommendations for failed jobs, up to the configured scan limit."""
        docs = await self.store.find(
            IMPORT_JOBS_COLLECTION,
            {"stage": ProcessingStage.FAILED.value},
            limit=self.config.scan_limit,
        )
        return [self.recommend(ImportJob.from_document(doc)) for doc in docs]
