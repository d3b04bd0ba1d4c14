"""Batch processing driver for one import job.

Rows flow: file window -> rename transforms -> type rules -> coordinate
parsing -> geocoding of rows that still lack a valid coordinate. Any
exception fails the job and hands it to error recovery.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from timetiles.core.config import settings
from timetiles.core.geocoding.models import GeocodeResult
from timetiles.core.geocoding.service import GeocodingService
from timetiles.core.logging import get_job_logger
from timetiles.core.store import DataStore
from timetiles.geospatial.parsing import parse_coordinate
from timetiles.geospatial.validation import is_valid_coordinate
from timetiles.importer.file_readers import import_file_path, read_batch
from timetiles.importer.jobs import (
    IMPORT_FILES_COLLECTION,
    ImportJob,
    ProcessingStage,
    complete_stage,
    fail_job,
    get_import_job,
)
from timetiles.importer.paths import MISSING, get_by_path, set_by_path
from timetiles.importer.transforms import BaseTransform, apply_transforms_batch
from timetiles.importer.type_transformation import (
    TransformationChange,
    TypeTransformationRule,
    TypeTransformationService,
)
from timetiles.recovery.error_recovery import ErrorRecoveryService, RecoveryResult


@dataclass
class BatchOutcome:
    rows: list[dict[str, Any]]
    geocoded: int = 0
    failed: int = 0
    changes: list[TransformationChange] = field(default_factory=list)


@dataclass
class PipelineRun:
    batches: list[BatchOutcome] = field(default_factory=list)
    recovery: RecoveryResult | None = None

    @property
    def succeeded(self) -> bool:
        return self.recovery is None


class ImportPipeline:
    """Run the normalization core over an import file in batches."""

    def __init__(
        self,
        store: DataStore,
        geocoding_service: GeocodingService,
        recovery_service: ErrorRecoveryService,
        transforms: list[BaseTransform] | None = None,
        type_rules: list[TypeTransformationRule | dict[str, Any]] | None = None,
        address_field: str = "address",
        latitude_field: str = "latitude",
        longitude_field: str = "longitude",
        batch_size: int | None = None,
    ):
        self.store = store
        self.geocoding_service = geocoding_service
        self.recovery_service = recovery_service
        self.transforms = list(transforms or [])
        self.type_service = TypeTransformationService(list(type_rules or []))
        self.address_field = address_field
        self.latitude_field = latitude_field
        self.longitude_field = longitude_field
        self.batch_size = batch_size or settings.IMPORT_BATCH_SIZE

    def _existing_coordinate(self, record: dict[str, Any]) -> tuple[float, float] | None:
        lat = parse_coordinate(get_by_path(record, self.latitude_field))
        lon = parse_coordinate(get_by_path(record, self.longitude_field))
        if lat is not None and lon is not None and is_valid_coordinate(lat, lon):
            return lat, lon
        return None

    def _address(self, record: dict[str, Any]) -> str | None:
        value = get_by_path(record, self.address_field)
        if value is MISSING or value is None:
            return None
        text = str(value).strip()
        return text or None

    async def process_batch(
        self,
        file_path: str | Path,
        sheet_index: int = 0,
        batch_number: int = 0,
        batch_size: int | None = None,
    ) -> BatchOutcome:
        """Read, transform and geocode one batch of rows."""
        size = batch_size or self.batch_size
        rows = await asyncio.to_thread(
            read_batch,
            file_path,
            sheet_index=sheet_index,
            start_row=batch_number * size,
            limit=size,
        )

        renamed = apply_transforms_batch(rows, self.transforms)
        outcome = BatchOutcome(rows=[])
        for row in renamed:
            result = self.type_service.transform_record(row)
            outcome.rows.append(result.transformed)
            outcome.changes.extend(result.changes)

        pending: list[tuple[dict[str, Any], str]] = []
        for record in outcome.rows:
            coordinate = self._existing_coordinate(record)
            if coordinate is not None:
                set_by_path(record, self.latitude_field, coordinate[0])
                set_by_path(record, self.longitude_field, coordinate[1])
                continue
            address = self._address(record)
            if address is not None:
                pending.append((record, address))

        if not pending:
            return outcome

        batch = await self.geocoding_service.batch_geocode(
            [address for _, address in pending]
        )
        for record, address in pending:
            result = batch.results.get(address)
            if isinstance(result, GeocodeResult):
                set_by_path(record, self.latitude_field, result.latitude)
                set_by_path(record, self.longitude_field, result.longitude)
                record["geocoding"] = {
                    "provider": result.provider,
                    "confidence": result.confidence,
                    "normalized_address": result.normalized_address,
                    "from_cache": result.from_cache,
                }
                outcome.geocoded += 1
            else:
                record["geocoding"] = {
                    "error": str(result),
                    "code": getattr(result, "code", None),
                }
                outcome.failed += 1
        return outcome

    async def _job_file_path(self, job: ImportJob) -> Path:
        doc = None
        if job.import_file:
            doc = await self.store.find_by_id(IMPORT_FILES_COLLECTION, job.import_file)
        if not doc or not doc.get("filename"):
            raise FileNotFoundError(f"File not found for import job {job.id}")
        return import_file_path(doc["filename"])

    async def run(
        self, job_id: str, file_path: str | Path | None = None, sheet_index: int = 0
    ) -> PipelineRun:
        """Process every batch of a job's sheet.

        Without an explicit ``file_path`` the file is looked up through the
        job's import-file record under the upload directory.

        On success the job's geocoding stage is checkpointed. On failure the
        job is marked failed and the recovery decision is returned.
        """
        logger = get_job_logger(job_id)
        run = PipelineRun()
        job = await get_import_job(self.store, job_id)
        if job is None:
            logger.error("import_job_not_found")
            run.recovery = RecoveryResult(
                False, "job_not_found", error=f"Import job not found: {job_id}"
            )
            return run

        batch_number = 0
        try:
            if file_path is None:
                file_path = await self._job_file_path(job)
            while True:
                outcome = await self.process_batch(file_path, sheet_index, batch_number)
                run.batches.append(outcome)
                logger.info(
                    "batch_processed",
                    batch_number=batch_number,
                    rows=len(outcome.rows),
                    geocoded=outcome.geocoded,
                    failed=outcome.failed,
                )
                if len(outcome.rows) < self.batch_size:
                    break
                batch_number += 1
            await complete_stage(self.store, job_id, ProcessingStage.GEOCODE_BATCH)
        except Exception as e:
            logger.error("import_job_failed", batch_number=batch_number, error=str(e))
            try:
                await fail_job(self.store, job_id, e)
            except KeyError:
                # Job deleted while running
                run.recovery = RecoveryResult(False, "job_not_found", error=str(e))
                return run
            run.recovery = await self.recovery_service.recover_failed_job(job_id)
        return run
