"""Concurrent batch pipeline and job controller.

Each job runs on its own thread. For every provider it processes, that thread
acts as the generator: it pages through raw storage and pushes batches onto a
bounded queue (2x the worker count), blocking when workers fall behind.
Worker threads normalize each batch and bulk-insert its records; a single
collector thread folds their `BatchResult`s into the job's progress.

Cancellation is cooperative: the generator checks for it between batches, and
a batch already handed to a worker always runs to completion.
"""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from typing import Any, Mapping, Optional, Protocol, Sequence, Union

from sqlalchemy.orm import sessionmaker

from pricing_atlas.config import PROGRESS_LOG_INTERVAL
from pricing_atlas.contracts import JobConfiguration, JobStatus, JobType, Provider
from pricing_atlas.etl.jobs import BatchResult, Job, RawBatch
from pricing_atlas.normalization.aws import AWSNormalizer
from pricing_atlas.normalization.azure import AzureNormalizer
from pricing_atlas.normalization.base import PricingNormalizer
from pricing_atlas.normalization.mappings import RegionRepository, ServiceMappingRepository
from pricing_atlas.normalization.schema import NormalizedPricing, RawPricingRecord

logger = logging.getLogger(__name__)

_STOP = object()


class PipelineError(Exception):
    """Infrastructure failure that ends a job as failed."""


class JobNotFoundError(KeyError):
    def __str__(self) -> str:
        return f"job not found: {self.args[0]}"


class JobStateError(RuntimeError):
    """The requested transition is not valid for the job's current status."""


class RawPricingSource(Protocol):
    def count(self, provider: str, regions: Sequence[str], services: Sequence[str]) -> int: ...

    def fetch_batch(
        self,
        provider: str,
        regions: Sequence[str],
        services: Sequence[str],
        offset: int,
        limit: int,
    ) -> list[RawPricingRecord]: ...


class NormalizedPricingSink(Protocol):
    def bulk_insert(self, records: Sequence[NormalizedPricing]) -> int: ...

    def clear(self) -> int: ...

    def delete_orphans(self) -> int: ...


class Pipeline:
    """Starts, tracks and cancels normalization jobs.

    The job registry is owned by the instance, so independent pipelines can
    coexist (one per database, or one per test).
    """

    def __init__(
        self,
        raw_source: RawPricingSource,
        sink: NormalizedPricingSink,
        normalizers: Mapping[str, PricingNormalizer],
    ) -> None:
        self._raw_source = raw_source
        self._sink = sink
        self._normalizers = dict(normalizers)
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def start_job(
        self,
        job_type: Union[JobType, str],
        configuration: Union[JobConfiguration, Mapping[str, Any], None] = None,
    ) -> Job:
        """Register a job and launch it on its own thread; returns immediately."""
        resolved_type = JobType(job_type)
        if configuration is None:
            configuration = JobConfiguration()
        elif not isinstance(configuration, JobConfiguration):
            configuration = JobConfiguration.model_validate(dict(configuration))
        configuration = configuration.with_defaults()

        job = Job(f"{resolved_type.value}-{uuid.uuid4().hex[:8]}", resolved_type, configuration)
        with self._lock:
            self._jobs[job.id] = job

        thread = threading.Thread(target=self._execute, args=(job,), name=f"etl-{job.id}", daemon=True)
        thread.start()
        logger.info(
            "Started ETL job %s type=%s batch_size=%d workers=%d dry_run=%s",
            job.id,
            resolved_type.value,
            configuration.batch_size,
            configuration.concurrent_workers,
            configuration.dry_run,
        )
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def get_all_jobs(self) -> list[Job]:
        with self._lock:
            jobs = list(self._jobs.values())
        return sorted(jobs, key=lambda job: job.started_at)

    def cancel_job(self, job_id: str) -> Job:
        """Cancel a pending or running job.

        Raises JobNotFoundError for unknown ids and JobStateError when the
        job already reached a terminal state.
        """
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if not job.request_cancel():
            raise JobStateError(f"cannot cancel job in status: {job.status.value}")
        logger.info("Cancelled ETL job %s", job_id)
        return job

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    def _execute(self, job: Job) -> None:
        try:
            if not job.mark_running():
                return
            logger.info("Executing ETL job %s type=%s", job.id, job.type.value)
            handlers = {
                JobType.NORMALIZE_ALL: self._normalize_all,
                JobType.NORMALIZE_PROVIDER: self._normalize_provider,
                JobType.NORMALIZE_REGION: self._normalize_region,
                JobType.NORMALIZE_SERVICE: self._normalize_service,
                JobType.CLEANUP_NORMALIZED: self._cleanup_normalized,
            }
            try:
                handlers[job.type](job)
            except PipelineError as exc:
                if job.finish(JobStatus.FAILED, str(exc)):
                    logger.error("ETL job %s failed: %s", job.id, exc)
                return
            except Exception as exc:  # noqa: BLE001
                logger.exception("ETL job %s crashed", job.id)
                job.finish(JobStatus.FAILED, f"job crashed: {exc}")
                return

            if job.cancel_requested:
                job.progress.set_stage("Cancelled")
                logger.info(
                    "ETL job %s stopped after cancellation: processed=%d",
                    job.id,
                    job.progress.processed_records,
                )
            elif job.finish(JobStatus.COMPLETED):
                progress = job.progress
                logger.info(
                    "ETL job %s completed: processed=%d normalized=%d skipped=%d errors=%d",
                    job.id,
                    progress.processed_records,
                    progress.normalized_records,
                    progress.skipped_records,
                    progress.error_records,
                )
        finally:
            job.mark_done()

    def _normalize_all(self, job: Job) -> None:
        self._run_providers(job, job.configuration.providers or list(Provider.values()))

    def _normalize_provider(self, job: Job) -> None:
        if not job.configuration.providers:
            raise PipelineError("no provider specified in configuration")
        self._run_providers(job, job.configuration.providers)

    def _normalize_region(self, job: Job) -> None:
        if not job.configuration.regions:
            raise PipelineError("no regions specified in configuration")
        self._run_providers(job, job.configuration.providers or list(Provider.values()))

    def _normalize_service(self, job: Job) -> None:
        if not job.configuration.services:
            raise PipelineError("no services specified in configuration")
        self._run_providers(job, job.configuration.providers or list(Provider.values()))

    def _cleanup_normalized(self, job: Job) -> None:
        job.progress.set_stage("Removing orphaned normalized data")
        if job.configuration.dry_run:
            logger.info("Dry run: skipping orphan cleanup for job %s", job.id)
            return
        try:
            removed = self._sink.delete_orphans()
        except Exception as exc:  # noqa: BLE001
            raise PipelineError(f"failed to clean up normalized data: {exc}") from exc
        job.progress.total_records = removed
        job.progress.apply(
            BatchResult(provider="", offset=0, processed_records=removed), job.started_at
        )

    def _run_providers(self, job: Job, providers: Sequence[str]) -> None:
        configuration = job.configuration
        job.progress.set_stage("Preparing normalization")
        if configuration.clear_existing and not configuration.dry_run:
            job.progress.set_stage("Clearing existing normalized data")
            try:
                removed = self._sink.clear()
            except Exception as exc:  # noqa: BLE001
                raise PipelineError(f"failed to clear existing data: {exc}") from exc
            logger.info("Job %s cleared %d existing normalized records", job.id, removed)

        for provider in providers:
            if job.cancel_requested:
                return
            normalizer = self._normalizers.get(provider)
            if normalizer is None:
                raise PipelineError(f"unsupported provider: {provider}")

            job.provider = provider
            try:
                total = self._raw_source.count(provider, configuration.regions, configuration.services)
            except Exception as exc:  # noqa: BLE001
                raise PipelineError(f"failed to count {provider} raw records: {exc}") from exc
            job.progress.total_records += total
            job.progress.set_stage(f"Processing {provider} data")
            logger.info("Job %s processing %d %s raw records", job.id, total, provider)
            self._process_provider(job, provider, normalizer)

    def _process_provider(self, job: Job, provider: str, normalizer: PricingNormalizer) -> None:
        configuration = job.configuration
        workers = configuration.concurrent_workers
        batches: queue.Queue = queue.Queue(maxsize=2 * workers)
        results: queue.Queue = queue.Queue()
        abort = threading.Event()
        fatal_errors: list[str] = []

        worker_threads = [
            threading.Thread(
                target=self._worker,
                args=(job, normalizer, batches, results, abort),
                name=f"etl-{job.id}-worker-{index}",
                daemon=True,
            )
            for index in range(workers)
        ]
        collector = threading.Thread(
            target=self._collect,
            args=(job, results, fatal_errors),
            name=f"etl-{job.id}-collector",
            daemon=True,
        )
        for thread in worker_threads:
            thread.start()
        collector.start()

        offset = 0
        fetch_error: Optional[Exception] = None
        try:
            while not job.cancel_requested and not abort.is_set():
                try:
                    records = self._raw_source.fetch_batch(
                        provider,
                        configuration.regions,
                        configuration.services,
                        offset,
                        configuration.batch_size,
                    )
                except Exception as exc:  # noqa: BLE001
                    fetch_error = exc
                    break
                if not records or job.cancel_requested:
                    break
                batches.put(RawBatch(provider=provider, offset=offset, records=records))
                offset += len(records)
                if len(records) < configuration.batch_size:
                    break
        finally:
            for _ in worker_threads:
                batches.put(_STOP)
            for thread in worker_threads:
                thread.join()
            results.put(_STOP)
            collector.join()

        if fetch_error is not None:
            logger.error("Job %s failed to fetch %s batch at offset %d: %s", job.id, provider, offset, fetch_error)
            raise PipelineError(f"failed to fetch {provider} batch at offset {offset}: {fetch_error}")
        if fatal_errors:
            raise PipelineError(fatal_errors[0])

    def _worker(
        self,
        job: Job,
        normalizer: PricingNormalizer,
        batches: queue.Queue,
        results: queue.Queue,
        abort: threading.Event,
    ) -> None:
        while True:
            batch = batches.get()
            if batch is _STOP:
                return
            results.put(self._process_batch(job, normalizer, batch, abort))

    def _process_batch(
        self,
        job: Job,
        normalizer: PricingNormalizer,
        batch: RawBatch,
        abort: threading.Event,
    ) -> BatchResult:
        result = BatchResult(provider=batch.provider, offset=batch.offset)
        normalized: list[NormalizedPricing] = []
        for raw in batch.records:
            result.processed_records += 1
            try:
                outcome = normalizer.normalize(raw)
            except Exception as exc:  # noqa: BLE001
                result.error_records += 1
                result.errors.append(f"raw record {raw.id}: {exc}")
                continue
            normalized.extend(outcome.records)
            result.skipped_records += outcome.skipped_count
            result.error_records += outcome.error_count
            if outcome.error_count:
                result.errors.extend(f"raw record {raw.id}: {error}" for error in outcome.errors)
        result.normalized_records = len(normalized)

        if normalized and not job.configuration.dry_run:
            try:
                self._sink.bulk_insert(normalized)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Bulk insert failed for %s batch at offset %d: %s",
                    batch.provider,
                    batch.offset,
                    exc,
                )
                result.error_records += result.normalized_records
                result.normalized_records = 0
                result.fatal_error = f"bulk insert failed for {batch.provider} batch at offset {batch.offset}: {exc}"
                result.errors.append(result.fatal_error)
                abort.set()
        return result

    def _collect(self, job: Job, results: queue.Queue, fatal_errors: list[str]) -> None:
        logged_bucket = job.progress.processed_records // PROGRESS_LOG_INTERVAL
        while True:
            batch = results.get()
            if batch is _STOP:
                return
            job.progress.apply(batch, job.started_at)
            if batch.fatal_error:
                fatal_errors.append(batch.fatal_error)
            if batch.error_records:
                logger.error(
                    "Job %s %s batch at offset %d had %d errors; first: %s",
                    job.id,
                    batch.provider,
                    batch.offset,
                    batch.error_records,
                    batch.errors[0] if batch.errors else "",
                )
            bucket = job.progress.processed_records // PROGRESS_LOG_INTERVAL
            if bucket > logged_bucket:
                logged_bucket = bucket
                progress = job.progress
                logger.info(
                    "Job %s progress: processed=%d/%d normalized=%d skipped=%d errors=%d rate=%.1f/s",
                    job.id,
                    progress.processed_records,
                    progress.total_records,
                    progress.normalized_records,
                    progress.skipped_records,
                    progress.error_records,
                    progress.rate,
                )


def build_pipeline(session_factory: sessionmaker, warm_caches: bool = False) -> Pipeline:
    """Wire SQL storage, caching mapping repositories and both normalizers."""
    from pricing_atlas.storage.repositories import (
        SqlNormalizedPricingRepository,
        SqlRawPricingSource,
        SqlRegionStore,
        SqlServiceMappingStore,
    )

    services = ServiceMappingRepository(SqlServiceMappingStore(session_factory))
    regions = RegionRepository(SqlRegionStore(session_factory))
    if warm_caches:
        services.warm()
        regions.warm()
    normalizers = {
        Provider.AWS.value: AWSNormalizer(services, regions),
        Provider.AZURE.value: AzureNormalizer(services, regions),
    }
    return Pipeline(
        SqlRawPricingSource(session_factory),
        SqlNormalizedPricingRepository(session_factory),
        normalizers,
    )
