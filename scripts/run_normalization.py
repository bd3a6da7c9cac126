#!/usr/bin/env python3
"""Run one normalization job against the configured pricing database."""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from pricing_atlas.config import configure_logging  # noqa: E402
from pricing_atlas.contracts import JobConfiguration, JobStatus, JobType  # noqa: E402
from pricing_atlas.etl.pipeline import build_pipeline  # noqa: E402
from pricing_atlas.storage.engine import (  # noqa: E402
    create_all_tables,
    create_database_engine,
    create_session_factory,
)


def main() -> None:
    parser = argparse.ArgumentParser(description="Normalize raw AWS/Azure pricing")
    parser.add_argument(
        "--job-type",
        choices=[job_type.value for job_type in JobType],
        default=JobType.NORMALIZE_ALL.value,
    )
    parser.add_argument("--providers", nargs="*", default=[], help="aws and/or azure")
    parser.add_argument("--regions", nargs="*", default=[], help="Vendor region codes")
    parser.add_argument("--services", nargs="*", default=[], help="Vendor service codes")
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--clear-existing", action="store_true")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--database-url", default=None, help="Overrides PRICING_ATLAS_DATABASE_URL")
    parser.add_argument("--poll-interval", type=float, default=2.0)
    parser.add_argument("--warm-caches", action="store_true", help="Preload mapping tables")
    parser.add_argument(
        "--fail-on-errors",
        action="store_true",
        help="Exit non-zero if any record failed to normalize.",
    )
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_level)
    try:
        configuration = JobConfiguration(
            providers=args.providers,
            regions=args.regions,
            services=args.services,
            batch_size=args.batch_size,
            concurrent_workers=args.workers,
            clear_existing=args.clear_existing,
            dry_run=args.dry_run,
        )
    except ValueError as exc:
        raise SystemExit(f"invalid configuration: {exc}") from exc

    engine = create_database_engine(args.database_url)
    create_all_tables(engine)
    pipeline = build_pipeline(create_session_factory(engine), warm_caches=args.warm_caches)
    job = pipeline.start_job(args.job_type, configuration)

    while not job.wait(timeout=args.poll_interval):
        progress = job.progress.snapshot()
        print(
            f"[{job.id}] {progress.current_stage}: "
            f"{progress.processed_records}/{progress.total_records} processed "
            f"({progress.rate:.1f}/s)"
        )

    progress = job.progress.snapshot()
    print(
        f"job {job.id} {job.status.value}: processed={progress.processed_records} "
        f"normalized={progress.normalized_records} skipped={progress.skipped_records} "
        f"errors={progress.error_records}"
    )
    if job.status is JobStatus.FAILED:
        raise SystemExit(f"job failed: {job.error}")
    if args.fail_on_errors and progress.error_records > 0:
        raise SystemExit(f"{progress.error_records} records failed to normalize")


if __name__ == "__main__":
    main()
