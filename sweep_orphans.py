# sweep_orphans.py
import argparse
import logging
from datetime import timedelta

from sqlmodel import Session

from app.core.config import get_settings
from app.core.storage_utils import get_blob_store
from app.database import engine
from app.services.orphan_sweep import sweep_orphaned_blobs


def main():
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Delete advertisement photos no live listing or archive references.",
    )
    parser.add_argument(
        "--grace-minutes",
        type=int,
        default=settings.ORPHAN_SWEEP_GRACE_MINUTES,
        help="Leave blobs younger than this alone (default: %(default)s)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report what would be deleted",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.LOG_LEVEL)

    with Session(engine) as session:
        report = sweep_orphaned_blobs(
            session,
            get_blob_store(),
            grace=timedelta(minutes=args.grace_minutes),
            dry_run=args.dry_run,
        )

    print(f"Scanned {report.scanned} blobs, deleted {len(report.deleted)}, failed {len(report.failed)}.")


if __name__ == "__main__":
    main()
