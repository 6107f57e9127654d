import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path

# Runnable from the repository root or from backend/
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.db import SessionLocal  # noqa: E402
from app.deps import build_credential_provider, build_snapshot_service  # noqa: E402
from app.services.sync_scheduler import SyncScheduler  # noqa: E402


def run_cycle(account_ids: list[uuid.UUID] | None, concurrency: int | None) -> int:
    """Run one sync cycle in the foreground and print the report as JSON."""
    credential_provider = build_credential_provider(SessionLocal)
    scheduler = SyncScheduler(
        SessionLocal,
        build_snapshot_service(SessionLocal, credential_provider=credential_provider),
        credential_provider,
        concurrency=concurrency,
    )
    report = asyncio.run(scheduler.run_cycle(account_ids=account_ids))
    print(json.dumps(report.as_dict(), indent=2, ensure_ascii=False))
    return 1 if report.failed else 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Reconcile protected workflows once, outside of Celery beat"
    )
    parser.add_argument(
        "--account",
        action="append",
        type=uuid.UUID,
        dest="accounts",
        help="Only sync this account id (repeatable); default is every credentialed account",
    )
    parser.add_argument("--concurrency", type=int, help="Parallel reconciliations (default from settings)")
    args = parser.parse_args()
    return run_cycle(args.accounts, args.concurrency)


if __name__ == "__main__":
    sys.exit(main())
