# app/workers/digest_worker.py
"""
FX briefing digest worker.

Pulls the (cached) analysis report and mails it to EMAIL_TO. Meant for a
scheduler (cron, GitHub Actions); the HTTP route /api/cron/send-digest does the
same thing inside the API process.

    fx-digest-worker --dry-run
    python -m app.workers.digest_worker --refresh
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Optional, Sequence

from app.config import settings
from app.core.errors import BriefingError
from app.core.logging import configure_logging, get_logger
from app.core.request_id import with_run_id
from services.briefing_service import build_briefing_service
from services.digest_service import build_digest_service

logger = get_logger().bind(worker="digest")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="FX news briefing digest worker")
    p.add_argument("--refresh", action="store_true", help="Regenerate the report instead of using the cache")
    p.add_argument("--dry-run", action="store_true", help="Render the digest but don't send it")
    return p.parse_args(argv)


async def main_async(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    with with_run_id() as rid:
        logger.info("worker_started", run_id=rid, refresh=args.refresh, dry_run=args.dry_run)
        briefing = build_briefing_service(settings)
        try:
            digest = build_digest_service(briefing, settings)
            result = await digest.dispatch(refresh=args.refresh, dry_run=args.dry_run)
        except BriefingError as exc:
            logger.error("worker_failed", error=str(exc), error_type=type(exc).__name__)
            return 1
        except Exception as exc:
            # Delivery errors (SMTP, HTTP) surface here.
            logger.exception("worker_failed", error=str(exc), error_type=type(exc).__name__)
            return 1
        finally:
            await briefing.aclose()

        logger.info(
            "worker_completed",
            recipients=len(result.recipients),
            messages=len(result.message_ids),
            dry_run=result.dry_run,
        )
        return 0


def main() -> None:
    configure_logging(service_name="worker")
    raise SystemExit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
