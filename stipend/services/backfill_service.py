"""
stipend.services.backfill_service — Referral Link Backfill
===========================================================

One-shot repair utility.  Reads every ``referral`` row in
``user_activities``, resolves the referrer code stored in its metadata and
sets ``users.referred_by_id`` where it is still empty.

Rows are skipped (and logged) when the metadata has no code, the code no
longer resolves, or it resolves to the referred user.  Existing links are
never overwritten.

Run with::

    python -m stipend.services.backfill_service [--dry-run]
"""

from __future__ import annotations

import argparse
import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, select

from stipend.database.engine import get_session
from stipend.database.models import User, UserActivity
from stipend.engine.rules import REFERRAL_ACTIVITY_ID, referrer_code_from

logger = logging.getLogger(__name__)


def backfill_referrals(
    engine: Engine,
    *,
    dry_run: bool = False,
) -> dict:
    """Link referred users to their referrers from ledger metadata.

    Args:
        engine: SQLAlchemy engine.
        dry_run: If True, compute but don't write.

    Returns:
        ``{"records_read": N, "users_linked": M, "skipped": {...}}``
    """
    skipped = {"missing_code": 0, "unknown_referrer": 0, "self_referral": 0, "already_linked": 0}
    linked = 0
    records_read = 0

    with get_session(engine) as session:
        rows = session.execute(
            select(UserActivity.user_id, UserActivity.meta)
            .where(UserActivity.activity_id == REFERRAL_ACTIVITY_ID)
            .order_by(UserActivity.consumed_at)
        ).all()

        for row in rows:
            records_read += 1
            code = referrer_code_from(row.meta)
            if not code:
                logger.warning("Skipping user %d: no referrer code in metadata", row.user_id)
                skipped["missing_code"] += 1
                continue

            referrer = session.scalar(select(User).where(User.external_id == code))
            if referrer is None:
                logger.warning("No user with external id %s (referred user %d)", code, row.user_id)
                skipped["unknown_referrer"] += 1
                continue
            if referrer.id == row.user_id:
                skipped["self_referral"] += 1
                continue

            user = session.get(User, row.user_id)
            if user is None or user.referred_by_id is not None:
                skipped["already_linked"] += 1
                continue

            if not dry_run:
                user.referred_by_id = referrer.id
            linked += 1
            logger.info("Linked user %d → referrer %d", row.user_id, referrer.id)

        if dry_run:
            session.rollback()

    action = "would link" if dry_run else "linked"
    logger.info(
        "Referral backfill: %s %d users from %d referral records (skipped: %s)",
        action, linked, records_read, skipped,
    )

    return {
        "records_read": records_read,
        "users_linked": linked,
        "skipped": skipped,
        "dry_run": dry_run,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def main(argv: list[str] | None = None) -> None:
    from dotenv import load_dotenv

    from stipend.database.engine import create_db_engine

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    parser = argparse.ArgumentParser(description="Backfill users.referred_by_id")
    parser.add_argument("--dry-run", action="store_true", help="report without writing")
    opts = parser.parse_args(argv)

    load_dotenv()
    backfill_referrals(create_db_engine(), dry_run=opts.dry_run)


if __name__ == "__main__":
    main()
