#!/usr/bin/env python3
"""Re-fold completed sessions of one week into the weekly buckets.

Usage:
  python -m sleepfeed.scripts.rebuild_weekly_buckets --week 2024-05-13
  python -m sleepfeed.scripts.rebuild_weekly_buckets --week 2024-05-13 --user 42
  python -m sleepfeed.scripts.rebuild_weekly_buckets --week 2024-05-13 --reset
"""
from __future__ import annotations

import argparse
import asyncio
from datetime import date, datetime, time, timedelta, timezone

from sleepfeed.cache.keys import weekly_bucket_key
from sleepfeed.date_utils import parse_week, to_iso
from sleepfeed.db import connection, migrations
from sleepfeed.services.container import build_services


async def rebuild_week(services, week: date, user_id: int | None = None, reset: bool = False) -> dict[str, int]:
    start = datetime.combine(week, time.min, tzinfo=timezone.utc)
    end = start + timedelta(weeks=1)
    rows = await services.sessions.list_completed_between(to_iso(start), to_iso(end), user_id)

    users = sorted({int(r["user_id"]) for r in rows})
    if reset:
        for uid in users:
            await services.cache.delete(weekly_bucket_key(uid, week))

    for row in rows:
        await services.aggregator.handle(services.aggregator.build_payload(int(row["user_id"]), row))
    return {"sessions": len(rows), "users": len(users)}


async def _run(week: date, user_id: int | None, reset: bool) -> int:
    db = await connection.get_connection()
    await migrations.run_migrations(db)
    services = build_services(db)

    stats = await rebuild_week(services, week, user_id, reset)
    print(
        f"{week.isoformat()}: sessions_folded={stats['sessions']} "
        f"users_touched={stats['users']}"
    )

    await connection.close_connection()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--week", required=True, help="Any date inside the target week (YYYY-MM-DD)")
    parser.add_argument("--user", type=int, default=None, help="Only rebuild this user's bucket")
    parser.add_argument("--reset", action="store_true", help="Drop existing buckets before re-folding")
    args = parser.parse_args()
    try:
        week = parse_week(args.week)
    except ValueError:
        parser.error(f"invalid --week: {args.week}")
    return asyncio.run(_run(week, args.user, args.reset))


if __name__ == "__main__":
    raise SystemExit(main())
