from __future__ import annotations

import argparse
import asyncio

from pushrelay.core.config import get_settings
from pushrelay.core.logging import configure_logging
from pushrelay.services.engine import build_engine


async def cleanup(days_old: int) -> None:
    # Remove terminal retry records past the retention window.
    configure_logging()
    engine = build_engine()
    deleted = await engine.sweeper.cleanup_old_retries(days_old)
    print(f"deleted_retry_records={deleted}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete failed/succeeded retry records older than N days.")
    parser.add_argument("--days-old", type=int, default=get_settings().retry_cleanup_days_old)
    args = parser.parse_args()
    asyncio.run(cleanup(args.days_old))


if __name__ == "__main__":
    main()
