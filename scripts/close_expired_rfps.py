"""
Close every active RFP whose closing date has passed.

One-shot version of the worker's scheduled sweep. Safe to run at any time;
a second run finds nothing to close.

Usage:
    python scripts/close_expired_rfps.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import get_db_context
from services.lifecycle import close_expired_rfps


async def run_sweep():
    """Run the expiry sweep once and print what it closed."""
    async with get_db_context() as db:
        result = await close_expired_rfps(db)

    if not result.updated_count:
        print("No active RFPs past their closing date")
        return

    for detail in result.details:
        print(f"Closed '{detail.title}' ({detail.id}), {detail.days_overdue} day(s) overdue")

    print(f"\n✅ Closed {result.updated_count} RFP(s), sent {result.notifications_sent} notification(s)")


if __name__ == "__main__":
    asyncio.run(run_sweep())
