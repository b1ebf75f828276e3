"""
Link profiles with a free-text company name to company records.

Run this after importing legacy users, or whenever companies are added.

Usage:
    python scripts/reconcile_companies.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import get_db_context
from services.company_linkage import reconcile_all, member_counts


async def reconcile_companies():
    """Reconcile company links and print the resulting member counts."""
    async with get_db_context() as db:
        result = await reconcile_all(db)
        counts = await member_counts(db)

    for failure in result.failures:
        print(f"Could not link {failure.user_id} ('{failure.company_text}'): {failure.reason}")

    print(f"\nLinked {result.linked_count} of {result.attempted} profile(s)")
    for count in counts:
        print(
            f"  {count.name}: {count.total} member(s) "
            f"({count.primary} linked, {count.text_matched} by name, {count.secondary} secondary)"
        )

    print("\n✅ Reconciliation complete!")


if __name__ == "__main__":
    asyncio.run(reconcile_companies())
