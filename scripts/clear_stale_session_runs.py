#!/usr/bin/env python3
"""
Maintenance script to clear stale session-run pointers.

A pointer is stale when its Session was deleted or already carries
ended_at/duration_seconds (for example after a manual database edit).
Readers already ignore stale pointers; this removes them for good.

Run with: python scripts/clear_stale_session_runs.py          (dry run)
          python scripts/clear_stale_session_runs.py --apply
"""

import asyncio
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mnemora.database import AsyncSessionLocal
from mnemora.services.session_runs import SessionRunTracker


async def clear_stale(dry_run: bool = True):
    tracker = SessionRunTracker(AsyncSessionLocal)
    stale = await tracker.find_stale()

    print(f"Found {len(stale)} stale session run pointer(s)")
    for run in stale:
        print(f"  campaign {run.campaign_id}: session {run.session_id} (started {run.started_at})")

    if not stale:
        return
    if dry_run:
        print("\nDRY RUN - no changes made. Run with --apply to clear them.")
        return

    cleared = await tracker.clear_stale()
    print(f"\n✓ Cleared {cleared} pointer(s)")


if __name__ == "__main__":
    dry_run = "--apply" not in sys.argv

    if not dry_run:
        print("\n⚠️  APPLYING CHANGES TO DATABASE ⚠️\n")
        confirm = input("Are you sure? (type 'yes' to confirm): ")
        if confirm.lower() != 'yes':
            print("Aborted.")
            sys.exit(0)

    asyncio.run(clear_stale(dry_run))
