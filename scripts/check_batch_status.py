"""
Check batch status - fill level of every active batch, per branch.

Also carries the operator actions on a single batch:
    python scripts/check_batch_status.py --reset <batch_id>
    python scripts/check_batch_status.py --deactivate <batch_id>
"""

import argparse
import sys
from pathlib import Path
from uuid import UUID

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.territory import describe_territory
from repositories.batch_repository import deactivate_batch, list_all_active_batches, reset_batch


def check_batch_status():
    """Print fill status of active batches grouped by branch."""

    batches = list_all_active_batches()

    by_branch = {}
    for batch in batches:
        by_branch.setdefault(batch.branch, []).append(batch)

    print("=" * 70)
    print("BATCH STATUS")
    print("=" * 70)
    print(f"Active batches: {len(batches)}")

    for branch in sorted(by_branch):
        group = by_branch[branch]
        open_slots = sum(b.remaining_capacity for b in group)
        print(f"\n{branch} ({len(group)} batches, {open_slots} open slots)")
        print("-" * 70)
        for b in sorted(group, key=lambda b: b.display_name):
            pct = b.current_batch_count / b.total_batch_size * 100
            print(
                f"  {b.display_name:<28} {b.current_batch_count:>4}/{b.total_batch_size:<4} "
                f"{pct:5.1f}%  {describe_territory(b.territory)}"
            )

    print("=" * 70)


def main():
    parser = argparse.ArgumentParser(description="Show batch fill status or reset/deactivate one batch")
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--reset", type=UUID, metavar="BATCH_ID", help="Set the counter back to 0 and reactivate")
    action.add_argument("--deactivate", type=UUID, metavar="BATCH_ID", help="Stop a batch from receiving leads")
    args = parser.parse_args()

    if args.reset:
        batch = reset_batch(args.reset)
        print(f"Reset {batch.display_name}: 0/{batch.total_batch_size}, active")
    elif args.deactivate:
        deactivate_batch(args.deactivate)
        print(f"Deactivated batch {args.deactivate}")
    else:
        check_batch_status()


if __name__ == "__main__":
    main()
