"""
Report slots whose appointments break the booking invariants.

Checks every slot for more than one pending/confirmed appointment and for
queues whose positions are not exactly 1..N. Read-only; exits with status 1
when a violation is found so it can run from cron or CI.

Usage:
    python backend/scripts/check_queue_integrity.py [--property-id ID]
"""
import argparse
import os
import sys

# Add the parent directory to sys.path to allow imports from src
sys.path.append(os.path.join(os.path.dirname(__file__), '../src'))

from core.database import get_db_context
from utils.appointment_queries import find_slot_invariant_violations


def main():
    parser = argparse.ArgumentParser(description="Check slot queue integrity")
    parser.add_argument("--property-id", type=int, default=None, help="Only check this property")
    args = parser.parse_args()

    print("Checking slot queue integrity...")
    with get_db_context() as db:
        violations = find_slot_invariant_violations(db, property_id=args.property_id)

    if not violations:
        print("No violations found.")
        return

    for violation in violations:
        print(f"[{violation.kind}] {violation.slot_key}: {violation.detail}")
    print(f"Found {len(violations)} violation(s).")
    sys.exit(1)


if __name__ == "__main__":
    main()
