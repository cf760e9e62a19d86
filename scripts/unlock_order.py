#!/usr/bin/env python3
"""
Release a stuck edit lock.

An edit whose unlock failed leaves the order locked; the bot refuses new
messages for it until an operator clears the lock.

Usage:
    python scripts/unlock_order.py ORDER_ID [--user OPERATOR]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from atelier_bot.core.orders.editing import ADMIN_ROLE, Identity, edit_orchestrator
from atelier_bot.db.sqlite import db


async def main(order_id: str, operator: str) -> int:
    try:
        response = await edit_orchestrator.force_unlock(
            order_id, Identity(user_id=operator, role=ADMIN_ROLE)
        )
    finally:
        await db.close()

    if not response.ok:
        print(f"❌ {response.body['message']}")
        return 1

    if response.body["was_locked"]:
        print(f"✅ Order {order_id} unlocked (was held by {response.body['previous_holder']})")
    else:
        print(f"Order {order_id} is not locked")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Release the edit lock of an order")
    parser.add_argument("order_id")
    parser.add_argument("--user", default="operator", help="Recorded in the audit log")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.order_id, args.user)))
