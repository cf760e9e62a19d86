#!/usr/bin/env python3
"""
Script to initialize database tables.

Usage:
    python scripts/init_db.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from atelier_bot.config import settings
from atelier_bot.db.sqlite import db


async def main() -> None:
    """Create the orders and audit_logs tables."""
    print(f"Initializing database at {settings.db_url}...")
    print("-" * 50)

    await db.init()
    print("✅ Tables created: orders, audit_logs")

    await db.close()


if __name__ == "__main__":
    asyncio.run(main())
