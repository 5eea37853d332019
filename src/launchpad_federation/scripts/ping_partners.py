# src/launchpad_federation/scripts/ping_partners.py
"""
Cron job to health-check every known partner instance.

Run periodically to:
1. Promote every instance whose health check succeeds to ``active``
2. Demote unreachable or unhealthy ones to ``inactive``
3. Record version, api_version and supported features from each partner

Compatibility is reported per partner but does not affect its status.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from launchpad_federation.db.session import session_scope
from launchpad_federation.services.partner_client import get_partner_client
from launchpad_federation.services.registry import PartnerRegistry


async def ping_partners() -> int:
    """Ping every registered instance; return how many answered healthy."""
    client = get_partner_client()
    try:
        with session_scope() as db:
            results = await PartnerRegistry(db, client).ping_all()
    finally:
        await client.close()

    for result in results:
        if result.healthy and result.compatible:
            print(f"[ping] {result.instance_url}: ok (api {result.api_version or '?'})")
        else:
            print(f"[ping] {result.instance_url}: unavailable ({result.error or 'incompatible'})")
    return sum(1 for result in results if result.healthy and result.compatible)


def main() -> None:
    parser = argparse.ArgumentParser(description="Health-check all federation partners")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    healthy = asyncio.run(ping_partners())
    print(f"[ping] {healthy} partner(s) healthy")


if __name__ == "__main__":
    main()
