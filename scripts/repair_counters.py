"""Recompute favorites_count from the favorites table and report drifted articles."""
import argparse
import asyncio
import logging

from conduit.database import async_session
from conduit.services import relation_service


async def repair(slug: str | None = None, dry_run: bool = False) -> list[str]:
    async with async_session() as session:
        repaired = await relation_service.repair_favorites_count(session, slug)
        if dry_run:
            await session.rollback()
        else:
            await session.commit()
    return repaired


def main():
    parser = argparse.ArgumentParser(description="Repair denormalised favorites counters")
    parser.add_argument("--slug", help="Only check this article")
    parser.add_argument("--dry-run", action="store_true", help="Report drift without writing")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    repaired = asyncio.run(repair(args.slug, args.dry_run))
    if repaired:
        print(f"{'Drifted' if args.dry_run else 'Repaired'} {len(repaired)} article(s):")
        for slug in repaired:
            print(f"  {slug}")
    else:
        print("All favorites counters are consistent")


if __name__ == "__main__":
    main()
