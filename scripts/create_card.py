"""
TCG Appraiser — Upload Confirmation Script

Creates a cards row for an image that has already been uploaded to the
object store. This is the step that precedes a workflow run: the printed
card id goes into the workflow input's cardId.

Usage:
    python scripts/create_card.py --owner-id user-123 --front-key uploads/user-123/front.jpg
    python scripts/create_card.py --owner-id user-123 --front-key uploads/user-123/front.jpg \
        --name "Charizard ex" --set "Obsidian Flames" --rarity "Double Rare"
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from appraiser.config import settings
from appraiser.errors import ConflictError
from appraiser.schemas import Card, CardCreate
from appraiser.store.cards import CardStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create a TCG Appraiser card record for an uploaded image.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/create_card.py --owner-id user-123 --front-key uploads/user-123/front.jpg
  python scripts/create_card.py --owner-id user-123 --front-key f.jpg --back-key b.jpg --name "Pikachu"
""",
    )
    parser.add_argument("--owner-id", type=str, required=True, help="Verified user identifier.")
    parser.add_argument("--front-key", type=str, required=True, help="Object key of the front image.")
    parser.add_argument("--back-key", type=str, default=None, help="Object key of the back image.")
    parser.add_argument("--card-id", type=str, default=None, help="Explicit card id (default: new UUID).")
    parser.add_argument("--name", type=str, default=None, help="Card name, if already identified.")
    parser.add_argument("--set", dest="set_name", type=str, default=None, help="Set name.")
    parser.add_argument("--number", type=str, default=None, help="Collector number.")
    parser.add_argument("--rarity", type=str, default=None, help="Rarity label, e.g. 'Rare Holo'.")
    parser.add_argument("--condition", type=str, default=None, help="Condition estimate, e.g. 'Near Mint'.")
    return parser.parse_args()


async def create_card(args: argparse.Namespace) -> Card:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        store = CardStore(session_factory)
        return await store.create(
            args.owner_id,
            CardCreate(
                front_image_key=args.front_key,
                back_image_key=args.back_key,
                name=args.name,
                set_name=args.set_name,
                number=args.number,
                rarity=args.rarity,
                condition_estimate=args.condition,
            ),
            card_id=args.card_id,
        )
    finally:
        await engine.dispose()


async def main() -> None:
    args = parse_args()

    print(f"Creating card: owner_id={args.owner_id}, front_key={args.front_key}")

    try:
        card = await create_card(args)
    except ConflictError as e:
        print(f"Card already exists: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        print(f"Failed to create card: {e}", file=sys.stderr)
        sys.exit(1)

    print("Card created successfully.")
    print(f"  card_id    = {card.card_id}")
    print(f"  owner_id   = {card.owner_id}")
    print(f"  front_key  = {card.front_image_key}")
    if card.name:
        print(f"  name       = {card.name}")
    print()
    print("Run the workflow with this cardId to value and authenticate the card.")


if __name__ == "__main__":
    asyncio.run(main())
