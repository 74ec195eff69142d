"""
Create example events on devnet for testing.

Requirements:
- PROGRAM_ID (and optionally SOLANA_RPC / SOLANA_NETWORK) in the environment or backend/.env.
- A funded keypair file: KEYPAIR_PATH, defaulting to ~/.config/solana/id.json.
"""

from __future__ import annotations

import json
import logging
import os
import pathlib
import sys
from datetime import datetime, timezone
from typing import Optional

from solana.rpc.api import Client as SolanaClient
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

# Add backend module path
ROOT = pathlib.Path(__file__).resolve().parents[1]
BACKEND = ROOT / "backend"
sys.path.append(str(BACKEND))

from errors import TicketingError  # type: ignore  # noqa: E402
from event_codec import EventFields  # type: ignore  # noqa: E402
from event_submitter import EventSubmitter  # type: ignore  # noqa: E402
from settings import LAMPORTS_PER_SOL, Settings  # type: ignore  # noqa: E402

logger = logging.getLogger("event_tickets.scripts")

EXAMPLE_EVENTS = [
    {
        "name": "Summer Music Festival 2024",
        "description": "Top artists from around the world, live performances, food trucks.",
        "price_sol": 0.5,
        "max_tickets": 1000,
        "event_date": "2024-07-15T18:00:00",
        "location": "Central Park, New York",
        "category": "Music",
        "image_cid": "QmExample1",
        "metadata_cid": "QmMetadata1",
    },
    {
        "name": "Tech Conference 2024",
        "description": "Keynote speakers, workshops, and networking for developers and founders.",
        "price_sol": 1.0,
        "max_tickets": 500,
        "event_date": "2024-08-20T09:00:00",
        "location": "Convention Center, San Francisco",
        "category": "Technology",
        "image_cid": "QmExample2",
        "metadata_cid": "QmMetadata2",
    },
    {
        "name": "Food & Wine Festival",
        "description": "Cuisine and wines from renowned chefs and wineries.",
        "price_sol": 0.75,
        "max_tickets": 300,
        "event_date": "2024-09-05T17:00:00",
        "location": "Riverside Garden, Chicago",
        "category": "Food & Drink",
        "image_cid": "QmExample3",
        "metadata_cid": "QmMetadata3",
    },
    {
        "name": "Blockchain Developer Workshop",
        "description": "Hands-on Solana development: programs, DeFi and NFTs.",
        "price_sol": 0.25,
        "max_tickets": 100,
        "event_date": "2024-10-10T10:00:00",
        "location": "Tech Hub, Austin",
        "category": "Education",
        "image_cid": "QmExample4",
        "metadata_cid": "QmMetadata4",
    },
    {
        "name": "Comedy Night Special",
        "description": "An evening of laughter with top comedians.",
        "price_sol": 0.3,
        "max_tickets": 200,
        "event_date": "2024-11-20T20:00:00",
        "location": "Comedy Club, Los Angeles",
        "category": "Entertainment",
        "image_cid": "QmExample5",
        "metadata_cid": "QmMetadata5",
    },
]


def load_keypair(path: str) -> Keypair:
    with open(path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)
    if isinstance(raw, list):
        secret = bytes(raw)
    elif isinstance(raw, dict) and "secretKey" in raw:
        secret = bytes(raw["secretKey"])
    else:
        raise ValueError("Unsupported keypair file format")
    return Keypair.from_bytes(secret)


class KeypairWallet:
    """Local file keypair standing in for a browser wallet on devnet."""

    def __init__(self, client: SolanaClient, keypair: Keypair):
        self.client = client
        self.keypair = keypair

    @property
    def public_key(self) -> Optional[Pubkey]:
        return self.keypair.pubkey()

    def sign_and_send(self, message: MessageV0, opts: TxOpts) -> str:
        tx = VersionedTransaction(message, [self.keypair])
        resp = self.client.send_raw_transaction(bytes(tx), opts=opts)
        return str(resp.value)


def example_fields(item: dict) -> EventFields:
    event_date = datetime.fromisoformat(item["event_date"]).replace(tzinfo=timezone.utc)
    return EventFields(
        name=item["name"],
        description=item["description"],
        price=int(item["price_sol"] * LAMPORTS_PER_SOL),
        max_tickets=item["max_tickets"],
        event_date=int(event_date.timestamp()),
        location=item["location"],
        category=item["category"],
        image_cid=item["image_cid"],
        metadata_cid=item["metadata_cid"],
    )


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    settings = Settings()
    key_path = os.environ.get("KEYPAIR_PATH") or os.path.expanduser("~/.config/solana/id.json")
    client = SolanaClient(settings.rpc_url)
    wallet = KeypairWallet(client, load_keypair(key_path))
    logger.info("create_examples rpc=%s program=%s creator=%s", settings.rpc_url, settings.program_id, wallet.public_key)

    failures = 0
    for item in EXAMPLE_EVENTS:
        submitter = EventSubmitter(client, wallet, settings)
        try:
            result = submitter.submit(example_fields(item))
        except TicketingError as exc:
            failures += 1
            logger.error("create_example_failed name=%s error=%s", item["name"], json.dumps(exc.to_dict()))
            continue
        print(f"Created {item['name']}: pda={result.event_address} sig={result.signature}")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
