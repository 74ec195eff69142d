from typing import NamedTuple

from solders.pubkey import Pubkey

EVENT_SEED = b"event"
MAX_SEED_LEN = 32


class DerivedAddress(NamedTuple):
    address: Pubkey
    bump: int


def event_seeds(creator: Pubkey, event_id: str) -> list:
    event_id_bytes = event_id.encode("utf-8")
    if len(event_id_bytes) > MAX_SEED_LEN:
        raise ValueError(f"event_id is {len(event_id_bytes)} bytes; PDA seeds are limited to {MAX_SEED_LEN}")
    return [EVENT_SEED, bytes(creator), event_id_bytes]


def derive_event_address(program_id: Pubkey, creator: Pubkey, event_id: str) -> DerivedAddress:
    address, bump = Pubkey.find_program_address(event_seeds(creator, event_id), program_id)
    return DerivedAddress(address, bump)


def event_pda(program_id: Pubkey, creator: Pubkey, event_id: str) -> Pubkey:
    return derive_event_address(program_id, creator, event_id).address
