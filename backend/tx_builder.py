import base64
import hashlib
import re
import time
from dataclasses import dataclass
from typing import List, Optional

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from event_codec import EventFields, encode_create_event_args
from event_pda import MAX_SEED_LEN, DerivedAddress, derive_event_address

SYS_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
MAX_EVENT_ID_LEN = MAX_SEED_LEN


def sighash(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


CREATE_EVENT_DISCRIMINATOR = sighash("create_event")


def to_pubkey(value: str) -> Pubkey:
    return Pubkey.from_string(value)


@dataclass(frozen=True)
class CreateEventInstruction:
    instruction: Instruction
    event_id: str
    event_address: DerivedAddress


def _truncate_utf8(value: str, max_bytes: int) -> str:
    raw = value.encode("utf-8")[:max_bytes]
    return raw.decode("utf-8", errors="ignore")


def slugify_name(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def generate_event_id(name: str, now_ms: Optional[int] = None) -> str:
    """Slug of the event name plus a millisecond timestamp, capped at the PDA seed limit.

    The slug is shortened first so the timestamp suffix always survives.
    """
    stamp = int(time.time() * 1000) if now_ms is None else int(now_ms)
    suffix = f"-{stamp}"
    slug = slugify_name(name) or "event"
    slug = _truncate_utf8(slug, max(MAX_EVENT_ID_LEN - len(suffix), 0))
    return _truncate_utf8(f"{slug}{suffix}", MAX_EVENT_ID_LEN)


def encode_create_event(event_id: str, fields: EventFields) -> bytes:
    return CREATE_EVENT_DISCRIMINATOR + encode_create_event_args(event_id, fields)


def build_create_event_ix(
    program_id: Pubkey,
    creator: Pubkey,
    fields: EventFields,
    event_id: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> CreateEventInstruction:
    if event_id is None:
        event_id = generate_event_id(fields.name, now_ms)
    derived = derive_event_address(program_id, creator, event_id)
    accounts = [
        AccountMeta(pubkey=derived.address, is_signer=False, is_writable=True),
        AccountMeta(pubkey=creator, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    data = encode_create_event(event_id, fields)
    ix = Instruction(program_id=program_id, data=data, accounts=accounts)
    return CreateEventInstruction(instruction=ix, event_id=event_id, event_address=derived)


def instruction_to_dict(ix: Instruction) -> dict:
    return {
        "program_id": str(ix.program_id),
        "keys": [
            {
                "pubkey": str(k.pubkey),
                "is_signer": k.is_signer,
                "is_writable": k.is_writable,
            }
            for k in ix.accounts
        ],
        "data": base64.b64encode(ix.data).decode(),
    }


def compile_message(ixs: List[Instruction], payer: Pubkey, blockhash) -> MessageV0:
    if isinstance(blockhash, str):
        blockhash = Hash.from_string(blockhash)
    return MessageV0.try_compile(payer, ixs, [], blockhash)


def unsigned_transaction(message: MessageV0) -> VersionedTransaction:
    # Placeholder signatures; only valid for simulation with sig_verify off.
    required = message.header.num_required_signatures
    return VersionedTransaction.populate(message, [Signature.default() for _ in range(required)])
