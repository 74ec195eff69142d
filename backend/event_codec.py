"""
Byte codec for the event tickets program.

Account layout (Anchor `Event`, little-endian):
  [8B tag][32B creator][str event_id][str name][str description][u64 price]
  [u64 max_tickets][u64 tickets_sold][i64 event_date][bool is_active]
  [str location][str category][str image_cid][str metadata_cid][i64 created_at]

Every `str` is a u32 length followed by raw UTF-8 bytes. Accounts are allocated
at their maximum size, so bytes after `created_at` are zero padding and ignored.
"""

import hashlib
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Tuple

from borsh_construct import Bool, CStruct, I64, String, U64, U8
from solders.pubkey import Pubkey

from errors import DecodeError

ACCOUNT_TAG_LEN = 8
PUBKEY_LEN = 32
U64_MAX = 2**64 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1
U32_MAX = 2**32 - 1

EVENT_ACCOUNT_DISCRIMINATOR = hashlib.sha256(b"account:Event").digest()[:8]

EventAccountLayout = CStruct(
    "creator" / U8[32],
    "event_id" / String,
    "name" / String,
    "description" / String,
    "price" / U64,
    "max_tickets" / U64,
    "tickets_sold" / U64,
    "event_date" / I64,
    "is_active" / Bool,
    "location" / String,
    "category" / String,
    "image_cid" / String,
    "metadata_cid" / String,
    "created_at" / I64,
)

# ticketsSold, isActive and createdAt are assigned by the program.
CreateEventArgsLayout = CStruct(
    "event_id" / String,
    "name" / String,
    "description" / String,
    "price" / U64,
    "max_tickets" / U64,
    "event_date" / I64,
    "location" / String,
    "category" / String,
    "image_cid" / String,
    "metadata_cid" / String,
)


@dataclass(frozen=True)
class EventFields:
    """Caller-supplied business data for a new event. `price` is in lamports."""

    name: str
    description: str
    price: int
    max_tickets: int
    event_date: int
    location: str
    category: str
    image_cid: str
    metadata_cid: str


@dataclass(frozen=True)
class EventRecord:
    creator: Pubkey
    event_id: str
    name: str
    description: str
    price: int
    max_tickets: int
    tickets_sold: int
    event_date: int
    is_active: bool
    location: str
    category: str
    image_cid: str
    metadata_cid: str
    created_at: int
    # Not part of the wire format; set when the record came from a known account.
    address: Optional[Pubkey] = None

    @property
    def tickets_remaining(self) -> int:
        return max(self.max_tickets - self.tickets_sold, 0)

    def with_address(self, address: Pubkey) -> "EventRecord":
        return replace(self, address=address)


def _check_u64(value: int) -> int:
    value = int(value)
    if not 0 <= value <= U64_MAX:
        raise ValueError(f"u64 out of range: {value}")
    return value


def _check_i64(value: int) -> int:
    value = int(value)
    if not I64_MIN <= value <= I64_MAX:
        raise ValueError(f"i64 out of range: {value}")
    return value


def _check_string(value: str) -> str:
    if len(value.encode("utf-8")) > U32_MAX:
        raise ValueError("string too long for u32 length prefix")
    return value


def encode_string(value: str) -> bytes:
    return String.build(_check_string(value))


def encode_u64(value: int) -> bytes:
    return U64.build(_check_u64(value))


def encode_i64(value: int) -> bytes:
    return I64.build(_check_i64(value))


def encode_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def encode_pubkey(value: Pubkey) -> bytes:
    return bytes(value)


class AccountCursor:
    """Forward-only reader over account bytes; every read is bounds-checked."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = bytes(data)
        if offset < 0 or offset > len(self.data):
            raise DecodeError(offset, f"start offset outside buffer of {len(self.data)} bytes")
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read_bytes(self, size: int, what: str = "bytes") -> bytes:
        if size > self.remaining:
            raise DecodeError(
                self.offset, f"{what} needs {size} bytes but only {self.remaining} remain"
            )
        chunk = self.data[self.offset : self.offset + size]
        self.offset += size
        return chunk

    def skip(self, size: int, what: str = "padding") -> None:
        self.read_bytes(size, what)

    def read_u32(self) -> int:
        return int.from_bytes(self.read_bytes(4, "u32"), "little")

    def read_u64(self) -> int:
        return int.from_bytes(self.read_bytes(8, "u64"), "little", signed=False)

    def read_i64(self) -> int:
        return int.from_bytes(self.read_bytes(8, "i64"), "little", signed=True)

    def read_bool(self) -> bool:
        start = self.offset
        raw = self.read_bytes(1, "bool")[0]
        if raw not in (0, 1):
            raise DecodeError(start, f"invalid bool byte 0x{raw:02x}")
        return raw == 1

    def read_pubkey(self) -> Pubkey:
        return Pubkey.from_bytes(self.read_bytes(PUBKEY_LEN, "pubkey"))

    def read_string(self) -> str:
        start = self.offset
        length = self.read_u32()
        if length > self.remaining:
            raise DecodeError(
                start, f"string length prefix {length} exceeds remaining {self.remaining} bytes"
            )
        raw = self.read_bytes(length, "string")
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(start, f"string is not valid UTF-8: {exc.reason}") from exc


def _decode_with(reader: Callable[[AccountCursor], object]):
    def decode(data: bytes, offset: int = 0):
        cursor = AccountCursor(data, offset)
        value = reader(cursor)
        return value, cursor.offset

    return decode


decode_string = _decode_with(AccountCursor.read_string)
decode_u64 = _decode_with(AccountCursor.read_u64)
decode_i64 = _decode_with(AccountCursor.read_i64)
decode_bool = _decode_with(AccountCursor.read_bool)
decode_pubkey = _decode_with(AccountCursor.read_pubkey)

FIELD_ENCODERS: Dict[str, Callable[..., bytes]] = {
    "string": encode_string,
    "u64": encode_u64,
    "i64": encode_i64,
    "bool": encode_bool,
    "pubkey": encode_pubkey,
}
FIELD_DECODERS = {
    "string": decode_string,
    "u64": decode_u64,
    "i64": decode_i64,
    "bool": decode_bool,
    "pubkey": decode_pubkey,
}


def encode_field(kind: str, value) -> bytes:
    try:
        encoder = FIELD_ENCODERS[kind]
    except KeyError:
        raise ValueError(f"Unsupported field kind {kind}") from None
    return encoder(value)


def decode_field(kind: str, data: bytes, offset: int = 0) -> Tuple[object, int]:
    try:
        decoder = FIELD_DECODERS[kind]
    except KeyError:
        raise ValueError(f"Unsupported field kind {kind}") from None
    return decoder(data, offset)


def decode_event_account(data: bytes, address: Optional[Pubkey] = None) -> EventRecord:
    cur = AccountCursor(data)
    cur.skip(ACCOUNT_TAG_LEN, "account tag")
    return EventRecord(
        creator=cur.read_pubkey(),
        event_id=cur.read_string(),
        name=cur.read_string(),
        description=cur.read_string(),
        price=cur.read_u64(),
        max_tickets=cur.read_u64(),
        tickets_sold=cur.read_u64(),
        event_date=cur.read_i64(),
        is_active=cur.read_bool(),
        location=cur.read_string(),
        category=cur.read_string(),
        image_cid=cur.read_string(),
        metadata_cid=cur.read_string(),
        created_at=cur.read_i64(),
        address=address,
    )


def encode_event_account(record: EventRecord, tag: bytes = EVENT_ACCOUNT_DISCRIMINATOR) -> bytes:
    if len(tag) != ACCOUNT_TAG_LEN:
        raise ValueError(f"account tag must be {ACCOUNT_TAG_LEN} bytes")
    data = EventAccountLayout.build(
        {
            "creator": list(bytes(record.creator)),
            "event_id": _check_string(record.event_id),
            "name": _check_string(record.name),
            "description": _check_string(record.description),
            "price": _check_u64(record.price),
            "max_tickets": _check_u64(record.max_tickets),
            "tickets_sold": _check_u64(record.tickets_sold),
            "event_date": _check_i64(record.event_date),
            "is_active": bool(record.is_active),
            "location": _check_string(record.location),
            "category": _check_string(record.category),
            "image_cid": _check_string(record.image_cid),
            "metadata_cid": _check_string(record.metadata_cid),
            "created_at": _check_i64(record.created_at),
        }
    )
    return bytes(tag) + data


def encode_create_event_args(event_id: str, fields: EventFields) -> bytes:
    return CreateEventArgsLayout.build(
        {
            "event_id": _check_string(event_id),
            "name": _check_string(fields.name),
            "description": _check_string(fields.description),
            "price": _check_u64(fields.price),
            "max_tickets": _check_u64(fields.max_tickets),
            "event_date": _check_i64(fields.event_date),
            "location": _check_string(fields.location),
            "category": _check_string(fields.category),
            "image_cid": _check_string(fields.image_cid),
            "metadata_cid": _check_string(fields.metadata_cid),
        }
    )
