import base64

import pytest
from solders.hash import Hash
from solders.message import MessageV0
from solders.pubkey import Pubkey

from event_codec import EventFields
from event_pda import MAX_SEED_LEN, derive_event_address, event_pda
from tx_builder import (
    CREATE_EVENT_DISCRIMINATOR,
    SYS_PROGRAM_ID,
    build_create_event_ix,
    compile_message,
    encode_create_event,
    generate_event_id,
    instruction_to_dict,
    sighash,
    unsigned_transaction,
)

PROGRAM_ID = Pubkey.from_string("wEeoKNhaFsCPYLsscNUy5PpXxNs81vF6CfEArCxLmmr")
CREATOR = Pubkey.from_bytes(bytes([7] * 32))

FIELDS = EventFields(
    name="Summer Fest",
    description="Three days of music",
    price=500_000_000,
    max_tickets=1000,
    event_date=1721059200,
    location="Central Park",
    category="Music",
    image_cid="QmImage",
    metadata_cid="QmMeta",
)


def test_discriminator_matches_anchor_sighash():
    assert CREATE_EVENT_DISCRIMINATOR == bytes([0x31, 0xDB, 0x1D, 0xCB, 0x16, 0x62, 0x64, 0x57])
    assert sighash("create_event") == CREATE_EVENT_DISCRIMINATOR


def test_derive_is_deterministic():
    first = derive_event_address(PROGRAM_ID, CREATOR, "summer-fest-1700000000")
    second = derive_event_address(PROGRAM_ID, CREATOR, "summer-fest-1700000000")
    assert first == second
    assert 0 <= first.bump <= 255
    expected, bump = Pubkey.find_program_address(
        [b"event", bytes(CREATOR), b"summer-fest-1700000000"], PROGRAM_ID
    )
    assert first.address == expected
    assert first.bump == bump
    assert not first.address.is_on_curve()


def test_derive_depends_on_every_input():
    base = event_pda(PROGRAM_ID, CREATOR, "a")
    assert event_pda(PROGRAM_ID, CREATOR, "b") != base
    assert event_pda(PROGRAM_ID, Pubkey.from_bytes(bytes([8] * 32)), "a") != base
    assert event_pda(SYS_PROGRAM_ID, CREATOR, "a") != base


def test_derive_rejects_oversized_event_id():
    with pytest.raises(ValueError):
        derive_event_address(PROGRAM_ID, CREATOR, "x" * (MAX_SEED_LEN + 1))


def test_generate_event_id_keeps_timestamp():
    assert generate_event_id("Summer  Fest", now_ms=1700000000000) == "summer-fest-1700000000000"
    long_id = generate_event_id("A Very Long Event Name That Goes On And On", now_ms=1700000000000)
    assert long_id.endswith("-1700000000000")
    assert len(long_id.encode("utf-8")) <= 32


def test_generate_event_id_multibyte_truncation():
    event_id = generate_event_id("Fête " * 10, now_ms=1)
    raw = event_id.encode("utf-8")
    assert len(raw) <= 32
    assert event_id.endswith("-1")


def test_generate_event_id_empty_name():
    assert generate_event_id("   ", now_ms=5) == "event-5"


def test_payload_length_example():
    event_id = "summer-fest-1700000000"
    data = encode_create_event(event_id, FIELDS)
    expected = (
        8
        + (4 + len(event_id))
        + (4 + len(FIELDS.name))
        + (4 + len(FIELDS.description))
        + 8
        + 8
        + 8
        + (4 + len(FIELDS.location))
        + (4 + len(FIELDS.category))
        + (4 + len(FIELDS.image_cid))
        + (4 + len(FIELDS.metadata_cid))
    )
    assert len(data) == expected
    assert data[:8] == CREATE_EVENT_DISCRIMINATOR
    assert data[8:12] == len(event_id).to_bytes(4, "little")


def test_build_create_event_accounts():
    built = build_create_event_ix(PROGRAM_ID, CREATOR, FIELDS, event_id="summer-fest-1700000000")
    ix = built.instruction
    assert ix.program_id == PROGRAM_ID
    assert built.event_id == "summer-fest-1700000000"
    metas = [(m.pubkey, m.is_signer, m.is_writable) for m in ix.accounts]
    assert metas == [
        (built.event_address.address, False, True),
        (CREATOR, True, True),
        (SYS_PROGRAM_ID, False, False),
    ]
    assert bytes(ix.data) == encode_create_event("summer-fest-1700000000", FIELDS)


def test_build_generates_event_id_from_name():
    built = build_create_event_ix(PROGRAM_ID, CREATOR, FIELDS, now_ms=1700000000123)
    assert built.event_id == "summer-fest-1700000000123"
    assert built.event_address == derive_event_address(PROGRAM_ID, CREATOR, built.event_id)


def test_instruction_to_dict_and_message():
    built = build_create_event_ix(PROGRAM_ID, CREATOR, FIELDS, event_id="eid")
    as_dict = instruction_to_dict(built.instruction)
    assert as_dict["program_id"] == str(PROGRAM_ID)
    assert as_dict["keys"][1] == {"pubkey": str(CREATOR), "is_signer": True, "is_writable": True}
    assert base64.b64decode(as_dict["data"]) == bytes(built.instruction.data)

    blockhash = str(Hash.default())
    message = MessageV0.from_bytes(bytes(compile_message([built.instruction], CREATOR, blockhash)))
    assert message.account_keys[0] == CREATOR
    assert message.header.num_required_signatures == 1
    tx = unsigned_transaction(message)
    assert len(tx.signatures) == 1
