from __future__ import annotations

import base64
import logging
import time
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from solana.rpc.api import Client as SolanaClient
from solana.rpc.types import TxOpts
from solders.message import MessageV0
from solders.pubkey import Pubkey

from errors import (
    ConfirmationTimeout,
    DecodeError,
    InsufficientFunds,
    NetworkError,
    SendFailure,
    SimulationFailure,
    TicketingError,
    WalletNotConnected,
    WalletRejected,
)
from event_codec import EventFields, EventRecord
from event_scanner import EventScanner
from event_submitter import EventSubmitter
from settings import LAMPORTS_PER_SOL, Settings
from tx_builder import instruction_to_dict, to_pubkey

settings = Settings()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("event_tickets")

sol_client = SolanaClient(settings.rpc_url)
app = FastAPI(title="Event Tickets")

DEFAULT_EVENT_LEAD_SECONDS = 7 * 24 * 60 * 60
ERROR_STATUS = {
    WalletNotConnected: 400,
    WalletRejected: 400,
    InsufficientFunds: 400,
    SimulationFailure: 400,
    DecodeError: 422,
    ConfirmationTimeout: 408,
    SendFailure: 502,
    NetworkError: 502,
}


class BrowserWallet:
    """Public key of a browser wallet; the signature is produced client-side."""

    def __init__(self, public_key: Optional[Pubkey]):
        self._public_key = public_key

    @property
    def public_key(self) -> Optional[Pubkey]:
        return self._public_key

    def sign_and_send(self, message: MessageV0, opts: TxOpts) -> str:
        raise WalletRejected("Server does not sign; sign the returned message in the wallet")


class EventView(BaseModel):
    pda: Optional[str] = None
    creator: str
    event_id: str
    name: str
    description: str
    price_lamports: int
    price_sol: float
    max_tickets: int
    tickets_sold: int
    tickets_remaining: int
    event_date: int
    is_active: bool
    location: str
    category: str
    image_cid: str
    metadata_cid: str
    created_at: int


class CreateEventBuildRequest(BaseModel):
    wallet: str
    name: str
    description: Optional[str] = None
    price_lamports: Optional[int] = Field(None, ge=0)
    price_sol: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    max_tickets: Optional[int] = None
    event_date: Optional[int] = None
    location: Optional[str] = None
    category: Optional[str] = None
    image_cid: Optional[str] = None
    metadata_cid: Optional[str] = None
    event_id: Optional[str] = None


class KeyMeta(BaseModel):
    pubkey: str
    is_signer: bool
    is_writable: bool


class InstructionMeta(BaseModel):
    program_id: str
    keys: List[KeyMeta]
    data: str


class CreateEventBuildResponse(BaseModel):
    event_id: str
    event_pda: str
    message_b64: str
    recent_blockhash: str
    last_valid_block_height: int
    instruction: InstructionMeta
    simulation_logs: List[str]
    units_consumed: Optional[int] = None


class ConfirmRequest(BaseModel):
    signature: str
    last_valid_block_height: int


def get_client() -> SolanaClient:
    return sol_client


def get_settings() -> Settings:
    return settings


def event_to_view(record: EventRecord) -> EventView:
    return EventView(
        pda=str(record.address) if record.address else None,
        creator=str(record.creator),
        event_id=record.event_id,
        name=record.name,
        description=record.description,
        price_lamports=record.price,
        price_sol=record.price / LAMPORTS_PER_SOL,
        max_tickets=record.max_tickets,
        tickets_sold=record.tickets_sold,
        tickets_remaining=record.tickets_remaining,
        event_date=record.event_date,
        is_active=record.is_active,
        location=record.location,
        category=record.category,
        image_cid=record.image_cid,
        metadata_cid=record.metadata_cid,
        created_at=record.created_at,
    )


def parse_wallet(value: str) -> Pubkey:
    try:
        return to_pubkey(value)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=400, detail=f"Invalid wallet: {exc}") from exc


def fields_from_request(req: CreateEventBuildRequest, now: Optional[float] = None) -> EventFields:
    if req.price_lamports is not None:
        price = req.price_lamports
    elif req.price_sol is not None:
        price = int(req.price_sol * LAMPORTS_PER_SOL)
    else:
        raise HTTPException(status_code=400, detail="price_lamports or price_sol is required")
    if price < 0:
        raise HTTPException(status_code=400, detail="price must not be negative")
    now_ts = int(now if now is not None else time.time())
    return EventFields(
        name=req.name,
        description=req.description or "No description provided",
        price=price,
        max_tickets=req.max_tickets if req.max_tickets is not None else 100,
        event_date=req.event_date if req.event_date is not None else now_ts + DEFAULT_EVENT_LEAD_SECONDS,
        location=req.location or "TBA",
        category=req.category or "General",
        image_cid=req.image_cid or "placeholder-image-cid",
        metadata_cid=req.metadata_cid or "placeholder-metadata-cid",
    )


@app.exception_handler(TicketingError)
async def ticketing_error_handler(request: Request, exc: TicketingError):
    status = 500
    for kind, code in ERROR_STATUS.items():
        if isinstance(exc, kind):
            status = code
            break
    logger.warning("request_failed path=%s kind=%s stage=%s", request.url.path, type(exc).__name__, exc.stage)
    return JSONResponse(status_code=status, content={"detail": exc.message, "error": exc.to_dict()})


@app.get("/health")
def health(settings: Settings = Depends(get_settings)):
    return {"ok": True, "network": settings.solana_network, "program_id": settings.program_id}


@app.get("/events", response_model=List[EventView])
def list_events(client: SolanaClient = Depends(get_client), settings: Settings = Depends(get_settings)):
    scanner = EventScanner(client, settings)
    return [event_to_view(rec) for rec in scanner.list_active_events()]


@app.get("/events/creator/{wallet}", response_model=List[EventView])
def list_creator_events(
    wallet: str, client: SolanaClient = Depends(get_client), settings: Settings = Depends(get_settings)
):
    creator = parse_wallet(wallet)
    scanner = EventScanner(client, settings)
    return [event_to_view(rec) for rec in scanner.list_events_by_creator(creator)]


@app.get("/events/{address}", response_model=EventView)
def get_event(address: str, client: SolanaClient = Depends(get_client), settings: Settings = Depends(get_settings)):
    try:
        pda = to_pubkey(address)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=400, detail=f"Invalid event address: {exc}") from exc
    record = EventScanner(client, settings).fetch_event(pda)
    if record is None:
        raise HTTPException(status_code=404, detail="Event not found on-chain")
    return event_to_view(record)


@app.post("/events/create/build", response_model=CreateEventBuildResponse)
def build_create_event(
    req: CreateEventBuildRequest,
    client: SolanaClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
):
    """Balance check, build and simulate; the caller's wallet signs `message_b64`."""
    creator = parse_wallet(req.wallet)
    fields = fields_from_request(req)
    submitter = EventSubmitter(client, BrowserWallet(creator), settings)
    try:
        report = submitter.preview(fields, event_id=req.event_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info("create_event_build wallet=%s event_id=%s pda=%s", req.wallet, report.event_id, report.event_address)
    return CreateEventBuildResponse(
        event_id=report.event_id,
        event_pda=str(report.event_address),
        message_b64=base64.b64encode(bytes(report.message)).decode(),
        recent_blockhash=report.blockhash,
        last_valid_block_height=report.last_valid_block_height,
        instruction=InstructionMeta(**instruction_to_dict(report.instruction)),
        simulation_logs=report.logs,
        units_consumed=report.units_consumed,
    )


@app.post("/events/create/confirm")
def confirm_create_event(
    req: ConfirmRequest,
    client: SolanaClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
):
    submitter = EventSubmitter(client, BrowserWallet(None), settings)
    try:
        submitter.wait_for_confirmation(req.signature, req.last_valid_block_height)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid signature: {exc}") from exc
    return {"ok": True, "signature": req.signature, "commitment": settings.commitment}
