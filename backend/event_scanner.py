import logging
from typing import Iterable, List, Optional

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client as SolanaClient
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey

from errors import DecodeError, NetworkError
from event_codec import EventRecord, decode_event_account
from settings import Settings

logger = logging.getLogger("event_tickets.scanner")

RPC_ERRORS = (SolanaRpcException, RPCException, httpx.HTTPError)


def sort_by_event_date(records: Iterable[EventRecord]) -> List[EventRecord]:
    return sorted(records, key=lambda rec: rec.event_date)


class EventScanner:
    """Snapshot reads of the program's Event accounts. Each call is a fresh scan."""

    def __init__(self, client: SolanaClient, settings: Settings):
        self.client = client
        self.settings = settings
        self.program_id = settings.program_pubkey

    def _program_accounts(self) -> list:
        try:
            resp = self.client.get_program_accounts(
                self.program_id,
                commitment=self.settings.commitment,
                encoding="base64",
            )
        except RPC_ERRORS as exc:
            raise NetworkError(f"RPC get_program_accounts failed: {exc}", stage="scan", cause=exc) from exc
        return resp.value or []

    def scan(self) -> List[EventRecord]:
        """Decode every program account; undecodable ones are logged and skipped."""
        records: List[EventRecord] = []
        skipped = 0
        for acc in self._program_accounts():
            info = acc.account
            if not info or info.owner != self.program_id:
                continue
            try:
                records.append(decode_event_account(bytes(info.data), address=acc.pubkey))
            except DecodeError as exc:
                skipped += 1
                logger.warning("event_scan_skip account=%s offset=%s reason=%s", acc.pubkey, exc.offset, exc.reason)
        logger.info("event_scan_complete decoded=%s skipped=%s", len(records), skipped)
        return records

    def list_active_events(self) -> List[EventRecord]:
        return sort_by_event_date(rec for rec in self.scan() if rec.is_active)

    def list_events_by_creator(self, creator: Pubkey) -> List[EventRecord]:
        return sort_by_event_date(rec for rec in self.scan() if rec.creator == creator)

    def fetch_event(self, address: Pubkey) -> Optional[EventRecord]:
        try:
            resp = self.client.get_account_info(address, commitment=self.settings.commitment)
        except RPC_ERRORS as exc:
            raise NetworkError(f"RPC get_account_info failed: {exc}", stage="fetch", cause=exc) from exc
        if resp.value is None or resp.value.data is None:
            return None
        if resp.value.owner != self.program_id:
            raise DecodeError(0, f"account {address} is not owned by program {self.program_id}")
        return decode_event_account(bytes(resp.value.data), address=address)
