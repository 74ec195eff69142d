"""
Create-event submission lifecycle.

IDLE -> BALANCE_CHECKED -> BUILT -> SIMULATED -> SENT -> CONFIRMED, with FAILED
reachable from every non-terminal stage. Simulation is a hard gate: nothing is
handed to the wallet unless the node reports a null simulation error.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client as SolanaClient
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature

from errors import (
    ConfirmationTimeout,
    InsufficientFunds,
    NetworkError,
    SendFailure,
    SimulationFailure,
    TicketingError,
    WalletNotConnected,
    WalletRejected,
)
from event_codec import EventFields
from settings import Settings
from tx_builder import CreateEventInstruction, build_create_event_ix, compile_message, unsigned_transaction

logger = logging.getLogger("event_tickets.submitter")

RPC_ERRORS = (SolanaRpcException, RPCException, httpx.HTTPError)
COMMITMENT_ORDER = ["processed", "confirmed", "finalized"]


class SubmissionStage(str, Enum):
    IDLE = "idle"
    BALANCE_CHECKED = "balance_checked"
    BUILT = "built"
    SIMULATED = "simulated"
    SENT = "sent"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class WalletAdapter(Protocol):
    """External signer. Rejections must be raised as `WalletRejected`."""

    @property
    def public_key(self) -> Optional[Pubkey]: ...

    def sign_and_send(self, message: MessageV0, opts: TxOpts) -> str: ...


@dataclass(frozen=True)
class SubmissionResult:
    signature: str
    event_id: str
    event_address: Pubkey
    stages: List[SubmissionStage] = field(default_factory=list)


@dataclass(frozen=True)
class SimulationReport:
    event_id: str
    event_address: Pubkey
    instruction: Instruction
    message: MessageV0
    blockhash: str
    last_valid_block_height: int
    logs: List[str]
    units_consumed: Optional[int]


@dataclass
class _BuiltTransaction:
    built: CreateEventInstruction
    message: MessageV0
    blockhash: str
    last_valid_block_height: int


def _status_level(confirmation_status) -> Optional[str]:
    if confirmation_status is None:
        return None
    text = str(confirmation_status).lower()
    for level in reversed(COMMITMENT_ORDER):
        if level in text:
            return level
    return None


class EventSubmitter:
    def __init__(
        self,
        client: SolanaClient,
        wallet: WalletAdapter,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.wallet = wallet
        self.settings = settings
        self.program_id = settings.program_pubkey
        self._sleep = sleep
        self._clock = clock
        self.stage = SubmissionStage.IDLE
        self.history: List[SubmissionStage] = []

    def _advance(self, stage: SubmissionStage) -> None:
        self.stage = stage
        self.history.append(stage)

    def _reset(self) -> None:
        self.stage = SubmissionStage.IDLE
        self.history = [SubmissionStage.IDLE]

    def _fail(self, exc: BaseException) -> None:
        failed_at = self.stage
        if isinstance(exc, TicketingError) and exc.stage is None:
            exc.stage = failed_at.value
        self._advance(SubmissionStage.FAILED)
        logger.warning("event_submit_failed stage=%s kind=%s error=%s", failed_at.value, type(exc).__name__, exc)

    def _creator(self) -> Pubkey:
        creator = getattr(self.wallet, "public_key", None)
        if creator is None:
            raise WalletNotConnected()
        return creator

    def _rpc(self, what: str, call):
        try:
            return call()
        except RPC_ERRORS as exc:
            raise NetworkError(f"RPC {what} failed: {exc}", stage=self.stage.value, cause=exc) from exc

    def check_balance(self, creator: Pubkey) -> int:
        balance = self._rpc("get_balance", lambda: self.client.get_balance(creator, commitment=self.settings.commitment)).value
        required = self.settings.min_balance_lamports
        logger.info("event_submit_balance creator=%s balance=%s required=%s", creator, balance, required)
        if balance < required:
            raise InsufficientFunds(balance, required, stage=self.stage.value)
        return balance

    def build(self, creator: Pubkey, fields: EventFields, event_id: Optional[str] = None) -> _BuiltTransaction:
        built = build_create_event_ix(self.program_id, creator, fields, event_id=event_id)
        latest = self._rpc(
            "get_latest_blockhash", lambda: self.client.get_latest_blockhash(self.settings.commitment)
        ).value
        message = compile_message([built.instruction], creator, latest.blockhash)
        logger.info(
            "event_submit_built event_id=%s pda=%s creator=%s data_len=%s",
            built.event_id,
            built.event_address.address,
            creator,
            len(built.instruction.data),
        )
        return _BuiltTransaction(
            built=built,
            message=message,
            blockhash=str(latest.blockhash),
            last_valid_block_height=latest.last_valid_block_height,
        )

    def simulate(self, tx: _BuiltTransaction):
        result = self._rpc(
            "simulate_transaction",
            lambda: self.client.simulate_transaction(
                unsigned_transaction(tx.message), sig_verify=False, commitment=self.settings.commitment
            ),
        ).value
        logs = list(result.logs or [])
        if result.err is not None:
            logger.warning("event_submit_simulation_failed event_id=%s err=%s", tx.built.event_id, result.err)
            for line in logs:
                logger.warning("program_log %s", line)
            raise SimulationFailure(result.err, logs, stage=self.stage.value)
        logger.info(
            "event_submit_simulated event_id=%s units=%s", tx.built.event_id, getattr(result, "units_consumed", None)
        )
        return result

    def send(self, tx: _BuiltTransaction) -> str:
        attempts = max(int(self.settings.send_max_attempts), 1)
        opts = TxOpts(
            skip_preflight=True,
            preflight_commitment=self.settings.commitment,
            max_retries=attempts,
            last_valid_block_height=tx.last_valid_block_height,
        )
        last_error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            try:
                signature = self.wallet.sign_and_send(tx.message, opts)
                logger.info("event_submit_sent event_id=%s sig=%s attempt=%s", tx.built.event_id, signature, attempt)
                return str(signature)
            except WalletRejected as exc:
                exc.stage = self.stage.value
                raise
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                logger.warning(
                    "event_submit_send_retry event_id=%s attempt=%s/%s error=%s",
                    tx.built.event_id,
                    attempt,
                    attempts,
                    exc,
                    exc_info=True,
                )
                if attempt < attempts:
                    self._sleep(self.settings.send_retry_delay_seconds)
        raise SendFailure(attempts, last_error, stage=self.stage.value)

    def confirm(self, signature: str, last_valid_block_height: int) -> None:
        target = self.settings.commitment.lower()
        needed = COMMITMENT_ORDER.index(target) if target in COMMITMENT_ORDER else 1
        sig_obj = Signature.from_string(signature)
        deadline = self._clock() + self.settings.confirm_timeout_seconds
        # The transaction is already out; transport errors are retried so the signature is never lost.
        poll_error: Optional[BaseException] = None
        while True:
            try:
                resp = self.client.get_signature_statuses([sig_obj])
            except RPC_ERRORS as exc:
                poll_error = exc
                logger.warning("event_submit_poll_failed sig=%s call=get_signature_statuses error=%s", signature, exc)
            else:
                status = resp.value[0] if resp.value else None
                if status is not None:
                    if status.err is not None:
                        raise ConfirmationTimeout(
                            signature, "transaction failed on-chain", err=status.err, stage=self.stage.value
                        )
                    level = _status_level(status.confirmation_status)
                    if level in COMMITMENT_ORDER and COMMITMENT_ORDER.index(level) >= needed:
                        return
            try:
                height = self.client.get_block_height(self.settings.commitment).value
            except RPC_ERRORS as exc:
                poll_error = exc
                logger.warning("event_submit_poll_failed sig=%s call=get_block_height error=%s", signature, exc)
            else:
                if height > last_valid_block_height:
                    raise ConfirmationTimeout(
                        signature,
                        f"blockhash expired at height {height} (last valid {last_valid_block_height})",
                        stage=self.stage.value,
                    )
            if self._clock() >= deadline:
                reason = f"no {target} status within {self.settings.confirm_timeout_seconds}s"
                if poll_error is not None:
                    reason += f" (last RPC error: {poll_error})"
                raise ConfirmationTimeout(signature, reason, err=poll_error, stage=self.stage.value)
            self._sleep(self.settings.confirm_poll_seconds)

    def wait_for_confirmation(self, signature: str, last_valid_block_height: int) -> None:
        """Confirm a signature that was sent outside this submitter (browser wallet flow)."""
        self._reset()
        self._advance(SubmissionStage.SENT)
        try:
            self.confirm(signature, last_valid_block_height)
        except BaseException as exc:
            self._fail(exc)
            raise
        self._advance(SubmissionStage.CONFIRMED)
        logger.info("event_submit_confirmed sig=%s", signature)

    def _prepare(self, fields: EventFields, event_id: Optional[str]):
        self._reset()
        creator = self._creator()
        self.check_balance(creator)
        self._advance(SubmissionStage.BALANCE_CHECKED)
        tx = self.build(creator, fields, event_id)
        self._advance(SubmissionStage.BUILT)
        simulation = self.simulate(tx)
        self._advance(SubmissionStage.SIMULATED)
        return tx, simulation

    def preview(self, fields: EventFields, event_id: Optional[str] = None) -> SimulationReport:
        """Balance check, build and simulate without involving the wallet's signer."""
        try:
            tx, simulation = self._prepare(fields, event_id)
        except BaseException as exc:
            self._fail(exc)
            raise
        return SimulationReport(
            event_id=tx.built.event_id,
            event_address=tx.built.event_address.address,
            instruction=tx.built.instruction,
            message=tx.message,
            blockhash=tx.blockhash,
            last_valid_block_height=tx.last_valid_block_height,
            logs=list(simulation.logs or []),
            units_consumed=getattr(simulation, "units_consumed", None),
        )

    def submit(self, fields: EventFields, event_id: Optional[str] = None) -> SubmissionResult:
        try:
            tx, _ = self._prepare(fields, event_id)
            signature = self.send(tx)
            self._advance(SubmissionStage.SENT)
            self.confirm(signature, tx.last_valid_block_height)
            self._advance(SubmissionStage.CONFIRMED)
        except BaseException as exc:
            # Abandonment (KeyboardInterrupt, wallet closing) ends the run the same way.
            self._fail(exc)
            raise
        logger.info("event_submit_confirmed event_id=%s pda=%s sig=%s", tx.built.event_id, tx.built.event_address.address, signature)
        return SubmissionResult(
            signature=signature,
            event_id=tx.built.event_id,
            event_address=tx.built.event_address.address,
            stages=list(self.history),
        )
