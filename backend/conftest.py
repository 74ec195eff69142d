from types import SimpleNamespace
from typing import List, Optional

import pytest
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from errors import WalletRejected
from settings import Settings

PROGRAM_ID = "wEeoKNhaFsCPYLsscNUy5PpXxNs81vF6CfEArCxLmmr"


class FakeSolanaClient:
    """Records RPC calls and answers with solana-py shaped responses."""

    def __init__(self, balance: int = 2_000_000_000):
        self.calls: List[str] = []
        self.balance = balance
        self.blockhash = Hash(bytes([9] * 32))
        self.last_valid_block_height = 500
        self.block_height = 100
        self.simulation_err = None
        self.simulation_logs = ["Program log: Instruction: CreateEvent"]
        self.statuses: List[Optional[SimpleNamespace]] = [
            SimpleNamespace(err=None, confirmation_status=TransactionConfirmationStatus.Confirmed)
        ]
        self.program_accounts: list = []
        self.account_info = None
        self.raise_on: dict = {}
        self.simulated = []

    def _call(self, name: str):
        self.calls.append(name)
        if name in self.raise_on:
            raise self.raise_on[name]

    def get_balance(self, pubkey, commitment=None):
        self._call("get_balance")
        return SimpleNamespace(value=self.balance)

    def get_latest_blockhash(self, commitment=None):
        self._call("get_latest_blockhash")
        return SimpleNamespace(
            value=SimpleNamespace(blockhash=self.blockhash, last_valid_block_height=self.last_valid_block_height)
        )

    def simulate_transaction(self, txn, sig_verify=False, commitment=None):
        self._call("simulate_transaction")
        self.simulated.append(txn)
        return SimpleNamespace(
            value=SimpleNamespace(err=self.simulation_err, logs=self.simulation_logs, units_consumed=4321)
        )

    def get_signature_statuses(self, signatures, search_transaction_history=False):
        self._call("get_signature_statuses")
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return SimpleNamespace(value=[status])

    def get_block_height(self, commitment=None):
        self._call("get_block_height")
        return SimpleNamespace(value=self.block_height)

    def get_program_accounts(self, pubkey, commitment=None, encoding="base64", data_slice=None, filters=None):
        self._call("get_program_accounts")
        return SimpleNamespace(value=list(self.program_accounts))

    def get_account_info(self, pubkey, commitment=None, encoding="base64", data_slice=None):
        self._call("get_account_info")
        return SimpleNamespace(value=self.account_info)


class FakeWallet:
    def __init__(self, public_key: Optional[Pubkey] = None, failures: Optional[list] = None):
        self._public_key = public_key if public_key is not None else Pubkey.new_unique()
        self.failures = list(failures or [])
        self.sent: List[MessageV0] = []
        self.opts: List[TxOpts] = []
        self.signature = str(Signature.new_unique())

    @property
    def public_key(self) -> Optional[Pubkey]:
        return self._public_key

    def sign_and_send(self, message: MessageV0, opts: TxOpts) -> str:
        self.sent.append(message)
        self.opts.append(opts)
        if self.failures:
            raise self.failures.pop(0)
        return self.signature


class DisconnectedWallet(FakeWallet):
    @property
    def public_key(self) -> Optional[Pubkey]:
        return None


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        program_id=PROGRAM_ID,
        solana_network="devnet",
        send_retry_delay_seconds=0,
        confirm_poll_seconds=0,
        confirm_timeout_seconds=5,
    )


@pytest.fixture
def client() -> FakeSolanaClient:
    return FakeSolanaClient()


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def rejecting_wallet() -> FakeWallet:
    return FakeWallet(failures=[WalletRejected()])
