from typing import Optional

from pydantic_settings import BaseSettings
from solders.pubkey import Pubkey

LAMPORTS_PER_SOL = 1_000_000_000
DEFAULT_PROGRAM_ID = "wEeoKNhaFsCPYLsscNUy5PpXxNs81vF6CfEArCxLmmr"
NETWORK_RPC_URLS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
}


class Settings(BaseSettings):
    program_id: str = DEFAULT_PROGRAM_ID
    solana_network: str = "devnet"
    solana_rpc: Optional[str] = None  # defaults to the public endpoint of solana_network
    commitment: str = "confirmed"
    min_balance_lamports: int = LAMPORTS_PER_SOL // 100  # 0.01 SOL for rent and fees
    send_max_attempts: int = 3
    send_retry_delay_seconds: float = 1.0
    confirm_timeout_seconds: float = 60.0
    confirm_poll_seconds: float = 0.8

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        frozen = True

    @property
    def rpc_url(self) -> str:
        if self.solana_rpc:
            return self.solana_rpc
        try:
            return NETWORK_RPC_URLS[self.solana_network]
        except KeyError:
            raise RuntimeError(f"Unknown SOLANA_NETWORK {self.solana_network!r}; set SOLANA_RPC explicitly") from None

    @property
    def program_pubkey(self) -> Pubkey:
        try:
            return Pubkey.from_string(self.program_id)
        except Exception as exc:  # noqa: BLE001
            raise RuntimeError(f"PROGRAM_ID is not a valid pubkey: {exc}") from exc
