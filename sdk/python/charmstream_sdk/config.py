"""
Settings loaded from the environment
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .head import HEAD_FILENAME
from .ledger import LEDGER_FILENAME


class Settings(BaseSettings):
    """
    CharmStream settings.

    Every field can be set through a ``CHARMSTREAM_``-prefixed variable
    (e.g. CHARMSTREAM_RPC_URL) or a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix='CHARMSTREAM_',
        env_file='.env',
        case_sensitive=False,
        extra='ignore',
    )

    # Local state
    build_dir: Path = Path('.build')

    # Bitcoin node
    rpc_url: str = 'http://127.0.0.1:48332'
    rpc_user: Optional[str] = None
    rpc_password: Optional[str] = None
    rpc_wallet: Optional[str] = None

    # Prover
    prover_url: str = 'https://v4.charms.dev'
    prover_timeout: int = 600
    fee_rate: float = 2.0

    request_timeout: int = 30

    # Stream outputs below this would be dust once fees are paid
    min_stream_sats: int = 5000

    explorer_url: str = 'https://mempool.space/testnet4'

    @field_validator('min_stream_sats')
    @classmethod
    def check_min_stream_sats(cls, v):
        if v < 1:
            raise ValueError('min_stream_sats must be positive')
        return v

    @property
    def rpc_auth(self):
        if self.rpc_user is None:
            return None
        return (self.rpc_user, self.rpc_password or '')

    @property
    def ledger_path(self) -> Path:
        return self.build_dir / LEDGER_FILENAME

    @property
    def head_path(self) -> Path:
        return self.build_dir / HEAD_FILENAME


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
