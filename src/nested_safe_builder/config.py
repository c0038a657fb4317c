from __future__ import annotations

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from nested_safe_builder.evm.codecs.calls import MULTICALL3_ADDRESS


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: str = "dev"
    log_level: str = "INFO"
    project_name: str = "nested-safe-builder"

    rpc_url: str = "http://127.0.0.1:8545"
    chain_id: int = 1
    multicall_address: str = MULTICALL3_ADDRESS

    signer_private_key: SecretStr | None = None


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()
