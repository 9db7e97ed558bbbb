"""Application configuration"""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    app_name: str = "Referendum Tally"
    app_version: str = "0.1.0"
    debug: bool = False

    # Chain
    chain_id: str = "aca376f206b8fc25a6ed44dbdc66547c36c6c33e3a119ffbeaef943642f0e906"
    rpc_url: str = "https://eos.greymass.com"
    request_timeout: float = 30.0

    # Contracts
    forum_contract: str = "eosio.forum"
    system_contract: str = "eosio"
    token_contract: str = "eosio.token"
    token_symbol: str = "EOS"
    token_precision: int = 4

    # Table fetching
    table_page_limit: int = 1000
    delband_concurrency: int = 10

    # Persistence
    data_dir: str = "data"

    # Scheduling (seconds)
    quick_interval_seconds: int = 180  # forum votes + tallies
    long_interval_seconds: int = 1800  # stake table + supply

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
