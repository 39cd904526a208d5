"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

NETWORK_RPC_URLS = {
    "BASE_SEPOLIA": "https://base-sepolia.g.alchemy.com/v2/{api_key}",
    "BASE_MAINNET": "https://base-mainnet.g.alchemy.com/v2/{api_key}",
}

NETWORK_EXPLORER_URLS = {
    "BASE_SEPOLIA": "https://sepolia.basescan.org",
    "BASE_MAINNET": "https://basescan.org",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Folders
    inbox_path: str = Field(default="./inbox", alias="INBOX_PATH")
    processed_path: str = Field(default="./processed", alias="PROCESSED_PATH")
    debounce_seconds: float = Field(default=3.0, alias="DEBOUNCE_SECONDS")

    # Upload retries
    upload_max_attempts: int = Field(default=3, alias="UPLOAD_MAX_ATTEMPTS")
    upload_retry_base_seconds: float = Field(default=2.0, alias="UPLOAD_RETRY_BASE_SECONDS")
    upload_retry_max_seconds: float = Field(default=30.0, alias="UPLOAD_RETRY_MAX_SECONDS")

    # Upload verification
    verify_uploads: bool = Field(default=True, alias="VERIFY_UPLOADS")
    verify_timeout_seconds: float = Field(default=900.0, alias="VERIFY_TIMEOUT_SECONDS")
    verify_initial_interval_seconds: float = Field(
        default=2.0, alias="VERIFY_INITIAL_INTERVAL_SECONDS"
    )
    verify_max_interval_seconds: float = Field(default=60.0, alias="VERIFY_MAX_INTERVAL_SECONDS")
    verify_byte_compare_limit: int = Field(
        default=5 * 1024 * 1024, alias="VERIFY_BYTE_COMPARE_LIMIT"
    )

    # IPFS Upload (Pinata)
    pinata_jwt: str = Field(default="", alias="PINATA_JWT")
    pinata_gateway: str = Field(default="gateway.pinata.cloud", alias="PINATA_GATEWAY")

    # Blockchain
    network: str = Field(default="BASE_SEPOLIA", alias="NETWORK")
    rpc_url: str = Field(default="", alias="RPC_URL")
    alchemy_api_key: str = Field(default="", alias="ALCHEMY_API_KEY")
    minter_private_key: str = Field(default="", alias="MINTER_PRIVATE_KEY")
    nft_contract_address: str = Field(default="", alias="NFT_CONTRACT_ADDRESS")
    mint_gas_buffer: float = Field(default=1.2, alias="MINT_GAS_BUFFER")
    transaction_timeout_seconds: int = Field(default=180, alias="TRANSACTION_TIMEOUT_SECONDS")
    explorer_base_url: str = Field(default="", alias="EXPLORER_BASE_URL")
    low_balance_threshold_eth: float = Field(default=0.001, alias="LOW_BALANCE_THRESHOLD_ETH")

    @property
    def resolved_rpc_url(self) -> str:
        """RPC_URL if set, otherwise the Alchemy endpoint for NETWORK."""
        if self.rpc_url:
            return self.rpc_url
        template = NETWORK_RPC_URLS.get(self.network)
        if template is None or not self.alchemy_api_key:
            return ""
        return template.format(api_key=self.alchemy_api_key)

    @property
    def resolved_explorer_url(self) -> str | None:
        if self.explorer_base_url:
            return self.explorer_base_url
        return NETWORK_EXPLORER_URLS.get(self.network)

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Fails fast with every missing variable listed. Skipped in test
        environments.
        """
        if self.app_env in ("test", "testing"):
            return self

        missing = []

        if not self.pinata_jwt:
            missing.append("PINATA_JWT: Get your JWT token from https://pinata.cloud")

        if not self.minter_private_key:
            missing.append("MINTER_PRIVATE_KEY: Generate a minter wallet and fund it with ETH")

        if not self.nft_contract_address:
            missing.append("NFT_CONTRACT_ADDRESS: Deploy the contract or use an existing address")

        if not self.rpc_url and not self.alchemy_api_key:
            missing.append("RPC_URL or ALCHEMY_API_KEY: Needed to reach the blockchain")
        elif not self.rpc_url and self.network not in NETWORK_RPC_URLS:
            missing.append(
                f"RPC_URL: NETWORK={self.network} has no default endpoint "
                f"(known: {', '.join(sorted(NETWORK_RPC_URLS))})"
            )

        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe minter cannot start without these variables."
            error_msg += "\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        processors = [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
