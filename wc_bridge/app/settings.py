from __future__ import annotations

from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from libs.common.logging import get_logger

logger = get_logger("wc_bridge.settings")

_DEFAULT_PROJECT_ID = "000"


def _split_csv(value: object, fallback: list[str]) -> object:
    if isinstance(value, str):
        parts = [p.strip() for p in value.split(",") if p.strip()]
        return parts if parts else list(fallback)
    return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    service_name: str = "wc-bridge"
    host: str = "0.0.0.0"
    port: int = 8090
    log_level: str = "INFO"

    redis_url: str = "redis://localhost:6379"
    redis_connect_retries: int = 5
    wc_project_id: str = _DEFAULT_PROJECT_ID
    wallet_factory: str = ""
    wallet_name: str = "MMWB Wallet"
    wallet_description: str = "A wallet that delegates signing to a broker."
    wallet_url: str = "https://eurmtl.me"
    wallet_icons: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["https://eurmtl.me/static/icons/android-chrome-192x192.png"]
    )

    pairing_request_list: str = "wc-pairing-request"
    pairing_events_list: str = "wc-pairing-events"
    sign_request_list: str = "wc-sign-request-queue"
    sign_reply_prefix: str = "wc-sign-replies:"
    sign_timeout_seconds: float = 300.0
    reply_poll_tick_seconds: int = Field(default=5, ge=1, le=5)
    consumer_backoff_seconds: float = 1.0

    chain_namespace: str = "stellar"
    # CSV 문자열 또는 리스트 모두 허용해요
    accepted_chains: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["stellar:pubnet", "pubnet"])
    default_methods: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["stellar_signXDR", "stellar_signAndSubmitXDR"]
    )

    @field_validator("accepted_chains", mode="before")
    @classmethod
    def _parse_accepted_chains(cls, value: object) -> object:
        return _split_csv(value, ["stellar:pubnet", "pubnet"])

    @field_validator("default_methods", mode="before")
    @classmethod
    def _parse_default_methods(cls, value: object) -> object:
        return _split_csv(value, ["stellar_signXDR", "stellar_signAndSubmitXDR"])

    @field_validator("wallet_icons", mode="before")
    @classmethod
    def _parse_wallet_icons(cls, value: object) -> object:
        return _split_csv(value, [])

    @model_validator(mode="after")
    def _warn_default_project_id(self) -> "Settings":
        """공개 기본 프로젝트 ID가 그대로 쓰이면 경고를 남겨요."""
        if self.wc_project_id == _DEFAULT_PROJECT_ID:
            logger.warning("default_project_id_in_use", hint="실제 배포 전에 WC_PROJECT_ID를 지정해 주세요.")
        return self

    def wallet_metadata(self) -> dict[str, object]:
        return {
            "name": self.wallet_name,
            "description": self.wallet_description,
            "url": self.wallet_url,
            "icons": list(self.wallet_icons),
        }


settings = Settings()
