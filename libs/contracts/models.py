from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PairingRequestPayload(BaseModel):
    """`wc-pairing-request` 큐로 들어오는 페어링 요청 본문이에요.

    예전 프로듀서가 보내는 `user_info` 키도 `metadata`로 받아요. 값은 형태를 따지지 않고 그대로 전달해요.
    """

    model_config = ConfigDict(extra="ignore")

    wc_uri: str | None = None
    address: str | None = None
    metadata: Any = Field(
        default=None,
        validation_alias=AliasChoices("metadata", "user_info"),
    )


class DappInfo(BaseModel):
    name: str | None = None
    url: str | None = None


class StatusEvent(BaseModel):
    status: Literal["ready", "queued", "approved", "ended", "failed"]
    client_id: str | None = None
    address: str | None = None
    metadata: Any = None
    dapp_info: DappInfo | None = None
    message: str | None = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SignRequestPayload(BaseModel):
    request_id: str
    wc_req_id: int | str
    client_id: str
    method: str
    xdr: str
    address: str
    metadata: Any = None
    dapp_info: DappInfo | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
