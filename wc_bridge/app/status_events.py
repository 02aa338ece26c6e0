from __future__ import annotations


class PairingStatus:
    """`wc-pairing-events`로 발행하는 상태 값 상수예요."""

    READY = "ready"
    QUEUED = "queued"
    APPROVED = "approved"
    ENDED = "ended"
    FAILED = "failed"


class WalletErrorCode:
    """지갑 세션 라이브러리에 돌려주는 오류 코드예요."""

    UNSUPPORTED_CHAIN = 4000
    NO_BOUND_ADDRESS = 4001
    BAD_PARAMS = 4000
    REJECTED = 4001
    INTERNAL = 5000


READY_MESSAGE = "WalletConnect bridge is ready"
QUEUED_MESSAGE = "Pairing request received"
APPROVED_MESSAGE = "Connected to dApp"
ENDED_MESSAGE = "Session ended; pairing kept alive"
