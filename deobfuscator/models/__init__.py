from .enums import ClientType, ClientVariant
from .request import DeobfuscateRequest, StreamFormat, StreamingData, StreamingDataRequest
from .response import (
    DeobfuscatedStreamingData,
    DeobfuscateResponse,
    ErrorResponse,
    PlayerInfoResponse,
    StreamingDataResponse,
)

__all__ = [
    "ClientType",
    "ClientVariant",
    "DeobfuscateRequest",
    "DeobfuscateResponse",
    "DeobfuscatedStreamingData",
    "ErrorResponse",
    "PlayerInfoResponse",
    "StreamFormat",
    "StreamingData",
    "StreamingDataRequest",
    "StreamingDataResponse",
]
