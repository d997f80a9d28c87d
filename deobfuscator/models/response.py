from pydantic import BaseModel, Field

from .enums import ClientVariant


class DeobfuscateResponse(BaseModel):
    """Response model for the /deobfuscate endpoint."""

    success: bool = Field(True)
    video_id: str = Field(..., description="Video id from the request")
    url: str = Field(..., description="Playable streaming url")


class DeobfuscatedStreamingData(BaseModel):
    """Deobfuscated urls, index-aligned with the request's format lists."""

    adaptive_formats: list[str] = Field(default_factory=list)
    formats: list[str] = Field(
        default_factory=list,
        description="Empty when any progressive format failed",
    )
    server_abr_streaming_url: str | None = Field(None)


class StreamingDataResponse(BaseModel):
    """Response model for the /streaming-data endpoint."""

    success: bool = Field(True)
    video_id: str
    streaming_data: DeobfuscatedStreamingData


class PlayerInfoResponse(BaseModel):
    """What the service currently knows about a client variant's player."""

    client: ClientVariant
    script_url: str | None = Field(None, description="Resolved player script url")
    signature_timestamp: int | None = Field(None, description="signatureTimestamp of the script")
    client_version: str | None = Field(None, description="Client version from the service worker")
    visitor_id: str | None = Field(None, description="Visitor id from the service worker")


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = Field(False)
    error: str = Field(..., description="Error message")
    error_code: str | None = Field(None, description="Machine-readable error code")
    client: ClientVariant | None = Field(None, description="Client variant, if any")
