from pydantic import BaseModel, Field

from .enums import ClientVariant


class DeobfuscateRequest(BaseModel):
    """Request model for the /deobfuscate endpoint."""

    video_id: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Video id, used for logging",
        examples=["dQw4w9WgXcQ"],
    )
    cpn: str = Field(
        default="",
        max_length=64,
        description="Content playback nonce appended as &cpn=",
    )
    url: str | None = Field(
        default=None,
        max_length=8192,
        description="Unobfuscated streaming url, if the format has one",
    )
    signature_cipher: str | None = Field(
        default=None,
        max_length=8192,
        description="The format's signatureCipher, used when url is missing",
    )
    po_token: str | None = Field(
        default=None,
        max_length=4096,
        description="Proof-of-origin token appended as &pot=",
    )
    client: ClientVariant = Field(
        default=ClientVariant.TV,
        description="Client variant whose player script is used",
    )


class StreamFormat(BaseModel):
    """A single format entry of a player response's streamingData."""

    itag: int | None = Field(None, description="Format itag")
    url: str | None = Field(None, max_length=8192, description="Streaming url")
    signature_cipher: str | None = Field(
        None, max_length=8192, description="signatureCipher when url is missing"
    )


class StreamingData(BaseModel):
    """The url-bearing part of a player response's streamingData."""

    adaptive_formats: list[StreamFormat] = Field(default_factory=list)
    formats: list[StreamFormat] = Field(default_factory=list)
    server_abr_streaming_url: str | None = Field(None, max_length=8192)


class StreamingDataRequest(BaseModel):
    """Request model for the /streaming-data endpoint."""

    video_id: str = Field(..., min_length=1, max_length=64)
    streaming_data: StreamingData
    po_token: str | None = Field(default=None, max_length=4096)
    client: ClientVariant = Field(default=ClientVariant.TV)
