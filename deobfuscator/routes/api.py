"""
API route definitions for the Stream Deobfuscation API.

Handlers are plain ``def`` functions: FastAPI runs them on its worker
threadpool, where blocking on player-script fetches is allowed.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..core.streaming import StreamingUrlDeobfuscator, get_deobfuscator
from ..models.enums import ClientVariant
from ..models.request import DeobfuscateRequest, StreamingDataRequest
from ..models.response import (
    DeobfuscateResponse,
    ErrorResponse,
    PlayerInfoResponse,
    StreamingDataResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_enabled(service: StreamingUrlDeobfuscator, client: ClientVariant):
    if client not in service.enabled_variants:
        raise HTTPException(
            status_code=400,
            detail={
                "success": False,
                "error": f"Client variant {client.value} is disabled",
                "error_code": "client.disabled",
                "client": client.value,
            },
        )


@router.post(
    "/deobfuscate",
    response_model=DeobfuscateResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Client variant disabled"},
        502: {"model": ErrorResponse, "description": "No playable url could be built"},
    },
    summary="Deobfuscate a single streaming url",
    description=(
        "Accepts a streaming format's url or signatureCipher and returns the "
        "playable url with its signature and 'n' parameter deobfuscated."
    ),
)
def deobfuscate_url(
    request: DeobfuscateRequest,
    service: StreamingUrlDeobfuscator = Depends(get_deobfuscator),
):
    _check_enabled(service, request.client)

    url = service.deobfuscate_streaming_url(
        video_id=request.video_id,
        cpn=request.cpn,
        url=request.url,
        signature_cipher=request.signature_cipher,
        po_token=request.po_token,
        variant=request.client,
    )
    if not url:
        raise HTTPException(
            status_code=502,
            detail={
                "success": False,
                "error": "Could not build a streaming url from the given format",
                "error_code": "deobfuscation.failed",
                "client": request.client.value,
            },
        )
    return DeobfuscateResponse(video_id=request.video_id, url=url)


@router.post(
    "/streaming-data",
    response_model=StreamingDataResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Client variant disabled"},
        502: {"model": ErrorResponse, "description": "Adaptive formats could not be deobfuscated"},
    },
    summary="Deobfuscate every url of a player response's streaming data",
)
def deobfuscate_streaming_data(
    request: StreamingDataRequest,
    service: StreamingUrlDeobfuscator = Depends(get_deobfuscator),
):
    _check_enabled(service, request.client)

    result = service.deobfuscate_streaming_data(
        video_id=request.video_id,
        streaming_data=request.streaming_data,
        po_token=request.po_token,
        variant=request.client,
    )
    if result is None:
        raise HTTPException(
            status_code=502,
            detail={
                "success": False,
                "error": "Failed to decrypt n-sig or signatureCipher of the adaptive formats",
                "error_code": "streaming_data.failed",
                "client": request.client.value,
            },
        )
    return StreamingDataResponse(video_id=request.video_id, streaming_data=result)


@router.get(
    "/player/{client}",
    response_model=PlayerInfoResponse,
    summary="Player script information for a client variant",
    description="Resolves (and caches) the player script url, signature timestamp and service-worker values.",
)
def player_info(
    client: ClientVariant,
    service: StreamingUrlDeobfuscator = Depends(get_deobfuscator),
):
    _check_enabled(service, client)

    return PlayerInfoResponse(
        client=client,
        script_url=service.locator.resolve_script_url(client),
        signature_timestamp=service.get_signature_timestamp(client),
        client_version=service.service_worker.get_client_version(client),
        visitor_id=service.get_visitor_id(client),
    )


@router.post(
    "/reset",
    summary="Forget all player scripts and service-worker data",
)
def reset(service: StreamingUrlDeobfuscator = Depends(get_deobfuscator)):
    service.reset_all()
    return {"success": True}


@router.get(
    "/health",
    summary="Health check",
    description="Check the health of the API and the state of the deobfuscation service.",
)
def health_check(service: StreamingUrlDeobfuscator = Depends(get_deobfuscator)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "initialized": service.is_initialized,
        "use_ejs": service.use_ejs,
        "clients": [v.value for v in service.enabled_variants],
        "nsig_cache": {
            "size": len(service.cache),
            "capacity": service.cache.capacity,
        },
    }
