# app/esign/router.py

import json
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError

from app.core.config import Settings
from app.core.dependencies import get_settings, get_submission_service, get_webhook_reconciler
from app.esign import utils
from app.esign.exceptions import SignatureBaseException, convert_to_http_exception
from app.esign.reconciler import WebhookReconciler
from app.esign.schemas import RequestProof, StartRequest, StartResponse
from app.esign.services import SubmissionService
from app.utils.logger import get_logger
from app.utils.security import require_basic_auth

router = APIRouter(tags=["Esign"])
logger = get_logger(__name__)

CLIENT_ID_HEADER = "X-AdobeSign-ClientId"


async def _read_body(request: Request) -> Dict[str, Any]:
    """The trigger page posts either JSON or a urlencoded form"""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded") or content_type.startswith(
        "multipart/form-data"
    ):
        form = await request.form()
        return dict(form)
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body must be an object")
    return body


@router.get("/auth", response_model=RequestProof)
async def issue_request_proof(
    _user: str = Depends(require_basic_auth),
    config: Settings = Depends(get_settings),
):
    """
    Issue a timestamp and its HMAC for the trigger page to send with POST /start.
    """
    return utils.issue_request_proof(config.signature_secret)


@router.post("/start", response_model=StartResponse)
async def start_signature(
    request: Request,
    config: Settings = Depends(get_settings),
    service: SubmissionService = Depends(get_submission_service),
):
    """
    Send a Content Server document to Adobe Sign for signature.
    The request must carry a fresh timestamp and its HMAC, either as
    X-Timestamp / X-Signature headers or as body fields.
    """
    body = await _read_body(request)

    utils.verify_request_proof(
        config.signature_secret,
        request.headers.get("X-Timestamp") or _as_str(body.get("timestamp")),
        request.headers.get("X-Signature") or _as_str(body.get("signature")),
        config.signature_max_age_seconds,
    )

    try:
        start_request = StartRequest.model_validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.errors(include_url=False))

    logger.info(
        "signature_request_initiated",
        file_name=start_request.file_name,
        node_id=start_request.node_id,
        folder_id=start_request.destination_folder_id,
        recipients=start_request.raw_emails,
    )

    try:
        result = await service.submit(start_request)
    except SignatureBaseException as e:
        raise convert_to_http_exception(e)
    except Exception as e:
        logger.error("start_failed", node_id=start_request.node_id, error=str(e), exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred while sending the document for signature.",
        )

    return StartResponse(
        agreement_id=result.agreement_id,
        message=f"Signature requested. ID: {result.agreement_id}",
    )


def _as_str(value):
    return None if value is None else str(value)


def _client_id(request: Request, config: Settings) -> str:
    return (
        request.headers.get("x-adobesign-clientid")
        or request.headers.get("x-adobesign-client-id")
        or config.adobe_client_id
    )


@router.head("/webhook")
async def webhook_head(request: Request, config: Settings = Depends(get_settings)):
    """Adobe Sign checks the endpoint with HEAD when a webhook is registered."""
    return Response(
        status_code=200,
        headers={CLIENT_ID_HEADER: _client_id(request, config)},
        media_type="application/json",
    )


@router.get("/webhook")
async def webhook_verification(request: Request, config: Settings = Depends(get_settings)):
    """Echo the verification challenge, or answer a plain ping."""
    headers = {CLIENT_ID_HEADER: _client_id(request, config)}
    challenge = request.query_params.get("challenge")
    if challenge:
        return PlainTextResponse(challenge, headers=headers)
    return JSONResponse({"status": "pong"}, headers=headers)


@router.post("/webhook")
async def adobe_sign_webhook(
    request: Request,
    config: Settings = Depends(get_settings),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    """
    Receive Adobe Sign event notifications. Anything that parses is
    acknowledged with 200 so Adobe does not redeliver; failures while
    reconciling are only logged.
    """
    headers = {CLIENT_ID_HEADER: _client_id(request, config)}
    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        logger.error("webhook_parse_error", error=str(e))
        return PlainTextResponse("Invalid webhook payload", status_code=400, headers=headers)

    try:
        await reconciler.handle_payload(payload)
    except Exception as e:
        logger.error("webhook_handling_failed", error=str(e), exc_info=True)

    return PlainTextResponse("OK", headers=headers)
