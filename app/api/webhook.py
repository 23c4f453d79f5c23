"""Change notification endpoint"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.models.base import get_db
from app.security import verify_webhook_signature
from app.services.delta_service import DeltaService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

SIGNATURE_HEADER = "linear-signature"


@router.post("/webhook")
async def receive_webhook(request: Request, db: Session = Depends(get_db)):
    """Verify a Linear change notification and apply it to the mirror"""
    if not settings.webhook_secret:
        logger.error("Webhook received but WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=503, detail="Webhook not configured")

    body = await request.body()
    if not verify_webhook_signature(body, request.headers.get(SIGNATURE_HEADER), settings.webhook_secret):
        logger.warning("Rejected webhook with missing or invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    service = DeltaService(db)
    try:
        result = await run_in_threadpool(service.apply, payload)
    finally:
        service.close()
    logger.info(f"Webhook {result.get('type')}/{result.get('action')}: {result['status']}")
    return result
