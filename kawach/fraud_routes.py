"""
FRAUD ROUTES - HTTP surface of the detection engine
Thin layer: validate the body, call the engine, shape the response.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request

from .auth import get_api_key, get_user_id
from .fraud_rules import ChannelType
from .models import (
    BulkDetectBody, DetectBody, DetectionRequest, ReportNumberBody,
    TrustedNumberBody, UserResponseBody,
)
from .risk_engine import FraudDetectionEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fraud", tags=["fraud"], dependencies=[Depends(get_api_key)])

VALID_TYPES = {channel.value for channel in ChannelType}


def get_engine(request: Request) -> FraudDetectionEngine:
    return request.app.state.engine


@router.post("/detect")
async def detect(
    body: DetectBody,
    user_id: str = Depends(get_user_id),
    engine: FraudDetectionEngine = Depends(get_engine),
):
    """Real-time detection for one SMS / WhatsApp / call event"""
    if not body.phoneNumber or not body.type:
        raise HTTPException(status_code=400, detail="Phone number and detection type are required")
    if body.type not in VALID_TYPES:
        raise HTTPException(status_code=400, detail="Invalid detection type")

    result = await engine.detect_fraud(DetectionRequest(
        phoneNumber=body.phoneNumber,
        channelType=body.type,
        content=body.content,
        userId=user_id,
        metadata=body.metadata,
    ))

    return {
        "success": True,
        "detection": result.model_dump(mode="json"),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "message": "Fraud detected!" if result.isFraud else "No fraud detected",
    }


@router.post("/detect-bulk")
async def detect_bulk(
    body: BulkDetectBody,
    user_id: str = Depends(get_user_id),
    engine: FraudDetectionEngine = Depends(get_engine),
):
    if not body.items:
        raise HTTPException(status_code=400, detail="Items array is required")

    results = await engine.detect_bulk(
        [item.model_dump(exclude_none=True) for item in body.items], user_id
    )
    return {"success": True, "results": results, "processedCount": len(results)}


@router.post("/report-number")
async def report_number(
    body: ReportNumberBody,
    user_id: str = Depends(get_user_id),
    engine: FraudDetectionEngine = Depends(get_engine),
):
    if not body.phoneNumber or not body.fraudType or not body.reason:
        raise HTTPException(status_code=400, detail="Phone number, fraud type, and reason are required")

    result = await engine.report_fraud_number(
        phone_number=body.phoneNumber,
        fraud_type=body.fraudType,
        reported_by=user_id,
        reason=body.reason,
        evidence=body.evidence,
    )
    return result.model_dump(exclude_none=True)


@router.post("/trusted-numbers")
async def add_trusted_number(
    body: TrustedNumberBody,
    user_id: str = Depends(get_user_id),
    engine: FraudDetectionEngine = Depends(get_engine),
):
    if not body.phoneNumber:
        raise HTTPException(status_code=400, detail="Phone number is required")

    result = await engine.add_trusted_number(user_id, body.phoneNumber, body.name, body.category)
    return result.model_dump(exclude_none=True)


@router.get("/trusted-numbers")
async def list_trusted_numbers(
    user_id: str = Depends(get_user_id),
    engine: FraudDetectionEngine = Depends(get_engine),
):
    records = await engine.list_trusted_numbers(user_id)
    return {"success": True, "trustedNumbers": [record.to_dict() for record in records]}


@router.delete("/trusted-numbers/{record_id}")
async def remove_trusted_number(
    record_id: str,
    user_id: str = Depends(get_user_id),
    engine: FraudDetectionEngine = Depends(get_engine),
):
    result = await engine.remove_trusted_number(user_id, record_id)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)
    return result.model_dump(exclude_none=True)


@router.get("/detection-history")
async def detection_history(
    page: int = 1,
    limit: int = 20,
    type: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    engine: FraudDetectionEngine = Depends(get_engine),
):
    history = await engine.detection_history(user_id, detection_type=type, page=page, limit=limit)
    return {"success": True, **history}


@router.put("/detection-response/{log_id}")
async def detection_response(
    log_id: str,
    body: UserResponseBody,
    user_id: str = Depends(get_user_id),
    engine: FraudDetectionEngine = Depends(get_engine),
):
    result = await engine.record_user_response(log_id, user_id, body.userResponse or "")
    if not result.success:
        status = 400 if result.error == "Invalid user response" else 404
        raise HTTPException(status_code=status, detail=result.error)
    return result.model_dump(exclude_none=True)


@router.get("/statistics")
async def statistics(
    user_id: str = Depends(get_user_id),
    engine: FraudDetectionEngine = Depends(get_engine),
):
    return {"success": True, "statistics": await engine.statistics(user_id)}


@router.get("/check-number/{phone_number}")
async def check_number(
    phone_number: str,
    user_id: str = Depends(get_user_id),
    engine: FraudDetectionEngine = Depends(get_engine),
):
    return {"success": True, **await engine.check_number(phone_number, user_id)}


@router.get("/fraud-patterns")
async def fraud_patterns(engine: FraudDetectionEngine = Depends(get_engine)):
    return {"success": True, "patterns": await engine.list_patterns()}
