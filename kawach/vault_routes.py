"""
VAULT ROUTES - Evidence upload, verification and download
A corrupted chain answers 409 "integrity compromised" instead of serving
possibly tampered evidence. A mining timeout answers 503 (retry later).
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse

from .auth import get_api_key, get_user_id
from .ledger import ChainCorruption, MiningTimeout
from .models import EvidenceSummary, UploadResponse
from .vault import DuplicateEvidenceError, EvidenceNotFound, EvidenceRejected, EvidenceVault

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vault", tags=["vault"], dependencies=[Depends(get_api_key)])


def get_vault(request: Request) -> EvidenceVault:
    return request.app.state.vault


@router.post("/upload", response_model=UploadResponse)
async def upload_evidence(
    file: UploadFile = File(..., description="Evidence file (image, PDF, document, audio, video)"),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="Comma separated"),
    associatedCase: Optional[str] = Form(None),
    user_id: str = Depends(get_user_id),
    vault: EvidenceVault = Depends(get_vault),
):
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="No file uploaded")

    try:
        record = await vault.register(
            file_name=file.filename or "evidence",
            content=content,
            user_id=user_id,
            mime_type=file.content_type or "application/octet-stream",
            description=description,
            tags=tags.split(",") if tags else [],
            associated_case=associatedCase,
        )
    except EvidenceRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateEvidenceError as e:
        raise HTTPException(status_code=400, detail={
            "message": str(e),
            "existingFile": {
                "fileName": e.existing.file_name,
                "uploadedAt": e.existing.uploaded_at.isoformat(),
                "evidenceId": e.existing.evidence_id,
            } if e.existing else None,
        })
    except MiningTimeout as e:
        logger.error(f"Evidence upload could not be sealed: {e}")
        raise HTTPException(status_code=503, detail="Evidence sealing timed out, please retry")

    return UploadResponse(
        success=True,
        message="Evidence uploaded and secured to blockchain successfully!",
        evidence=EvidenceSummary(
            id=record.evidence_id,
            evidenceId=record.evidence_id,
            fileName=record.file_name,
            blockIndex=record.block_index,
            blockHash=record.block_hash,
        ),
    )


@router.get("/files")
async def list_files(
    user_id: str = Depends(get_user_id),
    vault: EvidenceVault = Depends(get_vault),
):
    return {
        "success": True,
        "files": vault.list_files(user_id),
        "blockchainStats": vault.ledger.stats(),
    }


@router.get("/verify/{evidence_id}")
async def verify_evidence(
    evidence_id: str,
    user_id: str = Depends(get_user_id),
    vault: EvidenceVault = Depends(get_vault),
):
    try:
        return {"success": True, **vault.verify(evidence_id, user_id)}
    except EvidenceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/download/{evidence_id}")
async def download_evidence(
    evidence_id: str,
    user_id: str = Depends(get_user_id),
    vault: EvidenceVault = Depends(get_vault),
):
    try:
        record = vault.open_for_download(evidence_id, user_id)
    except EvidenceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ChainCorruption as e:
        raise HTTPException(status_code=409, detail={
            "message": e.message,
            "verification": e.verification,
        })

    return FileResponse(record.file_path, media_type=record.mime_type, filename=record.file_name)


@router.get("/stats")
async def ledger_stats(vault: EvidenceVault = Depends(get_vault)):
    return {"success": True, "stats": vault.ledger.stats()}


@router.get("/export")
async def export_ledger(vault: EvidenceVault = Depends(get_vault)):
    return {"success": True, **vault.ledger.export_chain()}
