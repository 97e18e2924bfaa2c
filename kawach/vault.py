"""
EVIDENCE VAULT - File intake on top of the evidence ledger

PIPELINE:
file bytes → SHA-256 → duplicate check → write to disk →
ledger.append(evidence payload) in a worker thread → keep block reference

Downloads are refused whenever the ledger cannot vouch for the evidence.
"""

import os
import asyncio
import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from dotenv import load_dotenv

from .ledger import ChainCorruption, EvidenceLedger, now_millis

load_dotenv()

logger = logging.getLogger(__name__)

UPLOAD_DIR = os.getenv("VAULT_UPLOAD_DIR", "./vault_uploads")
MAX_FILE_SIZE = int(os.getenv("VAULT_MAX_FILE_SIZE", str(50 * 1024 * 1024)))

ALLOWED_MIME_TYPES = {
    "image/jpeg", "image/png", "image/gif", "image/webp",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "video/mp4", "video/avi", "video/mov",
    "audio/mp3", "audio/wav", "audio/ogg",
}


class VaultError(Exception):
    """Base class for vault failures"""


class EvidenceRejected(VaultError):
    """File type or size not accepted"""


class DuplicateEvidenceError(VaultError):
    def __init__(self, existing: Optional["EvidenceRecord"] = None):
        # existing is None while the first copy is still being sealed
        super().__init__("This file already exists in the evidence vault")
        self.existing = existing


class EvidenceNotFound(VaultError):
    pass


def sha256_hex(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def evidence_type_for(mime_type: str) -> str:
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    if mime_type.startswith("audio/"):
        return "audio"
    if mime_type == "application/pdf" or mime_type.startswith("text/") or "document" in mime_type:
        return "document"
    return "other"


@dataclass
class IntegrityCheck:
    status: str  # verified / corrupted
    details: str
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {"checkedAt": self.checked_at, "status": self.status, "details": self.details}


@dataclass
class EvidenceRecord:
    """File metadata plus the ledger reference, kept beside the chain"""
    evidence_id: str
    user_id: str
    file_name: str
    file_path: str
    file_size: int
    file_hash: str
    mime_type: str
    block_hash: str
    block_index: int
    evidence_type: str = "document"
    tags: List[str] = field(default_factory=list)
    description: str = ""
    associated_case: str = ""
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    integrity_checks: List[IntegrityCheck] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        # file_path stays server-side
        return {
            "evidenceId": self.evidence_id,
            "userId": self.user_id,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "fileHash": self.file_hash,
            "mimeType": self.mime_type,
            "blockchainHash": self.block_hash,
            "blockIndex": self.block_index,
            "evidenceType": self.evidence_type,
            "tags": list(self.tags),
            "description": self.description,
            "associatedCase": self.associated_case,
            "uploadedAt": self.uploaded_at,
            "integrityChecks": [check.to_dict() for check in self.integrity_checks],
        }


class EvidenceVault:
    """
    Owns the evidence records for one ledger. The ledger serialises its own
    appends; the vault only keeps mining off the event loop.
    """

    def __init__(
        self,
        ledger: EvidenceLedger,
        upload_dir: Optional[str] = None,
        max_file_size: Optional[int] = None,
    ):
        self.ledger = ledger
        self.upload_dir = Path(upload_dir or UPLOAD_DIR)
        self.max_file_size = MAX_FILE_SIZE if max_file_size is None else max_file_size
        self.records: Dict[str, EvidenceRecord] = {}
        self.sealing: Set[str] = set()  # Content hashes with an append in flight

    def find_by_hash(self, file_hash: str) -> Optional[EvidenceRecord]:
        for record in self.records.values():
            if record.file_hash == file_hash:
                return record
        return None

    def get(self, evidence_id: str, user_id: str) -> EvidenceRecord:
        record = self.records.get(evidence_id)
        if record is None or record.user_id != user_id:
            raise EvidenceNotFound("Evidence not found")
        return record

    def _store_file(self, file_name: str, content: bytes) -> Path:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        path = self.upload_dir / f"{now_millis()}-{secrets.token_hex(16)}{Path(file_name).suffix}"
        path.write_bytes(content)
        return path

    async def register(
        self,
        file_name: str,
        content: bytes,
        user_id: str,
        mime_type: str,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        associated_case: Optional[str] = None,
    ) -> EvidenceRecord:
        """
        Hash, store and seal one evidence file.

        Raises EvidenceRejected, DuplicateEvidenceError, or MiningTimeout
        (nothing is kept when sealing times out).
        """
        if mime_type not in ALLOWED_MIME_TYPES:
            raise EvidenceRejected("File type not allowed for evidence storage")
        if len(content) > self.max_file_size:
            raise EvidenceRejected(f"File exceeds the {self.max_file_size} byte limit")

        file_hash = sha256_hex(content)
        existing = self.find_by_hash(file_hash)
        if existing:
            raise DuplicateEvidenceError(existing)
        if file_hash in self.sealing:
            raise DuplicateEvidenceError()
        # No await between the checks above and this claim
        self.sealing.add(file_hash)
        try:
            return await self._seal(
                file_name, content, file_hash, user_id, mime_type,
                description, tags, associated_case,
            )
        finally:
            self.sealing.discard(file_hash)

    async def _seal(
        self,
        file_name: str,
        content: bytes,
        file_hash: str,
        user_id: str,
        mime_type: str,
        description: Optional[str],
        tags: Optional[List[str]],
        associated_case: Optional[str],
    ) -> EvidenceRecord:
        """Write the file, append its payload off the event loop, keep the record"""
        evidence_type = evidence_type_for(mime_type)
        tags = [tag.strip() for tag in (tags or []) if tag.strip()]
        path = self._store_file(file_name, content)

        try:
            payload = self.ledger.create_evidence_data(
                file_name, file_hash, len(content), user_id,
                {
                    "description": description,
                    "tags": tags,
                    "associatedCase": associated_case,
                    "evidenceType": evidence_type,
                    "mimeType": mime_type,
                },
            )
            block = await asyncio.to_thread(self.ledger.append, payload)
        except Exception:
            path.unlink(missing_ok=True)
            raise

        record = EvidenceRecord(
            evidence_id=payload["evidenceId"],
            user_id=user_id,
            file_name=file_name,
            file_path=str(path),
            file_size=len(content),
            file_hash=file_hash,
            mime_type=mime_type,
            block_hash=block.hash,
            block_index=block.index,
            evidence_type=evidence_type,
            tags=tags,
            description=description or "",
            associated_case=associated_case or "",
        )
        self.records[record.evidence_id] = record
        logger.info(f"🔐 Evidence {record.evidence_id} sealed in block #{block.index}")
        return record

    def list_files(self, user_id: str) -> List[Dict[str, Any]]:
        """User's evidence, newest first, each with its ledger verification"""
        records = sorted(
            (r for r in self.records.values() if r.user_id == user_id),
            key=lambda r: r.uploaded_at,
            reverse=True,
        )
        files = []
        for record in records:
            verification = self.ledger.verify_file_integrity(record.file_hash)
            files.append({
                **record.to_dict(),
                "blockchainVerification": verification,
                "integrityStatus": "verified" if verification["verified"] else "corrupted",
            })
        return files

    def verify(self, evidence_id: str, user_id: str) -> Dict[str, Any]:
        """Check ledger and on-disk bytes, record the outcome on the evidence"""
        record = self.get(evidence_id, user_id)
        verification = self.ledger.verify_file_integrity(record.file_hash)

        path = Path(record.file_path)
        file_integrity = path.exists() and sha256_hex(path.read_bytes()) == record.file_hash

        ok = verification["verified"] and file_integrity
        record.integrity_checks.append(IntegrityCheck(
            status="verified" if ok else "corrupted",
            details=verification["message"],
        ))
        if not ok:
            logger.warning(f"🚨 Evidence {evidence_id} failed verification: {verification['message']}")

        return {
            "evidence": record.evidence_id,
            "fileName": record.file_name,
            "blockchainVerification": verification,
            "fileIntegrity": file_integrity,
            "overallStatus": "verified" if ok else "corrupted",
            "verificationHistory": [check.to_dict() for check in record.integrity_checks],
        }

    def open_for_download(self, evidence_id: str, user_id: str) -> EvidenceRecord:
        """
        Raises ChainCorruption when the ledger cannot vouch for the evidence,
        EvidenceNotFound when the record or its file is missing.
        """
        record = self.get(evidence_id, user_id)
        verification = self.ledger.verify_file_integrity(record.file_hash)
        if not verification["verified"]:
            raise ChainCorruption(
                "Evidence integrity compromised. Download blocked.",
                verification=verification,
            )
        if not Path(record.file_path).exists():
            raise EvidenceNotFound("Evidence file not found on disk")
        return record
