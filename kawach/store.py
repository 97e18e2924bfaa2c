"""
FRAUD STORE - Reputation, pattern, trust and detection-log records

The detection engine only talks to the FraudStore interface. InMemoryFraudStore
keeps everything in process-local dicts (like the session map in risk_engine)
and hands out copies, so callers must save() what they change.
"""

from abc import ABC, abstractmethod
import copy
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


TRUST_CATEGORIES = ("family", "friend", "business", "government", "bank", "other")


class StoreError(Exception):
    """Persistence failure surfaced to the caller"""


class DuplicateRecordError(StoreError):
    """A uniqueness constraint rejected the write"""


# ==============================================================================
# RECORDS
# ==============================================================================

@dataclass
class ReportEntry:
    user_id: str
    reason: Optional[str] = None
    evidence: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "timestamp": self.timestamp,
            "reason": self.reason,
            "evidence": self.evidence,
        }


@dataclass
class SuspiciousNumber:
    """Reputation record. reputation_score 0-100, higher = more dangerous"""
    phone_number: str
    country_code: str
    risk_level: str = "medium"
    fraud_type: List[str] = field(default_factory=list)
    report_count: int = 1
    verification_status: str = "pending"
    reported_by: List[ReportEntry] = field(default_factory=list)
    reputation_score: float = 50
    is_active: bool = True
    first_reported_at: datetime = field(default_factory=utcnow)
    last_reported_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phoneNumber": self.phone_number,
            "countryCode": self.country_code,
            "riskLevel": self.risk_level,
            "fraudType": list(self.fraud_type),
            "reportCount": self.report_count,
            "verificationStatus": self.verification_status,
            "reportedBy": [entry.to_dict() for entry in self.reported_by],
            "reputationScore": self.reputation_score,
            "isActive": self.is_active,
            "firstReportedAt": self.first_reported_at,
            "lastReportedAt": self.last_reported_at,
        }


@dataclass
class FraudPattern:
    pattern_id: str
    pattern_type: str
    pattern: str
    description: str
    regex: Optional[str] = None
    risk_level: str = "medium"
    category: Optional[str] = None
    accuracy: float = 0.8
    is_active: bool = True
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.pattern_id,
            "type": self.pattern_type,
            "category": self.category,
            "description": self.description,
            "riskLevel": self.risk_level,
            "accuracy": self.accuracy,
        }


@dataclass
class TrustedNumber:
    user_id: str
    phone_number: str
    name: Optional[str] = None
    category: str = "other"
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    added_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "phoneNumber": self.phone_number,
            "name": self.name,
            "category": self.category,
            "addedAt": self.added_at,
        }


@dataclass
class DetectionLog:
    """Immutable apart from user_response / response_timestamp"""
    user_id: str
    detection_type: str
    suspicious_number: str
    content: Optional[str]
    detected_patterns: List[Dict[str, Any]]
    risk_score: float
    risk_level: str
    metadata: Optional[Dict[str, Any]] = None
    action: str = "alert_shown"
    user_response: str = "ignored"
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    alert_timestamp: datetime = field(default_factory=utcnow)
    response_timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "detectionType": self.detection_type,
            "suspiciousNumber": self.suspicious_number,
            "content": self.content,
            "detectedPatterns": self.detected_patterns,
            "riskScore": self.risk_score,
            "riskLevel": self.risk_level,
            "metadata": self.metadata,
            "action": self.action,
            "userResponse": self.user_response,
            "alertTimestamp": self.alert_timestamp,
            "responseTimestamp": self.response_timestamp,
        }


# ==============================================================================
# INTERFACE
# ==============================================================================

class FraudStore(ABC):
    """Async persistence boundary consumed by FraudDetectionEngine"""

    @abstractmethod
    async def find_suspicious_number(self, phone_number: str, active_only: bool = True) -> Optional[SuspiciousNumber]:
        raise NotImplementedError

    @abstractmethod
    async def save_suspicious_number(self, record: SuspiciousNumber) -> SuspiciousNumber:
        raise NotImplementedError

    @abstractmethod
    async def list_active_patterns(self) -> List[FraudPattern]:
        raise NotImplementedError

    @abstractmethod
    async def save_pattern(self, record: FraudPattern) -> FraudPattern:
        raise NotImplementedError

    @abstractmethod
    async def find_trusted_number(self, user_id: str, phone_number: str) -> Optional[TrustedNumber]:
        raise NotImplementedError

    @abstractmethod
    async def add_trusted_number(self, record: TrustedNumber) -> TrustedNumber:
        raise NotImplementedError

    @abstractmethod
    async def list_trusted_numbers(self, user_id: str) -> List[TrustedNumber]:
        raise NotImplementedError

    @abstractmethod
    async def remove_trusted_number(self, user_id: str, record_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def append_detection_log(self, record: DetectionLog) -> str:
        raise NotImplementedError

    @abstractmethod
    async def update_detection_response(self, log_id: str, user_id: str, response: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def list_detection_logs(
        self,
        user_id: str,
        detection_type: Optional[str] = None,
        min_score: Optional[float] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[DetectionLog]:
        raise NotImplementedError

    @abstractmethod
    async def count_detection_logs(
        self,
        user_id: str,
        detection_type: Optional[str] = None,
        min_score: Optional[float] = None,
    ) -> int:
        raise NotImplementedError


class InMemoryFraudStore(FraudStore):
    """Process-local store. Good for a single worker and for tests"""

    def __init__(self):
        self.suspicious_numbers: Dict[str, SuspiciousNumber] = {}
        self.patterns: Dict[str, FraudPattern] = {}
        self.trusted_numbers: Dict[str, TrustedNumber] = {}
        self.detection_logs: Dict[str, DetectionLog] = {}

    async def find_suspicious_number(self, phone_number: str, active_only: bool = True) -> Optional[SuspiciousNumber]:
        record = self.suspicious_numbers.get(phone_number)
        if record is None or (active_only and not record.is_active):
            return None
        return copy.deepcopy(record)

    async def save_suspicious_number(self, record: SuspiciousNumber) -> SuspiciousNumber:
        self.suspicious_numbers[record.phone_number] = copy.deepcopy(record)
        return record

    async def list_active_patterns(self) -> List[FraudPattern]:
        return [copy.deepcopy(p) for p in self.patterns.values() if p.is_active]

    async def save_pattern(self, record: FraudPattern) -> FraudPattern:
        record.last_updated = utcnow()
        self.patterns[record.pattern_id] = copy.deepcopy(record)
        return record

    async def find_trusted_number(self, user_id: str, phone_number: str) -> Optional[TrustedNumber]:
        for record in self.trusted_numbers.values():
            if record.user_id == user_id and record.phone_number == phone_number:
                return copy.deepcopy(record)
        return None

    async def add_trusted_number(self, record: TrustedNumber) -> TrustedNumber:
        if record.category not in TRUST_CATEGORIES:
            raise StoreError(f"Invalid trusted number category: {record.category}")
        if await self.find_trusted_number(record.user_id, record.phone_number):
            raise DuplicateRecordError(
                f"{record.phone_number} is already trusted by user {record.user_id}"
            )
        self.trusted_numbers[record.id] = copy.deepcopy(record)
        return record

    async def list_trusted_numbers(self, user_id: str) -> List[TrustedNumber]:
        return [copy.deepcopy(r) for r in self.trusted_numbers.values() if r.user_id == user_id]

    async def remove_trusted_number(self, user_id: str, record_id: str) -> bool:
        record = self.trusted_numbers.get(record_id)
        if record is None or record.user_id != user_id:
            return False
        del self.trusted_numbers[record_id]
        return True

    async def append_detection_log(self, record: DetectionLog) -> str:
        self.detection_logs[record.id] = copy.deepcopy(record)
        return record.id

    async def update_detection_response(self, log_id: str, user_id: str, response: str) -> bool:
        record = self.detection_logs.get(log_id)
        if record is None or record.user_id != user_id:
            return False
        record.user_response = response
        record.response_timestamp = utcnow()
        return True

    def _filter_logs(self, user_id, detection_type, min_score) -> List[DetectionLog]:
        # Insertion order breaks timestamp ties, newest first
        logs = [
            (position, log) for position, log in enumerate(self.detection_logs.values())
            if log.user_id == user_id
            and (detection_type is None or log.detection_type == detection_type)
            and (min_score is None or log.risk_score >= min_score)
        ]
        logs.sort(key=lambda item: (item[1].alert_timestamp, item[0]), reverse=True)
        return [log for _, log in logs]

    async def list_detection_logs(
        self,
        user_id: str,
        detection_type: Optional[str] = None,
        min_score: Optional[float] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[DetectionLog]:
        logs = self._filter_logs(user_id, detection_type, min_score)
        end = None if limit is None else skip + limit
        return [copy.deepcopy(log) for log in logs[skip:end]]

    async def count_detection_logs(
        self,
        user_id: str,
        detection_type: Optional[str] = None,
        min_score: Optional[float] = None,
    ) -> int:
        return len(self._filter_logs(user_id, detection_type, min_score))
