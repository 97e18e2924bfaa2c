from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from .fraud_rules import ChannelType, RiskLevel

class DetectionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phoneNumber: str  # Candidate number as received
    channelType: ChannelType = Field(alias="type")  # sms / whatsapp_message / whatsapp_call / phone_call
    content: Optional[str] = None  # Absent for pure call events
    userId: Optional[str] = None  # Owner of the trust list to consult
    metadata: Optional[Dict[str, Any]] = None  # Device / app info, stored with the log

class RecommendedAction(BaseModel):
    action: str
    instructions: List[str]

class DetectionResult(BaseModel):
    isFraud: bool
    riskScore: float
    riskLevel: RiskLevel
    detectedPatterns: List[Dict[str, Any]] = Field(default_factory=list)
    alertMessage: Optional[str] = None
    recommendedAction: Optional[RecommendedAction] = None
    logId: Optional[str] = None  # Detection log id, used for the user response
    error: Optional[str] = None  # Set only on degraded results

class OperationResult(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None

# HTTP bodies. Required fields are checked by the routes to answer 400, not 422.

class DetectBody(BaseModel):
    phoneNumber: Optional[str] = None
    type: Optional[str] = None
    content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

class BulkDetectItem(DetectBody):
    id: Optional[Any] = None

class BulkDetectBody(BaseModel):
    items: Optional[List[BulkDetectItem]] = None

class ReportNumberBody(BaseModel):
    phoneNumber: Optional[str] = None
    fraudType: Optional[Any] = None  # One type or a list of types
    reason: Optional[str] = None
    evidence: Optional[str] = None

class TrustedNumberBody(BaseModel):
    phoneNumber: Optional[str] = None
    name: Optional[str] = None
    category: str = "other"

class UserResponseBody(BaseModel):
    userResponse: Optional[str] = None

class EvidenceSummary(BaseModel):
    id: str
    evidenceId: str
    fileName: str
    blockIndex: int
    blockHash: str
    verified: bool = True

class UploadResponse(BaseModel):
    success: bool
    message: str
    evidence: EvidenceSummary
