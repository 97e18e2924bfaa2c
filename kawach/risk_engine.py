"""
FRAUD DETECTION ENGINE - Deterministic multi-signal risk scoring
Scores a phone number (and optional message content) for SMS / WhatsApp /
call fraud and keeps the shared reputation registry up to date.

SCORING ORDER (fixed, additive unless noted):
1. Reputation lookup   +reputationScore of an active registry record
2. Trust override      running total x 0.1 if the user trusts the number
                       (applied here, so later signals are NOT dampened)
3. Content analysis    registry patterns + phishing + financial keywords
                       + heuristics (<=50), content total capped at 100
4. Phone structure     +20 suspicious prefix, +15 odd length, +25 repeated digit
5. Level               >=80 critical, >=60 high, >=40 medium, else low
6. Fraud flag          riskScore >= 50 (independent of the level bands)

FAILURE POLICY:
Detection never raises into the request path. Any exception degrades to a
zero-risk result carrying an error marker, logged as degraded. Reporting and
trust-listing return {success: False, error} and never retry.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import ValidationError

from .fraud_rules import (
    CompiledPattern, FraudRulesEngine, FraudSignal, RiskLevel, SignalType,
    UserResponse, MAX_CONTENT_SCORE, MAX_RISK_SCORE, build_alert_message,
    compile_pattern, fraud_rules_engine, is_fraud_score, recommended_action,
    risk_level_for_score,
)
from .models import DetectionRequest, DetectionResult, OperationResult, RecommendedAction
from .store import (
    DetectionLog, FraudStore, ReportEntry, SuspiciousNumber, TrustedNumber, utcnow,
)

logger = logging.getLogger(__name__)

TRUST_DAMPENING = 0.1
NEW_REPORT_SCORE = 60  # Seed reputation for a first report
REPORT_BUMP = 10  # Divided by the new report count on every repeat report
HIGH_RISK_SCORE = 60


class FraudDetectionEngine:
    """
    Stateless apart from the pattern list, which is loaded once by
    initialize() and read-only afterwards. Concurrent detect_fraud calls
    need no coordination.
    """

    def __init__(self, store: FraudStore, rules: Optional[FraudRulesEngine] = None):
        self.store = store
        self.rules = rules or fraud_rules_engine
        self.fraud_patterns: Optional[List[CompiledPattern]] = None

    async def initialize(self) -> int:
        """Load and compile active registry patterns. Call again to refresh."""
        records = await self.store.list_active_patterns()
        self.fraud_patterns = [compile_pattern(record) for record in records]
        literal_count = sum(
            1 for p in self.fraud_patterns if p.matcher.signal_type == SignalType.KEYWORD_MATCH
        )
        logger.info(
            f"🔍 Loaded {len(self.fraud_patterns)} fraud patterns "
            f"({literal_count} as literal keywords)"
        )
        return len(self.fraud_patterns)

    reload_patterns = initialize

    # ==========================================================================
    # DETECTION
    # ==========================================================================

    async def detect_fraud(self, request: Union[DetectionRequest, Dict[str, Any]]) -> DetectionResult:
        try:
            if isinstance(request, dict):
                request = DetectionRequest.model_validate(request)

            if self.fraud_patterns is None:
                await self.initialize()

            # Steps 1-2
            risk_score, signals, _ = await self.score_number_reputation(
                request.phoneNumber, request.userId
            )

            # Step 3
            if request.content:
                content_score, content_signals = self.analyze_content(request.content)
                risk_score += content_score
                signals.extend(content_signals)

            # Step 4
            phone_signals = self.rules.analyze_phone_pattern(request.phoneNumber)
            risk_score += sum(signal.score for signal in phone_signals)
            signals.extend(phone_signals)

            # Steps 5-6, on the reported (clamped, rounded) score
            risk_score = round(min(risk_score, MAX_RISK_SCORE), 2)
            risk_level = risk_level_for_score(risk_score)
            detected_patterns = [signal.to_dict() for signal in signals]

            log_id = await self._log_detection(request, detected_patterns, risk_score, risk_level)

            logger.info(
                f"📊 Detection {request.channelType.value} {request.phoneNumber}: "
                f"score={risk_score} level={risk_level.value} signals={len(signals)}"
            )

            return DetectionResult(
                isFraud=is_fraud_score(risk_score),
                riskScore=risk_score,
                riskLevel=risk_level,
                detectedPatterns=detected_patterns,
                alertMessage=build_alert_message(risk_level, signals),
                recommendedAction=RecommendedAction(**recommended_action(risk_level)),
                logId=log_id,
            )

        except Exception as e:
            phone_number = request.get("phoneNumber") if isinstance(request, dict) else request.phoneNumber
            logger.error(
                f"❌ Fraud detection degraded for {phone_number}: {e}",
                exc_info=True,
            )
            return DetectionResult(
                isFraud=False,
                riskScore=0,
                riskLevel=RiskLevel.LOW,
                error="Detection failed",
            )

    async def score_number_reputation(
        self, phone_number: str, user_id: Optional[str]
    ) -> Tuple[float, List[FraudSignal], bool]:
        """
        Steps 1-2: registry reputation, then the user's trust dampening.
        Returns (running score, signals, trusted).
        """
        score = 0.0
        signals: List[FraudSignal] = []

        record = await self.store.find_suspicious_number(phone_number, active_only=True)
        if record:
            score += record.reputation_score
            signals.append(FraudSignal(
                signal_type=SignalType.SUSPICIOUS_NUMBER,
                confidence=min(record.report_count * 10, 100),
                score=record.reputation_score,
                details={
                    "details": {
                        "riskLevel": record.risk_level,
                        "fraudType": list(record.fraud_type),
                        "reportCount": record.report_count,
                    }
                },
            ))

        trusted = False
        if user_id:
            trusted = await self.store.find_trusted_number(user_id, phone_number) is not None
            if trusted:
                logger.info(f"🤝 {phone_number} is trusted by {user_id}: {score} → {score * TRUST_DAMPENING}")
                score *= TRUST_DAMPENING

        return score, signals, trusted

    def analyze_content(self, content: str) -> Tuple[float, List[FraudSignal]]:
        """Step 3: registry patterns, phishing, financial keywords, heuristics"""
        score = 0.0
        signals: List[FraudSignal] = []

        for compiled in self.fraud_patterns or []:
            if compiled.matcher.matches(content):
                score += compiled.score
                signals.append(FraudSignal(
                    signal_type=compiled.matcher.signal_type,
                    confidence=compiled.matcher.confidence,
                    score=compiled.score,
                    details={
                        "patternId": compiled.pattern_id,
                        "pattern": compiled.pattern,
                        "category": compiled.category,
                    },
                ))

        for signal in self.rules.match_phishing(content) + self.rules.match_financial_keywords(content):
            score += signal.score
            signals.append(signal)

        score += self.rules.heuristic_score(content)

        return min(score, MAX_CONTENT_SCORE), signals

    async def _log_detection(
        self,
        request: DetectionRequest,
        detected_patterns: List[Dict[str, Any]],
        risk_score: float,
        risk_level: RiskLevel,
    ) -> Optional[str]:
        """Append-only detection log. A failed write is logged, not fatal."""
        try:
            return await self.store.append_detection_log(DetectionLog(
                user_id=request.userId or "anonymous",
                detection_type=request.channelType.value,
                suspicious_number=request.phoneNumber,
                content=request.content,
                detected_patterns=detected_patterns,
                risk_score=risk_score,
                risk_level=risk_level.value,
                metadata=request.metadata,
            ))
        except Exception as e:
            logger.error(f"Error logging detection: {e}")
            return None

    async def detect_bulk(self, items: List[Dict[str, Any]], user_id: str) -> List[Dict[str, Any]]:
        """Run detect_fraud per item; a malformed item yields an error entry"""
        results = []
        for item in items:
            item_id = item.get("id")
            if item_id is None:
                item_id = len(results)
            try:
                request = DetectionRequest.model_validate({**item, "userId": user_id})
                result = await self.detect_fraud(request)
                results.append({"id": item_id, **result.model_dump(mode="json")})
            except ValidationError as e:
                results.append({"id": item_id, "error": str(e), "isFraud": False})
        return results

    # ==========================================================================
    # REGISTRY MUTATIONS
    # ==========================================================================

    async def report_fraud_number(
        self,
        phone_number: str,
        fraud_type: Union[str, List[str]],
        reported_by: str,
        reason: Optional[str] = None,
        evidence: Optional[str] = None,
    ) -> OperationResult:
        """
        Only mutator of the reputation registry.

        First report: reputation 60, country code from the +91 prefix.
        Repeat report: +1 count, reputation += 10 / count (max 100), level
        re-derived from the score bands (kept as-is below 40).
        """
        try:
            entry = ReportEntry(user_id=reported_by, reason=reason, evidence=evidence)
            record = await self.store.find_suspicious_number(phone_number, active_only=False)

            if record:
                record.report_count += 1
                record.last_reported_at = utcnow()
                record.reported_by.append(entry)
                record.reputation_score = min(
                    record.reputation_score + REPORT_BUMP / record.report_count,
                    MAX_RISK_SCORE,
                )
                level = risk_level_for_score(record.reputation_score)
                if level != RiskLevel.LOW:
                    record.risk_level = level.value
            else:
                record = SuspiciousNumber(
                    phone_number=phone_number,
                    country_code="+91" if phone_number.startswith("+91") else "unknown",
                    fraud_type=list(fraud_type) if isinstance(fraud_type, (list, tuple)) else [fraud_type],
                    reported_by=[entry],
                    reputation_score=NEW_REPORT_SCORE,
                )

            await self.store.save_suspicious_number(record)
            logger.info(
                f"📞 Reported {phone_number}: count={record.report_count} "
                f"reputation={record.reputation_score:.1f} level={record.risk_level}"
            )
            return OperationResult(success=True, message="Number reported successfully")

        except Exception as e:
            logger.error(f"Error reporting fraud number: {e}")
            return OperationResult(success=False, error=str(e))

    async def add_trusted_number(
        self,
        user_id: str,
        phone_number: str,
        name: Optional[str] = None,
        category: str = "other",
    ) -> OperationResult:
        try:
            await self.store.add_trusted_number(TrustedNumber(
                user_id=user_id,
                phone_number=phone_number,
                name=name,
                category=category,
            ))
            return OperationResult(success=True, message="Number added to trusted list")
        except Exception as e:
            logger.error(f"Error adding trusted number: {e}")
            return OperationResult(success=False, error=str(e))

    async def remove_trusted_number(self, user_id: str, record_id: str) -> OperationResult:
        removed = await self.store.remove_trusted_number(user_id, record_id)
        if not removed:
            return OperationResult(success=False, error="Trusted number not found")
        return OperationResult(success=True, message="Number removed from trusted list")

    async def list_trusted_numbers(self, user_id: str) -> List[TrustedNumber]:
        return await self.store.list_trusted_numbers(user_id)

    async def record_user_response(self, log_id: str, user_id: str, response: str) -> OperationResult:
        """Attach the user's verdict to their own detection log"""
        try:
            response = UserResponse(response)
        except ValueError:
            return OperationResult(success=False, error="Invalid user response")

        updated = await self.store.update_detection_response(log_id, user_id, response.value)
        if not updated:
            return OperationResult(success=False, error="Detection log not found")
        return OperationResult(success=True, message="Response updated successfully")

    # ==========================================================================
    # QUERIES
    # ==========================================================================

    async def check_number(self, phone_number: str, user_id: str) -> Dict[str, Any]:
        record = await self.store.find_suspicious_number(phone_number, active_only=True)
        trusted = await self.store.find_trusted_number(user_id, phone_number)
        return {
            "phoneNumber": phone_number,
            "isSuspicious": record is not None,
            "isTrusted": trusted is not None,
            "suspiciousDetails": {
                "riskLevel": record.risk_level,
                "fraudType": list(record.fraud_type),
                "reportCount": record.report_count,
                "reputationScore": record.reputation_score,
            } if record else None,
        }

    async def detection_history(
        self,
        user_id: str,
        detection_type: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        page = max(page, 1)
        limit = max(limit, 1)
        logs = await self.store.list_detection_logs(
            user_id, detection_type=detection_type, skip=(page - 1) * limit, limit=limit
        )
        total = await self.store.count_detection_logs(user_id, detection_type=detection_type)
        return {
            "detectionLogs": [log.to_dict() for log in logs],
            "pagination": {
                "current": page,
                "pages": -(-total // limit),
                "total": total,
            },
        }

    async def statistics(self, user_id: str) -> Dict[str, Any]:
        logs = await self.store.list_detection_logs(user_id)
        total = len(logs)
        fraud = sum(1 for log in logs if is_fraud_score(log.risk_score))

        by_type: Dict[str, int] = {}
        for log in logs:
            by_type[log.detection_type] = by_type.get(log.detection_type, 0) + 1

        recent_high_risk = [log.to_dict() for log in logs if log.risk_score >= HIGH_RISK_SCORE][:5]
        trusted = await self.store.list_trusted_numbers(user_id)

        return {
            "totalDetections": total,
            "fraudDetections": fraud,
            "detectionByType": [{"type": t, "count": c} for t, c in by_type.items()],
            "recentHighRisk": recent_high_risk,
            "trustedNumbersCount": len(trusted),
            "fraudDetectionRate": round(fraud / total * 100, 2) if total else 0,
        }

    async def list_patterns(self, limit: int = 50) -> List[Dict[str, Any]]:
        records = await self.store.list_active_patterns()
        records.sort(key=lambda record: record.accuracy, reverse=True)
        return [record.to_dict() for record in records[:limit]]
