"""
FRAUD RULES - Deterministic content and phone-number heuristics
Static pattern tables for Indian SMS / WhatsApp / call fraud, plus the
compiled matchers for registry patterns loaded from the fraud store.
"""

import re
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ChannelType(str, Enum):
    SMS = "sms"
    WHATSAPP_MESSAGE = "whatsapp_message"
    WHATSAPP_CALL = "whatsapp_call"
    PHONE_CALL = "phone_call"


class UserResponse(str, Enum):
    MARKED_SAFE = "marked_safe"
    CONFIRMED_FRAUD = "confirmed_fraud"
    IGNORED = "ignored"
    BLOCKED_NUMBER = "blocked_number"


class SignalType(str, Enum):
    SUSPICIOUS_NUMBER = "suspicious_number"
    DATABASE_PATTERN = "database_pattern"
    KEYWORD_MATCH = "keyword_match"
    PHISHING_URL = "phishing_url"
    FINANCIAL_FRAUD_KEYWORD = "financial_fraud_keyword"
    SUSPICIOUS_PHONE_PATTERN = "suspicious_phone_pattern"
    UNUSUAL_NUMBER_LENGTH = "unusual_number_length"
    REPEATED_DIGITS = "repeated_digits"


# Score bands shared by detection and reputation updates
THRESHOLD_CRITICAL = 80
THRESHOLD_HIGH = 60
THRESHOLD_MEDIUM = 40
FRAUD_THRESHOLD = 50
MAX_RISK_SCORE = 100

MAX_HEURISTIC_SCORE = 50
MAX_CONTENT_SCORE = 100

# Registry pattern contribution by its risk level
PATTERN_LEVEL_SCORES = {
    RiskLevel.LOW: 10,
    RiskLevel.MEDIUM: 25,
    RiskLevel.HIGH: 40,
    RiskLevel.CRITICAL: 60,
}


def risk_level_for_score(score: float) -> RiskLevel:
    """Fixed bands: >=80 critical, >=60 high, >=40 medium, else low"""
    if score >= THRESHOLD_CRITICAL:
        return RiskLevel.CRITICAL
    if score >= THRESHOLD_HIGH:
        return RiskLevel.HIGH
    if score >= THRESHOLD_MEDIUM:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def is_fraud_score(score: float) -> bool:
    # Independent of the level bands: 40-49 is medium but not fraud
    return score >= FRAUD_THRESHOLD


def pattern_score(risk_level: Union[str, RiskLevel, None]) -> int:
    try:
        return PATTERN_LEVEL_SCORES[RiskLevel(risk_level)]
    except ValueError:
        return PATTERN_LEVEL_SCORES[RiskLevel.LOW]


@dataclass
class FraudSignal:
    """One piece of evidence behind a risk score"""
    signal_type: SignalType
    confidence: float
    score: float
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.signal_type.value,
            "confidence": self.confidence,
            "score": self.score,
            **self.details,
        }


# ==============================================================================
# REGISTRY PATTERN MATCHERS
# Decided once at load time: compiled regex, or literal when it won't compile
# ==============================================================================

class RegexMatcher:
    signal_type = SignalType.DATABASE_PATTERN

    def __init__(self, compiled: re.Pattern, confidence: float):
        self.compiled = compiled
        self.confidence = confidence

    def matches(self, content: str) -> bool:
        return self.compiled.search(content) is not None


class LiteralMatcher:
    signal_type = SignalType.KEYWORD_MATCH
    confidence = 70

    def __init__(self, literal: str):
        self.literal = literal.lower()

    def matches(self, content: str) -> bool:
        return self.literal in content.lower()


PatternMatcher = Union[RegexMatcher, LiteralMatcher]


@dataclass
class CompiledPattern:
    """A registry pattern record paired with its matcher"""
    pattern_id: str
    pattern: str
    category: Optional[str]
    risk_level: str
    matcher: PatternMatcher

    @property
    def score(self) -> int:
        return pattern_score(self.risk_level)


def compile_pattern(record) -> CompiledPattern:
    """
    Prefer the record's regex, fall back to its pattern text.
    Invalid regex -> LiteralMatcher on the pattern text.
    """
    source = record.regex or record.pattern
    try:
        matcher: PatternMatcher = RegexMatcher(
            re.compile(source, re.IGNORECASE),
            confidence=record.accuracy * 100,
        )
    except re.error:
        matcher = LiteralMatcher(record.pattern)

    return CompiledPattern(
        pattern_id=record.pattern_id,
        pattern=record.pattern,
        category=record.category,
        risk_level=record.risk_level,
        matcher=matcher,
    )


# ==============================================================================
# STATIC RULES
# ==============================================================================

class FraudRulesEngine:
    """
    Static heuristics applied on top of the registry patterns.
    Stateless after construction; safe to share across concurrent requests.
    """

    PHISHING_SCORE = 30
    PHISHING_CONFIDENCE = 85
    FINANCIAL_KEYWORD_SCORE = 25
    FINANCIAL_KEYWORD_CONFIDENCE = 80

    PHONE_PATTERN_SCORE = 20
    PHONE_PATTERN_CONFIDENCE = 75
    UNUSUAL_LENGTH_SCORE = 15
    REPEATED_DIGIT_SCORE = 25
    MIN_NUMBER_LENGTH = 6
    MAX_NUMBER_LENGTH = 15
    REPEATED_DIGIT_RATIO = 0.4

    def __init__(self):
        self._init_phishing_patterns()
        self._init_financial_keywords()
        self._init_heuristic_terms()
        self._init_phone_patterns()

    def _init_phishing_patterns(self):
        """Shortened URLs and generic urgent-verify / winner phrasing"""
        self.phishing_patterns: List[re.Pattern] = [
            re.compile(r'bit\.ly/\w+', re.I),
            re.compile(r'tinyurl\.com/\w+', re.I),
            re.compile(r't\.co/\w+', re.I),
            re.compile(r'goo\.gl/\w+', re.I),
            re.compile(r'ow\.ly/\w+', re.I),
            re.compile(r'click.*here.*urgent', re.I),
            re.compile(r'verify.*account.*immediately', re.I),
            re.compile(r'suspended.*account', re.I),
            re.compile(r'congratulations.*winner', re.I),
            re.compile(r'claim.*prize.*now', re.I),
        ]

    def _init_financial_keywords(self):
        self.financial_keywords: List[str] = [
            "bank account suspended", "urgent verification required", "click to verify",
            "congratulations you have won", "claim your prize", "lottery winner",
            "transfer money immediately", "send otp", "share your pin",
            "credit card expired", "update kyc", "account will be closed",
            "tax refund", "government benefit", "corona relief fund",
        ]

    def _init_heuristic_terms(self):
        # Each term counts once if present (x5 / x3 / x4)
        self.urgency_words = ["urgent", "immediate", "asap", "expire", "suspend", "block", "deadline"]
        self.money_terms = ["money", "cash", "rupees", "dollars", "payment", "transfer", "account", "bank"]
        self.suspicious_actions = ["click here", "download", "install", "verify", "confirm", "update"]

        self.long_number = re.compile(r'\d{4,}')
        self.uppercase = re.compile(r'[A-Z]')
        self.symbols = re.compile(r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>?]')

    def _init_phone_patterns(self):
        """Suspicious country codes and short codes (Indian context)"""
        self.suspicious_phone_patterns: List[re.Pattern] = [
            re.compile(r'^\+1\d{10}$'),        # US numbers spoofed for scams
            re.compile(r'^\+44\d{10}$'),       # UK
            re.compile(r'^\+234\d{8,10}$'),    # Nigeria, landline and mobile
            re.compile(r'^\+92\d{10}$'),       # Pakistan
            re.compile(r'^[0-9]{5}$'),         # short codes
            re.compile(r'^140\d{4}$'),         # telemarketing series
        ]

    def match_phishing(self, content: str) -> List[FraudSignal]:
        return [
            FraudSignal(
                signal_type=SignalType.PHISHING_URL,
                confidence=self.PHISHING_CONFIDENCE,
                score=self.PHISHING_SCORE,
                details={"pattern": pattern.pattern},
            )
            for pattern in self.phishing_patterns
            if pattern.search(content)
        ]

    def match_financial_keywords(self, content: str) -> List[FraudSignal]:
        content_lower = content.lower()
        return [
            FraudSignal(
                signal_type=SignalType.FINANCIAL_FRAUD_KEYWORD,
                confidence=self.FINANCIAL_KEYWORD_CONFIDENCE,
                score=self.FINANCIAL_KEYWORD_SCORE,
                details={"keyword": keyword},
            )
            for keyword in self.financial_keywords
            if keyword in content_lower
        ]

    def heuristic_score(self, content: str) -> int:
        """
        Urgency x5, money x3, actions x4, +10 for >2 long numbers,
        +15 for >50% capitals, +10 for >10% symbols. Capped at 50.
        """
        if not content:
            return 0

        score = 0
        content_lower = content.lower()

        score += 5 * sum(1 for word in self.urgency_words if word in content_lower)
        score += 3 * sum(1 for term in self.money_terms if term in content_lower)
        score += 4 * sum(1 for action in self.suspicious_actions if action in content_lower)

        if len(self.long_number.findall(content)) > 2:
            score += 10

        if len(self.uppercase.findall(content)) / len(content) > 0.5:
            score += 15

        if len(self.symbols.findall(content)) > len(content) * 0.1:
            score += 10

        return min(score, MAX_HEURISTIC_SCORE)

    def analyze_phone_pattern(self, phone_number: str) -> List[FraudSignal]:
        """Structural checks on the number string itself"""
        signals: List[FraudSignal] = []

        for pattern in self.suspicious_phone_patterns:
            if pattern.search(phone_number):
                signals.append(FraudSignal(
                    signal_type=SignalType.SUSPICIOUS_PHONE_PATTERN,
                    confidence=self.PHONE_PATTERN_CONFIDENCE,
                    score=self.PHONE_PATTERN_SCORE,
                    details={"pattern": pattern.pattern},
                ))
                break

        if not self.MIN_NUMBER_LENGTH <= len(phone_number) <= self.MAX_NUMBER_LENGTH:
            signals.append(FraudSignal(
                signal_type=SignalType.UNUSUAL_NUMBER_LENGTH,
                confidence=60,
                score=self.UNUSUAL_LENGTH_SCORE,
                details={"length": len(phone_number)},
            ))

        digits = re.sub(r'\D', '', phone_number)
        if digits:
            top_count = max(digits.count(d) for d in set(digits))
            if top_count > len(digits) * self.REPEATED_DIGIT_RATIO:
                signals.append(FraudSignal(
                    signal_type=SignalType.REPEATED_DIGITS,
                    confidence=65,
                    score=self.REPEATED_DIGIT_SCORE,
                    details={"repeatedDigitRatio": round(top_count / len(digits), 2)},
                ))

        return signals


# ==============================================================================
# ALERTS
# ==============================================================================

ALERT_MESSAGES = {
    RiskLevel.CRITICAL: "🚨 CRITICAL FRAUD ALERT! This appears to be a dangerous scam attempt.",
    RiskLevel.HIGH: "⚠️ HIGH RISK FRAUD DETECTED! This message/call is highly suspicious.",
    RiskLevel.MEDIUM: "⚠️ SUSPICIOUS ACTIVITY detected. Please be cautious.",
    RiskLevel.LOW: "ℹ️ Low risk detected. Stay alert.",
}

# Extra alert lines, appended in this order when the signal type is present
SIGNAL_WARNINGS = [
    (SignalType.PHISHING_URL, "🔗 Contains suspicious links - DO NOT CLICK!"),
    (SignalType.FINANCIAL_FRAUD_KEYWORD, "💰 Contains financial fraud indicators - NEVER share OTP/PIN!"),
    (SignalType.SUSPICIOUS_NUMBER, "📞 This number has been reported for fraud by other users."),
]

RECOMMENDED_ACTIONS = {
    RiskLevel.CRITICAL: {
        "action": "BLOCK_IMMEDIATELY",
        "instructions": [
            "Block this number immediately",
            "Do not respond or engage",
            "Report to authorities if money is involved",
            "Share with family/friends as warning",
        ],
    },
    RiskLevel.HIGH: {
        "action": "AVOID_ENGAGEMENT",
        "instructions": [
            "Do not respond to this message/call",
            "Do not click any links",
            "Consider blocking this number",
            "Report as spam",
        ],
    },
    RiskLevel.MEDIUM: {
        "action": "BE_CAUTIOUS",
        "instructions": [
            "Be very careful with this interaction",
            "Verify sender through other means",
            "Do not share personal information",
            "Monitor for more suspicious activity",
        ],
    },
    RiskLevel.LOW: {
        "action": "STAY_ALERT",
        "instructions": [
            "Stay alert for any unusual requests",
            "Verify important information independently",
        ],
    },
}


def build_alert_message(risk_level: RiskLevel, signals: List[FraudSignal]) -> str:
    message = ALERT_MESSAGES[risk_level]
    present = {signal.signal_type for signal in signals}
    for signal_type, warning in SIGNAL_WARNINGS:
        if signal_type in present:
            message += f"\n{warning}"
    return message


def recommended_action(risk_level: RiskLevel) -> Dict[str, Any]:
    action = RECOMMENDED_ACTIONS[risk_level]
    return {"action": action["action"], "instructions": list(action["instructions"])}


# Shared instance; holds only immutable tables
fraud_rules_engine = FraudRulesEngine()
