"""
SEED DATA - Starter fraud patterns and known-bad numbers
Loaded into an empty store at start-up when SEED_FRAUD_DATABASE is enabled.
"""

import logging
from typing import Dict, List

from .store import FraudPattern, FraudStore, ReportEntry, SuspiciousNumber

logger = logging.getLogger(__name__)


SEED_PATTERNS: List[Dict] = [
    # Phishing URLs
    {"pattern_id": "phishing_url_1", "pattern_type": "url", "pattern": "bit.ly",
     "regex": r"bit\.ly\/\w+", "risk_level": "high", "category": "phishing_url",
     "description": "Shortened URL from bit.ly - commonly used in phishing", "accuracy": 0.7},
    {"pattern_id": "phishing_url_2", "pattern_type": "url", "pattern": "tinyurl.com",
     "regex": r"tinyurl\.com\/\w+", "risk_level": "high", "category": "phishing_url",
     "description": "TinyURL shortened links", "accuracy": 0.7},

    # Banking fraud
    {"pattern_id": "banking_fraud_1", "pattern_type": "text", "pattern": "your account has been suspended",
     "regex": r"your\s+account\s+has\s+been\s+suspended", "risk_level": "critical", "category": "banking_fraud",
     "description": "Account suspension scam", "accuracy": 0.95},
    {"pattern_id": "banking_fraud_2", "pattern_type": "text", "pattern": "verify your account immediately",
     "regex": r"verify\s+your\s+account\s+immediately", "risk_level": "critical", "category": "banking_fraud",
     "description": "Urgent account verification scam", "accuracy": 0.9},
    {"pattern_id": "banking_fraud_3", "pattern_type": "text", "pattern": "update your kyc",
     "regex": r"update\s+your\s+kyc", "risk_level": "high", "category": "banking_fraud",
     "description": "KYC update scam", "accuracy": 0.85},

    # OTP / PIN requests
    {"pattern_id": "otp_fraud_1", "pattern_type": "text", "pattern": "send your otp",
     "regex": r"send\s+your\s+otp", "risk_level": "critical", "category": "otp_request",
     "description": "OTP sharing request", "accuracy": 0.98},
    {"pattern_id": "otp_fraud_2", "pattern_type": "text", "pattern": "share your pin",
     "regex": r"share\s+your\s+pin", "risk_level": "critical", "category": "otp_request",
     "description": "PIN sharing request", "accuracy": 0.98},

    # Lottery / prize
    {"pattern_id": "lottery_scam_1", "pattern_type": "text", "pattern": "congratulations you have won",
     "regex": r"congratulations\s+you\s+have\s+won", "risk_level": "high", "category": "lottery_scam",
     "description": "Fake lottery win announcement", "accuracy": 0.92},
    {"pattern_id": "lottery_scam_2", "pattern_type": "text", "pattern": "claim your prize now",
     "regex": r"claim\s+your\s+prize\s+now", "risk_level": "high", "category": "lottery_scam",
     "description": "Prize claiming scam", "accuracy": 0.88},

    # Tech support
    {"pattern_id": "tech_support_1", "pattern_type": "text", "pattern": "your computer has been infected",
     "regex": r"your\s+computer\s+has\s+been\s+infected", "risk_level": "high", "category": "tech_support",
     "description": "Fake computer infection warning", "accuracy": 0.9},
    {"pattern_id": "tech_support_2", "pattern_type": "text", "pattern": "microsoft technical support",
     "regex": r"microsoft\s+technical\s+support", "risk_level": "high", "category": "tech_support",
     "description": "Fake Microsoft support", "accuracy": 0.85},

    # Loans / investments
    {"pattern_id": "loan_scam_1", "pattern_type": "text", "pattern": "instant loan approved",
     "regex": r"instant\s+loan\s+approved", "risk_level": "medium", "category": "financial_offer",
     "description": "Fake loan approval", "accuracy": 0.75},
    {"pattern_id": "investment_scam_1", "pattern_type": "text", "pattern": "guaranteed returns",
     "regex": r"guaranteed\s+returns", "risk_level": "medium", "category": "financial_offer",
     "description": "Investment scam with guaranteed returns", "accuracy": 0.8},

    {"pattern_id": "romance_scam_1", "pattern_type": "text", "pattern": "i am stuck in airport",
     "regex": r"i\s+am\s+stuck\s+in\s+airport", "risk_level": "high", "category": "romance_scam",
     "description": "Airport emergency romance scam", "accuracy": 0.9},
    {"pattern_id": "covid_scam_1", "pattern_type": "text", "pattern": "corona relief fund",
     "regex": r"corona\s+relief\s+fund", "risk_level": "high", "category": "financial_offer",
     "description": "Fake COVID relief fund", "accuracy": 0.85},
    {"pattern_id": "govt_scam_1", "pattern_type": "text", "pattern": "income tax department",
     "regex": r"income\s+tax\s+department", "risk_level": "high", "category": "banking_fraud",
     "description": "Fake income tax communication", "accuracy": 0.8},
    {"pattern_id": "urgency_1", "pattern_type": "text", "pattern": "urgent action required",
     "regex": r"urgent\s+action\s+required", "risk_level": "medium", "category": "phishing_url",
     "description": "Urgent action pressure tactic", "accuracy": 0.7},
]

SEED_NUMBERS: List[Dict] = [
    {"phone_number": "+1234567890", "country_code": "+1", "risk_level": "critical",
     "fraud_type": ["phishing", "financial_fraud"], "report_count": 25, "reputation_score": 95,
     "verification_status": "verified"},
    {"phone_number": "+447123456789", "country_code": "+44", "risk_level": "high",
     "fraud_type": ["fake_lottery", "romance_scam"], "report_count": 18, "reputation_score": 85,
     "verification_status": "verified"},
    {"phone_number": "1401234", "country_code": "unknown", "risk_level": "high",
     "fraud_type": ["spam", "phishing"], "report_count": 32, "reputation_score": 88,
     "verification_status": "verified"},
    {"phone_number": "+923456789012", "country_code": "+92", "risk_level": "medium",
     "fraud_type": ["financial_fraud"], "report_count": 8, "reputation_score": 65,
     "verification_status": "pending"},
    {"phone_number": "+2341234567890", "country_code": "+234", "risk_level": "critical",
     "fraud_type": ["romance_scam", "financial_fraud"], "report_count": 45, "reputation_score": 98,
     "verification_status": "verified"},
]


async def seed_fraud_database(store: FraudStore) -> Dict[str, int]:
    """Write the seed patterns and numbers. Existing records with the same keys are replaced."""
    for data in SEED_PATTERNS:
        await store.save_pattern(FraudPattern(**data))

    for data in SEED_NUMBERS:
        await store.save_suspicious_number(SuspiciousNumber(
            **data,
            reported_by=[ReportEntry(
                user_id="system",
                reason="Database seeding",
                evidence="Initial system data",
            )],
        ))

    logger.info(f"🌱 Seeded {len(SEED_PATTERNS)} fraud patterns and {len(SEED_NUMBERS)} suspicious numbers")
    return {"patterns": len(SEED_PATTERNS), "numbers": len(SEED_NUMBERS)}
