"""
FRAUD DETECTION ENGINE TESTS
Scoring order, trust dampening, score bands, reputation updates,
degraded results and the secondary queries, against the in-memory store.

Run: pytest test_fraud_engine.py   (or: python test_fraud_engine.py)
"""

import asyncio
import sys
sys.path.insert(0, '.')

import pytest

from kawach.fraud_rules import (
    FraudRulesEngine, LiteralMatcher, RegexMatcher, RiskLevel, SignalType,
    compile_pattern, is_fraud_score, risk_level_for_score,
)
from kawach.risk_engine import FraudDetectionEngine
from kawach.seed_data import SEED_PATTERNS, seed_fraud_database
from kawach.store import FraudPattern, FraudStore, InMemoryFraudStore, SuspiciousNumber

# Plain Indian mobile: no suspicious prefix, normal length, no dominant digit
CLEAN_NUMBER = "+919876543210"


def make_engine(store=None):
    store = store or InMemoryFraudStore()
    return FraudDetectionEngine(store), store


def run(coro):
    return asyncio.run(coro)


def signal_types(result):
    return [p["type"] for p in result.detectedPatterns]


class BrokenStore(InMemoryFraudStore):
    async def find_suspicious_number(self, phone_number, active_only=True):
        raise ConnectionError("store unavailable")

    async def save_suspicious_number(self, record):
        raise ConnectionError("store unavailable")


class UnloggableStore(InMemoryFraudStore):
    async def append_detection_log(self, record):
        raise ConnectionError("log collection unavailable")


# ==============================================================================
# SCORE BANDS
# ==============================================================================

def test_score_to_level_bands():
    for tenth in range(0, 1001):
        score = tenth / 10
        level = risk_level_for_score(score)
        if score >= 80:
            assert level == RiskLevel.CRITICAL
        elif score >= 60:
            assert level == RiskLevel.HIGH
        elif score >= 40:
            assert level == RiskLevel.MEDIUM
        else:
            assert level == RiskLevel.LOW


def test_fraud_flag_threshold():
    for tenth in range(0, 1001):
        score = tenth / 10
        assert is_fraud_score(score) == (score >= 50)

    # Medium band is split by the fraud flag
    assert risk_level_for_score(45) == RiskLevel.MEDIUM and not is_fraud_score(45)
    assert risk_level_for_score(50) == RiskLevel.MEDIUM and is_fraud_score(50)


# ==============================================================================
# END-TO-END SCENARIOS
# ==============================================================================

def test_nigerian_number_without_content():
    engine, _ = make_engine()
    result = run(engine.detect_fraud({
        "phoneNumber": "+23412345678",
        "content": "",
        "type": "phone_call",
        "userId": "u1",
    }))

    assert signal_types(result) == ["suspicious_phone_pattern"]
    assert result.detectedPatterns[0]["score"] == 20
    assert result.riskScore == 20
    assert result.riskLevel == RiskLevel.LOW
    assert result.isFraud is False


def test_lottery_text_with_short_link():
    engine, _ = make_engine()
    result = run(engine.detect_fraud({
        "phoneNumber": CLEAN_NUMBER,
        "content": "congratulations you have won! visit http://bit.ly/xyz",
        "type": "sms",
        "userId": "u1",
    }))

    types = signal_types(result)
    assert "phishing_url" in types
    assert "financial_fraud_keyword" in types
    # Phishing patterns are evaluated before financial keywords
    assert types.index("phishing_url") < types.index("financial_fraud_keyword")

    keyword = next(p for p in result.detectedPatterns if p["type"] == "financial_fraud_keyword")
    link = next(p for p in result.detectedPatterns if p["type"] == "phishing_url")
    assert keyword["score"] == 25
    assert link["score"] == 30
    assert result.riskScore >= 55
    assert result.isFraud is True
    assert "DO NOT CLICK" in result.alertMessage
    assert "NEVER share OTP/PIN" in result.alertMessage


def test_three_reports_for_a_new_number():
    engine, store = make_engine()
    phone = "+919811122233"

    expected = [(1, 60), (2, 65), (3, 65 + 10 / 3)]
    for count, score in expected:
        result = run(engine.report_fraud_number(phone, "phishing", "reporter", reason="scam call"))
        assert result.success is True
        record = store.suspicious_numbers[phone]
        assert record.report_count == count
        assert record.reputation_score == pytest.approx(score)
        assert len(record.reported_by) == count

    assert store.suspicious_numbers[phone].reputation_score == pytest.approx(68.33, abs=0.01)


def test_trusted_number_with_bad_reputation():
    engine, store = make_engine()
    phone = "+15551234567"
    store.suspicious_numbers[phone] = SuspiciousNumber(
        phone_number=phone, country_code="+1", reputation_score=90, report_count=9,
    )
    run(engine.add_trusted_number("u1", phone, "Uncle Sam", "family"))

    score, signals, trusted = run(engine.score_number_reputation(phone, "u1"))
    assert trusted is True
    assert score == pytest.approx(9)
    assert signals[0].signal_type == SignalType.SUSPICIOUS_NUMBER

    result = run(engine.detect_fraud({"phoneNumber": phone, "type": "phone_call", "userId": "u1"}))
    # +1 followed by ten digits also trips the US prefix rule (+20), after dampening
    assert result.riskScore == pytest.approx(29)
    assert result.riskLevel == RiskLevel.LOW
    assert result.isFraud is False


# ==============================================================================
# PROPERTIES
# ==============================================================================

def test_trust_dampens_reputation_contribution():
    engine, store = make_engine()
    for reputation in (0, 1, 50, 90, 100):
        phone = f"+9198{reputation:08d}"
        store.suspicious_numbers[phone] = SuspiciousNumber(
            phone_number=phone, country_code="+91", reputation_score=reputation,
        )
        untrusted, _, _ = run(engine.score_number_reputation(phone, "u2"))
        run(engine.add_trusted_number("u1", phone))
        trusted, _, _ = run(engine.score_number_reputation(phone, "u1"))

        assert trusted <= untrusted
        if untrusted > 0:
            assert trusted < untrusted


def test_trust_does_not_dampen_later_signals():
    engine, _ = make_engine()
    run(engine.add_trusted_number("u1", CLEAN_NUMBER, category="bank"))
    content = "Send OTP now, update KYC at http://bit.ly/kyc"

    trusted = run(engine.detect_fraud({"phoneNumber": CLEAN_NUMBER, "type": "sms", "content": content, "userId": "u1"}))
    stranger = run(engine.detect_fraud({"phoneNumber": CLEAN_NUMBER, "type": "sms", "content": content, "userId": "u2"}))

    assert trusted.riskScore == stranger.riskScore
    assert trusted.isFraud is True


def test_reputation_is_monotonic_and_bounded():
    engine, store = make_engine()
    phone = "+919800000001"
    last_count, last_score = 0, 0
    for _ in range(40):
        run(engine.report_fraud_number(phone, ["spam"], "reporter"))
        record = store.suspicious_numbers[phone]
        assert record.report_count > last_count
        assert record.reputation_score >= last_score
        assert record.reputation_score <= 100
        last_count, last_score = record.report_count, record.reputation_score


def test_reputation_clamped_at_100():
    engine, store = make_engine()
    phone = "+919800000002"
    store.suspicious_numbers[phone] = SuspiciousNumber(
        phone_number=phone, country_code="+91", reputation_score=99, report_count=1,
    )
    run(engine.report_fraud_number(phone, "spam", "reporter"))
    record = store.suspicious_numbers[phone]
    assert record.reputation_score == 100
    assert record.risk_level == "critical"


def test_first_report_metadata():
    engine, store = make_engine()
    run(engine.report_fraud_number("+919811100000", ["phishing", "spam"], "r1", "otp request", "screenshot"))
    run(engine.report_fraud_number("+447700900123", "lottery", "r1"))

    indian = store.suspicious_numbers["+919811100000"]
    assert indian.country_code == "+91"
    assert indian.fraud_type == ["phishing", "spam"]
    assert indian.risk_level == "medium"
    assert indian.reported_by[0].evidence == "screenshot"
    assert store.suspicious_numbers["+447700900123"].country_code == "unknown"


def test_detection_score_is_capped():
    engine, _ = make_engine()
    run(engine.report_fraud_number("55555", "spam", "r1"))
    content = (
        "URGENT!!! bit.ly/a tinyurl.com/b goo.gl/c click here urgent verify account immediately "
        "send otp share your pin update kyc lottery winner claim your prize 1234 5678 9012"
    )
    result = run(engine.detect_fraud({"phoneNumber": "55555", "type": "sms", "content": content}))

    assert result.riskScore == 100
    assert result.riskLevel == RiskLevel.CRITICAL
    assert result.recommendedAction.action == "BLOCK_IMMEDIATELY"


# ==============================================================================
# RULES
# ==============================================================================

def test_content_contribution_capped_at_100():
    engine, _ = make_engine()
    engine.fraud_patterns = []
    score, signals = engine.analyze_content(
        "bit.ly/a tinyurl.com/b t.co/c goo.gl/d ow.ly/e send otp share your pin"
    )
    assert len(signals) == 7
    assert score == 100


def test_heuristic_terms_count_once():
    rules = FraudRulesEngine()
    assert rules.heuristic_score("urgent urgent urgent") == 5
    assert rules.heuristic_score("urgent payment, verify") == 5 + 3 + 4
    assert rules.heuristic_score("URGENT!!!") == 5 + 15 + 10
    assert rules.heuristic_score("") == 0
    assert rules.heuristic_score("ab cd " * 50) == 0


def test_heuristic_capped_at_50():
    rules = FraudRulesEngine()
    text = (
        "urgent immediate asap expire suspend block deadline "
        "money cash rupees dollars payment transfer account bank "
        "click here download install verify confirm update"
    )
    assert rules.heuristic_score(text) == 50


def test_phone_structure_signals():
    rules = FraudRulesEngine()

    def types(phone):
        return [s.signal_type for s in rules.analyze_phone_pattern(phone)]

    assert types(CLEAN_NUMBER) == []
    assert types("1401234") == [SignalType.SUSPICIOUS_PHONE_PATTERN]
    assert types("56789") == [SignalType.SUSPICIOUS_PHONE_PATTERN, SignalType.UNUSUAL_NUMBER_LENGTH]
    assert types("123") == [SignalType.UNUSUAL_NUMBER_LENGTH]
    assert types("+9199999999") == [SignalType.REPEATED_DIGITS]
    # Only the first matching prefix counts
    assert sum(s.score for s in rules.analyze_phone_pattern("+447123456789")) == 20


def test_pattern_compiled_once_as_regex_or_literal():
    good = compile_pattern(FraudPattern(
        pattern_id="p1", pattern_type="text", pattern="send your otp",
        regex=r"send\s+your\s+otp", description="", risk_level="critical", accuracy=0.98,
    ))
    bad = compile_pattern(FraudPattern(
        pattern_id="p2", pattern_type="text", pattern="Free Gift",
        regex="free gift(((", description="", risk_level="low",
    ))

    assert isinstance(good.matcher, RegexMatcher)
    assert good.matcher.matches("Please SEND   your OTP")
    assert good.score == 60
    assert good.matcher.confidence == pytest.approx(98)

    assert isinstance(bad.matcher, LiteralMatcher)
    assert bad.matcher.matches("you get a FREE GIFT today")
    assert bad.score == 10


def test_registry_patterns_contribute_by_level():
    store = InMemoryFraudStore()
    run(store.save_pattern(FraudPattern(
        pattern_id="p1", pattern_type="text", pattern="scratch card", description="",
        risk_level="medium",
    )))
    run(store.save_pattern(FraudPattern(
        pattern_id="p2", pattern_type="text", pattern="gift[", regex="gift[",
        description="", risk_level="high",
    )))
    engine, _ = make_engine(store)
    assert run(engine.initialize()) == 2

    score, signals = engine.analyze_content("your scratch card gift[ is ready")
    by_id = {s.details["patternId"]: s for s in signals}
    assert by_id["p1"].signal_type == SignalType.DATABASE_PATTERN
    assert by_id["p1"].score == 25
    assert by_id["p2"].signal_type == SignalType.KEYWORD_MATCH
    assert by_id["p2"].score == 40
    assert score >= 65


def test_seeded_registry():
    store = InMemoryFraudStore()
    counts = run(seed_fraud_database(store))
    engine, _ = make_engine(store)

    assert counts["patterns"] == run(engine.initialize()) == len(SEED_PATTERNS)

    result = run(engine.detect_fraud({
        "phoneNumber": "+1234567890",
        "type": "whatsapp_message",
        "content": "Your account has been suspended",
    }))
    known = next(p for p in result.detectedPatterns if p["type"] == "suspicious_number")
    assert known["confidence"] == 100
    assert known["details"]["reportCount"] == 25
    assert "database_pattern" in signal_types(result)
    assert result.riskLevel == RiskLevel.CRITICAL
    assert "reported for fraud by other users" in result.alertMessage


def test_inactive_reputation_is_ignored():
    engine, store = make_engine()
    store.suspicious_numbers[CLEAN_NUMBER] = SuspiciousNumber(
        phone_number=CLEAN_NUMBER, country_code="+91", reputation_score=95, is_active=False,
    )
    result = run(engine.detect_fraud({"phoneNumber": CLEAN_NUMBER, "type": "phone_call"}))
    assert result.riskScore == 0
    assert result.riskLevel == RiskLevel.LOW


# ==============================================================================
# FAILURE HANDLING
# ==============================================================================

def test_store_failure_degrades_detection():
    engine, _ = make_engine(BrokenStore())
    result = run(engine.detect_fraud({
        "phoneNumber": "+23412345678", "type": "sms", "content": "send otp now",
    }))

    assert result.isFraud is False
    assert result.riskScore == 0
    assert result.riskLevel == RiskLevel.LOW
    assert result.error == "Detection failed"
    assert result.detectedPatterns == []


def test_malformed_request_degrades_detection():
    engine, _ = make_engine()
    for raw in (
        {"phoneNumber": CLEAN_NUMBER, "type": "fax"},
        {"type": "sms", "content": "hello"},
    ):
        result = run(engine.detect_fraud(raw))
        assert result.isFraud is False
        assert result.riskScore == 0
        assert result.error == "Detection failed"


def test_store_interface_requires_every_operation():
    class PartialStore(FraudStore):
        async def find_suspicious_number(self, phone_number, active_only=True):
            return None

    with pytest.raises(TypeError):
        PartialStore()
    InMemoryFraudStore()


def test_log_failure_keeps_result():
    engine, _ = make_engine(UnloggableStore())
    result = run(engine.detect_fraud({"phoneNumber": "+23412345678", "type": "phone_call"}))
    assert result.riskScore == 20
    assert result.logId is None
    assert result.error is None


def test_report_failure_is_explicit():
    engine, _ = make_engine(BrokenStore())
    result = run(engine.report_fraud_number("+919800000003", "spam", "r1"))
    assert result.success is False
    assert "store unavailable" in result.error


def test_trusted_number_rules():
    engine, _ = make_engine()
    assert run(engine.add_trusted_number("u1", CLEAN_NUMBER, "Mum", "family")).success is True

    duplicate = run(engine.add_trusted_number("u1", CLEAN_NUMBER))
    assert duplicate.success is False
    assert "already trusted" in duplicate.error

    bad_category = run(engine.add_trusted_number("u1", "+919800000004", category="enemy"))
    assert bad_category.success is False

    # Another user may trust the same number
    assert run(engine.add_trusted_number("u2", CLEAN_NUMBER)).success is True

    records = run(engine.list_trusted_numbers("u1"))
    assert [r.phone_number for r in records] == [CLEAN_NUMBER]
    assert run(engine.remove_trusted_number("u2", records[0].id)).success is False
    assert run(engine.remove_trusted_number("u1", records[0].id)).success is True
    assert run(engine.list_trusted_numbers("u1")) == []


# ==============================================================================
# LOGS AND QUERIES
# ==============================================================================

def test_detection_is_logged_and_response_recorded():
    engine, store = make_engine()
    result = run(engine.detect_fraud({
        "phoneNumber": "+23412345678", "type": "sms", "content": "hello", "userId": "u1",
        "metadata": {"app": "android"},
    }))
    log = store.detection_logs[result.logId]
    assert log.user_id == "u1"
    assert log.risk_score == result.riskScore
    assert log.metadata == {"app": "android"}
    assert log.user_response == "ignored"

    assert run(engine.record_user_response(result.logId, "u1", "confirmed_fraud")).success is True
    assert store.detection_logs[result.logId].user_response == "confirmed_fraud"
    assert store.detection_logs[result.logId].response_timestamp is not None

    assert run(engine.record_user_response(result.logId, "u2", "marked_safe")).success is False
    invalid = run(engine.record_user_response(result.logId, "u1", "shrug"))
    assert invalid.error == "Invalid user response"


def test_history_statistics_and_lookup():
    engine, _ = make_engine()
    run(engine.detect_fraud({"phoneNumber": "+23412345678", "type": "phone_call", "userId": "u1"}))
    run(engine.detect_fraud({"phoneNumber": CLEAN_NUMBER, "type": "sms", "userId": "u1",
                             "content": "congratulations you have won, claim your prize at bit.ly/win"}))
    run(engine.detect_fraud({"phoneNumber": CLEAN_NUMBER, "type": "sms", "userId": "u1"}))
    run(engine.detect_fraud({"phoneNumber": CLEAN_NUMBER, "type": "sms", "userId": "u9"}))

    history = run(engine.detection_history("u1", page=1, limit=2))
    assert history["pagination"] == {"current": 1, "pages": 2, "total": 3}
    assert len(history["detectionLogs"]) == 2
    sms_only = run(engine.detection_history("u1", detection_type="sms"))
    assert sms_only["pagination"]["total"] == 2

    stats = run(engine.statistics("u1"))
    assert stats["totalDetections"] == 3
    assert stats["fraudDetections"] == 1
    assert stats["fraudDetectionRate"] == pytest.approx(33.33)
    assert {"type": "phone_call", "count": 1} in stats["detectionByType"]
    assert len(stats["recentHighRisk"]) == 1

    run(engine.report_fraud_number("+23412345678", "romance_scam", "u1"))
    lookup = run(engine.check_number("+23412345678", "u1"))
    assert lookup["isSuspicious"] is True
    assert lookup["isTrusted"] is False
    assert lookup["suspiciousDetails"]["reputationScore"] == 60


def test_bulk_detection():
    engine, _ = make_engine()
    results = run(engine.detect_bulk([
        {"id": "a", "phoneNumber": "+23412345678", "type": "phone_call"},
        {"id": "b", "type": "sms"},
        {"phoneNumber": CLEAN_NUMBER, "type": "carrier_pigeon"},
    ], "u1"))

    assert results[0]["id"] == "a" and results[0]["riskScore"] == 20
    assert results[1]["id"] == "b" and results[1]["isFraud"] is False and "error" in results[1]
    assert results[2]["id"] == 2 and "error" in results[2]


def test_reload_picks_up_new_patterns():
    engine, store = make_engine()
    assert run(engine.initialize()) == 0
    run(store.save_pattern(FraudPattern(
        pattern_id="new", pattern_type="text", pattern="parcel on hold", description="",
    )))
    assert engine.analyze_content("your parcel on hold")[1] == []
    assert run(engine.reload_patterns()) == 1
    assert len(engine.analyze_content("your parcel on hold")[1]) == 1

    listed = run(engine.list_patterns())
    assert listed[0]["id"] == "new"


if __name__ == "__main__":
    print("=" * 70)
    print("FRAUD DETECTION ENGINE TESTS")
    print("=" * 70)
    tests = [(name, fn) for name, fn in globals().items() if name.startswith("test_")]
    for name, fn in tests:
        fn()
        print(f"✅ {name}")
    print(f"\n🎉 {len(tests)} engine tests passed")
