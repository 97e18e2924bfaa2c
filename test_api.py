"""
API TESTS
Fraud and vault routes through FastAPI's TestClient, one fresh app per test.

Run: pytest test_api.py   (or: python test_api.py)
"""

import sys
import tempfile
sys.path.insert(0, '.')

from fastapi.testclient import TestClient

from kawach.auth import API_KEY
from kawach.ledger import EvidenceLedger
from kawach.main import create_app

PDF = ("complaint.pdf", b"%PDF-1.4 police complaint copy", "application/pdf")


def headers(user_id="u1"):
    return {"x-api-key": API_KEY, "x-user-id": user_id}


def make_client(difficulty=1, max_nonce=None, seed=False):
    app = create_app(
        ledger=EvidenceLedger(difficulty=difficulty, max_nonce=max_nonce),
        seed=seed,
        upload_dir=tempfile.mkdtemp(),
    )
    return TestClient(app)


# ==============================================================================
# AUTH / HEALTH
# ==============================================================================

def test_health_needs_no_key():
    with make_client() as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_wrong_api_key_rejected():
    with make_client() as client:
        response = client.get("/fraud/statistics", headers={"x-api-key": "nope", "x-user-id": "u1"})
    assert response.status_code == 403


# ==============================================================================
# FRAUD ROUTES
# ==============================================================================

def test_detect_validation():
    with make_client() as client:
        missing = client.post("/fraud/detect", json={"phoneNumber": "+23412345678"}, headers=headers())
        invalid = client.post("/fraud/detect", json={"phoneNumber": "+23412345678", "type": "fax"}, headers=headers())
    assert missing.status_code == 400
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid detection type"


def test_detect_and_respond():
    with make_client() as client:
        response = client.post("/fraud/detect", json={
            "phoneNumber": "+919876543210",
            "type": "sms",
            "content": "congratulations you have won! visit http://bit.ly/xyz",
        }, headers=headers())
        body = response.json()
        log_id = body["detection"]["logId"]

        answered = client.put(f"/fraud/detection-response/{log_id}",
                              json={"userResponse": "blocked_number"}, headers=headers())
        foreign = client.put(f"/fraud/detection-response/{log_id}",
                             json={"userResponse": "blocked_number"}, headers=headers("u2"))
        invalid = client.put(f"/fraud/detection-response/{log_id}",
                             json={"userResponse": "maybe"}, headers=headers())
        history = client.get("/fraud/detection-history", headers=headers()).json()

    assert response.status_code == 200
    assert body["success"] is True
    assert body["message"] == "Fraud detected!"
    assert body["detection"]["isFraud"] is True
    assert body["detection"]["riskLevel"] == "medium"
    assert body["detection"]["recommendedAction"]["action"] == "BE_CAUTIOUS"
    assert answered.status_code == 200
    assert foreign.status_code == 404
    assert invalid.status_code == 400
    assert history["pagination"]["total"] == 1
    assert history["detectionLogs"][0]["userResponse"] == "blocked_number"


def test_report_then_check_number():
    with make_client() as client:
        bad = client.post("/fraud/report-number", json={"phoneNumber": "+919811122233"}, headers=headers())
        for _ in range(2):
            ok = client.post("/fraud/report-number", json={
                "phoneNumber": "+919811122233",
                "fraudType": "phishing",
                "reason": "asked for OTP",
            }, headers=headers())
        check = client.get("/fraud/check-number/+919811122233", headers=headers()).json()
        unknown = client.get("/fraud/check-number/+919800011122", headers=headers()).json()

    assert bad.status_code == 400
    assert ok.json()["success"] is True
    assert check["isSuspicious"] is True
    assert check["suspiciousDetails"]["reportCount"] == 2
    assert check["suspiciousDetails"]["reputationScore"] == 65
    assert check["suspiciousDetails"]["riskLevel"] == "high"
    assert unknown["isSuspicious"] is False
    assert unknown["suspiciousDetails"] is None


def test_trusted_numbers_lifecycle():
    with make_client() as client:
        added = client.post("/fraud/trusted-numbers",
                            json={"phoneNumber": "+919876543210", "name": "Mum", "category": "family"},
                            headers=headers())
        duplicate = client.post("/fraud/trusted-numbers",
                                json={"phoneNumber": "+919876543210"}, headers=headers())
        listed = client.get("/fraud/trusted-numbers", headers=headers()).json()["trustedNumbers"]
        check = client.get("/fraud/check-number/+919876543210", headers=headers()).json()
        removed = client.delete(f"/fraud/trusted-numbers/{listed[0]['id']}", headers=headers())
        again = client.delete(f"/fraud/trusted-numbers/{listed[0]['id']}", headers=headers())

    assert added.json()["success"] is True
    assert duplicate.json()["success"] is False
    assert [t["name"] for t in listed] == ["Mum"]
    assert check["isTrusted"] is True
    assert removed.status_code == 200
    assert again.status_code == 404


def test_bulk_and_statistics():
    with make_client() as client:
        empty = client.post("/fraud/detect-bulk", json={"items": []}, headers=headers())
        bulk = client.post("/fraud/detect-bulk", json={"items": [
            {"id": 1, "phoneNumber": "+23412345678", "type": "phone_call"},
            {"id": 2, "phoneNumber": "+919876543210", "type": "sms", "content": "send otp, share your pin"},
        ]}, headers=headers()).json()
        stats = client.get("/fraud/statistics", headers=headers()).json()["statistics"]

    assert empty.status_code == 400
    assert bulk["processedCount"] == 2
    assert [r["id"] for r in bulk["results"]] == [1, 2]
    assert bulk["results"][1]["isFraud"] is True
    assert stats["totalDetections"] == 2
    assert stats["fraudDetections"] == 1


def test_seeded_patterns_listed():
    with make_client(seed=True) as client:
        patterns = client.get("/fraud/fraud-patterns", headers=headers()).json()["patterns"]
        known = client.get("/fraud/check-number/+2341234567890", headers=headers()).json()

    assert len(patterns) == 17
    assert patterns[0]["accuracy"] >= patterns[-1]["accuracy"]
    assert known["suspiciousDetails"]["riskLevel"] == "critical"


# ==============================================================================
# VAULT ROUTES
# ==============================================================================

def test_upload_verify_download():
    with make_client() as client:
        uploaded = client.post("/vault/upload", files={"file": PDF},
                               data={"description": "FIR copy", "tags": "police, fir"},
                               headers=headers())
        evidence_id = uploaded.json()["evidence"]["evidenceId"]
        duplicate = client.post("/vault/upload", files={"file": PDF}, headers=headers())
        files = client.get("/vault/files", headers=headers()).json()
        verified = client.get(f"/vault/verify/{evidence_id}", headers=headers()).json()
        download = client.get(f"/vault/download/{evidence_id}", headers=headers())
        stranger = client.get(f"/vault/download/{evidence_id}", headers=headers("u2"))

    assert uploaded.status_code == 200
    assert uploaded.json()["evidence"]["blockIndex"] == 1
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"]["existingFile"]["evidenceId"] == evidence_id
    assert files["files"][0]["tags"] == ["police", "fir"]
    assert files["blockchainStats"]["evidenceBlockCount"] == 1
    assert verified["overallStatus"] == "verified"
    assert download.status_code == 200
    assert download.content == PDF[1]
    assert stranger.status_code == 404


def test_upload_rejects_disallowed_type():
    with make_client() as client:
        response = client.post("/vault/upload",
                               files={"file": ("a.zip", b"PK\x03\x04", "application/zip")},
                               headers=headers())
    assert response.status_code == 400


def test_download_blocked_when_chain_corrupted():
    with make_client() as client:
        evidence_id = client.post("/vault/upload", files={"file": PDF}, headers=headers()) \
            .json()["evidence"]["evidenceId"]
        client.app.state.ledger.chain[1].payload["userId"] = "intruder"

        download = client.get(f"/vault/download/{evidence_id}", headers=headers())
        verified = client.get(f"/vault/verify/{evidence_id}", headers=headers()).json()
        stats = client.get("/vault/stats", headers=headers()).json()["stats"]

    assert download.status_code == 409
    assert "integrity compromised" in download.json()["detail"]["message"]
    assert verified["overallStatus"] == "corrupted"
    assert stats["chainValid"] is False


def test_upload_mining_timeout_is_retriable():
    with make_client(difficulty=64, max_nonce=1) as client:
        response = client.post("/vault/upload", files={"file": PDF}, headers=headers())
        stats = client.get("/vault/stats", headers=headers()).json()["stats"]
    assert response.status_code == 503
    assert stats["totalBlocks"] == 1


def test_export_chain():
    with make_client() as client:
        client.post("/vault/upload", files={"file": PDF}, headers=headers())
        exported = client.get("/vault/export", headers=headers()).json()
    assert len(exported["chain"]) == 2
    assert exported["chain"][1]["previousHash"] == exported["chain"][0]["hash"]
    assert exported["stats"]["chainValid"] is True


if __name__ == "__main__":
    print("=" * 70)
    print("API TESTS")
    print("=" * 70)
    tests = [(name, fn) for name, fn in globals().items() if name.startswith("test_")]
    for name, fn in tests:
        fn()
        print(f"✅ {name}")
    print(f"\n🎉 {len(tests)} API tests passed")
