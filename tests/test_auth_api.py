import pytest
from fastapi.testclient import TestClient

from directory_auth.config import Settings
from directory_auth.database import build_engine
from directory_auth.infrastructure.rate_limit.memory_attempt_tracker import InMemoryAttemptTracker
from directory_auth.infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from directory_auth.main import create_app

from fakes import FakeAuditLogger, FakeSmsSender

PHONE = "+15551234567"
API = "/api/auth"


def registration_body(**overrides):
    body = {
        "firstName": "Alice",
        "lastName": "Liddell",
        "username": "alice1",
        "phoneNumber": PHONE,
        "password": "longenough1",
        "role": "user",
        "avatar": "https://example.com/a.png",
    }
    body.update(overrides)
    return body


@pytest.fixture
def settings():
    return Settings(
        OTP_DEV_ECHO=True,
        BCRYPT_ROUNDS=4,
        DEFAULT_COUNTRY_CODE="+1",
        TWILIO_ACCOUNT_SID="",
        REDIS_URL=None,
    )


@pytest.fixture
def sms():
    return FakeSmsSender()


@pytest.fixture
def client(settings, clock, sms):
    engine = build_engine("sqlite://")
    app = create_app(
        settings=settings,
        engine=engine,
        clock=clock,
        rate_limiter=InMemoryRateLimiter(clock=clock),
        attempt_tracker=InMemoryAttemptTracker(clock=clock),
        sms_sender=sms,
        audit_logger=FakeAuditLogger(),
    )
    with TestClient(app) as client:
        yield client
    engine.dispose()


def send_and_verify(client, phone=PHONE):
    sent = client.post(f"{API}/send-otp", json={"phoneNumber": phone})
    assert sent.status_code == 200
    code = sent.json()["otp"]
    verified = client.post(f"{API}/verify-otp", json={"phoneNumber": phone, "otpCode": code})
    assert verified.status_code == 200
    return verified.json()


def test_register_session_logout_flow(client):
    verified = send_and_verify(client)
    assert verified == {"success": True, "verified": True, "message": "Phone number verified successfully"}

    available = client.post(f"{API}/check-username", json={"username": "alice1"})
    assert available.json() == {"available": True, "message": "Username available"}

    registered = client.post(f"{API}/register", json=registration_body())
    assert registered.status_code == 200
    body = registered.json()
    assert body["success"] is True
    assert body["user"]["username"] == "alice1"
    assert body["user"]["phoneVerified"] is True
    assert "passwordHash" not in body["user"]
    session_id = body["session"]["sessionId"]

    check = client.get(f"{API}/session", headers={"x-session-id": session_id})
    assert check.status_code == 200
    assert check.json()["valid"] is True
    assert check.json()["session"]["username"] == "alice1"

    logout = client.post(f"{API}/logout", headers={"x-session-id": session_id})
    assert logout.status_code == 200
    assert logout.json()["success"] is True

    after = client.get(f"{API}/session", headers={"x-session-id": session_id})
    assert after.status_code == 401
    assert after.json() == {"error": "Session is inactive"}


def test_login_sets_cookie_used_for_session_checks(client):
    send_and_verify(client)
    client.post(f"{API}/register", json=registration_body())
    client.cookies.clear()

    login = client.post(f"{API}/login", json={"username": "alice1", "password": "longenough1", "rememberMe": True})
    assert login.status_code == 200
    session_id = login.json()["session"]["sessionId"]
    assert client.cookies.get("sessionId") == session_id

    check = client.get(f"{API}/session")
    assert check.status_code == 200
    assert check.json()["session"]["rememberMe"] is True


def test_header_takes_precedence_over_cookie(client):
    send_and_verify(client)
    client.post(f"{API}/register", json=registration_body())
    check = client.get(f"{API}/session", headers={"x-session-id": "bogus"})
    assert check.status_code == 401
    assert check.json() == {"error": "Session not found"}


def test_send_otp_omits_code_without_echo(client, sms):
    client.app.state.policy = Settings(OTP_DEV_ECHO=False, DEFAULT_COUNTRY_CODE="+1").auth_policy()
    resp = client.post(f"{API}/send-otp", json={"phoneNumber": "5551234567"})
    assert resp.status_code == 200
    assert "otp" not in resp.json()
    assert sms.sent[-1][0] == PHONE


def test_missing_phone_number(client):
    resp = client.post(f"{API}/send-otp", json={})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Phone number is required"}


def test_snake_case_input_is_accepted(client):
    resp = client.post(f"{API}/send-otp", json={"phone_number": PHONE})
    assert resp.status_code == 200


def test_malformed_body(client):
    resp = client.post(f"{API}/login", content="{not json", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid request body"}

    wrong_type = client.post(f"{API}/send-otp", json={"phoneNumber": ["+15551234567"]})
    assert wrong_type.status_code == 400
    assert wrong_type.json() == {"error": "Invalid request body"}


def test_wrong_otp(client):
    client.post(f"{API}/send-otp", json={"phoneNumber": PHONE})
    resp = client.post(f"{API}/verify-otp", json={"phoneNumber": PHONE, "otpCode": "abcdef"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid OTP code"}


def test_register_without_verification_reports_remaining_attempts(client):
    resp = client.post(f"{API}/register", json=registration_body())
    assert resp.status_code == 400
    assert resp.json() == {
        "error": "Please verify your phone number with OTP first",
        "remainingAttempts": 4,
    }


def test_registration_lockout(client):
    for _ in range(4):
        assert client.post(f"{API}/register", json=registration_body()).status_code == 400
    locked = client.post(f"{API}/register", json=registration_body())
    assert locked.status_code == 423
    assert locked.json()["retryAfter"] == 900
    assert locked.headers["Retry-After"] == "900"


def test_login_errors(client):
    send_and_verify(client)
    client.post(f"{API}/register", json=registration_body())

    wrong = client.post(f"{API}/login", json={"username": "alice1", "password": "nottheone"})
    unknown = client.post(f"{API}/login", json={"username": "bob_2", "password": "nottheone"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {"error": "Invalid credentials"}


def test_session_requires_an_id(client):
    resp = client.get(f"{API}/session")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Session ID required"}


def test_logout_without_session_succeeds(client):
    resp = client.post(f"{API}/logout")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Logged out successfully"}


def test_otp_rate_limit(client):
    for _ in range(3):
        assert client.post(f"{API}/send-otp", json={"phoneNumber": PHONE}).status_code == 200
    limited = client.post(f"{API}/send-otp", json={"phoneNumber": PHONE})
    assert limited.status_code == 429
    assert limited.json()["retryAfter"] == 600
    assert limited.headers["Retry-After"] == "600"


def test_rate_limit_can_be_disabled(client, settings):
    settings.RATE_LIMIT_ENABLED = False
    for _ in range(5):
        assert client.post(f"{API}/send-otp", json={"phoneNumber": PHONE}).status_code == 200


def test_verify_otp_is_rate_limited(client, settings):
    settings.RATE_LIMIT_GENERAL = 2
    client.post(f"{API}/send-otp", json={"phoneNumber": PHONE})
    for _ in range(2):
        resp = client.post(f"{API}/verify-otp", json={"phoneNumber": PHONE, "otpCode": "000000"})
        assert resp.status_code == 400
    limited = client.post(f"{API}/verify-otp", json={"phoneNumber": PHONE, "otpCode": "000000"})
    assert limited.status_code == 429
    assert "retryAfter" in limited.json()


def test_error_body_is_documented(client):
    schema = client.get("/openapi.json").json()
    error_schema = schema["components"]["schemas"]["ErrorResponse"]
    assert set(error_schema["properties"]) == {"error", "retryAfter", "remainingAttempts"}

    login = schema["paths"][f"{API}/login"]["post"]["responses"]
    assert login["401"]["content"]["application/json"]["schema"]["$ref"] == "#/components/schemas/ErrorResponse"
    assert "429" in login


def test_health_and_security_headers(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_current_session_dependency_guards_other_routes(client):
    from fastapi import Depends

    from directory_auth.dependencies import get_current_session

    @client.app.get("/profile/location")
    def location(session=Depends(get_current_session)):
        return {"userId": session.user_id}

    assert client.get("/profile/location").status_code == 401

    send_and_verify(client)
    user_id = client.post(f"{API}/register", json=registration_body()).json()["user"]["userId"]
    resp = client.get("/profile/location")
    assert resp.status_code == 200
    assert resp.json() == {"userId": user_id}
