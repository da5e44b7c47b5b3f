import io
from datetime import datetime, timedelta

import pytest

from conftest import make_response
from rideprobe.config.settings import settings
from rideprobe.jobs import auth_probes, db_probes, email_probes
from rideprobe.jobs.console import report, run_probe
from rideprobe.schemas.probe import ProbeErrorDetail, ProbeKind, ProbeResult, ProbeStatus
from rideprobe.services.probe_runner import ProbeRunner


def test_registration_body_is_derived_from_timestamp():
    body = auth_probes.registration_body(1700000000123)

    assert body["email"] == "test1700000000123@example.com"
    assert body["phone"] == "0000000123"
    assert body["role"] == "rider"
    assert body["name"] == "Test User"


def test_auth_requests_target_auth_paths():
    register = auth_probes.register_request(base_url="http://api.test/api")
    resend = auth_probes.resend_otp_request("x@y.com", base_url="http://api.test/api")
    verify = auth_probes.verify_otp_request("x@y.com", "000000", base_url="http://api.test/api")

    assert [r.path for r in (register, resend, verify)] == ["/auth/register", "/auth/resend-otp", "/auth/verify-otp"]
    assert all(r.kind == ProbeKind.HTTP_CALL and r.method == "POST" for r in (register, resend, verify))
    assert resend.payload == {"email": "x@y.com"}
    assert verify.payload == {"email": "x@y.com", "otp": "000000"}


def test_otp_probes_default_to_settings(monkeypatch):
    monkeypatch.setattr(settings, "PROBE_EMAIL", "rider@example.com")
    monkeypatch.setattr(settings, "PROBE_OTP", "123456")

    assert auth_probes.verify_otp_request().payload == {"email": "rider@example.com", "otp": "123456"}
    assert auth_probes.resend_otp_request().target == settings.API_BASE_URL


def test_db_check_uses_every_configured_address(monkeypatch):
    monkeypatch.setattr(settings, "DATABASE_URL", "sqlite:///a.db")
    monkeypatch.setattr(settings, "DATABASE_EXTRA_URLS", "sqlite:///b.db, sqlite:///c.db")

    request = db_probes.db_check_request()

    assert request.targets == ["sqlite:///a.db", "sqlite:///b.db", "sqlite:///c.db"]
    assert [q.collection for q in request.queries] == ["rides", "users"]
    assert request.queries[0].populate == {"rider": "users"}
    assert db_probes.check_drivers_request().targets == ["sqlite:///a.db"]


def test_check_drivers_end_to_end(ride_db, capsys):
    ride_db.add_users(
        {"id": 1, "name": "Asha", "role": "driver", "driver_status": "online"},
        {"id": 2, "name": "Ben", "role": "driver", "driver_status": "offline"},
    )

    code = run_probe(db_probes.check_drivers_request(ride_db.url))

    out = capsys.readouterr().out.splitlines()
    assert code == 0
    assert "--- DRIVERS: 2 ---" in out
    assert "- Name: Asha, Status: online, ID: 1" in out
    assert out[-1] == "Total online drivers: 1"


def test_send_test_email_request_defaults_to_self(monkeypatch):
    monkeypatch.setattr(settings, "EMAIL_USER", "probe@example.com")
    monkeypatch.setattr(settings, "EMAIL_PASS", "secret")
    monkeypatch.setattr(settings, "EMAIL_TEST_RECIPIENT", None)
    monkeypatch.setattr(settings, "EMAIL_FROM", None)

    request = email_probes.send_test_email_request()

    assert request.kind == ProbeKind.EMAIL_SEND
    assert request.payload["to"] == "probe@example.com"
    assert request.payload["from"] == "probe@example.com"
    assert request.credentials.username == "probe@example.com"
    assert request.target == f"smtp://{settings.EMAIL_HOST}:{settings.EMAIL_PORT}"


def test_report_success_exit_code():
    out, err = io.StringIO(), io.StringIO()

    code = report(ProbeResult(status=ProbeStatus.SUCCESS, lines=["a", "b"]), out=out, err=err)

    assert code == 0
    assert out.getvalue() == "a\nb\n"
    assert err.getvalue() == ""


def test_report_failure_prints_status_and_body():
    out, err = io.StringIO(), io.StringIO()
    result = ProbeResult(
        status=ProbeStatus.FAILURE,
        lines=["verify-otp failed: boom"],
        error=ProbeErrorDetail(kind="ApiError", message="boom", code=400, body={"message": "invalid otp"}),
    )

    code = report(result, out=out, err=err)

    assert code == 1
    assert "Status: 400" in err.getvalue()
    assert 'Data: {"message": "invalid otp"}' in err.getvalue()


def test_run_probe_failure_exit_code(http_stub, capsys):
    http_stub.response = make_response(400, {"message": "invalid otp"})
    runner = ProbeRunner(http_client_factory=http_stub.factory)

    code = run_probe(auth_probes.verify_otp_request("x@y.com", "000000", base_url="http://api.test/api"), runner)

    assert code == 1
    assert "Status: 400" in capsys.readouterr().err


def test_main_exits_with_probe_code(monkeypatch):
    monkeypatch.setattr(auth_probes, "run_probe", lambda request: 1)

    with pytest.raises(SystemExit) as exc:
        auth_probes.verify_otp_main()

    assert exc.value.code == 1


def test_check_drivers_on_camel_case_columns(camel_db, capsys):
    camel_db.add_users({"_id": 1, "name": "Asha", "role": "driver", "driverStatus": "online"})

    code = run_probe(db_probes.check_drivers_request(camel_db.url))

    out = capsys.readouterr().out.splitlines()
    assert code == 0
    assert "- Name: Asha, Status: online, ID: 1" in out
    assert out[-1] == "Total online drivers: 1"


def test_check_users_lists_users_and_duplicates(ride_db):
    ride_db.add_users(
        {"id": 1, "name": "Asha", "email": "asha@example.com", "phone": "555", "role": "rider", "password": "x"},
        {"id": 2, "name": "Ben", "email": "asha@example.com", "phone": "556", "role": "driver"},
    )

    result = ProbeRunner().run(db_probes.check_users_request(ride_db.url))

    assert result.ok
    assert (
        "Asha | Email: asha@example.com | Phone: 555 | Role: rider | Verified: Unknown | Created: Unknown | ID: 1"
        in result.lines
    )
    assert result.lines[-3:] == ["Duplicate emails:", "  asha@example.com: 2 times", "Duplicate phones:"]
    assert "password" not in result.raw[0]["collections"]["users"][0]


def test_get_otp_shows_active_codes_and_recent_unverified_users(ride_db):
    now = datetime(2026, 10, 19, 12, 0)
    ride_db.add_users(
        {"name": "Asha", "email": "asha@example.com", "otp_code": "482913",
         "otp_expires_at": now + timedelta(minutes=10), "is_verified": False, "phone": "555",
         "created_at": now - timedelta(minutes=2)},
        {"name": "Ben", "email": "ben@example.com", "otp_code": "111111",
         "otp_expires_at": now - timedelta(minutes=1), "is_verified": False, "phone": "556",
         "created_at": now - timedelta(hours=3)},
        {"name": "Cleo", "email": "cleo@example.com", "is_verified": True, "created_at": now},
    )

    result = ProbeRunner().run(db_probes.get_otp_request(ride_db.url, now=now))

    assert result.counts == {"active OTPs": 1, "recent unverified users": 1}
    assert any(line.startswith("Asha (asha@example.com) | OTP: 482913 | Expires: ") for line in result.lines)
    assert "Asha - asha@example.com (555)" in result.lines
    assert not any("111111" in line for line in result.lines)


def test_login_body_picks_email_or_phone(monkeypatch):
    monkeypatch.setattr(settings, "PROBE_PASSWORD", "pw")

    assert auth_probes.login_body("asha@example.com") == {"email": "asha@example.com", "password": "pw"}
    assert auth_probes.login_body("+1234567890", "other") == {"phone": "+1234567890", "password": "other"}


def test_login_request_posts_to_login_path():
    request = auth_probes.login_request("asha@example.com", "pw", base_url="http://api.test/api")

    assert request.path == "/auth/login"
    assert request.method == "POST"
    assert request.payload == {"email": "asha@example.com", "password": "pw"}


def test_session_token_locations():
    assert auth_probes.session_token({"token": "t1"}) == "t1"
    assert auth_probes.session_token({"success": True, "data": {"token": "t2"}}) == "t2"
    assert auth_probes.session_token({"success": False}) is None
    assert auth_probes.session_token("Unauthorized") is None


def test_list_drivers_uses_login_token(http_stub, capsys):
    http_stub.response = make_response(200, {"success": True, "data": {"token": "t2"}})
    runner = ProbeRunner(http_client_factory=http_stub.factory)

    code = auth_probes.list_drivers(runner, base_url="http://api.test/api")

    assert code == 0
    login, drivers = [client.session.request.call_args.kwargs for client in http_stub.clients]
    assert login["url"] == "http://api.test/api/auth/login"
    assert drivers["method"] == "GET"
    assert drivers["url"] == "http://api.test/api/users/drivers"
    assert http_stub.clients[1].session.headers["Authorization"] == "Bearer t2"


def test_list_drivers_stops_when_login_fails(http_stub, capsys):
    http_stub.response = make_response(401, {"message": "Invalid credentials"})
    runner = ProbeRunner(http_client_factory=http_stub.factory)

    code = auth_probes.list_drivers(runner, base_url="http://api.test/api")

    assert code == 1
    assert len(http_stub.clients) == 1


def test_report_prints_text_body_as_is():
    err = io.StringIO()
    result = ProbeResult(
        status=ProbeStatus.FAILURE,
        error=ProbeErrorDetail(kind="ApiError", message="boom", code=502, body="<html>Bad gateway</html>"),
    )

    report(result, out=io.StringIO(), err=err)

    assert "Data: <html>Bad gateway</html>" in err.getvalue()
