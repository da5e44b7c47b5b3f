import sys
import time
from typing import Any, Dict, Optional

from rideprobe.config.settings import settings
from rideprobe.jobs.console import report, run_probe
from rideprobe.schemas.probe import Credentials, ProbeKind, ProbeRequest
from rideprobe.services.probe_runner import ProbeRunner


def _auth_request(name: str, path: str, body: Dict[str, str], base_url: Optional[str] = None) -> ProbeRequest:
    credentials = Credentials(token=settings.API_TOKEN) if settings.API_TOKEN else None
    return ProbeRequest(
        kind=ProbeKind.HTTP_CALL,
        name=name,
        targets=base_url or settings.API_BASE_URL,
        method="POST",
        path=path,
        payload=body,
        credentials=credentials,
    )


def registration_body(timestamp: Optional[int] = None) -> Dict[str, str]:
    """a fresh rider: email and phone derived from the current time so reruns don't collide"""
    ts = timestamp if timestamp is not None else int(time.time() * 1000)
    return {
        "name": "Test User",
        "email": f"test{ts}@example.com",
        "password": settings.PROBE_PASSWORD,
        "phone": str(ts)[-10:],
        "role": "rider",
    }


def register_request(body: Optional[Dict[str, str]] = None, base_url: Optional[str] = None) -> ProbeRequest:
    return _auth_request("register", "/auth/register", body or registration_body(), base_url)


def resend_otp_request(email: Optional[str] = None, base_url: Optional[str] = None) -> ProbeRequest:
    return _auth_request("resend-otp", "/auth/resend-otp", {"email": email or settings.PROBE_EMAIL}, base_url)


def verify_otp_request(email: Optional[str] = None, otp: Optional[str] = None,
                       base_url: Optional[str] = None) -> ProbeRequest:
    body = {"email": email or settings.PROBE_EMAIL, "otp": otp or settings.PROBE_OTP}
    return _auth_request("verify-otp", "/auth/verify-otp", body, base_url)


def login_body(identifier: Optional[str] = None, password: Optional[str] = None) -> Dict[str, str]:
    """log in by email when the identifier has an @, by phone otherwise"""
    identifier = identifier or settings.PROBE_EMAIL
    body = {"password": password or settings.PROBE_PASSWORD}
    body["email" if "@" in identifier else "phone"] = identifier
    return body


def login_request(identifier: Optional[str] = None, password: Optional[str] = None,
                  base_url: Optional[str] = None) -> ProbeRequest:
    return _auth_request("login", "/auth/login", login_body(identifier, password), base_url)


def session_token(body: Any) -> Optional[str]:
    """the bearer token of a login response, top level or under `data`"""
    if not isinstance(body, dict):
        return None
    data = body.get("data")
    return body.get("token") or (data.get("token") if isinstance(data, dict) else None)


def drivers_request(token: str, base_url: Optional[str] = None) -> ProbeRequest:
    return ProbeRequest(
        kind=ProbeKind.HTTP_CALL,
        name="list-drivers",
        targets=base_url or settings.API_BASE_URL,
        method="GET",
        path="/users/drivers",
        credentials=Credentials(token=token),
    )


def list_drivers(runner: Optional[ProbeRunner] = None, base_url: Optional[str] = None) -> int:
    """log in, then list the online drivers with the session's bearer token"""
    runner = runner or ProbeRunner()
    login = runner.run(login_request(base_url=base_url))
    code = report(login)
    if code != 0:
        return code
    token = session_token(login.raw)
    if not token:
        print("Error: login response carried no token", file=sys.stderr)
        return 1
    return report(runner.run(drivers_request(token, base_url)))


def register_main():
    code = run_probe(register_request())
    if code == 0:
        print("\nCheck the backend console for the OTP to verify this user.")
    sys.exit(code)


def resend_otp_main():
    sys.exit(run_probe(resend_otp_request()))


def verify_otp_main():
    sys.exit(run_probe(verify_otp_request()))


def login_main():
    sys.exit(run_probe(login_request()))


def list_drivers_main():
    sys.exit(list_drivers())


if __name__ == "__main__":
    # quick runner for manual execution
    register_main()
