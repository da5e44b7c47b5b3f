import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from rideprobe.config.settings import settings
from rideprobe.jobs.console import run_probe
from rideprobe.schemas.probe import CollectionQuery, ProbeKind, ProbeRequest


DRIVER_LINE = "- Name: {name}, Status: {driver_status}, ID: {id}"
DRIVER_DETAIL_LINE = (
    "Driver: {name} ({email}) | Status: {driver_status} | Vehicle Info: {vehicle_info} | Verified: {is_verified}"
)
USER_LINE = (
    "{name} | Email: {email} | Phone: {phone} | Role: {role} | Verified: {is_verified} | Created: {created_at} | ID: {id}"
)
OTP_LINE = "{name} ({email}) | OTP: {otp_code} | Expires: {otp_expires_at}"
UNVERIFIED_LINE = "{name} - {email} ({phone})"

RECENT_WINDOW = timedelta(hours=1)


def check_drivers_request(address: Optional[str] = None) -> ProbeRequest:
    """all registered drivers, then how many of them are online"""
    return ProbeRequest(
        kind=ProbeKind.DATABASE_QUERY,
        name="check-drivers",
        targets=address or settings.database_urls()[0],
        queries=[
            CollectionQuery(collection="users", filters={"role": "driver"}, label="drivers", template=DRIVER_LINE),
            CollectionQuery(
                collection="users",
                filters={"role": "driver", "driver_status": "online"},
                label="online drivers",
                count_only=True,
            ),
        ],
    )


def db_check_request(addresses: Optional[List[str]] = None) -> ProbeRequest:
    """pending rides with their rider, plus every driver, on each configured database"""
    return ProbeRequest(
        kind=ProbeKind.DATABASE_QUERY,
        name="db-check",
        targets=addresses or settings.database_urls(),
        queries=[
            CollectionQuery(
                collection="rides",
                filters={"status": "pending"},
                label="pending rides",
                populate={"rider": "users"},
            ),
            CollectionQuery(collection="users", filters={"role": "driver"}, label="drivers",
                            template=DRIVER_DETAIL_LINE),
        ],
    )


def check_users_request(address: Optional[str] = None) -> ProbeRequest:
    """every user without password hashes, then emails and phones registered more than once"""
    return ProbeRequest(
        kind=ProbeKind.DATABASE_QUERY,
        name="check-users",
        targets=address or settings.database_urls()[0],
        queries=[
            CollectionQuery(
                collection="users",
                label="users",
                template=USER_LINE,
                exclude=["password"],
                duplicates=["email", "phone"],
            ),
        ],
    )


def get_otp_request(address: Optional[str] = None, now: Optional[datetime] = None) -> ProbeRequest:
    """OTPs that haven't expired yet, then users who registered in the last hour and never verified"""
    now = now or datetime.now(timezone.utc)
    return ProbeRequest(
        kind=ProbeKind.DATABASE_QUERY,
        name="get-otp",
        targets=address or settings.database_urls()[0],
        queries=[
            CollectionQuery(
                collection="users",
                filters={"otp_code": {"exists": True}, "otp_expires_at": {"gt": now}},
                label="active OTPs",
                template=OTP_LINE,
                exclude=["password"],
            ),
            CollectionQuery(
                collection="users",
                filters={"is_verified": False, "created_at": {"gt": now - RECENT_WINDOW}},
                label="recent unverified users",
                template=UNVERIFIED_LINE,
                exclude=["password"],
            ),
        ],
    )


def check_drivers_main():
    sys.exit(run_probe(check_drivers_request()))


def db_check_main():
    sys.exit(run_probe(db_check_request()))


def check_users_main():
    sys.exit(run_probe(check_users_request()))


def get_otp_main():
    sys.exit(run_probe(get_otp_request()))


if __name__ == "__main__":
    # quick runner for manual execution
    db_check_main()
