from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.exc import SQLAlchemyError

from rideprobe.core.exceptions.exceptions import DatabaseConnectionError
from rideprobe.schemas.probe import Credentials
from rideprobe.utils.log import app_logger


def build_url(address: str, credentials: Optional[Credentials] = None):
    """parse `address`, overriding user/password with `credentials` when given"""
    url = make_url(address)
    if credentials is not None:
        if credentials.username:
            url = url.set(username=credentials.username)
        if credentials.password:
            url = url.set(password=credentials.password)
    return url


def display_address(address: str) -> str:
    """connection address with the password hidden, for reports and logs"""
    try:
        return make_url(address).render_as_string(hide_password=True)
    except SQLAlchemyError:
        return "<invalid address>"


@contextmanager
def open_connection(address: str, credentials: Optional[Credentials] = None) -> Iterator[Connection]:
    """
    opens a single read connection to `address`.
    the connection is closed and the engine disposed on exit, also on errors.
    """
    shown = display_address(address)
    try:
        # one engine per address, disposed on exit
        engine = create_engine(build_url(address, credentials), pool_pre_ping=True, echo=False)
    except (SQLAlchemyError, ImportError) as e:
        app_logger.error("db.invalid_address", address=shown, error=str(e))
        raise DatabaseConnectionError(shown, str(e)) from e

    try:
        try:
            connection = engine.connect()
        except SQLAlchemyError as e:
            app_logger.error("db.connect_failed", address=shown, exc_type=type(e).__name__, error=str(e))
            raise DatabaseConnectionError(shown, str(getattr(e, 'orig', None) or e)) from e

        app_logger.info("db.connected", address=shown)
        try:
            yield connection
        finally:
            connection.close()
            app_logger.debug("db.closed", address=shown)
    finally:
        engine.dispose()
