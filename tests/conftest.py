"""Shared fixtures: stubbed HTTP sessions and throwaway SQLite databases."""

import json
from typing import Any, Optional
from unittest.mock import Mock

import pytest
import requests
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, MetaData, String, Table, create_engine, insert

from rideprobe.clients.base_http_client import BaseHTTPClient


def make_response(status_code: int, body: Any = None, text: Optional[str] = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    if body is not None:
        response._content = json.dumps(body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (text or "").encode("utf-8")
    response.encoding = "utf-8"
    response.url = "http://stub.test/"
    return response


class HTTPStub:
    """client factory whose sessions answer with a canned response or error"""

    def __init__(self):
        self.response: Optional[requests.Response] = None
        self.error: Optional[Exception] = None
        self.clients = []
        self.calls = []

    def factory(self, **kwargs) -> BaseHTTPClient:
        session = requests.Session()
        session.request = Mock(return_value=self.response, side_effect=self.error)
        session.close = Mock()
        client = BaseHTTPClient(session=session, **kwargs)
        self.clients.append(client)
        self.calls.append(kwargs)
        return client

    @property
    def session(self) -> requests.Session:
        return self.clients[-1].session


@pytest.fixture
def http_stub():
    return HTTPStub()


metadata = MetaData()

users = Table(
    "users", metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String),
    Column("email", String),
    Column("phone", String),
    Column("password", String),
    Column("role", String),
    Column("driver_status", String),
    Column("is_verified", Boolean),
    Column("vehicle_info", JSON),
    Column("otp_code", String),
    Column("otp_expires_at", DateTime),
    Column("created_at", DateTime),
)

rides = Table(
    "rides", metadata,
    Column("id", Integer, primary_key=True),
    Column("status", String),
    Column("rider", Integer),
    Column("vehicle_type", String),
    Column("created_at", DateTime),
)

# the backend's own spelling: `_id` keys and camelCase columns
camel_metadata = MetaData()

Table(
    "users", camel_metadata,
    Column("_id", Integer, primary_key=True),
    Column("name", String),
    Column("email", String),
    Column("phone", String),
    Column("role", String),
    Column("driverStatus", String),
    Column("isVerified", Boolean),
    Column("otpCode", String),
    Column("otpExpiresAt", DateTime),
    Column("createdAt", DateTime),
)

Table(
    "rides", camel_metadata,
    Column("_id", Integer, primary_key=True),
    Column("status", String),
    Column("rider", Integer),
    Column("vehicleType", String),
)


class RideDatabase:
    def __init__(self, url: str, schema: MetaData = metadata):
        self.url = url
        self.schema = schema
        self.engine = create_engine(url)
        schema.create_all(self.engine)

    def add_users(self, *rows):
        with self.engine.begin() as conn:
            for row in rows:
                conn.execute(insert(self.schema.tables["users"]).values(**row))

    def add_rides(self, *rows):
        with self.engine.begin() as conn:
            for row in rows:
                conn.execute(insert(self.schema.tables["rides"]).values(**row))


@pytest.fixture
def make_db(tmp_path):
    created = []

    def _make(name: str = "rides.db", schema: MetaData = metadata) -> RideDatabase:
        db = RideDatabase(f"sqlite:///{tmp_path / name}", schema)
        created.append(db)
        return db

    yield _make
    for db in created:
        db.engine.dispose()


@pytest.fixture
def ride_db(make_db):
    return make_db()


@pytest.fixture
def camel_db(make_db):
    return make_db("camel.db", camel_metadata)
