import json
from collections import Counter
from collections.abc import Hashable
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from sqlalchemy.engine import Connection

from rideprobe.clients.base_http_client import BaseHTTPClient
from rideprobe.config.settings import settings
from rideprobe.core.exceptions.exceptions import AppError, InvalidProbeRequestError
from rideprobe.schemas.probe import (
    CollectionQuery,
    ProbeErrorDetail,
    ProbeKind,
    ProbeRequest,
    ProbeResult,
    ProbeStatus,
)
from rideprobe.schemas.records import UNKNOWN, stored_names, to_record
from rideprobe.services.collection_service import CollectionService
from rideprobe.services.database import display_address, open_connection
from rideprobe.services.mailer import Mailer
from rideprobe.utils.log import app_logger, mask_secrets


DEFAULT_SMTP_PORT = 587


class _Report:
    def __init__(self):
        self.lines: List[str] = []
        self.counts: Dict[str, int] = {}

    def add(self, line: str) -> None:
        self.lines.append(line)


def error_detail(error: AppError) -> ProbeErrorDetail:
    """flatten a typed error into the result's error detail"""
    return ProbeErrorDetail(
        kind=type(error).__name__,
        message=getattr(error, "message", str(error)),
        code=getattr(error, "status_code", None),
        body=getattr(error, "body", None),
    )


def smtp_address(target: str) -> Tuple[str, int]:
    """`smtp://host:port` or `host:port` -> (host, port)"""
    try:
        parts = urlsplit(target if "://" in target else f"smtp://{target}")
        port = parts.port or DEFAULT_SMTP_PORT
    except ValueError as e:
        raise InvalidProbeRequestError(f"bad SMTP address '{target}'") from e
    if not parts.hostname:
        raise InvalidProbeRequestError(f"bad SMTP address '{target}'")
    return parts.hostname, port


class ProbeRunner:
    """Runs one ProbeRequest against its external system and reports the outcome.

    `run` never raises for connection, query, network, API or email failures:
    they come back as a `failure` ProbeResult carrying the error detail. There
    are no retries and the first failure ends the probe.
    """

    def __init__(
        self,
        http_client_factory: Callable[..., BaseHTTPClient] = BaseHTTPClient,
        mailer_factory: Callable[..., Mailer] = Mailer,
        http_timeout: Optional[float] = None,
        email_timeout: Optional[float] = None,
    ):
        self.http_client_factory = http_client_factory
        self.mailer_factory = mailer_factory
        self.http_timeout = http_timeout or settings.HTTP_TIMEOUT
        self.email_timeout = email_timeout or settings.EMAIL_TIMEOUT
        self._handlers = {
            ProbeKind.DATABASE_QUERY: self._run_database,
            ProbeKind.HTTP_CALL: self._run_http,
            ProbeKind.EMAIL_SEND: self._run_email,
        }

    def run(self, request: ProbeRequest) -> ProbeResult:
        report = _Report()
        app_logger.info("runner.start", probe=request.name, kind=request.kind.value,
                        targets=[mask_secrets(t) for t in request.targets])
        try:
            raw = self._handlers[request.kind](request, report)
        except AppError as e:
            detail = error_detail(e)
            app_logger.error("runner.failed", probe=request.name, error_kind=detail.kind,
                             error=detail.message, code=detail.code, body=detail.body)
            report.add(f"{request.name} failed: {detail.message}")
            return ProbeResult(status=ProbeStatus.FAILURE, lines=report.lines, error=detail, counts=report.counts)

        app_logger.info("runner.finished", probe=request.name, lines=len(report.lines))
        return ProbeResult(status=ProbeStatus.SUCCESS, lines=report.lines, raw=raw, counts=report.counts)

    # database-query

    @staticmethod
    def _fetch(connection: Connection, query: CollectionQuery) -> List[Dict[str, Any]]:
        records = CollectionService.fetch(connection, query.collection, query.filters)
        for record in records:
            for field in query.exclude:
                for name in stored_names(query.collection, field):
                    record.pop(name, None)

        for field, collection in query.populate.items():
            keys = [next((n for n in stored_names(query.collection, field) if n in r), field) for r in records]
            refs = CollectionService.fetch_by_ids(
                connection, collection, (r.get(k) for r, k in zip(records, keys) if isinstance(r.get(k), Hashable))
            )
            for record, key in zip(records, keys):
                ref = record.get(key)
                if isinstance(ref, Hashable) and ref in refs:
                    record[key] = refs[ref]
        return records

    @staticmethod
    def _report_duplicates(query: CollectionQuery, records: List[Dict[str, Any]], report: _Report) -> None:
        fields = [to_record(query.collection, row).report_fields() for row in records]
        for field in query.duplicates:
            seen = Counter(v for v in (f.get(field, UNKNOWN) for f in fields) if isinstance(v, Hashable))
            repeated = [(value, n) for value, n in seen.items() if n > 1 and value != UNKNOWN]
            report.counts[f"duplicate {field}s"] = report.counts.get(f"duplicate {field}s", 0) + len(repeated)
            report.add(f"Duplicate {field}s:")
            for value, n in repeated:
                report.add(f"  {value}: {n} times")

    def _run_database(self, request: ProbeRequest, report: _Report) -> List[Dict[str, Any]]:
        dumps = []
        # one connection at a time, released before the next address is opened
        for address in request.targets:
            shown = display_address(address)
            with open_connection(address, request.credentials) as connection:
                report.add(f"Connected to {shown}")
                dump = {"address": shown, "collections": {}}
                for query in request.queries:
                    records = self._fetch(connection, query)
                    label = query.display_label
                    report.counts[label] = report.counts.get(label, 0) + len(records)
                    dump["collections"][label] = records

                    if query.count_only:
                        report.add(f"Total {label}: {len(records)}")
                        continue

                    report.add(f"--- {label.upper()}: {len(records)} ---")
                    if not records:
                        report.add(f"No {label} found.")
                    for row in records:
                        report.add(to_record(query.collection, row).report_line(query.template))
                    if query.duplicates:
                        self._report_duplicates(query, records, report)
                dumps.append(dump)
        return dumps

    # http-call

    def _run_http(self, request: ProbeRequest, report: _Report) -> Any:
        creds = request.credentials
        auth = (creds.username, creds.password) if creds and creds.username and creds.password else None
        client = self.http_client_factory(
            base_url=request.target,
            token=creds.token if creds else None,
            auth=auth,
            timeout=self.http_timeout,
        )
        url = f"{request.target.rstrip('/')}/{request.path.lstrip('/')}" if request.path else request.target
        try:
            if request.method == "GET":
                status_code, body = client.request(request.method, request.path, params=request.payload or None)
            else:
                status_code, body = client.request(request.method, request.path, data=request.payload)
        finally:
            client.close()

        report.add(f"{request.method} {url} -> {status_code}")
        shown = body if isinstance(body, str) else json.dumps(body, default=str)
        report.add(f"Response: {shown}")
        return body

    # email-send

    def _run_email(self, request: ProbeRequest, report: _Report) -> Dict[str, str]:
        payload = request.payload
        missing = [k for k in ("to", "subject", "html") if not payload.get(k)]
        if missing:
            raise InvalidProbeRequestError(f"email payload is missing {', '.join(missing)}")

        host, port = smtp_address(request.target)
        creds = request.credentials
        mailer = self.mailer_factory(
            host=host,
            port=port,
            username=creds.username if creds else None,
            password=creds.password if creds else None,
            sender=payload.get("from"),
            timeout=self.email_timeout,
        )

        mailer.verify()
        report.add(f"SMTP server {host}:{port} is ready")

        message_id = mailer.send(payload["to"], payload["subject"], payload["html"], payload.get("text"))
        report.add(f"Email sent to {payload['to']}")
        report.add(f"Message ID: {message_id}")
        return {"message_id": message_id}
