import json
import logging
import os
import queue
import threading
import time
import typing as t
from datetime import datetime, timezone

import boto3
from botocore.endpoint import is_valid_endpoint_url
from flask import Flask, Request, Response, g, request

from users_api.audit_logging.context import Context

logger = logging.getLogger(__name__)

REDACTED = "***"
NOT_JSON_BODY = "bodyNotJSON"


class Options:
    AUDITLOG_ENABLED = "AUDITLOG_ENABLED"
    AUDITLOG_S3_DIRECTORY = "AUDITLOG_S3_DIRECTORY"
    AUDITLOG_S3_REGION = "AUDITLOG_S3_REGION"
    AUDITLOG_S3_BUCKET = "AUDITLOG_S3_BUCKET"
    AUDITLOG_S3_ENDPOINT = "AUDITLOG_S3_ENDPOINT"

    @staticmethod
    def from_env():
        enabled = os.getenv(Options.AUDITLOG_ENABLED, "false").strip().lower() in ("1", "true", "yes", "on")
        s3_bucket = os.getenv(Options.AUDITLOG_S3_BUCKET, "users-audit-local")
        s3_directory = os.getenv(Options.AUDITLOG_S3_DIRECTORY, "users-api/")
        s3_region = os.getenv(Options.AUDITLOG_S3_REGION, "us-east-1")
        s3_endpoint = os.getenv(Options.AUDITLOG_S3_ENDPOINT, None)
        return Options(s3_bucket=s3_bucket, s3_directory=s3_directory, s3_region=s3_region,
                       s3_endpoint=s3_endpoint, enabled=enabled)

    def __init__(self, s3_bucket: str, s3_directory: str, s3_region: str,
                 s3_endpoint: str = None, enabled: bool = True,
                 redacted_fields: t.Iterable[str] = ("password",)):
        self.enabled = enabled
        self.bucket = s3_bucket
        self.directory = s3_directory
        self.region = s3_region
        self.endpoint = s3_endpoint
        self.redacted_fields = frozenset(redacted_fields)


def redact(value: t.Any, fields: t.FrozenSet[str]) -> t.Any:
    """
    Replace the value of every key named in `fields`, at any depth, so credentials never reach the audit bucket
    """
    if isinstance(value, dict):
        return {key: REDACTED if key in fields else redact(item, fields) for key, item in value.items()}
    if isinstance(value, list):
        return [redact(item, fields) for item in value]
    return value


class HTTPAuditLogger(threading.Thread):
    """
    Writes one JSON audit record for every inbound request and one for its response to an S3 bucket.
    `log_request` and `log_response` run in the request threads and only serialize and queue the
    record; a background thread does the S3 writes.
    """
    _RESERVED_FIELD_NAMES = {
        "identifier", "eventTimestamp", "host", "hostname", "method", "path", "query", "protocol", "headers", "body",
        "requestTimestamp", "requestHost", "requestHostname", "requestMethod", "requestPath", "status", "statusCode",
    }

    class Record:
        def __init__(self, key: str, content: str):
            self.key = key
            self.content = content

    @staticmethod
    def from_env() -> t.Optional["HTTPAuditLogger"]:
        opts = Options.from_env()
        if not opts.enabled:
            logger.info("Audit logging disabled")
            return None
        return HTTPAuditLogger(opts=opts)

    def __init__(self, opts: Options, s3_client=None) -> None:
        super(HTTPAuditLogger, self).__init__(daemon=True)

        if not opts.bucket:
            raise ValueError('s3_bucket not informed.')

        if not opts.directory:
            raise ValueError('s3_directory not informed.')

        if opts.endpoint:
            if not is_valid_endpoint_url(opts.endpoint):
                raise ValueError('s3_endpoint invalid.')

        if not opts.region:
            raise ValueError('s3_region not informed.')

        self.s3_bucket = opts.bucket
        self.s3_directory = opts.directory.rstrip("/")
        self.s3_endpoint = opts.endpoint
        self.s3_region = opts.region
        self.redacted_fields = opts.redacted_fields

        self.s3_client = s3_client or boto3.client('s3', region_name=self.s3_region, endpoint_url=self.s3_endpoint)

        self.queue = queue.Queue()
        self.end_event = threading.Event()

    def stop(self):
        self.end_event.set()
        self.join()

    def run(self):
        while not self.end_event.is_set() or not self.queue.empty():
            try:
                record = self.queue.get(timeout=0.1)
            except queue.Empty:
                continue

            self._do_s3_write(record)

    def init_app(self, app: Flask) -> None:
        """
        Audit every request handled by `app`, including the ones answered by error handlers
        """

        @app.before_request
        def _audit_request():
            g.audit_request_timestamp = _utc_now_str()
            self.log_request(req=request)

        @app.after_request
        def _audit_response(resp: Response) -> Response:
            self.log_response(req=request, resp=resp,
                              request_timestamp=g.get("audit_request_timestamp"))
            return resp

    def log_request(self, req: Request):
        audit_id = HTTPAuditLogger._make_audit_id(req, False)
        metadata = self._get_request_metadata(req)
        self._queue_record(audit_id, metadata)

    def log_response(self, req: Request, resp: Response, request_timestamp: t.Optional[str] = None):
        audit_id = HTTPAuditLogger._make_audit_id(req, True)
        metadata = self._get_response_metadata(req, resp, request_timestamp)
        self._queue_record(audit_id, metadata)

    def _queue_record(self, audit_id: str, data: dict):
        context = Context.from_request()
        if context is not None:
            for key, value in context.get_audit_log_top_level_fields().items():
                # context fields come from request headers and never replace the record metadata
                if key not in HTTPAuditLogger._RESERVED_FIELD_NAMES:
                    data[key] = value

        data["eventTimestamp"] = _utc_now_str()
        data["identifier"] = audit_id

        record = HTTPAuditLogger.Record(
            key=self._make_key(audit_id),
            content=json.dumps(data, default=str)
        )
        self.queue.put(record, block=False)

    def _do_s3_write(self, record: Record) -> None:
        """
        Save content to s3 bucket, should not be called in main thread
        """
        try:
            s3_put_response = self.s3_client.put_object(
                Bucket=self.s3_bucket,
                Key=record.key,
                Body=record.content,
                ContentType="application/json; charset=utf-8",
                ContentLength=len(record.content.encode("utf-8")),
                ServerSideEncryption="AES256",
                Metadata={}
            )

            if s3_put_response['ResponseMetadata']['HTTPStatusCode'] != 200:
                raise RuntimeError(f'Unable to put data to s3: {s3_put_response}')

            logger.debug("Wrote audit log. s3://%s/%s", self.s3_bucket, record.key)

        except Exception as err:
            # the writer thread must survive a failed upload
            logger.error(f"Error writing audit log. {str(err)}")

    def _make_key(self, audit_id: str) -> str:
        return f'{self.s3_directory}/{datetime.now(timezone.utc).strftime("%Y/%m/%d/%H/")}{audit_id}'

    def _get_request_metadata(self, req: Request) -> dict:
        metadata = {
            "host": req.host,
            "hostname": req.root_url,
            "method": req.method,
            "path": req.path,
            "protocol": req.environ.get('SERVER_PROTOCOL'),
            "query": req.query_string.decode("utf-8"),
            "headers": list(req.headers.keys()),
        }

        if req.content_length:
            metadata["body"] = self._body(req.get_data(cache=True))

        return metadata

    def _get_response_metadata(self, req: Request, response: Response, request_timestamp: t.Optional[str]) -> dict:
        metadata = {
            "requestHost": req.host,
            "requestHostname": req.root_url,
            "requestMethod": req.method,
            "requestPath": req.path,
            "protocol": req.environ.get('SERVER_PROTOCOL'),
            "status": response.status,
            "statusCode": response.status_code,
            "headers": list(response.headers.keys()),
        }
        if response.content_length and not response.direct_passthrough:
            metadata["body"] = self._body(response.get_data())

        if request_timestamp:
            metadata["requestTimestamp"] = request_timestamp

        return metadata

    def _body(self, body: bytes) -> t.Any:
        try:
            content = body.decode("utf-8")
        except UnicodeDecodeError:
            return "bodyReadError"

        try:
            return redact(json.loads(content), self.redacted_fields)
        except ValueError:
            # only JSON bodies can be redacted
            return NOT_JSON_BODY

    @staticmethod
    def _make_audit_id(req: Request, is_response: bool) -> str:
        """
        Unique id of an inbound audit record: path, method and direction plus a nanosecond timestamp
        """
        audit_id = "in{0}{1}{2}{3}".format(req.path, "" if req.path.endswith("/") else "/", req.method,
                                           "/response" if is_response else "/request")
        audit_id += f'_{time.time_ns()}'
        return audit_id


def _utc_now_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
