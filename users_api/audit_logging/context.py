from __future__ import annotations

import json
import logging
import typing as t
import uuid

from flask import Flask, Request, Response, request

logger = logging.getLogger(__name__)


class Context:
    """
    Per request state shared between the route handlers, the log formatter and the audit logger.
    A Context is attached to the Flask request when the request starts and detached once the
    response has been produced.
    """
    # HTTP Header Keys
    CORRELATION_ID_KEY = "Correlation-Id"
    __LOGGED_FIELDS_KEY = "K-Logged-Fields"

    # Top level key names in log and audit records
    _CORRELATION_ID_LOG_KEY = "correlationId"

    __REQUEST_ATTRIBUTE_NAME = "users_api_context"

    @staticmethod
    def from_request(req: t.Optional[Request] = None) -> t.Optional[Context]:
        """
        Get the Context attached to the current request.
        Returns None outside of request processing or before the context was attached.
        """
        try:
            if req is None:
                req = request
            return getattr(req, Context.__REQUEST_ATTRIBUTE_NAME, None)
        except RuntimeError as err:
            if 'Working outside of request context' not in str(err):
                raise
        return None

    def __init__(self, req: Request) -> None:
        self.req = None
        self._logged_fields = {}
        self._audit_log_only_fields = {}

        self.correlation_id = Context._get_header_value(req, Context.CORRELATION_ID_KEY)
        if self.correlation_id is None:
            self.correlation_id = uuid.uuid4().hex
            logger.debug(f'No {Context.CORRELATION_ID_KEY} header found, generated {self.correlation_id}.')

        self._raw_logged_fields = Context._get_header_value(req, Context.__LOGGED_FIELDS_KEY)
        if self._raw_logged_fields:
            try:
                self._logged_fields = json.loads(self._raw_logged_fields)

                if not isinstance(self._logged_fields, dict):
                    logger.error(f"Invalid {Context.__LOGGED_FIELDS_KEY} header value: "
                                 f"type {type(self._logged_fields)}")
                    self._logged_fields = {}

            except json.JSONDecodeError as e:
                logger.error(f"Invalid {Context.__LOGGED_FIELDS_KEY} header value: {e}")

    def set_in_request(self, req: Request) -> Context:
        setattr(req, Context.__REQUEST_ATTRIBUTE_NAME, self)
        self.req = req
        return self

    def remove_from_request(self) -> None:
        if self.req is not None and hasattr(self.req, Context.__REQUEST_ATTRIBUTE_NAME):
            delattr(self.req, Context.__REQUEST_ATTRIBUTE_NAME)
        self.req = None

    def add_log_field(self, key: str, value: t.Union[str, dict]) -> None:
        # If this is a list/dict try to convert it to json string
        if isinstance(value, (list, tuple, dict)):
            value = json.dumps(value)

        self._logged_fields[key] = value

    def add_audit_log_response_field(self, key: str, value: t.Union[str, dict]) -> None:
        # Stored natively, the caller makes sure the value is JSON encodable
        self._audit_log_only_fields[key] = value

    def get_logger_top_level_fields(self) -> t.Dict[str, t.Any]:
        extra = dict(self._logged_fields)
        # header supplied fields never replace the correlation id
        extra[Context._CORRELATION_ID_LOG_KEY] = self.correlation_id
        return extra

    def get_audit_log_top_level_fields(self) -> t.Dict[str, t.Any]:
        fields = dict(self._audit_log_only_fields)
        fields.update(self.get_logger_top_level_fields())
        return fields

    def add_response_headers(self, resp: Response) -> None:
        resp.headers[Context.CORRELATION_ID_KEY] = self.correlation_id
        if self._raw_logged_fields:
            resp.headers[Context.__LOGGED_FIELDS_KEY] = self._raw_logged_fields

    @staticmethod
    def _get_header_value(req: Request, key: str, default: t.Optional[str] = None) -> t.Optional[str]:
        val = req.headers.get(key, default)
        if val is None:
            return None
        return val.strip() or None


def init_app(app: Flask) -> None:
    """
    Attach a Context to every request handled by `app` and echo its headers on the response.
    """

    @app.before_request
    def _attach_context():
        Context(request).set_in_request(request)

    @app.after_request
    def _add_context_headers(resp: Response) -> Response:
        context = Context.from_request()
        if context is not None:
            context.add_response_headers(resp)
        return resp

    @app.teardown_request
    def _detach_context(exc):
        context = Context.from_request()
        if context is not None:
            context.remove_from_request()
