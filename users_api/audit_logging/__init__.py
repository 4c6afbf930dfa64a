from users_api.audit_logging.context import Context
from users_api.audit_logging.formatter import JSONFormatter
from users_api.audit_logging.http_audit_logger import HTTPAuditLogger, Options

__all__ = ["Context", "JSONFormatter", "HTTPAuditLogger", "Options"]
