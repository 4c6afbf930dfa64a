import logging
import typing as t

from flask import Flask

from users_api.audit_logging import HTTPAuditLogger, JSONFormatter, context
from users_api.config import ApiOptions
from users_api.routes.user import users_bp

root_logger = logging.getLogger()


def configure_logging(level: str) -> None:
    root_logger.setLevel(level)
    if any(isinstance(handler.formatter, JSONFormatter) for handler in root_logger.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)


def create_app(audit_logger: t.Optional[HTTPAuditLogger] = None, opts: t.Optional[ApiOptions] = None) -> Flask:
    opts = opts or ApiOptions.from_env()
    configure_logging(opts.log_level)

    application = Flask(__name__)
    application.json.sort_keys = False
    context.init_app(application)
    if audit_logger is not None:
        audit_logger.init_app(application)
    application.register_blueprint(users_bp)
    return application
