import atexit
import logging

from users_api.application import create_app
from users_api.audit_logging import HTTPAuditLogger

audit_logger = HTTPAuditLogger.from_env()
if audit_logger is not None:
    audit_logger.start()
    # drain queued records before the interpreter exits
    atexit.register(audit_logger.stop)

application = create_app(audit_logger=audit_logger)
root_logger = logging.getLogger()


if __name__ == "__main__":
    root_logger.info("*** APPLICATION NAME %s", application.name)
    application.run(host="0.0.0.0", port=8000)
