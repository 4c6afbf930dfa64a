import json
import logging

from users_api.audit_logging.context import Context

_DEFAULT_LOG_RECORD_KEYS = set(dir(logging.LogRecord('', 0, '', 0, '', None, None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    Renders each record as a single JSON line.  Attributes passed through `extra=` and the
    top level fields of the current request Context end up as top level keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        res = {
            "time": self.formatTime(record, self.datefmt),
            "name": record.name,
            "filename": record.filename,
            "lineno": record.lineno,
            "levelname": record.levelname,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _DEFAULT_LOG_RECORD_KEYS:
                continue
            res[key] = value

        context = Context.from_request()
        if context is not None:
            for key, value in context.get_logger_top_level_fields().items():
                # header supplied fields never replace the record attributes
                res.setdefault(key, value)

        if record.exc_info:
            res["exception"] = self.formatException(record.exc_info)

        return json.dumps(res, default=str)
