import os

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


class ApiOptions:
    LOG_LEVEL = "LOG_LEVEL"
    HIDE_PASSWORD_HASH = "HIDE_PASSWORD_HASH"
    BCRYPT_ROUNDS = "BCRYPT_ROUNDS"

    @staticmethod
    def from_env():
        log_level = os.getenv(ApiOptions.LOG_LEVEL, "INFO").upper()
        hide_password = _env_flag(ApiOptions.HIDE_PASSWORD_HASH)
        bcrypt_rounds = int(os.getenv(ApiOptions.BCRYPT_ROUNDS, "12"))
        return ApiOptions(log_level=log_level, hide_password=hide_password, bcrypt_rounds=bcrypt_rounds)

    def __init__(self, log_level: str = "INFO", hide_password: bool = False, bcrypt_rounds: int = 12):
        self.log_level = log_level
        # the stored hash is part of the read projections; this drops it from every response
        self.hide_password = hide_password
        self.bcrypt_rounds = bcrypt_rounds


class DatabaseOptions:
    DB_HOST = "DB_HOST"
    DB_PORT = "DB_PORT"
    DB_USER = "DB_USER"
    DB_PASSWORD = "DB_PASSWORD"
    DB_DATABASE = "DB_DATABASE"

    @staticmethod
    def from_env():
        return DatabaseOptions(user=os.getenv(DatabaseOptions.DB_USER, "postgres"),
                               password=os.getenv(DatabaseOptions.DB_PASSWORD, "example"),
                               host=os.getenv(DatabaseOptions.DB_HOST, "db"),
                               port=os.getenv(DatabaseOptions.DB_PORT, "5432"),
                               database=os.getenv(DatabaseOptions.DB_DATABASE, "todo"))

    def __init__(self, user: str, password: str, host: str, port: str, database: str):
        self.user = user
        self.password = password
        self.host = host
        self.port = port
        self.database = database

    def connect_kwargs(self) -> dict:
        return {"user": self.user, "password": self.password, "host": self.host,
                "port": self.port, "database": self.database}
