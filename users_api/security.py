import bcrypt

from users_api.config import ApiOptions

# bcrypt only reads the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str, rounds: int = None) -> str:
    if rounds is None:
        rounds = ApiOptions.from_env().bcrypt_rounds
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")
