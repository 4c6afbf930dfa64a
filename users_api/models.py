import math
import typing as t
from enum import Enum


class UserStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"

    @staticmethod
    def values() -> t.List[str]:
        return [status.value for status in UserStatus]


class User:
    def __init__(self, id: t.Optional[int] = None, username: t.Optional[str] = None,
                 password: t.Optional[str] = None, status: t.Optional[str] = None):
        self.id = id
        self.username = username
        self.password = password
        self.status = status

    @staticmethod
    def from_row(row: t.Mapping[str, t.Any]) -> "User":
        return User(**{key: row[key] for key in ("id", "username", "password", "status") if key in row})

    def to_dict(self, fields: t.Iterable[str]) -> dict:
        return {field: getattr(self, field) for field in fields}


class Task:
    def __init__(self, name: str, done: bool, user_id: t.Optional[int] = None):
        self.name = name
        self.done = done
        self.user_id = user_id

    def to_dict(self) -> dict:
        return {"name": self.name, "done": self.done}


class Page:
    """
    One page of a listing together with the figures needed to walk the rest of it.
    """

    def __init__(self, total: int, page: int, limit: int, data: t.List[dict]):
        self.total = total
        self.page = page
        self.pages = math.ceil(total / limit)
        self.data = data

    def to_dict(self) -> dict:
        return {"total": self.total, "page": self.page, "pages": self.pages, "data": self.data}
