import logging
import typing as t

import psycopg2.errors

from users_api.config import ApiOptions
from users_api.dao.user import SORT_DIRECTIONS, SORTABLE_COLUMNS, UserDAO, UserQuery
from users_api.errors import ConflictError, NotFoundError, ValidationError
from users_api.models import Page, User, UserStatus
from users_api.security import MAX_PASSWORD_BYTES, hash_password, password_too_long

logger = logging.getLogger(__name__)

USER_FIELDS = ("id", "username", "password", "status")
PUBLIC_USER_FIELDS = ("id", "username", "status")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
DEFAULT_ORDER_BY = "id"
DEFAULT_ORDER_DIR = "DESC"


def _parse_positive_int(value: t.Optional[str], name: str, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a positive integer")
    if number < 1:
        raise ValidationError(f"{name} must be a positive integer")
    return number


def _check_password_length(password: str) -> None:
    if password_too_long(password):
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


def _parse_status(value: str) -> UserStatus:
    try:
        return UserStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status, must be {UserStatus.ACTIVE.value} or {UserStatus.INACTIVE.value}")


class UserService:
    def __init__(self, dao: t.Optional[UserDAO] = None, opts: t.Optional[ApiOptions] = None):
        self.__dao = dao or UserDAO()
        self.__opts = opts or ApiOptions.from_env()

    def _fields(self, fields: t.Sequence[str]) -> t.Tuple[str, ...]:
        if self.__opts.hide_password:
            return tuple(field for field in fields if field != "password")
        return tuple(fields)

    def _serialize(self, user: User, fields: t.Sequence[str] = USER_FIELDS) -> dict:
        return user.to_dict(self._fields(fields))

    def list_active_users(self) -> t.List[dict]:
        users = self.__dao.list_users_by_status(UserStatus.ACTIVE)
        return [self._serialize(user) for user in users]

    def insert_user(self, json_user: dict) -> dict:
        username = json_user.get("username")
        password = json_user.get("password")
        if not username or not password:
            raise ValidationError("Username and password are required")
        if not isinstance(username, str) or not isinstance(password, str):
            raise ValidationError("Username and password must be strings")
        _check_password_length(password)

        user = User(username=username,
                    password=hash_password(password, self.__opts.bcrypt_rounds),
                    status=UserStatus.ACTIVE.value)
        try:
            user = self.__dao.insert_user(user)
        except psycopg2.errors.UniqueViolation:
            raise ConflictError(f"Username {username} already exists")

        logger.info("Created user %s", user.id)
        return self._serialize(user)

    def get_user(self, user_id: int) -> dict:
        user = self.__dao.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return self._serialize(user)

    def update_user(self, user_id: int, json_user: dict) -> dict:
        username = json_user.get("username")
        password = json_user.get("password")
        if not username and not password:
            raise ValidationError("Username or password is required")
        if any(value is not None and not isinstance(value, str) for value in (username, password)):
            raise ValidationError("Username and password must be strings")

        values = {}
        if username:
            values["username"] = username
        if password and password.strip():
            _check_password_length(password)
            values["password"] = hash_password(password, self.__opts.bcrypt_rounds)

        if values:
            try:
                rows_updated = self.__dao.update_user(user_id, values)
            except psycopg2.errors.UniqueViolation:
                raise ConflictError(f"Username {username} already exists")
            if rows_updated == 0:
                raise NotFoundError("User not found or no changes")
            logger.info("Updated user %s: %s", user_id, ", ".join(values))

        user = self.__dao.get_user(user_id, PUBLIC_USER_FIELDS)
        if user is None:
            raise NotFoundError("User not found or no changes")
        return self._serialize(user, PUBLIC_USER_FIELDS)

    def delete_user(self, user_id: int) -> None:
        deleted = self.__dao.delete_user(user_id)
        if not deleted:
            raise NotFoundError("User not found")
        logger.info("Deleted user %s", user_id)

    def change_status(self, user_id: int, json_body: dict) -> dict:
        requested = json_body.get("status")
        if not requested:
            raise ValidationError("Status is required")
        status = _parse_status(requested)

        user = self.__dao.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.status == status.value:
            raise ConflictError("Same status")

        if self.__dao.update_status(user_id, status) == 0:
            raise NotFoundError("User not found")
        user.status = status.value
        logger.info("User %s is now %s", user_id, status.value)
        return self._serialize(user)

    def list_user_tasks(self, user_id: int) -> t.Optional[dict]:
        result = self.__dao.get_user_tasks(user_id)
        if result is None:
            return None

        username, tasks = result
        return {"username": username, "tasks": [task.to_dict() for task in tasks]}

    def list_users(self, params: t.Mapping[str, str]) -> dict:
        page = _parse_positive_int(params.get("page"), "page", DEFAULT_PAGE)
        limit = _parse_positive_int(params.get("limit"), "limit", DEFAULT_LIMIT)

        order_by = params.get("orderBy") or DEFAULT_ORDER_BY
        if order_by not in SORTABLE_COLUMNS:
            raise ValidationError(f"Invalid orderBy, must be one of {', '.join(SORTABLE_COLUMNS)}")
        order_dir = (params.get("orderDir") or DEFAULT_ORDER_DIR).upper()
        if order_dir not in SORT_DIRECTIONS:
            raise ValidationError(f"Invalid orderDir, must be one of {', '.join(SORT_DIRECTIONS)}")

        query = UserQuery(PUBLIC_USER_FIELDS).order_by(order_by, order_dir).paginate(page, limit)

        search = params.get("search")
        if search:
            query.search_username(search)

        status = params.get("status")
        if status:
            query.with_status(_parse_status(status))

        total, users = self.__dao.find_users(query)
        data = [self._serialize(user, PUBLIC_USER_FIELDS) for user in users]
        return Page(total=total, page=page, limit=limit, data=data).to_dict()
