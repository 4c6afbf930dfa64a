import logging
import typing as t

from users_api.dao.dao import DAO
from users_api.models import Task, User, UserStatus

logger = logging.getLogger(__name__)

USER_TABLE = "public.user"
TASK_TABLE = "public.task"

# sortable column name -> SQL expression, user input never reaches the statement text
SORTABLE_COLUMNS = {
    "id": "id",
    "username": "username",
    "status": "status",
}
SORT_DIRECTIONS = ("ASC", "DESC")


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class UserQuery:
    """
    Builder for the filtered, sorted and paginated user listing.

    Predicates are accumulated as (clause, parameters) pairs and rendered into
    a count statement and a page statement sharing the same WHERE clause.
    """

    def __init__(self, columns: t.Sequence[str] = ("id", "username", "status")):
        self.columns = tuple(columns)
        self.clauses: t.List[str] = []
        self.parameters: t.List[t.Any] = []
        self.order_column = "id"
        self.order_direction = "DESC"
        self.limit: t.Optional[int] = None
        self.offset = 0

    def search_username(self, term: str) -> "UserQuery":
        self.clauses.append("username ILIKE %s")
        self.parameters.append(f"%{escape_like(term)}%")
        return self

    def with_status(self, status: UserStatus) -> "UserQuery":
        self.clauses.append("status = %s")
        self.parameters.append(status.value)
        return self

    def order_by(self, column: str, direction: str) -> "UserQuery":
        if column not in SORTABLE_COLUMNS:
            raise ValueError(f"Unsupported sort column: {column}")
        direction = direction.upper()
        if direction not in SORT_DIRECTIONS:
            raise ValueError(f"Unsupported sort direction: {direction}")
        self.order_column = SORTABLE_COLUMNS[column]
        self.order_direction = direction
        return self

    def paginate(self, page: int, limit: int) -> "UserQuery":
        self.limit = limit
        self.offset = (page - 1) * limit
        return self

    def where_sql(self) -> str:
        if not self.clauses:
            return ""
        return " WHERE " + " AND ".join(self.clauses)

    def count_statement(self) -> t.Tuple[str, tuple]:
        return f"SELECT COUNT(*) AS total FROM {USER_TABLE}{self.where_sql()}", tuple(self.parameters)

    def select_statement(self) -> t.Tuple[str, tuple]:
        sql = (f"SELECT {', '.join(self.columns)} FROM {USER_TABLE}{self.where_sql()}"
               f" ORDER BY {self.order_column} {self.order_direction}")
        parameters = list(self.parameters)
        if self.limit is not None:
            sql += " LIMIT %s OFFSET %s"
            parameters += [self.limit, self.offset]
        return sql, tuple(parameters)


class UserDAO(DAO):
    def __init__(self, connection=None, opts=None):
        super().__init__(connection=connection, opts=opts)

    def insert_user(self, user: User) -> User:
        row = self.execute_returning(
            f"INSERT INTO {USER_TABLE}(username, password, status) VALUES(%s,%s,%s)"
            " RETURNING id, username, password, status",
            (user.username, user.password, user.status))
        return User.from_row(row)

    def list_users_by_status(self, status: UserStatus) -> t.List[User]:
        rows = self.fetch_all(f"SELECT id, username, password, status FROM {USER_TABLE}"
                              " WHERE status = %s ORDER BY id DESC", (status.value,))
        return [User.from_row(row) for row in rows]

    def get_user(self, user_id: int, columns: t.Sequence[str] = ("id", "username", "password", "status")) -> t.Optional[User]:
        row = self.fetch_one(f"SELECT {', '.join(columns)} FROM {USER_TABLE} WHERE id = %s", (user_id,))
        return User.from_row(row) if row else None

    def update_user(self, user_id: int, values: t.Dict[str, t.Any]) -> int:
        assignments = ", ".join(f"{column} = %s" for column in values)
        return self.execute(f"UPDATE {USER_TABLE} SET {assignments} WHERE id = %s",
                            tuple(values.values()) + (user_id,))

    def update_status(self, user_id: int, status: UserStatus) -> int:
        return self.execute(f"UPDATE {USER_TABLE} SET status = %s WHERE id = %s", (status.value, user_id))

    def delete_user(self, user_id: int) -> int:
        return self.execute(f"DELETE FROM {USER_TABLE} WHERE id = %s", (user_id,))

    def find_users(self, query: UserQuery) -> t.Tuple[int, t.List[User]]:
        count_sql, count_parameters = query.count_statement()
        total = self.fetch_one(count_sql, count_parameters)["total"]

        select_sql, select_parameters = query.select_statement()
        logger.debug("Listing users: %s %s", select_sql, select_parameters)
        users = [User.from_row(row) for row in self.fetch_all(select_sql, select_parameters)]
        return total, users

    def get_user_tasks(self, user_id: int) -> t.Optional[t.Tuple[str, t.List[Task]]]:
        rows = self.fetch_all(f"SELECT u.username, t.user_id AS task_owner, t.name, t.done FROM {USER_TABLE} u"
                              f" LEFT JOIN {TASK_TABLE} t ON t.user_id = u.id"
                              " WHERE u.id = %s", (user_id,))
        if not rows:
            return None

        # a user without tasks still yields one row with NULL task columns
        tasks = [Task(row["name"], row["done"], user_id) for row in rows if row["task_owner"] is not None]
        return rows[0]["username"], tasks
