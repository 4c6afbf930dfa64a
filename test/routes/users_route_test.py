import psycopg2
import pytest

from users_api.models import Task, User, UserStatus

DAO = "users_api.dao.user.UserDAO"


def _inserted(self, user):
    return User(id=1, username=user.username, password=user.password, status=user.status)


def test_list_active_users(mocker, client):
    list_by_status = mocker.patch(f"{DAO}.list_users_by_status", return_value=[
        User(id=2, username="username2", password="hash2", status="ACTIVE"),
        User(id=1, username="username1", password="hash1", status="ACTIVE"),
    ])

    response = client.get("/users?filter=active")

    assert response.status_code == 200
    assert [user["id"] for user in response.get_json()] == [2, 1]
    list_by_status.assert_called_once_with(UserStatus.ACTIVE)


def test_create_user(mocker, client):
    mocker.patch(f"{DAO}.insert_user", _inserted)

    response = client.post("/users", json={"username": "username1", "password": "secret"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["id"] == 1
    assert body["password"] != "secret"


@pytest.mark.parametrize("body", [{"username": "username1"}, {"password": "secret"}])
def test_create_user_missing_fields(mocker, client, body):
    insert = mocker.patch(f"{DAO}.insert_user")

    response = client.post("/users", json=body)

    assert response.status_code == 400
    assert response.get_json() == {"message": "Username and password are required"}
    insert.assert_not_called()


def test_create_user_with_non_object_body(mocker, client):
    insert = mocker.patch(f"{DAO}.insert_user")

    response = client.post("/users", json=["username1", "secret"])

    assert response.status_code == 400
    insert.assert_not_called()


def test_get_user(mocker, client):
    mocker.patch(f"{DAO}.get_user", return_value=User(id=1, username="username1", password="hash", status="ACTIVE"))

    response = client.get("/users/1")

    assert response.status_code == 200
    assert response.get_json() == {"id": 1, "username": "username1", "password": "hash", "status": "ACTIVE"}


def test_unknown_user_is_not_found(mocker, client):
    mocker.patch(f"{DAO}.get_user", return_value=None)
    mocker.patch(f"{DAO}.update_user", return_value=0)
    mocker.patch(f"{DAO}.delete_user", return_value=0)

    assert client.get("/users/99").status_code == 404
    assert client.patch("/users/99", json={"username": "renamed"}).status_code == 404
    assert client.delete("/users/99").status_code == 404
    assert client.patch("/users/99/status", json={"status": "INACTIVE"}).status_code == 404


def test_update_user(mocker, client):
    mocker.patch(f"{DAO}.update_user", return_value=1)
    mocker.patch(f"{DAO}.get_user", return_value=User(id=1, username="renamed", status="ACTIVE"))

    response = client.patch("/users/1", json={"username": "renamed"})

    assert response.status_code == 200
    assert response.get_json() == {"id": 1, "username": "renamed", "status": "ACTIVE"}


def test_update_user_without_fields(client):
    response = client.patch("/users/1", json={})

    assert response.status_code == 400


def test_delete_user(mocker, client):
    mocker.patch(f"{DAO}.delete_user", return_value=1)

    response = client.delete("/users/1")

    assert response.status_code == 204
    assert response.data == b""


def test_change_status(mocker, client):
    mocker.patch(f"{DAO}.get_user", return_value=User(id=1, username="username1", password="hash", status="ACTIVE"))
    mocker.patch(f"{DAO}.update_status", return_value=1)

    response = client.patch("/users/1/status", json={"status": "INACTIVE"})

    assert response.status_code == 200
    assert response.get_json()["status"] == "INACTIVE"


def test_change_status_conflict(mocker, client):
    mocker.patch(f"{DAO}.get_user", return_value=User(id=1, username="username1", password="hash", status="ACTIVE"))
    update_status = mocker.patch(f"{DAO}.update_status")

    response = client.patch("/users/1/status", json={"status": "ACTIVE"})

    assert response.status_code == 409
    update_status.assert_not_called()


def test_change_status_missing(client):
    response = client.patch("/users/1/status", json={})

    assert response.status_code == 400
    assert response.get_json() == {"message": "Status is required"}


def test_list_user_tasks(mocker, client):
    mocker.patch(f"{DAO}.get_user_tasks", return_value=("username1", [Task("ship", True, 1)]))

    response = client.get("/users/1/tasks")

    assert response.status_code == 200
    assert response.get_json() == {"username": "username1", "tasks": [{"name": "ship", "done": True}]}


def test_list_user_tasks_unknown_user(mocker, client):
    mocker.patch(f"{DAO}.get_user_tasks", return_value=None)

    response = client.get("/users/99/tasks")

    assert response.status_code == 200
    assert response.get_json() is None


def test_list_users_paginated(mocker, client):
    users = [User(id=i, username=f"username{i}", status="ACTIVE") for i in range(15, 5, -1)]
    mocker.patch(f"{DAO}.find_users", return_value=(25, users))

    response = client.get("/users?limit=10&page=2")

    assert response.status_code == 200
    body = response.get_json()
    assert body["total"] == 25
    assert body["page"] == 2
    assert body["pages"] == 3
    assert len(body["data"]) == 10


def test_list_users_invalid_status(mocker, client):
    find_users = mocker.patch(f"{DAO}.find_users")

    response = client.get("/users?status=DELETED")

    assert response.status_code == 400
    assert response.get_json() == {"message": "Invalid status, must be ACTIVE or INACTIVE"}
    find_users.assert_not_called()


def test_unexpected_error_is_reported_as_500(mocker, client):
    mocker.patch(f"{DAO}.get_user", side_effect=psycopg2.OperationalError("connection refused"))

    response = client.get("/users/1")

    assert response.status_code == 500
    assert response.get_json() == {"message": "Internal server error"}


def test_non_integer_id_is_not_routed(client):
    assert client.get("/users/abc").status_code == 404


def test_correlation_id_is_echoed(mocker, client):
    mocker.patch(f"{DAO}.delete_user", return_value=1)

    response = client.delete("/users/1", headers={"Correlation-Id": "abc-123"})

    assert response.headers["Correlation-Id"] == "abc-123"


def test_correlation_id_is_generated(mocker, client):
    mocker.patch(f"{DAO}.delete_user", return_value=1)

    response = client.delete("/users/1")

    assert len(response.headers["Correlation-Id"]) == 32


def test_create_user_with_long_password(mocker, client):
    insert = mocker.patch(f"{DAO}.insert_user")

    response = client.post("/users", json={"username": "username1", "password": "x" * 80})

    assert response.status_code == 400
    assert response.get_json() == {"message": "Password must be at most 72 bytes"}
    insert.assert_not_called()


def test_update_user_with_long_password(mocker, client):
    update = mocker.patch(f"{DAO}.update_user")

    response = client.patch("/users/1", json={"password": "x" * 80})

    assert response.status_code == 400
    update.assert_not_called()
