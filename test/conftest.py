import pytest

from users_api.application import create_app
from users_api.config import ApiOptions


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setenv(ApiOptions.BCRYPT_ROUNDS, "4")
    monkeypatch.delenv(ApiOptions.HIDE_PASSWORD_HASH, raising=False)


@pytest.fixture()
def opts():
    return ApiOptions(bcrypt_rounds=4)


@pytest.fixture()
def application(opts):
    application = create_app(opts=opts)
    application.config.update(TESTING=True)
    yield application


@pytest.fixture()
def client(application):
    return application.test_client()
