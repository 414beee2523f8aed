import asyncio
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from katelyatv.kvrocks_db import KvrocksStorage
from tests.helpers import FlakyRedis, InMemoryRedis


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def client():
    return InMemoryRedis()


@pytest.fixture
def kv(client, owner):
    return KvrocksStorage(client)


def test_account_record_and_user_list(kv, client):
    run(kv.register_user("alice", "p1"))

    account = json.loads(client.store["user:alice"])
    assert account["username"] == "alice"
    assert account["password"] == "p1"
    assert isinstance(account["created_at"], int)
    assert client.store["user_list"] == {"alice"}


def test_change_password_keeps_created_at(kv, client):
    run(kv.register_user("alice", "p1"))
    created = json.loads(client.store["user:alice"])["created_at"]

    run(kv.change_password("alice", "p2"))
    account = json.loads(client.store["user:alice"])
    assert account == {"username": "alice", "password": "p2", "created_at": created}


def test_layout_of_user_data(kv, client):
    run(kv.set_play_record("alice", "k", {"a": 1}))
    run(kv.set_favorite("alice", "k", {"a": 1}))
    run(kv.add_search_history("alice", "q"))
    run(kv.set_skip_config("alice", "ep1", {"introEnd": 5}))
    run(kv.update_user_settings("alice", {"theme": "dark"}))
    run(kv.set_admin_config({"x": 1}))

    assert set(client.store) == {
        "u:alice:pr:k",
        "u:alice:fav:k",
        "u:alice:search_history",
        "u:alice:skip_config:ep1",
        "u:alice:settings",
        "admin_config",
    }


def test_skip_configs_enumerated_by_scan(kv, client):
    # written directly, without going through set_skip_config
    client.store["u:bob:skip_config:ep9"] = json.dumps({"introEnd": 1})
    assert run(kv.get_all_skip_configs("bob")) == {"ep9": {"introEnd": 1}}


def test_created_at_degrades_to_empty_string(kv, client):
    run(kv.register_user("good", "pw"))
    client.store["user:broken"] = json.dumps({"username": "broken", "password": "pw", "created_at": "soon"})
    client.store["user:nostamp"] = json.dumps({"username": "nostamp", "password": "pw"})
    client.store["user_list"].update({"broken", "nostamp", "vanished"})

    users = {u.username: u.created_at for u in run(kv.get_all_users())}
    assert users["broken"] == ""
    assert users["nostamp"] == ""
    assert users["vanished"] == ""
    assert users["good"].endswith("Z")


def test_created_at_is_iso_utc(kv, client):
    client.store["user:old"] = json.dumps({"username": "old", "password": "pw", "created_at": 1714550400123})
    client.store["user_list"] = {"old"}
    assert run(kv.get_all_users())[0].created_at == "2024-05-01T08:00:00.123Z"


def test_created_at_accepts_iso_string(kv, client):
    client.store["user:iso"] = json.dumps(
        {"username": "iso", "password": "pw", "created_at": "2024-05-01T08:00:00.123Z"}
    )
    client.store["user_list"] = {"iso"}
    assert run(kv.get_all_users())[0].created_at == "2024-05-01T08:00:00.123Z"


def test_owner_passed_explicitly(client):
    kv = KvrocksStorage(client, owner_username="root")
    run(kv.register_user("root", "pw"))
    run(kv.register_user("admin", "pw"))
    assert {u.username: u.role for u in run(kv.get_all_users())} == {"root": "owner", "admin": "user"}


def test_search_history_unit_retried_as_a_whole(sleeps):
    client = FlakyRedis({"lpush": 1}, RedisConnectionError("Connection reset by peer"))
    kv = KvrocksStorage(client)

    run(kv.add_search_history("alice", "q"))

    assert run(kv.get_search_history("alice")) == ["q"]
    assert client.calls[:4] == ["lrem", "lpush", "lrem", "lpush"]
    assert sleeps == [1.0]


def test_permanent_error_surfaces(sleeps):
    client = FlakyRedis({"get": 1}, ResponseError("WRONGTYPE"))
    kv = KvrocksStorage(client)

    with pytest.raises(ResponseError):
        run(kv.get_play_record("alice", "k"))
    assert sleeps == []


def test_verify_user_with_corrupt_account(kv, client):
    client.store["user:alice"] = "not json"
    assert run(kv.verify_user("alice", "not json")) is False
    assert run(kv.check_user_exist("alice")) is False
