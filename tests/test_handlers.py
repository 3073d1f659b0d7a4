"""
Tests for the message protocol and its aiohttp transport.
"""
import pytest
from aiohttp import web
from aiohttp import test_utils

from chromapass.handlers import normalize_type
from chromapass.web import setup_vault


async def send(dispatcher, type_, **payload):
    return await dispatcher.dispatch({"type": type_, **payload})


# --- Test Type Names ---

class TestTypeNames:

    @pytest.mark.parametrize("name,expected", [
        ("CHECK_LOCK_STATE", "CHECK_LOCK_STATE"),
        ("CheckLockState", "CHECK_LOCK_STATE"),
        ("UnlockVault", "UNLOCK_VAULT"),
    ])
    def test_normalize(self, name, expected):
        assert normalize_type(name) == expected


# --- Test Protocol ---

class TestProtocol:
    """End-to-end protocol flows through the dispatcher."""

    async def test_lock_state_flow(self, dispatcher):
        assert await send(dispatcher, "CHECK_LOCK_STATE") == {"setup": False, "unlocked": False}
        assert await send(dispatcher, "SET_MASTER_PASSWORD", password="hunter2") == {"success": True}
        assert await send(dispatcher, "CheckLockState") == {"setup": True, "unlocked": True}
        assert await send(dispatcher, "LOCK_VAULT") == {"success": True}
        assert await send(dispatcher, "CHECK_LOCK_STATE") == {"setup": True, "unlocked": False}
        assert await send(dispatcher, "UNLOCK_VAULT", password="wrong") == {
            "success": False, "error": "Incorrect password",
        }
        assert await send(dispatcher, "CHECK_LOCK_STATE") == {"setup": True, "unlocked": False}
        assert await send(dispatcher, "UNLOCK_VAULT", password="hunter2") == {"success": True}
        assert (await send(dispatcher, "CHECK_LOCK_STATE"))["unlocked"] is True

    async def test_unlock_not_setup(self, dispatcher):
        assert await send(dispatcher, "UNLOCK_VAULT", password="x") == {
            "success": False, "error": "Not setup",
        }

    async def test_save_and_fetch(self, dispatcher):
        await send(dispatcher, "SET_MASTER_PASSWORD", password="hunter2")
        candidate = {"site": "example.com", "username": "bob", "password": "pw1"}
        assert await send(dispatcher, "SAVE_CANDIDATE", payload=candidate) == {"success": True}
        assert await send(dispatcher, "CHECK_PENDING_SAVE") == candidate
        saved = await send(dispatcher, "CONFIRM_SAVE", payload=candidate)
        assert saved["success"] is True
        assert await send(dispatcher, "CHECK_PENDING_SAVE") is None
        await send(dispatcher, "CONFIRM_SAVE", payload={**candidate, "password": "pw2"})

        response = await send(dispatcher, "GET_CREDENTIALS", domain="EXAMPLE")
        assert response["success"] is True
        assert len(response["matches"]) == 1
        assert response["matches"][0]["id"] == saved["id"]
        assert response["username"] == "bob"
        assert response["password"] == "pw2"

        envelope = response["matches"][0]["password"]
        assert envelope["type"] == "aes"
        assert await send(dispatcher, "DECRYPT_PASSWORD", encryptedData=envelope) == {
            "success": True, "password": "pw2",
        }

    async def test_get_credentials_no_match(self, dispatcher):
        assert await send(dispatcher, "GET_CREDENTIALS", domain="nowhere") == {
            "success": False, "matches": [],
        }

    async def test_blind_save(self, dispatcher):
        await send(dispatcher, "SET_MASTER_PASSWORD", password="hunter2")
        await send(dispatcher, "LOCK_VAULT")
        payload = {"site": "example.com", "username": "bob", "password": "blind"}
        assert (await send(dispatcher, "CONFIRM_SAVE", payload=payload))["success"] is True
        response = await send(dispatcher, "GET_CREDENTIALS", domain="example.com")
        assert "password" not in response
        envelope = response["matches"][0]["password"]
        assert envelope["type"] == "rsa"
        assert await send(dispatcher, "DECRYPT_PASSWORD", encryptedData=envelope) == {
            "success": False, "error": "Locked",
        }
        await send(dispatcher, "UNLOCK_VAULT", password="hunter2")
        assert (await send(dispatcher, "DECRYPT_PASSWORD", encryptedData=envelope))["password"] == "blind"

    async def test_confirm_save_without_vault(self, dispatcher):
        payload = {"site": "example.com", "username": "bob", "password": "pw"}
        assert await send(dispatcher, "CONFIRM_SAVE", payload=payload) == {
            "success": False, "error": "Vault not initialized",
        }

    async def test_change_master_password(self, dispatcher):
        await send(dispatcher, "SET_MASTER_PASSWORD", password="hunter2")
        await send(dispatcher, "CONFIRM_SAVE", payload={
            "site": "example.com", "username": "bob", "password": "pw1",
        })
        assert await send(
            dispatcher, "CHANGE_MASTER_PASSWORD", oldPassword="nope", newPassword="new",
        ) == {"success": False, "error": "Incorrect old password"}
        assert await send(
            dispatcher, "CHANGE_MASTER_PASSWORD", oldPassword="hunter2", newPassword="new",
        ) == {"success": True, "degraded": []}
        await send(dispatcher, "LOCK_VAULT")
        assert (await send(dispatcher, "UNLOCK_VAULT", password="new"))["success"] is True
        response = await send(dispatcher, "GET_CREDENTIALS", domain="example.com")
        assert response["password"] == "pw1"

    async def test_list_and_delete(self, dispatcher):
        await send(dispatcher, "SET_MASTER_PASSWORD", password="hunter2")
        for user in ("alice", "bob"):
            await send(dispatcher, "CONFIRM_SAVE", payload={
                "site": "example.com", "username": user, "password": "pw",
            })
        listed = await send(dispatcher, "LIST_CREDENTIALS", filter="bob")
        assert [c["username"] for c in listed["credentials"]] == ["bob"]
        target = listed["credentials"][0]["id"]
        assert await send(dispatcher, "DELETE_CREDENTIAL", id=target) == {"success": True}
        assert await send(dispatcher, "DELETE_CREDENTIAL", id=target) == {"success": False}
        remaining = await send(dispatcher, "LIST_CREDENTIALS")
        assert [c["username"] for c in remaining["credentials"]] == ["alice"]

    async def test_clear_candidate(self, dispatcher):
        await send(dispatcher, "SAVE_CANDIDATE", payload={
            "site": "example.com", "username": "bob", "password": "pw",
        })
        assert await send(dispatcher, "CLEAR_CANDIDATE") == {"success": True}
        assert await send(dispatcher, "CHECK_PENDING_SAVE") is None

    async def test_generate_password(self, dispatcher):
        response = await send(dispatcher, "GENERATE_PASSWORD", length=24)
        assert response["success"] is True
        assert len(response["password"]) == 24
        assert (await send(dispatcher, "GENERATE_PASSWORD", length=2))["success"] is False

    async def test_unknown_type(self, dispatcher):
        assert await send(dispatcher, "FORMAT_DISK") == {"error": "Unknown request type"}
        assert await dispatcher.dispatch({}) == {"error": "Unknown request type"}

    async def test_invalid_payload(self, dispatcher):
        assert await send(dispatcher, "UNLOCK_VAULT") == {
            "success": False, "error": "Invalid request",
        }
        assert await send(dispatcher, "SAVE_CANDIDATE", payload={"site": "x"}) == {
            "success": False, "error": "Invalid request",
        }
        for type_, payload in [
            ("UNLOCK_VAULT", {"password": None}),
            ("SET_MASTER_PASSWORD", {"password": 1234}),
            ("GET_CREDENTIALS", {"domain": None}),
            ("LIST_CREDENTIALS", {"filter": ["a"]}),
            ("SAVE_CANDIDATE", {"payload": "site=x"}),
            ("CONFIRM_SAVE", {"payload": {"site": "x", "username": "u", "password": None}}),
        ]:
            assert await send(dispatcher, type_, **payload) == {
                "success": False, "error": "Invalid request",
            }, type_


# --- Test aiohttp transport ---

class TestWebTransport:
    """Tests for the POST /vault/message endpoint."""

    @pytest.fixture
    async def client(self, controller):
        app = web.Application()
        setup_vault(app, controller)
        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            yield client

    async def test_message_round_trip(self, client):
        resp = await client.post("/vault/message", json={"type": "CHECK_LOCK_STATE"})
        assert resp.status == 200
        assert await resp.json() == {"setup": False, "unlocked": False}

        resp = await client.post(
            "/vault/message", json={"type": "SetMasterPassword", "password": "hunter2"},
        )
        assert await resp.json() == {"success": True}

    async def test_pending_save_null(self, client):
        resp = await client.post("/vault/message", json={"type": "CHECK_PENDING_SAVE"})
        assert await resp.json() is None

    async def test_invalid_json(self, client):
        resp = await client.post("/vault/message", data=b"{oops")
        assert resp.status == 400

    async def test_non_object_body(self, client):
        resp = await client.post("/vault/message", json=[1, 2])
        assert resp.status == 400
