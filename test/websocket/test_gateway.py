"""Tests for connection authentication."""

import pytest
from jose import jwt
from socketio.exceptions import ConnectionRefusedError

from meetrelay.config.settings import Settings
from meetrelay.connection.gateway import ConnectionGateway

SECRET = "gateway-secret"


def token_for(user_id, secret=SECRET, **claims):
    return jwt.encode({"userId": user_id, **claims}, secret, algorithm="HS256")


@pytest.fixture
def gateway():
    return ConnectionGateway.from_settings(
        Settings(room_store="memory", auth_required=True, jwt_secret=SECRET)
    )


def test_valid_token_is_accepted(gateway):
    token = token_for("u1", email="u1@example.com")

    identity = gateway.authenticate("sid-1", {}, {"token": token})

    assert identity.user_id == "u1"
    assert identity.email == "u1@example.com"
    assert identity.token == token


def test_missing_token_is_refused(gateway):
    with pytest.raises(ConnectionRefusedError) as exc_info:
        gateway.authenticate("sid-1", {}, None)

    assert "Authentication token required" in str(exc_info.value.error_args)


def test_invalid_token_is_refused(gateway):
    with pytest.raises(ConnectionRefusedError) as exc_info:
        gateway.authenticate("sid-1", {}, {"token": token_for("u1", secret="wrong")})

    assert "Invalid or expired token" in str(exc_info.value.error_args)


def test_missing_secret_is_refused_as_configuration_error():
    gateway = ConnectionGateway.from_settings(Settings(room_store="memory", auth_required=True))

    with pytest.raises(ConnectionRefusedError) as exc_info:
        gateway.authenticate("sid-1", {}, {"token": token_for("u1")})

    assert "Server configuration error" in str(exc_info.value.error_args)


def test_disabled_auth_accepts_everything():
    gateway = ConnectionGateway.from_settings(Settings(room_store="memory", auth_required=False))

    assert gateway.authenticate("sid-1", {}, None) is None
    assert gateway.verifier is None
