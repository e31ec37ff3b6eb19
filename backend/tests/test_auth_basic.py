import jwt
import pytest
from fastapi import HTTPException

import auth


def test_create_and_verify_access_token_contains_sub_and_role():
    """A token from create_access_token decodes back to its claims."""
    token = auth.create_access_token({"sub": 17, "role": "staff"})
    assert isinstance(token, str)
    # header.payload.signature
    assert len(token.split(".")) == 3

    payload = auth.verify_token(token)
    assert payload is not None
    assert payload["sub"] == "17"
    assert payload["role"] == "staff"
    assert "exp" in payload


def test_verify_token_returns_none_for_invalid_token():
    assert auth.verify_token("invalid.token.value") is None


def test_verify_token_returns_none_for_expired_token():
    token = auth.create_access_token({"sub": 1, "role": "admin"}, expires_minutes=-1)
    assert auth.verify_token(token) is None


def test_token_signed_with_other_key_is_rejected():
    forged = jwt.encode({"sub": "1", "role": "admin"}, "not-the-key", algorithm=auth.ALGORITHM)
    assert auth.verify_token(forged) is None


@pytest.mark.parametrize("payload", [
    None,
    {"role": "admin"},
    {"sub": "abc", "role": "admin"},
    {"sub": "3", "role": "chef"},
])
def test_actor_from_payload_rejects_incomplete_claims(payload):
    assert auth.actor_from_payload(payload) is None


def test_actor_from_payload():
    actor = auth.actor_from_payload({"sub": "8", "role": "customer"})
    assert actor == auth.Actor(id=8, role="customer")
    assert actor.is_customer


def test_optional_actor_without_header_is_anonymous():
    assert auth.get_optional_actor(None) is None


def test_optional_actor_rejects_non_bearer_header():
    with pytest.raises(HTTPException) as exc_info:
        auth.get_optional_actor("Basic dXNlcjpwYXNz")
    assert exc_info.value.status_code == 401


def test_require_roles():
    admin_only = auth.require_roles(auth.ROLE_ADMIN)
    admin = auth.Actor(id=1, role="admin")

    assert admin_only(admin) is admin
    with pytest.raises(HTTPException) as exc_info:
        admin_only(auth.Actor(id=2, role="staff"))
    assert exc_info.value.status_code == 403
