"""Unit tests for auth/local.py -- LocalAuthStrategy.

Covers:
- register then login returns the same account id
- wrong password and unknown username raise the same InvalidCredentials
- federation-only accounts never authenticate with a password
- duplicate registration -> AlreadyExists, one account left
- empty / over-long inputs -> ValidationError naming the field
- the dummy-hash path runs bcrypt for unknown usernames (timing equalization)
"""

from unittest.mock import patch

import pytest

from auth.errors import AlreadyExists, InvalidCredentials, ValidationError
from auth.local import LocalAuthStrategy
from auth.store import AccountStore


def test_register_then_login_returns_same_account(local_auth: LocalAuthStrategy) -> None:
    registered = local_auth.register("alice", "s3cret!")
    logged_in = local_auth.login("alice", "s3cret!")
    assert logged_in.id == registered.id


def test_register_does_not_store_plaintext(local_auth: LocalAuthStrategy, store: AccountStore) -> None:
    account = local_auth.register("alice", "s3cret!")
    stored = store.get_by_id(account.id)
    assert stored.password_hash and stored.password_salt
    assert b"s3cret!" not in stored.password_hash


def test_register_strips_username(local_auth: LocalAuthStrategy) -> None:
    account = local_auth.register("  alice  ", "pw")
    assert account.username == "alice"
    assert local_auth.login("alice", "pw").id == account.id


def test_wrong_password_raises_invalid_credentials(local_auth: LocalAuthStrategy) -> None:
    local_auth.register("alice", "right")
    with pytest.raises(InvalidCredentials):
        local_auth.login("alice", "wrong")


def test_unknown_username_is_indistinguishable(local_auth: LocalAuthStrategy) -> None:
    local_auth.register("alice", "right")
    with pytest.raises(InvalidCredentials) as wrong_password:
        local_auth.login("alice", "wrong")
    with pytest.raises(InvalidCredentials) as unknown_user:
        local_auth.login("mallory", "wrong")
    assert type(wrong_password.value) is type(unknown_user.value)
    assert str(wrong_password.value) == str(unknown_user.value)


@pytest.mark.parametrize("username,password", [("", "pw"), ("alice", ""), ("", "")])
def test_login_with_empty_fields_fails(local_auth: LocalAuthStrategy, username: str, password: str) -> None:
    local_auth.register("alice", "pw")
    with pytest.raises(InvalidCredentials):
        local_auth.login(username, password)


def test_federation_only_account_cannot_password_login(local_auth: LocalAuthStrategy, store: AccountStore) -> None:
    federated = store.find_or_create_by_external_id("sub-1", "Fed User")
    assert federated.username is None
    with pytest.raises(InvalidCredentials):
        local_auth.login("", "")
    with pytest.raises(InvalidCredentials):
        local_auth.login("Fed User", "anything")


def test_unknown_username_still_runs_bcrypt(local_auth: LocalAuthStrategy) -> None:
    with patch.object(local_auth.hasher, "verify", wraps=local_auth.hasher.verify) as verify:
        with pytest.raises(InvalidCredentials):
            local_auth.login("ghost", "pw")
    verify.assert_called_once()


def test_duplicate_registration_raises_already_exists(local_auth: LocalAuthStrategy, store: AccountStore) -> None:
    first = local_auth.register("alice", "p1")
    with pytest.raises(AlreadyExists):
        local_auth.register("alice", "p2")
    assert store.count() == 1
    # The original password still works; the second one never took effect.
    assert local_auth.login("alice", "p1").id == first.id
    with pytest.raises(InvalidCredentials):
        local_auth.login("alice", "p2")


@pytest.mark.parametrize(
    "username,password,field",
    [
        ("", "pw", "username"),
        ("   ", "pw", "username"),
        ("alice", "", "password"),
        ("alice", "x" * 73, "password"),
    ],
)
def test_register_validation(local_auth: LocalAuthStrategy, username: str, password: str, field: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        local_auth.register(username, password)
    assert exc_info.value.field == field
