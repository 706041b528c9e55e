from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest
from sqlmodel import select
from starlette.requests import Request
from starlette.responses import Response

from authkit import database
from authkit.auth.access import Principal
from authkit.auth.cookies import SESSION_COOKIE_NAME, SessionCarrier
from authkit.auth.errors import (
    Conflict,
    Forbidden,
    NotFound,
    Unauthorized,
    ValidationError,
)
from authkit.auth.models import Account, AuditLog, Role
from authkit.auth.passwords import PasswordHasher
from authkit.auth.repository import AccountRepository
from authkit.auth.service import AuthenticationService, create_account


def _session_cookie(response: Response) -> str | None:
    for header in response.headers.getlist("set-cookie"):
        name, _, rest = header.partition("=")
        if name == SESSION_COOKIE_NAME:
            return rest.split(";", 1)[0]
    return None


def _request(token: str | None) -> Request:
    headers = []
    if token is not None:
        headers.append((b"cookie", f"{SESSION_COOKIE_NAME}={token}".encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


def _register(service: AuthenticationService, email: str = "amy@x.com", password: str = "secret1"):
    response = Response()
    account = service.register(response, name="Amy", email=email, password=password)
    return account, response


def test_register_returns_projection_without_digest(auth_service) -> None:
    account, response = _register(auth_service)

    assert account["name"] == "Amy"
    assert account["email"] == "amy@x.com"
    assert account["role"] == "user"
    assert account["isVerified"] is False
    assert account["bio"] == "I am a new user."
    assert set(account) == {"id", "name", "email", "role", "photo", "bio", "isVerified"}
    assert "password" not in str(account).lower()

    token = _session_cookie(response)
    assert token
    assert auth_service.tokens.verify(token).account_id == account["id"]


def test_register_normalizes_email_case(auth_service) -> None:
    account, _ = _register(auth_service, email="  Amy@X.com ")
    assert account["email"] == "amy@x.com"
    with pytest.raises(Conflict):
        _register(auth_service, email="AMY@x.com")


def test_register_duplicate_email_conflicts(auth_service) -> None:
    _register(auth_service)
    with pytest.raises(Conflict):
        _register(auth_service)


@pytest.mark.parametrize(
    "name,email,password",
    [
        ("", "amy@x.com", "secret1"),
        ("Amy", "", "secret1"),
        ("Amy", "amy@x.com", ""),
        ("Amy", "amy@x.com", "short"),
        ("Amy", "not-an-email", "secret1"),
        ("   ", "amy@x.com", "secret1"),
    ],
)
def test_register_validation(auth_service, name, email, password) -> None:
    response = Response()
    with pytest.raises(ValidationError):
        auth_service.register(response, name=name, email=email, password=password)
    assert _session_cookie(response) is None


def test_login_success_issues_session(auth_service) -> None:
    registered, _ = _register(auth_service)
    response = Response()
    account = auth_service.login(response, email="AMY@x.com", password="secret1")

    assert account["id"] == registered["id"]
    token = _session_cookie(response)
    assert auth_service.tokens.verify(token).account_id == registered["id"]
    assert auth_service.current_session(_request(token)) == registered["id"]


def test_login_wrong_password_sets_no_cookie(auth_service, db_session) -> None:
    _register(auth_service)
    response = Response()
    with pytest.raises(Unauthorized):
        auth_service.login(response, email="amy@x.com", password="wrong-pass")
    assert _session_cookie(response) is None

    failures = db_session.exec(select(AuditLog).where(AuditLog.action == "login_failed")).all()
    assert len(failures) == 1


def test_login_unknown_email_is_not_found(auth_service) -> None:
    with pytest.raises(NotFound):
        auth_service.login(Response(), email="nobody@x.com", password="secret1")


def test_login_requires_fields(auth_service) -> None:
    with pytest.raises(ValidationError):
        auth_service.login(Response(), email="amy@x.com", password="")


def test_current_session_absent_cases(auth_service, clock) -> None:
    account, response = _register(auth_service)
    token = _session_cookie(response)

    assert auth_service.current_session(_request(None)) is None
    assert auth_service.current_session(_request("forged.token")) is None
    assert auth_service.session_status(_request(token)) is True

    clock.advance(days=30)
    assert auth_service.current_session(_request(token)) is None
    assert auth_service.session_status(_request(token)) is False


def test_logout_always_clears_cookie(auth_service) -> None:
    response = Response()
    auth_service.logout(response)
    header = response.headers["set-cookie"]
    assert header.startswith(f"{SESSION_COOKIE_NAME}=")
    assert "Max-Age=0" in header

    again = Response()
    auth_service.logout(again, _request("garbage"))
    assert "Max-Age=0" in again.headers["set-cookie"]


def test_update_profile(auth_service) -> None:
    account, _ = _register(auth_service)
    updated = auth_service.update_profile(account["id"], name=" Amy B ", bio="Hello", photo="p.png")
    assert updated["name"] == "Amy B"
    assert updated["bio"] == "Hello"
    assert updated["photo"] == "p.png"
    assert auth_service.get_profile(account["id"]) == updated

    with pytest.raises(ValidationError):
        auth_service.update_profile(account["id"], name="  ")
    assert auth_service.update_profile(account["id"]) == updated


def test_get_profile_missing_account(auth_service) -> None:
    with pytest.raises(NotFound):
        auth_service.get_profile(999)


def _principal(account: Account) -> Principal:
    return Principal.from_account(account)


def _one_of_each_role(service: AuthenticationService, hasher) -> tuple[Account, Account, Account]:
    return tuple(
        create_account(
            service.repository,
            hasher,
            service.config,
            name=role.value.title(),
            email=f"{role.value[0]}@x.com",
            password="secret1",
            role=role,
        )
        for role in (Role.USER, Role.CREATOR, Role.ADMIN)
    )


def test_list_accounts_requires_creator_or_admin(auth_service, hasher) -> None:
    user, creator, admin = _one_of_each_role(auth_service, hasher)

    with pytest.raises(Forbidden):
        auth_service.list_accounts(_principal(user))
    listed = auth_service.list_accounts(_principal(creator))
    assert [entry["email"] for entry in listed] == ["u@x.com", "c@x.com", "a@x.com"]
    assert len(auth_service.list_accounts(_principal(admin))) == 3


def test_delete_account_admin_only(auth_service, hasher, db_session) -> None:
    user, creator, admin = _one_of_each_role(auth_service, hasher)

    with pytest.raises(Forbidden):
        auth_service.delete_account(_principal(creator), user.id)
    with pytest.raises(Forbidden):
        auth_service.delete_account(_principal(admin), admin.id)
    with pytest.raises(NotFound):
        auth_service.delete_account(_principal(admin), 999)

    auth_service.delete_account(_principal(admin), user.id)
    assert auth_service.repository.find_by_id(user.id) is None
    audit = db_session.exec(select(AuditLog).where(AuditLog.action == "account_deleted")).first()
    assert audit is not None
    assert audit.actor_id == admin.id


def test_session_token_still_verifies_after_account_deletion(auth_service) -> None:
    account, response = _register(auth_service)
    token = _session_cookie(response)
    auth_service.repository.delete(account["id"])
    # The token still verifies cryptographically; resolving the account is the gate.
    assert auth_service.current_session(_request(token)) == account["id"]
    assert auth_service.repository.find_by_id(account["id"]) is None


def test_register_token_lifetime_matches_cookie(auth_service, config) -> None:
    account, response = _register(auth_service)
    data = auth_service.tokens.verify(_session_cookie(response))
    assert data.expires_at - data.issued_at == config.session_ttl
    assert f"Max-Age={int(config.session_ttl / timedelta(seconds=1))}" in response.headers["set-cookie"]


def _stronger_service(auth_service: AuthenticationService, rounds: int = 5) -> AuthenticationService:
    config = replace(auth_service.config, bcrypt_rounds=rounds)
    return AuthenticationService(
        config,
        auth_service.repository,
        hasher=PasswordHasher(config),
        tokens=auth_service.tokens,
        carrier=SessionCarrier(config),
    )


def test_login_upgrades_outdated_digest(auth_service, db_session) -> None:
    account, _ = _register(auth_service)
    before = db_session.get(Account, account["id"]).password_hash
    assert before.startswith("$2b$04$")

    stronger = _stronger_service(auth_service)
    assert stronger.hasher.needs_rehash(before)
    response = Response()
    assert stronger.login(response, email="amy@x.com", password="secret1")["id"] == account["id"]
    assert _session_cookie(response)

    db_session.expire_all()
    after = db_session.get(Account, account["id"]).password_hash
    assert after != before
    assert after.startswith("$2b$05$")
    assert not stronger.hasher.needs_rehash(after)
    assert stronger.login(Response(), email="amy@x.com", password="secret1")


def test_login_survives_concurrent_password_change(auth_service, db_session, monkeypatch) -> None:
    account, _ = _register(auth_service)
    stronger = _stronger_service(auth_service)
    concurrent_digest = auth_service.hasher.hash("changed-elsewhere")
    original_replace = stronger.repository.replace_password

    def replace_after_concurrent_change(account_id: int, expected: str, new: str) -> bool:
        with database.SessionLocal() as other:
            AccountRepository(other).save(account_id, password_hash=concurrent_digest)
        return original_replace(account_id, expected, new)

    monkeypatch.setattr(stronger.repository, "replace_password", replace_after_concurrent_change)

    response = Response()
    assert stronger.login(response, email="amy@x.com", password="secret1")["id"] == account["id"]
    assert _session_cookie(response)

    db_session.expire_all()
    assert db_session.get(Account, account["id"]).password_hash == concurrent_digest
