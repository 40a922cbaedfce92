import time

import jwt
import pytest
from fastapi import HTTPException

from statdesk.auth.verify import admin_dependency, is_admin, verify_jwt
from statdesk.config import settings


def _token(**claims):
    payload = {"sub": "7", "exp": int(time.time()) + 60, **claims}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def test_verify_jwt_returns_claims():
    claims = verify_jwt(_token(role="admin"))

    assert claims["sub"] == "7"
    assert claims["role"] == "admin"


def test_verify_jwt_rejects_expired_and_forged_tokens():
    expired = _token(exp=int(time.time()) - 10)
    forged = jwt.encode({"sub": "7"}, "another-secret-that-is-long-enough", algorithm="HS256")

    for token in (expired, forged, "not-a-token"):
        with pytest.raises(HTTPException) as exc:
            verify_jwt(token)
        assert exc.value.status_code == 401


def test_is_admin_checks_role_and_roles():
    assert is_admin({"role": "admin"})
    assert is_admin({"roles": ["staff", "admin"]})
    assert not is_admin({"role": "staff"})
    assert not is_admin({})


def test_admin_dependency_forbids_staff():
    with pytest.raises(HTTPException) as exc:
        admin_dependency({"sub": "1", "role": "staff"})

    assert exc.value.status_code == 403
