"""Integration tests for /api/auth endpoints through the full FastAPI stack."""

import pytest

EMAIL = "rumi@example.com"
PASSWORD = "longenough"


def _signup(client, username="rumi", email=EMAIL, password=PASSWORD, **extra):
    body = {
        "username": username,
        "email": email,
        "password": password,
        "confirm_password": password,
        **extra,
    }
    return client.post("/api/auth/signup", json=body)


def _verify(client, mailer, email=EMAIL):
    code = mailer.last_code(email, "email-verification")
    return client.post("/api/auth/verify-email", json={"email": email, "code": code})


def _session(client, mailer, username="rumi", email=EMAIL):
    assert _signup(client, username=username, email=email).status_code == 201
    resp = _verify(client, mailer, email)
    assert resp.status_code == 200
    return resp.json()


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _wrong(code):
    return "".join(str((int(d) + 1) % 10) for d in code)


class TestSignup:
    def test_creates_unverified_account(self, client, mailer):
        resp = _signup(client, display_name="Jalal")
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["requires_verification"] is True
        assert body["expires_in"] == 300
        assert body["user"]["email_verified"] is False
        assert body["user"]["display_name"] == "Jalal"
        assert "password_hash" not in body["user"]
        assert "refresh_tokens" not in body["user"]
        assert "access_token" not in body
        assert len(mailer.sent) == 1

    def test_accepts_camel_case_keys(self, client):
        resp = client.post(
            "/api/auth/signup",
            json={
                "username": "rumi",
                "email": EMAIL,
                "password": PASSWORD,
                "confirmPassword": PASSWORD,
                "displayName": "Jalal",
            },
        )
        assert resp.status_code == 201
        assert resp.json()["user"]["display_name"] == "Jalal"

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"email": "not-an-email"}, "email"),
            ({"username": "x"}, "username"),
            ({"password": "short", "confirm_password": "short"}, "password"),
            ({"confirm_password": "different1"}, None),
        ],
        ids=["bad_email", "short_username", "short_password", "mismatch"],
    )
    def test_validation_errors_are_400(self, client, mailer, overrides, field):
        body = {
            "username": "rumi",
            "email": EMAIL,
            "password": PASSWORD,
            "confirm_password": PASSWORD,
            **overrides,
        }
        resp = client.post("/api/auth/signup", json=body)
        assert resp.status_code == 400
        payload = resp.json()
        assert payload["code"] == "validation_error"
        if field:
            assert payload["field"] == field
        assert mailer.sent == []

    def test_duplicate_email_rejected(self, client):
        _signup(client)
        resp = _signup(client, username="hafez", email="RUMI@example.com")
        assert resp.status_code == 400
        assert resp.json()["code"] == "duplicate_identity"
        assert resp.json()["field"] == "email"

    def test_mail_failure_rolls_back(self, client, mailer, mongo_db):
        mailer.fail = True
        resp = _signup(client)
        assert resp.status_code == 500
        assert resp.json()["code"] == "email_dispatch_failed"
        assert mongo_db.raw["users"].count_documents({}) == 0
        assert mongo_db.raw["otps"].count_documents({}) == 0

        mailer.fail = False
        assert _signup(client).status_code == 201


class TestVerifyEmail:
    def test_unverified_until_code_consumed(self, client, mailer):
        _signup(client)
        login = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
        assert login.status_code == 403

        resp = _verify(client, mailer)
        assert resp.status_code == 200
        body = resp.json()
        assert body["user"]["email_verified"] is True
        assert body["access_token"] and body["refresh_token"]

        login = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
        assert login.status_code == 200

    def test_code_consumed_exactly_once(self, client, mailer):
        _signup(client)
        code = mailer.last_code(EMAIL, "email-verification")
        first = client.post("/api/auth/verify-email", json={"email": EMAIL, "code": code})
        second = client.post("/api/auth/verify-email", json={"email": EMAIL, "code": code})
        assert first.status_code == 200
        assert second.status_code == 400

    def test_fifth_wrong_attempt_kills_code(self, client, mailer):
        _signup(client)
        code = mailer.last_code(EMAIL, "email-verification")
        for remaining in (4, 3, 2, 1):
            resp = client.post(
                "/api/auth/verify-email", json={"email": EMAIL, "code": _wrong(code)}
            )
            assert resp.status_code == 400
            assert resp.json()["details"]["attempts_remaining"] == remaining

        resp = client.post(
            "/api/auth/verify-email", json={"email": EMAIL, "code": _wrong(code)}
        )
        assert resp.json()["code"] == "code_attempts_exceeded"

        resp = client.post("/api/auth/verify-email", json={"email": EMAIL, "code": code})
        assert resp.status_code == 400

    def test_malformed_code(self, client):
        resp = client.post("/api/auth/verify-email", json={"email": EMAIL, "code": "12ab"})
        assert resp.status_code == 400
        assert resp.json()["field"] == "code"

    def test_resend_is_generic(self, client, mailer):
        _signup(client)
        known = client.post("/api/auth/resend-verification", json={"email": EMAIL})
        unknown = client.post(
            "/api/auth/resend-verification", json={"email": "nobody@example.com"}
        )
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert len(mailer.sent) == 2


class TestLogin:
    def test_success_returns_tokens(self, client, mailer):
        _session(client, mailer)
        resp = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
        body = resp.json()
        assert resp.status_code == 200
        assert body["user"]["email"] == EMAIL
        assert body["user"]["last_login_at"] is not None

    @pytest.mark.parametrize(
        "email, password",
        [(EMAIL, "longenougH"), (EMAIL, "longenough "), ("nobody@example.com", PASSWORD)],
        ids=["one_char_off", "trailing_space", "unknown_email"],
    )
    def test_generic_401(self, client, mailer, email, password):
        _session(client, mailer)
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid email or password"

    def test_unverified_flag(self, client):
        _signup(client)
        resp = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
        assert resp.status_code == 403
        assert resp.json()["requires_email_verification"] is True


class TestSessions:
    def test_me_requires_auth(self, client):
        assert client.get("/api/auth/me").status_code == 401
        assert client.get("/api/auth/me", headers=_bearer("garbage")).status_code == 401

    def test_me(self, client, mailer):
        session = _session(client, mailer)
        resp = client.get("/api/auth/me", headers=_bearer(session["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["user"]["username"] == "rumi"

    def test_refresh(self, client, mailer):
        session = _session(client, mailer)
        resp = client.post(
            "/api/auth/refresh", json={"refreshToken": session["refresh_token"]}
        )
        assert resp.status_code == 200
        new_access = resp.json()["access_token"]
        assert client.get("/api/auth/me", headers=_bearer(new_access)).status_code == 200

    def test_refresh_with_access_token_rejected(self, client, mailer):
        session = _session(client, mailer)
        resp = client.post(
            "/api/auth/refresh", json={"refresh_token": session["access_token"]}
        )
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid or expired refresh token"

    def test_logout_revokes_refresh_token(self, client, mailer):
        session = _session(client, mailer)
        resp = client.post(
            "/api/auth/logout",
            json={"refresh_token": session["refresh_token"]},
            headers=_bearer(session["access_token"]),
        )
        assert resp.status_code == 200
        resp = client.post(
            "/api/auth/refresh", json={"refresh_token": session["refresh_token"]}
        )
        assert resp.status_code == 401

    def test_logout_all(self, client, mailer):
        session = _session(client, mailer)
        other = client.post(
            "/api/auth/login", json={"email": EMAIL, "password": PASSWORD}
        ).json()
        resp = client.post("/api/auth/logout-all", headers=_bearer(session["access_token"]))
        assert resp.status_code == 200
        for token in (session["refresh_token"], other["refresh_token"]):
            assert (
                client.post("/api/auth/refresh", json={"refresh_token": token}).status_code
                == 401
            )


class TestPasswordReset:
    def test_request_is_identical_for_unknown_email(self, client, mailer):
        _session(client, mailer)
        known = client.post("/api/auth/request-password-reset", json={"email": EMAIL})
        unknown = client.post(
            "/api/auth/request-password-reset", json={"email": "nobody@example.com"}
        )
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    def test_reset_kills_old_sessions(self, client, mailer):
        session = _session(client, mailer)
        client.post("/api/auth/request-password-reset", json={"email": EMAIL})
        code = mailer.last_code(EMAIL, "password-reset")

        resp = client.post(
            "/api/auth/reset-password",
            json={
                "email": EMAIL,
                "code": code,
                "new_password": "brandnewpass",
                "confirm_password": "brandnewpass",
            },
        )
        assert resp.status_code == 200

        refresh = client.post(
            "/api/auth/refresh", json={"refresh_token": session["refresh_token"]}
        )
        assert refresh.status_code == 401
        me = client.get("/api/auth/me", headers=_bearer(session["access_token"]))
        assert me.status_code == 401

        old = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
        assert old.status_code == 401
        new = client.post(
            "/api/auth/login", json={"email": EMAIL, "password": "brandnewpass"}
        )
        assert new.status_code == 200

    def test_wrong_code(self, client, mailer):
        _session(client, mailer)
        client.post("/api/auth/request-password-reset", json={"email": EMAIL})
        code = mailer.last_code(EMAIL, "password-reset")
        resp = client.post(
            "/api/auth/reset-password",
            json={
                "email": EMAIL,
                "code": _wrong(code),
                "new_password": "brandnewpass",
                "confirm_password": "brandnewpass",
            },
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "code_mismatch"


class TestRateLimits:
    def _login(self, client, **headers):
        return client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": PASSWORD},
            headers=headers,
        )

    def test_sixth_login_from_same_client_is_429(self, client):
        for _ in range(5):
            assert self._login(client).status_code == 401
        resp = self._login(client)
        assert resp.status_code == 429
        assert resp.json()["code"] == "rate_limit_exceeded"
        retry_after = resp.json()["details"]["retry_after_seconds"]
        assert 0 < retry_after <= 15 * 60 + 1
        assert resp.headers["Retry-After"] == str(retry_after)

    def test_other_client_ip_unaffected(self, client):
        for _ in range(6):
            self._login(client, **{"X-Forwarded-For": "203.0.113.7"})
        resp = self._login(client, **{"X-Forwarded-For": "198.51.100.2"})
        assert resp.status_code == 401

    def test_signup_shares_the_login_bucket(self, client):
        for _ in range(5):
            self._login(client)
        assert _signup(client).status_code == 429

    def test_code_guessing_is_capped_per_client(self, client, mailer):
        _signup(client)
        code = mailer.last_code(EMAIL, "email-verification")
        # Spread over several addresses so no single code hits its own ceiling
        for i in range(10):
            resp = client.post(
                "/api/auth/verify-email",
                json={"email": f"guess{i}@example.com", "code": _wrong(code)},
            )
            assert resp.status_code == 400
        resp = client.post("/api/auth/verify-email", json={"email": EMAIL, "code": code})
        assert resp.status_code == 429

    def test_reset_requests_capped_per_client(self, client):
        for _ in range(3):
            resp = client.post(
                "/api/auth/request-password-reset", json={"email": EMAIL}
            )
            assert resp.status_code == 200
        resp = client.post("/api/auth/request-password-reset", json={"email": EMAIL})
        assert resp.status_code == 429

    def test_limit_applies_before_body_validation(self, client):
        for _ in range(5):
            client.post("/api/auth/login", json={})
        assert client.post("/api/auth/login", json={}).status_code == 429
