import pytest
from argon2 import PasswordHasher

from arcana.utils.passwords import needs_rehash, verify_password
from conftest import ADMIN_EMAIL, PASSWORD, USER_EMAIL, login

pytestmark = pytest.mark.integration


def _set_cookie_headers(resp):
    return resp.headers.get_list("set-cookie")


class TestLogin:
    def test_success_sets_http_only_cookie(self, client, make_user):
        make_user()
        resp = login(client, " Reader@Example.com ")
        body = resp.json()
        assert body["message"] == "Login successful!"
        assert body["user"]["email"] == USER_EMAIL
        assert "password_hash" not in body["user"]
        cookie = _set_cookie_headers(resp)[0]
        assert cookie.startswith("access_token=")
        assert "HttpOnly" in cookie
        assert "Max-Age=604800" in cookie
        assert "samesite=lax" in cookie.lower()

    def test_remember_me_extends_cookie(self, client, make_user):
        make_user()
        resp = login(client, USER_EMAIL, remember_me=True)
        assert "Max-Age=2592000" in _set_cookie_headers(resp)[0]

    def test_outdated_hash_is_upgraded_on_login(self, client, make_user, database):
        user = make_user()
        weak = PasswordHasher(time_cost=1, memory_cost=8192, parallelism=1).hash(PASSWORD)
        database.update(user["id"], {"password_hash": weak}, "users")

        login(client, USER_EMAIL)
        upgraded = database.read(user["id"], "users")["password_hash"]
        assert upgraded != weak
        assert needs_rehash(upgraded) is False
        assert verify_password(PASSWORD, upgraded) is True

    def test_current_hash_is_left_alone(self, client, make_user, database):
        user = make_user()
        login(client, USER_EMAIL)
        assert database.read(user["id"], "users")["password_hash"] == user["password_hash"]

    @pytest.mark.parametrize(
        "payload, error",
        [
            ({}, "Email and password are required."),
            ({"email": "reader@example.com"}, "Email and password are required."),
            ({"email": "not-an-email", "password": PASSWORD}, "Enter a valid email."),
            ({"email": "nobody@example.com", "password": PASSWORD}, "Invalid credentials."),
            ({"email": USER_EMAIL, "password": "Wrong123!"}, "Invalid credentials."),
        ],
    )
    def test_form_errors(self, client, make_user, payload, error):
        make_user()
        resp = client.post("/api/auth/login", json=payload)
        assert resp.status_code == 200
        assert resp.json() == {"error": error}
        assert "set-cookie" not in resp.headers


class TestRegister:
    def test_register_creates_user_and_sends_welcome(self, client, database, mailer):
        resp = client.post(
            "/api/auth/register",
            json={"name": " New Reader ", "email": "New@Example.com", "password": PASSWORD},
        )
        assert resp.json() == {"success": True, "message": "Account created successfully!"}
        user = database.read_by("email", "new@example.com", "users")
        assert user["display_name"] == "New Reader"
        assert user["role"] == "user"
        assert user["password_hash"].startswith("$argon2id$")
        assert mailer.sent == [{"kind": "welcome", "to": "new@example.com", "name": "New Reader"}]
        login(client, "new@example.com")

    def test_admin_emails_are_elevated(self, client, database, monkeypatch):
        monkeypatch.setenv("ADMIN_EMAILS", ADMIN_EMAIL)
        client.post("/api/auth/register", json={"name": "Boss", "email": ADMIN_EMAIL, "password": PASSWORD})
        assert database.read_by("email", ADMIN_EMAIL, "users")["role"] == "admin"

    def test_welcome_failure_does_not_block_registration(self, client, mailer):
        mailer.fail = True
        resp = client.post("/api/auth/register", json={"name": "A", "email": "a@example.com", "password": PASSWORD})
        assert resp.json()["success"] is True

    @pytest.mark.parametrize(
        "payload, error",
        [
            ({"email": "a@example.com", "password": PASSWORD}, "Name, email and password are required."),
            ({"name": "A", "email": "bad", "password": PASSWORD}, "Enter a valid email."),
            (
                {"name": "A", "email": "a@example.com", "password": "short"},
                "Password must be at least 8 characters with lowercase and one uppercase or number.",
            ),
            ({"name": "A", "email": "a@example.com", "password": "a1" * 17}, "Password must be at most 32 characters."),
            ({"name": "A", "email": USER_EMAIL, "password": PASSWORD}, "Email already registered."),
        ],
    )
    def test_form_errors(self, client, make_user, mailer, payload, error):
        make_user()
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 200
        assert resp.json() == {"error": error}
        assert mailer.sent == []


class TestPasswordReset:
    def test_full_reset_flow(self, client, make_user, mailer):
        make_user()
        forgot = client.post("/api/auth/forgot", json={"email": USER_EMAIL}).json()
        assert forgot["success"] is True
        assert forgot["message"].startswith(f"Code sent to {USER_EMAIL}.")
        token = forgot["reset_token"]
        code = mailer.sent[-1]["code"]
        assert mailer.sent[-1]["kind"] == "password_reset"
        assert code not in token

        verified = client.post("/api/auth/verify", json={"code": code, "reset_token": token, "email": USER_EMAIL})
        assert verified.json() == {"success": True, "email": USER_EMAIL, "message": "Code verified successfully."}

        reset = client.post(
            "/api/auth/reset",
            json={
                "email": USER_EMAIL,
                "new_password": "NewSecret1",
                "confirm_password": "NewSecret1",
                "code": code,
                "reset_token": token,
            },
        )
        assert reset.json()["success"] is True

        old = client.post("/api/auth/login", json={"email": USER_EMAIL, "password": PASSWORD})
        assert old.json() == {"error": "Invalid credentials."}
        login(client, USER_EMAIL, password="NewSecret1")

    def test_forgot_unknown_email(self, client, mailer):
        resp = client.post("/api/auth/forgot", json={"email": "ghost@example.com"})
        assert resp.json() == {"error": "Email not found in our records."}
        assert mailer.sent == []

    def test_forgot_invalid_email(self, client):
        assert client.post("/api/auth/forgot", json={"email": "ghost"}).json() == {"error": "Enter a valid email."}

    def test_forgot_fails_when_email_cannot_be_sent(self, client, make_user, mailer):
        make_user()
        mailer.fail = True
        resp = client.post("/api/auth/forgot", json={"email": USER_EMAIL})
        assert resp.json() == {"error": "Failed to send reset email. Please try again."}

    def test_wrong_code_is_rejected(self, client, make_user, mailer):
        make_user()
        token = client.post("/api/auth/forgot", json={"email": USER_EMAIL}).json()["reset_token"]
        wrong = "000000" if mailer.sent[-1]["code"] != "000000" else "111111"
        resp = client.post("/api/auth/verify", json={"code": wrong, "reset_token": token})
        assert resp.json() == {"error": "Invalid verification code"}
        assert client.post("/api/auth/verify", json={"code": wrong}).json() == {
            "error": "Code and reset token are required."
        }

    @pytest.mark.parametrize(
        "payload, error",
        [
            ({"email": USER_EMAIL}, "Email and passwords are required."),
            (
                {"email": USER_EMAIL, "new_password": "NewSecret1", "confirm_password": "NewSecret2"},
                "Passwords must match.",
            ),
            (
                {"email": USER_EMAIL, "new_password": "weak", "confirm_password": "weak"},
                "Password must be at least 8 characters with lowercase and one uppercase or number.",
            ),
            (
                {"email": USER_EMAIL, "new_password": "NewSecret1", "confirm_password": "NewSecret1"},
                "Reset token and code are required",
            ),
        ],
    )
    def test_reset_form_errors(self, client, make_user, payload, error):
        make_user()
        assert client.post("/api/auth/reset", json=payload).json() == {"error": error}

    def test_reset_token_is_bound_to_email(self, client, make_user, mailer):
        make_user()
        make_user(email="other@example.com")
        token = client.post("/api/auth/forgot", json={"email": USER_EMAIL}).json()["reset_token"]
        code = mailer.sent[-1]["code"]
        resp = client.post(
            "/api/auth/reset",
            json={
                "email": "other@example.com",
                "new_password": "NewSecret1",
                "confirm_password": "NewSecret1",
                "code": code,
                "reset_token": token,
            },
        )
        assert resp.json() == {"error": "Reset token does not match this email"}


class TestSession:
    def test_verify_requires_cookie(self, client):
        resp = client.get("/api/auth/verify")
        assert resp.status_code == 403
        assert resp.json() == {"error": "No token provided."}

    def test_verify_rejects_garbage_cookie(self, client):
        client.cookies.set("access_token", "not-a-jwt")
        resp = client.get("/api/auth/verify")
        assert resp.status_code == 403
        assert resp.json() == {"error": "Invalid token."}

    def test_verify_returns_session_user(self, user_client, database):
        user = database.read_by("email", USER_EMAIL, "users")
        resp = user_client.get("/api/auth/verify")
        assert resp.json() == {
            "success": True,
            "valid": True,
            "user": {"id": user["id"], "email": USER_EMAIL, "role": "user"},
        }

    def test_logout_clears_cookie(self, user_client):
        resp = user_client.post("/api/auth/logout")
        assert resp.json() == {"success": True, "message": "Logged out successfully!"}
        cookie = _set_cookie_headers(resp)[0]
        assert cookie.startswith("access_token=")
        assert "Max-Age=0" in cookie
        assert user_client.get("/api/auth/verify").status_code == 403


class TestInternalSecret:
    def test_auth_routes_require_secret_when_configured(self, client, make_user, monkeypatch):
        make_user()
        monkeypatch.setenv("INTERNAL_API_KEY", "s3cret")
        payload = {"email": USER_EMAIL, "password": PASSWORD}
        denied = client.post("/api/auth/login", json=payload)
        assert denied.status_code == 401
        assert denied.json() == {"error": "Unauthorized"}
        wrong = client.post("/api/auth/login", json=payload, headers={"x-internal-secret": "nope"})
        assert wrong.status_code == 401
        allowed = client.post("/api/auth/login", json=payload, headers={"x-internal-secret": "s3cret"})
        assert allowed.json()["success"] is True
