"""
Tests — Authentication and first-run setup.

Covers:
    - Login: credentials, inactive users, HttpOnly session cookie
    - Refresh-token rotation and revocation on logout
    - Token type checks (refresh tokens are not access tokens)
    - Password hashing helpers
    - /setup/check and first-admin creation
"""

from ceti.models import db
from ceti.models.user import AuthSession, User
from ceti.utils.crypto import hash_password, verify_password


def _login(client, email="maria.lopez@ceti.mx", password="secreto123"):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


# ═════════════════════════════════════════════════════════════════════════════
# CRYPTO
# ═════════════════════════════════════════════════════════════════════════════

class TestCrypto:
    def test_bcrypt_round_trip(self):
        hashed = hash_password("secreto123")
        assert hashed.startswith("$2b$")
        assert verify_password("secreto123", hashed)
        assert not verify_password("otro", hashed)

    def test_empty_hash_never_matches(self):
        assert not verify_password("secreto123", "")


# ═════════════════════════════════════════════════════════════════════════════
# LOGIN / REFRESH / LOGOUT
# ═════════════════════════════════════════════════════════════════════════════

class TestAuthAPI:
    def test_login_returns_tokens_and_cookie(self, app, client, collaborator):
        res = _login(client, email="  MARIA.LOPEZ@ceti.mx ")
        assert res.status_code == 200
        data = res.get_json()
        assert data["token_type"] == "Bearer"
        assert data["access_token"] and data["refresh_token"]
        assert data["user"]["email"] == "maria.lopez@ceti.mx"

        cookie = client.get_cookie(app.config["SESSION_COOKIE_NAME"])
        assert cookie is not None
        assert cookie.value == data["access_token"]
        assert cookie.http_only

        assert AuthSession.query.filter_by(user_id=collaborator.id, is_active=True).count() == 1

    def test_cookie_authenticates_follow_up_requests(self, client, collaborator):
        _login(client)
        res = client.get("/api/v1/auth/me")
        assert res.status_code == 200
        assert res.get_json()["user"]["id"] == collaborator.id

    def test_login_updates_last_login(self, client, collaborator):
        _login(client)
        assert db.session.get(User, collaborator.id).last_login_at is not None

    def test_wrong_password(self, client, collaborator):
        res = _login(client, password="incorrecta")
        assert res.status_code == 401
        assert res.get_json()["error"] == "Credenciales inválidas"

    def test_unknown_email(self, client):
        res = _login(client, email="nadie@ceti.mx")
        assert res.status_code == 401
        assert res.get_json()["error"] == "Credenciales inválidas"

    def test_inactive_user(self, client, make_user):
        make_user("Inactivo", "inactivo@ceti.mx", is_active=False)
        res = _login(client, email="inactivo@ceti.mx")
        assert res.status_code == 401
        assert res.get_json()["error"] == "Usuario inactivo"

    def test_missing_fields(self, client):
        res = client.post("/api/v1/auth/login", json={"email": "maria.lopez@ceti.mx"})
        assert res.status_code == 400

    def test_refresh_rotates_token(self, client, collaborator):
        old_refresh = _login(client).get_json()["refresh_token"]

        res = client.post("/api/v1/auth/refresh", json={"refreshToken": old_refresh})
        assert res.status_code == 200
        new_refresh = res.get_json()["refresh_token"]
        assert new_refresh != old_refresh

        res = client.post("/api/v1/auth/refresh", json={"refresh_token": old_refresh})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Sesión no encontrada o revocada"

        res = client.post("/api/v1/auth/refresh", json={"refresh_token": new_refresh})
        assert res.status_code == 200

    def test_refresh_with_garbage(self, client):
        res = client.post("/api/v1/auth/refresh", json={"refresh_token": "no-es-un-jwt"})
        assert res.status_code == 401

    def test_refresh_token_is_not_an_access_token(self, client, collaborator):
        refresh = _login(client).get_json()["refresh_token"]
        res = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {refresh}"})
        assert res.status_code == 401

    def test_logout_revokes_and_clears_cookie(self, app, client, collaborator):
        refresh = _login(client).get_json()["refresh_token"]

        res = client.post("/api/v1/auth/logout", json={"refresh_token": refresh})
        assert res.status_code == 200
        assert client.get_cookie(app.config["SESSION_COOKIE_NAME"]) is None

        res = client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})
        assert res.status_code == 401
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_logout_everywhere(self, client, collaborator, auth_headers):
        _login(client)
        _login(client)
        res = client.post("/api/v1/auth/logout", headers=auth_headers(collaborator))
        assert res.status_code == 200
        assert AuthSession.query.filter_by(user_id=collaborator.id, is_active=True).count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# FIRST-RUN SETUP
# ═════════════════════════════════════════════════════════════════════════════

class TestSetup:
    def test_needs_setup_on_empty_database(self, client):
        res = client.get("/api/v1/setup/check")
        assert res.get_json() == {"needs_setup": True}

    def test_create_first_admin(self, client):
        res = client.post("/api/v1/setup", json={
            "name": "Administrador CETI", "email": "admin@ceti.mx", "password": "segura1",
        })
        assert res.status_code == 201
        assert res.get_json()["user"]["role"] == "ADMIN"
        assert client.get("/api/v1/setup/check").get_json() == {"needs_setup": False}

        assert _login(client, email="admin@ceti.mx", password="segura1").status_code == 200

    def test_setup_refused_once_admin_exists(self, client, admin):
        res = client.post("/api/v1/setup", json={
            "name": "Intruso", "email": "intruso@ceti.mx", "password": "segura1",
        })
        assert res.status_code == 400
        assert res.get_json()["error"] == "El sistema ya fue configurado"
        assert User.query.count() == 1

    def test_setup_validates_password(self, client):
        res = client.post("/api/v1/setup", json={
            "name": "Admin", "email": "admin@ceti.mx", "password": "123",
        })
        assert res.status_code == 400
