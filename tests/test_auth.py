"""
Tests for login, logout, registration and email confirmation.
"""

from unittest import mock

from sqlalchemy import select

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, flashes
from extensions import db
from shelfops.models import EmailConfirmation, User
from shelfops.repos import UserRepo


def _token_for(app, email):
    with app.app_context():
        user = UserRepo(db.session).get_by_email(email)
        return db.session.scalar(select(EmailConfirmation.token).where(EmailConfirmation.user_id == user.id))


class TestLogin:
    """Tests for POST /login."""

    def test_form_renders(self, client):
        response = client.get("/login")
        assert response.status_code == 200
        assert b'name="email"' in response.data

    def test_success_redirects_home(self, client):
        response = client.post("/login", data={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert response.status_code == 302
        assert response.location == "/"
        with client.session_transaction() as sess:
            assert sess["user_id"] is not None

    def test_email_is_case_insensitive(self, client):
        response = client.post("/login", data={"email": "ADMIN@admin.com", "password": ADMIN_PASSWORD})
        assert response.status_code == 302

    def test_wrong_password(self, client):
        response = client.post("/login", data={"email": ADMIN_EMAIL, "password": "nope"})
        assert response.status_code == 200
        assert b"These credentials do not match our records." in response.data
        with client.session_transaction() as sess:
            assert "user_id" not in sess

    def test_unknown_email(self, client):
        response = client.post("/login", data={"email": "ghost@example.com", "password": "whatever"})
        assert b"These credentials do not match our records." in response.data

    def test_missing_fields(self, client):
        response = client.post("/login", data={"email": ADMIN_EMAIL})
        assert b"The email and password fields are required." in response.data

    def test_next_is_followed(self, client):
        response = client.post("/login?next=/books", data={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert response.location == "/books"

    def test_external_next_is_ignored(self, client):
        response = client.post(
            "/login?next=https://evil.example.com/", data={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD}
        )
        assert response.location == "/"

    def test_protocol_relative_next_is_ignored(self, client):
        response = client.post("/login?next=//evil.example.com", data={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert response.location == "/"

    def test_signed_in_user_skips_form(self, admin_client):
        response = admin_client.get("/login")
        assert response.status_code == 302
        assert response.location == "/"

    def test_unconfirmed_user_sent_to_awaiting(self, client, factory):
        factory.setting("registration-confirmation", True)
        factory.user("Pending", "pending@example.com", password="secret1", confirmed=False)
        response = client.post("/login", data={"email": "pending@example.com", "password": "secret1"})
        assert response.location == "/register/confirm/awaiting"


class TestLogout:
    def test_logout_clears_session(self, admin_client):
        response = admin_client.get("/logout")
        assert response.location == "/"
        assert "Logged out successfully." in flashes(admin_client)
        with admin_client.session_transaction() as sess:
            assert "user_id" not in sess

    def test_guest_logout(self, client):
        response = client.get("/logout")
        assert response.status_code == 302


class TestRegistration:
    """Tests for /register with the registration settings."""

    def test_disabled_by_default(self, client):
        response = client.get("/register")
        assert response.location == "/login"
        assert "Registrations are currently disabled" in flashes(client)

    def test_disabled_post_creates_nothing(self, app, client):
        client.post("/register", data={"name": "New", "email": "new@example.com", "password": "secret1"})
        with app.app_context():
            assert UserRepo(db.session).get_by_email("new@example.com") is None

    def test_form_renders_when_enabled(self, client, factory):
        factory.setting("registration-enabled", True)
        response = client.get("/register")
        assert response.status_code == 200
        assert b'name="password"' in response.data

    def test_register_signs_in_with_default_role(self, app, client, factory):
        factory.setting("registration-enabled", True)
        response = client.post(
            "/register", data={"name": "Nina New", "email": "Nina@Example.com", "password": "secret1"}
        )
        assert response.location == "/"
        assert "Thanks for signing up Nina New!" in flashes(client)
        with app.app_context():
            user = UserRepo(db.session).get_by_email("nina@example.com")
            assert user.email_confirmed
            assert [r.name for r in user.roles] == ["viewer"]
        with client.session_transaction() as sess:
            assert sess["user_id"] == user.id

    def test_register_uses_configured_role(self, app, client, factory):
        factory.setting("registration-enabled", True)
        factory.setting("registration-role", "editor")
        client.post("/register", data={"name": "Nina New", "email": "nina@example.com", "password": "secret1"})
        with app.app_context():
            user = UserRepo(db.session).get_by_email("nina@example.com")
            assert [r.name for r in user.roles] == ["editor"]

    def test_taken_email(self, client, factory, viewer_id):
        factory.setting("registration-enabled", True)
        response = client.post(
            "/register", data={"name": "Copy", "email": "viewer@example.com", "password": "secret1"}
        )
        assert response.status_code == 200
        assert b"The email has already been taken." in response.data

    def test_validation_errors(self, client, factory):
        factory.setting("registration-enabled", True)
        response = client.post("/register", data={"name": "", "email": "not-an-email", "password": "abc"})
        assert response.status_code == 200
        assert b"The name field is required." in response.data
        assert b"The email must be a valid email address." in response.data
        assert b"The password must be at least 6 characters." in response.data

    def test_domain_restriction(self, app, client, factory):
        factory.setting("registration-enabled", True)
        factory.setting("registration-restrict", "example.com")
        response = client.post(
            "/register", data={"name": "Outsider", "email": "out@other.org", "password": "secret1"}
        )
        assert response.location == "/register"
        assert "That email domain does not have access to this application" in flashes(client)
        with app.app_context():
            assert UserRepo(db.session).get_by_email("out@other.org") is None

    def test_allowed_domain(self, client, factory):
        factory.setting("registration-enabled", True)
        factory.setting("registration-restrict", "example.com, corp.org")
        response = client.post(
            "/register", data={"name": "Insider", "email": "in@corp.org", "password": "secret1"}
        )
        assert response.location == "/"


class TestEmailConfirmation:
    """Tests for the registration confirmation flow."""

    def _register(self, client, factory):
        factory.setting("registration-enabled", True)
        factory.setting("registration-confirmation", True)
        return client.post(
            "/register", data={"name": "Paula Pending", "email": "paula@example.com", "password": "secret1"}
        )

    def test_register_sends_confirmation(self, app, client, factory):
        response = self._register(client, factory)
        assert response.location == "/register/confirm"
        assert _token_for(app, "paula@example.com")
        with app.app_context():
            assert not UserRepo(db.session).get_by_email("paula@example.com").email_confirmed
        with client.session_transaction() as sess:
            assert "user_id" not in sess

    def test_confirmation_mail_sent_to_user(self, app, client, factory):
        with mock.patch.object(app.extensions["mailer"], "send") as send:
            self._register(client, factory)
        send.assert_called_once()
        assert send.call_args.kwargs["to"] == "paula@example.com"
        assert send.call_args.args[0] == "emails/email_confirmation.html"
        token = _token_for(app, "paula@example.com")
        assert send.call_args.args[1]["confirm_url"] == f"http://localhost/register/confirm/{token}"

    def test_mail_failure_still_creates_account(self, app, client, factory):
        with mock.patch.object(app.extensions["mailer"], "send", side_effect=OSError("smtp down")):
            response = self._register(client, factory)
        assert response.location == "/register/confirm"
        assert "Confirmation email could not be sent, Please try again later." in flashes(client)
        with app.app_context():
            assert UserRepo(db.session).get_by_email("paula@example.com") is not None

    def test_confirm_token_signs_in(self, app, client, factory):
        self._register(client, factory)
        token = _token_for(app, "paula@example.com")
        response = client.get(f"/register/confirm/{token}")
        assert response.location == "/"
        assert "Your email has been confirmed!" in flashes(client)
        with app.app_context():
            user = UserRepo(db.session).get_by_email("paula@example.com")
            assert user.email_confirmed
            assert db.session.scalars(select(EmailConfirmation)).all() == []

    def test_invalid_token(self, client, factory):
        response = client.get("/register/confirm/not-a-token")
        assert response.location == "/register"

    def test_unconfirmed_user_is_held_back(self, app, client, factory, client_for):
        self._register(client, factory)
        with app.app_context():
            user_id = UserRepo(db.session).get_by_email("paula@example.com").id
        pending = client_for(user_id)
        response = pending.get("/books")
        assert response.location == "/register/confirm/awaiting"
        awaiting = pending.get("/register/confirm/awaiting")
        assert awaiting.status_code == 200
        assert b"paula@example.com" in awaiting.data

    def test_awaiting_needs_sign_in(self, client):
        response = client.get("/register/confirm/awaiting")
        assert response.location == "/login"

    def test_resend_replaces_token(self, app, client, factory):
        self._register(client, factory)
        old_token = _token_for(app, "paula@example.com")
        response = client.post("/register/confirm/resend", data={"email": "paula@example.com"})
        assert response.location == "/register/confirm"
        new_token = _token_for(app, "paula@example.com")
        assert new_token and new_token != old_token

    def test_resend_unknown_email(self, client):
        response = client.post("/register/confirm/resend", data={"email": "ghost@example.com"})
        assert response.location == "/register/confirm/awaiting"
        assert "No user could be found with that email address." in flashes(client)

    def test_resend_for_confirmed_user(self, client, viewer_id):
        response = client.post("/register/confirm/resend", data={"email": "viewer@example.com"})
        assert response.location == "/login"

    def test_email_preview(self, client):
        response = client.get("/register/confirm/abc123/email")
        assert response.status_code == 200
        assert b"/register/confirm/abc123" in response.data
