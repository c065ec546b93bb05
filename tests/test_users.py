"""
Tests for user management and profiles.
"""

from types import SimpleNamespace

from conftest import flashes
from extensions import db
from shelfops.models import User
from shelfops.repos import UserRepo
from shelfops.security import verify_password

DENIED = "You do not have permission to access the requested page."


def _user(app, user_id):
    """Snapshot of a stored user, or None when it no longer exists."""
    with app.app_context():
        user = db.session.get(User, user_id)
        if user is None:
            return None
        return SimpleNamespace(
            name=user.name,
            email=user.email,
            password=user.password,
            role_names=[r.name for r in user.roles],
        )


class TestUserIndex:
    def test_lists_users(self, admin_client, viewer_id):
        response = admin_client.get("/settings/users")
        assert response.status_code == 200
        assert b"Vera Viewer" in response.data
        assert b"Admin" in response.data

    def test_requires_users_manage(self, viewer_client):
        response = viewer_client.get("/settings/users")
        assert response.location == "/"
        assert DENIED in flashes(viewer_client)


class TestUserCreate:
    def test_form(self, admin_client):
        response = admin_client.get("/settings/users/create")
        assert response.status_code == 200
        assert b'name="roles"' in response.data

    def test_create(self, app, admin_client, factory):
        editor_role = factory.role_id("editor")
        response = admin_client.post(
            "/settings/users",
            data={
                "name": "Carl Created",
                "email": "Carl@Example.com",
                "password": "secret",
                "password_confirm": "secret",
                "roles": ["", str(editor_role)],
            },
        )
        assert response.location == "/settings/users"
        assert "User successfully created" in flashes(admin_client)
        with app.app_context():
            user = UserRepo(db.session).get_by_email("carl@example.com")
            assert user.email_confirmed
            assert [r.name for r in user.roles] == ["editor"]
            assert verify_password("secret", user.password)

    def test_password_confirmation_must_match(self, admin_client):
        response = admin_client.post(
            "/settings/users",
            data={"name": "Carl", "email": "carl@example.com", "password": "secret", "password_confirm": "other"},
        )
        assert response.status_code == 200
        assert b"The password confirmation does not match." in response.data

    def test_email_taken(self, admin_client, viewer_id):
        response = admin_client.post(
            "/settings/users",
            data={"name": "Copy", "email": "viewer@example.com", "password": "secret", "password_confirm": "secret"},
        )
        assert b"The email has already been taken." in response.data

    def test_viewer_cannot_create(self, viewer_client):
        response = viewer_client.post(
            "/settings/users",
            data={"name": "Sneaky", "email": "s@example.com", "password": "secret", "password_confirm": "secret"},
        )
        assert response.location == "/"


class TestUserUpdate:
    def test_user_can_edit_self(self, viewer_client, viewer_id):
        response = viewer_client.get(f"/settings/users/{viewer_id}")
        assert response.status_code == 200
        assert b'value="Vera Viewer"' in response.data
        assert b'name="roles"' not in response.data

    def test_user_cannot_edit_others(self, viewer_client, factory):
        response = viewer_client.get(f"/settings/users/{factory.admin_id()}")
        assert response.location == "/"

    def test_self_update_ignores_roles(self, app, viewer_client, viewer_id, factory):
        admin_role = factory.role_id("admin")
        response = viewer_client.post(
            f"/settings/users/{viewer_id}",
            data={"name": "Vera Renamed", "email": "vera@example.com", "roles": [str(admin_role)]},
        )
        assert response.location == f"/settings/users/{viewer_id}"
        assert "User successfully updated" in flashes(viewer_client)
        user = _user(app, viewer_id)
        assert user.name == "Vera Renamed"
        assert user.email == "vera@example.com"
        assert user.role_names == ["viewer"]

    def test_manager_syncs_roles(self, app, admin_client, viewer_id, factory):
        editor_role = factory.role_id("editor")
        response = admin_client.post(
            f"/settings/users/{viewer_id}",
            data={"name": "Vera Viewer", "email": "viewer@example.com", "roles": ["", str(editor_role)]},
        )
        assert response.location == "/settings/users"
        assert _user(app, viewer_id).role_names == ["editor"]

    def test_manager_can_clear_roles(self, app, admin_client, viewer_id):
        admin_client.post(
            f"/settings/users/{viewer_id}",
            data={"name": "Vera Viewer", "email": "viewer@example.com", "roles": ""},
        )
        assert _user(app, viewer_id).role_names == []

    def test_roles_untouched_when_not_submitted(self, app, admin_client, viewer_id):
        admin_client.post(f"/settings/users/{viewer_id}", data={"name": "Vera Viewer", "email": "viewer@example.com"})
        assert _user(app, viewer_id).role_names == ["viewer"]

    def test_blank_password_keeps_current(self, app, viewer_client, viewer_id):
        before = _user(app, viewer_id).password
        viewer_client.post(f"/settings/users/{viewer_id}", data={"name": "Vera Viewer", "email": "viewer@example.com"})
        assert _user(app, viewer_id).password == before

    def test_change_password(self, app, viewer_client, viewer_id):
        viewer_client.post(
            f"/settings/users/{viewer_id}",
            data={
                "name": "Vera Viewer",
                "email": "viewer@example.com",
                "password": "newpass",
                "password_confirm": "newpass",
            },
        )
        assert verify_password("newpass", _user(app, viewer_id).password)

    def test_email_taken_by_other(self, viewer_client, viewer_id):
        response = viewer_client.post(
            f"/settings/users/{viewer_id}", data={"name": "Vera Viewer", "email": "admin@admin.com"}
        )
        assert response.status_code == 200
        assert b"The email has already been taken." in response.data

    def test_short_name(self, viewer_client, viewer_id):
        response = viewer_client.post(f"/settings/users/{viewer_id}", data={"name": "V", "email": "viewer@example.com"})
        assert b"The name must be at least 2 characters." in response.data

    def test_demo_mode_blocks_update(self, app, viewer_client, viewer_id):
        app.config["DEMO_MODE"] = True
        response = viewer_client.post(
            f"/settings/users/{viewer_id}", data={"name": "Changed", "email": "viewer@example.com"}
        )
        assert response.location == "/"
        assert "This action is disabled in demo mode" in flashes(viewer_client)
        assert _user(app, viewer_id).name == "Vera Viewer"


class TestUserDelete:
    def test_confirm_page(self, admin_client, viewer_id):
        response = admin_client.get(f"/settings/users/{viewer_id}/delete")
        assert response.status_code == 200
        assert b"Vera Viewer" in response.data

    def test_delete(self, app, admin_client, viewer_id):
        response = admin_client.post(f"/settings/users/{viewer_id}/delete")
        assert response.location == "/settings/users"
        assert "User successfully removed" in flashes(admin_client)
        assert _user(app, viewer_id) is None

    def test_only_admin_cannot_be_deleted(self, app, admin_client, factory):
        admin_id = factory.admin_id()
        response = admin_client.post(f"/settings/users/{admin_id}/delete")
        assert response.location == f"/settings/users/{admin_id}"
        assert "You cannot delete the only admin" in flashes(admin_client)
        assert _user(app, admin_id) is not None

    def test_user_can_delete_self(self, app, viewer_client, viewer_id):
        viewer_client.post(f"/settings/users/{viewer_id}/delete")
        assert _user(app, viewer_id) is None
        # The session now belongs to nobody
        assert viewer_client.get("/books").location.startswith("/login")

    def test_viewer_cannot_delete_others(self, app, viewer_client, editor_id):
        viewer_client.post(f"/settings/users/{editor_id}/delete")
        assert _user(app, editor_id) is not None

    def test_demo_mode_blocks_delete(self, app, admin_client, viewer_id):
        app.config["DEMO_MODE"] = True
        admin_client.post(f"/settings/users/{viewer_id}/delete")
        assert _user(app, viewer_id) is not None


class TestUserProfile:
    def test_profile(self, viewer_client, editor_id, factory):
        book = factory.book("Editor Book", owner_id=editor_id)
        factory.page(book, "Editor Page", owner_id=editor_id)
        response = viewer_client.get(f"/user/{editor_id}")
        assert response.status_code == 200
        assert b"Eddie Editor" in response.data
        assert b"1 Book" in response.data
        assert b"0 Chapters" in response.data
        assert b"Editor Page" in response.data

    def test_profile_hides_restricted_content(self, viewer_client, editor_id, factory):
        book = factory.book("Hidden Book", owner_id=editor_id)
        factory.restrict("book", book.id)
        response = viewer_client.get(f"/user/{editor_id}")
        assert b"Hidden Book" not in response.data
        assert b"0 Books" in response.data

    def test_unknown_user(self, viewer_client):
        response = viewer_client.get("/user/999")
        assert response.status_code == 404
        assert b"User not found" in response.data
