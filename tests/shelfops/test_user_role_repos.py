import pytest
from sqlalchemy import select

from extensions import db
from shelfops.exceptions import NotFoundException, RoleProtectedException
from shelfops.models import Activity, Book, Restriction, Role, User
from shelfops.repos import BookRepo, RoleRepo, UserRepo
from shelfops.services import SettingService


class TestUserRepo:
    def test_get_by_email_ignores_case(self, app, viewer_id):
        with app.app_context():
            assert UserRepo(db.session).get_by_email("  VIEWER@example.com ").id == viewer_id

    def test_email_taken(self, app, viewer_id):
        with app.app_context():
            repo = UserRepo(db.session)
            assert repo.email_taken("viewer@example.com")
            assert not repo.email_taken("viewer@example.com", except_id=viewer_id)
            assert not repo.email_taken("nobody@example.com")

    def test_get_by_id_missing_raises(self, app):
        with app.app_context():
            with pytest.raises(NotFoundException):
                UserRepo(db.session).get_by_id(999)

    def test_create_lowercases_email(self, app):
        with app.app_context():
            user = UserRepo(db.session).create(" New ", "New@Example.COM", None)
            assert user.name == "New"
            assert user.email == "new@example.com"
            assert user.roles == []

    def test_sync_roles_replaces_roles(self, app, factory, viewer_id):
        editor_role = factory.role_id("editor")
        with app.app_context():
            repo = UserRepo(db.session)
            user = repo.get_by_id(viewer_id)
            repo.sync_roles(user, [editor_role])
            db.session.commit()
            assert [r.name for r in user.roles] == ["editor"]

    def test_attach_default_role_uses_setting(self, app, factory):
        factory.setting("registration-role", "editor")
        user_id = factory.user("Roleless", "roleless@example.com", role=None)
        with app.app_context():
            repo = UserRepo(db.session)
            user = repo.get_by_id(user_id)
            role = repo.attach_default_role(user, SettingService(db.session))
            assert role.name == "editor"
            assert user.has_role("editor")

    def test_attach_default_role_falls_back_to_viewer(self, app, factory):
        factory.setting("registration-role", "missing")
        user_id = factory.user("Roleless", "roleless@example.com", role=None)
        with app.app_context():
            repo = UserRepo(db.session)
            role = repo.attach_default_role(repo.get_by_id(user_id), SettingService(db.session))
            assert role.name == "viewer"

    def test_is_only_admin(self, app, factory, viewer_id):
        with app.app_context():
            repo = UserRepo(db.session)
            assert repo.is_only_admin(repo.get_by_id(factory.admin_id()))
            assert not repo.is_only_admin(repo.get_by_id(viewer_id))

    def test_second_admin_lifts_only_admin(self, app, factory):
        factory.user("Second Admin", "second@example.com", role="admin")
        with app.app_context():
            repo = UserRepo(db.session)
            assert not repo.is_only_admin(repo.get_by_id(factory.admin_id()))

    def test_destroy_keeps_content(self, app, factory, editor_id):
        book = factory.book("Kept", owner_id=editor_id)
        with app.app_context():
            repo = UserRepo(db.session)
            repo.destroy(repo.get_by_id(editor_id))
            db.session.commit()
            assert db.session.get(User, editor_id) is None
            kept = db.session.get(Book, book.id)
            assert kept is not None
            assert kept.created_by is None
            activity = db.session.scalar(select(Activity).where(Activity.key == "book_create"))
            assert activity.user_id is None

    def test_asset_counts_and_recent(self, app, factory, editor_id):
        book = factory.book("Mine", owner_id=editor_id)
        factory.chapter(book, "Chapter", owner_id=editor_id)
        factory.page(book, "One", owner_id=editor_id)
        factory.page(book, "Two", owner_id=editor_id)
        factory.book("Not mine")
        with app.app_context():
            repo = UserRepo(db.session, db.session.get(User, factory.admin_id()))
            editor = repo.get_by_id(editor_id)
            assert repo.get_asset_counts(editor) == {"pages": 2, "chapters": 1, "books": 1}
            recent = repo.get_recently_created(editor)
            assert [p.name for p in recent["pages"]] == ["Two", "One"]
            assert [b.name for b in recent["books"]] == ["Mine"]

    def test_activity_listing(self, app, factory, editor_id):
        factory.book("Logged", owner_id=editor_id)
        with app.app_context():
            repo = UserRepo(db.session)
            keys = [a.key for a in repo.get_activity(repo.get_by_id(editor_id))]
            assert keys == ["book_create"]


class TestRoleRepo:
    def test_save_new_derives_name(self, app):
        with app.app_context():
            role = RoleRepo(db.session).save_new("Content Reviewer", "Reviews", ["page-update-all", "bogus"])
            db.session.commit()
            assert role.name == "content-reviewer"
            assert role.permission_names() == {"page-update-all"}

    def test_duplicate_display_name_gets_unique_name(self, app):
        with app.app_context():
            repo = RoleRepo(db.session)
            first = repo.save_new("Viewer", "", [])
            assert first.name != "viewer"
            assert first.name.startswith("viewer-")

    def test_update_replaces_permissions(self, app, factory):
        role_id = factory.role_id("editor")
        with app.app_context():
            repo = RoleRepo(db.session)
            role = repo.update(repo.get_role_by_id(role_id), "Writer", "Writes", ["page-create-all"])
            db.session.commit()
            assert role.display_name == "Writer"
            assert role.name == "editor"
            assert role.permission_names() == {"page-create-all"}

    def test_admin_keeps_every_permission(self, app, factory):
        role_id = factory.role_id("admin")
        with app.app_context():
            repo = RoleRepo(db.session)
            role = repo.update(repo.get_role_by_id(role_id), "Admin", "", [])
            all_names = {p.name for p in repo.get_all_permissions()}
            assert role.permission_names() == all_names

    def test_admin_role_cannot_be_deleted(self, app, factory):
        role_id = factory.role_id("admin")
        with app.app_context():
            repo = RoleRepo(db.session)
            with pytest.raises(RoleProtectedException):
                repo.destroy(repo.get_role_by_id(role_id), SettingService(db.session))

    def test_registration_role_cannot_be_deleted(self, app, factory):
        role_id = factory.role_id("viewer")
        with app.app_context():
            repo = RoleRepo(db.session)
            with pytest.raises(RoleProtectedException) as excinfo:
                repo.destroy(repo.get_role_by_id(role_id), SettingService(db.session))
            assert "registration role" in excinfo.value.message

    def test_destroy_migrates_users(self, app, factory, editor_id):
        editor_role = factory.role_id("editor")
        viewer_role = factory.role_id("viewer")
        book = factory.book("Book")
        factory.restrict("book", book.id, [("editor", "view")])
        with app.app_context():
            repo = RoleRepo(db.session)
            repo.destroy(repo.get_role_by_id(editor_role), SettingService(db.session), viewer_role)
            db.session.commit()
            assert db.session.get(Role, editor_role) is None
            assert [r.name for r in db.session.get(User, editor_id).roles] == ["viewer"]
            assert db.session.scalars(select(Restriction)).all() == []

    def test_destroy_without_migration_leaves_users_roleless(self, app, factory, editor_id):
        editor_role = factory.role_id("editor")
        with app.app_context():
            repo = RoleRepo(db.session)
            repo.destroy(repo.get_role_by_id(editor_role), SettingService(db.session))
            db.session.commit()
            assert db.session.get(User, editor_id).roles == []
