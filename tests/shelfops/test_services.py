from datetime import timedelta

import pytest
from sqlalchemy import delete, func, select

from extensions import db
from shelfops.exceptions import ConfirmationEmailException, UserRegistrationException
from shelfops.mail import Mailer
from shelfops.models import Book, EmailConfirmation, Permission, Role, Setting, User
from shelfops.repos import BookRepo
from shelfops.seed import seed_defaults
from shelfops.services import ActivityService, EmailConfirmationService, RestrictionService, SettingService, ViewService


class RecordingMailer(Mailer):
    """Mailer that keeps sent messages instead of logging them."""

    def __init__(self):
        super().__init__(renderer=lambda template, context: context.get("confirm_url", ""), from_address="wiki@example.com")
        self.sent = []

    def send(self, template, context, to, subject):
        message = super().send(template, context, to, subject)
        self.sent.append((to, subject, dict(context)))
        return message


class TestSettingService:
    def test_defaults_when_unset(self, app):
        with app.app_context():
            db.session.execute(delete(Setting))
            service = SettingService(db.session)
            assert service.get("app-name") == "ShelfWiki"
            assert service.get("unknown") == ""
            assert service.get("unknown", "fallback") == "fallback"

    def test_put_and_get(self, app):
        with app.app_context():
            service = SettingService(db.session)
            service.put("app-name", "My Wiki")
            db.session.commit()
            assert SettingService(db.session).get("app-name") == "My Wiki"

    def test_booleans_stored_as_text(self, app):
        with app.app_context():
            service = SettingService(db.session)
            service.put("app-public", True)
            assert db.session.get(Setting, "app-public").value == "true"
            assert service.get_bool("app-public")
            service.put("app-public", False)
            assert not service.get_bool("app-public")

    @pytest.mark.parametrize("value", ["1", "yes", "On", "TRUE"])
    def test_truthy_strings(self, app, value):
        with app.app_context():
            service = SettingService(db.session)
            service.put("app-public", value)
            assert service.get_bool("app-public")

    def test_get_list(self, app):
        with app.app_context():
            service = SettingService(db.session)
            service.put("registration-restrict", " Example.com, ,corp.org ")
            assert service.get_list("registration-restrict") == ["example.com", "corp.org"]

    def test_has_and_remove(self, app):
        with app.app_context():
            service = SettingService(db.session)
            service.put("custom", "value")
            assert service.has("custom")
            service.remove("custom")
            db.session.flush()
            assert not service.has("custom")

    def test_extra_defaults(self, app):
        with app.app_context():
            service = SettingService(db.session, {"custom": "x"})
            assert service.get("custom") == "x"


class TestEmailConfirmationService:
    def _service(self, mailer, **kwargs):
        return EmailConfirmationService(db.session, mailer, base_url="http://wiki.test/", **kwargs)

    def test_send_creates_token_and_mails_link(self, app, factory):
        user_id = factory.user("New", "new@example.com", confirmed=False)
        mailer = RecordingMailer()
        with app.app_context():
            confirmation = self._service(mailer).send_confirmation(db.session.get(User, user_id))
            db.session.commit()
            assert confirmation.token
            to, subject, context = mailer.sent[0]
            assert to == "new@example.com"
            assert subject == "Confirm your email on ShelfWiki"
            assert context["confirm_url"] == f"http://wiki.test/register/confirm/{confirmation.token}"

    def test_resend_replaces_old_token(self, app, factory):
        user_id = factory.user("New", "new@example.com", confirmed=False)
        with app.app_context():
            service = self._service(RecordingMailer())
            user = db.session.get(User, user_id)
            first = service.send_confirmation(user).token
            second = service.send_confirmation(user).token
            db.session.commit()
            tokens = list(db.session.scalars(select(EmailConfirmation.token)))
            assert tokens == [second]
            assert first != second

    def test_already_confirmed(self, app, viewer_id):
        with app.app_context():
            with pytest.raises(ConfirmationEmailException):
                self._service(RecordingMailer()).send_confirmation(db.session.get(User, viewer_id))

    def test_confirm(self, app, factory):
        user_id = factory.user("New", "new@example.com", confirmed=False)
        with app.app_context():
            service = self._service(RecordingMailer())
            token = service.send_confirmation(db.session.get(User, user_id)).token
            user = service.confirm(service.get_by_token(token))
            db.session.commit()
            assert user.email_confirmed
            assert db.session.scalar(select(func.count()).select_from(EmailConfirmation)) == 0

    def test_unknown_token(self, app):
        with app.app_context():
            with pytest.raises(UserRegistrationException) as excinfo:
                self._service(RecordingMailer()).get_by_token("nope")
            assert excinfo.value.redirect_location == "/register"

    def test_expired_token_resends(self, app, factory):
        user_id = factory.user("New", "new@example.com", confirmed=False)
        mailer = RecordingMailer()
        with app.app_context():
            service = self._service(mailer, expiry_hours=1)
            confirmation = service.send_confirmation(db.session.get(User, user_id))
            confirmation.created_at = confirmation.created_at - timedelta(hours=2)
            db.session.flush()
            with pytest.raises(UserRegistrationException) as excinfo:
                service.get_by_token(confirmation.token)
            assert excinfo.value.redirect_location == "/register/confirm"
            assert len(mailer.sent) == 2


class TestActivityService:
    def test_hidden_entities_dropped_from_feed(self, app, factory, viewer_id):
        hidden = factory.book("Hidden")
        factory.book("Shown")
        factory.restrict("book", hidden.id)
        with app.app_context():
            viewer = db.session.get(User, viewer_id)
            service = ActivityService(db.session, viewer, RestrictionService(db.session, viewer))
            latest = service.latest()
            assert [a.entity.name for a in latest] == ["Shown"]

    def test_entity_attached(self, app, factory):
        book = factory.book("Book")
        with app.app_context():
            service = ActivityService(db.session, None, RestrictionService(db.session, None))
            activity = service.entity_activity(db.session.get(Book, book.id))[0]
            assert activity.entity.id == book.id
            assert activity.get_text()


class TestViewService:
    def test_guests_not_tracked(self, app, factory):
        book = factory.book("Book")
        with app.app_context():
            service = ViewService(db.session, None, RestrictionService(db.session, None))
            assert service.add(db.session.get(Book, book.id)) == 0
            assert service.get_user_recently_viewed() == []

    def test_counts_and_recent(self, app, factory, viewer_id):
        first = factory.book("First")
        second = factory.book("Second")
        with app.app_context():
            viewer = db.session.get(User, viewer_id)
            service = ViewService(db.session, viewer, RestrictionService(db.session, viewer))
            assert service.add(db.session.get(Book, first.id)) == 1
            assert service.add(db.session.get(Book, first.id)) == 2
            service.add(db.session.get(Book, second.id))
            db.session.commit()
            assert [b.name for b in service.get_user_recently_viewed()] == ["Second", "First"]

    def test_recent_respects_restrictions(self, app, factory, viewer_id):
        book = factory.book("Book")
        with app.app_context():
            viewer = db.session.get(User, viewer_id)
            ViewService(db.session, viewer, RestrictionService(db.session, viewer)).add(db.session.get(Book, book.id))
            db.session.commit()
        factory.restrict("book", book.id)
        with app.app_context():
            viewer = db.session.get(User, viewer_id)
            assert BookRepo(db.session, viewer).get_recently_viewed() == []


class TestSeed:
    def test_defaults_present(self, app):
        with app.app_context():
            assert {r.name for r in db.session.scalars(select(Role))} == {"admin", "editor", "viewer"}
            admin = db.session.scalar(select(User).where(User.email == "admin@admin.com"))
            assert admin.is_admin
            assert admin.email_confirmed
            assert SettingService(db.session).get("registration-role") == "viewer"

    def test_admin_has_every_permission(self, app):
        with app.app_context():
            admin_role = Role.get_role(db.session, "admin")
            all_names = set(db.session.scalars(select(Permission.name)))
            assert admin_role.permission_names() == all_names

    def test_viewer_has_no_permissions(self, app):
        with app.app_context():
            assert Role.get_role(db.session, "viewer").permission_names() == set()

    def test_running_twice_changes_nothing(self, app):
        with app.app_context():
            SettingService(db.session).put("app-name", "Custom")
            db.session.commit()
            seed_defaults(db.session, admin_email="admin@admin.com", admin_password="other", bcrypt_rounds=4)
            assert db.session.scalar(select(func.count()).select_from(User)) == 1
            assert db.session.scalar(select(func.count()).select_from(Role)) == 3
            assert SettingService(db.session).get("app-name") == "Custom"

    def test_no_admin_email_skips_account(self, build_app):
        app = build_app()
        with app.app_context():
            db.create_all()
            assert seed_defaults(db.session, admin_email=None) is None
            assert db.session.scalar(select(func.count()).select_from(User)) == 0
            db.drop_all()
