"""
auth/routes.py - Authentication Blueprint Routes

Routes for login, logout, registration and email confirmation.
"""

from __future__ import annotations

from flask import (
    current_app,
    flash,
    redirect,
    render_template,
    request,
    session,
    url_for,
)

from extensions import db, limiter
from shelf_app.auth import bp
from shelf_app.helpers import (
    RouteResponse,
    _is_safe_redirect_url,
    current_user,
    email_confirmations,
    settings,
    user_repo,
)
from shelf_app.validation import validate_registration
from shelfops.exceptions import UserRegistrationException
from shelfops.models import User
from shelfops.security import hash_password, verify_password


def _login_user(user: User) -> None:
    session.clear()
    session.permanent = True
    session["user_id"] = user.id


def _check_registration_allowed() -> None:
    """Raise UserRegistrationException when public registration is off."""
    if not settings().get_bool("registration-enabled"):
        raise UserRegistrationException("Registrations are currently disabled", "/login")


def _check_email_domain(email: str) -> None:
    """
    Enforce the "registration-restrict" setting, a comma separated list of
    email domains allowed to register. An empty list allows every domain.
    """
    allowed = settings().get_list("registration-restrict")
    if not allowed:
        return
    domain = email.rsplit("@", 1)[-1].lower()
    if domain not in allowed:
        raise UserRegistrationException(
            "That email domain does not have access to this application", "/register"
        )


@bp.route("/login", methods=["GET", "POST"])
@limiter.limit("10 per minute", methods=["POST"])
def login() -> RouteResponse:
    """
    Present the login form (GET) and, on POST, check the credentials and sign the user in.

    On success the user id is stored in a permanent session and the user is sent to the
    safe `next` URL, or the home page. Failed attempts flash
    "These credentials do not match our records." and re-render the form.

    Returns:
        A Flask response that either renders the login form or redirects.
    """
    if current_user() is not None:
        return redirect(url_for("main.index"))

    next_url = request.args.get("next", "")
    if request.method == "POST":
        email = request.form.get("email", "").strip()
        password = request.form.get("password", "")

        if not email or not password:
            flash("The email and password fields are required.", "error")
            return render_template("auth/login.html", email=email, next=next_url)

        user = user_repo().get_by_email(email)
        if user is None or not verify_password(password, user.password):
            current_app.logger.warning("Failed login for %s from %s", email, request.remote_addr)
            flash("These credentials do not match our records.", "error")
            return render_template("auth/login.html", email=email, next=next_url)

        _login_user(user)
        current_app.logger.info("User %s logged in", user.id)

        if not user.email_confirmed and settings().get_bool("registration-confirmation"):
            return redirect(url_for("auth.confirm_awaiting"))

        if not next_url or not _is_safe_redirect_url(next_url):
            next_url = url_for("main.index")
        return redirect(next_url)

    return render_template("auth/login.html", email="", next=next_url)


@bp.route("/logout")
def logout() -> RouteResponse:
    """
    Clear the session and redirect to the home page.
    """
    user_id = session.get("user_id")
    session.clear()
    if user_id is not None:
        current_app.logger.info("User %s logged out", user_id)
    flash("Logged out successfully.", "info")
    return redirect(url_for("main.index"))


@bp.route("/register", methods=["GET", "POST"])
@limiter.limit("10 per minute", methods=["POST"])
def register() -> RouteResponse:
    """
    Show the registration form and create accounts when registration is enabled.

    When "registration-confirmation" is on the account is created
    unconfirmed and a confirmation email is sent; otherwise the new user is
    signed in straight away.
    """
    _check_registration_allowed()

    if request.method == "POST":
        form = request.form
        errors = validate_registration(form)
        email = form.get("email", "").strip().lower()
        name = form.get("name", "").strip()

        if not errors and user_repo().email_taken(email):
            errors.add("email", "The email has already been taken.")
        if errors:
            for message in errors.messages():
                flash(message, "error")
            return render_template("auth/register.html", name=name, email=email, errors=errors)

        _check_email_domain(email)

        confirmation_required = settings().get_bool("registration-confirmation")
        repo = user_repo()
        user = repo.create(
            name,
            email,
            hash_password(form.get("password", ""), current_app.config["BCRYPT_ROUNDS"]),
            email_confirmed=not confirmation_required,
        )
        repo.attach_default_role(user, settings())
        db.session.commit()
        current_app.logger.info("User %s registered", user.id)

        if confirmation_required:
            try:
                email_confirmations().send_confirmation(user)
                db.session.commit()
            except OSError:
                current_app.logger.exception("Could not send confirmation email to user %s", user.id)
                flash("Confirmation email could not be sent, Please try again later.", "error")
            return redirect(url_for("auth.confirm_notice"))

        _login_user(user)
        flash(f"Thanks for signing up {user.name}!", "success")
        return redirect(url_for("main.index"))

    return render_template("auth/register.html", name="", email="", errors={})


@bp.route("/register/confirm")
def confirm_notice() -> RouteResponse:
    """Tell a newly registered user to check their inbox."""
    return render_template("auth/register-confirm.html")


@bp.route("/register/confirm/awaiting")
def confirm_awaiting() -> RouteResponse:
    """
    Shown to signed-in users whose email is not yet confirmed, with a form
    to resend the confirmation email.
    """
    user = current_user()
    if user is None:
        return redirect(url_for("auth.login"))
    return render_template("auth/register-confirm-awaiting.html", email=user.email)


@bp.route("/register/confirm/resend", methods=["POST"])
@limiter.limit("10 per minute")
def confirm_resend() -> RouteResponse:
    """Send a fresh confirmation email to the given address."""
    email = request.form.get("email", "").strip()
    user = user_repo().get_by_email(email)
    if user is None:
        flash("No user could be found with that email address.", "error")
        return redirect(url_for("auth.confirm_awaiting"))

    try:
        email_confirmations().send_confirmation(user)
    except OSError:
        current_app.logger.exception("Could not resend confirmation email to user %s", user.id)
        flash("Confirmation email could not be sent, Please try again later.", "error")
        return redirect(url_for("auth.confirm_awaiting"))

    db.session.commit()
    flash("Confirmation email resent, Please check your inbox.", "success")
    return redirect(url_for("auth.confirm_notice"))


@bp.route("/register/confirm/<token>")
def confirm_email(token: str) -> RouteResponse:
    """
    Confirm the email address owning `token`, sign the user in and redirect home.
    """
    service = email_confirmations()
    try:
        confirmation = service.get_by_token(token)
    except UserRegistrationException:
        # An expired token has just been replaced; keep the new one
        db.session.commit()
        raise

    user = service.confirm(confirmation)
    db.session.commit()
    current_app.logger.info("User %s confirmed their email", user.id)

    _login_user(user)
    flash("Your email has been confirmed!", "success")
    return redirect(url_for("main.index"))


@bp.route("/register/confirm/<token>/email")
def confirm_email_preview(token: str) -> RouteResponse:
    """Render the confirmation email for `token` in the browser."""
    app_name = settings().get("app-name")
    return render_template(
        "emails/email_confirmation.html",
        token=token,
        app_name=app_name,
        confirm_url=url_for("auth.confirm_email", token=token, _external=True),
    )
