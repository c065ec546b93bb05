"""
settings/routes.py - Application Settings Routes
"""

from __future__ import annotations

from flask import current_app, flash, redirect, render_template, request, url_for

from extensions import db
from shelf_app.helpers import RouteResponse, check_permission, current_user, form_bool, role_repo, settings
from shelf_app.settings import bp

# Settings edited as checkboxes
BOOLEAN_SETTINGS = ("app-public", "registration-enabled", "registration-confirmation")


@bp.route("/settings", methods=["GET", "POST"])
def index() -> RouteResponse:
    """
    Show (GET) and save (POST) the application settings.

    Requires "settings-manage". The default registration role must name an
    existing role.
    """
    check_permission("settings-manage")
    service = settings()

    if request.method == "POST":
        app_name = request.form.get("app-name", "").strip()
        if app_name:
            service.put("app-name", app_name)

        for key in BOOLEAN_SETTINGS:
            service.put(key, form_bool(key))

        domains = [d.strip().lower() for d in request.form.get("registration-restrict", "").split(",") if d.strip()]
        service.put("registration-restrict", ",".join(domains))

        role_name = request.form.get("registration-role", "").strip()
        if role_name and role_name in {role.name for role in role_repo().get_all_roles()}:
            service.put("registration-role", role_name)

        db.session.commit()
        current_app.logger.info("User %s updated application settings", current_user().id)
        flash("Settings Saved", "success")
        return redirect(url_for("settings.index"))

    return render_template(
        "settings/index.html",
        values={key: service.get(key) for key in service.defaults},
        booleans={key: service.get_bool(key) for key in BOOLEAN_SETTINGS},
        roles=role_repo().get_all_roles(),
    )
