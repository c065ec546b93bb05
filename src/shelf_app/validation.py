"""
validation.py - Form input validation

Each validator reads plain `request.form` values and returns a FormErrors
mapping of field name to messages. Routes flash the messages and re-render
the form with the submitted values.
"""

from __future__ import annotations

import re
from typing import Mapping, Optional

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class FormErrors(dict):
    """Field name -> list of error messages."""

    def add(self, field: str, message: str) -> None:
        self.setdefault(field, []).append(message)

    def messages(self) -> list[str]:
        return [message for messages in self.values() for message in messages]

    def first(self, field: str) -> Optional[str]:
        messages = self.get(field)
        return messages[0] if messages else None


def _value(form: Mapping[str, str], name: str) -> str:
    return (form.get(name) or "").strip()


def check_name(
    errors: FormErrors,
    form: Mapping[str, str],
    field: str = "name",
    min_length: int = 1,
    max_length: int = 255,
) -> None:
    value = _value(form, field)
    if not value:
        errors.add(field, f"The {field} field is required.")
    elif len(value) < min_length:
        errors.add(field, f"The {field} must be at least {min_length} characters.")
    elif len(value) > max_length:
        errors.add(field, f"The {field} may not be greater than {max_length} characters.")


def check_email(errors: FormErrors, form: Mapping[str, str], required: bool = True) -> None:
    value = _value(form, "email")
    if not value:
        if required:
            errors.add("email", "The email field is required.")
        return
    if len(value) > 255 or not EMAIL_RE.match(value):
        errors.add("email", "The email must be a valid email address.")


def check_password(
    errors: FormErrors,
    form: Mapping[str, str],
    required: bool = True,
    min_length: int = 5,
    confirm: bool = True,
) -> None:
    """
    Validate "password" and, when `confirm` is set, "password_confirm".

    With `required` unset, both fields may be left blank to keep the
    current password.
    """
    password = form.get("password") or ""
    confirmation = form.get("password_confirm") or ""

    if not password:
        if required:
            errors.add("password", "The password field is required.")
        elif confirm and confirmation:
            errors.add("password", "The password field is required when password confirmation is present.")
        return

    if len(password) < min_length:
        errors.add("password", f"The password must be at least {min_length} characters.")

    if not confirm:
        return
    if not confirmation:
        errors.add("password_confirm", "Password confirmation required")
    elif confirmation != password:
        errors.add("password_confirm", "The password confirmation does not match.")


def validate_registration(form: Mapping[str, str]) -> FormErrors:
    errors = FormErrors()
    check_name(errors, form, max_length=255)
    check_email(errors, form)
    check_password(errors, form, min_length=6, confirm=False)
    return errors


def validate_user_create(form: Mapping[str, str]) -> FormErrors:
    errors = FormErrors()
    check_name(errors, form)
    check_email(errors, form)
    check_password(errors, form, required=True)
    return errors


def validate_user_update(form: Mapping[str, str]) -> FormErrors:
    errors = FormErrors()
    check_name(errors, form, min_length=2)
    check_email(errors, form)
    check_password(errors, form, required=False)
    return errors


def validate_entity(form: Mapping[str, str], max_length: int = 255) -> FormErrors:
    """Books, chapters and pages all need a name."""
    errors = FormErrors()
    check_name(errors, form, max_length=max_length)
    return errors


def validate_role(form: Mapping[str, str]) -> FormErrors:
    errors = FormErrors()
    check_name(errors, form, field="display_name", min_length=3, max_length=180)
    if len(_value(form, "description")) > 255:
        errors.add("description", "The description may not be greater than 255 characters.")
    return errors
