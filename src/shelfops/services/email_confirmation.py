"""
Email confirmation tokens for newly registered users.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..exceptions import ConfirmationEmailException, UserRegistrationException
from ..mail import Mailer
from ..models import EmailConfirmation, User, utc_now

logger = logging.getLogger(__name__)


class EmailConfirmationService:
    def __init__(
        self,
        session: Session,
        mailer: Mailer,
        app_name: str = "ShelfWiki",
        base_url: str = "",
        expiry_hours: int = 24,
    ) -> None:
        self.session = session
        self.mailer = mailer
        self.app_name = app_name
        self.base_url = base_url.rstrip("/")
        self.expiry_hours = expiry_hours

    def send_confirmation(self, user: User) -> EmailConfirmation:
        """Replace any existing tokens for `user` and mail a fresh confirmation link."""
        if user.email_confirmed:
            raise ConfirmationEmailException("Email has already been confirmed, Try logging in.", "/login")

        self.delete_for_user(user)
        confirmation = EmailConfirmation(user_id=user.id, token=self._unique_token())
        self.session.add(confirmation)
        self.session.flush()

        self.mailer.send(
            "emails/email_confirmation.html",
            {
                "token": confirmation.token,
                "app_name": self.app_name,
                "confirm_url": f"{self.base_url}/register/confirm/{confirmation.token}",
            },
            to=user.email,
            subject=f"Confirm your email on {self.app_name}",
        )
        logger.info("Confirmation email sent to user %s", user.id)
        return confirmation

    def get_by_token(self, token: str) -> EmailConfirmation:
        """
        Look up a confirmation by token.

        Expired tokens trigger a fresh email before raising, so the user only
        has to check their inbox again.
        """
        confirmation = self.session.scalar(select(EmailConfirmation).where(EmailConfirmation.token == token))
        if confirmation is None:
            raise UserRegistrationException(
                "This confirmation token is not valid or has already been used, Please try registering again.",
                "/register",
            )

        if self.is_expired(confirmation):
            user = confirmation.user
            self.send_confirmation(user)
            raise UserRegistrationException(
                "The confirmation token has expired, A new confirmation email has been sent.",
                "/register/confirm",
            )
        return confirmation

    def is_expired(self, confirmation: EmailConfirmation, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        created_at = confirmation.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return created_at + timedelta(hours=self.expiry_hours) < now

    def confirm(self, confirmation: EmailConfirmation) -> User:
        user = confirmation.user
        user.email_confirmed = True
        self.delete_for_user(user)
        return user

    def delete_for_user(self, user: User) -> None:
        self.session.execute(delete(EmailConfirmation).where(EmailConfirmation.user_id == user.id))

    def _unique_token(self) -> str:
        while True:
            token = secrets.token_urlsafe(36)
            exists = self.session.scalar(select(EmailConfirmation.id).where(EmailConfirmation.token == token))
            if exists is None:
                return token
