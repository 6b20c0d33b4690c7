"""
Notifier collaborators.

The core never sends mail or SMS. After a token is issued it hands the raw
value to a notifier, which owns formatting and delivery. Delivery is
best-effort: the core does not wait for it or retry it.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from .models import User

logger = logging.getLogger(__name__)


class Notifier:
    """Interface for token delivery"""

    def deliver_confirmation(self, email: str, token: str) -> None:
        """Send an email confirmation token to ``email``."""
        raise NotImplementedError

    def deliver_password_reset(self, user: User, token: str) -> None:
        """Send a password reset token to ``user``."""
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Console fallback for when no delivery backend is configured."""

    def deliver_confirmation(self, email: str, token: str) -> None:
        logger.info("Email confirmation token issued for %s", email)

    def deliver_password_reset(self, user: User, token: str) -> None:
        logger.info("Password reset token issued for user %s", user.id)


@dataclass
class Delivery:
    kind: str  # "confirmation" or "password_reset"
    recipient: str  # Address or user id
    token: str


@dataclass
class MemoryNotifier(Notifier):
    """Keeps deliveries in memory. Useful in tests and local tooling."""

    deliveries: List[Delivery] = field(default_factory=list)

    def deliver_confirmation(self, email: str, token: str) -> None:
        self.deliveries.append(Delivery('confirmation', email, token))

    def deliver_password_reset(self, user: User, token: str) -> None:
        self.deliveries.append(Delivery('password_reset', user.id, token))

    def last(self, kind: str) -> Delivery:
        return [d for d in self.deliveries if d.kind == kind][-1]
