"""Out-of-band delivery of action tokens."""
from __future__ import annotations

import logging
from typing import Protocol

from .tokens import ActionPurpose


logger = logging.getLogger(__name__)

_LINK_PATHS = {
    ActionPurpose.VERIFY_EMAIL: "verify-email",
    ActionPurpose.RESET_PASSWORD: "reset-password",
}


class Notifier(Protocol):
    def send(self, email: str, template_kind: ActionPurpose, token: str) -> None:
        """Deliver ``token`` to ``email`` using the ``template_kind`` message."""


def build_action_link(public_base: str, template_kind: ActionPurpose, token: str) -> str:
    return f"{public_base.rstrip('/')}/{_LINK_PATHS[template_kind]}/{token}"


class LoggingNotifier:
    """Development notifier that writes the action link to the log."""

    def __init__(self, public_base: str) -> None:
        self.public_base = public_base

    def send(self, email: str, template_kind: ActionPurpose, token: str) -> None:
        logger.info(
            "Delivering %s message to %s: %s",
            template_kind.value,
            email,
            build_action_link(self.public_base, template_kind, token),
        )


__all__ = ["LoggingNotifier", "Notifier", "build_action_link"]
