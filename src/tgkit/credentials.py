from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field

from .errors import ValidationError

TOKEN_RE = re.compile(r"^\d+:[A-Za-z0-9_-]+$")


def token_fingerprint(token: str) -> str:
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
    return digest[:10]


@dataclass(frozen=True, slots=True)
class Credential:
    """Bot token, checked once when the credential is built.

    The full token only ever appears in request URLs; ``repr`` and ``str``
    show the numeric bot id and a fingerprint instead.
    """

    token: str = field(repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.token, str) or not TOKEN_RE.fullmatch(self.token):
            raise ValidationError(
                "Invalid or empty Telegram API token provided.", parameter="token"
            )

    @property
    def bot_id(self) -> int:
        return int(self.token.split(":", 1)[0])

    @property
    def fingerprint(self) -> str:
        return token_fingerprint(self.token)

    def __str__(self) -> str:
        return f"{self.bot_id}:[REDACTED {self.fingerprint}]"

    def __repr__(self) -> str:
        return f"Credential(bot_id={self.bot_id}, fingerprint={self.fingerprint!r})"
