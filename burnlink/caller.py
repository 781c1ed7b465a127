from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models.user import PRIVILEGED_ROLES


@dataclass(frozen=True)
class Caller:
    """
    Who is making the request. Resolved once per request from the session
    credential and passed explicitly into every operation (None = anonymous).
    """

    id: str
    role: str
    display_name: str

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


def is_privileged(caller: Optional[Caller]) -> bool:
    return caller is not None and caller.is_privileged
