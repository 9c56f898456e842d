from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class User:
    """Read-only projection of a marketplace account."""

    id: int
    email: str
    first_name: str | None
    last_name: str | None
    profile_picture: str | None

    @property
    def display_name(self) -> str:
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        if full:
            return full
        local, _, _ = self.email.partition("@")
        return local or f"User {self.id}"
