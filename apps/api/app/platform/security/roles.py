from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    USER = "User"
    FINANCE = "Finance"
    ADMIN = "Admin"

    def satisfies(self, required: Role) -> bool:
        """Admin satisfies every role check; Finance and User only themselves."""

        if self is Role.ADMIN:
            return True
        return self is required

    @classmethod
    def parse(cls, raw: object) -> Role | None:
        try:
            return cls(str(raw))
        except ValueError:
            return None
