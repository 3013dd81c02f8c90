from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Credential:
    access_token: str
    refresh_token: str

    def rotated(self, access_token: str, refresh_token: str | None = None) -> Credential:
        """Return the credential after a refresh; the refresh token is kept unless rotated."""
        return Credential(
            access_token=access_token,
            refresh_token=refresh_token or self.refresh_token,
        )

    def __repr__(self) -> str:
        return f"Credential(access_token=...{self.access_token[-6:]}, refresh_token=***)"
