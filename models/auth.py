from dataclasses import dataclass
from typing import Optional


@dataclass
class AuthSession:
    """
    Bearer token state for the pollution API.

    expires_at is on the same monotonic clock the client uses.
    """
    access_token: str
    expires_at: float
    refresh_token: Optional[str] = None

    def is_valid(self, now: float, margin: float) -> bool:
        return bool(self.access_token) and now < self.expires_at - margin
