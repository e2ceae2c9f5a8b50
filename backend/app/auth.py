import logging
from typing import Optional, Protocol

import httpx
from fastapi import Request

logger = logging.getLogger("agify-backend")

ACCESS_TOKEN_COOKIE = "sb-access-token"


class Authenticator(Protocol):
    def get_user_id(self, token: Optional[str]) -> Optional[str]: ...


def token_from_request(request: Request) -> Optional[str]:
    """Read the session token from the Authorization header or the auth cookie."""
    header = request.headers.get("authorization") or ""
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


class SupabaseAuthenticator:
    """Resolves an access token to a user id through Supabase auth."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self._transport = transport

    def get_user_id(self, token: Optional[str]) -> Optional[str]:
        if not token or not self.url:
            return None
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            r = client.get(
                f"{self.url}/auth/v1/user",
                headers={"apikey": self.anon_key, "Authorization": f"Bearer {token}"},
            )
        if r.status_code != 200:
            logger.info("Auth lookup rejected token: %s", r.status_code)
            return None
        return r.json().get("id") or None
