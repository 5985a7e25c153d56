"""
Google sign-in (OAuth 2.0 authorization-code flow, stateless).

The API hands the consent URL to the client; Google redirects back to
/auth/google/callback with a one-time code that we exchange for an access
token and then for the user's profile.
"""
from urllib.parse import urlencode

import httpx
import structlog

from shared.config import settings
from shared.errors import GatewayError, ValidationError

from .schemas import GoogleProfile

logger = structlog.get_logger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class GoogleOAuthClient:
    def __init__(
        self,
        client_id: str = settings.GOOGLE_CLIENT_ID,
        client_secret: str = settings.GOOGLE_CLIENT_SECRET,
        redirect_uri: str = settings.GOOGLE_REDIRECT_URI,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    def authorization_url(self) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "access_type": "online",
            "prompt": "select_account",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> GoogleProfile:
        if not code:
            raise ValidationError("Missing authorization code.", field="code", rule="required")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                token_resp = await client.post(TOKEN_URL, data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                })
                if token_resp.status_code != 200:
                    logger.warning("google_code_exchange_rejected", status=token_resp.status_code)
                    raise ValidationError("Google rejected the authorization code.", field="code", rule="invalid")
                access_token = token_resp.json()["access_token"]

                profile_resp = await client.get(
                    USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
                )
                profile_resp.raise_for_status()
                return GoogleProfile.model_validate(profile_resp.json())
        except httpx.HTTPError as exc:
            logger.error("google_oauth_unavailable", error=str(exc))
            raise GatewayError("Google sign-in is unavailable. Please try again later.") from exc


_google_client = GoogleOAuthClient()


def get_google_client() -> GoogleOAuthClient:
    return _google_client
