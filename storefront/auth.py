import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from storefront.api_client import ApiClient, SupabaseClient, pick, unwrap
from storefront.errors import ApiError, AuthError
from storefront.schemas import User

logger = logging.getLogger(__name__)


@dataclass
class AuthSession:
    user: User
    token: Optional[str] = None


@dataclass(frozen=True)
class OAuthCredential:
    provider: str
    token: str


TokenSource = Union[str, Callable[[], Awaitable[Optional[str]]]]


class OAuthProvider:
    """A vendor sign-in capability: ``initiate()`` yields the vendor credential."""

    name = ""
    endpoint = ""
    token_field = ""

    def __init__(self, source: TokenSource):
        self.source = source

    async def initiate(self) -> OAuthCredential:
        token = self.source if isinstance(self.source, str) else await self.source()
        if not token:
            raise AuthError("auth.oauth_failed", provider=self.name.title())
        return OAuthCredential(self.name, token)

    def payload(self, credential: OAuthCredential) -> dict:
        return {self.token_field: credential.token}


class GoogleOAuthProvider(OAuthProvider):
    name = "google"
    endpoint = "/auth/google"
    token_field = "idToken"


class FacebookOAuthProvider(OAuthProvider):
    name = "facebook"
    endpoint = "/auth/facebook"
    token_field = "accessToken"


def _session_from(result) -> AuthSession:
    data = unwrap(result)
    user = pick(data, "user", default=data)
    token = pick(data, "token", "access_token", "accessToken")
    if token is None and isinstance(pick(data, "session"), dict):
        token = pick(data["session"], "access_token", "token")
    if not isinstance(user, dict) or "id" not in user:
        raise AuthError("auth.invalid_credentials")
    return AuthSession(User(**user), token)


class AuthApi:
    def __init__(self, api: ApiClient, supabase: Optional[SupabaseClient] = None):
        self.api = api
        self.supabase = supabase

    async def _reject_admin(self, session: AuthSession) -> AuthSession:
        if self.supabase is None or not self.supabase.configured:
            return session
        admin = await self.supabase.select_one("admin_profiles", "user_id", user_id=session.user.id)
        if admin:
            logger.warning("admin account %s tried to sign in to the storefront", session.user.id)
            try:
                await self.api.post("/auth/signout")
            except ApiError:
                logger.warning("sign-out of admin account %s failed", session.user.id)
            self.api.token = None
            raise AuthError("auth.admin_blocked")
        return session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            result = await self.api.post("/auth/signin", {"email": email, "password": password})
        except ApiError as e:
            if e.status in (400, 401, 403):
                raise AuthError("auth.invalid_credentials") from e
            raise
        session = _session_from(result)
        if session.token:
            self.api.token = session.token
        return await self._reject_admin(session)

    async def sign_up(self, email: str, password: str, full_name: str, phone: str) -> AuthSession:
        result = await self.api.post(
            "/auth/signup", {"email": email, "password": password, "full_name": full_name, "phone": phone}
        )
        return _session_from(result)

    async def sign_in_with(self, provider: OAuthProvider) -> AuthSession:
        credential = await provider.initiate()
        result = await self.api.post(provider.endpoint, provider.payload(credential))
        session = _session_from(result)
        if session.token:
            self.api.token = session.token
        return await self._reject_admin(session)

    async def google_sign_in(self, id_token: str) -> AuthSession:
        return await self.sign_in_with(GoogleOAuthProvider(id_token))

    async def facebook_sign_in(self, access_token: str) -> AuthSession:
        return await self.sign_in_with(FacebookOAuthProvider(access_token))

    async def sign_out(self) -> None:
        await self.api.post("/auth/signout")

    async def me(self) -> Optional[User]:
        if not self.api.token:
            return None
        try:
            result = await self.api.get("/auth/me")
        except ApiError as e:
            if e.status == 401:
                return None
            raise
        user = unwrap(result, "user")
        return User(**user) if isinstance(user, dict) else None

    async def update_profile(self, full_name: Optional[str] = None, phone: Optional[str] = None) -> dict:
        data = {k: v for k, v in {"full_name": full_name, "phone": phone}.items() if v is not None}
        await self.api.put("/auth/profile", data)
        return data

    async def change_password(self, old_password: str, new_password: str) -> None:
        await self.api.put("/auth/change-password", {"old_password": old_password, "new_password": new_password})

    async def check_phone_exists(self, phone: str) -> bool:
        result = await self.api.post("/auth/check-phone", {"phone": phone})
        return bool(pick(unwrap(result), "exists", default=False))
