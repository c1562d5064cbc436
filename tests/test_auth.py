import pytest

from storefront.auth import AuthApi, GoogleOAuthProvider
from storefront.errors import AuthError

SIGNIN_OK = (200, {"success": True, "data": {
    "user": {"id": "u1", "email": "ali@example.com", "full_name": "Ali", "phone": "0100"},
    "session": {"access_token": "tok-1"},
}})


async def test_sign_in_keeps_token(api, backend):
    backend.routes[("POST", "/api/auth/signin")] = SIGNIN_OK

    session = await AuthApi(api).sign_in("ali@example.com", "secret")

    assert session.user.id == "u1"
    assert session.token == "tok-1"
    assert api.token == "tok-1"


async def test_wrong_password_is_invalid_credentials(api, backend):
    backend.routes[("POST", "/api/auth/signin")] = (401, {"success": False, "message": "Invalid login"})

    with pytest.raises(AuthError) as exc:
        await AuthApi(api).sign_in("ali@example.com", "nope")

    assert exc.value.key == "auth.invalid_credentials"


async def test_admin_account_is_signed_out(api, supabase, backend):
    backend.routes.update({
        ("POST", "/api/auth/signin"): SIGNIN_OK,
        ("GET", "/rest/v1/admin_profiles"): (200, [{"user_id": "u1"}]),
        ("POST", "/api/auth/signout"): (200, {"success": True}),
    })

    with pytest.raises(AuthError) as exc:
        await AuthApi(api, supabase).sign_in("ali@example.com", "secret")

    assert exc.value.key == "auth.admin_blocked"
    assert api.token is None
    assert len(backend.calls("POST", "/api/auth/signout")) == 1
    lookup = backend.calls("GET", "/rest/v1/admin_profiles")[0]
    assert lookup.url.params["user_id"] == "eq.u1"
    assert lookup.headers["apikey"] == "anon-key"


async def test_google_sign_in_posts_id_token(api, backend):
    backend.routes[("POST", "/api/auth/google")] = SIGNIN_OK

    session = await AuthApi(api).google_sign_in("google-id-token")

    assert session.token == "tok-1"
    assert backend.body("POST", "/api/auth/google") == {"idToken": "google-id-token"}


async def test_oauth_provider_without_token_fails():
    async def popup_closed():
        return None

    with pytest.raises(AuthError) as exc:
        await GoogleOAuthProvider(popup_closed).initiate()

    assert exc.value.key == "auth.oauth_failed"
    assert exc.value.localized("en") == "Could not sign in with Google"


async def test_me_without_token_makes_no_request(api, backend):
    assert await AuthApi(api).me() is None
    assert backend.requests == []


async def test_me_with_expired_token(api, backend):
    api.token = "expired"
    backend.routes[("GET", "/api/auth/me")] = (401, {"success": False})

    assert await AuthApi(api).me() is None


async def test_check_phone_exists(api, backend):
    backend.routes[("POST", "/api/auth/check-phone")] = (200, {"success": True, "data": {"exists": True}})

    assert await AuthApi(api).check_phone_exists("01000000000")
    assert backend.body("POST", "/api/auth/check-phone") == {"phone": "01000000000"}
