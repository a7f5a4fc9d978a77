"""
Authentication: ID token verification, the token-change channel, the session
cookie bridge and server-side reconstruction of the signed-in user.

The browser signs in with the identity provider and posts the resulting ID
token. Everything after that happens here: the token is verified, a token-change
event is published on a `TokenChannel`, and subscribers such as
`SessionCookieBridge` react to it. Consumers hold their own channel and must
unsubscribe when they are done with it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from fastapi import Request
from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions

from backend.errors import AuthenticationFailed, BackendUnavailable, InvalidArgument
from shared.constants import SESSION_COOKIE_NAME
from shared.types import SessionUser

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Verifies ID tokens issued by the identity provider."""

    def verify_id_token(self, id_token: str) -> dict:
        ...


class FirebaseIdentityProvider:
    """Firebase Authentication, through firebase_admin."""

    def __init__(self, app=None, check_revoked: bool = False):
        self._app = app
        self._check_revoked = check_revoked

    def verify_id_token(self, id_token: str) -> dict:
        try:
            return firebase_auth.verify_id_token(
                id_token, app=self._app, check_revoked=self._check_revoked
            )
        except (ValueError, firebase_auth.InvalidIdTokenError) as e:
            # Expired and revoked tokens are InvalidIdTokenError subclasses.
            raise AuthenticationFailed(f"Invalid or expired token: {e}") from e
        except firebase_auth.UserDisabledError as e:
            raise AuthenticationFailed(f"User disabled: {e}") from e
        except firebase_exceptions.FirebaseError as e:
            # Includes CertificateFetchError when the public keys cannot be fetched.
            raise BackendUnavailable(f"Token verification failed: {e}") from e


class InMemoryIdentityProvider:
    """Test double that accepts tokens registered through `issue_token`."""

    def __init__(self):
        self.tokens: dict[str, dict] = {}

    def issue_token(
        self,
        uid: str,
        name: str | None = None,
        email: str | None = None,
        picture: str | None = None,
    ) -> str:
        token = f"token-{uid}-{len(self.tokens)}"
        self.tokens[token] = {
            "uid": uid,
            "name": name,
            "email": email,
            "picture": picture,
        }
        return token

    def revoke(self, token: str) -> None:
        self.tokens.pop(token, None)

    def verify_id_token(self, id_token: str) -> dict:
        claims = self.tokens.get(id_token)
        if claims is None:
            raise AuthenticationFailed("Invalid or expired token")
        return dict(claims)


def user_from_claims(claims: dict, id_token: str) -> SessionUser:
    return SessionUser(
        uid=claims.get("uid") or claims.get("sub"),
        display_name=claims.get("name"),
        email=claims.get("email"),
        photo_url=claims.get("picture"),
        token=id_token,
    )


@dataclass
class TokenChange:
    """A token-change event. `user` is None after sign-out."""

    user: Optional[SessionUser]


TokenListener = Callable[[TokenChange], None]


class ChannelSubscription:
    def __init__(self, channel: "TokenChannel", listener: TokenListener):
        self._channel = channel
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._channel._remove(self._listener)


class TokenChannel:
    """Delivers token-change events to its subscribers, in subscription order."""

    def __init__(self):
        self._listeners: list[TokenListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: TokenListener) -> ChannelSubscription:
        if not callable(listener):
            raise InvalidArgument("Token listener must be callable.")
        with self._lock:
            self._listeners.append(listener)
        return ChannelSubscription(self, listener)

    def _remove(self, listener: TokenListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, change: TokenChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception("Token listener raised an error")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._listeners)


class AuthSession:
    """
    Per-request view of the identity provider: sign-in, sign-out and the
    token/auth-state subscriptions.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        current_user: SessionUser | None = None,
        channel: TokenChannel | None = None,
    ):
        self._provider = provider
        self.current_user = current_user
        self.channel = channel or TokenChannel()

    def sign_in(self, id_token: str) -> SessionUser:
        if not id_token:
            raise InvalidArgument("An ID token is required to sign in.")
        try:
            claims = self._provider.verify_id_token(id_token)
        except (AuthenticationFailed, BackendUnavailable) as e:
            logger.error(f"Error signing in with Google: {e}")
            raise
        user = user_from_claims(claims, id_token)
        self.current_user = user
        self.channel.publish(TokenChange(user=user))
        return user

    def sign_out(self) -> None:
        self.current_user = None
        self.channel.publish(TokenChange(user=None))

    def on_id_token_changed(self, listener: TokenListener) -> ChannelSubscription:
        """Every token change, including refreshes for the same user."""
        return self.channel.subscribe(listener)

    def on_auth_state_changed(
        self, listener: Callable[[Optional[SessionUser]], None]
    ) -> ChannelSubscription:
        """Only changes of the signed-in user's identity."""
        last_uid = [self.current_user.uid if self.current_user else None]

        def on_change(change: TokenChange) -> None:
            uid = change.user.uid if change.user else None
            if uid == last_uid[0]:
                return
            last_uid[0] = uid
            listener(change.user)

        return self.channel.subscribe(on_change)


def reconcile_session(
    server_user: SessionUser | None, observed_user: SessionUser | None
) -> bool:
    """
    Compares the user the server rendered with against the user observed
    after a token change. Returns True when the consumer must refresh its view.
    """
    server_uid = server_user.uid if server_user else None
    observed_uid = observed_user.uid if observed_user else None
    return server_uid != observed_uid


class CookieStore(Protocol):
    def set_cookie(self, name: str, value: str) -> None:
        ...

    def delete_cookie(self, name: str) -> None:
        ...


class ResponseCookieStore:
    """Writes session cookies onto a FastAPI/Starlette response."""

    def __init__(self, response, secure: bool = False):
        self._response = response
        self._secure = secure

    def set_cookie(self, name: str, value: str) -> None:
        self._response.set_cookie(
            key=name, value=value, httponly=True, secure=self._secure, samesite="lax"
        )

    def delete_cookie(self, name: str) -> None:
        self._response.delete_cookie(key=name)


class SessionCookieBridge:
    """
    Token-change subscriber that mirrors the session into a cookie store.

    Sets the session cookie to the ID token on sign-in and deletes it on
    sign-out. `refresh_required` is set once the observed user differs from
    the one the consumer was rendered with.
    """

    def __init__(
        self,
        cookies: CookieStore,
        initial_user: SessionUser | None = None,
        cookie_name: str = SESSION_COOKIE_NAME,
    ):
        self._cookies = cookies
        self._cookie_name = cookie_name
        self.initial_user = initial_user
        self.refresh_required = False

    def __call__(self, change: TokenChange) -> None:
        if change.user and change.user.token:
            self._cookies.set_cookie(self._cookie_name, change.user.token)
        else:
            self._cookies.delete_cookie(self._cookie_name)

        if reconcile_session(self.initial_user, change.user):
            self.refresh_required = True


def get_authenticated_user(
    request: Request,
    provider: IdentityProvider,
    cookie_name: str = SESSION_COOKIE_NAME,
) -> Optional[SessionUser]:
    """
    Rebuilds the signed-in user from the session cookie. A missing or rejected
    token, or a failed verification call, means an anonymous request.
    """
    id_token = request.cookies.get(cookie_name)
    if not id_token:
        return None
    try:
        claims = provider.verify_id_token(id_token)
    except AuthenticationFailed as e:
        logger.info(f"Ignoring session cookie: {e}")
        return None
    except BackendUnavailable as e:
        logger.error(f"Could not verify session cookie: {e}")
        return None
    return user_from_claims(claims, id_token)
