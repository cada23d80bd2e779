"""Sign-in through the Firebase Identity Toolkit REST API.

The signed-in user is kept in an :class:`AuthSession` that listeners can
subscribe to, and persisted to a small JSON file so CLI invocations share it.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Optional

import httpx

from .errors import AuthError, MalformedResponseError
from .models import User

logger = logging.getLogger(__name__)

IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1"

Listener = Callable[[Optional[User]], None]

# Firebase error codes → something a person can read.
ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": "No account exists for this email",
    "INVALID_PASSWORD": "Incorrect password",
    "INVALID_LOGIN_CREDENTIALS": "Incorrect email or password",
    "EMAIL_EXISTS": "An account already exists for this email",
    "WEAK_PASSWORD": "Password should be at least 6 characters",
    "USER_DISABLED": "This account has been disabled",
}


class AuthSession:
    """Current user, observable as a stream of user-or-None events."""

    def __init__(self, user: Optional[User] = None):
        self._user = user
        self._listeners: list[Listener] = []

    @property
    def user(self) -> Optional[User]:
        return self._user

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* now with the current user and on every change.

        Returns a function that unsubscribes.
        """
        self._listeners.append(listener)
        listener(self._user)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_user(self, user: Optional[User]) -> None:
        self._user = user
        for listener in list(self._listeners):
            listener(user)


class IdentityClient:
    def __init__(
        self,
        api_key: str,
        session_file: Path,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.session_file = Path(session_file)
        self.timeout = timeout
        self._transport = transport
        self.session = AuthSession(self._load())

    @property
    def current_user(self) -> Optional[User]:
        return self.session.user

    def _load(self) -> Optional[User]:
        if not self.session_file.exists():
            return None
        try:
            data = json.loads(self.session_file.read_text())
            return User(uid=data["uid"], email=data.get("email", ""),
                        display_name=data.get("display_name", ""))
        except (OSError, ValueError, KeyError) as e:
            logger.warning("Ignoring unreadable session file: %s", e)
            return None

    def _save(self, user: User, refresh_token: str) -> None:
        self.session_file.parent.mkdir(parents=True, exist_ok=True)
        self.session_file.write_text(json.dumps({
            "uid": user.uid,
            "email": user.email,
            "display_name": user.display_name,
            "refresh_token": refresh_token,
        }))
        self.session_file.chmod(0o600)

    async def _call(self, method: str, payload: dict) -> User:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{IDENTITY_URL}/accounts:{method}",
                    params={"key": self.api_key},
                    json={**payload, "returnSecureToken": True},
                )
            except httpx.HTTPError as e:
                raise AuthError(f"Could not reach the identity provider: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Identity provider returned invalid JSON: {e}") from e

        if response.is_error:
            code = (body.get("error") or {}).get("message", "")
            # Firebase sometimes appends detail: "WEAK_PASSWORD : Password should be..."
            key = code.split(" ")[0]
            raise AuthError(ERROR_MESSAGES.get(key, code or "Authentication failed"), response.status_code)

        if not body.get("localId"):
            raise MalformedResponseError("Identity response has no localId")
        user = User(
            uid=body["localId"],
            email=body.get("email", ""),
            display_name=body.get("displayName", ""),
        )
        self._save(user, body.get("refreshToken", ""))
        self.session.set_user(user)
        logger.info("Signed in as %s", user.email or user.uid)
        return user

    async def sign_in(self, email: str, password: str) -> User:
        return await self._call("signInWithPassword", {"email": email, "password": password})

    async def sign_up(self, email: str, password: str) -> User:
        return await self._call("signUp", {"email": email, "password": password})

    async def sign_in_with_idp(self, provider_id: str, id_token: str,
                               request_uri: str = "http://localhost") -> User:
        """Federated sign-in with a token already obtained from e.g. Google."""
        return await self._call("signInWithIdp", {
            "postBody": f"id_token={id_token}&providerId={provider_id}",
            "requestUri": request_uri,
        })

    def sign_out(self) -> None:
        try:
            self.session_file.unlink()
        except FileNotFoundError:
            pass
        self.session.set_user(None)
