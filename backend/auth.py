# auth.py: admin / view-only session switch
import logging
import secrets
from typing import Callable, List, Optional

import config
from errors import AuthError
from schemas import OpResult

logger = logging.getLogger(__name__)

Verifier = Callable[[str, str, str], bool]
Listener = Callable[[bool], None]


def default_verifier(email: str, password: str, settings_password: str) -> bool:
    """Configured admin email, with KTX_ADMIN_PASSWORD or else the password stored in settings."""
    expected = config.ADMIN_PASSWORD or settings_password
    if not expected:
        return False
    return (
        secrets.compare_digest(email.strip().lower().encode(), config.ADMIN_EMAIL.lower().encode())
        and secrets.compare_digest(password.encode(), expected.encode())
    )


class AdminAuth:
    def __init__(self, verifier: Verifier = default_verifier):
        self._verify = verifier
        self._token: Optional[str] = None
        self._listeners: List[Listener] = []

    def current_session(self) -> bool:
        return self._token is not None

    def check_token(self, token: Optional[str]) -> bool:
        return bool(token) and self._token is not None and secrets.compare_digest(token.encode(), self._token.encode())

    def sign_in(self, email: str, password: str, settings_password: str = "") -> OpResult:
        if not self._verify(email or "", password or "", settings_password):
            logger.warning("admin sign-in rejected for %s", email)
            return OpResult.failure(AuthError("Invalid email or password."))
        self._token = secrets.token_urlsafe(32)
        logger.info("admin signed in: %s", email)
        self._notify(True)
        return OpResult.success(self._token)

    def sign_out(self) -> None:
        was_admin = self.current_session()
        self._token = None
        if was_admin:
            logger.info("admin signed out")
            self._notify(False)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, is_admin: bool) -> None:
        for listener in list(self._listeners):
            listener(is_admin)
