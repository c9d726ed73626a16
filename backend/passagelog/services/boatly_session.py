from __future__ import annotations

import logging
import threading

from passagelog.core.config import Settings
from passagelog.integrations.boatly import BoatlyAPIError, BoatlyClient, BoatlyCredentials

logger = logging.getLogger(__name__)


class NotLoggedInError(Exception):
    pass


class BoatlySession:
    """Credentials obtained from the last successful login."""

    def __init__(self, client: BoatlyClient, credentials: BoatlyCredentials | None = None):
        self.client = client
        self._credentials = credentials
        self._lock = threading.Lock()

    @property
    def credentials(self) -> BoatlyCredentials | None:
        with self._lock:
            return self._credentials

    @property
    def is_logged_in(self) -> bool:
        return self.credentials is not None

    def login(self, email: str, password: str) -> BoatlyCredentials:
        try:
            credentials = self.client.authenticate(email, password)
        except BoatlyAPIError:
            with self._lock:
                self._credentials = None
            logger.warning("Boatly login failed")
            raise

        with self._lock:
            self._credentials = credentials
        logger.info("Boatly login succeeded", extra={"user_id": credentials.user_id})
        return credentials

    def require_credentials(self) -> BoatlyCredentials:
        credentials = self.credentials
        if credentials is None:
            raise NotLoggedInError("Login with Boatly first")
        return credentials


def build_boatly_session(settings: Settings) -> BoatlySession:
    client = BoatlyClient(base_url=settings.BOATLY_API_URL, timeout_s=settings.HTTP_TIMEOUT_S)
    credentials = None
    if settings.BOATLY_AUTH_TOKEN and settings.BOATLY_USER_ID:
        credentials = BoatlyCredentials(token=settings.BOATLY_AUTH_TOKEN, user_id=settings.BOATLY_USER_ID)
    return BoatlySession(client, credentials)
