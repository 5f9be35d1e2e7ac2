# session.py
# Login gate, idle timeout and the "is this still the active view" guard

import hmac
import time
from dataclasses import dataclass

import config
from loggers import get_logger

log = get_logger("billing.session")

ANONYMOUS = "anonymous"
AUTHENTICATED = "authenticated"
EXPIRED = "expired"


def is_idle(last_activity, now, timeout_seconds):
    """True once `timeout_seconds` have passed since the last observed activity."""
    if last_activity is None:
        return False
    return (now - last_activity) >= timeout_seconds


def configured_credentials():
    """(username, password) from secrets/env; password None means the app is open."""
    username = config.get_secret("app", "username", env="APP_USERNAME", default="admin")
    password = config.get_secret("app", "password", env="APP_PASSWORD")
    return username, password


def check_credentials(username, password, expected_username, expected_password):
    user_ok = hmac.compare_digest(str(username or "").encode(), str(expected_username or "").encode())
    pwd_ok = hmac.compare_digest(str(password or "").encode(), str(expected_password or "").encode())
    return user_ok and pwd_ok


@dataclass
class SessionContext:
    """
    anonymous -> authenticated (login) -> expired (idle past the timeout)
    -> anonymous (expiry acknowledged, or logout from any state).
    """

    state: str = ANONYMOUS
    user: str = None
    last_activity: float = None
    timeout_seconds: int = config.IDLE_TIMEOUT_MINUTES * 60

    @property
    def authenticated(self):
        return self.state == AUTHENTICATED

    def login(self, username, password, credentials=None, now=None):
        expected_user, expected_pwd = credentials or configured_credentials()
        if expected_pwd is None or check_credentials(username, password, expected_user, expected_pwd):
            self.state = AUTHENTICATED
            self.user = username or expected_user
            self.last_activity = time.time() if now is None else now
            log.info("User %s logged in", self.user)
            return True
        log.warning("Failed login for %r", username)
        return False

    def touch(self, now=None):
        if self.state == AUTHENTICATED:
            self.last_activity = time.time() if now is None else now

    def tick(self, now=None):
        """Re-evaluate the idle timeout; returns the (possibly new) state."""
        now = time.time() if now is None else now
        if self.state == AUTHENTICATED and is_idle(self.last_activity, now, self.timeout_seconds):
            self.state = EXPIRED
            log.info("Session for %s expired after inactivity", self.user)
        return self.state

    def acknowledge_expiry(self):
        if self.state == EXPIRED:
            self.logout()

    def logout(self):
        self.state = ANONYMOUS
        self.user = None
        self.last_activity = None


class ViewGuard:
    """
    Navigation bumps an epoch kept in `state`. An operation captures the
    token when it starts and applies its result only if the token is still
    current.
    """

    def __init__(self, state, key="_view"):
        self.state = state
        self.key = key
        if key not in state:
            state[key] = {"name": None, "epoch": 0}

    def enter(self, name):
        view = self.state[self.key]
        if view["name"] != name:
            self.state[self.key] = {"name": name, "epoch": view["epoch"] + 1}
        return self.token()

    def token(self):
        return self.state[self.key]["epoch"]

    def is_active(self, token):
        return token == self.token()

    def mark(self, flag):
        """Tag a one-shot request with the current view."""
        self.state[flag] = self.token()

    def take(self, flag):
        """Pop a request tagged by mark(); True only while the view that made it is still active."""
        token = self.state.pop(flag, None)
        return token is not None and self.is_active(token)
