"""
Login session handling.

The login check is a username lookup against the remote data service; the
password is validated for shape only and never sent anywhere.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Callable, Optional

from expense_tracker.api_client import ApiClient
from expense_tracker.errors import PersistenceError, Result, TransportError
from expense_tracker.logger import get_logger
from expense_tracker.models import User
from expense_tracker.state import Action, StateContainer
from expense_tracker.storage import CURRENT_USER_KEY, USER_TOKEN_KEY, KeyValueStorage
from expense_tracker.validation import validate_login

logger = get_logger(__name__)

LOGIN_START = "LOGIN_START"
LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_ERROR = "LOGIN_ERROR"
LOGOUT = "LOGOUT"
RESTORE_TOKEN = "RESTORE_TOKEN"

INVALID_CREDENTIALS = "Invalid credentials"


@dataclass(frozen=True)
class AuthState:
    user: Optional[User] = None
    is_authenticated: bool = False
    loading: bool = True
    error: Optional[str] = None


def auth_reducer(state: AuthState, action: Action) -> AuthState:
    if action.type == LOGIN_START:
        return replace(state, loading=True, error=None)
    if action.type == LOGIN_SUCCESS:
        return replace(state, loading=False, user=action.payload, is_authenticated=True)
    if action.type == LOGIN_ERROR:
        return replace(state, loading=False, error=action.payload, is_authenticated=False)
    if action.type == LOGOUT:
        return replace(state, user=None, is_authenticated=False, loading=False)
    if action.type == RESTORE_TOKEN:
        return replace(state, user=action.payload, is_authenticated=True, loading=False)
    return state


def session_token(user: User) -> str:
    return f"token_{user.id}"


class AuthSession:
    def __init__(self, client: ApiClient, storage: KeyValueStorage):
        self.client = client
        self.storage = storage
        self._container = StateContainer(AuthState(), auth_reducer)

    @property
    def state(self) -> AuthState:
        return self._container.state

    def subscribe(self, listener: Callable[[AuthState], None]) -> Callable[[], None]:
        return self._container.subscribe(listener)

    def login(self, username: str, password: str) -> Result:
        validation = validate_login(username, password)
        if not validation.is_valid:
            message = next(iter(validation.errors.values()))
            self._container.dispatch(Action(LOGIN_ERROR, message))
            return Result.fail(message, validation.errors)

        self._container.dispatch(Action(LOGIN_START))
        try:
            record = self.client.find_user(username.strip())
        except (TransportError, PersistenceError) as exc:
            return self._fail(str(exc) or "An error occurred during login. Please try again.")
        if record is None or record.get("id") is None:
            return self._fail(INVALID_CREDENTIALS)

        user = User.from_record(record)
        try:
            self.storage.set(USER_TOKEN_KEY, session_token(user))
            self.storage.set(CURRENT_USER_KEY, json.dumps(user.to_record()))
        except PersistenceError as exc:
            return self._fail(str(exc))

        self._container.dispatch(Action(LOGIN_SUCCESS, user))
        logger.info("User %s logged in", user.username)
        return Result.ok(user)

    def logout(self) -> Result:
        result = Result.ok()
        try:
            self.storage.remove(USER_TOKEN_KEY)
            self.storage.remove(CURRENT_USER_KEY)
        except PersistenceError as exc:
            result = Result.fail(str(exc))
        self._container.dispatch(Action(LOGOUT))
        return result

    def restore(self) -> AuthState:
        try:
            token = self.storage.get(USER_TOKEN_KEY)
            raw_user = self.storage.get(CURRENT_USER_KEY)
            if token and raw_user:
                user = User.from_record(json.loads(raw_user))
                return self._container.dispatch(Action(RESTORE_TOKEN, user))
        except (PersistenceError, ValueError, KeyError) as exc:
            logger.warning("Could not restore session: %s", exc)
        return self._container.dispatch(Action(LOGOUT))

    def _fail(self, message: str) -> Result:
        self._container.dispatch(Action(LOGIN_ERROR, message))
        return Result.fail(message)
