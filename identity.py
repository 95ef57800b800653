"""
Per-browser pseudo-identity.

This is a display/capability gate, not authentication: whoever holds the
owner token in their cookie gets the management panel. The store interface
is the seam for replacing it with a real session mechanism.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from flask import after_this_request, has_request_context, request

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r'^[A-Za-z0-9_-]{1,128}$')


class IdentityStoreUnavailable(Exception):
    """The local persistent store cannot be read or written."""


@dataclass(frozen=True)
class Identity:
    token: Optional[str]
    ready: bool
    is_owner: bool
    persisted: bool = True


class IdentityStore:
    """Where the identity token lives between visits."""

    def load(self) -> Optional[str]:
        raise NotImplementedError

    def save(self, token: str) -> None:
        raise NotImplementedError


class MemoryIdentityStore(IdentityStore):
    def __init__(self, token=None):
        self.token = token
        self.saves = 0

    def load(self):
        return self.token

    def save(self, token):
        self.token = token
        self.saves += 1


class CookieIdentityStore(IdentityStore):
    """Keeps the token in a long-lived cookie on the current request's response."""

    def __init__(self, cookie_name: str, max_age: int, secure: bool = False):
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.secure = secure

    def load(self):
        if not has_request_context():
            raise IdentityStoreUnavailable('no request in progress')
        return request.cookies.get(self.cookie_name)

    def save(self, token):
        if not has_request_context():
            raise IdentityStoreUnavailable('no request in progress')

        @after_this_request
        def _persist(response):
            response.set_cookie(
                self.cookie_name,
                token,
                max_age=self.max_age,
                httponly=True,
                samesite='Lax',
                secure=self.secure,
            )
            return response


class IdentityResolver:
    """Resolves the current identity and compares it with the configured owner token."""

    def __init__(self, owner_id: Optional[str], token_factory: Callable[[], str] = None):
        self.owner_id = owner_id
        if owner_id and not _TOKEN_RE.match(owner_id):
            logger.warning('Configured owner identity %r is outside the generated token format; '
                           'it is still accepted from the identity cookie', owner_id)
        self.token_factory = token_factory or (lambda: str(uuid.uuid4()))

    def is_owner(self, token: Optional[str]) -> bool:
        return bool(self.owner_id) and token == self.owner_id

    def resolve(self, store: IdentityStore, data_ready: bool = True) -> Identity:
        if not data_ready:
            # Without a data service there is nothing to own.
            return Identity(token=None, ready=True, is_owner=False, persisted=False)

        persisted = True
        try:
            token = store.load()
        except IdentityStoreUnavailable as e:
            logger.warning('Identity store unavailable (%s); using a temporary identity', e)
            token = None
            persisted = False

        if not token or not (self.is_owner(token) or _TOKEN_RE.match(token)):
            token = self.token_factory()
            if persisted:
                try:
                    store.save(token)
                except IdentityStoreUnavailable as e:
                    logger.warning('Could not persist identity (%s); it will change next visit', e)
                    persisted = False
            if not self.owner_id:
                logger.info('No owner identity configured. This browser identity (copy me): %s', token)

        return Identity(token=token, ready=True, is_owner=self.is_owner(token), persisted=persisted)
