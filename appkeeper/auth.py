"""
appkeeper - Account verification and session tokens.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Callable, Iterable

import bcrypt

from .errors import AuthError, ConfigError

log = logging.getLogger(__name__)

DEFAULT_ROUNDS = 12
DEFAULT_TOKEN_TTL = timedelta(minutes=10)
MAX_SECRET_BYTES = 72  # bcrypt only uses the first 72 bytes


@dataclass(frozen=True)
class Account:
    username: str
    encrypted_password: str


@dataclass(frozen=True)
class Token:
    id: str
    username: str
    expire_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "expire_at": self.expire_at.isoformat(),
        }


def parse_shadow(lines: Iterable[str]) -> list[Account]:
    """Parse `username:hash` lines. Blank lines are skipped."""
    accounts = []
    for number, line in enumerate(lines, start=1):
        line = line.rstrip("\r\n")
        if not line.strip():
            continue
        username, sep, encrypted = line.partition(":")
        if not sep or not username:
            raise ConfigError(f"bad shadow line {number}: expected username:hash")
        accounts.append(Account(username=username, encrypted_password=encrypted))
    return accounts


def load_accounts(shadow_path) -> list[Account]:
    try:
        with open(shadow_path, encoding="utf-8") as f:
            return parse_shadow(f)
    except OSError as e:
        raise ConfigError(f"read shadow file {shadow_path}: {e}") from e


def register(username: str, password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Produce a shadow line for a new account."""
    if not username or ":" in username:
        raise ValueError("username must be non-empty and must not contain ':'")
    hashed = bcrypt.hashpw(_secret(password), bcrypt.gensalt(rounds))
    return f"{username}:{hashed.decode()}"


def _secret(password: str) -> bytes:
    return password.encode()[:MAX_SECRET_BYTES]


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> bytes:
    # Checked against when the username is unknown, so a miss costs a full bcrypt round
    return bcrypt.hashpw(b"dummy", bcrypt.gensalt(rounds))


class AuthStore:
    def __init__(
        self,
        accounts: Iterable[Account],
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        now: Callable[[], datetime] = datetime.now,
        dummy_rounds: int = DEFAULT_ROUNDS,
    ):
        self._passwords = {a.username: a.encrypted_password for a in accounts}
        self._tokens: dict[str, Token] = {}
        self._lock = threading.Lock()
        self._token_ttl = token_ttl
        self._now = now
        self._dummy_rounds = dummy_rounds
        _dummy_hash(dummy_rounds)

    @classmethod
    def from_shadow_file(cls, shadow_path, **kwargs) -> "AuthStore":
        accounts = load_accounts(shadow_path)
        log.info("Loaded %d account(s) from %s", len(accounts), shadow_path)
        return cls(accounts, **kwargs)

    def auth(self, username: str, password: str) -> bool:
        """Check a password. Unknown users cost the same bcrypt work as known ones.

        Raises AuthError when a stored hash cannot be verified at all.
        """
        encrypted = self._passwords.get(username)
        if encrypted is None:
            bcrypt.checkpw(_secret(password), _dummy_hash(self._dummy_rounds))
            return False

        try:
            return bcrypt.checkpw(_secret(password), encrypted.encode())
        except ValueError as e:
            raise AuthError(f"verify password of {username}: {e}") from e

    def create_token(self, username: str) -> Token:
        now = self._now()
        token = Token(id=str(uuid.uuid4()), username=username, expire_at=now + self._token_ttl)
        with self._lock:
            # Tokens never looked up again after expiry are only dropped here
            self._purge_expired(now)
            self._tokens[token.id] = token
        return token

    def find_valid_token(self, token_id: str) -> Token | None:
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None:
                return None
            if self._now() >= token.expire_at:
                del self._tokens[token_id]
                return None
            return token

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def _purge_expired(self, now: datetime):
        expired = [tid for tid, t in self._tokens.items() if now >= t.expire_at]
        for tid in expired:
            del self._tokens[tid]
