import datetime
import hmac
import time
from typing import Callable, Optional

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from .logging_config import get_logger
from .messages import Messages
from .store import KeyValueStore, login_attempts_key, login_lock_key

logger = get_logger("auth")

ALGORITHM = "HS256"
SESSION_SUBJECT = "schedule-owner"
ATTEMPT_WINDOW_SECONDS = 24 * 60 * 60


def get_client_ip(request: Request) -> str:
    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown-ip"


def create_session_token(secret_key: str, expires_at: datetime.datetime) -> str:
    return jwt.encode({"sub": SESSION_SUBJECT, "exp": expires_at}, secret_key, algorithm=ALGORITHM)


def is_valid_session_token(token: Optional[str], secret_key: str) -> bool:
    if not token:
        return False
    try:
        payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return False
    return payload.get("sub") == SESSION_SUBJECT


class LoginGuard:
    """Password check with per-IP failed attempt counting and lockout.

    Counters and lock markers live in the key-value store with expiry, so
    they survive restarts when the store is Redis.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        password: str,
        messages: Messages,
        max_attempts: int = 3,
        lockout_seconds: int = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.password = password
        self.messages = messages
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock

    async def ensure_not_locked(self, client_ip: str) -> None:
        lock_key = login_lock_key(client_ip)
        lock = await self.store.get_json(lock_key)
        if not lock or not lock.get("locked"):
            return
        now = int(self._clock())
        lock_expiry = int(lock.get("timestamp", 0)) + self.lockout_seconds
        if now >= lock_expiry:
            await self.store.delete(lock_key)
            return
        remaining = lock_expiry - now
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=self.messages.locked_out.format(hours=remaining // 3600, minutes=(remaining % 3600) // 60),
        )

    async def record_failure(self, client_ip: str) -> int:
        now = int(self._clock())

        def bump(current):
            count = int(current.get("count", 0)) if current else 0
            return {"count": count + 1, "timestamp": now}

        attempts = await self.store.update_json(
            login_attempts_key(client_ip), bump, ttl_seconds=ATTEMPT_WINDOW_SECONDS
        )
        return attempts["count"]

    async def login(self, client_ip: str, password: str) -> None:
        """Raise HTTPException unless ``password`` is accepted for ``client_ip``."""
        await self.ensure_not_locked(client_ip)

        if hmac.compare_digest(password.encode("utf-8"), self.password.encode("utf-8")):
            await self.store.delete(login_attempts_key(client_ip))
            logger.info(f"Successful login from {client_ip}")
            return

        count = await self.record_failure(client_ip)
        if count >= self.max_attempts:
            await self.store.put_json(
                login_lock_key(client_ip),
                {"locked": True, "timestamp": int(self._clock())},
                ttl_seconds=self.lockout_seconds,
            )
            logger.warning(f"Locked out {client_ip} after {count} failed login attempts")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=self.messages.too_many_attempts.format(hours=self.lockout_seconds // 3600),
            )

        logger.info(f"Failed login from {client_ip} ({count}/{self.max_attempts})")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=self.messages.wrong_password.format(remaining=self.max_attempts - count),
        )
