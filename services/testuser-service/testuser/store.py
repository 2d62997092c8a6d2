"""Redis-backed storage for test accounts and their expiry indexes."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Final, Iterator, Mapping

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError, ResponseError

from .config import Settings
from .domain.account import Account, Environment, from_ms, to_ms
from .domain.contracts import Keypair
from .domain.names import next_email, random_name, random_password
from .errors import AccountNotFound, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RedisKeys:
    """Key layout shared with the external mail and sweeping processes."""

    prefix: str = "ptu"

    @property
    def sequence(self) -> str:
        return f"{self.prefix}:nextval"

    @property
    def mail_queue(self) -> str:
        return f"{self.prefix}:mailq"

    @property
    def expired(self) -> str:
        return f"{self.prefix}:expired"

    @property
    def staging(self) -> str:
        return f"{self.prefix}:emails:staging"

    @property
    def valid(self) -> str:
        return f"{self.prefix}:emails:valid"

    def account(self, email: str) -> str:
        return f"{self.prefix}:email:{email}"


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        raise StoreError(f"{operation} failed: {exc}") from exc


class AccountStore:
    """Typed access to account hashes plus the staging/valid sorted sets."""

    _SWEEP_SCRIPT: Final[str] = """
    local expired_key = KEYS[3]
    local account_prefix = ARGV[1]
    local cutoffs = {ARGV[2], ARGV[3]}
    local swept = {}

    for i = 1, 2 do
        local members = redis.call('ZRANGEBYSCORE', KEYS[i], '-inf', cutoffs[i])
        for _, email in ipairs(members) do
            redis.call('ZREM', KEYS[i], email)
            redis.call('DEL', account_prefix .. email)
            redis.call('RPUSH', expired_key, email)
            table.insert(swept, email)
        end
    end
    return swept
    """

    def __init__(
        self,
        client: Redis,
        settings: Settings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Store the Redis client, key layout and allocation parameters."""
        self._client = client
        self._keys = RedisKeys(settings.key_prefix)
        self._domain = settings.email_domain
        self._password_length = settings.password_length
        self._ttl = timedelta(seconds=settings.staging_ttl_seconds)
        self._clock = clock
        self._sweep_script = client.register_script(self._SWEEP_SCRIPT)

    @property
    def keys(self) -> RedisKeys:
        return self._keys

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def allocate(self, env: Environment, *, do_verify: bool = False) -> Account:
        """Reserve a sequence number and stage a brand-new account.

        The hash and the staging membership are written in a single
        MULTI/EXEC block so a failure never leaves a half-written account.
        """
        with _store_errors("allocate"):
            sequence = await self._client.incr(self._keys.sequence)
            created_at = from_ms(self._now_ms())
            account = Account(
                email=next_email(random_name(), sequence, self._domain),
                password=random_password(self._password_length),
                env=env,
                created_at=created_at,
                expires_at=created_at + self._ttl,
                do_verify=do_verify,
            )
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.zadd(self._keys.staging, {account.email: to_ms(account.expires_at)})
                pipe.hset(self._keys.account(account.email), mapping=account.to_hash())
                await pipe.execute()
        logger.debug("allocated %s (sequence %s) for %s", account.email, sequence, env.value)
        return account

    async def get(self, email: str) -> Account | None:
        """Return the stored account or ``None`` when it does not exist."""
        with _store_errors("get"):
            data = await self._client.hgetall(self._keys.account(email))
        if not data:
            return None
        return Account.from_hash(data)

    async def set_field(self, email: str, name: str, value: str) -> None:
        await self.set_fields(email, {name: value})

    async def set_fields(self, email: str, fields: Mapping[str, str]) -> None:
        """Write several hash fields in one round-trip."""
        with _store_errors("set_fields"):
            await self._client.hset(self._keys.account(email), mapping=dict(fields))

    async def promote(self, email: str) -> Account:
        """Move a verified account from staging to valid and drop its token.

        The record is watched while it is read, so an eviction racing the
        move aborts the transaction and the retry reports ``AccountNotFound``.
        """
        key = self._keys.account(email)

        async def move(pipe: Pipeline) -> None:
            data = await pipe.hgetall(key)
            if not data:
                raise AccountNotFound(email)
            created_ms = to_ms(Account.from_hash(data).created_at)
            verified_ms = self._now_ms()
            pipe.multi()
            pipe.zrem(self._keys.staging, email)
            pipe.zadd(self._keys.valid, {email: created_ms})
            pipe.hdel(key, "token")
            pipe.hset(key, "verified_at", str(verified_ms))
            pipe.hgetall(key)

        with _store_errors("promote"):
            results = await self._client.transaction(move, key)
        return Account.from_hash(results[-1])

    async def claim_keypair(self, email: str, keypair: Keypair) -> Keypair:
        """Store ``keypair`` unless the account already has one; return the stored pair."""
        key = self._keys.account(email)

        async def claim(pipe: Pipeline) -> Keypair:
            if not await pipe.exists(key):
                raise AccountNotFound(email)
            algorithm, public_key, secret_key = await pipe.hmget(
                key, "key_algorithm", "public_key", "secret_key"
            )
            if algorithm and public_key and secret_key:
                return Keypair(algorithm=algorithm, public_key=public_key, secret_key=secret_key)
            pipe.multi()
            pipe.hset(
                key,
                mapping={
                    "public_key": keypair.public_key,
                    "secret_key": keypair.secret_key,
                    "key_algorithm": keypair.algorithm,
                },
            )
            return keypair

        with _store_errors("claim_keypair"):
            return await self._client.transaction(claim, key, value_from_callable=True)

    async def evict(self, email: str) -> None:
        """Remove an account record and both of its index memberships."""
        with _store_errors("evict"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.zrem(self._keys.staging, email)
                pipe.zrem(self._keys.valid, email)
                pipe.delete(self._keys.account(email))
                await pipe.execute()

    async def sweep_expired(self) -> list[str]:
        """Drop accounts past their deadline and queue them on the expired list.

        Staging entries are scored by expiry; valid entries by creation time,
        so they are swept once a full staging TTL has passed since creation.
        """
        now_ms = self._now_ms()
        valid_cutoff_ms = now_ms - int(self._ttl.total_seconds() * 1000)
        with _store_errors("sweep"):
            try:
                swept = await self._sweep_script(
                    keys=[self._keys.staging, self._keys.valid, self._keys.expired],
                    args=[self._keys.account(""), now_ms, valid_cutoff_ms],
                )
            except ResponseError as exc:
                message = str(exc).lower()
                if "unknown command `evalsha`" in message or "unknown command `eval`" in message:
                    swept = await self._sweep_fallback(now_ms, valid_cutoff_ms)
                else:
                    raise
        return list(swept)

    async def _sweep_fallback(self, now_ms: int, valid_cutoff_ms: int) -> list[str]:
        """Pipelined sweep used when the server has no Lua scripting."""
        swept: list[str] = []
        for index, cutoff in ((self._keys.staging, now_ms), (self._keys.valid, valid_cutoff_ms)):
            for email in await self._client.zrangebyscore(index, "-inf", cutoff):
                # Only the sweeper that wins the ZREM queues the email.
                if not await self._client.zrem(index, email):
                    continue
                async with self._client.pipeline(transaction=True) as pipe:
                    pipe.delete(self._keys.account(email))
                    pipe.rpush(self._keys.expired, email)
                    await pipe.execute()
                swept.append(email)
        return swept
