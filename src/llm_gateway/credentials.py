"""
Credential resolution.

A model declares one credential mode or an ordered list of them. Strategies
are tried in that order; the first one that yields something wins and later
strategies are never attempted.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional, Protocol, Union

from llm_gateway.access import AccessCandidate
from llm_gateway.config import ProviderKeys
from llm_gateway.errors import CredentialMissing
from llm_gateway.types.model import CredentialMode, ModelDescriptor

__all__ = [
    "NoCredentials",
    "ApiKey",
    "AwsKeys",
    "JsonBlob",
    "Credentials",
    "SecretStore",
    "CredentialResolver",
]

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NoCredentials:
    is_user_supplied: bool = False


@dataclass(frozen=True, slots=True)
class ApiKey:
    key: str = field(repr=False)
    is_user_supplied: bool = False


@dataclass(frozen=True, slots=True)
class AwsKeys:
    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: Optional[str] = field(default=None, repr=False)
    is_user_supplied: bool = True


@dataclass(frozen=True, slots=True)
class JsonBlob:
    data: dict[str, Any] = field(repr=False)
    is_user_supplied: bool = True


Credentials = Union[NoCredentials, ApiKey, AwsKeys, JsonBlob]
_CREDENTIAL_TYPES = (NoCredentials, ApiKey, AwsKeys, JsonBlob)


class SecretStore(Protocol):
    def get_secret(
        self, candidate: AccessCandidate, key: str
    ) -> Union[Optional[str], Awaitable[Optional[str]]]:
        """Return the caller-scoped secret stored under ``key`` or None."""
        ...


class CredentialResolver:
    """Resolve provider credentials for a (candidate, model) pair."""

    def __init__(
        self,
        provider_keys: Optional[ProviderKeys] = None,
        secret_store: Optional[SecretStore] = None,
        *,
        secret_timeout: float = 2.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.provider_keys = provider_keys or ProviderKeys()
        self.secret_store = secret_store
        self.secret_timeout = secret_timeout
        self.logger = logger or _logger

    async def resolve(self, candidate: AccessCandidate, descriptor: ModelDescriptor) -> Credentials:
        modes = descriptor.credential_modes()
        for mode in modes:
            if isinstance(mode, _CREDENTIAL_TYPES):
                return mode
            credentials = await self._try(mode, candidate, descriptor)
            if credentials is not None:
                self.logger.debug("Resolved %s credentials via %s", descriptor.model_id, mode)
                return credentials
        raise CredentialMissing(descriptor.model_id, [str(m) for m in modes])

    async def _try(
        self, mode: CredentialMode, candidate: AccessCandidate, descriptor: ModelDescriptor
    ) -> Optional[Credentials]:
        if mode is CredentialMode.NONE:
            return NoCredentials()
        if mode is CredentialMode.INTERNAL:
            key = self.provider_keys.get(descriptor.provider)
            return ApiKey(key) if key else None
        if mode is CredentialMode.VAULT:
            key = await self._secret(candidate, str(descriptor.provider))
            return ApiKey(key, is_user_supplied=True) if key else None
        if mode is CredentialMode.BEDROCK_VAULT:
            return await self._bedrock(candidate, descriptor)
        if mode is CredentialMode.VERTEXAI_VAULT:
            return await self._vertexai(candidate, descriptor)
        self.logger.warning("Unknown credential mode %r for %s", mode, descriptor.model_id)
        return None

    async def _bedrock(self, candidate: AccessCandidate, descriptor: ModelDescriptor) -> Optional[AwsKeys]:
        settings = descriptor.settings
        key_id_name = settings.get("key_id_name")
        secret_key_name = settings.get("secret_key_name")
        if not key_id_name or not secret_key_name:
            return None
        session_key_name = settings.get("session_key_name")

        access_key_id, secret_access_key, session_token = await asyncio.gather(
            self._secret(candidate, key_id_name),
            self._secret(candidate, secret_key_name),
            self._secret(candidate, session_key_name) if session_key_name else _none(),
        )
        if not access_key_id or not secret_access_key:
            return None
        return AwsKeys(access_key_id, secret_access_key, session_token or None)

    async def _vertexai(self, candidate: AccessCandidate, descriptor: ModelDescriptor) -> Optional[JsonBlob]:
        name = descriptor.settings.get("json_credentials_name")
        if not name:
            return None
        raw = await self._secret(candidate, name)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            self.logger.warning("Secret %r for %s is not valid JSON", name, descriptor.model_id)
            return None
        return JsonBlob(data) if isinstance(data, dict) and data else None

    async def _secret(self, candidate: AccessCandidate, key: str) -> Optional[str]:
        """Read one secret; denial, timeout and store errors all mean "absent"."""
        if self.secret_store is None:
            return None
        try:
            async with asyncio.timeout(self.secret_timeout):
                get_secret = self.secret_store.get_secret
                if inspect.iscoroutinefunction(get_secret):
                    value = await get_secret(candidate, key)
                else:
                    # sync stores run in a worker thread
                    value = await asyncio.to_thread(get_secret, candidate, key)
                    if inspect.isawaitable(value):
                        value = await value
        except TimeoutError:
            self.logger.warning("Secret store timed out reading %r", key)
            return None
        except Exception as exc:
            self.logger.warning("Secret store failed reading %r: %s", key, exc.__class__.__name__)
            return None
        return value or None


async def _none() -> None:
    return None
