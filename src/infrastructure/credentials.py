from __future__ import annotations

import threading
from typing import Protocol

import boto3
from botocore.credentials import ReadOnlyCredentials
from botocore.exceptions import BotoCoreError

from domain.errors import SigningError


class CredentialProvider(Protocol):
    def get_credentials(self) -> ReadOnlyCredentials: ...


class BotoCredentialProvider:
    """Resolves the default boto3 chain once and reuses it for the whole run.

    Inside Lambda the chain picks up the execution role from the environment.
    """

    def __init__(self, session: boto3.Session | None = None) -> None:
        self._session = session
        self._cached: ReadOnlyCredentials | None = None
        self._lock = threading.Lock()

    def get_credentials(self) -> ReadOnlyCredentials:
        with self._lock:
            if self._cached is None:
                self._cached = self._resolve()
            return self._cached

    def _resolve(self) -> ReadOnlyCredentials:
        try:
            session = self._session or boto3.Session()
            credentials = session.get_credentials()
            if credentials is None:
                raise SigningError("No AWS credentials found in the default provider chain")
            return credentials.get_frozen_credentials()
        except BotoCoreError as exc:
            raise SigningError(f"Could not resolve AWS credentials: {exc}") from exc


class StaticCredentialProvider:
    def __init__(self, access_key: str, secret_key: str, token: str | None = None) -> None:
        self._credentials = ReadOnlyCredentials(access_key, secret_key, token)

    def get_credentials(self) -> ReadOnlyCredentials:
        return self._credentials
