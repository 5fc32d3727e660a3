from __future__ import annotations

from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.exceptions import BotoCoreError

from domain.errors import SigningError
from infrastructure.credentials import CredentialProvider


class SigV4RequestSigner:
    def __init__(self, credentials: CredentialProvider, region: str, service: str = "es") -> None:
        self.credentials = credentials
        self.region = region
        self.service = service

    def sign(self, method: str, url: str, body: bytes, headers: dict[str, str]) -> dict[str, str]:
        """Return ``headers`` extended with the SigV4 date, token and Authorization headers."""
        credentials = self.credentials.get_credentials()
        request = AWSRequest(method=method, url=url, data=body, headers=dict(headers))
        try:
            SigV4Auth(credentials, self.service, self.region).add_auth(request)
        except (BotoCoreError, ValueError) as exc:
            raise SigningError(f"Could not sign request: {exc}") from exc
        return dict(request.headers.items())
