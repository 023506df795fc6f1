from typing import Any, Dict, List, Optional
import httpx
from loguru import logger

from app.core.errors import ExternalServiceError


CREDENTIAL_CONTEXT = [
    "https://www.w3.org/2018/credentials/v1",
    "https://schema.org",
    "https://mosip.io/dpp/v1",
]


class _AuthorityClient:
    """
    Shared plumbing for the external authorities: one bounded HTTP call,
    no retries. Every failure is raised as ExternalServiceError.
    """
    name = "authority"

    def __init__(self, base_url: str, api_key: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self, access_token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
        }

    def _post(self, path: str, payload: Dict[str, Any], access_token: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    url, json=payload, headers=self._headers(access_token))
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                f"{self.name} returned {e.response.status_code} for {path}") from e
        except httpx.RequestError as e:
            raise ExternalServiceError(
                f"{self.name} unreachable ({type(e).__name__}) for {path}") from e
        except ValueError as e:
            raise ExternalServiceError(
                f"{self.name} returned a non-JSON body for {path}") from e

        if not isinstance(data, dict):
            raise ExternalServiceError(
                f"{self.name} returned an unexpected payload for {path}")
        return data


class TrustAuthorityClient(_AuthorityClient):
    """
    Client for the external credential authority (Inji Certify style API).
    Issues signed Verifiable Credentials and verifies their proofs.
    """
    name = "Trust authority"

    def __init__(self, base_url: str, api_key: str, issuer_did: str, timeout: float = 5.0):
        super().__init__(base_url, api_key, timeout)
        self.issuer_did = issuer_did

    def issue(
        self,
        credential_subject: Dict[str, Any],
        credential_types: List[str],
        expiration_date: str,
        access_token: str,
    ) -> Dict[str, Any]:
        payload = {
            "credential": {
                "@context": CREDENTIAL_CONTEXT,
                "type": credential_types,
                "issuer": self.issuer_did,
                "credentialSubject": credential_subject,
                "expirationDate": expiration_date,
            },
            "options": {
                "proofPurpose": "assertionMethod",
                "verificationMethod": f"{self.issuer_did}#key-1",
            },
        }
        data = self._post("/api/v1/credentials/issue", payload, access_token)

        credential = data.get("verifiableCredential")
        if not isinstance(credential, dict):
            raise ExternalServiceError(
                "Trust authority response has no verifiableCredential")
        return credential

    def verify(self, credential: Dict[str, Any], access_token: str) -> bool:
        data = self._post(
            "/api/v1/credentials/verify",
            {"verifiableCredential": credential},
            access_token,
        )

        verified = data.get("verified")
        if not isinstance(verified, bool):
            raise ExternalServiceError(
                "Trust authority response has no boolean 'verified' field")
        return verified


class WalletClient(_AuthorityClient):
    """
    Client for the wallet sharing authority. Delivery is best effort.
    """
    name = "Wallet authority"

    def share(
        self,
        credential: Dict[str, Any],
        recipient_email: str,
        access_token: str,
    ) -> Dict[str, Any]:
        payload = {
            "credential": credential,
            "recipient": {"type": "email", "value": recipient_email},
            "notification": {
                "method": "email",
                "message": "Your Digital Product Passport has been issued",
            },
        }
        data = self._post("/api/v1/credentials/share", payload, access_token)
        return {
            "shared": True,
            "transactionId": data.get("transactionId"),
            "message": data.get("message") or "Credential shared successfully",
        }


def build_trust_authority(settings) -> Optional[TrustAuthorityClient]:
    if not settings.certify_base_url or not settings.certify_api_key:
        return None
    return TrustAuthorityClient(
        base_url=settings.certify_base_url,
        api_key=settings.certify_api_key,
        issuer_did=settings.issuer_did or "did:example:qa-agency",
        timeout=settings.external_timeout_seconds,
    )


def build_wallet_client(settings) -> Optional[WalletClient]:
    if not settings.wallet_base_url or not settings.wallet_api_key:
        logger.debug("Wallet authority not configured, wallet sharing disabled")
        return None
    return WalletClient(
        base_url=settings.wallet_base_url,
        api_key=settings.wallet_api_key,
        timeout=settings.external_timeout_seconds,
    )
