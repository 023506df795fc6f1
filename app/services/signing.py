"""
Proof handling for Digital Product Passports.

Two strategies exist for both signing and signature checking:

* Delegated: the external trust authority signs / verifies the document.
* LocalFallback: a deterministic placeholder is computed locally.

The placeholder `jws` is base64url("<credential id>:<issuance date>"). It is
NOT a cryptographic signature and carries no security guarantee; it only lets
this service recognise documents it issued itself. Because it does not bind
the credential content, the local proof also carries `contentHash`, a SHA-256
digest of the canonical credentialSubject, and local verification requires
both to match.
"""
import base64
import copy
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from loguru import logger


PLACEHOLDER_PROOF_TYPE = "Ed25519Signature2020"


@dataclass(frozen=True)
class Delegated:
    value: Any


@dataclass(frozen=True)
class LocalFallback:
    value: Any
    reason: Optional[str] = None


ProofOutcome = Union[Delegated, LocalFallback]


def base64url(value: str) -> str:
    encoded = base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii")
    return encoded.rstrip("=")


def placeholder_signature(credential_id: str, issued_at: str) -> str:
    return base64url(f"{credential_id}:{issued_at}")


def subject_digest(subject: Any) -> str:
    canonical = json.dumps(
        subject, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def attach_local_proof(document: Dict[str, Any]) -> Dict[str, Any]:
    """Returns a copy of the document carrying the local placeholder proof."""
    signed = copy.deepcopy(document)
    issuer = signed.get("issuer")
    issued_at = signed.get("issuanceDate")

    signed["proof"] = {
        "type": PLACEHOLDER_PROOF_TYPE,
        "created": issued_at,
        "proofPurpose": "assertionMethod",
        "verificationMethod": f"{issuer}#key-1",
        "jws": placeholder_signature(str(signed.get("id")), issued_at),
        "contentHash": subject_digest(signed.get("credentialSubject")),
    }
    return signed


def _proof(document: Dict[str, Any]) -> Dict[str, Any]:
    proof = document.get("proof")
    return proof if isinstance(proof, dict) else {}


def placeholder_signature_matches(
    document: Dict[str, Any], credential_id: Optional[str], issued_at: Optional[str]
) -> bool:
    if not credential_id or not issued_at:
        return False
    return _proof(document).get("jws") == placeholder_signature(credential_id, issued_at)


def content_digest_matches(document: Dict[str, Any]) -> bool:
    expected = _proof(document).get("contentHash")
    if not expected:
        return False
    return expected == subject_digest(document.get("credentialSubject"))


def verify_locally(
    document: Dict[str, Any], credential_id: Optional[str], issued_at: Optional[str]
) -> bool:
    return (
        placeholder_signature_matches(document, credential_id, issued_at)
        and content_digest_matches(document)
    )


def sign_document(
    document: Dict[str, Any],
    credential_types: List[str],
    authority=None,
    access_token: Optional[str] = None,
) -> ProofOutcome:
    """
    Signing strategy: delegate when an authority and a caller token are both
    available, otherwise (or on any delegated failure) sign locally.
    """
    if authority is None:
        reason = "trust authority not configured"
    elif not access_token:
        reason = "no access token supplied"
    else:
        try:
            signed = authority.issue(
                credential_subject=document["credentialSubject"],
                credential_types=credential_types,
                expiration_date=document["expirationDate"],
                access_token=access_token,
            )
            return Delegated(signed)
        except Exception as e:
            reason = str(e)
            logger.warning(
                f"Delegated signing failed for credential {document.get('id')}, "
                f"issuing with placeholder proof instead: {e}"
            )

    return LocalFallback(attach_local_proof(document), reason)


def check_signature(
    document: Dict[str, Any],
    credential_id: Optional[str],
    issued_at: Optional[str],
    authority=None,
    access_token: Optional[str] = None,
) -> ProofOutcome:
    """
    Signature strategy: ask the authority when possible; any failure of that
    call falls back to recomputing the placeholder proof.
    """
    reason = None
    if authority is not None and access_token:
        try:
            return Delegated(authority.verify(document, access_token) is True)
        except Exception as e:
            reason = str(e)
            logger.warning(
                f"Delegated verification failed for credential {credential_id}, "
                f"using local recomputation: {e}"
            )

    return LocalFallback(verify_locally(document, credential_id, issued_at), reason)
