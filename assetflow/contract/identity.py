"""
Caller Identity

The engine consumes a CallerIdentity exactly as the platform hands it over and
never re-derives any part of it. Deriving an identity from an X.509 enrollment
certificate is the identity provider's job; ``identity_from_certificate`` is
that provider-side helper and is never called by the engine.

Certificate profile (Fabric CA style):
    - role: JSON attribute extension, OID 1.2.3.4.5.6.7.8.1,
      payload ``{"attrs": {"role": "<role>", ...}}``
    - fingerprint: sha256 over the ``x509::<subject>::<issuer>`` identity string,
      so re-enrolling the same subject under the same issuer keeps ownership
    - org_label: supplied by the membership service (MSP id); audit only
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from cryptography import x509
from cryptography.x509.oid import ObjectIdentifier

from assetflow.core import sha256_bytes
from assetflow.contract.errors import ValidationError

ATTRIBUTE_EXTENSION_OID = ObjectIdentifier("1.2.3.4.5.6.7.8.1")
ROLE_ATTRIBUTE = "role"


@dataclass(frozen=True)
class CallerIdentity:
    """
    Verified claims about the caller of one transaction.

    ``fingerprint`` is used for ownership checks, ``role`` for role checks, and
    ``org_label`` only for audit metadata.
    """
    role: str
    fingerprint: str
    org_label: str = ""

    def __post_init__(self):
        if not isinstance(self.role, str) or not self.role:
            raise ValidationError("caller.role", "caller identity is missing a role claim")
        if not isinstance(self.fingerprint, str) or not self.fingerprint:
            raise ValidationError("caller.fingerprint", "caller identity is missing a fingerprint")

    @classmethod
    def from_certificate(
        cls,
        pem_or_der: Union[bytes, str],
        org_label: str,
        role_attribute: str = ROLE_ATTRIBUTE,
    ) -> "CallerIdentity":
        return identity_from_certificate(pem_or_der, org_label, role_attribute)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "org_label": self.org_label,
            "fingerprint": self.fingerprint,
        }


def _load_certificate(pem_or_der: Union[bytes, str]) -> x509.Certificate:
    data = pem_or_der.encode("ascii") if isinstance(pem_or_der, str) else pem_or_der
    if data.lstrip().startswith(b"-----BEGIN"):
        return x509.load_pem_x509_certificate(data)
    return x509.load_der_x509_certificate(data)


def certificate_attributes(cert: x509.Certificate) -> Dict[str, str]:
    """Return the attribute map embedded by the issuing CA, or {} if absent."""
    try:
        ext = cert.extensions.get_extension_for_oid(ATTRIBUTE_EXTENSION_OID)
    except x509.ExtensionNotFound:
        return {}
    value = ext.value
    raw = value.value if isinstance(value, x509.UnrecognizedExtension) else b""
    try:
        doc = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {}
    attrs = doc.get("attrs") if isinstance(doc, dict) else None
    if not isinstance(attrs, dict):
        return {}
    return {str(k): str(v) for k, v in attrs.items()}


def certificate_id(cert: x509.Certificate) -> str:
    """The ``x509::<subject>::<issuer>`` identity string for a certificate."""
    return f"x509::{cert.subject.rfc4514_string()}::{cert.issuer.rfc4514_string()}"


def identity_from_certificate(
    pem_or_der: Union[bytes, str],
    org_label: str,
    role_attribute: str = ROLE_ATTRIBUTE,
) -> CallerIdentity:
    """Build a CallerIdentity from an enrollment certificate.

    Raises:
        ValidationError: if the certificate carries no role attribute
    """
    cert = _load_certificate(pem_or_der)
    role: Optional[str] = certificate_attributes(cert).get(role_attribute)
    if not role:
        raise ValidationError(
            "caller.role",
            f'certificate missing "{role_attribute}" attribute; '
            "ensure the CA issued the certificate with a role attribute",
        )
    fingerprint = sha256_bytes(certificate_id(cert).encode("utf-8"))
    return CallerIdentity(role=role, fingerprint=fingerprint, org_label=org_label)
