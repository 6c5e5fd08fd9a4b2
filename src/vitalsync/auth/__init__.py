"""Device-key issuance and credential resolution."""

from vitalsync.auth.credentials import CredentialResolver, KeyIssuer, hash_key

__all__ = ["CredentialResolver", "KeyIssuer", "hash_key"]
