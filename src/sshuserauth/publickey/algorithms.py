"""
sshuserauth Signature Algorithm Selection

Chooses which public key algorithm names to offer for an identity.

RSA keys may be offered under the SHA-2 signature algorithms of RFC 8332
as well as the legacy "ssh-rsa"; every other key type is only offered
under its own type name.
"""

from __future__ import annotations

from typing import AbstractSet, Dict, FrozenSet, Iterable, List, Optional

from sshuserauth.core.crypto import base_algorithm
from sshuserauth.core.types import Identity


RSA_CERT_TYPE = "ssh-rsa-cert-v01@openssh.com"

# Algorithm names usable with each key type, beyond the type name itself
COMPATIBLE_ALGORITHMS: Dict[str, FrozenSet[str]] = {
    "ssh-rsa": frozenset({"rsa-sha2-512", "rsa-sha2-256", "ssh-rsa"}),
    RSA_CERT_TYPE: frozenset(
        {
            "rsa-sha2-512-cert-v01@openssh.com",
            "rsa-sha2-256-cert-v01@openssh.com",
            RSA_CERT_TYPE,
        }
    ),
}

DEFAULT_PUBKEY_ALGORITHMS = (
    "ssh-ed25519-cert-v01@openssh.com",
    "ecdsa-sha2-nistp521-cert-v01@openssh.com",
    "ecdsa-sha2-nistp384-cert-v01@openssh.com",
    "ecdsa-sha2-nistp256-cert-v01@openssh.com",
    "rsa-sha2-512-cert-v01@openssh.com",
    "rsa-sha2-256-cert-v01@openssh.com",
    "ssh-rsa-cert-v01@openssh.com",
    "ssh-ed25519",
    "ecdsa-sha2-nistp521",
    "ecdsa-sha2-nistp384",
    "ecdsa-sha2-nistp256",
    "rsa-sha2-512",
    "rsa-sha2-256",
    "ssh-rsa",
    "ssh-dss",
)


def compatible_algorithms(key_type: str) -> FrozenSet[str]:
    """Return every algorithm name a key of this type can sign under."""
    return COMPATIBLE_ALGORITHMS.get(key_type, frozenset({key_type}))


def select_candidates(
    preferred: Iterable[str],
    identity: Identity,
    server_sig_algs: Optional[AbstractSet[str]] = None,
) -> List[str]:
    """
    Order the algorithms to try for one identity.

    The preference list is filtered down to names the identity's key
    type supports, keeping preference order. When the server advertised
    server-sig-algs (RFC 8308), names it did not list are dropped as well.
    If nothing is left, the identity's own type is the only candidate.

    Args:
        preferred: Configured algorithm names, most preferred first
        identity: Identity about to be offered
        server_sig_algs: Algorithms from the server's EXT_INFO, if any

    Returns:
        Non-empty list of algorithm names
    """
    supported = compatible_algorithms(identity.key_type)

    candidates: List[str] = []
    for name in preferred:
        if name not in supported or name in candidates:
            continue
        if server_sig_algs and not (
            name in server_sig_algs or base_algorithm(name) in server_sig_algs
        ):
            continue
        candidates.append(name)

    return candidates or [identity.key_type]
