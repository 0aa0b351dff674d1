"""Local ssh identity handling for signature-auth deployments."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_pem_private_key,
    load_ssh_private_key,
)

DEFAULT_IDENTITY_FILES = (
    Path.home() / ".ssh" / "id_rsa",
    Path.home() / ".ssh" / "id_ecdsa",
    Path.home() / ".ssh" / "id_ed25519",
)


_SUPPORTED_KEY_TYPES = (
    rsa.RSAPrivateKey,
    ec.EllipticCurvePrivateKey,
    ed25519.Ed25519PrivateKey,
)


class IdentityError(ValueError):
    """Raised when identity material is invalid or cannot be loaded."""


@dataclass(frozen=True)
class LocalIdentity:
    path: Path
    private_key: object

    @property
    def public_key_blob(self) -> bytes:
        openssh = self.private_key.public_key().public_bytes(
            Encoding.OpenSSH, PublicFormat.OpenSSH
        )
        return base64.b64decode(openssh.split()[1])

    @property
    def fingerprint(self) -> str:
        """MD5 fingerprint of the public key, the format used in key ids."""
        digest = hashlib.md5(self.public_key_blob).hexdigest()
        return ":".join(digest[i : i + 2] for i in range(0, len(digest), 2))

    @property
    def algorithm(self) -> str:
        key = self.private_key
        if isinstance(key, rsa.RSAPrivateKey):
            return "rsa-sha256"
        if isinstance(key, ec.EllipticCurvePrivateKey):
            return {256: "ecdsa-sha256", 384: "ecdsa-sha384", 521: "ecdsa-sha512"}[
                key.curve.key_size
            ]
        if isinstance(key, ed25519.Ed25519PrivateKey):
            return "ed25519-sha512"
        raise IdentityError(f"unsupported key type in {self.path}")


def _load_private_key(raw: bytes, path: Path) -> object:
    try:
        if b"BEGIN OPENSSH PRIVATE KEY" in raw:
            return load_ssh_private_key(raw, password=None)
        return load_pem_private_key(raw, password=None)
    except TypeError as exc:
        raise IdentityError(f"identity file is passphrase protected: {path}") from exc
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise IdentityError(f"invalid identity file: {path}") from exc


def load_identity(path: str | Path) -> LocalIdentity:
    identity_path = Path(path).expanduser()
    try:
        raw = identity_path.read_bytes()
    except OSError as exc:
        raise IdentityError(f"cannot read identity file: {identity_path}") from exc
    private_key = _load_private_key(raw, identity_path)
    if not isinstance(private_key, _SUPPORTED_KEY_TYPES):
        raise IdentityError(f"unsupported key type in {identity_path}")
    return LocalIdentity(path=identity_path, private_key=private_key)


def find_identity(
    paths: Sequence[str | Path] | None,
    *,
    defaults: Iterable[Path] = DEFAULT_IDENTITY_FILES,
) -> LocalIdentity | None:
    """Load the first given identity, or the first existing default one."""
    if paths:
        return load_identity(paths[0])
    for candidate in defaults:
        if candidate.exists():
            return load_identity(candidate)
    return None
