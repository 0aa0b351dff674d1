"""Request authentication for IMGAPI deployments."""

from __future__ import annotations

import base64
from email.utils import formatdate

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa
from requests.auth import AuthBase, HTTPBasicAuth

from imgapi_cli.cli.identity import LocalIdentity

AUTH_MODES = ("none", "basic", "signature")

_ECDSA_HASHES = {
    "ecdsa-sha256": hashes.SHA256,
    "ecdsa-sha384": hashes.SHA384,
    "ecdsa-sha512": hashes.SHA512,
}


def sign_bytes(identity: LocalIdentity, data: bytes) -> bytes:
    key = identity.private_key
    if isinstance(key, rsa.RSAPrivateKey):
        return key.sign(data, padding.PKCS1v15(), hashes.SHA256())
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return key.sign(data, ec.ECDSA(_ECDSA_HASHES[identity.algorithm]()))
    if isinstance(key, ed25519.Ed25519PrivateKey):
        return key.sign(data)
    raise TypeError(f"unsupported key type: {type(key).__name__}")


class HttpSignatureAuth(AuthBase):
    """Signs the ``Date`` header of each request with an ssh key.

    Produces ``Authorization: Signature keyId="/<user>/keys/<md5-fp>",
    algorithm="<alg>",signature="<base64>"``.
    """

    def __init__(self, user: str, identity: LocalIdentity) -> None:
        self.user = user
        self.identity = identity

    @property
    def key_id(self) -> str:
        return f"/{self.user}/keys/{self.identity.fingerprint}"

    def __call__(self, request):
        date = request.headers.get("Date") or formatdate(usegmt=True)
        request.headers["Date"] = date
        signature = sign_bytes(self.identity, f"date: {date}".encode("utf-8"))
        request.headers["Authorization"] = (
            f'Signature keyId="{self.key_id}",algorithm="{self.identity.algorithm}",'
            f'signature="{base64.b64encode(signature).decode("ascii")}"'
        )
        return request


def split_basic_user(value: str) -> tuple[str, str | None]:
    """Split ``user:password`` into its parts; the password is optional."""
    user, sep, password = value.partition(":")
    return user, (password if sep else None)


def basic_auth(user: str, password: str) -> HTTPBasicAuth:
    return HTTPBasicAuth(user, password)
