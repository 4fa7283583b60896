"""
Gateway parameter signing.

The gateway protocol signs requests and callbacks with an uppercase MD5 hex
digest over the canonical query string:

    amount=500.00&mchId=1000&orderId=MB...&key=<secret>

MD5 is a wire requirement of the remote gateway; do not reuse this module for
internal integrity checks.
"""
from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

SIGN_FIELD = "sign"


class SignatureEncodingError(TypeError):
    """Raised when a parameter set cannot be canonicalized (caller bug)."""


def _check_types(params: Mapping[str, Optional[str]]) -> None:
    for key, value in params.items():
        if not isinstance(key, str):
            raise SignatureEncodingError(f"parameter name must be str, got {type(key).__name__}")
        if value is not None and not isinstance(value, str):
            raise SignatureEncodingError(
                f"parameter {key!r} must be str, got {type(value).__name__}"
            )


def canonicalize(params: Mapping[str, Optional[str]], secret: str) -> str:
    """Build the string-to-sign: sorted non-empty `k=v` pairs plus `key=<secret>`."""
    if not isinstance(secret, str):
        raise SignatureEncodingError("secret must be str")
    _check_types(params)
    keys = sorted((k for k in params if k != SIGN_FIELD), key=lambda k: k.encode("utf-8"))
    pairs = [f"{k}={params[k]}" for k in keys if params[k]]
    pairs.append(f"key={secret}")
    return "&".join(pairs)


def sign(params: Mapping[str, Optional[str]], secret: str) -> str:
    raw = canonicalize(params, secret)
    return hashlib.md5(raw.encode("utf-8")).hexdigest().upper()


def verify(
    params: Mapping[str, Optional[str]],
    secret: str,
    *,
    required: Iterable[str] = (),
) -> bool:
    """Check the inbound `sign` against a recomputed digest.

    Returns False when `sign` is absent, when any `required` field is missing
    or empty, or when the digest differs. Extra or missing fields change the
    canonical string and therefore fail the digest comparison.
    """
    provided = params.get(SIGN_FIELD)
    if provided is not None and not isinstance(provided, str):
        raise SignatureEncodingError("sign must be str")
    if not provided:
        return False
    for name in required:
        if not params.get(name):
            return False
    expected = sign(params, secret)
    return hmac.compare_digest(expected.encode("ascii"), provided.encode("utf-8"))


@dataclass(frozen=True)
class SignatureCodec:
    """Signs and verifies parameter sets with a bound merchant secret."""

    secret: str

    def sign(self, params: Mapping[str, Optional[str]]) -> str:
        return sign(params, self.secret)

    def signed(self, params: Mapping[str, Optional[str]]) -> dict[str, str]:
        """Return a copy of `params` with the `sign` field attached."""
        payload = {k: v for k, v in params.items() if k != SIGN_FIELD}
        payload[SIGN_FIELD] = self.sign(payload)
        return payload

    def verify(self, params: Mapping[str, Optional[str]], *, required: Iterable[str] = ()) -> bool:
        return verify(params, self.secret, required=required)

    def __repr__(self) -> str:
        return "SignatureCodec(secret=***)"
