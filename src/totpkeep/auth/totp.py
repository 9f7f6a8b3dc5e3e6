"""TOTP (Time-based One-Time Password) derivation, RFC 6238 over RFC 4226.

Everything here is a pure function of its arguments; the only clock read is
in now(), which takes the clock as a parameter.
"""

from __future__ import annotations

import hashlib
import hmac
import struct
import time
from collections.abc import Callable
from typing import Any

from totpkeep.auth.secret import decode_secret
from totpkeep.errors import InvalidAlgorithmError, InvalidParameterError
from totpkeep.models import MAX_DIGITS, Algorithm, CredentialConfig

_MAX_COUNTER = 2**64 - 1

_DIGESTS: dict[Algorithm, Callable[..., Any]] = {
    Algorithm.SHA1: hashlib.sha1,
    Algorithm.SHA256: hashlib.sha256,
    Algorithm.SHA512: hashlib.sha512,
}


def _check_period(period: int) -> None:
    if not isinstance(period, int) or isinstance(period, bool) or period < 1:
        raise InvalidParameterError(f"period must be a positive integer, got {period!r}")


def _check_digits(digits: int) -> None:
    if not isinstance(digits, int) or isinstance(digits, bool) or not 1 <= digits <= MAX_DIGITS:
        raise InvalidParameterError(f"digits must be between 1 and {MAX_DIGITS}, got {digits!r}")


def time_step(at: int, period: int) -> int:
    """Index of the step containing Unix time `at`: floor(at / period)."""
    _check_period(period)
    if at < 0:
        raise InvalidParameterError(f"time must not be negative, got {at!r}")
    counter = int(at) // period
    if counter > _MAX_COUNTER:
        raise InvalidParameterError("time step does not fit in 64 bits")
    return counter


def dynamic_truncate(digest: bytes) -> int:
    """RFC 4226 dynamic truncation to a 31-bit integer."""
    offset = digest[-1] & 0x0F
    return struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF


def render_code(value: int, digits: int) -> str:
    """Reduce `value` modulo 10**digits and left-pad it with zeros."""
    return str(value % 10**digits).zfill(digits)


def hotp(key: bytes, counter: int, algorithm: Algorithm, digits: int) -> str:
    """Derive the code for a raw key and counter."""
    digestmod = _DIGESTS.get(algorithm) if isinstance(algorithm, Algorithm) else None
    if digestmod is None:
        raise InvalidAlgorithmError(f"Unsupported algorithm: {algorithm!r}")
    _check_digits(digits)
    if not 0 <= counter <= _MAX_COUNTER:
        raise InvalidParameterError(f"counter out of range: {counter!r}")

    digest = hmac.new(key, struct.pack(">Q", counter), digestmod).digest()
    return render_code(dynamic_truncate(digest), digits)


def compute(secret: str, algorithm: Algorithm, digits: int, period: int, at: int) -> str:
    """Compute the code for a Base32 secret at Unix time `at` (seconds)."""
    if not isinstance(algorithm, Algorithm):
        raise InvalidAlgorithmError(f"Unsupported algorithm: {algorithm!r}")
    _check_digits(digits)
    counter = time_step(at, period)
    key = decode_secret(secret)
    return hotp(key, counter, algorithm, digits)


def compute_for(config: CredentialConfig, at: int) -> str:
    return compute(config.secret, config.algorithm, config.digits, config.period, at)


def now(config: CredentialConfig, clock: Callable[[], float] = time.time) -> str:
    """Get the current code for a credential."""
    return compute_for(config, int(clock()))


def seconds_remaining(at_ms: int, period: int) -> int:
    """Whole seconds until the step containing `at_ms` rolls over (1..period)."""
    _check_period(period)
    return period - (at_ms % (period * 1000)) // 1000


def progress(at_ms: int, period: int) -> float:
    """Fraction of the current step already elapsed, in [0, 1)."""
    _check_period(period)
    period_ms = period * 1000
    return (at_ms % period_ms) / period_ms


def verify(config: CredentialConfig, code: str, at: int, valid_window: int = 1) -> bool:
    """Check a code against the steps within +-valid_window of `at`."""
    candidate = code.strip().replace(" ", "")
    if len(candidate) != config.digits or not (candidate.isascii() and candidate.isdigit()):
        return False

    counter = time_step(at, config.period)
    key = decode_secret(config.secret)
    matched = False
    for offset in range(-valid_window, valid_window + 1):
        step = counter + offset
        if not 0 <= step <= _MAX_COUNTER:
            continue
        expected = hotp(key, step, config.algorithm, config.digits)
        # no early exit on match
        matched |= hmac.compare_digest(expected, candidate)
    return matched
