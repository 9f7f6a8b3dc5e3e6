"""Tests for the TOTP engine against RFC 6238 and a reference implementation."""

from __future__ import annotations

import hashlib

import pyotp
import pytest

from conftest import RFC_SECRET_SHA1, RFC_SECRET_SHA256, RFC_SECRET_SHA512
from totpkeep.auth import totp
from totpkeep.auth.secret import generate_secret
from totpkeep.errors import InvalidAlgorithmError, InvalidParameterError, InvalidSecretError, TotpError
from totpkeep.models import Algorithm, CredentialConfig

# RFC 6238 appendix B, 8 digits, 30 second period
RFC_VECTORS = [
    (59, Algorithm.SHA1, "94287082"),
    (59, Algorithm.SHA256, "46119246"),
    (59, Algorithm.SHA512, "90693936"),
    (1111111109, Algorithm.SHA1, "07081804"),
    (1111111109, Algorithm.SHA256, "68084774"),
    (1111111109, Algorithm.SHA512, "25091201"),
    (1111111111, Algorithm.SHA1, "14050471"),
    (1111111111, Algorithm.SHA256, "67062674"),
    (1111111111, Algorithm.SHA512, "99943326"),
    (1234567890, Algorithm.SHA1, "89005924"),
    (1234567890, Algorithm.SHA256, "91819424"),
    (1234567890, Algorithm.SHA512, "93441116"),
    (2000000000, Algorithm.SHA1, "69279037"),
    (2000000000, Algorithm.SHA256, "90698825"),
    (2000000000, Algorithm.SHA512, "38618901"),
    (20000000000, Algorithm.SHA1, "65353130"),
    (20000000000, Algorithm.SHA256, "77737706"),
    (20000000000, Algorithm.SHA512, "47863826"),
]

SECRETS = {
    Algorithm.SHA1: RFC_SECRET_SHA1,
    Algorithm.SHA256: RFC_SECRET_SHA256,
    Algorithm.SHA512: RFC_SECRET_SHA512,
}


@pytest.mark.parametrize("at,algorithm,expected", RFC_VECTORS)
def test_rfc6238_vectors(at, algorithm, expected):
    assert totp.compute(SECRETS[algorithm], algorithm, 8, 30, at) == expected


def test_six_digit_rfc_vector():
    assert totp.compute(RFC_SECRET_SHA1, Algorithm.SHA1, 6, 30, 59) == "287082"


def test_code_is_zero_padded():
    assert totp.render_code(42, 6) == "000042"
    assert totp.render_code(1_234_567_890, 6) == "567890"
    code = totp.compute(RFC_SECRET_SHA1, Algorithm.SHA1, 8, 30, 1111111109)
    assert code == "07081804"
    assert len(code) == 8


def test_step_boundary():
    # RFC 4226 appendix D: HOTP values for counters 0, 1, 2
    assert totp.compute(RFC_SECRET_SHA1, Algorithm.SHA1, 6, 30, 0) == "755224"
    assert totp.compute(RFC_SECRET_SHA1, Algorithm.SHA1, 6, 30, 29) == "755224"
    assert totp.compute(RFC_SECRET_SHA1, Algorithm.SHA1, 6, 30, 30) == "287082"
    assert totp.compute(RFC_SECRET_SHA1, Algorithm.SHA1, 6, 30, 60) == "359152"


def test_deterministic():
    a = totp.compute("JBSWY3DPEHPK3PXP", Algorithm.SHA256, 6, 30, 1_700_000_000)
    b = totp.compute("jbsw y3dp ehpk 3pxp", Algorithm.SHA256, 6, 30, 1_700_000_000)
    assert a == b


def test_time_step():
    assert totp.time_step(59, 30) == 1
    assert totp.time_step(60, 30) == 2
    assert totp.time_step(59.9, 30) == 1
    assert totp.time_step(0, 1) == 0


def test_dynamic_truncate_rfc4226_example():
    # RFC 4226 section 5.4
    digest = bytes.fromhex("1f8698690e02ca16618550ef7f19da8e945b555a")
    assert totp.dynamic_truncate(digest) == 0x50EF7F19
    assert totp.render_code(totp.dynamic_truncate(digest), 6) == "872921"


def test_dynamic_truncate_masks_top_bit():
    digest = bytes([0xFF] * 19 + [0x00])
    assert totp.dynamic_truncate(digest) == 0x7FFFFFFF


def test_invalid_secret():
    with pytest.raises(InvalidSecretError):
        totp.compute("", Algorithm.SHA1, 6, 30, 59)
    with pytest.raises(InvalidSecretError):
        totp.compute("!!!", Algorithm.SHA1, 6, 30, 59)


def test_invalid_algorithm():
    with pytest.raises(InvalidAlgorithmError):
        totp.compute(RFC_SECRET_SHA1, "MD5", 6, 30, 59)  # type: ignore[arg-type]
    # raw strings never reach the engine, even valid ones
    with pytest.raises(InvalidAlgorithmError):
        totp.compute(RFC_SECRET_SHA1, "SHA1", 6, 30, 59)  # type: ignore[arg-type]


@pytest.mark.parametrize("digits", [0, -1, 11, 12])
def test_invalid_digits(digits):
    with pytest.raises(InvalidParameterError, match="digits"):
        totp.compute(RFC_SECRET_SHA1, Algorithm.SHA1, digits, 30, 59)


@pytest.mark.parametrize("period", [0, -30])
def test_invalid_period(period):
    with pytest.raises(InvalidParameterError, match="period"):
        totp.compute(RFC_SECRET_SHA1, Algorithm.SHA1, 6, period, 59)


def test_negative_time_rejected():
    with pytest.raises(InvalidParameterError):
        totp.compute(RFC_SECRET_SHA1, Algorithm.SHA1, 6, 30, -1)


def test_counter_overflow_rejected():
    with pytest.raises(InvalidParameterError, match="64 bits"):
        totp.time_step(2**64, 1)


def test_errors_share_a_base_class():
    assert issubclass(InvalidSecretError, TotpError)
    assert issubclass(InvalidAlgorithmError, TotpError)
    assert issubclass(InvalidParameterError, TotpError)


@pytest.mark.parametrize(
    "algorithm,digest",
    [(Algorithm.SHA1, hashlib.sha1), (Algorithm.SHA256, hashlib.sha256), (Algorithm.SHA512, hashlib.sha512)],
)
@pytest.mark.parametrize("digits,period", [(6, 30), (8, 60), (7, 15)])
def test_matches_pyotp(algorithm, digest, digits, period):
    secret = generate_secret()
    reference = pyotp.TOTP(secret, digits=digits, digest=digest, interval=period)
    for at in (0, 59, 1_111_111_109, 1_700_000_000, 2_000_000_000):
        assert totp.compute(secret, algorithm, digits, period, at) == reference.at(at)


def test_compute_for_and_now():
    config = CredentialConfig(name="rfc", secret=RFC_SECRET_SHA1)
    assert totp.compute_for(config, 59) == "287082"
    assert totp.now(config, clock=lambda: 59.7) == "287082"


def test_seconds_remaining_and_progress():
    assert totp.seconds_remaining(0, 30) == 30
    assert totp.seconds_remaining(29_500, 30) == 1
    assert totp.seconds_remaining(30_000, 30) == 30
    assert totp.progress(0, 30) == 0.0
    assert totp.progress(15_000, 30) == 0.5
    assert 0.0 <= totp.progress(29_999, 30) < 1.0


def test_verify():
    config = CredentialConfig(name="rfc", secret=RFC_SECRET_SHA1)
    assert totp.verify(config, "287082", 59)
    assert totp.verify(config, "287 082", 59)
    # previous and next step are accepted with the default window
    assert totp.verify(config, "755224", 59)
    assert totp.verify(config, "359152", 59)
    assert not totp.verify(config, "359152", 59, valid_window=0)
    assert not totp.verify(config, "000000", 59)


def test_verify_rejects_malformed_codes():
    config = CredentialConfig(name="rfc", secret=RFC_SECRET_SHA1)
    assert not totp.verify(config, "28708", 59)
    assert not totp.verify(config, "abcdef", 59)
    assert not totp.verify(config, "2870822", 59)
