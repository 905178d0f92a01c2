"""Property-based tests for webhook signature verification.

Verifies that signatures computed over the exact raw body are accepted and
that any single-byte change to the body, a different secret, a missing
header or a malformed header is rejected without raising.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import hashlib
import hmac
import string

from hypothesis import assume, given, settings, strategies as st

from src.releasenotes.webhook.signature import compute_signature, verify_signature


# Printable ASCII keeps keys distinct after HMAC zero-padding
secrets_strategy = st.text(
    alphabet=string.ascii_letters + string.digits + "-_",
    min_size=1,
    max_size=64,
)


class TestSignatureCorrectness:
    """A signature computed with the shared secret verifies."""

    @given(body=st.binary(max_size=4096), secret=secrets_strategy)
    @settings(max_examples=100)
    def test_computed_signature_verifies(self, body: bytes, secret: str) -> None:
        assert verify_signature(body, compute_signature(body, secret), secret)

    @given(body=st.binary(max_size=1024), secret=secrets_strategy)
    @settings(max_examples=100)
    def test_signature_matches_hmac_sha256_hex(self, body: bytes, secret: str) -> None:
        expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        assert compute_signature(body, secret) == f"sha256={expected}"


class TestSignatureRejection:
    """Any tampering with body, secret or header fails verification."""

    @given(
        body=st.binary(min_size=1, max_size=2048),
        secret=secrets_strategy,
        data=st.data(),
    )
    @settings(max_examples=100)
    def test_single_byte_mutation_fails(self, body: bytes, secret: str, data) -> None:
        signature = compute_signature(body, secret)
        index = data.draw(st.integers(min_value=0, max_value=len(body) - 1))
        delta = data.draw(st.integers(min_value=1, max_value=255))

        mutated = bytearray(body)
        mutated[index] = (mutated[index] + delta) % 256

        assert not verify_signature(bytes(mutated), signature, secret)

    @given(body=st.binary(max_size=1024), secret=secrets_strategy, other=secrets_strategy)
    @settings(max_examples=100)
    def test_wrong_secret_fails(self, body: bytes, secret: str, other: str) -> None:
        assume(secret != other)
        assert not verify_signature(body, compute_signature(body, other), secret)

    @given(body=st.binary(max_size=256), secret=secrets_strategy)
    @settings(max_examples=50)
    def test_missing_prefix_fails(self, body: bytes, secret: str) -> None:
        bare = compute_signature(body, secret)[len("sha256="):]
        assert not verify_signature(body, bare, secret)

    def test_missing_header_fails(self) -> None:
        assert not verify_signature(b"{}", None, "secret")
        assert not verify_signature(b"{}", "", "secret")

    def test_empty_secret_fails(self) -> None:
        signature = compute_signature(b"{}", "")
        assert not verify_signature(b"{}", signature, "")

    def test_sha1_header_fails(self) -> None:
        assert not verify_signature(b"{}", "sha1=abcdef", "secret")

    def test_non_hex_signature_fails(self) -> None:
        assert not verify_signature(b"{}", "sha256=not-hex-é", "secret")
