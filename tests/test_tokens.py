"""
Unit tests for the token codec and password hashing.
"""

import base64

import pytest

from identity.crypto import PasswordHasher, SecretBox
from identity.exceptions import InvalidToken, NotFound
from identity.tokens import TokenCodec


class TestTokenCodec:
    def test_generate_returns_urlsafe_token_and_hash(self):
        """Raw token is unpadded URL-safe base64 of 32 bytes."""
        token, token_hash = TokenCodec().generate()
        assert '=' not in token
        assert set(token) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")
        assert len(TokenCodec.decode(token)) == 32
        assert len(token_hash) == 32

    def test_decode_reverses_encode(self):
        """decode(encode(raw)) == raw."""
        raw = bytes(range(40))
        assert TokenCodec.decode(TokenCodec.encode(raw)) == raw

    def test_hash_is_deterministic(self):
        """Same raw value, same stored hash."""
        codec = TokenCodec()
        token, token_hash = codec.generate()
        assert codec.hash_encoded(token) == token_hash
        assert codec.hash_encoded(token) == codec.hash_encoded(token)

    def test_tokens_are_unique(self):
        codec = TokenCodec()
        tokens = {codec.generate()[0] for _ in range(50)}
        assert len(tokens) == 50

    @pytest.mark.parametrize("bad", ["\x00", "", "a", "has space", "abc=", "ab+/", None])
    def test_decode_rejects_malformed_input(self, bad):
        """Non-decodable input fails as invalid, not as a lookup miss."""
        with pytest.raises(InvalidToken):
            TokenCodec.decode(bad)

    def test_invalid_token_is_a_not_found(self):
        """Callers catching NotFound also catch malformed tokens."""
        assert issubclass(InvalidToken, NotFound)

    def test_short_tokens_refused(self):
        with pytest.raises(ValueError):
            TokenCodec(16)


class TestPasswordHasher:
    def test_verify_correct_password(self, hasher):
        hashed = hasher.hash("correct horse battery")
        assert hasher.verify("correct horse battery", hashed)

    def test_verify_wrong_password(self, hasher):
        hashed = hasher.hash("correct horse battery")
        assert not hasher.verify("correct horse battery!", hashed)

    def test_same_password_different_hashes(self, hasher):
        """Random salt per hash."""
        assert hasher.hash("same password!") != hasher.hash("same password!")

    def test_hash_is_not_plaintext(self, hasher):
        hashed = hasher.hash("plaintext secret")
        assert "plaintext secret" not in hashed
        assert hashed.startswith("$argon2id$")

    def test_garbage_hash_does_not_verify(self, hasher):
        assert not hasher.verify("anything at all", "not-a-hash")

    def test_verify_no_user_is_always_false(self, hasher):
        assert hasher.verify_no_user("hello world!") is False

    def test_needs_rehash_after_parameter_change(self, config, hasher):
        class Stronger(type(config)):
            ARGON2_TIME_COST = config.ARGON2_TIME_COST + 1

        hashed = hasher.hash("hello world!")
        assert not hasher.needs_rehash(hashed)
        assert PasswordHasher(Stronger()).needs_rehash(hashed)


class TestSecretBox:
    def test_round_trip(self, config):
        box = SecretBox(config.ENCRYPTION_KEY)
        payload = box.encrypt("JBSWY3DPEHPK3PXP")
        assert "JBSWY3DPEHPK3PXP" not in payload
        assert box.decrypt(payload) == "JBSWY3DPEHPK3PXP"

    def test_tampered_payload_rejected(self, config):
        box = SecretBox(config.ENCRYPTION_KEY)
        iv, ciphertext = box.encrypt("JBSWY3DPEHPK3PXP").split(':')
        flipped = format(int(ciphertext[0], 16) ^ 1, 'x') + ciphertext[1:]
        with pytest.raises(ValueError):
            box.decrypt(f"{iv}:{flipped}")

    def test_rejects_short_key(self):
        with pytest.raises(ValueError):
            SecretBox(base64.urlsafe_b64encode(b"too short").decode())

    def test_rejects_missing_key(self):
        with pytest.raises(ValueError):
            SecretBox('')
