import pytest

from olmcrypt.shared_secret import (
    Curve25519PublicKey,
    Curve25519SecretKey,
    InvalidKeyError,
    RemoteShared3DHSecret,
    Shared3DHSecret,
)


def test_triple_diffie_hellman():
    alice_identity = Curve25519SecretKey.generate()
    alice_one_time = Curve25519SecretKey.generate()
    bob_identity = Curve25519SecretKey.generate()
    bob_one_time = Curve25519SecretKey.generate()

    alice_secret = Shared3DHSecret(
        alice_identity,
        alice_one_time,
        bob_identity.public_key(),
        bob_one_time.public_key(),
    )
    bob_secret = RemoteShared3DHSecret(
        bob_identity,
        bob_one_time,
        alice_identity.public_key(),
        alice_one_time.public_key(),
    )

    assert alice_secret.secret == bob_secret.secret
    assert len(alice_secret.secret) == 96
    assert alice_secret.expand() == bob_secret.expand()


def test_expand_gives_two_distinct_32_byte_keys():
    a = Curve25519SecretKey.generate()
    b = Curve25519SecretKey.generate()
    secret = Shared3DHSecret(a, b, b.public_key(), a.public_key())
    root_key, chain_key = secret.expand()
    assert len(root_key) == 32
    assert len(chain_key) == 32
    assert root_key != chain_key


def test_diffie_hellman_is_symmetric():
    a = Curve25519SecretKey.generate()
    b = Curve25519SecretKey.generate()
    assert a.diffie_hellman(b.public_key()) == b.diffie_hellman(a.public_key())


def test_low_order_point_gives_zero_secret():
    a = Curve25519SecretKey.generate()
    zero_key = Curve25519PublicKey.from_bytes(bytes(32))
    assert a.diffie_hellman(zero_key) == bytes(32)


def test_public_key_base64_round_trip():
    key = Curve25519SecretKey.generate().public_key()
    encoded = key.to_base64()
    assert len(encoded) == 43
    assert Curve25519PublicKey.from_base64(encoded) == key
    assert Curve25519PublicKey.from_base64(encoded + "=") == key


def test_public_key_bytes_round_trip():
    raw = b"ratchetkeyhereprettyplease123456"
    key = Curve25519PublicKey.from_bytes(raw)
    assert key.to_bytes() == raw


def test_public_key_wrong_length_rejected():
    with pytest.raises(InvalidKeyError):
        Curve25519PublicKey.from_bytes(b"short")


def test_public_key_invalid_base64_rejected():
    with pytest.raises(InvalidKeyError):
        Curve25519PublicKey.from_base64("not*base64!")


def test_secret_key_bytes_round_trip():
    secret = Curve25519SecretKey.generate()
    restored = Curve25519SecretKey.from_bytes(secret.to_bytes())
    assert restored == secret
    assert restored.public_key() == secret.public_key()


def test_secret_key_wrong_length_rejected():
    with pytest.raises(InvalidKeyError):
        Curve25519SecretKey.from_bytes(bytes(31))


def test_public_key_usable_as_dict_key():
    key = Curve25519SecretKey.generate().public_key()
    same = Curve25519PublicKey.from_bytes(key.to_bytes())
    mapping = {key: 1}
    assert mapping[same] == 1