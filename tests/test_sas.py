import pytest
from hypothesis import given
from hypothesis import strategies as st

from olmcrypt.sas import (
    EstablishedSas,
    InvalidCountError,
    Mac,
    Sas,
    SasBytes,
    SasError,
)
from olmcrypt.shared_secret import Curve25519PublicKey, InvalidKeyError

ALICE_MXID = "@alice:example.com"
ALICE_DEVICE_ID = "AAAAAAAAAA"
BOB_MXID = "@bob:example.com"
BOB_DEVICE_ID = "BBBBBBBBBB"

MESSAGE = f"ed25519:{BOB_DEVICE_ID}"
EXTRA_INFO = (
    "MATRIX_KEY_VERIFICATION_MAC"
    f"{BOB_MXID}{BOB_DEVICE_ID}"
    f"{ALICE_MXID}{ALICE_DEVICE_ID}"
    "$1234567890"
    "KEY_IDS"
)


def established_pair() -> tuple[EstablishedSas, EstablishedSas]:
    alice = Sas()
    bob = Sas()
    alice_key = alice.public_key().to_base64()
    bob_key = bob.public_key().to_base64()
    return alice.diffie_hellman_with_raw(bob_key), bob.diffie_hellman_with_raw(alice_key)


def test_mac_from_bytes_is_identity():
    data = b"ABCDEFGH"
    assert bytes(Mac.from_bytes(data)) == data


def test_mac_base64_roundtrip():
    mac = Mac.from_bytes(b"ABCDEFGH")
    assert Mac.from_base64(mac.to_base64()) == mac


def test_mac_from_invalid_base64():
    with pytest.raises(ValueError):
        Mac.from_base64("not base64!")


def test_two_sides_generate_same_bytes():
    alice = Sas()
    bob = Sas()
    alice_public_key = alice.public_key()
    bob_public_key = bob.public_key()

    alice_established = alice.diffie_hellman_with_raw(bob_public_key.to_base64())
    bob_established = bob.diffie_hellman_with_raw(alice_public_key.to_base64())

    assert alice_established.our_public_key == alice_public_key
    assert alice_established.their_public_key == bob_public_key
    assert bob_established.our_public_key == bob_public_key
    assert bob_established.their_public_key == alice_public_key

    alice_bytes = alice_established.bytes("TEST")
    bob_bytes = bob_established.bytes("TEST")

    assert alice_bytes == bob_bytes
    assert alice_bytes.emoji_indices() == bob_bytes.emoji_indices()
    assert alice_bytes.decimals() == bob_bytes.decimals()
    assert alice_bytes.bytes == bob_bytes.bytes


def test_bytes_raw_agrees_with_bytes():
    alice, bob = established_pair()
    assert alice.bytes_raw("TEST", 6) == alice.bytes("TEST").bytes
    assert alice.bytes_raw("TEST", 10) == bob.bytes_raw("TEST", 10)
    assert len(alice.bytes_raw("TEST", 10)) == 10


def test_different_info_gives_different_bytes():
    alice, _ = established_pair()
    assert alice.bytes_raw("ONE", 32) != alice.bytes_raw("TWO", 32)


def test_bytes_raw_limit():
    alice, _ = established_pair()
    assert len(alice.bytes_raw("TEST", 32 * 255)) == 32 * 255
    with pytest.raises(InvalidCountError):
        alice.bytes_raw("TEST", 32 * 255 + 1)


def test_calculate_and_verify_mac():
    alice, bob = established_pair()
    alice_mac = alice.calculate_mac(MESSAGE, EXTRA_INFO)
    bob_mac = bob.calculate_mac(MESSAGE, EXTRA_INFO)

    assert alice_mac.to_base64() == bob_mac.to_base64()
    assert len(alice_mac.data) == 32

    alice.verify_mac(MESSAGE, EXTRA_INFO, bob_mac)
    bob.verify_mac(MESSAGE, EXTRA_INFO, alice_mac)
    with pytest.raises(SasError):
        alice.verify_mac(MESSAGE + "x", EXTRA_INFO, bob_mac)


def test_verify_mac_rejects_tampered_tag():
    alice, bob = established_pair()
    mac = bob.calculate_mac(MESSAGE, EXTRA_INFO)
    tampered = Mac.from_bytes(bytes([mac.data[0] ^ 1]) + mac.data[1:])
    with pytest.raises(SasError):
        alice.verify_mac(MESSAGE, EXTRA_INFO, tampered)
    with pytest.raises(SasError):
        alice.verify_mac(MESSAGE, EXTRA_INFO, Mac.from_bytes(mac.data[:8]))


def test_mac_roundtrip_through_base64_verifies():
    alice, bob = established_pair()
    encoded = bob.calculate_mac(MESSAGE, EXTRA_INFO).to_base64()
    alice.verify_mac(MESSAGE, EXTRA_INFO, Mac.from_base64(encoded))
    assert alice.calculate_mac(MESSAGE, EXTRA_INFO).to_base64() == encoded


def test_calculate_mac_invalid_base64_shape():
    alice, bob = established_pair()
    broken = alice.calculate_mac_invalid_base64("", "")
    proper = alice.calculate_mac("", "").to_base64()

    assert len(broken) == 43
    assert broken[:4] == proper[:4]
    assert broken == bob.calculate_mac_invalid_base64("", "")


def test_non_contributory_key_is_rejected():
    sas = Sas()
    with pytest.raises(InvalidKeyError):
        sas.diffie_hellman(Curve25519PublicKey.from_bytes(bytes(32)))


def test_invalid_raw_key_is_rejected():
    with pytest.raises(InvalidKeyError):
        Sas().diffie_hellman_with_raw("not a key")


def test_emoji_generation():
    assert SasBytes.bytes_to_emoji_index(bytes(6)) == (0, 0, 0, 0, 0, 0, 0)
    assert SasBytes.bytes_to_emoji_index(b"\xff" * 6) == (63,) * 7


def test_decimal_generation():
    assert SasBytes.bytes_to_decimal(bytes(6)) == (1000, 1000, 1000)
    assert SasBytes.bytes_to_decimal(b"\xff" * 6) == (9191, 9191, 9191)


def test_sas_bytes_methods():
    sas_bytes = SasBytes(b"\xff" * 6)
    assert sas_bytes.emoji_indices() == (63,) * 7
    assert sas_bytes.decimals() == (9191, 9191, 9191)


def test_sas_bytes_wrong_length():
    with pytest.raises(ValueError):
        SasBytes(b"\x00" * 5)


@given(st.binary(min_size=6, max_size=6))
def test_emoji_indices_in_range(data):
    numbers = SasBytes.bytes_to_emoji_index(data)
    assert len(numbers) == 7
    assert all(0 <= n < 64 for n in numbers)


@given(st.binary(min_size=6, max_size=6))
def test_decimals_in_range(data):
    first, second, third = SasBytes.bytes_to_decimal(data)
    assert 1000 <= first <= 9191
    assert 1000 <= second <= 9191
    assert 1000 <= third <= 9191