# olmcrypt

An implementation of the Olm double ratchet and of short authentication
string (SAS) key verification, built on the `cryptography` library.

## Installation

```
pip install olmcrypt
```

For running the test suite:

```
pip install "olmcrypt[test]"
pytest
```

## What it contains

- `olmcrypt.shared_secret`: Curve25519 keys and the triple Diffie-Hellman
  handshake (`Shared3DHSecret`, `RemoteShared3DHSecret`) that seeds a session.
- `olmcrypt.session`: `Session`, one end of an encrypted channel. It encrypts
  plaintext into pre-key or normal messages, decrypts messages (out-of-order
  ones too) and can be pickled and restored.
- `olmcrypt.message`, `olmcrypt.pre_key`, `olmcrypt.olm_message`: the wire
  formats for `Message` and `PreKeyMessage`, with `from_parts`, `to_parts`
  and a JSON form made of `type` and `body`.
- `olmcrypt.one_time_keys`, `olmcrypt.fallback_keys`: stores for one-time and
  fallback keys.
- `olmcrypt.sas`: `Sas` and `EstablishedSas`, which turn a shared secret into
  emoji indices or decimals and compute and verify MACs.

## Short authentication strings

```python
from olmcrypt.sas import Sas

alice = Sas()
bob = Sas()

bob_public_key = bob.public_key()
bob_established = bob.diffie_hellman(alice.public_key())
alice_established = alice.diffie_hellman(bob_public_key)

alice_bytes = alice_established.bytes("AGREED_INFO")
bob_bytes = bob_established.bytes("AGREED_INFO")

assert alice_bytes.emoji_indices() == bob_bytes.emoji_indices()
assert alice_bytes.decimals() == bob_bytes.decimals()

mac = alice_established.calculate_mac("ed25519:DEVICEID", "MAC_INFO")
bob_established.verify_mac("ed25519:DEVICEID", "MAC_INFO", mac)
```

`verify_mac` raises `SasError` when the MAC does not match.

## Sessions

A session starts from the triple Diffie-Hellman secret that two parties agree
on. The sending side builds it with `Session.new`, the receiving side with
`Session.new_remote`, passing the ratchet key found in the first message it
receives.

```python
from olmcrypt.session import Session
from olmcrypt.session_config import SessionConfig

session = Session.new(SessionConfig.version_2(), shared_secret, session_keys)
message = session.encrypt(b"Keep it between us")
```

While nothing has been received from the other side, `encrypt` returns a
`PreKeyMessage`; afterwards it returns a plain `Message`. `decrypt` raises a
`DecryptionError` subclass when the MAC is wrong, the padding is bad, the
message key is gone or the message gap is too large.

Session state is pickled with `Session.pickle()` and restored with
`Session.from_pickle(...)`.