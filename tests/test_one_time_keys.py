import json

from olmcrypt.one_time_keys import MAX_ONE_TIME_KEYS, OneTimeKeys
from olmcrypt.shared_secret import Curve25519SecretKey


def test_store_limit():
    store = OneTimeKeys()
    assert not store.private_keys

    store.generate(MAX_ONE_TIME_KEYS)
    assert len(store.private_keys) == MAX_ONE_TIME_KEYS
    assert len(store.unpublished_public_keys) == MAX_ONE_TIME_KEYS
    assert len(store.key_ids_by_key) == MAX_ONE_TIME_KEYS

    store.mark_as_published()
    assert not store.unpublished_public_keys
    assert len(store.private_keys) == MAX_ONE_TIME_KEYS
    assert len(store.key_ids_by_key) == MAX_ONE_TIME_KEYS

    assert min(store.private_keys) == 0

    oldest_public = [store.private_keys[key_id].public_key() for key_id in range(10)]

    result = store.generate(10)
    assert len(store.unpublished_public_keys) == 10
    assert len(store.private_keys) == MAX_ONE_TIME_KEYS
    assert len(store.key_ids_by_key) == MAX_ONE_TIME_KEYS

    assert min(store.private_keys) == 10
    assert result.removed == oldest_public
    assert all(store.get_secret_key(key) is None for key in result.removed)


def test_generate_returns_unpublished_keys():
    store = OneTimeKeys()
    result = store.generate(3)

    assert result.removed == []
    assert list(store.unpublished_public_keys.values()) == result.created
    assert store.next_key_id == len(result.created)


def test_get_secret_key_matches_public_key():
    store = OneTimeKeys()
    created = store.generate(2).created
    for public_key in created:
        secret = store.get_secret_key(public_key)
        assert secret.public_key() == public_key

    unknown = Curve25519SecretKey.generate().public_key()
    assert store.get_secret_key(unknown) is None


def test_remove_secret_key():
    store = OneTimeKeys()
    (public_key,) = store.generate(1).created

    removed = store.remove_secret_key(public_key)
    assert removed.public_key() == public_key
    assert not store.private_keys
    assert not store.unpublished_public_keys
    assert not store.key_ids_by_key
    assert store.remove_secret_key(public_key) is None


def test_insert_secret_key_published_flag():
    store = OneTimeKeys()
    published_key = Curve25519SecretKey.generate()
    unpublished_key = Curve25519SecretKey.generate()

    public, removed = store.insert_secret_key(7, published_key, True)
    assert public == published_key.public_key()
    assert removed is None
    store.insert_secret_key(8, unpublished_key, False)

    assert store.is_secret_key_published(7)
    assert not store.is_secret_key_published(8)
    assert store.get_secret_key(unpublished_key.public_key()) == unpublished_key


def test_key_id_wraps_around():
    store = OneTimeKeys()
    store.next_key_id = (1 << 64) - 1
    (public_key,) = store.generate(1).created

    assert store.next_key_id == 0
    assert store.key_ids_by_key[public_key] == (1 << 64) - 1


def test_pickle_round_trip():
    store = OneTimeKeys()
    store.generate(4)
    store.mark_as_published()
    store.generate(2)

    pickled = store.to_dict()
    restored = OneTimeKeys.from_dict(json.loads(json.dumps(pickled)))

    assert restored.to_dict() == pickled
    assert restored.next_key_id == store.next_key_id
    assert restored.unpublished_public_keys == store.unpublished_public_keys
    assert restored.key_ids_by_key == store.key_ids_by_key


def test_pickle_accepts_key_id_alias():
    store = OneTimeKeys()
    store.generate(2)
    pickled = store.to_dict()
    pickled["key_id"] = pickled.pop("next_key_id")

    restored = OneTimeKeys.from_dict(pickled)
    assert restored.next_key_id == store.next_key_id
    assert restored.key_ids_by_key == store.key_ids_by_key