from app.backend.tools.passwords import hash_password, verify_password


def test_hash_is_salted_and_verifiable():
    first, second = hash_password("secret123"), hash_password("secret123")

    assert first != second
    assert verify_password("secret123", first)
    assert verify_password("secret123", second)


def test_wrong_password():
    assert not verify_password("wrong", hash_password("secret123"))


def test_malformed_hash_is_a_mismatch():
    assert not verify_password("secret123", "not-a-bcrypt-hash")
