import base64

from reviewreply.security.unsubscribe import create_unsubscribe_token, verify_unsubscribe_token

SECRET = "test-secret"


def test_token_identifies_account_and_normalized_email():
    token = create_unsubscribe_token("acc-1", " Ana@Example.COM ", SECRET)

    assert "=" not in token
    assert verify_unsubscribe_token(token, SECRET) == ("acc-1", "ana@example.com")


def test_token_signed_with_other_secret_is_rejected():
    token = create_unsubscribe_token("acc-1", "ana@example.com", "other-secret")

    assert verify_unsubscribe_token(token, SECRET) is None


def test_tampered_token_is_rejected():
    token = create_unsubscribe_token("acc-1", "ana@example.com", SECRET)
    decoded = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)).decode()
    forged = decoded.replace("ana@example.com", "bob@example.com")
    forged_token = base64.urlsafe_b64encode(forged.encode()).decode().rstrip("=")

    assert verify_unsubscribe_token(forged_token, SECRET) is None


def test_garbage_tokens_are_rejected():
    assert verify_unsubscribe_token("", SECRET) is None
    assert verify_unsubscribe_token(None, SECRET) is None
    assert verify_unsubscribe_token("!!!not-base64!!!", SECRET) is None
    assert verify_unsubscribe_token("bm8tY29sb25z", SECRET) is None
