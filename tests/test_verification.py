import random
from datetime import timedelta

import pytest

from errors import InvalidArgument, NotFound, WriteConflict
from models import utcnow
from verification import ACCOUNTS, VERIFICATION_CODES, VerificationService


@pytest.fixture
def service(store, mailer):
    return VerificationService(store, mailer, rng=random.Random(7))


def test_send_stores_code_under_lowercased_email(service, store, mailer):
    code = service.send_verification("Ada@Example.com")

    assert len(code) == 6 and code.isdigit()
    record = store.get(VERIFICATION_CODES, "ada@example.com")
    assert record.get("code") == code
    assert record.get("used") is False
    assert mailer.sent[0]["to"] == ["Ada@Example.com"]
    assert code in mailer.sent[0]["body"]


def test_send_rejects_invalid_email(service):
    with pytest.raises(InvalidArgument):
        service.send_verification("not-an-email")


def test_resend_replaces_previous_code(service):
    first = service.send_verification("ada@example.com")
    second = service.send_verification("ada@example.com")
    if first != second:
        with pytest.raises(InvalidArgument):
            service.verify_code("ada@example.com", first)
    service.verify_code("ada@example.com", second)


def test_mail_failure_keeps_code(store):
    class DownMailer:
        def send(self, **kwargs):
            raise ConnectionRefusedError("smtp down")

    code = VerificationService(store, DownMailer()).send_verification("ada@example.com")
    assert store.get(VERIFICATION_CODES, "ada@example.com").get("code") == code


def test_code_is_single_use(service, store):
    code = service.send_verification("ada@example.com")
    service.verify_code("ADA@example.com", code)

    assert store.get(VERIFICATION_CODES, "ada@example.com").get("used") is True
    with pytest.raises(InvalidArgument, match="already used"):
        service.verify_code("ada@example.com", code)


def test_wrong_code(service):
    service.send_verification("ada@example.com")
    with pytest.raises(InvalidArgument, match="Invalid verification code"):
        service.verify_code("ada@example.com", "000000")


def test_unknown_email(service):
    with pytest.raises(InvalidArgument, match="No verification code"):
        service.verify_code("nobody@example.com", "123456")


def test_expired_code(service, store):
    code = service.send_verification("ada@example.com")
    store.update(VERIFICATION_CODES, "ada@example.com", {"expiresAt": utcnow() - timedelta(seconds=1)})
    with pytest.raises(InvalidArgument, match="expired"):
        service.verify_code("ada@example.com", code)


def test_concurrent_use_loses(store, mailer):
    class RacingStore(type(store)):
        def update(self, collection, doc_id, values, expected_version=None):
            if expected_version is not None:
                super().update(collection, doc_id, {"used": True})
            return super().update(collection, doc_id, values, expected_version)

    racing = VerificationService(RacingStore(store.engine), mailer)
    code = racing.send_verification("ada@example.com")
    with pytest.raises(WriteConflict):
        racing.verify_code("ada@example.com", code)


def test_verify_user_email_marks_account(service, store):
    store.set(ACCOUNTS, "u1", {"email": "ada@example.com", "emailVerified": False})
    code = service.send_verification("ada@example.com")

    account = service.verify_user_email("u1", code)

    assert account["emailVerified"] is True
    assert store.get(ACCOUNTS, "u1").get("emailVerified") is True


def test_verify_user_email_requires_a_valid_code(service, store):
    store.set(ACCOUNTS, "u1", {"email": "ada@example.com"})
    service.send_verification("ada@example.com")
    with pytest.raises(InvalidArgument):
        service.verify_user_email("u1", "000000")
    assert store.get(ACCOUNTS, "u1").get("emailVerified") is None


def test_verify_user_email_unknown_account(service):
    with pytest.raises(NotFound):
        service.verify_user_email("ghost", "123456")


def test_code_without_expiry_counts_as_expired(service, store):
    store.set(VERIFICATION_CODES, "ada@example.com", {"email": "ada@example.com", "code": "123456", "used": False})
    with pytest.raises(InvalidArgument, match="expired"):
        service.verify_code("ada@example.com", "123456")
