from urllib.parse import parse_qs, urlparse

import pytest

from errors import InvalidArgument, NotFound, Unauthorized
from storage import FileStorage


@pytest.fixture
def storage(tmp_path):
    return FileStorage(str(tmp_path), "secret", "http://testserver/")


def token_of(url):
    return parse_qs(urlparse(url).query)["token"][0]


def test_signed_url_opens_its_own_file(storage):
    storage.save("invoices/paid/FASE-12345.pdf", b"%PDF-1.4")
    url = storage.signed_url("invoices/paid/FASE-12345.pdf")

    assert url.startswith("http://testserver/files/invoices/paid/FASE-12345.pdf?token=")
    target = storage.open_signed("invoices/paid/FASE-12345.pdf", token_of(url))
    assert target.read_bytes() == b"%PDF-1.4"


def test_token_is_bound_to_path(storage):
    storage.save("a.pdf", b"a")
    storage.save("b.pdf", b"b")
    with pytest.raises(Unauthorized):
        storage.open_signed("b.pdf", token_of(storage.signed_url("a.pdf")))


def test_token_signed_with_other_secret_is_rejected(storage, tmp_path):
    storage.save("a.pdf", b"a")
    other = FileStorage(str(tmp_path), "other-secret", "http://testserver")
    with pytest.raises(Unauthorized):
        storage.open_signed("a.pdf", token_of(other.signed_url("a.pdf")))


def test_expired_token_is_rejected(tmp_path):
    storage = FileStorage(str(tmp_path), "secret", "http://testserver", ttl_days=-1)
    storage.save("a.pdf", b"a")
    with pytest.raises(Unauthorized):
        storage.open_signed("a.pdf", token_of(storage.signed_url("a.pdf")))


def test_missing_file(storage):
    with pytest.raises(NotFound):
        storage.open_signed("gone.pdf", token_of(storage.signed_url("gone.pdf")))


def test_paths_cannot_escape_root(storage):
    with pytest.raises(InvalidArgument):
        storage.save("../outside.pdf", b"x")
