"""Tests for credentials and HTTP Signature request signing."""

import base64

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from sdc_cli.core.auth import Credentials, default_key_file
from sdc_cli.core.client import APIError, CLIError
from sdc_cli.localservices import FakeTransport
from sdc_cli.sdk import CloudAPIClient

DATE = "Mon, 01 Jan 2024 00:00:00 GMT"


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def write_key(path, key, fmt):
    path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=fmt,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return path


@pytest.fixture(
    params=[
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.PrivateFormat.PKCS8,
        serialization.PrivateFormat.OpenSSH,
    ],
    ids=["pkcs1", "pkcs8", "openssh"],
)
def key_file(request, tmp_path, rsa_key):
    return write_key(tmp_path / "id_rsa", rsa_key, request.param)


@pytest.fixture
def sdc_env(monkeypatch):
    monkeypatch.setenv("SDC_ACCOUNT", "tester")
    monkeypatch.setenv("SDC_KEY_ID", "aa:bb:cc")


def test_default_key_file_prefers_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SDC_KEY_FILE", str(tmp_path / "key"))
    assert default_key_file() == tmp_path / "key"


def test_default_key_file_falls_back_to_home(monkeypatch, tmp_path):
    monkeypatch.delenv("SDC_KEY_FILE", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_key_file() == tmp_path / ".ssh" / "id_rsa"


def test_missing_key_file_gives_unsigned_credentials(sdc_env, tmp_path):
    creds = Credentials.from_env(tmp_path / "does-not-exist")

    assert creds.account == "tester"
    assert not creds.can_sign
    assert creds.authorization(DATE) is None


def test_authorization_header(sdc_env, key_file, rsa_key):
    creds = Credentials.from_env(key_file)

    header = creds.authorization(DATE)

    prefix = 'Signature keyId="/tester/keys/aa:bb:cc",algorithm="rsa-sha256",headers="date",signature="'
    assert header.startswith(prefix)
    signature = base64.b64decode(header[len(prefix) : -1])
    # raises InvalidSignature on mismatch
    rsa_key.public_key().verify(signature, f"date: {DATE}".encode(), padding.PKCS1v15(), hashes.SHA256())


def test_default_openssh_key_in_home(sdc_env, monkeypatch, tmp_path, rsa_key):
    monkeypatch.delenv("SDC_KEY_FILE", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    (tmp_path / ".ssh").mkdir()
    write_key(tmp_path / ".ssh" / "id_rsa", rsa_key, serialization.PrivateFormat.OpenSSH)

    creds = Credentials.from_env()

    assert creds.can_sign
    assert creds.authorization(DATE).startswith('Signature keyId="/tester/keys/aa:bb:cc"')


def test_unreadable_key_names_the_file(tmp_path):
    path = tmp_path / "id_rsa"
    path.write_text("not a key\n")

    with pytest.raises(CLIError, match="failed to load private key .*id_rsa"):
        Credentials.from_env(path)


def test_non_rsa_key_is_rejected(tmp_path):
    path = write_key(
        tmp_path / "id_ecdsa",
        ec.generate_private_key(ec.SECP256R1()),
        serialization.PrivateFormat.OpenSSH,
    )

    with pytest.raises(CLIError, match="only RSA keys are supported"):
        Credentials.from_env(path)


def test_sign_without_key():
    with pytest.raises(ValueError):
        Credentials().sign("date: now")


def test_client_signs_requests(sdc_env, key_file):
    transport = FakeTransport()
    credentials = Credentials.from_env(key_file)
    client = CloudAPIClient(base_url="http://localhost", credentials=credentials, transport=transport)

    client.networks.list()

    _, _, headers = transport.requests[-1]
    assert headers["Authorization"].startswith('Signature keyId="/tester/keys/aa:bb:cc"')


def test_signing_failure_names_the_operation():
    class BrokenCredentials(Credentials):
        def authorization(self, date):
            raise ValueError("key rejected")

    client = CloudAPIClient(base_url="http://localhost", credentials=BrokenCredentials(), transport=FakeTransport())

    with pytest.raises(APIError, match="failed to get list of keys: failed to sign request: key rejected"):
        client.keys.list()
