import datetime
import os

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID


def write_key_pair(directory, name: str):
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    private_key_path = os.path.join(directory, f"{name}.key")
    public_key_path = os.path.join(directory, f"{name}.crt")
    with open(private_key_path, "wb") as f:
        f.write(
            key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )
    with open(public_key_path, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
    return private_key_path, public_key_path


@pytest.fixture(scope="session")
def signing_keys(tmp_path_factory):
    """private key and certificate paths, replaces cert/gencert.sh"""
    return write_key_pair(str(tmp_path_factory.mktemp("cert")), "oci-sign")


@pytest.fixture(scope="session")
def other_signing_keys(tmp_path_factory):
    return write_key_pair(str(tmp_path_factory.mktemp("cert-other")), "other-sign")


@pytest.fixture
def layout(tmp_path):
    """empty OCI layout directory"""
    blobs = tmp_path / "layout" / "blobs" / "sha256"
    blobs.mkdir(parents=True)
    (tmp_path / "layout" / "oci-layout").write_text('{"imageLayoutVersion": "1.0.0"}')
    return tmp_path / "layout"
