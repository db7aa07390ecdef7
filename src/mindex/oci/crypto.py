import base64
import hashlib

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from mindex.oci.descriptor import Descriptor, Platform, digest_problems, split_digest
from mindex.oci.errors import (
    DigestMismatchError,
    InvalidDescriptorError,
    UnsupportedDigestAlgorithmError,
)

supported_algorithms = ("sha256", "sha512")


def sign_data(data_str: str, private_key_file_path: str) -> str:
    with open(private_key_file_path, "rb") as key_file:
        private_key = load_pem_private_key(key_file.read(), password=None)

    signature = private_key.sign(
        data_str.encode("utf-8"),
        padding.PSS(
            mgf=padding.MGF1(hashes.SHA256()),
            salt_length=padding.PSS.MAX_LENGTH,
        ),
        hashes.SHA256(),
    )
    return base64.b64encode(signature).decode("utf-8")


def verify_signature(data_str: str, signature: str, public_key_file_path: str):
    with open(public_key_file_path, "rb") as cert_file:
        cert = x509.load_pem_x509_certificate(cert_file.read())
        public_key = cert.public_key()
    try:
        public_key.verify(
            base64.b64decode(signature),
            data_str.encode("utf-8"),
            padding.PSS(
                mgf=padding.MGF1(hashes.SHA256()),
                salt_length=padding.PSS.MAX_LENGTH,
            ),
            hashes.SHA256(),
        )
    except InvalidSignature:
        raise ValueError(f"Invalid Signature {signature} for data: {data_str}")


def construct_entry_signed_data_string(
    descriptor: Descriptor, platform: Platform
) -> str:
    data_to_sign = f"media_type:{descriptor.media_type}  digest:{descriptor.digest}  size:{descriptor.size}  platform:{platform}"
    return data_to_sign


def calculate_digest(data: bytes, algorithm: str = "sha256") -> str:
    if algorithm not in supported_algorithms:
        raise UnsupportedDigestAlgorithmError(algorithm)
    return f"{algorithm}:{hashlib.new(algorithm, data).hexdigest()}"


def calculate_sha256(file_path: str) -> str:
    """Calculate the SHA256 checksum of a file."""
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


def verify_digest(descriptor: Descriptor, content: bytes):
    """
    Check fetched content against the digest and size a descriptor claims.

    :param descriptor: descriptor naming the expected digest and size
    :param content: the bytes as fetched from a registry or layout

    Raises DigestMismatchError, UnsupportedDigestAlgorithmError or
    InvalidDescriptorError. Returns nothing on success.
    """
    problems = digest_problems(descriptor.digest)
    if problems:
        raise InvalidDescriptorError(problems[0], digest=descriptor.digest)
    algorithm, _ = split_digest(descriptor.digest)
    if algorithm not in supported_algorithms:
        raise UnsupportedDigestAlgorithmError(algorithm, digest=descriptor.digest)

    if len(content) != descriptor.size:
        raise DigestMismatchError(
            descriptor.digest,
            expected_size=descriptor.size,
            actual_size=len(content),
        )
    data_digest = calculate_digest(content, algorithm)
    if data_digest != descriptor.digest:
        raise DigestMismatchError(descriptor.digest, actual_digest=data_digest)
