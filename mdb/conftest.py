import datetime
import os
import threading
from threading import Thread
from time import sleep

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import BestAvailableEncryption
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from mdb.registry import LISTENER_REGISTRY
from mdb.tls import KeyStore

STORE_PASSWORD = "changeit"


def pytest_sessionfinish(session):
    """Exit even if a leaked non-daemon thread would keep the process alive."""
    timeout = float(session.config.getini("timeout")) + 5
    Thread(target=lambda: sleep(timeout) or os._exit(1), daemon=True).start()


@pytest.fixture(autouse=True)
def check_thread_cleanup():
    """Fail a test that leaves deployment, receiver or other threads running."""
    before = set(threading.enumerate())
    yield
    leaked = sorted(
        thread.name
        for thread in threading.enumerate()
        if thread not in before and thread.is_alive()
    )
    if leaked:
        pytest.fail(f"Test left {len(leaked)} thread(s) running: {leaked}")


@pytest.fixture
def registry():
    """Give the test an empty listener registry, and restore it afterwards."""
    original_registry = dict(LISTENER_REGISTRY)
    LISTENER_REGISTRY.clear()
    yield LISTENER_REGISTRY
    LISTENER_REGISTRY.clear()
    LISTENER_REGISTRY.update(original_registry)


@pytest.fixture
def stores(tmp_path) -> tuple[KeyStore, KeyStore]:
    """A PKCS12 truststore and keystore holding a self-signed certificate."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.datetime.now(tz=datetime.UTC)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName("localhost")]), critical=False
        )
        .sign(key, hashes.SHA256())
    )
    encryption = BestAvailableEncryption(STORE_PASSWORD.encode())

    truststore = tmp_path / "truststore.p12"
    truststore.write_bytes(
        pkcs12.serialize_key_and_certificates(
            None, None, None, [certificate], encryption
        )
    )
    keystore = tmp_path / "keystore.p12"
    keystore.write_bytes(
        pkcs12.serialize_key_and_certificates(
            b"client", key, certificate, None, encryption
        )
    )
    return (
        KeyStore(path=truststore, password=STORE_PASSWORD),
        KeyStore(path=keystore, password=STORE_PASSWORD),
    )
