import logging
import os
import ssl
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any
from typing import Self

from cryptography.hazmat.primitives.serialization import BestAvailableEncryption
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.hazmat.primitives.serialization import NoEncryption
from cryptography.hazmat.primitives.serialization import PrivateFormat
from cryptography.hazmat.primitives.serialization import pkcs12

logger = logging.getLogger(__name__)

STORE_TYPES = ("PKCS12", "PEM")


class KeyStoreError(ValueError):
    """A truststore or keystore could not be loaded."""


@dataclass(frozen=True, kw_only=True)
class KeyStore:
    """A file of certificates, and optionally a private key.

    PKCS12 stores are read with the password. PEM stores are used as they
    are, and the password, if any, decrypts the private key.
    """

    path: Path
    password: str | None = None
    type: str = "PKCS12"

    def __post_init__(self):
        if self.type not in STORE_TYPES:
            raise KeyStoreError(
                f"Store type must be one of {STORE_TYPES}, got: '{self.type}'"
            )

    def trust(self, context: ssl.SSLContext, /):
        """Trust the certificates of this store in the context."""
        try:
            if self.type == "PEM":
                context.load_verify_locations(cafile=self.path)
                return

            _, certificate, additional = self.__load_pkcs12()
            certificates = [c for c in [certificate, *additional] if c is not None]
            if not certificates:
                raise KeyStoreError(f"No certificates in truststore {self.path}")
            cadata = "".join(
                c.public_bytes(Encoding.PEM).decode() for c in certificates
            )
            context.load_verify_locations(cadata=cadata)
        except (OSError, ssl.SSLError) as exception:
            raise KeyStoreError(
                f"Cannot load truststore {self.path}: {exception}"
            ) from exception

    def present(self, context: ssl.SSLContext, /):
        """Present the key and certificate chain of this store in the context."""
        try:
            if self.type == "PEM":
                context.load_cert_chain(self.path, password=self.password)
                return

            key, certificate, additional = self.__load_pkcs12()
            if key is None or certificate is None:
                raise KeyStoreError(f"No private key in keystore {self.path}")

            password = self.password.encode() if self.password else None
            if password:
                encryption = BestAvailableEncryption(password)
            else:
                encryption = NoEncryption()
            chain = key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, encryption)
            for c in [certificate, *additional]:
                chain += c.public_bytes(Encoding.PEM)

            # The ssl module only loads certificate chains from files
            with TemporaryDirectory(prefix="mdb-") as directory:
                path = Path(directory) / "client.pem"
                path.write_bytes(chain)
                context.load_cert_chain(path, password=password)
        except (OSError, ssl.SSLError) as exception:
            raise KeyStoreError(
                f"Cannot load keystore {self.path}: {exception}"
            ) from exception

    def __load_pkcs12(self):
        data = self.path.read_bytes()
        password = self.password.encode() if self.password else None
        try:
            return pkcs12.load_key_and_certificates(data, password)
        except ValueError as exception:
            raise KeyStoreError(
                f"Cannot read PKCS12 store {self.path}, "
                f"the password is wrong or the file is corrupt"
            ) from exception


@dataclass(frozen=True, kw_only=True)
class TLSConfig:
    """TLS settings for broker connections.

    The truststore validates the broker's certificate. Without one, the
    system's default certificate authorities are trusted. The keystore holds
    the client certificate for brokers that require mutual TLS.
    """

    truststore: KeyStore | None = None
    keystore: KeyStore | None = None
    verify_hostname: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> Self | None:
        """Read the MDB_SSL_* environment variables."""
        truststore = _store(
            environ.get("MDB_SSL_TRUSTSTORE"),
            environ.get("MDB_SSL_TRUSTSTORE_PASSWORD"),
            environ.get("MDB_SSL_TRUSTSTORE_TYPE"),
        )
        keystore = _store(
            environ.get("MDB_SSL_KEYSTORE"),
            environ.get("MDB_SSL_KEYSTORE_PASSWORD"),
            environ.get("MDB_SSL_KEYSTORE_TYPE"),
        )
        if truststore is None and keystore is None:
            return None
        verify = _flag(
            "MDB_SSL_VERIFY_HOSTNAME", environ.get("MDB_SSL_VERIFY_HOSTNAME", True)
        )
        return cls(truststore=truststore, keystore=keystore, verify_hostname=verify)

    @classmethod
    def from_config(cls, table: Mapping[str, Any]) -> Self | None:
        """Read a [tool.mdb.tls] table."""
        truststore = _store(
            table.get("truststore"),
            table.get("truststore-password"),
            table.get("truststore-type"),
        )
        keystore = _store(
            table.get("keystore"),
            table.get("keystore-password"),
            table.get("keystore-type"),
        )
        if truststore is None and keystore is None:
            return None
        return cls(
            truststore=truststore,
            keystore=keystore,
            verify_hostname=_flag(
                "verify-hostname", table.get("verify-hostname", True)
            ),
        )

    def create_context(self) -> ssl.SSLContext:
        """Create a client context that uses the configured stores."""
        logger.info(
            "Creating TLS context with truststore %s and keystore %s",
            self.truststore.path if self.truststore else "(system default)",
            self.keystore.path if self.keystore else "(none)",
        )
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = self.verify_hostname
        if self.truststore:
            self.truststore.trust(context)
        else:
            context.load_default_certs(ssl.Purpose.SERVER_AUTH)
        if self.keystore:
            self.keystore.present(context)
        return context


def _store(path: str | None, password: str | None, type: str | None) -> KeyStore | None:
    if not path:
        return None
    return KeyStore(
        path=Path(path),
        password=password or None,
        type=(type or "PKCS12").upper(),
    )


def _flag(name: str, value: bool | str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"{name} must be true or false, got: {value!r}")
