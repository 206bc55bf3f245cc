"""Algorithm-independent asymmetric cipher API.

Backends subclass `AkCipher` and register themselves for an `AkCipherAlg`. The functions here dispatch on
`AkCipherOptions.alg`, so adding an algorithm means registering a backend, not touching existing ones.

Typical usage example:

    opts = AkCipherOptions(AkCipherAlg.RSA, PaddingAlg.PKCS1, HashAlg.SHA256)
    if supports(opts):
        with new(opts, KeyType.PRIVATE, der_key) as cipher:
            signature = cipher.sign(digest)
"""
# Copyright (c) 2025-present Tech. TTGames
# SPDX-License-Identifier: EPL-2.0
import abc
import logging
import typing

from akcipher import engine as engine_mod
from akcipher import errors
from akcipher.options import AkCipherAlg
from akcipher.options import AkCipherOptions
from akcipher.options import KeyType

logger = logging.getLogger(__name__)

_BACKENDS: dict[AkCipherAlg, type["AkCipher"]] = {}


class AkCipher(abc.ABC):
    """A key bound to an algorithm configuration, ready for encrypt/decrypt/sign/verify.

    Handles are read-only once built and own engine resources until `free()` is called; they are context managers
    that free themselves on exit. Size ceilings are fixed at construction.
    """

    def __init__(self, opts: AkCipherOptions, max_plaintext_len: int, max_ciphertext_len: int, max_dgst_len: int,
                 max_signature_len: int) -> None:
        self.opts = opts
        self._max_plaintext_len = max_plaintext_len
        self._max_ciphertext_len = max_ciphertext_len
        self._max_dgst_len = max_dgst_len
        self._max_signature_len = max_signature_len

    @property
    def max_plaintext_len(self) -> int:
        return self._max_plaintext_len

    @property
    def max_ciphertext_len(self) -> int:
        return self._max_ciphertext_len

    @property
    def max_dgst_len(self) -> int:
        return self._max_dgst_len

    @property
    def max_signature_len(self) -> int:
        return self._max_signature_len

    def __enter__(self) -> "AkCipher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.free()

    @classmethod
    @abc.abstractmethod
    def supports(cls, opts: AkCipherOptions) -> bool:
        """Whether the backend can service `opts`, without needing a key."""

    @classmethod
    def export_p8info(cls, key: bytes) -> bytes:
        """Wraps a private key blob of this algorithm in PKCS#8."""
        raise errors.UnsupportedAlgorithm(f"PKCS#8 export is not supported for {cls.__name__}")

    @abc.abstractmethod
    def encrypt(self, data: bytes, out_len: int | None = None) -> bytes:
        """Encrypts `data` into at most `out_len` bytes."""

    @abc.abstractmethod
    def decrypt(self, data: bytes, out_len: int | None = None) -> bytes:
        """Decrypts `data` into at most `out_len` bytes."""

    @abc.abstractmethod
    def sign(self, digest: bytes, out_len: int | None = None) -> bytes:
        """Signs `digest` into at most `out_len` bytes."""

    @abc.abstractmethod
    def verify(self, signature: bytes, digest: bytes) -> None:
        """Verifies `signature` over `digest`, raising `VerificationFailed` on mismatch."""

    @abc.abstractmethod
    def free(self) -> None:
        """Releases the key material. Calling it again is a no-op."""


B = typing.TypeVar("B", bound=type[AkCipher])


def register_backend(alg: AkCipherAlg) -> typing.Callable[[B], B]:
    """Class decorator registering an `AkCipher` subclass as the backend for `alg`."""

    def decorator(cls: B) -> B:
        _BACKENDS[alg] = cls
        logger.debug("Registered backend %s for %s", cls.__name__, alg)
        return cls

    return decorator


def _backend(alg: AkCipherAlg) -> type[AkCipher]:
    try:
        return _BACKENDS[alg]
    except (KeyError, TypeError) as exc:
        raise errors.UnsupportedAlgorithm(f"Unsupported algorithm: {alg}") from exc


def supports(opts: AkCipherOptions) -> bool:
    """Reports whether `opts` can be serviced, so callers can reject configurations before building a key.

    Args:
        opts: The algorithm, padding and hash configuration.

    Returns:
        True if a registered backend supports the configuration.
    """
    try:
        backend = _backend(opts.alg)
    except errors.UnsupportedAlgorithm:
        return False
    return backend.supports(opts)


def new(opts: AkCipherOptions, key_type: KeyType, key: bytes, engine: engine_mod.Engine | None = None) -> AkCipher:
    """Builds a cipher handle from a key blob.

    Args:
        opts: The algorithm configuration, fixed for the lifetime of the handle.
        key_type: Whether `key` is a public or a private key.
        key: The DER encoded key blob.
        engine: The engine to run operations on. Defaults to `engine.default_engine()`.

    Returns:
        The cipher handle. Release it with `free()` or by using it as a context manager.

    Raises:
        UnsupportedAlgorithm: If no backend is registered for `opts.alg`.
        UnsupportedPadding: If the backend does not support the padding/hash combination.
        KeyParseError: If the key blob or one of its parameters is malformed.
        KeyBuildError: If the engine rejects the key.
    """
    backend = _backend(opts.alg)
    if engine is None:
        engine = engine_mod.default_engine()
    return backend(opts, key_type, key, engine)


def free(cipher: AkCipher | None) -> None:
    """Releases `cipher`. Accepts None and already released handles."""
    if cipher is None:
        return
    cipher.free()


def encrypt(cipher: AkCipher, data: bytes, out_len: int | None = None) -> bytes:
    return cipher.encrypt(data, out_len)


def decrypt(cipher: AkCipher, data: bytes, out_len: int | None = None) -> bytes:
    return cipher.decrypt(data, out_len)


def sign(cipher: AkCipher, digest: bytes, out_len: int | None = None) -> bytes:
    return cipher.sign(digest, out_len)


def verify(cipher: AkCipher, signature: bytes, digest: bytes) -> None:
    cipher.verify(signature, digest)


def export_p8info(opts: AkCipherOptions, key: bytes) -> bytes:
    """Wraps a private key blob in a PKCS#8 PrivateKeyInfo, for algorithms that define one."""
    return _backend(opts.alg).export_p8info(key)
