"""RSA backend: key construction and the encrypt, decrypt, sign and verify operations.

Builds an engine key record from PKCS#1 key blobs and runs every operation as a single request/response exchange with
the engine. Two padding disciplines are offered. Raw padding works on integers the size of the modulus and always
returns exactly the requested number of bytes, left-zero-padded. PKCS#1 padding is applied by the engine and returns
variable-length results no longer than the modulus; signing and verification are only offered under PKCS#1.

Every engine expression created along the way is entered into an `ExitStack`, so it is released on every return path.

Typical usage example:

    opts = AkCipherOptions(AkCipherAlg.RSA, PaddingAlg.RAW)
    with RSACipher(opts, KeyType.PRIVATE, der_key, default_engine()) as cipher:
        c = cipher.encrypt(b"Hi there!")
        r = cipher.decrypt(c)
"""
# Copyright (c) 2025-present Tech. TTGames
# SPDX-License-Identifier: EPL-2.0
import contextlib
import logging
import typing

from akcipher import errors
from akcipher import rsakey
from akcipher.cipher import AkCipher
from akcipher.cipher import register_backend
from akcipher.engine import Engine
from akcipher.options import AkCipherAlg
from akcipher.options import AkCipherOptions
from akcipher.options import HashAlg
from akcipher.options import KeyType
from akcipher.options import PaddingAlg
from akcipher.sexp import Sexp

logger = logging.getLogger(__name__)

PKCS1_HASHES = frozenset({HashAlg.MD5, HashAlg.SHA1, HashAlg.SHA256, HashAlg.SHA512})


def rsa_size(nbits: int) -> int:
    """Size ceiling shared by all four operations: the modulus length in bytes."""
    return (nbits + 7) // 8


@register_backend(AkCipherAlg.RSA)
class RSACipher(AkCipher):
    """RSA key bound to a padding and hash configuration.

    Attributes:
        opts: The configuration the handle was built with.
        padding: The padding algorithm.
        hash_alg: The hash algorithm, used by sign and verify.
        engine: The engine running the operations.
        key: The engine key record, None once freed.
    """

    def __init__(self, opts: AkCipherOptions, key_type: KeyType, key: bytes, engine: Engine) -> None:
        """Builds the handle from a key blob.

        Args:
            opts: The configuration, fixed for the lifetime of the handle.
            key_type: Whether `key` is a public or a private key.
            key: PKCS#1 DER encoded key.
            engine: The engine to build the key record with and run operations on.

        Raises:
            UnsupportedPadding: If the padding/hash combination is not supported.
            KeyParseError: If the key blob or one of its parameters is malformed.
            KeyBuildError: If the engine rejects the key record.
        """
        if not self.supports(opts):
            raise errors.UnsupportedPadding(
                f"Unsupported RSA configuration: padding {opts.padding}, hash {opts.hash_alg}")
        self.padding: PaddingAlg = opts.padding
        self.hash_alg: HashAlg = opts.hash_alg
        self.engine = engine
        self._log = logger.getChild(opts.padding.value)
        self.key: Sexp | None = None
        params = rsakey.parse(key_type, key)
        if key_type is KeyType.PRIVATE:
            self.key = self._build_private_key(params)
        else:
            self.key = self._build_public_key(params)
        try:
            nbits = engine.pk_get_nbits(self.key)
        except errors.EngineError as exc:
            self.free()
            raise errors.KeyBuildError(f"Failed to build RSA {key_type.value} key: {exc}") from exc
        size = rsa_size(nbits)
        super().__init__(opts, size, size, size, size)
        self._log.debug("Built %d-bit RSA %s key", nbits, key_type.value)

    @classmethod
    def supports(cls, opts: AkCipherOptions) -> bool:
        if opts.alg is not AkCipherAlg.RSA:
            return False
        if opts.padding is PaddingAlg.RAW:
            return True
        if opts.padding is PaddingAlg.PKCS1:
            return opts.hash_alg in PKCS1_HASHES
        return False

    @classmethod
    def export_p8info(cls, key: bytes) -> bytes:
        return rsakey.export_p8info(key)

    def _scan(self, params: rsakey.RSAKeyParams, name: str) -> int:
        data = getattr(params, name)
        if data is None:
            raise errors.KeyParseError(f"Failed to parse RSA parameter {name}: missing")
        try:
            return self.engine.mpi_scan(data)
        except errors.EngineError as exc:
            raise errors.KeyParseError(f"Failed to parse RSA parameter {name}: {exc}") from exc

    def _build(self, template: str, *args: typing.Any) -> Sexp:
        try:
            return self.engine.sexp_build(template, *args)
        except errors.EngineError as exc:
            raise errors.KeyBuildError(f"Failed to build RSA key: {exc}") from exc

    def _build_public_key(self, params: rsakey.RSAKeyParams) -> Sexp:
        n = self._scan(params, "n")
        e = self._scan(params, "e")
        return self._build("(public-key (rsa (n %m) (e %m)))", n, e)

    def _build_private_key(self, params: rsakey.RSAKeyParams) -> Sexp:
        """Builds a private key record, with CRT parameters when both primes are known.

        The primes are ordered so that p < q, and u = p^-1 mod q is derived by the engine.

        Args:
            params: The parsed key parameters.

        Returns:
            The key record.

        Raises:
            KeyParseError: If a parameter is missing or malformed.
            KeyBuildError: If no CRT coefficient exists or the engine rejects the record.
        """
        n = self._scan(params, "n")
        e = self._scan(params, "e")
        d = self._scan(params, "d")
        p = self._scan(params, "p") if params.p is not None else 0
        q = self._scan(params, "q") if params.q is not None else 0
        if p <= 0 or q <= 0:
            self._log.debug("Private key carries no CRT parameters, building without acceleration")
            return self._build("(private-key (rsa (n %m) (e %m) (d %m)))", n, e, d)
        if p > q:
            self._log.debug("Swapping RSA primes so that p < q")
            p, q = q, p
        try:
            u = self.engine.mpi_invm(p, q)
        except errors.EngineError as exc:
            raise errors.KeyBuildError(f"Failed to compute RSA CRT coefficient: {exc}") from exc
        return self._build("(private-key (rsa (n %m) (e %m) (d %m) (p %m) (q %m) (u %m)))", n, e, d, p, q, u)

    def _live_key(self) -> Sexp:
        if self.key is None:
            raise errors.AkCipherError("Operation on a freed RSA cipher")
        return self.key

    def _request(self, stack: contextlib.ExitStack, template: str, *args: typing.Any) -> Sexp:
        return stack.enter_context(self.engine.sexp_build(template, *args))

    def _invoke(self, stack: contextlib.ExitStack, action: str, primitive: typing.Callable[..., Sexp],
                *args: Sexp) -> Sexp:
        try:
            result = primitive(*args)
        except errors.EngineError as exc:
            raise errors.EngineError(f"Failed to {action}: {exc}") from exc
        return stack.enter_context(result)

    @staticmethod
    def _item(stack: contextlib.ExitStack, response: Sexp, token: str, what: str) -> Sexp:
        """Finds the `(token value)` pair in an engine response."""
        item = response.find_token(token)
        if item is None:
            raise errors.EngineError(f"Invalid {what} result")
        stack.enter_context(item)
        if len(item) != 2:
            raise errors.EngineError(f"Invalid {what} result")
        return item

    def _shape(self, item: Sexp, out_len: int, what: str) -> bytes:
        """Copies the value of a response item into an output of at most `out_len` bytes.

        Raw padding yields an integer, printed unsigned and left-zero-padded to exactly `out_len` bytes. PKCS#1
        padding yields a byte string returned as is.

        Args:
            item: The `(token value)` response item.
            out_len: The output capacity.
            what: Name of the value, for diagnostics.

        Returns:
            The output bytes.

        Raises:
            EngineError: If the value is not of the expected kind.
            OutputTooSmall: If the value does not fit `out_len` bytes.
        """
        if self.padding is PaddingAlg.RAW:
            value = item.nth_mpi(1)
            if value is None:
                raise errors.EngineError(f"{what.capitalize()} is not a valid mpi")
            result = self.engine.mpi_print(value)
            if len(result) > out_len:
                raise errors.OutputTooSmall(f"{what.capitalize()} buffer length is too small")
            return result.rjust(out_len, b"\x00")
        result = item.nth_data(1)
        if result is None:
            raise errors.EngineError(f"Invalid {what} result")
        if len(result) > out_len:
            raise errors.OutputTooSmall(f"{what.capitalize()} buffer length is too small")
        return result

    def _require_pkcs1(self) -> None:
        if self.padding is not PaddingAlg.PKCS1:
            raise errors.UnsupportedPadding("Signatures are only supported with pkcs1 padding")

    def encrypt(self, data: bytes, out_len: int | None = None) -> bytes:
        """Encrypts `data` with the public part of the key.

        Args:
            data: The plaintext, at most `max_plaintext_len` bytes. Under PKCS#1 the engine needs room for 11 bytes
                of padding on top.
            out_len: The output capacity. Defaults to `max_ciphertext_len`.

        Returns:
            The ciphertext. Exactly `out_len` bytes under raw padding.

        Raises:
            InputTooLarge: If `data` exceeds `max_plaintext_len`.
            OutputTooSmall: If the ciphertext does not fit `out_len`.
            EngineError: If the engine fails to encrypt.
        """
        key = self._live_key()
        out_len = self.max_ciphertext_len if out_len is None else out_len
        if len(data) > self.max_plaintext_len:
            raise errors.InputTooLarge(f"Plaintext length is greater than key size: {self.max_plaintext_len}")
        with contextlib.ExitStack() as stack:
            request = self._request(stack, "(data (flags %s) (value %b))", self.padding.value, data)
            response = self._invoke(stack, "encrypt", self.engine.pk_encrypt, request, key)
            return self._shape(self._item(stack, response, "a", "ciphertext"), out_len, "ciphertext")

    def decrypt(self, data: bytes, out_len: int | None = None) -> bytes:
        """Decrypts `data` with the private key.

        Args:
            data: The ciphertext, at most `max_ciphertext_len` bytes.
            out_len: The output capacity. Defaults to `max_plaintext_len`.

        Returns:
            The plaintext. Exactly `out_len` bytes under raw padding.

        Raises:
            InputTooLarge: If `data` exceeds `max_ciphertext_len`.
            OutputTooSmall: If the plaintext does not fit `out_len`.
            EngineError: If the engine fails to decrypt, including PKCS#1 padding errors and public keys.
        """
        key = self._live_key()
        out_len = self.max_plaintext_len if out_len is None else out_len
        if len(data) > self.max_ciphertext_len:
            raise errors.InputTooLarge(f"Ciphertext length is greater than key size: {self.max_ciphertext_len}")
        with contextlib.ExitStack() as stack:
            request = self._request(stack, "(enc-val (flags %s) (rsa (a %b)))", self.padding.value, data)
            response = self._invoke(stack, "decrypt", self.engine.pk_decrypt, request, key)
            return self._shape(self._item(stack, response, "value", "plaintext"), out_len, "plaintext")

    def sign(self, digest: bytes, out_len: int | None = None) -> bytes:
        """Signs a digest produced with the configured hash.

        Args:
            digest: The digest, at most `max_dgst_len` bytes.
            out_len: The output capacity. Defaults to `max_signature_len`.

        Returns:
            The signature, variable length.

        Raises:
            UnsupportedPadding: If the handle is not configured for PKCS#1.
            InputTooLarge: If `digest` exceeds `max_dgst_len`.
            OutputTooSmall: If the signature does not fit `out_len`.
            EngineError: If the engine fails to sign.
        """
        key = self._live_key()
        self._require_pkcs1()
        out_len = self.max_signature_len if out_len is None else out_len
        if len(digest) > self.max_dgst_len:
            raise errors.InputTooLarge(f"Data length is greater than key size: {self.max_dgst_len}")
        with contextlib.ExitStack() as stack:
            request = self._request(stack, "(data (flags pkcs1) (hash %s %b))", self.hash_alg.value, digest)
            response = self._invoke(stack, "sign", self.engine.pk_sign, request, key)
            item = self._item(stack, response, "s", "signature")
            result = item.nth_data(1)
            if result is None:
                raise errors.EngineError("Invalid signature result")
            if len(result) > out_len:
                raise errors.OutputTooSmall("Signature buffer length is too small")
            return result

    def verify(self, signature: bytes, digest: bytes) -> None:
        """Verifies a signature over a digest produced with the configured hash.

        Args:
            signature: The signature, at most `max_signature_len` bytes.
            digest: The digest, at most `max_dgst_len` bytes.

        Raises:
            UnsupportedPadding: If the handle is not configured for PKCS#1.
            InputTooLarge: If the signature or digest exceeds its ceiling.
            VerificationFailed: If the engine rejects the signature.
        """
        key = self._live_key()
        self._require_pkcs1()
        if len(signature) > self.max_signature_len:
            raise errors.InputTooLarge(f"Signature length is greater than key size: {self.max_signature_len}")
        if len(digest) > self.max_dgst_len:
            raise errors.InputTooLarge(f"Data length is greater than key size: {self.max_dgst_len}")
        with contextlib.ExitStack() as stack:
            sig = self._request(stack, "(sig-val (rsa (s %b)))", signature)
            data = self._request(stack, "(data (flags pkcs1) (hash %s %b))", self.hash_alg.value, digest)
            try:
                self.engine.pk_verify(sig, data, key)
            except errors.EngineError as exc:
                self._log.debug("Signature rejected: %s", exc)
                raise errors.VerificationFailed(f"Failed to verify signature: {exc}") from exc

    def free(self) -> None:
        if self.key is None:
            return
        self.key.release()
        self.key = None
