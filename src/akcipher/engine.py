"""The big-integer/public-key engine behind the cipher backends.

Backends never do RSA arithmetic themselves. They build structured expressions, hand them to an `Engine` together
with a key record and decode the expressions that come back. `PyEngine` is the default implementation on Python
integers; any other engine honouring the same expression shapes can be passed to `akcipher.new` instead.

Expression shapes understood by the RSA primitives:

    key:        (public-key (rsa (n N) (e E)))
                (private-key (rsa (n N) (e E) (d D) [(p P) (q Q) (u U)]))
    encrypt:    (data (flags raw|pkcs1) (value M))       -> (enc-val (rsa (a C)))
    decrypt:    (enc-val (flags raw|pkcs1) (rsa (a C)))  -> (value M)
    sign:       (data (flags pkcs1) (hash ALGO DIGEST))  -> (sig-val (rsa (s S)))
    verify:     (sig-val (rsa (s S))) + sign data expression

Typical usage example:

    engine = PyEngine()
    with engine.sexp_build("(public-key (rsa (n %m) (e %m)))", n, e) as key:
        nbits = engine.pk_get_nbits(key)
"""
# Copyright (c) 2025-present Tech. TTGames
# SPDX-License-Identifier: EPL-2.0
import abc
from secrets import token_bytes

from pyasn1.codec.der import encoder
from pyasn1.type import univ
from pyasn1_modules import rfc8017

from akcipher import errors
from akcipher.sexp import Sexp

# Hash name -> (DigestInfo algorithm OID, digest length)
DIGEST_INFO = {
    "md5": (univ.ObjectIdentifier("1.2.840.113549.2.5"), 16),
    "sha1": (univ.ObjectIdentifier("1.3.14.3.2.26"), 20),
    "sha256": (rfc8017.id_sha256, 32),
    "sha512": (rfc8017.id_sha512, 64),
}

_FLAGS = ("raw", "pkcs1")
_MIN_PS_LEN = 8


class Engine(abc.ABC):
    """Capability set of a public-key engine.

    Every expression an engine returns is owned by the caller and has to be released, either explicitly or by using
    it as a context manager. Failures are reported as `EngineError` carrying the engine's diagnostic.
    """

    @abc.abstractmethod
    def sexp_build(self, template: str, *args) -> Sexp:
        """Builds an expression from a template with `%m`, `%b` and `%s` placeholders."""

    @abc.abstractmethod
    def mpi_scan(self, data: bytes) -> int:
        """Parses a big-endian two's complement byte string as a non-negative integer."""

    @abc.abstractmethod
    def mpi_print(self, value: int) -> bytes:
        """Prints a non-negative integer as unsigned big-endian bytes with no leading zeroes."""

    @abc.abstractmethod
    def mpi_invm(self, value: int, modulus: int) -> int:
        """Computes the inverse of `value` modulo `modulus`."""

    @abc.abstractmethod
    def pk_get_nbits(self, key: Sexp) -> int:
        """Validates a key record and returns the bit length of its modulus."""

    @abc.abstractmethod
    def pk_encrypt(self, data: Sexp, key: Sexp) -> Sexp:
        """Encrypts a data expression, returning an `enc-val` expression."""

    @abc.abstractmethod
    def pk_decrypt(self, data: Sexp, key: Sexp) -> Sexp:
        """Decrypts an `enc-val` expression, returning a `value` expression."""

    @abc.abstractmethod
    def pk_sign(self, data: Sexp, key: Sexp) -> Sexp:
        """Signs a hash data expression, returning a `sig-val` expression."""

    @abc.abstractmethod
    def pk_verify(self, sig: Sexp, data: Sexp, key: Sexp) -> None:
        """Verifies a `sig-val` expression against a hash data expression, raising on mismatch."""


class PyEngine(Engine):
    """Engine implementation on Python integers.

    Implements RSA with textbook primitives, CRT acceleration for private keys carrying `p`, `q` and `u`
    (u = p^-1 mod q), PKCS#1 v1.5 type 2 padding for encryption and type 1 padding with a DER DigestInfo for
    signatures. Tracks every expression it hands out until released.
    """

    def __init__(self) -> None:
        self._live: set[Sexp] = set()

    @property
    def live(self) -> int:
        """Number of expressions created by this engine and not yet released."""
        return len(self._live)

    def sexp_build(self, template: str, *args) -> Sexp:
        return Sexp.build(template, *args, registry=self._live)

    def mpi_scan(self, data: bytes) -> int:
        if not data:
            raise errors.EngineError("Invalid integer encoding: no data")
        value = int.from_bytes(data, byteorder="big", signed=True)
        if value < 0:
            raise errors.EngineError("Invalid integer encoding: negative value")
        return value

    def mpi_print(self, value: int) -> bytes:
        if value < 0:
            raise errors.EngineError("Cannot print a negative integer as unsigned")
        return integer_to_bytes(value, (value.bit_length() + 7) // 8)

    def mpi_invm(self, value: int, modulus: int) -> int:
        try:
            return pow(value, -1, modulus)
        except ValueError as exc:
            raise errors.EngineError(f"Value is not invertible modulo the given modulus: {exc}") from exc

    def pk_get_nbits(self, key: Sexp) -> int:
        _, params = self._key_params(key)
        return params["n"].bit_length()

    def pk_encrypt(self, data: Sexp, key: Sexp) -> Sexp:
        _, params = self._key_params(key)
        if data.head() != "data":
            raise errors.EngineError(f"Expected a data expression, got {data.head()}")
        value = _find_data(data, "value")
        if self._flags(data) == "pkcs1":
            message = _eme_pkcs1_encode(value, _nbytes(params))
        else:
            message = bytes_to_integer(value)
        return self.sexp_build("(enc-val (rsa (a %m)))", self._public_op(params, message))

    def pk_decrypt(self, data: Sexp, key: Sexp) -> Sexp:
        private, params = self._key_params(key)
        if not private:
            raise errors.EngineError("Decryption requires a private key")
        if data.head() != "enc-val":
            raise errors.EngineError(f"Expected an enc-val expression, got {data.head()}")
        flags = self._flags(data)
        message = self._private_op(params, _find_mpi(data, "a"))
        if flags == "raw":
            return self.sexp_build("(value %m)", message)
        payload = _eme_pkcs1_decode(integer_to_bytes(message, _nbytes(params)))
        return self.sexp_build("(value %b)", payload)

    def pk_sign(self, data: Sexp, key: Sexp) -> Sexp:
        private, params = self._key_params(key)
        if not private:
            raise errors.EngineError("Signing requires a private key")
        encoded = self._emsa_pkcs1_encode(data, _nbytes(params))
        return self.sexp_build("(sig-val (rsa (s %m)))", self._private_op(params, encoded))

    def pk_verify(self, sig: Sexp, data: Sexp, key: Sexp) -> None:
        _, params = self._key_params(key)
        if sig.head() != "sig-val":
            raise errors.EngineError(f"Expected a sig-val expression, got {sig.head()}")
        expected = self._emsa_pkcs1_encode(data, _nbytes(params))
        if self._public_op(params, _find_mpi(sig, "s")) != expected:
            raise errors.EngineError("Bad signature")

    def _key_params(self, key: Sexp) -> tuple[bool, dict[str, int]]:
        """Extracts and validates the RSA parameters of a key record.

        Args:
            key: The key record.

        Returns:
            Whether the key is private, and its parameters by name.

        Raises:
            EngineError: If the record is not a usable RSA key.
        """
        kind = key.head()
        if kind not in ("public-key", "private-key"):
            raise errors.EngineError(f"Unknown key record type {kind}")
        rsa = key.find_token("rsa")
        if rsa is None:
            raise errors.EngineError("Key record holds no RSA parameters")
        params = {}
        with rsa:
            for name in ("n", "e", "d", "p", "q", "u"):
                elem = rsa.find_token(name)
                if elem is None:
                    continue
                with elem:
                    value = elem.nth_mpi(1)
                if value is None or value < 0:
                    raise errors.EngineError(f"Invalid RSA parameter {name}")
                params[name] = value
        if params.get("n", 0) < 1 or params.get("e", 0) < 1:
            raise errors.EngineError("RSA key requires a positive modulus and public exponent")
        private = kind == "private-key"
        if private:
            if params.get("d", 0) < 1:
                raise errors.EngineError("RSA private key requires a positive private exponent")
            crt = [name for name in ("p", "q", "u") if name in params]
            if crt and len(crt) != 3:
                raise errors.EngineError("Incomplete RSA CRT parameters")
            if crt and params["p"] * params["q"] != params["n"]:
                raise errors.EngineError("RSA CRT factors do not match the modulus")
        return private, params

    @staticmethod
    def _flags(data: Sexp) -> str:
        flags = data.find_token("flags")
        if flags is None:
            return "raw"
        with flags:
            flag = flags.nth_string(1)
        if flag not in _FLAGS:
            raise errors.EngineError(f"Unsupported flags {flag}")
        return flag

    @staticmethod
    def _public_op(params: dict[str, int], message: int) -> int:
        if not 0 <= message < params["n"]:
            raise errors.EngineError("Message representative must be in range [0, mod-1]")
        return pow(message, params["e"], params["n"])

    @staticmethod
    def _private_op(params: dict[str, int], message: int) -> int:
        """RSA private primitive, CRT accelerated when the key carries p, q and u."""
        n = params["n"]
        if not 0 <= message < n:
            raise errors.EngineError("Message representative must be in range [0, mod-1]")
        if "u" not in params:
            return pow(message, params["d"], n)
        p, q, u, d = params["p"], params["q"], params["u"], params["d"]
        m_1 = pow(message, d % (p - 1), p)
        m_2 = pow(message, d % (q - 1), q)
        h = (u * (m_2 - m_1)) % q
        return m_1 + h * p

    def _emsa_pkcs1_encode(self, data: Sexp, k: int) -> int:
        """Builds the EMSA-PKCS1-v1_5 encoded message for a hash data expression.

        Args:
            data: The `(data (flags pkcs1) (hash ALGO DIGEST))` expression.
            k: The modulus length in bytes.

        Returns:
            The encoded message as an integer.

        Raises:
            EngineError: If the expression is malformed, the hash unknown or the digest does not fit the key.
        """
        if data.head() != "data":
            raise errors.EngineError(f"Expected a data expression, got {data.head()}")
        if self._flags(data) != "pkcs1":
            raise errors.EngineError("Signature operations require pkcs1 flags")
        hsh = data.find_token("hash")
        if hsh is None:
            raise errors.EngineError("Missing hash element")
        with hsh:
            name = hsh.nth_string(1)
            digest = hsh.nth_data(2)
        if name not in DIGEST_INFO:
            raise errors.EngineError(f"Unsupported hash algorithm {name}")
        oid, hlen = DIGEST_INFO[name]
        if digest is None or len(digest) != hlen:
            raise errors.EngineError(f"Digest length does not match {name}")
        algid = rfc8017.DigestAlgorithm()
        algid["algorithm"] = oid
        algid["parameters"] = univ.Null("")
        payload = rfc8017.DigestInfo()
        payload["digestAlgorithm"] = algid
        payload["digest"] = digest
        encoded = encoder.encode(payload)
        if k < len(encoded) + 11:
            raise errors.EngineError("Intended encoded message length too short")
        ps = b"\xFF" * (k - len(encoded) - 3)
        return bytes_to_integer(b"\x00\x01" + ps + b"\x00" + encoded)


def _nbytes(params: dict[str, int]) -> int:
    return (params["n"].bit_length() + 7) // 8


def _find_data(expr: Sexp, token: str) -> bytes:
    sub = expr.find_token(token)
    if sub is None:
        raise errors.EngineError(f"Missing {token} element")
    with sub:
        value = sub.nth_data(1)
    if value is None:
        raise errors.EngineError(f"Invalid {token} element")
    return value


def _find_mpi(expr: Sexp, token: str) -> int:
    sub = expr.find_token(token)
    if sub is None:
        raise errors.EngineError(f"Missing {token} element")
    with sub:
        value = sub.nth_mpi(1)
    if value is None:
        raise errors.EngineError(f"Invalid {token} element")
    return value


def _eme_pkcs1_encode(message: bytes, k: int) -> int:
    """Applies EME-PKCS1-v1_5 encoding: 00 02 PS 00 M, PS being random non-zero octets."""
    if len(message) > k - 3 - _MIN_PS_LEN:
        raise errors.EngineError(f"Message too long: expected {k - 3 - _MIN_PS_LEN} octets or less")
    pslen = k - len(message) - 3
    ps = bytearray()
    while len(ps) < pslen:
        ps.extend(b for b in token_bytes(pslen - len(ps)) if b)
    return bytes_to_integer(b"\x00\x02" + bytes(ps) + b"\x00" + message)


def _eme_pkcs1_decode(encoded: bytes) -> bytes:
    """Removes EME-PKCS1-v1_5 encoding. Every malformation yields the same diagnostic."""
    sep = encoded.find(b"\x00", 2)
    if encoded[0:2] != b"\x00\x02" or sep < 2 + _MIN_PS_LEN:
        raise errors.EngineError("Decryption error")
    return encoded[sep + 1:]


def bytes_to_integer(msg: bytes) -> int:
    """Converts a byte string to a non-negative integer, big-endian."""
    return int.from_bytes(msg, byteorder="big", signed=False)


def integer_to_bytes(msg: int, fixedlen: int) -> bytes:
    """Converts a non-negative integer to a big-endian byte string of exactly `fixedlen` bytes."""
    return msg.to_bytes(fixedlen, byteorder="big", signed=False)


_DEFAULT_ENGINE: Engine | None = None


def default_engine() -> Engine:
    """Returns the engine used when none is passed explicitly, creating a `PyEngine` on first use."""
    global _DEFAULT_ENGINE
    if _DEFAULT_ENGINE is None:
        _DEFAULT_ENGINE = PyEngine()
    return _DEFAULT_ENGINE


def set_default_engine(engine: Engine | None) -> None:
    """Replaces the default engine. None restores a fresh `PyEngine` on next use."""
    global _DEFAULT_ENGINE
    _DEFAULT_ENGINE = engine
