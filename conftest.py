"""Configures pytest further and provides reference keys."""
# Copyright (c) 2025-present Tech. TTGames
# SPDX-License-Identifier: EPL-2.0
import typing

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from pyasn1.codec.der import encoder
from pyasn1_modules import rfc8017
import pytest

from akcipher import PyEngine
from akcipher.rsakey import RSAPrivateKeyNoCRT

TARGET_SIZES = [1024, 2048, pytest.param(4096, marks=pytest.mark.slow)]
e = 65537
_known_keys: dict[int, "KeyBlobs"] = {}


class KeyBlobs(typing.NamedTuple):
    """A reference key and the DER blobs derived from it."""
    ref: rsa.RSAPrivateKey
    public: bytes
    private: bytes
    private_swapped: bytes
    private_nocrt: bytes
    private_zero_primes: bytes

    @property
    def size(self) -> int:
        return (self.ref.key_size + 7) // 8


def pytest_addoption(parser):
    parser.addoption("--skip-slow", action="store_true", default=False, help="skip slower tests")
    parser.addoption("--run-extreme", action="store_true", default=False, help="run extreme value extremely slow tests")


def pytest_collection_modifyitems(config, items):
    skipdict = {}
    if config.getoption("--skip-slow"):
        skipdict["slow"] = pytest.mark.skip(reason="Slow test: needs no --skip-slow option")
    if not config.getoption("--run-extreme"):
        skipdict["extreme"] = pytest.mark.skip(reason="Extreme test: needs --run-extreme option")
    if not skipdict:
        return
    for item in items:
        for k, v in skipdict.items():
            if k in item.keywords:
                item.add_marker(v)


def encode_private(n: int, pub: int, d: int, p: int, q: int, dmp1: int, dmq1: int, iqmp: int) -> bytes:
    """DER encodes a PKCS#1 private key from its numbers."""
    interkey = rfc8017.RSAPrivateKey()
    interkey["version"] = 0
    interkey["modulus"] = n
    interkey["publicExponent"] = pub
    interkey["privateExponent"] = d
    interkey["prime1"] = p
    interkey["prime2"] = q
    interkey["exponent1"] = dmp1
    interkey["exponent2"] = dmq1
    interkey["coefficient"] = iqmp
    return encoder.encode(interkey)


def make_blobs(size: int) -> KeyBlobs:
    if size in _known_keys:
        return _known_keys[size]
    pk = rsa.generate_private_key(public_exponent=e, key_size=size)
    privs = pk.private_numbers()
    pubs = privs.public_numbers
    nocrt = RSAPrivateKeyNoCRT()
    nocrt["version"] = 0
    nocrt["modulus"] = pubs.n
    nocrt["publicExponent"] = pubs.e
    nocrt["privateExponent"] = privs.d
    blobs = KeyBlobs(
        ref=pk,
        public=pk.public_key().public_bytes(serialization.Encoding.DER, serialization.PublicFormat.PKCS1),
        private=pk.private_bytes(serialization.Encoding.DER, serialization.PrivateFormat.TraditionalOpenSSL,
                                 serialization.NoEncryption()),
        private_swapped=encode_private(pubs.n, pubs.e, privs.d, privs.q, privs.p, privs.dmq1, privs.dmp1,
                                       rsa.rsa_crt_iqmp(privs.q, privs.p)),
        private_nocrt=encoder.encode(nocrt),
        private_zero_primes=encode_private(pubs.n, pubs.e, privs.d, 0, 0, 0, 0, 0),
    )
    _known_keys[size] = blobs
    return blobs


@pytest.fixture(scope="session", params=TARGET_SIZES)
def keyset(request) -> KeyBlobs:
    return make_blobs(request.param)


@pytest.fixture(scope="session")
def small_keyset() -> KeyBlobs:
    return make_blobs(1024)


@pytest.fixture(params=[True, False], ids=["crt", "nocrt"])
def crt(request) -> bool:
    return request.param


@pytest.fixture
def engine() -> PyEngine:
    return PyEngine()
