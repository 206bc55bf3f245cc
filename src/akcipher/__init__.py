"""Asymmetric cipher backends over a pluggable public-key engine.

Turns an RSA key blob and a padding/hash configuration into a cipher handle offering encrypt, decrypt, sign and verify.
The arithmetic is delegated to an engine (by default `PyEngine`, on Python integers); the package owns key
construction, size policy and the shaping of engine results into output bytes.

Typical usage example:

    opts = AkCipherOptions(AkCipherAlg.RSA, PaddingAlg.PKCS1, HashAlg.SHA256)
    with new(opts, KeyType.PRIVATE, der_key) as cipher:
        signature = cipher.sign(hashlib.sha256(b"Hi there!").digest())
"""
# Copyright (c) 2025-present Tech. TTGames
# SPDX-License-Identifier: EPL-2.0
from akcipher.cipher import AkCipher
from akcipher.cipher import decrypt
from akcipher.cipher import encrypt
from akcipher.cipher import export_p8info
from akcipher.cipher import free
from akcipher.cipher import new
from akcipher.cipher import sign
from akcipher.cipher import supports
from akcipher.cipher import verify
from akcipher.engine import Engine
from akcipher.engine import PyEngine
from akcipher.engine import set_default_engine
from akcipher.errors import AkCipherError
from akcipher.errors import EngineError
from akcipher.errors import InputTooLarge
from akcipher.errors import KeyBuildError
from akcipher.errors import KeyParseError
from akcipher.errors import OutputTooSmall
from akcipher.errors import UnsupportedAlgorithm
from akcipher.errors import UnsupportedPadding
from akcipher.errors import VerificationFailed
from akcipher.options import AkCipherAlg
from akcipher.options import AkCipherOptions
from akcipher.options import HashAlg
from akcipher.options import KeyType
from akcipher.options import PaddingAlg
from akcipher.rsa import RSACipher

__version__ = "0.1.0"
__all__ = [
    "AkCipher",
    "AkCipherAlg",
    "AkCipherError",
    "AkCipherOptions",
    "Engine",
    "EngineError",
    "HashAlg",
    "InputTooLarge",
    "KeyBuildError",
    "KeyParseError",
    "KeyType",
    "OutputTooSmall",
    "PaddingAlg",
    "PyEngine",
    "RSACipher",
    "UnsupportedAlgorithm",
    "UnsupportedPadding",
    "VerificationFailed",
    "decrypt",
    "encrypt",
    "export_p8info",
    "free",
    "new",
    "set_default_engine",
    "sign",
    "supports",
    "verify",
]
