"""Algorithm, key and padding configuration of an asymmetric cipher.

Enum values double as the tokens the engine expects, e.g. `PaddingAlg.PKCS1.value` is the `pkcs1` flag and
`HashAlg.SHA256.value` the `sha256` hash name.
"""
# Copyright (c) 2025-present Tech. TTGames
# SPDX-License-Identifier: EPL-2.0
import enum
import typing


class AkCipherAlg(enum.Enum):
    RSA = "rsa"


class KeyType(enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class PaddingAlg(enum.Enum):
    RAW = "raw"
    PKCS1 = "pkcs1"


class HashAlg(enum.Enum):
    MD5 = "md5"
    SHA1 = "sha1"
    SHA224 = "sha224"
    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"
    RIPEMD160 = "ripemd160"


class AkCipherOptions(typing.NamedTuple):
    """Configuration of a cipher handle, fixed for its lifetime.

    Attributes:
        alg: The asymmetric algorithm.
        padding: The padding scheme applied by encrypt/decrypt and required by sign/verify.
        hash_alg: The hash the digests passed to sign/verify were produced with.
    """
    alg: AkCipherAlg = AkCipherAlg.RSA
    padding: PaddingAlg = PaddingAlg.RAW
    hash_alg: HashAlg = HashAlg.SHA256
