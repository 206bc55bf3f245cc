"""Exception hierarchy shared by every asymmetric cipher backend.

Each error derives from `AkCipherError` and from the builtin exception the condition would naturally raise, so callers
may catch either the package-specific class or the generic one.
"""
# Copyright (c) 2025-present Tech. TTGames
# SPDX-License-Identifier: EPL-2.0


class AkCipherError(Exception):
    """Base class for all errors raised by akcipher."""


class KeyParseError(AkCipherError, ValueError):
    """The key blob, or one of the parameters extracted from it, is malformed."""


class KeyBuildError(AkCipherError, ValueError):
    """The engine rejected the assembled key record."""


class UnsupportedAlgorithm(AkCipherError, ValueError):
    """No backend is registered for the requested algorithm."""


class UnsupportedPadding(AkCipherError, ValueError):
    """The padding, hash or operation combination is not offered."""


class InputTooLarge(AkCipherError, ValueError):
    """An input exceeds the size ceiling derived from the key."""


class OutputTooSmall(AkCipherError, ValueError):
    """The result does not fit the supplied output capacity."""


class EngineError(AkCipherError, RuntimeError):
    """The engine primitive failed. The message carries the engine's own diagnostic."""


class VerificationFailed(AkCipherError):
    """The signature is well-formed input but does not match the digest under this key."""
