# pylint: disable=missing-module-docstring,redefined-outer-name
# Copyright (c) 2025-present Tech. TTGames
# SPDX-License-Identifier: EPL-2.0
import base64

from cryptography.hazmat.primitives import serialization
import pytest

import akcipher
from akcipher import rsakey
from akcipher.__main__ import main

standard_payload = "The quick brown fox jumps over the lazy dog1234567890!@#$%^&*()-_=+[{}];:\\|<>,./?~`'\""


@pytest.fixture
def keyfiles(small_keyset, tmp_path) -> tuple[str, str]:
    pub = tmp_path / "public.pem"
    priv = tmp_path / "private.pem"
    rsakey.write_pem(pub, "PKCS1_PUB", small_keyset.public)
    rsakey.write_pem(priv, "PKCS1_PRIV", small_keyset.private)
    return str(pub), str(priv)


def run_ok(capsys, argv: list[str]) -> str:
    assert main(argv) == 0
    return capsys.readouterr().out.strip()


@pytest.mark.parametrize("argv, out, status", [
    (["supports"], "Supported", 0),
    (["supports", "--padding", "raw", "--hash", "sha384"], "Supported", 0),
    (["supports", "--hash", "sha512"], "Supported", 0),
    (["supports", "--hash", "sha384"], "Not supported", 1),
    (["--verbose", "supports", "--hash", "ripemd160"], "Not supported", 1),
])
def test_supports(capsys, argv, out, status):
    assert main(argv) == status
    assert capsys.readouterr().out.strip() == out


def test_sign_verify(capsys, keyfiles):
    pub, priv = keyfiles
    signature = run_ok(capsys, ["sign", "-P", priv, "--message", standard_payload])
    base64.b64decode(signature, validate=True)
    assert run_ok(capsys, ["verify", "-p", pub, "--message", standard_payload, "-S",
                           signature]) == "Signature Verified!"
    assert main(["verify", "-p", pub, "--message", "NONSTANDARDPAYLOAD", "-S", signature]) == 1
    assert capsys.readouterr().out.strip() == "Signature Verification Failed!"


def test_sign_verify_hash(capsys, keyfiles):
    pub, priv = keyfiles
    signature = run_ok(capsys, ["sign", "-P", priv, "--hash", "sha1", "--message", "Hi there!"])
    assert main(["verify", "-p", pub, "--message", "Hi there!", "-S", signature]) == 1
    capsys.readouterr()
    assert run_ok(capsys, ["verify", "-p", pub, "--hash", "sha1", "--message", "Hi there!", "-S",
                           signature]) == "Signature Verified!"


def test_encrypt_decrypt(capsys, keyfiles):
    pub, priv = keyfiles
    ciphtext = run_ok(capsys, ["encrypt", "-p", pub, "--message", standard_payload])
    assert run_ok(capsys, ["decrypt", "-P", priv, "--message", ciphtext]) == standard_payload


def test_encrypt_decrypt_raw(capsys, keyfiles):
    pub, priv = keyfiles
    with pytest.warns(RuntimeWarning, match="Raw RSA is unsecure!"):
        ciphtext = run_ok(capsys, ["encrypt", "-p", pub, "--padding", "raw", "--message", "Hi there!"])
    with pytest.warns(RuntimeWarning, match="Raw RSA is unsecure!"):
        cleartext = run_ok(capsys, ["decrypt", "-P", priv, "--padding", "raw", "--message", ciphtext])
    assert cleartext == "Hi there!"


def test_message_from_file(capsys, keyfiles, tmp_path):
    pub, priv = keyfiles
    source = tmp_path / "message.txt"
    source.write_text(standard_payload, encoding="utf-8")
    ciphtext = run_ok(capsys, ["encrypt", "-p", pub, "--message", f"P:{source}"])
    stored = tmp_path / "ciphertext.txt"
    stored.write_text(ciphtext, encoding="ascii")
    assert run_ok(capsys, ["decrypt", "-P", priv, "--message", f"P:{stored}"]) == standard_payload


def test_export(capsys, keyfiles, small_keyset, tmp_path):
    pub, priv = keyfiles
    target = tmp_path / "pkcs8.pem"
    assert run_ok(capsys, ["export", "-P", priv, "-o", str(target)]) == f"Private key exported to {target}"
    loaded = serialization.load_pem_private_key(target.read_bytes(), None)
    assert loaded.private_numbers() == small_keyset.ref.private_numbers()
    ciphtext = run_ok(capsys, ["encrypt", "-p", pub, "--message", "Hi there!"])
    assert run_ok(capsys, ["decrypt", "-P", str(target), "--message", ciphtext]) == "Hi there!"


def test_export_rejects_public(capsys, keyfiles, tmp_path):
    pub, _ = keyfiles
    assert main(["export", "-P", pub, "-o", str(tmp_path / "out.pem")]) == 1
    assert "Only private keys can be exported" in capsys.readouterr().err
    assert not (tmp_path / "out.pem").exists()


def test_errors_reported(capsys, keyfiles, tmp_path):
    pub, priv = keyfiles
    assert main(["encrypt", "-p", str(tmp_path / "missing.pem"), "--message", "Hi there!"]) == 1
    assert capsys.readouterr().err.startswith("Error: ")
    assert main(["encrypt", "-p", pub, "--message", "A" * 200]) == 1
    assert "Plaintext length is greater than key size" in capsys.readouterr().err
    assert main(["sign", "-P", priv, "--hash", "sha384", "--message", "Hi there!"]) == 1
    assert "Unsupported RSA configuration" in capsys.readouterr().err
    assert main(["decrypt", "-P", pub, "--message", "AAAA"]) == 1
    assert "Error: " in capsys.readouterr().err


def test_arguments_validated(capsys):
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 2
    with pytest.raises(SystemExit) as exc:
        main(["supports", "--padding", "oaep"])
    assert exc.value.code == 2
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert akcipher.__version__ in capsys.readouterr().out
