"""The Command Line Interface for the utility.

Exposes the cipher operations on PEM key files. Payloads are given inline or, prefixed with `P:`, as a path to a file
holding them; binary outputs are printed base64 encoded. Signing and verification hash the message with the selected
algorithm and operate on the digest.

Typical usage example:

    akcipher sign -P key.pem --hash sha256 --message "Hi there!"
    OR
    python -m akcipher supports --padding pkcs1 --hash sha384
"""
# Copyright (c) 2025-present Tech. TTGames
# SPDX-License-Identifier: EPL-2.0
import argparse
import base64
import hashlib
import logging
import pathlib
import sys
import typing
import warnings

import akcipher
from akcipher import rsakey

logger = logging.getLogger("akcipher.cli")


class HelpData(typing.NamedTuple):
    description: str
    choices: list[str] | None = None
    default: typing.Any = None


help_dict: dict[str, HelpData] = {
    "supports": HelpData("Report whether a padding/hash configuration is supported."),
    "encrypt": HelpData("Encryption utility."),
    "decrypt": HelpData("Decryption utility."),
    "sign": HelpData("Signing utility."),
    "verify": HelpData("Signature verification utility."),
    "export": HelpData("Export a private key as PKCS#8."),
    "public_key": HelpData("Location of the public key file."),
    "private_key": HelpData("Location of the private key file."),
    "message": HelpData("Message or path to file containing payload. If Path start with `P:`"),
    "padding": HelpData("Padding algorithm.", choices=[p.value for p in akcipher.PaddingAlg], default="pkcs1"),
    "hash": HelpData("Hash algorithm of the signed digest.", choices=[h.value for h in akcipher.HashAlg],
                     default="sha256"),
    "encoding": HelpData("Payload encoding.", choices=["utf-8", "utf-16", "ascii"], default="utf-8"),
    "signature": HelpData("The base64 signature to validate against the payload and public key."),
    "output": HelpData("Destination of the exported key."),
}

pubkey = argparse.ArgumentParser(add_help=False)
pubkey.add_argument("--public_key", "-p", type=pathlib.Path, required=True, help=help_dict["public_key"].description)
privkey = argparse.ArgumentParser(add_help=False)
privkey.add_argument("--private_key",
                     "-P",
                     type=pathlib.Path,
                     required=True,
                     help=help_dict["private_key"].description)
payloads = argparse.ArgumentParser(add_help=False)
payloads.add_argument("--message", required=True, help=help_dict["message"].description)
config = argparse.ArgumentParser(add_help=False)
config.add_argument("--padding",
                    choices=help_dict["padding"].choices,
                    default=help_dict["padding"].default,
                    help=help_dict["padding"].description)
config.add_argument("--hash",
                    choices=help_dict["hash"].choices,
                    default=help_dict["hash"].default,
                    help=help_dict["hash"].description)
encp = argparse.ArgumentParser(add_help=False)
encp.add_argument("--encoding",
                  "-e",
                  choices=help_dict["encoding"].choices,
                  default=help_dict["encoding"].default,
                  help=help_dict["encoding"].description)
corep = argparse.ArgumentParser(prog="akcipher")
corep.add_argument("--version", "-v", action="version", version=f"%(prog)s {akcipher.__version__}")
corep.add_argument("--verbose", action="store_true", help="Enable debug logging")
commands = corep.add_subparsers(dest="subcommand", title="Subcommands", required=True)

commands.add_parser("supports", parents=[config], help=help_dict["supports"].description)
commands.add_parser("encrypt", parents=[pubkey, payloads, config, encp], help=help_dict["encrypt"].description)
commands.add_parser("decrypt", parents=[privkey, payloads, config, encp], help=help_dict["decrypt"].description)
commands.add_parser("sign", parents=[privkey, payloads, config], help=help_dict["sign"].description)
verify = commands.add_parser("verify", parents=[pubkey, payloads, config], help=help_dict["verify"].description)
verify.add_argument("--signature", "-S", required=True, help=help_dict["signature"].description)
export = commands.add_parser("export", parents=[privkey], help=help_dict["export"].description)
export.add_argument("--output", "-o", type=pathlib.Path, required=True, help=help_dict["output"].description)


def check_message(mess: str, enc: str) -> str:
    """Parse message for path-notice."""
    if mess.startswith("P:"):
        mess = mess[2:]
        with open(mess, "r", encoding=enc) as f:
            mess = f.read()
    return mess


def get_options(args: argparse.Namespace) -> akcipher.AkCipherOptions:
    return akcipher.AkCipherOptions(akcipher.AkCipherAlg.RSA, akcipher.PaddingAlg(args.padding),
                                    akcipher.HashAlg(args.hash))


def load_cipher(file: pathlib.Path, opts: akcipher.AkCipherOptions) -> akcipher.AkCipher:
    """Loads a PEM key file into a cipher handle."""
    if opts.padding is akcipher.PaddingAlg.RAW:
        warnings.warn("Raw RSA is unsecure! Please use with care.", RuntimeWarning)
    key_type, der = rsakey.load_pem_key(file)
    return akcipher.new(opts, key_type, der)


def digest_message(message: str, hash_alg: akcipher.HashAlg) -> bytes:
    return hashlib.new(hash_alg.value, message.encode("utf-8")).digest()


def run(args: argparse.Namespace) -> int:
    """Executes the parsed subcommand, returning the exit status."""
    if args.subcommand == "export":
        key_type, der = rsakey.load_pem_key(args.private_key)
        if key_type is not akcipher.KeyType.PRIVATE:
            raise akcipher.KeyParseError("Only private keys can be exported as PKCS#8")
        rsakey.write_pem(args.output, "PKCS8", akcipher.export_p8info(akcipher.AkCipherOptions(), der))
        print(f"Private key exported to {args.output}")
        return 0
    opts = get_options(args)
    if args.subcommand == "supports":
        if akcipher.supports(opts):
            print("Supported")
            return 0
        print("Not supported")
        return 1
    match args.subcommand:
        case "encrypt":
            message = check_message(args.message, args.encoding)
            with load_cipher(args.public_key, opts) as cipher:
                print(base64.b64encode(cipher.encrypt(message.encode(args.encoding))).decode("ascii"))
        case "decrypt":
            message = check_message(args.message, "ascii")
            with load_cipher(args.private_key, opts) as cipher:
                clear = cipher.decrypt(base64.b64decode(message))
            if opts.padding is akcipher.PaddingAlg.RAW:
                clear = clear.lstrip(b"\x00")
            print(clear.decode(args.encoding))
        case "sign":
            message = check_message(args.message, "utf-8")
            with load_cipher(args.private_key, opts) as cipher:
                signature = cipher.sign(digest_message(message, opts.hash_alg))
            print(base64.b64encode(signature).decode("ascii"))
        case "verify":
            message = check_message(args.message, "utf-8")
            with load_cipher(args.public_key, opts) as cipher:
                try:
                    cipher.verify(base64.b64decode(args.signature), digest_message(message, opts.hash_alg))
                except akcipher.VerificationFailed as exc:
                    logger.warning("%s", exc)
                    print("Signature Verification Failed!")
                    return 1
            print("Signature Verified!")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Command line entry point."""
    args = corep.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    try:
        return run(args)
    except (akcipher.AkCipherError, OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
