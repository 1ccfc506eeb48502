"""
Reversible value encryption for '@ENC' variables.

The interpreter only needs a `ValueCipher`: text in, ciphertext text out,
and back. `AesCbcCipher` is the default: AES in CBC mode with PKCS7
padding, base64-encoded. Its built-in key and IV are fixed, publicly known
values, so ciphertext produced with them hides nothing from anyone who has
this source. Supply your own key and IV through configuration for anything
that matters.
"""

import base64
import binascii
import logging
from typing import Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import error_cipher


logger = logging.getLogger(__name__)

DEFAULT_KEY = b"0123456789abcdef"
DEFAULT_IV = b"abcdef9876543210"


class ValueCipher:
    """Interface for the transform applied to encrypted variables."""

    def encrypt(self, plaintext: str) -> str:
        raise NotImplementedError

    def decrypt(self, ciphertext: str) -> str:
        raise NotImplementedError


def _as_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


class AesCbcCipher(ValueCipher):
    """AES-CBC with PKCS7 padding; ciphertext is base64 text."""

    def __init__(self, key: Union[str, bytes] = DEFAULT_KEY,
                 iv: Union[str, bytes] = DEFAULT_IV):
        self.key = _as_bytes(key)
        self.iv = _as_bytes(iv)
        if len(self.key) not in (16, 24, 32):
            raise ValueError(f"AES key must be 16, 24 or 32 bytes, got {len(self.key)}")
        if len(self.iv) != 16:
            raise ValueError(f"AES IV must be 16 bytes, got {len(self.iv)}")
        if self.key == DEFAULT_KEY:
            logger.warning("Encrypted variables use the built-in static key; "
                           "set encryption.key in the config to change it")

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self.key), modes.CBC(self.iv))

    def encrypt(self, plaintext: str) -> str:
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        data = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = self._cipher().encryptor()
        raw = encryptor.update(data) + encryptor.finalize()
        return base64.b64encode(raw).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            raw = base64.b64decode(ciphertext.encode("ascii"), validate=True)
            decryptor = self._cipher().decryptor()
            data = decryptor.update(raw) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(data) + unpadder.finalize()
            return plain.decode("utf-8")
        except (binascii.Error, ValueError, UnicodeError) as exc:
            raise error_cipher("decryption", str(exc) or exc.__class__.__name__) from exc
