# stashbox/app/security/cipher.py
"""
Field-level encryption for sensitive values at rest.

Wire format: ``<iv hex>:<ciphertext hex>``
- AES-256-CBC with PKCS7 padding
- 16-byte IV, freshly random for every call
- Key stretched once per process with scrypt

The cipher knows nothing about which field it protects. Callers encrypt
every sensitive field before persisting it and decrypt before returning
data across the trust boundary.
"""
import os
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from stashbox.app.core.errors import DecryptionError

IV_LENGTH = 16
KEY_LENGTH = 32
BLOCK_SIZE_BITS = algorithms.AES.block_size


def derive_key(secret: str, salt: str, n: int, r: int, p: int) -> bytes:
    """
    Stretch the configured secret into a 256-bit AES key.

    scrypt is deliberately slow, so this runs once when the cipher is built.
    """
    kdf = Scrypt(salt=salt.encode("utf-8"), length=KEY_LENGTH, n=n, r=r, p=p)
    return kdf.derive(secret.encode("utf-8"))


class FieldCipher:
    """
    Encrypts and decrypts individual text fields.

    Built once at startup (see ``stashbox.app.main.lifespan``) and injected
    into request handlers.
    """

    def __init__(self, secret: str, salt: str = "salt", n: int = 2 ** 14, r: int = 8, p: int = 1):
        self._key = derive_key(secret, salt, n, r, p)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, value: str) -> str:
        """
        Decrypt a value produced by :meth:`encrypt`.

        Raises:
            DecryptionError: malformed format, wrong key or tampered data
        """
        if not isinstance(value, str) or ":" not in value:
            raise DecryptionError("Value is not in iv:ciphertext format")

        iv_hex, cipher_hex = value.split(":", 1)
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(cipher_hex)
        except ValueError as exc:
            raise DecryptionError("Value is not hex encoded") from exc

        if len(iv) != IV_LENGTH:
            raise DecryptionError("Invalid IV length")
        if not ciphertext or len(ciphertext) % (BLOCK_SIZE_BITS // 8):
            raise DecryptionError("Invalid ciphertext length")

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError as exc:
            raise DecryptionError("Ciphertext failed to decrypt") from exc

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        return None if plaintext is None else self.encrypt(plaintext)

    def decrypt_optional(self, value: Optional[str]) -> Optional[str]:
        return None if value is None else self.decrypt(value)
