# shared.py - Shared cryptographic utilities and protocol definitions
# pylint: disable=trailing-whitespace, line-too-long
import os
import struct
from dataclasses import dataclass
from enum import IntEnum, unique
from typing import Final

import config_manager
import configs
assert config_manager  # silence unused import warning


try:
    from cryptography.exceptions import UnsupportedAlgorithm
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import padding, rsa
    from cryptography.hazmat.primitives.ciphers import algorithms, modes, Cipher
    from cryptography.hazmat.primitives.padding import PKCS7
except ImportError as exc_:
    print("Required cryptographic libraries not found.")
    raise ImportError("Please install the required libraries with pip install cryptography") from exc_

# Protocol constants
# These are part of the wire contract; both peers must agree on every one of them.
RSA_KEY_SIZE: Final[int] = 2048
RSA_PUBLIC_EXPONENT: Final[int] = 65537
WRAPPED_KEY_SIZE: Final[int] = RSA_KEY_SIZE // 8  # 256 bytes of RSA ciphertext
SESSION_KEY_SIZE: Final[int] = 32  # AES-256
AES_BLOCK_SIZE: Final[int] = 16
IV_SIZE: Final[int] = 16
FRAME_LENGTH_SIZE: Final[int] = 4
FRAME_HEADER_SIZE: Final[int] = IV_SIZE + FRAME_LENGTH_SIZE
PEM_FOOTER: Final[str] = "-----END PUBLIC KEY-----"


class SecureChannelError(Exception):
    """Base class for every runtime failure of the secure channel."""


class BindError(SecureChannelError):
    pass


class AcceptError(SecureChannelError):
    pass


class ConnectError(SecureChannelError):
    pass


class TransferError(SecureChannelError):
    """A send or receive was short, failed, or hit a closed peer."""


class KeyGenError(SecureChannelError):
    pass


class KeyParseError(SecureChannelError):
    pass


class DecryptError(SecureChannelError):
    """Ciphertext could not be turned back into plaintext (size, padding or encoding)."""


class SessionStateError(RuntimeError):
    """
    An operation was called out of protocol order.

    This is a programming error, not a network condition, so it is never
    caught by the session loops.
    """


@unique
class Role(IntEnum):
    # Connects, generates the session key and sends it wrapped
    INITIATOR = 1
    # Listens, sends its public key first and only ever unwraps
    RESPONDER = 2


@unique
class HandshakeState(IntEnum):
    IDLE = 0
    LISTENING = 1
    CONNECTING = 2
    CONNECTED = 3
    PUBLIC_KEY_EXCHANGED = 4
    SESSION_KEY_ESTABLISHED = 5
    CLOSED = 6


@dataclass(frozen=True)
class MessageFrame:
    """
    One encrypted message unit as it travels over the channel.

    Wire layout: 16 byte IV, 4 byte big-endian ciphertext length, ciphertext.
    """
    iv: bytes
    ciphertext: bytes

    def encode(self) -> bytes:
        return self.iv + pack_frame_length(len(self.ciphertext)) + self.ciphertext


def pack_frame_length(length: int) -> bytes:
    return struct.pack('!I', length)


def unpack_frame_length(data: bytes) -> int:
    """
    Parse and validate the length field of a frame header.

    :raises TransferError: If the announced length cannot be a valid AES-CBC ciphertext
        or exceeds the configured maximum frame size.
    """
    if len(data) != FRAME_LENGTH_SIZE:
        raise TransferError(f"Frame length field must be {FRAME_LENGTH_SIZE} bytes, got {len(data)}")
    length = struct.unpack('!I', data)[0]
    if length == 0 or length % AES_BLOCK_SIZE:
        raise TransferError(f"Frame announces invalid ciphertext length {length}")
    if length > configs.MAX_FRAME_SIZE:
        raise TransferError(f"Frame announces {length} bytes, maximum is {configs.MAX_FRAME_SIZE}")
    return length


class AsymmetricKeyAgent:
    """
    Owns the local RSA key pair and the peer's RSA public key.

    The private key never leaves this object; only the public half is ever
    serialized. The peer key is used solely to wrap the session key.
    """

    def __init__(self) -> None:
        self._private_key: rsa.RSAPrivateKey | None = None
        self._peer_public_key: rsa.RSAPublicKey | None = None

    @property
    def has_key_pair(self) -> bool:
        return self._private_key is not None

    @property
    def has_peer_key(self) -> bool:
        return self._peer_public_key is not None

    @staticmethod
    def _oaep() -> padding.OAEP:
        # Same parameters as OpenSSL's RSA_PKCS1_OAEP_PADDING
        return padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA1()), algorithm=hashes.SHA1(), label=None)

    def generate_key_pair(self) -> None:
        """Generate a fresh RSA-2048 key pair. Failure is fatal, there is no retry."""
        try:
            self._private_key = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT,
                                                         key_size=RSA_KEY_SIZE)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyGenError(f"RSA key generation failed: {e}") from e

    def export_public_key(self) -> str:
        """
        :return: The local public key as PEM (SubjectPublicKeyInfo) text.
        """
        if self._private_key is None:
            raise SessionStateError("No key pair generated, cannot export public key")
        pem = self._private_key.public_key().public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return pem.decode('ascii')

    def import_peer_public_key(self, pem: str | bytes) -> None:
        """
        Load the peer's public key. Any received key is trusted; there is no
        certificate or fingerprint check.

        :raises KeyParseError: If the PEM is malformed, not RSA, or not RSA-2048.
        """
        if self._peer_public_key is not None:
            raise SessionStateError("Peer public key already imported")

        data = pem.encode('utf-8') if isinstance(pem, str) else bytes(pem)
        try:
            key = serialization.load_pem_public_key(data)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyParseError(f"Could not parse peer public key: {e}") from e

        if not isinstance(key, rsa.RSAPublicKey):
            raise KeyParseError("Peer public key is not an RSA key")
        if key.key_size != RSA_KEY_SIZE:
            raise KeyParseError(f"Peer public key is {key.key_size} bits, expected {RSA_KEY_SIZE}")
        self._peer_public_key = key

    def wrap_session_key(self, session_key: bytes) -> bytes:
        """
        Encrypt the session key under the peer's public key.

        :return: Exactly WRAPPED_KEY_SIZE bytes of RSA-OAEP ciphertext.
        """
        if self._peer_public_key is None:
            raise SessionStateError("No peer public key imported, cannot wrap session key")
        if len(session_key) != SESSION_KEY_SIZE:
            raise ValueError(f"Session key must be {SESSION_KEY_SIZE} bytes")
        return self._peer_public_key.encrypt(session_key, self._oaep())

    def unwrap_session_key(self, ciphertext: bytes) -> bytes:
        """
        Decrypt a wrapped session key with the local private key.

        :raises DecryptError: If the ciphertext has the wrong size, bad padding,
            or does not contain a 32 byte key.
        """
        if self._private_key is None:
            raise SessionStateError("No key pair generated, cannot unwrap session key")
        if len(ciphertext) != WRAPPED_KEY_SIZE:
            raise DecryptError(f"Wrapped session key must be {WRAPPED_KEY_SIZE} bytes, got {len(ciphertext)}")
        try:
            session_key = self._private_key.decrypt(ciphertext, self._oaep())
        except ValueError as e:
            raise DecryptError("Wrapped session key could not be decrypted") from e
        if len(session_key) != SESSION_KEY_SIZE:
            raise DecryptError(f"Unwrapped session key is {len(session_key)} bytes, expected {SESSION_KEY_SIZE}")
        return session_key

    def destroy(self) -> None:
        self._private_key = None
        self._peer_public_key = None

    def __del__(self):
        self.destroy()


class SymmetricCipher:
    """
    AES-256-CBC with PKCS7 padding and a fresh random IV per message.

    There is no MAC: a corrupted or forged frame is only noticed when the
    padding (or the UTF-8 text inside it) fails to decode.
    """

    def __init__(self, session_key: bytes | None = None) -> None:
        self._session_key: bytes = bytes()
        if session_key is not None:
            self.set_session_key(session_key)

    @staticmethod
    def generate_session_key() -> bytes:
        return os.urandom(SESSION_KEY_SIZE)

    @property
    def ready(self) -> bool:
        return bool(self._session_key)

    @property
    def session_key(self) -> bytes:
        return self._session_key

    def set_session_key(self, session_key: bytes) -> None:
        if len(session_key) != SESSION_KEY_SIZE:
            raise ValueError(f"Session key must be {SESSION_KEY_SIZE} bytes, got {len(session_key)}")
        self._session_key = bytes(session_key)

    def encrypt(self, plaintext: bytes) -> tuple[bytes, bytes]:
        """
        Encrypt arbitrary-length plaintext.

        :return: (ciphertext, iv)
        """
        if not self._session_key:
            raise SessionStateError("Session key not set, cannot encrypt")

        iv = os.urandom(IV_SIZE)
        padder = PKCS7(AES_BLOCK_SIZE * 8).padder()
        padded = padder.update(plaintext) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._session_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return ciphertext, iv

    def decrypt(self, ciphertext: bytes, iv: bytes) -> bytes:
        if not self._session_key:
            raise SessionStateError("Session key not set, cannot decrypt")
        if len(iv) != IV_SIZE:
            raise DecryptError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")
        if not ciphertext or len(ciphertext) % AES_BLOCK_SIZE:
            raise DecryptError(f"Ciphertext length {len(ciphertext)} is not a positive multiple of {AES_BLOCK_SIZE}")

        decryptor = Cipher(algorithms.AES(self._session_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = PKCS7(AES_BLOCK_SIZE * 8).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecryptError("Invalid padding, wrong key or corrupted frame") from e

    def encrypt_frame(self, text: str) -> MessageFrame:
        ciphertext, iv = self.encrypt(text.encode('utf-8'))
        return MessageFrame(iv=iv, ciphertext=ciphertext)

    def decrypt_frame(self, frame: MessageFrame) -> str:
        plaintext = self.decrypt(frame.ciphertext, frame.iv)
        try:
            return plaintext.decode('utf-8')
        except UnicodeDecodeError as e:
            raise DecryptError("Decrypted frame is not valid UTF-8, wrong key or corrupted frame") from e

    def __del__(self):
        # This is not particularly secure, but it's better than nothing
        self._session_key = b"\x00" * SESSION_KEY_SIZE
        del self._session_key
