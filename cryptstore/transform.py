"""
Cipher Transforms
Reversible byte transforms selected by CipherKind.

Each transform has a buffered side (encrypt/decrypt whole byte strings)
and a streamed side (wrap a destination for writing or a source for
reading). Both sides produce identical bytes on disk.

Not every kind can stream for real. Each transform carries a Streaming tag:
  TRUE_STREAMING: data flows through in chunks, memory stays bounded
  BUFFER_THEN_STREAM: the whole payload is read into memory first (Swap)
"""

import io
import logging
import shutil
from abc import ABC, abstractmethod
from enum import Enum
from typing import BinaryIO

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from cryptstore.config import DEFAULT_CHUNK_SIZE, FILE_SIZE_THRESHOLD, SwapParameters
from cryptstore.errors import DecodeError, UnsupportedCipherKind
from cryptstore.keys import CipherParameters, derive_parameters
from cryptstore.swap import swap_crypt_sized

logger = logging.getLogger(__name__)

BLOCK_SIZE_BITS = 128


class CipherKind(Enum):
    """Transform applied to stored bytes. The value doubles as the file suffix."""
    NONE = "None"
    AES = "Aes"
    SWAP = "Swap"

    @property
    def suffix(self) -> str:
        return "" if self is CipherKind.NONE else self.value


class Streaming(Enum):
    """Memory guarantee of a transform's stream side."""
    TRUE_STREAMING = "true-streaming"
    BUFFER_THEN_STREAM = "buffer-then-stream"


class CipherTransform(ABC):
    """Interface every cipher kind implements."""

    kind: CipherKind
    streaming: Streaming

    @abstractmethod
    def encrypt(self, data: bytes) -> bytes:
        """Encrypt a whole buffer."""

    @abstractmethod
    def decrypt(self, data: bytes) -> bytes:
        """Decrypt a whole buffer."""

    @abstractmethod
    def encrypting_writer(self, destination: BinaryIO) -> BinaryIO:
        """
        Wrap destination so bytes written are stored encrypted.

        Closing the wrapper flushes any pending block and closes destination.
        """

    @abstractmethod
    def decrypting_reader(self, source: BinaryIO) -> BinaryIO:
        """Wrap source so reads return decrypted bytes. Closing it closes source."""

    def write_encrypted(self, source: BinaryIO, destination: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """Copy source into destination through the cipher, closing both ends."""
        try:
            with self.encrypting_writer(destination) as writer:
                shutil.copyfileobj(source, writer, chunk_size)
        finally:
            source.close()
            destination.close()


class PassthroughTransform(CipherTransform):
    """CipherKind.NONE: bytes are stored as given."""

    kind = CipherKind.NONE
    streaming = Streaming.TRUE_STREAMING

    def encrypt(self, data: bytes) -> bytes:
        return bytes(data)

    def decrypt(self, data: bytes) -> bytes:
        return bytes(data)

    def encrypting_writer(self, destination: BinaryIO) -> BinaryIO:
        return destination

    def decrypting_reader(self, source: BinaryIO) -> BinaryIO:
        return source


class _EncryptingWriter(io.RawIOBase):
    """Writable stream that pads and encrypts into a destination as data arrives."""

    def __init__(self, destination: BinaryIO, encryptor, padder):
        super().__init__()
        self._destination = destination
        self._encryptor = encryptor
        self._padder = padder

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        if self.closed:
            raise ValueError("write to closed stream")
        data = bytes(b)
        self._destination.write(self._encryptor.update(self._padder.update(data)))
        return len(data)

    def close(self):
        if self.closed:
            return
        try:
            tail = self._encryptor.update(self._padder.finalize()) + self._encryptor.finalize()
            self._destination.write(tail)
            self._destination.close()
        finally:
            super().close()


class _DecryptingReader(io.RawIOBase):
    """Readable stream that decrypts and unpads a source chunk by chunk."""

    def __init__(self, source: BinaryIO, decryptor, unpadder, chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__()
        self._source = source
        self._decryptor = decryptor
        self._unpadder = unpadder
        self._chunk_size = chunk_size
        self._pending = b""
        self._eof = False

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        while not self._pending and not self._eof:
            chunk = self._source.read(self._chunk_size)
            if chunk:
                self._pending = self._unpadder.update(self._decryptor.update(chunk))
            else:
                self._pending = (self._unpadder.update(self._decryptor.finalize())
                                 + self._unpadder.finalize())
                self._eof = True

        count = min(len(b), len(self._pending))
        b[:count] = self._pending[:count]
        self._pending = self._pending[count:]
        return count

    def close(self):
        if self.closed:
            return
        try:
            self._source.close()
        finally:
            super().close()


class AesTransform(CipherTransform):
    """
    CipherKind.AES: AES-CBC with PKCS7 padding under the derived key and IV.

    Args:
        params: Key and IV. Derived from the default phrases if not given.
        chunk_size: Read size of the decrypting stream.
    """

    kind = CipherKind.AES
    streaming = Streaming.TRUE_STREAMING

    def __init__(self, params: CipherParameters = None, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.params = params or derive_parameters()
        self.chunk_size = chunk_size
        # Fails here, not mid-write, if the derived key has a size AES rejects
        self._cipher = Cipher(algorithms.AES(self.params.key), modes.CBC(self.params.iv))
        logger.debug("AES key size: %d bits, iv length: %d", len(self.params.key) * 8, len(self.params.iv))

    def encrypt(self, data: bytes) -> bytes:
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        encryptor = self._cipher.encryptor()
        padded = padder.update(bytes(data)) + padder.finalize()
        return encryptor.update(padded) + encryptor.finalize()

    def decrypt(self, data: bytes) -> bytes:
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        decryptor = self._cipher.decryptor()
        try:
            padded = decryptor.update(bytes(data)) + decryptor.finalize()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecodeError(f"Stored bytes are not valid AES ciphertext: {e}") from e

    def encrypting_writer(self, destination: BinaryIO) -> BinaryIO:
        return _EncryptingWriter(
            destination, self._cipher.encryptor(), padding.PKCS7(BLOCK_SIZE_BITS).padder()
        )

    def decrypting_reader(self, source: BinaryIO) -> BinaryIO:
        return _DecryptingReader(
            source, self._cipher.decryptor(), padding.PKCS7(BLOCK_SIZE_BITS).unpadder(), self.chunk_size
        )


class _SwapWriter(io.BytesIO):
    """Collects everything written, then permutes and stores it on close."""

    def __init__(self, destination: BinaryIO, transform: "SwapTransform"):
        super().__init__()
        self._destination = destination
        self._transform = transform

    def close(self):
        if self.closed:
            return
        try:
            self._destination.write(self._transform.encrypt(self.getvalue()))
            self._destination.close()
        finally:
            super().close()


class SwapTransform(CipherTransform):
    """
    CipherKind.SWAP: the Swap permutation sized by SwapParameters.

    The stream side materializes the whole payload in memory before
    permuting it. Large payloads under this kind do not get bounded memory.
    """

    kind = CipherKind.SWAP
    streaming = Streaming.BUFFER_THEN_STREAM

    def __init__(self, params: SwapParameters = None, max_threshold: int = FILE_SIZE_THRESHOLD):
        self.params = params or SwapParameters()
        self.max_threshold = max_threshold

    def encrypt(self, data: bytes) -> bytes:
        return swap_crypt_sized(bytes(data), True, self.params, self.max_threshold)

    def decrypt(self, data: bytes) -> bytes:
        return swap_crypt_sized(bytes(data), False, self.params, self.max_threshold)

    def encrypting_writer(self, destination: BinaryIO) -> BinaryIO:
        return _SwapWriter(destination, self)

    def decrypting_reader(self, source: BinaryIO) -> BinaryIO:
        try:
            data = source.read()
        finally:
            source.close()
        return io.BytesIO(self.decrypt(data))

    def write_encrypted(self, source: BinaryIO, destination: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        try:
            destination.write(self.encrypt(source.read()))
        finally:
            source.close()
            destination.close()


def as_cipher_kind(kind) -> CipherKind:
    """Accept a CipherKind or its string value. Anything else raises UnsupportedCipherKind."""
    if isinstance(kind, CipherKind):
        return kind
    try:
        return CipherKind(kind)
    except ValueError:
        raise UnsupportedCipherKind(kind) from None


def get_transform(kind, swap: SwapParameters = None, params: CipherParameters = None,
                  max_threshold: int = FILE_SIZE_THRESHOLD,
                  chunk_size: int = DEFAULT_CHUNK_SIZE) -> CipherTransform:
    """
    Build the transform for a cipher kind.

    Accepts a CipherKind or its string value. Anything else raises
    UnsupportedCipherKind.
    """
    kind = as_cipher_kind(kind)
    if kind is CipherKind.NONE:
        return PassthroughTransform()
    if kind is CipherKind.AES:
        return AesTransform(params, chunk_size)
    if kind is CipherKind.SWAP:
        return SwapTransform(swap, max_threshold)
    raise UnsupportedCipherKind(kind)
