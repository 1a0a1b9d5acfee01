"""
Storage Gateway
Saves, loads and deletes data under a storage root, optionally encrypted.

Flow for saving:
1. Resolve the path (root + relative name + cipher suffix)
2. Encode the payload (skipped for bytes and streams)
3. Encrypt with the cipher transform
4. Write to disk, creating parent directories

Flow for loading is the mirror: read, decrypt, decode.

Small payloads go through memory buffers. Streams go through the
transform's stream side; callers with a file on disk can let save_file()
pick the path by size. I/O and codec failures never escape the gateway:
they are logged with the path and cipher kind and turned into False or
the caller's default.
"""

import io
import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO

from cryptstore import codec
from cryptstore.config import StorageConfig
from cryptstore.errors import CodecError, PathResolutionError
from cryptstore.keys import derive_parameters
from cryptstore.transform import CipherKind, CipherTransform, as_cipher_kind, get_transform

logger = logging.getLogger(__name__)


class StorageGateway:
    """
    Encrypted file storage under a single root directory.

    Args:
        config: Root, size threshold and cipher tunables. Read from the
            environment if not given.
    """

    def __init__(self, config: StorageConfig = None):
        self.config = config or StorageConfig.from_env()

    @property
    def root(self) -> Path:
        return self.config.root

    def configure_swap(self, threshold: int = None, iterations: int = None, inner_loop_cap: int = None):
        """Replace the Swap parameters used by every following call."""
        self.config = self.config.with_swap(threshold, iterations, inner_loop_cap)
        logger.info("Swap parameters set to %s", self.config.swap)

    def transform_for(self, cipher=CipherKind.NONE) -> CipherTransform:
        """The transform this gateway uses for a cipher kind."""
        params = None
        if as_cipher_kind(cipher) is CipherKind.AES:
            params = derive_parameters(self.config.key_phrase, self.config.iv_phrase)
        return get_transform(
            cipher,
            swap=self.config.swap,
            params=params,
            max_threshold=self.config.size_threshold,
            chunk_size=self.config.chunk_size,
        )

    def is_large(self, size: int) -> bool:
        """Whether a payload of this many bytes should be streamed."""
        return size > self.config.size_threshold

    def resolve_path(self, name: str = "", cipher=CipherKind.NONE, append_extension: bool = True) -> Path:
        """
        Absolute path of a relative name under the storage root.

        With append_extension, the cipher's name is appended to the file
        name ("model.glb" under Swap becomes "model.glbSwap").
        """
        path = (self.root / name if name else self.root).absolute()
        suffix = as_cipher_kind(cipher).suffix
        if append_extension and suffix:
            path = path.with_name(path.name + suffix)
        return path

    def _existing_path(self, name: str, cipher, append_extension: bool) -> Path:
        path = self.resolve_path(name, cipher, append_extension)
        if not path.parent.is_dir():
            raise PathResolutionError(f"Directory does not exist: {path.parent}")
        if not path.is_file():
            raise PathResolutionError(f"File does not exist: {path}")
        return path

    # -- save --

    def _temp_sibling(self, path: Path):
        """Open a temporary file next to path; it replaces path only once fully written."""
        path.parent.mkdir(parents=True, exist_ok=True)
        return tempfile.NamedTemporaryFile(
            mode="wb", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        )

    def save(self, payload, name: str, cipher=CipherKind.NONE, append_extension: bool = True) -> bool:
        """
        Save a payload, overwriting any existing file.

        Args:
            payload: Bytes are stored as is, readable streams are streamed,
                anything else is stored as JSON.
            name: Path relative to the storage root, with its extension.
            cipher: CipherKind (or its name) to encrypt with.
            append_extension: Append the cipher name to the file name.

        Returns:
            True if the data was written. On failure the previous file,
            if any, is left as it was.
        """
        if codec.is_stream(payload):
            logger.debug("Stream payload for %s, saving through streams", name)
            return self.save_stream(payload, name, cipher, append_extension)

        transform = self.transform_for(cipher)
        path = self.resolve_path(name, cipher, append_extension)

        temp_path = None
        try:
            data = transform.encrypt(codec.encode(payload))
            with self._temp_sibling(path) as temp:
                temp_path = Path(temp.name)
                temp.write(data)
            os.replace(temp_path, path)
        except (OSError, CodecError) as e:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            logger.error("Failed to save data to %s (cipher=%s): %s", path, transform.kind.value, e)
            logger.debug("Save failure details", exc_info=True)
            return False

        logger.info("Saved %d bytes to %s", len(data), path)
        return True

    def save_stream(self, stream: BinaryIO, name: str, cipher=CipherKind.NONE,
                    append_extension: bool = True) -> bool:
        """
        Save everything readable from stream, encrypting as it is copied.

        The data goes to a temporary file in the same directory, which
        replaces the destination only after the copy finished. A failing
        source therefore never leaves a truncated file behind. Both the
        source stream and the temporary file are closed when this returns.

        There is no lock against a second writer of the same path: Python's
        open() has no share mode, so concurrent saves to one name end with
        whichever replaced the file last.
        """
        transform = self.transform_for(cipher)
        path = self.resolve_path(name, cipher, append_extension)

        try:
            destination = self._temp_sibling(path)
        except OSError as e:
            stream.close()
            logger.error("Failed to open %s for writing (cipher=%s): %s", path, transform.kind.value, e)
            return False

        temp_path = Path(destination.name)
        try:
            transform.write_encrypted(stream, destination, self.config.chunk_size)
            os.replace(temp_path, path)
        # closed streams raise ValueError, text streams TypeError
        except (OSError, ValueError, TypeError) as e:
            destination.close()
            temp_path.unlink(missing_ok=True)
            logger.error("Failed to save stream to %s (cipher=%s): %s", path, transform.kind.value, e)
            logger.debug("Save failure details", exc_info=True)
            return False

        logger.info("Saved stream to %s (%s)", path, transform.streaming.value)
        return True

    def save_file(self, source: str | Path, name: str = None, cipher=CipherKind.NONE,
                  append_extension: bool = True) -> bool:
        """
        Save an existing file, streaming it if it is larger than the size threshold.

        Args:
            source: File to read.
            name: Relative name to store under. Defaults to the source file name.
        """
        source = Path(source)
        name = name or source.name
        try:
            size = source.stat().st_size
            if self.is_large(size):
                logger.info("%s is %d bytes, saving through streams", source, size)
                return self.save_stream(open(source, "rb"), name, cipher, append_extension)
            logger.info("%s is %d bytes, saving from memory", source, size)
            data = source.read_bytes()
        except OSError as e:
            logger.error("Failed to read source file %s: %s", source, e)
            return False
        return self.save(data, name, cipher, append_extension)

    # -- load --

    def load(self, name: str, cipher=CipherKind.NONE, type_=bytes, append_extension: bool = True,
             default=None):
        """
        Load and decrypt a stored item.

        Args:
            name: Path relative to the storage root (without the cipher suffix).
            cipher: CipherKind the item was saved with.
            type_: bytes for raw data, or the type to rebuild from JSON.
                A stream type delegates to load_stream().
            append_extension: The cipher suffix was appended on save.
            default: Returned when the item is missing or unreadable.
        """
        if isinstance(type_, type) and issubclass(type_, io.IOBase):
            logger.warning("Use load_stream() to get a stream instead of load(type_=%s)", type_.__name__)
            stream = self.load_stream(name, cipher, append_extension)
            return default if stream is None else stream

        transform = self.transform_for(cipher)
        try:
            path = self._existing_path(name, cipher, append_extension)
        except PathResolutionError as e:
            logger.warning("%s", e)
            return default

        try:
            data = transform.decrypt(path.read_bytes())
        except (OSError, CodecError) as e:
            logger.error("Failed to load data from %s (cipher=%s): %s", path, transform.kind.value, e)
            logger.debug("Load failure details", exc_info=True)
            return default

        try:
            value = codec.decode(data, type_)
        except CodecError as e:
            logger.error("Failed to convert data from %s to %s: %s", path, getattr(type_, "__name__", type_), e)
            return default

        logger.info("Loaded %d bytes from %s", len(data), path)
        return value

    def load_stream(self, name: str, cipher=CipherKind.NONE, append_extension: bool = True) -> BinaryIO | None:
        """
        Open a stored item as a decrypting stream.

        None and Aes items are decrypted as they are read. Swap items are
        read and decrypted in full first. Returns None if the item is
        missing or cannot be opened. The caller closes the stream.
        """
        transform = self.transform_for(cipher)
        try:
            path = self._existing_path(name, cipher, append_extension)
        except PathResolutionError as e:
            logger.warning("%s", e)
            return None

        try:
            source = open(path, "rb")
        except OSError as e:
            logger.error("Failed to open %s (cipher=%s): %s", path, transform.kind.value, e)
            return None

        try:
            stream = transform.decrypting_reader(source)
        except (OSError, CodecError) as e:
            source.close()
            logger.error("Failed to load data from %s (cipher=%s): %s", path, transform.kind.value, e)
            logger.debug("Load failure details", exc_info=True)
            return None

        logger.info("Opened %s for reading (%s)", path, transform.streaming.value)
        return stream

    # -- housekeeping --

    def exists(self, name: str, cipher=CipherKind.NONE, append_extension: bool = True) -> bool:
        return self.resolve_path(name, cipher, append_extension).is_file()

    def delete(self, name: str, cipher=CipherKind.NONE, append_extension: bool = True) -> bool:
        """
        Remove a stored item. Missing items are not an error.

        Returns:
            True if a file was removed.
        """
        path = self.resolve_path(name, cipher, append_extension)
        if not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error("Failed to delete %s: %s", path, e)
            return False
        logger.info("Deleted %s", path)
        return True


_default_gateway = None


def default_gateway() -> StorageGateway:
    """Process-wide gateway configured from the environment."""
    global _default_gateway
    if _default_gateway is None:
        _default_gateway = StorageGateway(StorageConfig.from_env())
    return _default_gateway


def save(payload, name: str, cipher=CipherKind.NONE, append_extension: bool = True) -> bool:
    return default_gateway().save(payload, name, cipher, append_extension)


def load(name: str, cipher=CipherKind.NONE, type_=bytes, append_extension: bool = True, default=None):
    return default_gateway().load(name, cipher, type_, append_extension, default)


def load_stream(name: str, cipher=CipherKind.NONE, append_extension: bool = True):
    return default_gateway().load_stream(name, cipher, append_extension)


def delete(name: str, cipher=CipherKind.NONE, append_extension: bool = True) -> bool:
    return default_gateway().delete(name, cipher, append_extension)


def resolve_path(name: str = "", cipher=CipherKind.NONE, append_extension: bool = True) -> Path:
    return default_gateway().resolve_path(name, cipher, append_extension)
