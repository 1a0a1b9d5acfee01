"""
Cryptstore
Encrypted file storage with switchable ciphers.

Cryptstore saves bytes, streams or typed values to a storage root under
one of three cipher kinds:
1. None: stored as given
2. Aes: AES-CBC with PKCS7 padding under keys derived from secret phrases
3. Swap: a reversible window-swapping permutation (obfuscation, not crypto)

Encrypted files carry the cipher name as an extra suffix ("save.json" under
Aes is stored as "save.jsonAes").

Usage:
    from cryptstore import StorageGateway, StorageConfig, CipherKind
    store = StorageGateway(StorageConfig(root="./saves"))
    store.save({"level": 3}, "progress.json", CipherKind.AES)
    store.load("progress.json", CipherKind.AES, dict)
"""

import logging

from cryptstore.config import StorageConfig, SwapParameters, FILE_SIZE_THRESHOLD
from cryptstore.errors import (
    StorageError,
    PathResolutionError,
    CodecError,
    EncodeError,
    DecodeError,
    UnsupportedCipherKind,
)
from cryptstore.keys import CipherParameters, derive_parameters, normalize_length
from cryptstore.swap import swap_crypt, swap_windows
from cryptstore.transform import CipherKind, CipherTransform, Streaming, get_transform
from cryptstore.gateway import (
    StorageGateway,
    default_gateway,
    save,
    load,
    load_stream,
    delete,
    resolve_path,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "StorageGateway",
    "StorageConfig",
    "SwapParameters",
    "FILE_SIZE_THRESHOLD",
    "CipherKind",
    "CipherTransform",
    "Streaming",
    "CipherParameters",
    "get_transform",
    "derive_parameters",
    "normalize_length",
    "swap_crypt",
    "swap_windows",
    "default_gateway",
    "save",
    "load",
    "load_stream",
    "delete",
    "resolve_path",
    "StorageError",
    "PathResolutionError",
    "CodecError",
    "EncodeError",
    "DecodeError",
    "UnsupportedCipherKind",
]
