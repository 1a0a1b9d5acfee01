"""
Configuration
Tunables for the storage core, passed explicitly to every call.

There is no ambient mutable state: a gateway owns one StorageConfig and
replaces it wholesale when the Swap parameters change.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

# Payloads larger than this go through streams instead of memory buffers
FILE_SIZE_THRESHOLD = 10_000

# Default Swap segment size, kept small to bound the cost of the permutation
DEFAULT_SWAP_THRESHOLD = FILE_SIZE_THRESHOLD // 100
DEFAULT_SWAP_ITERATIONS = 2
DEFAULT_SWAP_LOOP_CAP = 2

DEFAULT_CHUNK_SIZE = 64 * 1024

# Secret phrases the block cipher key and IV are derived from
KEY_PHRASE = "<<<= $-$ Alter_Games_Proto_Planet $-$ =>>>"
IV_PHRASE = "(-: <Secret> :-)"

ENV_PREFIX = "CRYPTSTORE_"


def default_root() -> Path:
    """Writable storage root supplied by the hosting environment."""
    root = os.environ.get(f"{ENV_PREFIX}ROOT")
    if root:
        return Path(root)
    return Path.home() / ".cryptstore"


@dataclass(frozen=True)
class SwapParameters:
    """Tunables of the Swap permutation cipher."""
    threshold: int = DEFAULT_SWAP_THRESHOLD      # segment size in bytes
    iterations: int = DEFAULT_SWAP_ITERATIONS    # outer repetitions
    inner_loop_cap: int = DEFAULT_SWAP_LOOP_CAP  # max window swaps per repetition


@dataclass
class StorageConfig:
    """
    Everything a StorageGateway needs to resolve paths and run ciphers.

    Args:
        root: Directory all relative names are resolved against.
        size_threshold: Byte size above which payloads are streamed.
        swap: Swap cipher parameters.
        key_phrase: Secret phrase the block cipher key is derived from.
        iv_phrase: Secret phrase the block cipher IV is derived from.
        chunk_size: Read size used when streaming.
    """
    root: Path = field(default_factory=default_root)
    size_threshold: int = FILE_SIZE_THRESHOLD
    swap: SwapParameters = field(default_factory=SwapParameters)
    key_phrase: str = KEY_PHRASE
    iv_phrase: str = IV_PHRASE
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self):
        self.root = Path(self.root)
        if self.size_threshold <= 0:
            raise ValueError(f"size_threshold must be positive, got {self.size_threshold}")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

        from cryptstore.keys import AES_KEY_SIZES, derive_key
        key_len = len(derive_key(self.key_phrase))
        if key_len not in AES_KEY_SIZES:
            raise ValueError(
                f"key_phrase derives a {key_len} byte key, AES needs one of {AES_KEY_SIZES} "
                f"(use a phrase shorter than 64 bytes)"
            )

    def with_swap(self, threshold: int = None, iterations: int = None,
                  inner_loop_cap: int = None) -> "StorageConfig":
        """Return a copy with the given Swap parameters replaced."""
        changes = {}
        if threshold is not None:
            changes["threshold"] = threshold
        if iterations is not None:
            changes["iterations"] = iterations
        if inner_loop_cap is not None:
            changes["inner_loop_cap"] = inner_loop_cap
        return replace(self, swap=replace(self.swap, **changes))

    @classmethod
    def from_env(cls, environ: dict = None) -> "StorageConfig":
        """Build a config from CRYPTSTORE_* environment variables."""
        env = os.environ if environ is None else environ

        def _int(name: str, default: int) -> int:
            raw = env.get(ENV_PREFIX + name)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None

        root = env.get(f"{ENV_PREFIX}ROOT")
        swap = SwapParameters(
            threshold=_int("SWAP_THRESHOLD", DEFAULT_SWAP_THRESHOLD),
            iterations=_int("SWAP_ITERATIONS", DEFAULT_SWAP_ITERATIONS),
            inner_loop_cap=_int("SWAP_LOOP_CAP", DEFAULT_SWAP_LOOP_CAP),
        )
        return cls(
            root=Path(root) if root else Path.home() / ".cryptstore",
            size_threshold=_int("SIZE_THRESHOLD", FILE_SIZE_THRESHOLD),
            swap=swap,
        )
