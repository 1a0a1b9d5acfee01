"""
Swap Cipher
A reversible permutation that swaps leading and trailing windows of an array.

One step takes a segment count and walks inward from both ends of the
array: the leading window trades places with the trailing window, then
the active bounds shrink and the window is recomputed. The swapped regions
only depend on the array length, so a step applied twice is the identity.

Encryption runs the steps for i = 0 .. iterations-1 with segment count
parts - i. Decryption runs the same steps in reverse order, which undoes
them exactly.

This is an obfuscation layer, not a cryptographic primitive. Its output is
part of the on-disk format and must not change.
"""

import logging

from cryptstore.config import FILE_SIZE_THRESHOLD, SwapParameters

logger = logging.getLogger(__name__)


def _copy(data):
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytearray(data)
    return list(data)


def _restore_type(original, result):
    if isinstance(original, (bytes, memoryview)):
        return bytes(result)
    return result


def swap_windows(data, segment_count: int, inner_loop_cap: int):
    """
    Apply one self-inverse window-swapping step and return a new array.

    Works on any sliceable sequence (bytes come back as bytes, lists as
    lists). A segment count below 1 leaves the data untouched. At least one
    swap is attempted whenever the first window is non-empty, even if
    inner_loop_cap is below 1.
    """
    out = _copy(data)
    if segment_count <= 0:
        return _restore_type(data, out)

    start, end = 0, len(out)
    length = end - start
    window = length // segment_count
    loops = 0

    while window > 0:
        carry = window + length % segment_count
        temp = out[start:start + window]
        out[start:start + window] = out[end - window:end]
        out[end - window:end] = temp

        start += carry
        end -= carry
        length = end - start
        window = length // segment_count

        loops += 1
        if loops >= inner_loop_cap:
            break

    return _restore_type(data, out)


def swap_crypt(data, encrypt: bool, parts: int = 2, iterations: int = 1, inner_loop_cap: int = 5):
    """
    Run the full Swap permutation over data.

    Args:
        data: Bytes, bytearray or list to permute. Never modified in place.
        encrypt: True to encrypt, False to decrypt.
        parts: Segment divisor of the first step.
        iterations: Number of steps, clamped to [1, len(data) // parts].
        inner_loop_cap: Maximum window swaps per step.

    Returns:
        The permuted copy, of the same type as the input.
    """
    if iterations < 1:
        iterations = 1
    if parts <= 0:
        logger.debug("Swap with parts=%d over %d items is a no-op", parts, len(data))
        return _restore_type(data, _copy(data))
    if iterations > len(data) // parts:
        iterations = len(data) // parts

    logger.debug(
        "Swap %s: items=%d parts=%d iterations=%d inner_loop_cap=%d",
        "encrypt" if encrypt else "decrypt", len(data), parts, iterations, inner_loop_cap,
    )

    steps = range(iterations) if encrypt else reversed(range(iterations))
    result = data
    for i in steps:
        result = swap_windows(result, parts - i, inner_loop_cap)
    if result is data:
        result = _restore_type(data, _copy(data))
    return result


def swap_crypt_sized(data, encrypt: bool, params: SwapParameters = None,
                     max_threshold: int = FILE_SIZE_THRESHOLD):
    """
    Swap permutation whose segment divisor follows from the data size.

    The segment size is params.threshold capped at max_threshold, and the
    divisor is how many whole segments fit in the data. Data shorter than
    one segment is left as is.
    """
    params = params or SwapParameters()
    size = min(params.threshold, max_threshold)
    parts = len(data) // size if size > 0 else 0
    logger.debug("Swap segment size %d gives %d parts", size, parts)
    return swap_crypt(data, encrypt, parts, params.iterations, params.inner_loop_cap)
