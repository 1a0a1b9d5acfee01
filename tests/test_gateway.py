"""
Cryptstore Gateway Tests
Save, load, stream and delete through the storage gateway, for every cipher kind.
"""

import io
import logging
import os
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import cryptstore
from cryptstore import gateway as gateway_module
from cryptstore import (
    StorageGateway,
    StorageConfig,
    SwapParameters,
    CipherKind,
    Streaming,
    UnsupportedCipherKind,
    FILE_SIZE_THRESHOLD,
)


@dataclass
class TestData:
    press_count: int = 0
    label: str = ""

    __test__ = False


def _gateway(tmpdir: str, **kwargs) -> StorageGateway:
    return StorageGateway(StorageConfig(root=Path(tmpdir) / "store", **kwargs))


def test_resolve_path_appends_cipher_name():
    """Encrypted files get the cipher name appended to the extension."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        root = Path(tmpdir) / "store"
        assert store.resolve_path("model.png") == root / "model.png"
        assert store.resolve_path("model.png", CipherKind.SWAP) == root / "model.pngSwap"
        assert store.resolve_path("a/b/save.json", CipherKind.AES) == root / "a" / "b" / "save.jsonAes"
        assert store.resolve_path("model.png", CipherKind.SWAP, append_extension=False) == root / "model.png"
        assert store.resolve_path("", CipherKind.NONE) == root
        assert store.resolve_path("model.png", "Swap") == root / "model.pngSwap"


def test_save_load_bytes_all_kinds():
    """Byte payloads round-trip at 0, 1, threshold and above-threshold sizes."""
    sizes = [0, 1, FILE_SIZE_THRESHOLD, FILE_SIZE_THRESHOLD + 1, 3 * FILE_SIZE_THRESHOLD + 7]
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        for kind in CipherKind:
            for size in sizes:
                data = os.urandom(size)
                name = f"blob-{size}.bin"
                assert store.save(data, name, kind), f"save failed for {kind} size={size}"
                assert store.exists(name, kind)
                assert store.load(name, kind) == data, f"{kind} size={size}"


def test_files_on_disk_are_transformed():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        data = bytes(range(256)) * 8
        for kind in CipherKind:
            store.save(data, "raw.bin", kind)
        assert store.resolve_path("raw.bin").read_bytes() == data
        assert store.resolve_path("raw.bin", CipherKind.AES).read_bytes() != data
        assert store.resolve_path("raw.bin", CipherKind.SWAP).read_bytes() != data
        assert sorted(p.name for p in (Path(tmpdir) / "store").iterdir()) == ["raw.bin", "raw.binAes", "raw.binSwap"]


def test_save_load_typed():
    """Typed values are stored as JSON and rebuilt on load."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        value = TestData(press_count=12, label="keys")
        for kind in CipherKind:
            assert store.save(value, "TestData.dat", kind)
            assert store.load("TestData.dat", kind, TestData) == value
            assert store.load("TestData.dat", kind, dict) == {"press_count": 12, "label": "keys"}


def test_stream_save_matches_buffered_save():
    """A streamed save writes the same file as a buffered save."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        data = os.urandom(FILE_SIZE_THRESHOLD * 2 + 5)
        for kind in CipherKind:
            assert store.save(data, "buffered.bin", kind)
            source = io.BytesIO(data)
            assert store.save(source, "streamed.bin", kind)
            assert source.closed, "source stream must be closed after save"
            buffered = store.resolve_path("buffered.bin", kind).read_bytes()
            streamed = store.resolve_path("streamed.bin", kind).read_bytes()
            assert buffered == streamed, f"{kind} streamed bytes differ"


def test_load_stream():
    """load_stream returns a readable, decrypting stream."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        data = os.urandom(25_000)
        for kind in CipherKind:
            store.save(io.BytesIO(data), "large.glb", kind)
            stream = store.load_stream("large.glb", kind)
            assert stream is not None
            try:
                assert stream.read() == data, f"{kind} stream content differs"
            finally:
                stream.close()

        via_load = store.load("large.glb", CipherKind.AES, io.BufferedIOBase)
        try:
            assert via_load.read() == data
        finally:
            via_load.close()


def test_transform_for_reports_streaming():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        assert store.transform_for(CipherKind.AES).streaming is Streaming.TRUE_STREAMING
        assert store.transform_for(CipherKind.SWAP).streaming is Streaming.BUFFER_THEN_STREAM


def test_delete_then_load():
    """Deleted items load as the default, not as a failure."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        for kind in CipherKind:
            store.save(b"payload", "gone.bin", kind)
            assert store.delete("gone.bin", kind) is True
            assert not store.exists("gone.bin", kind)
            assert store.load("gone.bin", kind) is None
            assert store.load("gone.bin", kind, default=b"") == b""
            assert store.load_stream("gone.bin", kind) is None
            assert store.delete("gone.bin", kind) is False


def test_missing_directory(caplog):
    """Loading from a directory that was never created logs a warning."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        with caplog.at_level(logging.WARNING, logger="cryptstore"):
            assert store.load("nowhere/file.bin", CipherKind.SWAP) is None
        assert any("does not exist" in r.getMessage() for r in caplog.records)


def test_corrupt_file_loads_default():
    """Bytes that cannot be decrypted or decoded give the default."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        path = store.resolve_path("broken.json", CipherKind.AES)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"not a ciphertext!")
        assert store.load("broken.json", CipherKind.AES) is None

        store.save(b"{not json", "broken.json", CipherKind.SWAP)
        assert store.load("broken.json", CipherKind.SWAP, TestData) is None
        assert store.load("broken.json", CipherKind.SWAP, dict, default={}) == {}


def test_io_failure_returns_false():
    """A root that is a file cannot hold saves; the gateway reports False."""
    with tempfile.TemporaryDirectory() as tmpdir:
        blocker = Path(tmpdir) / "store"
        blocker.write_bytes(b"")
        store = StorageGateway(StorageConfig(root=blocker))
        assert store.save(b"data", "x.bin", CipherKind.SWAP) is False
        source = io.BytesIO(b"data")
        assert store.save(source, "x.bin", CipherKind.AES) is False
        assert source.closed


def test_unencodable_payload_returns_false():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        assert store.save(object(), "x.json") is False
        assert not store.exists("x.json")


def test_unsupported_kind_propagates():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        for call in (
            lambda: store.save(b"x", "x.bin", "Rot13"),
            lambda: store.load("x.bin", "Rot13"),
            lambda: store.resolve_path("x.bin", "Rot13"),
        ):
            try:
                call()
            except UnsupportedCipherKind:
                pass
            else:
                raise AssertionError("unsupported cipher kind must raise")


def test_save_file_picks_path_by_size():
    """Files above the threshold are streamed, smaller ones buffered; both round-trip."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir, size_threshold=1000)
        small = Path(tmpdir) / "small.png"
        large = Path(tmpdir) / "large.glb"
        small.write_bytes(os.urandom(1000))
        large.write_bytes(os.urandom(5000))

        assert not store.is_large(1000)
        assert store.is_large(1001)

        for kind in CipherKind:
            assert store.save_file(small, cipher=kind)
            assert store.save_file(large, "models/large.glb", kind)
            assert store.load("small.png", kind) == small.read_bytes()
            assert store.load("models/large.glb", kind) == large.read_bytes()

        assert store.save_file(Path(tmpdir) / "missing.bin") is False


def test_configure_swap():
    """New Swap parameters change the stored bytes of later saves."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        data = bytes(range(256)) * 4
        store.save(data, "a.bin", CipherKind.SWAP)
        before = store.resolve_path("a.bin", CipherKind.SWAP).read_bytes()

        store.configure_swap(threshold=64, iterations=3, inner_loop_cap=5)
        assert store.config.swap == SwapParameters(threshold=64, iterations=3, inner_loop_cap=5)
        store.save(data, "b.bin", CipherKind.SWAP)
        after = store.resolve_path("b.bin", CipherKind.SWAP).read_bytes()

        assert before != after
        assert store.load("b.bin", CipherKind.SWAP) == data


def test_config_from_env():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = StorageConfig.from_env({
            "CRYPTSTORE_ROOT": tmpdir,
            "CRYPTSTORE_SIZE_THRESHOLD": "2048",
            "CRYPTSTORE_SWAP_THRESHOLD": "32",
            "CRYPTSTORE_SWAP_ITERATIONS": "4",
        })
        assert config.root == Path(tmpdir)
        assert config.size_threshold == 2048
        assert config.swap == SwapParameters(threshold=32, iterations=4, inner_loop_cap=2)

    try:
        StorageConfig.from_env({"CRYPTSTORE_SIZE_THRESHOLD": "lots"})
    except ValueError as e:
        assert "CRYPTSTORE_SIZE_THRESHOLD" in str(e)
    else:
        raise AssertionError("non-integer threshold must be rejected")


def test_module_level_functions():
    """The package-level helpers use a gateway rooted at CRYPTSTORE_ROOT."""
    with tempfile.TemporaryDirectory() as tmpdir:
        previous = os.environ.get("CRYPTSTORE_ROOT")
        os.environ["CRYPTSTORE_ROOT"] = tmpdir
        gateway_module._default_gateway = None
        try:
            assert cryptstore.resolve_path("x.bin", CipherKind.AES) == Path(tmpdir) / "x.binAes"
            assert cryptstore.save({"a": 1}, "x.bin", CipherKind.AES)
            assert cryptstore.load("x.bin", CipherKind.AES, dict) == {"a": 1}
            stream = cryptstore.load_stream("x.bin", CipherKind.AES)
            assert stream.read().startswith(b"{")
            stream.close()
            assert cryptstore.delete("x.bin", CipherKind.AES)
        finally:
            gateway_module._default_gateway = None
            if previous is None:
                del os.environ["CRYPTSTORE_ROOT"]
            else:
                os.environ["CRYPTSTORE_ROOT"] = previous


class FailingSource(io.RawIOBase):
    """Readable stream that hands out one chunk and then fails."""

    def __init__(self, first: bytes):
        super().__init__()
        self._first = first
        self._reads = 0

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        self._reads += 1
        if self._reads > 1:
            raise OSError("source went away")
        b[:len(self._first)] = self._first
        return len(self._first)


def test_failed_stream_keeps_previous_file():
    """A source failing mid-copy leaves the earlier save intact and no partial files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir, chunk_size=5)
        for kind in CipherKind:
            assert store.save(b"good old data", "x.bin", kind)
            source = FailingSource(b"abcde")
            assert store.save(source, "x.bin", kind) is False
            assert source.closed
            assert store.load("x.bin", kind) == b"good old data", f"{kind} lost the earlier save"
        leftovers = [p.name for p in (Path(tmpdir) / "store").iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []


def test_closed_or_text_stream_returns_false():
    """Streams that cannot supply bytes are reported as a failed save."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _gateway(tmpdir)
        for kind in CipherKind:
            closed = io.BytesIO(b"data")
            closed.close()
            assert store.save(closed, "closed.bin", kind) is False
            assert store.save(io.StringIO("hello"), "text.txt", kind) is False
            assert not store.exists("closed.bin", kind)
            assert not store.exists("text.txt", kind)


def test_long_key_phrase_rejected_at_construction():
    """A phrase deriving a key AES cannot use fails when the config is built."""
    with tempfile.TemporaryDirectory() as tmpdir:
        try:
            StorageConfig(root=tmpdir, key_phrase="k" * 64)
        except ValueError as e:
            assert "key_phrase" in str(e)
        else:
            raise AssertionError("a 64 byte key phrase must be rejected")

        store = _gateway(tmpdir, key_phrase="k" * 63)
        assert store.transform_for(CipherKind.AES).params.key == b"k" * 32
        assert store.save(b"data", "x.bin", CipherKind.AES)
        assert store.load("x.bin", CipherKind.AES) == b"data"


def main():
    print("=" * 50)
    print("  Cryptstore Gateway Tests")
    print("=" * 50)
    print()

    tests = [
        test_resolve_path_appends_cipher_name,
        test_save_load_bytes_all_kinds,
        test_files_on_disk_are_transformed,
        test_save_load_typed,
        test_stream_save_matches_buffered_save,
        test_load_stream,
        test_transform_for_reports_streaming,
        test_delete_then_load,
        test_corrupt_file_loads_default,
        test_io_failure_returns_false,
        test_unencodable_payload_returns_false,
        test_unsupported_kind_propagates,
        test_save_file_picks_path_by_size,
        test_configure_swap,
        test_config_from_env,
        test_module_level_functions,
        test_failed_stream_keeps_previous_file,
        test_closed_or_text_stream_returns_false,
        test_long_key_phrase_rejected_at_construction,
    ]

    passed = 0
    failed = 0

    for test in tests:
        try:
            test()
            print(f"  [PASS] {test.__name__}")
            passed += 1
        except Exception as e:
            print(f"  [FAIL] {test.__name__}: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    print()
    print(f"Results: {passed} passed, {failed} failed")
    return failed == 0


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
