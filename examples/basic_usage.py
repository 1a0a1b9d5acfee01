"""
Cryptstore: Basic Usage Example

Saves a typed value, raw bytes and a large stream under each cipher kind,
loads them back and shows what ends up on disk.
"""

import io
import logging
import os
import shutil
import sys
import time
from dataclasses import dataclass
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cryptstore import StorageGateway, StorageConfig, CipherKind


@dataclass
class Settings:
    theme: str = "dark"
    volume: int = 7


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 50)
    print("  Cryptstore: Encrypted File Storage")
    print("=" * 50)

    store = StorageGateway(StorageConfig(root="./example-store"))
    asset = os.urandom(store.config.size_threshold * 5)

    for kind in CipherKind:
        print(f"\n[{kind.value}] streaming: {store.transform_for(kind).streaming.value}")

        store.save(Settings(), "settings.json", kind)
        print(f"  settings -> {store.load('settings.json', kind, Settings)}")

        start = time.perf_counter()
        store.save(io.BytesIO(asset), "model.glb", kind)
        save_ms = (time.perf_counter() - start) * 1000

        start = time.perf_counter()
        with store.load_stream("model.glb", kind) as stream:
            restored = stream.read()
        load_ms = (time.perf_counter() - start) * 1000

        print(f"  asset {len(asset)}B round trip ok: {restored == asset} "
              f"(save {save_ms:.2f}ms, load {load_ms:.2f}ms)")
        print(f"  on disk: {store.resolve_path('model.glb', kind)}")

    for kind in CipherKind:
        store.delete("model.glb", kind)
    print(f"\nAfter delete: {store.load('model.glb', CipherKind.SWAP)}")

    shutil.rmtree("./example-store", ignore_errors=True)
    print("\nCleaned up example files.")


if __name__ == "__main__":
    main()
