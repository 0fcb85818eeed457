#!/usr/bin/env python3
"""Create (or reset) the Milvus collection and namespace partition used for memories.

Usage:
    python scripts/setup_index.py           # create if missing
    python scripts/setup_index.py --reset   # drop everything, then recreate
"""

import argparse
import asyncio
from pathlib import Path

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from src.mnemos.errors import MnemosError
from src.mnemos.memory import MemoryConfig
from src.mnemos.memory.storage import MilvusVectorStore


async def setup_index(reset: bool) -> bool:
    """Ensure the collection exists, optionally dropping it first."""
    config = MemoryConfig.from_env().milvus_config
    store = MilvusVectorStore(config)
    target = "Milvus Lite" if config.use_lite else (config.uri or f"{config.host}:{config.port}")

    print(f"\n=== Milvus index at {target} ===")

    try:
        await store.connect()

        if reset:
            print(f"  Dropping collection: {config.collection_name}")
            await store.drop()
            await store.disconnect()
            await store.connect()
            print(f"  ✓ Recreated {config.collection_name}")

        print(f"  Collection: {config.collection_name}")
        print(f"  Namespace:  {config.namespace}")
        print(f"  Dimension:  {config.vector_dim}")
        print(f"  Records:    {await store.count()}")
        return True

    except MnemosError as e:
        print(f"✗ Index setup failed: {e}")
        return False
    finally:
        await store.disconnect()


async def main():
    parser = argparse.ArgumentParser(description="Set up the mnemos Milvus index.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="drop the collection (all namespaces) before recreating it",
    )
    args = parser.parse_args()

    if args.reset:
        print("This will DELETE ALL memories in the collection!")
        print("Press Ctrl+C within 3 seconds to cancel...")
        try:
            await asyncio.sleep(3)
        except KeyboardInterrupt:
            print("\nCancelled.")
            return

    ok = await setup_index(args.reset)
    print("\n✓ Index ready" if ok else "\n⚠ Index setup failed. Check the errors above.")
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
