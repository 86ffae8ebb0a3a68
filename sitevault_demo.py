#!/usr/bin/env python3
"""
sitevault Demo
Builds a synthetic website archive, uploads it through the tiered store and
reports where it landed.

Usage:
    python sitevault_demo.py 20                      # 20 small files (fits the primary tier)
    python sitevault_demo.py 200 --file-kb 64        # ~12MB site (falls back to secondary)
    python sitevault_demo.py 50 --uploads 10         # repeat uploads to fill the primary tier
    python sitevault_demo.py 20 --storage ./demo     # custom storage directory
"""

import asyncio
import argparse
import base64
import io
import time
import shutil
import zipfile
from pathlib import Path
import psutil

from sitevault.tiered_store import TieredStore
from sitevault.logger import VaultLogger, get_logger
from sitevault.config import get_config
from sitevault.resolver import VirtualSite
from sitevault.uploader import upload_website, format_file_size


def build_site_archive(file_count: int, file_kb: int) -> bytes:
    """Generate a ZIP with an index page, a stylesheet and file_count content pages."""
    buffer = io.BytesIO()
    filler = "lorem ipsum dolor sit amet " * (file_kb * 1024 // 27 + 1)

    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        links = "".join(f'<li><a href="pages/page_{i:04d}.html">Page {i}</a></li>' for i in range(file_count))
        archive.writestr("index.html", f"<html><body><h1>Demo</h1><ul>{links}</ul></body></html>")
        archive.writestr("css/style.css", "body { font-family: sans-serif; }")
        for i in range(file_count):
            # Offset the filler so pages differ
            body = f"<html><body><h2>Page {i}</h2><p>{filler[i:i + file_kb * 1024]}</p></body></html>"
            archive.writestr(f"pages/page_{i:04d}.html", body)

    return buffer.getvalue()


def to_data_url(blob: bytes) -> str:
    return "data:application/zip;base64," + base64.b64encode(blob).decode("ascii")


def get_memory_usage():
    """Get current system memory usage."""
    process = psutil.Process()
    memory_info = process.memory_info()
    return {
        'rss_mb': memory_info.rss / (1024 * 1024),
        'vms_mb': memory_info.vms / (1024 * 1024),
        'system_available_mb': psutil.virtual_memory().available / (1024 * 1024)
    }


async def demo_sitevault(file_count: int, file_kb: int = 4, uploads: int = 1, storage_dir: str = None):
    """Main sitevault demonstration function."""
    config = get_config()

    if storage_dir is None:
        storage_dir = f"./sitevault_demo_{file_count}x{file_kb}kb_storage"

    storage_path = Path(storage_dir)
    log_dir = storage_path / config.storage.logs_path

    if storage_path.exists():
        print(f"🧹 Cleaning previous storage: {storage_path}")
        shutil.rmtree(storage_path)

    storage_path.mkdir(parents=True, exist_ok=True)
    log_dir.mkdir(parents=True, exist_ok=True)

    VaultLogger.setup(log_dir=str(log_dir), log_level=config.logging.level, console_output=True)
    logger = get_logger("SiteVaultDemo")

    blob = build_site_archive(file_count, file_kb)
    data_url = to_data_url(blob)

    print("🚀 SITEVAULT DEMO")
    print("=" * 50)
    print(f"📦 Archive: {file_count + 2} files, {format_file_size(len(blob))} zipped")
    print(f"📁 Storage: {storage_path}")
    print(f"📝 Logs: {VaultLogger.get_log_file()}")
    print(f"📊 Configuration:")
    print(f"   - Primary tier: {format_file_size(config.primary_tier.max_bytes)} quota")
    print(f"   - Secondary tier: {config.secondary_tier.max_storage_mb}MB, {config.secondary_tier.compression} compression")
    print()

    logger.info(f"=== Starting sitevault demo: {uploads} uploads of {file_count + 2} files ===")

    async with TieredStore(storage_path=str(storage_path)) as store:
        print("📥 UPLOAD PHASE")
        print("-" * 25)

        results = []
        for n in range(uploads):
            start = time.time()
            result = await upload_website(store, data_url, f"Demo Site {n}", "demo-site.zip", size_bytes=len(blob))
            elapsed = (time.time() - start) * 1000
            results.append(result)

            memory = get_memory_usage()
            print(f"  Upload {n + 1:3d}/{uploads}: {result.bundle_id} "
                  f"| {result.file_count} files "
                  f"| {format_file_size(result.size_bytes)} "
                  f"| tier: {result.tier.value:9s} "
                  f"| {elapsed:7.1f}ms "
                  f"| RAM: {memory['rss_mb']:5.0f}MB")

        print(f"\n🌐 SERVING CHECK")
        print("-" * 25)
        for result in results:
            site = VirtualSite(store, result.bundle_id)
            start = time.time()
            index = await site.get_file("/")
            elapsed = (time.time() - start) * 1000
            status = "✅" if index and "<h1>Demo</h1>" in index else "❌"
            print(f"  {status} {result.url} -> index.html in {elapsed:.1f}ms")

        stats = await store.get_stats()
        print(f"\n📈 FINAL TIER DISTRIBUTION")
        print("-" * 35)
        for tier_key in ("primary_tier", "secondary_tier"):
            tier_stats = stats[tier_key]
            print(f"  {tier_key:15s} {tier_stats['total_items']:4d} items, {format_file_size(tier_stats['used_bytes'])}")

        final_memory = get_memory_usage()
        print(f"\n💾 MEMORY USAGE")
        print("-" * 20)
        print(f"  Process RAM: {final_memory['rss_mb']:.1f}MB")
        print(f"  System available: {final_memory['system_available_mb']:.1f}MB")

        logger.info("=== sitevault demo completed successfully ===")


def main():
    """Parse arguments and run the demo."""
    parser = argparse.ArgumentParser(
        description="sitevault Demo - upload synthetic websites through the tiered store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python sitevault_demo.py 20                   # Small site, primary tier
  python sitevault_demo.py 200 --file-kb 64     # Large site, secondary tier
  python sitevault_demo.py 50 --uploads 10      # Fill the primary tier
        """
    )

    parser.add_argument("files", type=int, help="Number of content pages in the generated site")
    parser.add_argument("--file-kb", type=int, default=4, help="Approximate size of each page in KB")
    parser.add_argument("--uploads", type=int, default=1, help="How many times to upload the site")
    parser.add_argument("--storage", type=str, help="Custom storage directory")

    args = parser.parse_args()

    if args.files < 0 or args.file_kb <= 0 or args.uploads <= 0:
        print("Error: files must be >= 0, --file-kb and --uploads must be positive")
        return

    try:
        asyncio.run(demo_sitevault(
            file_count=args.files,
            file_kb=args.file_kb,
            uploads=args.uploads,
            storage_dir=args.storage
        ))
    except KeyboardInterrupt:
        print("\n⚠️  Demo interrupted by user")
    except Exception as e:
        print(f"\n❌ Demo failed: {e}")
        import traceback
        traceback.print_exc()


if __name__ == "__main__":
    main()
