#!/usr/bin/env python3
"""
Local Camera Scan Script
Runs a scan session against the configured local camera and prints results
"""

import argparse
import asyncio
import logging
import sys

from app.config import get_settings
from app.scanner import (
    RemoteScanDecoder,
    ResultEntry,
    ScanSession,
    create_camera_manager,
    create_decoder,
)


def print_entry(entry: ResultEntry) -> None:
    print(f"📦 {entry.format}: {entry.value}")


async def run_continuous(session: ScanSession) -> int:
    await session.start()
    if not session.camera.is_active:
        print(f"❌ ERROR: {session.status_text()} ({session.error_message})")
        return 1

    print("Scanning... press Ctrl+C to stop")
    while True:
        await asyncio.sleep(1)


async def run_single_shot(session: ScanSession) -> int:
    await session.start()
    loop = asyncio.get_running_loop()

    while True:
        if not session.camera.is_active:
            print(f"❌ ERROR: {session.status_text()} ({session.error_message})")
            return 1

        line = await loop.run_in_executor(None, input, "Press Enter to capture (q to quit): ")
        if line.strip().lower() == "q":
            return 0

        await session.capture_now()
        print(session.status_text())
        for entry in session.results():
            print_entry(entry)

        await session.scan_another()


async def main(mode: str = None) -> int:
    settings = get_settings()
    decoder = create_decoder(settings)
    session = ScanSession(
        create_camera_manager(settings),
        decoder,
        mode=mode,
        on_detected=print_entry,
    )

    try:
        if session.mode == "continuous":
            return await run_continuous(session)
        return await run_single_shot(session)
    finally:
        await session.close()
        if isinstance(decoder, RemoteScanDecoder):
            await decoder.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Scan barcodes with the local camera")
    parser.add_argument("--mode", choices=["continuous", "single-shot"], default=None)
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)

    print("=" * 60)
    print("LOCAL BARCODE SCAN")
    print("=" * 60)
    try:
        sys.exit(asyncio.run(main(args.mode)))
    except KeyboardInterrupt:
        print()
        print("✅ Stopped")
