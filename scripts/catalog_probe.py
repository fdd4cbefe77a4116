r"""Run one catalog command against a live backend.

Usage (PowerShell examples):
  $env:CATALOG_BASE_URL = 'http://localhost:5000/api'
  $env:CATALOG_QUERY = 'category=wheels&page=2'
  $env:CATALOG_MSG = '{"id":1, "type":"catalog/submit_search", "text":"spoiler", "wait":true}'
  python .\scripts\catalog_probe.py | cat

Environment variables:
- CATALOG_BASE_URL: backend base URL (required).
- CATALOG_QUERY: initial address bar query string. Default: empty.
- CATALOG_MSG: JSON command to send after startup. Default: a snapshot.
- Any other CATALOG_<OPTION> understood by catalog_sync.config.

Notes:
- This is intended for quick, repeatable online checks. It does not mock anything.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from typing import Any
from urllib.parse import parse_qsl

import aiohttp

from catalog_sync import MemoryAddressBar, async_setup, async_unload
from catalog_sync.config import options_from_env
from catalog_sync.exceptions import CatalogSyncError
from catalog_sync.handlers import async_dispatch


async def run_probe() -> int:
    raw_msg = os.environ.get("CATALOG_MSG") or '{"id": 1, "type": "catalog/snapshot", "wait": true}'
    query = dict(parse_qsl(os.environ.get("CATALOG_QUERY", "")))

    try:
        payload: dict[str, Any] = json.loads(raw_msg)
    except json.JSONDecodeError as err:
        print(f"CATALOG_MSG is not valid JSON: {err}", file=sys.stderr)
        return 2

    try:
        options = options_from_env()
    except CatalogSyncError as err:
        print(str(err), file=sys.stderr)
        return 2
    if not options.base_url:
        print("Missing CATALOG_BASE_URL in environment", file=sys.stderr)
        return 2

    address_bar = MemoryAddressBar(query)
    async with aiohttp.ClientSession() as session:
        engine = await async_setup(session, options, address_bar=address_bar)
        try:
            await engine.async_block_till_done()
            response = await async_dispatch(engine, payload)
            print(json.dumps(response, indent=2, default=str))
            print(json.dumps({"url": address_bar.query}, indent=2))
        finally:
            await async_unload(engine)

    return 0 if response.get("success") else 3


def main() -> None:
    try:
        code = asyncio.run(run_probe())
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
