# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Executor for blocking filesystem and archive work.

A single worker keeps every copy, sync, tar and digest strictly sequential
while the event loop stays free for subprocess I/O and prompts.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

T = TypeVar("T")

_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hostbak-io")


async def run_blocking(func: Callable[..., T], *args: Any) -> T:
    """Run ``func(*args)`` on the worker thread and wait for it."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, func, *args)
