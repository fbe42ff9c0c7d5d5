# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""Byte-size formatting shared by reports and error messages."""

_IEC_UNITS = ("KiB", "MiB", "GiB", "TiB", "PiB", "EiB")


def format_size(num_bytes: int | None) -> str:
    """
    Format a byte count with binary (IEC) units, e.g. ``1.5KiB``.

    ``None`` renders as ``N/A``.
    """
    if num_bytes is None:
        return "N/A"

    if abs(num_bytes) < 1024:
        return f"{num_bytes}B"

    value = float(num_bytes)
    unit = _IEC_UNITS[0]
    for unit in _IEC_UNITS:
        value /= 1024.0
        if abs(value) < 1024.0:
            break
    return f"{value:.1f}{unit}"
