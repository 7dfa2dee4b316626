from __future__ import annotations

from .allowlist import (
    AllowlistStore,
    LoadReport,
    parse_line,
    render_allowlist,
)

__all__ = [
    "AllowlistStore",
    "LoadReport",
    "parse_line",
    "render_allowlist",
]
