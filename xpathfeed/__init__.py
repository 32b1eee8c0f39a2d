"""Checkout shim so `python -m xpathfeed.cli.<command>` resolves the src-layout package."""

from __future__ import annotations

from pathlib import Path

_ROOT = Path(__file__).resolve().parent.parent
_SRC_PACKAGE = _ROOT / "src" / "xpathfeed"

if _SRC_PACKAGE.is_dir():
    __path__.append(str(_SRC_PACKAGE))
