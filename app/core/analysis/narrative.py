"""
Narrative helpers: deterministic phrase selection for formatted output.

Identical content always gets identical phrasing; there is no runtime
randomness anywhere in the formatting layer.
"""

import hashlib
from typing import Sequence

SKIPPER_INTROS = [
    "Skipper, I've completed my analysis. Here's the intel:",
    "Skipper, the analysis is complete. Here's what I found:",
    "Analysis complete, Skipper. The intel:",
]

SKIPPER_OUTROS = [
    "Awaiting further orders, Skipper.",
    "Ready for the next mission, Skipper.",
    "Standing by for further orders, Skipper.",
]


def pick_phrase(options: Sequence[str], key: str) -> str:
    """Choose one of `options` by md5 of `key`."""
    if not options:
        return ""
    digest = hashlib.md5(key.encode("utf-8")).hexdigest()
    return options[int(digest, 16) % len(options)]


def banner(title: str, width: int = 60) -> str:
    rule = "═" * width
    return f"{rule}\n{title.center(width)}\n{rule}"
