"""
Memories Backend: Font Resolution
==================================

What:  Turns a FontSpec family name into a Pillow font at a pixel size.
How:   Looks for <family>.ttf/.otf/.ttc in FONTS_DIR, then the system font
       directories, then lets FreeType resolve the bare name. Falls back to
       Pillow's built-in scalable default font.

Resolved fonts are cached per (family, pixel size); rendering the same page
twice never touches the disk again.
"""

import logging
import os
from functools import lru_cache
from typing import List, Optional

from PIL import ImageFont

from memories.config import settings

logger = logging.getLogger(__name__)

FONT_EXTENSIONS = (".ttf", ".otf", ".ttc")

SYSTEM_FONT_DIRS = [
    "/usr/share/fonts",
    "/usr/local/share/fonts",
    "/Library/Fonts",
    "/System/Library/Fonts",
    os.path.join(os.environ.get("WINDIR", "C:\\Windows"), "Fonts"),
]


def _search_dirs() -> List[str]:
    dirs = []
    if settings.fonts_dir:
        dirs.append(settings.fonts_dir)
    dirs.extend(SYSTEM_FONT_DIRS)
    return [d for d in dirs if os.path.isdir(d)]


def find_font_path(family: str) -> Optional[str]:
    """Case-insensitive search for a font file named after `family`."""
    wanted = {(family + ext).lower() for ext in FONT_EXTENSIONS}
    for base in _search_dirs():
        for root, _dirs, files in os.walk(base):
            for fname in files:
                if fname.lower() in wanted:
                    return os.path.join(root, fname)
    return None


@lru_cache(maxsize=128)
def load_font(family: str, pixel_size: int) -> ImageFont.FreeTypeFont:
    pixel_size = max(1, pixel_size)
    path = find_font_path(family)
    candidates = [path] if path else []
    candidates.append(family)
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, pixel_size)
        except OSError:
            continue
    logger.debug("Font '%s' not found; using Pillow's default font", family)
    return ImageFont.load_default(size=pixel_size)
