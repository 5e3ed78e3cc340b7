"""
Memories Backend: Page Rendering & Flattening
==============================================

What:  Composes a PageDocument into one raster image.
How:   Pillow. Layers are painted bottom to top:

           1. background   template image (cover-fit), else color, else white
           2. rich text    body laid out inside the inset text box
           3. items        in list order, aspect-fill cropped, rotated about
                           their centers
           4. ink          optional, from an injected ink renderer

       Every virtual coordinate is multiplied by the same `scale` the
       viewport fit uses, so a snapshot matches what the editor displayed.

Nothing here performs I/O. Template bytes are fetched by the caller.
"""

import io
import logging
import math
import re
from typing import Callable, List, Optional, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageOps, UnidentifiedImageError

from memories.canvas.document import VIRTUAL_PAGE_SIZE, CanvasItem, ItemType, PageDocument
from memories.canvas.fonts import load_font
from memories.canvas.geometry import Size
from memories.canvas.rich_text import RichText, body_rich_text, default_text_style
from memories.config import settings
from memories.exceptions import DecodeError, FlattenError

logger = logging.getLogger(__name__)

# (drawing_data, (width_px, height_px)) -> RGBA overlay, or None for no ink
InkRenderer = Callable[[bytes, Tuple[int, int]], Optional[Image.Image]]

_TOKEN = re.compile(r"\n|[^\S\n]+|\S+")


def canvas_pixel_size(scale: float) -> Tuple[int, int]:
    return (
        max(1, round(VIRTUAL_PAGE_SIZE.width * scale)),
        max(1, round(VIRTUAL_PAGE_SIZE.height * scale)),
    )


def _rgba(color: str) -> Tuple[int, int, int, int]:
    rgba = ImageColor.getrgb(color)
    return rgba if len(rgba) == 4 else (*rgba, 255)


def _decode(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(context={"error": str(e)}) from e
    return ImageOps.exif_transpose(image).convert("RGBA")


# ── Layers ────────────────────────────────────────────────────────────────

def _paint_background(
    document: PageDocument, size: Tuple[int, int], template_image: Optional[bytes]
) -> Image.Image:
    canvas = Image.new("RGBA", size, _rgba(document.background.fill_color))
    if document.background_image_name and template_image:
        try:
            template = _decode(template_image)
        except DecodeError:
            logger.warning(
                "Template '%s' is not a readable image; painting plain background",
                document.background_image_name,
            )
        else:
            canvas.alpha_composite(ImageOps.fit(template, size, method=Image.LANCZOS))
    return canvas


def _layout_lines(rich: RichText, scale: float, box_width: float):
    """Greedy word wrap over mixed-style runs. Returns lines of (text, font, fill)."""
    lines: List[list] = [[]]
    widths = [0.0]
    for run in rich.runs:
        font = load_font(run.style.font.family, round(run.style.font.size * scale))
        fill = _rgba(run.style.color)
        for token in _TOKEN.findall(run.text):
            if token == "\n":
                if not lines[-1]:
                    lines[-1].append(("", font, fill))
                lines.append([])
                widths.append(0.0)
                continue
            token_width = font.getlength(token)
            if token.isspace():
                if lines[-1] or widths[-1] > 0:
                    lines[-1].append((token, font, fill))
                    widths[-1] += token_width
                continue
            if widths[-1] + token_width > box_width and any(t.strip() for t, _f, _c in lines[-1]):
                while lines[-1] and lines[-1][-1][0].isspace():
                    lines[-1].pop()
                lines.append([])
                widths.append(0.0)
            lines[-1].append((token, font, fill))
            widths[-1] += token_width
    return lines


def _paint_rich_text(canvas: Image.Image, rich: RichText, scale: float) -> None:
    inset = settings.body_text_inset * scale
    box_left, box_top = inset, inset
    box_width = canvas.width - 2 * inset
    box_bottom = canvas.height - inset
    if box_width <= 0 or rich.length == 0:
        return

    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    y = box_top
    for line in _layout_lines(rich, scale, box_width):
        if not line:
            continue
        metrics = [font.getmetrics() for _t, font, _c in line]
        ascent = max(m[0] for m in metrics)
        descent = max(m[1] for m in metrics)
        if y + ascent + descent > box_bottom:
            break
        x = box_left
        baseline = y + ascent
        for text, font, fill in line:
            if text:
                draw.text((x, baseline), text, font=font, fill=fill, anchor="ls")
                x += font.getlength(text)
        y += ascent + descent
    canvas.alpha_composite(layer)


def _legacy_text_tile(item: CanvasItem, size: Tuple[int, int], scale: float) -> Image.Image:
    style = default_text_style()
    font = load_font(style.font.family, round(style.font.size * scale))
    tile = Image.new("RGBA", size, (0, 0, 0, 0))
    ImageDraw.Draw(tile).multiline_text(
        (size[0] / 2, size[1] / 2),
        item.text_content or "",
        font=font,
        fill=_rgba(style.color),
        anchor="mm",
        align="center",
    )
    return tile


def _paint_item(canvas: Image.Image, item: CanvasItem, scale: float) -> None:
    size = (max(1, round(item.frame.width * scale)), max(1, round(item.frame.height * scale)))
    if item.type is ItemType.IMAGE:
        try:
            tile = ImageOps.fit(_decode(item.image_data), size, method=Image.LANCZOS)
        except DecodeError:
            logger.warning("Skipping item %s: image data is not decodable", item.id)
            return
    else:
        tile = _legacy_text_tile(item, size, scale)

    if item.rotation:
        # Positive rotation is clockwise on a y-down page; Pillow turns counter-clockwise.
        tile = tile.rotate(-math.degrees(item.rotation), resample=Image.BICUBIC, expand=True)

    center = item.frame.center
    left = round(center.x * scale - tile.width / 2)
    top = round(center.y * scale - tile.height / 2)
    canvas.paste(tile, (left, top), tile)


def _paint_ink(canvas: Image.Image, document: PageDocument, ink_renderer: InkRenderer) -> None:
    overlay = ink_renderer(document.drawing_data, canvas.size)
    if overlay is None:
        return
    overlay = overlay.convert("RGBA")
    if overlay.size != canvas.size:
        overlay = overlay.resize(canvas.size, Image.LANCZOS)
    canvas.alpha_composite(overlay)


# ── Public API ────────────────────────────────────────────────────────────

def render_page(
    document: PageDocument,
    scale: float,
    template_image: Optional[bytes] = None,
    ink_renderer: Optional[InkRenderer] = None,
) -> Image.Image:
    """
    Paints the page at `scale` screen pixels per virtual unit.

    Args:
        document:       Page to render
        scale:          Same factor fit_to_viewport produced for the editor
        template_image: Encoded bytes of document.background_image_name, if any
        ink_renderer:   Rasterizes drawing_data; without one ink is not drawn

    Returns:
        An RGBA image of round(1000*scale) × round(1400*scale) pixels.
    """
    if not math.isfinite(scale) or scale <= 0:
        raise FlattenError(context={"scale": scale})
    size = canvas_pixel_size(scale)
    if size[0] * size[1] > settings.max_flatten_pixels:
        raise FlattenError(
            message="The requested image is too large to render",
            context={"size": size, "max_pixels": settings.max_flatten_pixels},
        )
    canvas = _paint_background(document, size, template_image)

    _paint_rich_text(canvas, body_rich_text(document), scale)

    for item in document.items:
        _paint_item(canvas, item, scale)

    if ink_renderer is not None and document.drawing_data:
        _paint_ink(canvas, document, ink_renderer)
    return canvas


def flatten(
    document: PageDocument,
    page_bounds: Size,
    quality: Optional[int] = None,
    template_image: Optional[bytes] = None,
    ink_renderer: Optional[InkRenderer] = None,
) -> bytes:
    """
    Renders the page into `page_bounds` and encodes it as JPEG.

    Raises:
        FlattenError: Zero, negative, non-finite or oversized bounds, or the
            encoder failed.
    """
    if not (math.isfinite(page_bounds.width) and math.isfinite(page_bounds.height)):
        raise FlattenError(
            message="Cannot flatten a page into non-finite bounds",
            context={"page_bounds": page_bounds.as_tuple()},
        )
    if page_bounds.is_empty:
        raise FlattenError(
            message="Cannot flatten a page into empty bounds",
            context={"page_bounds": page_bounds.as_tuple()},
        )
    scale = min(
        page_bounds.width / VIRTUAL_PAGE_SIZE.width,
        page_bounds.height / VIRTUAL_PAGE_SIZE.height,
    )
    image = render_page(document, scale, template_image, ink_renderer)

    buffer = io.BytesIO()
    try:
        image.convert("RGB").save(
            buffer,
            format="JPEG",
            quality=quality or settings.flatten_jpeg_quality,
        )
    except (OSError, ValueError) as e:
        logger.error("JPEG encoding failed for page %s: %s", document.id, e)
        raise FlattenError(context={"page_id": str(document.id), "error": str(e)}) from e

    data = buffer.getvalue()
    logger.info(
        "Flattened page %s at %dx%d (%d bytes)", document.id, image.width, image.height, len(data)
    )
    return data
