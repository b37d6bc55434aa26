"""Caption overlay for generated comic images."""

from __future__ import annotations

import io
import logging
import re
import textwrap

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

logger = logging.getLogger(__name__)

Box = tuple[int, int, int, int]

SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


def panel_boxes(width: int, height: int, panel_count: int) -> list[Box]:
    """Return panel rectangles matching the layouts requested from the image model.

    1 panel fills the frame, 2 panels stack vertically, 3 panels sit side by
    side, and 4 panels form a 2x2 grid read left-to-right, top-to-bottom.
    """
    if panel_count <= 1:
        return [(0, 0, width - 1, height - 1)]
    if panel_count == 2:
        mid = height // 2
        return [(0, 0, width - 1, mid - 1), (0, mid, width - 1, height - 1)]
    if panel_count == 3:
        third = width // 3
        return [
            (0, 0, third - 1, height - 1),
            (third, 0, 2 * third - 1, height - 1),
            (2 * third, 0, width - 1, height - 1),
        ]

    mid_x, mid_y = width // 2, height // 2
    return [
        (0, 0, mid_x - 1, mid_y - 1),
        (mid_x, 0, width - 1, mid_y - 1),
        (0, mid_y, mid_x - 1, height - 1),
        (mid_x, mid_y, width - 1, height - 1),
    ]


def split_captions(narrative: str, panel_count: int) -> list[str]:
    """Split a narrative into exactly ``panel_count`` captions, one per panel."""
    text = " ".join(narrative.split())
    panel_count = max(1, panel_count)
    if not text:
        return [""] * panel_count

    sentences = [s for s in SENTENCE_RE.split(text) if s]
    if len(sentences) >= panel_count:
        # Fold surplus sentences into the last caption.
        return sentences[: panel_count - 1] + [" ".join(sentences[panel_count - 1 :])]

    words = text.split()
    per_panel = max(1, -(-len(words) // panel_count))
    captions = [" ".join(words[i : i + per_panel]) for i in range(0, len(words), per_panel)]
    return captions + [""] * (panel_count - len(captions))


class TextOverlay:
    """Draw one caption box along the bottom of each panel."""

    def __init__(self, font_size: int = 28, padding: int = 12, margin: int = 16):
        self.font_size = font_size
        self.padding = padding
        self.margin = margin

    def apply(self, image_bytes: bytes, narrative: str, panel_count: int) -> bytes:
        """Return PNG bytes with captions drawn, or the input unchanged if it cannot be decoded."""
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            logger.warning("Skipping text overlay, image could not be decoded: %s", exc)
            return image_bytes

        image = image.convert("RGB")
        draw = ImageDraw.Draw(image)
        font = ImageFont.load_default(size=self.font_size)
        boxes = panel_boxes(image.width, image.height, panel_count)

        for box, caption in zip(boxes, split_captions(narrative, panel_count)):
            if caption:
                self._draw_caption(draw, font, box, caption)

        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    def _draw_caption(self, draw: ImageDraw.ImageDraw, font, box: Box, caption: str) -> None:
        x0, y0, x1, y1 = box
        inner_width = max(1, (x1 - x0) - 2 * (self.margin + self.padding))
        chars_per_line = max(8, inner_width // max(1, int(self.font_size * 0.55)))
        wrapped = textwrap.fill(caption, width=chars_per_line)

        left, top, right, bottom = draw.multiline_textbbox((0, 0), wrapped, font=font)
        text_w, text_h = right - left, bottom - top

        box_left = x0 + self.margin
        box_right = min(x1 - self.margin, box_left + text_w + 2 * self.padding)
        box_bottom = y1 - self.margin
        box_top = max(y0 + self.margin, box_bottom - text_h - 2 * self.padding)

        draw.rectangle((box_left, box_top, box_right, box_bottom), fill="white", outline="black", width=3)
        draw.multiline_text(
            (box_left + self.padding - left, box_top + self.padding - top),
            wrapped,
            fill="black",
            font=font,
        )
