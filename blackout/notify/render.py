"""Schedule image: one row per day, one cell per hour bucket, colored by state."""

import io
import logging

from PIL import Image, ImageDraw, ImageFont

from blackout.models.common import format_group
from blackout.models.schedule import HOURS_PER_DAY, GroupSnapshot, HourState

logger = logging.getLogger(__name__)

CELL_WIDTH = 35
CELL_HEIGHT = 40
HEADER_HEIGHT = 60
DAY_NAME_WIDTH = 120
PADDING = 10
LEGEND_HEIGHT = 50

BACKGROUND = "#1a1a1a"
TODAY_BACKGROUND = "#2d5f2d"
DAY_BACKGROUND = "#2a2a2a"
TEXT = "#ffffff"
HEADER_TEXT = "#cccccc"
STATE_COLORS = {
    HourState.OFF: "#8b0000",
    HourState.ON: "#006400",
    HourState.MAYBE: "#8b8b00",
    HourState.UNKNOWN: "#3a3a3a",
}
LEGEND = [
    (HourState.ON, "ON (Light)"),
    (HourState.OFF, "OFF (Blackout)"),
    (HourState.MAYBE, "Possible"),
]
FONT_NAME = "DejaVuSans.ttf"


def _font(size: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    try:
        return ImageFont.truetype(FONT_NAME, size)
    except OSError:
        return ImageFont.load_default()


def _centered_text(draw: ImageDraw.ImageDraw, center_x: float, y: float, text: str, font, fill: str) -> None:
    left, _, right, _ = draw.textbbox((0, 0), text, font=font)
    draw.text((center_x - (right - left) / 2, y), text, font=font, fill=fill)


def render_schedule(group: GroupSnapshot) -> bytes:
    """Render a group's schedule as PNG bytes."""
    width = DAY_NAME_WIDTH + HOURS_PER_DAY * CELL_WIDTH + PADDING * 2
    height = HEADER_HEIGHT + len(group.days) * CELL_HEIGHT + PADDING * 2 + LEGEND_HEIGHT

    image = Image.new("RGB", (width, height), BACKGROUND)
    draw = ImageDraw.Draw(image)
    title_font = _font(24)
    bold_font = _font(14)
    small_font = _font(12)

    title = f"Group {format_group(group.group_code)} - {group.search_date}"
    _centered_text(draw, width / 2, 15, title, title_font, TEXT)

    start_x = PADDING
    start_y = HEADER_HEIGHT + PADDING

    for hour in range(1, HOURS_PER_DAY + 1):
        x = start_x + DAY_NAME_WIDTH + (hour - 1) * CELL_WIDTH + CELL_WIDTH / 2
        _centered_text(draw, x, start_y - 24, str(hour), bold_font, HEADER_TEXT)

    for row, day in enumerate(group.days):
        row_y = start_y + row * CELL_HEIGHT
        draw.rectangle(
            [start_x, row_y, start_x + DAY_NAME_WIDTH, row_y + CELL_HEIGHT],
            fill=TODAY_BACKGROUND if day.is_today else DAY_BACKGROUND,
            outline="#444444",
        )
        draw.text(
            (start_x + 10, row_y + CELL_HEIGHT / 2 - 8), day.day_name, font=bold_font, fill=TEXT
        )

        for index, state in enumerate(day.hours):
            cell_x = start_x + DAY_NAME_WIDTH + index * CELL_WIDTH
            draw.rectangle(
                [cell_x, row_y, cell_x + CELL_WIDTH, row_y + CELL_HEIGHT],
                fill=STATE_COLORS[state],
                outline=BACKGROUND,
            )

    legend_y = start_y + len(group.days) * CELL_HEIGHT + 20
    for slot, (state, label) in enumerate(LEGEND):
        x = start_x + slot * 150
        draw.rectangle([x, legend_y, x + 20, legend_y + 20], fill=STATE_COLORS[state])
        draw.text((x + 30, legend_y + 3), label, font=small_font, fill=TEXT)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    logger.debug("Rendered %d-day schedule for group %s", len(group.days), group.group_code)
    return buffer.getvalue()
