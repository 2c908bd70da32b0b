import re

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from video_bot.formats import FormatInfo

CANCEL_ACTION = "cancel"
BEST_ACTION = "best"
ACTION_PATTERN = r"^(cancel|best|[0-9]+)$"
_HEIGHT_REGEX = re.compile(r"[0-9]+")
BUTTONS_PER_ROW = 2


def encode_action(action: str | int) -> str:
    if action in (CANCEL_ACTION, BEST_ACTION):
        return action
    if isinstance(action, int) and not isinstance(action, bool) and action > 0:
        return str(action)
    raise ValueError(f"Not an action: {action!r}")


def parse_action(data: str) -> str | int:
    """Turn callback data back into ``"cancel"``, ``"best"`` or a target height."""
    if data in (CANCEL_ACTION, BEST_ACTION):
        return data
    if data and _HEIGHT_REGEX.fullmatch(data):
        height = int(data)
        if height > 0:
            return height
    raise ValueError(f"Unknown action code: {data!r}")


def format_label(fmt: FormatInfo) -> str:
    if fmt.estimated_size_mb > 0:
        return f"{fmt.height}p (~{fmt.estimated_size_mb} MB)"
    return f"{fmt.height}p"


def build_quality_keyboard(formats: list[FormatInfo], include_cancel: bool = True) -> InlineKeyboardMarkup:
    rows: list[list[InlineKeyboardButton]] = []
    current_row: list[InlineKeyboardButton] = []
    for fmt in formats:
        current_row.append(InlineKeyboardButton(format_label(fmt), callback_data=encode_action(fmt.height)))
        if len(current_row) == BUTTONS_PER_ROW:
            rows.append(current_row)
            current_row = []
    if current_row:
        rows.append(current_row)

    last_row = [InlineKeyboardButton("Best available quality", callback_data=BEST_ACTION)]
    if include_cancel:
        last_row.append(InlineKeyboardButton("Cancel", callback_data=CANCEL_ACTION))
    rows.append(last_row)
    return InlineKeyboardMarkup(rows)


def build_selection_prompt(too_large: list[FormatInfo], limit_mb: int) -> str:
    text = "Select video quality:"
    if too_large:
        skipped = ", ".join(f"{fmt.height}p" for fmt in too_large)
        text += f"\n\nUnavailable due to the Telegram {limit_mb} MB limit: {skipped}"
    return text
