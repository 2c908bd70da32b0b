import pytest

from video_bot.formats import MEGABYTE, FormatInfo
from video_bot.menu import (
    BEST_ACTION,
    CANCEL_ACTION,
    build_quality_keyboard,
    build_selection_prompt,
    encode_action,
    format_label,
    parse_action,
)


def _rows(markup):
    return [[(button.text, button.callback_data) for button in row] for row in markup.inline_keyboard]


class TestKeyboard:
    def test_two_sendable_formats(self):
        markup = build_quality_keyboard([FormatInfo(360, 50 * MEGABYTE), FormatInfo(720, 300 * MEGABYTE)])
        assert _rows(markup) == [
            [("360p (~50 MB)", "360"), ("720p (~300 MB)", "720")],
            [("Best available quality", "best"), ("Cancel", "cancel")],
        ]

    def test_odd_count_leaves_short_row(self):
        markup = build_quality_keyboard([FormatInfo(h) for h in (144, 240, 360)], include_cancel=False)
        assert _rows(markup) == [
            [("144p", "144"), ("240p", "240")],
            [("360p", "360")],
            [("Best available quality", "best")],
        ]

    def test_every_option_parses_back(self):
        formats = [FormatInfo(h, h * MEGABYTE) for h in (144, 360, 480, 720, 1080)]
        markup = build_quality_keyboard(formats)
        heights = [
            parse_action(button.callback_data)
            for row in markup.inline_keyboard[:-1]
            for button in row
        ]
        assert heights == [144, 360, 480, 720, 1080]
        last_row = [parse_action(button.callback_data) for button in markup.inline_keyboard[-1]]
        assert last_row == [BEST_ACTION, CANCEL_ACTION]


class TestActionCodes:
    @pytest.mark.parametrize("action", [CANCEL_ACTION, BEST_ACTION, 144, 720, 4320])
    def test_round_trip(self, action):
        assert parse_action(encode_action(action)) == action

    @pytest.mark.parametrize("data", ["", "q:720", "0", "-720", "720p", "BEST", "1.5", "7 20"])
    def test_malformed_codes_rejected(self, data):
        with pytest.raises(ValueError):
            parse_action(data)

    @pytest.mark.parametrize("action", [0, -1, True, "worst", 720.0])
    def test_invalid_actions_not_encoded(self, action):
        with pytest.raises(ValueError):
            encode_action(action)


def test_label_without_size():
    assert format_label(FormatInfo(480, 0)) == "480p"


def test_label_below_one_megabyte_omits_size():
    assert format_label(FormatInfo(144, 1000)) == "144p"


def test_prompt_lists_too_large_heights():
    text = build_selection_prompt([FormatInfo(1440, 1), FormatInfo(2160, 1)], 2000)
    assert text.startswith("Select video quality:")
    assert "2000 MB" in text
    assert text.endswith("1440p, 2160p")


def test_prompt_without_too_large():
    assert build_selection_prompt([], 2000) == "Select video quality:"
