"""Unit tests for the G-code command model and transforms."""

import pytest

from hydra_print.core.protocol.gcode import (
    Command,
    apply_offsets,
    coerce_command,
    expand_code,
    format_number,
    parse_line,
    render,
    round_move_axes,
)


class TestParseLine:

    def test_move(self):
        command = parse_line("G1 X10 Y5.5 F3000")
        assert command.name == "G1"
        assert command.args == {"x": 10, "y": 5.5, "f": 3000}
        assert command.raw is None
        assert command.is_move

    def test_lowercase_words(self):
        command = parse_line("g0 x1")
        assert command.name == "G0"
        assert command.args == {"x": 1}

    @pytest.mark.parametrize("line", ["", "   ", "; just a comment", "(header)"])
    def test_blank_and_comment_lines(self, line):
        assert parse_line(line) is None

    def test_strips_comments(self):
        command = parse_line("G1 X1 (move) ; to the left")
        assert render(command) == "G1 X1"

    def test_flag_arguments(self):
        command = parse_line("G28 X Y")
        assert command.args == {"x": True, "y": True}
        assert render(command) == "G28 X Y"

    def test_free_text_is_kept_raw(self):
        command = parse_line("M117 Hello world")
        assert command.raw == "M117 Hello world"
        assert command.name == "M117"
        assert not command.is_move

    def test_unknown_word_is_raw(self):
        command = parse_line("hello")
        assert command.raw == "hello"

    @pytest.mark.parametrize("word, name", [("G00", "G0"), ("G01", "G1"), ("g0", "G0"), ("M0104", "M104"), ("G28", "G28")])
    def test_leading_zeros_normalized(self, word, name):
        assert parse_line(f"{word} X1").name == name

    def test_zero_padded_move_is_a_move(self):
        command = parse_line("G01 X10")
        assert command.is_move
        assert render(apply_offsets(command, {"offset_x": 2})) == "G1 X12"
        assert round_move_axes("G01 X1.23456\n") == "G1 X1.2346"

    def test_coerce_rejects_blank(self):
        with pytest.raises(ValueError):
            coerce_command("; nothing")


class TestRender:

    @pytest.mark.parametrize("value,expected", [
        (12, "12"),
        (12.0, "12"),
        (4.0, "4"),
        (0.5, "0.5"),
        (-1.25, "-1.25"),
        (1.1 + 2.2, "3.3"),
    ])
    def test_format_number(self, value, expected):
        assert format_number(value) == expected

    def test_expand_code_adds_line_ending(self):
        assert expand_code(parse_line("G28")) == "G28\n"

    def test_raw_renders_verbatim(self):
        assert expand_code(Command(name="M117", raw="M117 Done\n")) == "M117 Done\n"

    def test_with_retry_counts_attempts(self):
        command = parse_line("G1 X1")
        retried = command.with_retry().with_retry()
        assert retried.attempts == 2
        assert command.attempts == 0
        assert render(retried) == "G1 X1"


class TestApplyOffsets:

    def test_offsets_move(self):
        command = parse_line("G1 X10 Y5")
        shifted = apply_offsets(command, {"offset_x": 2, "offset_y": -1, "offset_z": 0})
        assert render(shifted) == "G1 X12 Y4"

    def test_does_not_mutate_input(self):
        command = parse_line("G1 X10 Y5")
        apply_offsets(command, {"offset_x": 2})
        assert render(command) == "G1 X10 Y5"

    def test_zero_axis_is_offset(self):
        shifted = apply_offsets(parse_line("G0 X0 Z0"), {"offset_x": 3, "offset_z": 0.2})
        assert shifted.args == {"x": 3, "z": 0.2}

    def test_absent_axes_stay_absent(self):
        shifted = apply_offsets(parse_line("G1 E5 F1200"), {"offset_x": 2, "offset_y": 2, "offset_z": 2})
        assert render(shifted) == "G1 E5 F1200"

    @pytest.mark.parametrize("line", ["G28", "G92 X0", "M104 S200", "M117 G1 X10"])
    def test_non_moves_unchanged(self, line):
        command = parse_line(line)
        assert apply_offsets(command, {"offset_x": 5}) is command

    def test_string_offsets(self):
        shifted = apply_offsets(parse_line("G1 Z1"), {"offset_z": "0.5"})
        assert render(shifted) == "G1 Z1.5"

    def test_missing_offsets_are_zero(self):
        command = parse_line("G1 X1")
        assert apply_offsets(command, {}) is command


class TestRoundMoveAxes:

    def test_rounds_to_four_places(self):
        assert round_move_axes("G1 X1.23456789 Y2 E0.1\n") == "G1 X1.2346 Y2.0000 E0.1000"

    def test_non_move_passes_through(self):
        assert round_move_axes("M105\n") == "M105"

    def test_raw_line_passes_through(self):
        assert round_move_axes("M117 G1 X1.234567\n") == "M117 G1 X1.234567"
