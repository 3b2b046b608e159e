"""Parser tests: statements, blocks, abbreviations and positioned errors."""

import pytest

from backend.turtlescript.errors import TurtleSyntaxError
from backend.turtlescript.expressions import Binary, Num, VarRef
from backend.turtlescript.lexer import parse, preprocess, resolve_abbrev, strip_comment
from backend.turtlescript.nodes import Absolute, Break, Continue, Hsv, If, Ignore, Move, Offset, Pen, Repeat, Turn, Var


def test_movement_commands_and_abbreviations():
    prog = parse("f 10\nba 5\nl 90\nright 45\nFORWARD 1")
    assert prog == [
        Move("forward", Num(10)),
        Move("back", Num(5)),
        Turn("left", Num(90)),
        Turn("right", Num(45)),
        Move("forward", Num(1)),
    ]
    assert [i.line for i in prog] == [1, 2, 3, 4, 5]


def test_resolve_abbrev_leaves_other_words_alone():
    assert resolve_abbrev("fo") == "forward"
    assert resolve_abbrev("r") == "right"
    assert resolve_abbrev("repeat") == "repeat"
    assert resolve_abbrev("hsv") == "hsv"


def test_assignment_wins_over_abbreviation():
    # `f` alone abbreviates forward, but `f = 3` is an assignment
    assert parse("f = 3") == [Var("f", Num(3), True)]


def test_var_declaration_and_expression():
    prog = parse("var Size = 2 * 3")
    assert prog == [Var("size", Binary("*", Num(2), Num(3)), False)]


def test_pen_and_hsv_params():
    prog = parse("pen DOWN\nhsv _ +10 -d\nhsv 200 s 0.5")
    assert prog[0] == Pen("down")
    assert prog[1] == Hsv(Ignore(), Offset(10.0, "+"), Offset(VarRef("d"), "-"))
    assert prog[2] == Hsv(Absolute(200.0), Absolute(VarRef("s")), Absolute(0.5))


def test_comments_and_blank_lines_are_skipped():
    src = "// header\n\nforward 10 # trailing\n   \n# done"
    prog = parse(src)
    assert prog == [Move("forward", Num(10))]
    assert prog[0].line == 3
    assert strip_comment("left 1 // x # y") == "left 1 "


def test_blocks_by_indentation():
    src = (
        "repeat 2:\n"
        "  forward 1\n"
        "  if x > 1:\n"
        "    left 90\n"
        "  right 90\n"
        "pen up\n"
    )
    prog = parse(src)
    assert len(prog) == 2
    loop = prog[0]
    assert isinstance(loop, Repeat) and loop.mode == "count"
    assert loop.count == Num(2)
    assert [type(i) for i in loop.body] == [Move, If, Turn]
    assert loop.body[1].body == (Turn("left", Num(90)),)
    assert prog[1] == Pen("up")


def test_tab_counts_as_four_spaces():
    lines = preprocess("\tforward 1\n    back 1")
    assert lines[0].indent == lines[1].indent == 4
    prog = parse("repeat 2:\n\tforward 1\n    back 1\nleft 1")
    assert len(prog[0].body) == 2


def test_repeat_until_and_loop_controls():
    src = "repeat until i == 3:\n  if i == 1:\n    break\n  continue"
    loop = parse(src)[0]
    assert loop.mode == "until"
    assert loop.until == Binary("==", VarRef("i"), Num(3))
    assert loop.body[0].body == (Break(),)
    assert loop.body[1] == Continue()


def test_empty_block_is_allowed():
    prog = parse("repeat 3:\nforward 1")
    assert prog[0].body == ()
    assert prog[1] == Move("forward", Num(1))


def test_unknown_command_reports_line_one():
    with pytest.raises(TurtleSyntaxError) as exc:
        parse("xyz 1")
    assert "Unknown command" in exc.value.msg
    assert exc.value.line == 1
    assert exc.value.column == 1


@pytest.mark.parametrize(
    "src, fragment, line",
    [
        ("forward", "forward requires 1 argument", 1),
        ("pen sideways", "Invalid pen state", 1),
        ("hsv 1 2", "hsv requires 3 params", 1),
        ("hsv +x! 0 0", "Invalid HSV offset", 1),
        ("forward 1\nrepeat 3\n  left 1", "Expected ':' after repeat", 2),
        ("repeat 3: left 1", "Unexpected text after ':'", 1),
        ("repeat until:\n  left 1", "repeat until requires an expression", 1),
        ("if 1:\n  break", "'break' outside repeat loop", 2),
        ("continue", "'continue' outside repeat loop", 1),
        ("repeat 2:\n  break now", "break takes no arguments", 2),
        ("var 1x = 3", "Invalid variable name", 1),
        ("var x 3", "Invalid var declaration", 1),
    ],
)
def test_syntax_errors(src, fragment, line):
    with pytest.raises(TurtleSyntaxError) as exc:
        parse(src)
    assert fragment in exc.value.msg
    assert exc.value.line == line


def test_expression_error_column_is_absolute():
    with pytest.raises(TurtleSyntaxError) as exc:
        parse("forward 1 +")
    assert "Unexpected end of expression" in exc.value.msg
    assert exc.value.column == 12
    assert str(exc.value).endswith("(line 1, col 12)")


def test_parse_requires_text():
    with pytest.raises(TypeError):
        parse(None)
