import pytest
from decimal import Decimal

from tdd.tdd_datatypes import (
    Fragment, FunctionCall, HashNode, SequenceNode, CallNode, PairNode, Word, Literal
)
from tdd.tdd_errors import TddSyntaxError
from tdd.tdd_interpreter import evaluate, evaluate_as_hash, evaluate_as_sequence
from tdd.tdd_parser import parse, convert_word


# --- scalars ---

@pytest.mark.parametrize(
    "word,expected",
    [
        ("true", True),
        ("false", False),
        ("42", 42),
        ("-7", -7),
        ("+5", 5),
        ("2.5", Decimal("2.5")),
        ("1e3", Decimal("1000")),
        ("1.2.3", "1.2.3"),
        ("green", "green"),
        ("data/foo.xml", "data/foo.xml"),
    ],
)
def test_convert_word(word, expected):
    value = convert_word(word)
    assert value == expected
    assert type(value) is type(expected)


def test_integers_stay_exact_and_decimals_keep_precision():
    assert evaluate("[1, 0.1, 12345678901234567890]") == [1, Decimal("0.1"), 12345678901234567890]
    assert isinstance(evaluate("0.1"), Decimal)


@pytest.mark.parametrize(
    "src,expected",
    [
        (r'"a\nb"', "a\nb"),
        (r'"tab\there"', "tab\there"),
        (r'"quote \" and \\"', 'quote " and \\'),
        (r"'single \' quote'", "single ' quote"),
        (r'"\x41\u00e9"', "A\u00e9"),
        (r'"\l\g\a"', "<>&"),
        (r'r"C:\temp\new"', r"C:\temp\new"),
        (r"r'a\b'", r"a\b"),
    ],
)
def test_string_literals(src, expected):
    assert evaluate(src) == expected


def test_line_continuation_in_string():
    assert evaluate('"one \\\n two"') == "one  two"


def test_invalid_escape_is_a_syntax_error():
    with pytest.raises(TddSyntaxError) as excinfo:
        parse(r'"a\qb"')
    assert "Invalid escape sequence \\q" in excinfo.value.message
    assert excinfo.value.position == 2


def test_invalid_hex_escape():
    with pytest.raises(TddSyntaxError, match="Invalid hexadecimal UNICODE escape"):
        parse(r'"\xZZ"')


# --- collections ---

def test_sequence_order_is_preserved():
    assert evaluate("[c, b, a, 3, 2, 1]") == ["c", "b", "a", 3, 2, 1]


def test_hash_order_and_values():
    result = evaluate('{z: 1, "a key": two, m: [x]}')
    assert list(result) == ["z", "a key", "m"]
    assert result == {"z": 1, "a key": "two", "m": ["x"]}


def test_line_breaks_separate_items():
    assert evaluate("[\n  1\n  2\n  3\n]") == [1, 2, 3]
    assert evaluate("{\n  a: 1\n  b: 2\n}") == {"a": 1, "b": 2}


def test_trailing_comma_is_allowed():
    assert evaluate("[1, 2,]") == [1, 2]
    assert evaluate("{a: 1,}") == {"a": 1}


def test_bare_key_means_true():
    assert evaluate("{verbose, level: 2}") == {"verbose": True, "level": 2}


def test_hash_added_to_hash():
    assert evaluate("{a: 1, {b: 2, c: 3}}") == {"a": 1, "b": 2, "c": 3}


def test_duplicate_key_last_wins_and_keeps_first_position():
    result = evaluate("{a: 1, b: 2, a: 3}")
    assert result == {"a": 3, "b": 2}
    assert list(result) == ["a", "b"]


def test_colon_is_allowed_in_words_outside_keys():
    assert evaluate("[a:b, http://example.com]") == ["a:b", "http://example.com"]
    assert evaluate("{url: http://example.com}") == {"url": "http://example.com"}


def test_comments():
    src = "[\n  1,\n  # a line comment\n  2 <#-- block comment --> , 3\n]"
    assert evaluate(src) == [1, 2, 3]


def test_hash_sign_inside_a_line_is_not_a_comment():
    assert evaluate_as_hash("color: #ff0000") == {"color": "#ff0000"}


def test_top_level_sequence_with_call():
    result = evaluate_as_sequence('"Big Joe", 1, [11, 22, 33], properties(foo.properties)')
    assert result == ["Big Joe", 1, [11, 22, 33], FunctionCall("properties", ["foo.properties"])]


def test_top_level_hash_with_deferred_call():
    result = evaluate("{bgColor: green, doc: xml(data/foo.xml)}")
    assert result["bgColor"] == "green"
    assert result["doc"] == FunctionCall("xml", ["data/foo.xml"])


def test_nested_get_call_is_parsed():
    assert evaluate('get("a","b")') == FunctionCall("get", ["a", "b"])


def test_properties_like_setting():
    result = evaluate_as_hash('propertiesLike: {ending: ".bsh", removeExtension: true}')
    assert result == {"propertiesLike": {"ending": ".bsh", "removeExtension": True}}


def test_empty_hash_and_sequence_content():
    assert evaluate_as_hash("") == {}
    assert evaluate_as_hash("  # only a comment\n") == {}
    assert evaluate_as_sequence("") == []


# --- source spans ---

def test_nodes_keep_their_fragments():
    tree = parse("{a: [1, 2], b: f(x, y)}")
    assert isinstance(tree, HashNode)
    assert str(tree.fragment) == "{a: [1, 2], b: f(x, y)}"
    assert str(tree.body) == "a: [1, 2], b: f(x, y)"

    pair_a, pair_b = tree.items
    assert isinstance(pair_a, PairNode) and pair_a.key == "a"
    assert isinstance(pair_a.value, SequenceNode)
    assert str(pair_a.value.fragment) == "[1, 2]"
    assert str(pair_a.value.body) == "1, 2"

    call = pair_b.value
    assert isinstance(call, CallNode)
    assert call.name == "f"
    assert str(call.body) == "x, y"
    assert [p.text for p in call.params] == ["x", "y"]


def test_word_and_literal_nodes():
    seq = parse('[12, "12"]')
    word, literal = seq.items
    assert isinstance(word, Word) and word.value == 12 and word.text == "12"
    assert isinstance(literal, Literal) and literal.value == "12"


def test_parse_fragment_uses_offsets_of_the_full_text():
    text = "prefix [1, 2] suffix"
    tree = parse(Fragment(text, 7, 13))
    assert tree.fragment.start == 7
    assert tree.fragment.end == 13
    assert tree.fragment.text is text


# --- syntax errors ---

def test_unterminated_sequence_points_at_the_end():
    with pytest.raises(TddSyntaxError) as excinfo:
        parse("[1,2,")
    err = excinfo.value
    assert err.position == 5
    assert err.char_position == 6
    assert 'the list was not closed with "]" (opened at character 1)' in err.message


def test_empty_text():
    with pytest.raises(TddSyntaxError, match="The text is empty"):
        parse("   ")


@pytest.mark.parametrize(
    "src,fragment,position",
    [
        ("1 2", "Extra character(s) after the expression", 2),
        ('"abc', "The closing quotation mark of the string is missing", 0),
        ("{a: 1; b: 2}", "Semicolon (;) was unexpected here", 5),
        ("{a = 1}", "Equals sign (=) was unexpected here", 3),
        ("[1, , 2]", "List item is missing before the comma", 4),
        ('["a": 1]', "This is a list, and not a hash", 4),
        ("{a: 1]", "the hash was not closed", 5),
        ("{a: 1 b: 2}", "No separator was used before the item", 6),
        ("[1 <#-- open", 'Comment was not closed with "-->"', 3),
    ],
)
def test_syntax_error_messages(src, fragment, position):
    with pytest.raises(TddSyntaxError) as excinfo:
        parse(src)
    assert fragment in excinfo.value.message
    assert excinfo.value.position == position


def test_syntax_error_location_and_excerpt():
    with pytest.raises(TddSyntaxError) as excinfo:
        parse("{\n  a: ;\n}", file_name="settings.tdd")
    err = excinfo.value
    assert err.message.startswith("TDD syntax error: ")
    assert err.line == 2
    assert err.column == 6
    rendered = str(err)
    assert "Error location in settings.tdd: line 2, column 6 (character 8)" in rendered
    assert "  a: ;" in rendered
    assert rendered.endswith("^")


def test_unknown_mode():
    with pytest.raises(ValueError):
        parse("1", mode="table")
