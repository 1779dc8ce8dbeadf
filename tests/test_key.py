from datetime import datetime, timezone

import pytest

from profship import flameql
from profship.flameql import FlameQLError, parse_query
from profship.key import (
    Key,
    from_tree_to_dict_key,
    parse_key,
    parse_tree_key,
    tree_key,
)


def test_parse_plain_name():
    k = parse_key("app")
    assert k.app_name() == "app"
    assert k.dict_key() == "app"
    assert k.normalized() == "app{}"


@pytest.mark.parametrize("text", ["app{a=1,b=2}", "svc.x-y{env=prod}", "app{}"])
def test_normalized_round_trip(text):
    assert parse_key(text).normalized() == text
    assert parse_key(text).segment_key() == text


def test_normalized_sorts_tags():
    assert parse_key("app{b=2,a=1}").normalized() == parse_key("app{a=1,b=2}").normalized()


def test_whitespace_is_trimmed():
    assert parse_key(" app { a = 1 }").labels == parse_key("app{a=1}").labels


def test_reserved_key_in_tags_overrides_name():
    k = parse_key("app{__name__=other}")
    assert k.app_name() == "other"


@pytest.mark.parametrize(
    "text, kind",
    [
        ("", flameql.APP_NAME_IS_REQUIRED),
        ("bad/app", flameql.INVALID_APP_NAME),
        ("app{a-b=1}", flameql.INVALID_TAG_KEY),
        ("app{=1}", flameql.TAG_KEY_IS_REQUIRED),
    ],
)
def test_parse_key_errors(text, kind):
    with pytest.raises(FlameQLError) as info:
        parse_key(text)
    assert info.value.kind == kind


def test_add_and_remove():
    k = parse_key("app")
    k.add("env", "prod")
    assert k.labels["env"] == "prod"
    k.add("env", "")
    assert "env" not in k.labels
    assert k.normalized() == parse_key("app").normalized()


def test_clone_is_independent():
    k = parse_key("app{a=1}")
    c = k.clone()
    c.add("b", "2")
    assert c == parse_key("app{a=1,b=2}")
    assert k == parse_key("app{a=1}")


def test_tree_key_round_trip():
    when = datetime.fromtimestamp(1234567890, tz=timezone.utc)
    k = parse_key("foo")
    text = k.tree_key(3, when)
    assert text == tree_key(k.normalized(), 3, 1234567890)
    parsed_time, level = parse_tree_key(text)
    assert parsed_time == when
    assert level == 3


def test_from_tree_to_dict_key():
    assert from_tree_to_dict_key("foo{}:0:1234567890") == "foo"


def test_from_tree_to_dict_key_round_trip():
    k = parse_key("svc{a=1}")
    assert from_tree_to_dict_key(tree_key(k.normalized(), 0, 5)) == k.dict_key()


@pytest.mark.parametrize("text", ["foo", "foo:1", "foo:x:1", "foo:1:y", "foo: 1:2"])
def test_parse_tree_key_invalid(text):
    with pytest.raises(ValueError):
        parse_tree_key(text)


@pytest.mark.parametrize(
    "query, expected",
    [
        ('app{env="prod"}', True),
        ('app{env="dev"}', False),
        ('app{env!="dev"}', True),
        ('app{env!="prod"}', False),
        ('app{env=~"pr.*"}', True),
        ('app{region="x"}', False),
        ('app{region!="x"}', True),
        ("app", True),
        ("other", False),
    ],
)
def test_match(query, expected):
    k = parse_key("app{env=prod}")
    assert k.match(parse_query(query)) is expected


def test_empty_key_defaults():
    k = Key()
    assert k.app_name() == ""
    assert k.labels == {}
    assert k.normalized() == "{}"