from __future__ import annotations

from agent_bridge.utils.json_scan import extract_balanced_object, parse_balanced_object


def test_extract_ignores_braces_inside_strings() -> None:
    text = 'noise {"a": "}{", "b": {"c": 1}} trailing }'
    assert extract_balanced_object(text) == '{"a": "}{", "b": {"c": 1}}'


def test_extract_after_marker() -> None:
    text = '{"first": 1} "serverInfo":{"name":"srv","version":"1.0"}'
    assert parse_balanced_object(text, '"serverInfo"') == {"name": "srv", "version": "1.0"}


def test_missing_marker_or_unclosed_object() -> None:
    assert extract_balanced_object('{"a": 1}', "missing") is None
    assert extract_balanced_object('prefix {"a": {"b": 1}') is None
    assert parse_balanced_object("{not json}") is None
