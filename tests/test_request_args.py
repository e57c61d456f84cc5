"""Tests for core/request_args.py: argument and command-text collection."""

from __future__ import annotations

import json

import pytest
from multidict import MultiDict

from core.errors import InvalidInputError
from core.request_args import RequestBody, collect_args, collect_command_text, collect_text, split_shell_words


def _json_body(payload: str) -> RequestBody:
    return RequestBody(text=payload, json=json.loads(payload))


class TestCollectArgs:

    def test_query_arg_wins_over_json_body(self):
        assert collect_args(MultiDict([("arg", "foo")]), _json_body('{"args":["bar"]}')) == ["foo"]

    def test_repeated_arg_params_keep_order(self):
        query = MultiDict([("arg", "--memory"), ("arg", "512m"), ("args", "ignored")])
        assert collect_args(query) == ["--memory", "512m"]

    def test_args_param_csv(self):
        assert collect_args({"args": "inspect, --format,{{.State}}"}) == ["inspect", "--format", "{{.State}}"]

    def test_args_param_shell_words(self):
        assert collect_args({"args": "update --cpus '1.5'"}) == ["update", "--cpus", "1.5"]

    def test_json_args_when_query_empty(self):
        body = _json_body('{"args": ["--restart", " unless-stopped ", ""]}')
        assert collect_args({"arg": "  "}, body) == ["--restart", "unless-stopped"]

    def test_raw_body_shell_words_last(self):
        body = RequestBody(text='--label "a b"')
        assert collect_args({}, body) == ["--label", "a b"]

    def test_json_body_is_not_reused_as_raw_text(self):
        assert collect_args({}, _json_body('{"other": 1}')) == []

    def test_unbalanced_quotes_are_invalid_input(self):
        with pytest.raises(InvalidInputError):
            collect_args({"args": "echo 'oops"})


class TestCollectText:

    def test_command_query_first(self):
        body = _json_body('{"cmd": "uptime"}')
        assert collect_command_text({"cmd": "ls -la"}, body) == "ls -la"

    def test_command_alias_param(self):
        assert collect_command_text({"command": "df -h"}) == "df -h"

    def test_json_cmd_then_command(self):
        assert collect_command_text({}, _json_body('{"command": "whoami"}')) == "whoami"
        assert collect_command_text({}, _json_body('{"cmd": "id", "command": "whoami"}')) == "id"

    def test_raw_body_text(self):
        assert collect_command_text({}, RequestBody(text="  cat /etc/hostname \n")) == "cat /etc/hostname"

    def test_non_string_json_fields_are_skipped(self):
        assert collect_text({}, _json_body('{"target": ["x"]}'), "target") == ""
        assert collect_text({}, _json_body('{"target": true}'), "target") == ""

    def test_json_scalar_body_is_used_as_text(self):
        assert collect_text({}, _json_body("42"), "target") == "42"
        assert collect_command_text({}, _json_body('"ls -la"')) == "ls -la"
        assert collect_args({}, _json_body('"--memory 512m"')) == ["--memory", "512m"]

    def test_json_array_body_is_not_raw_text(self):
        assert collect_command_text({}, _json_body('["ls"]')) == ""

    def test_empty_everywhere(self):
        assert collect_command_text({}) == ""


def test_split_shell_words():
    assert split_shell_words("") == []
    assert split_shell_words('a "b c" d') == ["a", "b c", "d"]
