"""API conformance test: verifies Python exposes all methods from tests/api.json."""

from __future__ import annotations

import json
import typing
from datetime import datetime
from pathlib import Path

from rrulekit import (
    AmbiguityPolicy,
    FoldPolicy,
    GapPolicy,
    ParseError,
    RRuleError,
    RRuleSet,
)
from rrulekit._error import RRuleErrorKind

_api_path = Path(__file__).parent / "api.json"
with open(_api_path) as _f:
    _api = json.load(_f)

_rule_set_api = _api["ruleSet"]

_TEXT = "DTSTART:19970902T090000\nRRULE:FREQ=DAILY;COUNT=3"


# ===========================================================================
# Static methods
# ===========================================================================


class TestStaticMethods:
    def test_parse(self) -> None:
        rule_set = RRuleSet.parse(_TEXT)
        assert isinstance(rule_set, RRuleSet)

    def test_validate(self) -> None:
        assert RRuleSet.validate(_TEXT) is True
        assert RRuleSet.validate("not a rule set") is False

    def test_starting(self) -> None:
        rule_set = RRuleSet.starting(datetime(1997, 9, 2, 9, 0))
        assert str(rule_set) == "DTSTART:19970902T090000"


# ===========================================================================
# Instance methods
# ===========================================================================


class TestInstanceMethods:
    _rule_set = RRuleSet.parse(_TEXT)
    _at = datetime(1997, 9, 3, 9, 0)

    def test_all(self) -> None:
        results = self._rule_set.all(2)
        assert isinstance(results, list)
        assert len(results) == 2
        assert all(isinstance(r, datetime) for r in results)

    def test_all_unchecked(self) -> None:
        assert len(self._rule_set.all_unchecked()) == 3

    def test_between(self) -> None:
        results = list(self._rule_set.between(datetime(1997, 9, 1), datetime(1997, 9, 30)))
        assert len(results) == 3

    def test_just_before(self) -> None:
        result = self._rule_set.just_before(self._at)
        assert isinstance(result, datetime)

    def test_just_after(self) -> None:
        result = self._rule_set.just_after(self._at)
        assert isinstance(result, datetime)

    def test_to_string(self) -> None:
        display = str(self._rule_set)
        assert isinstance(display, str)
        assert display == _TEXT


# ===========================================================================
# Getters
# ===========================================================================


class TestGetters:
    def test_timezone_none(self) -> None:
        assert RRuleSet.parse(_TEXT).timezone is None

    def test_timezone_present(self) -> None:
        rule_set = RRuleSet.parse("DTSTART;TZID=America/New_York:19970902T090000")
        assert rule_set.timezone == "America/New_York"

    def test_dtstart_is_civil(self) -> None:
        rule_set = RRuleSet.parse("DTSTART;TZID=America/New_York:19970902T090000")
        assert rule_set.dtstart == datetime(1997, 9, 2, 9, 0)
        assert rule_set.dtstart.tzinfo is None

    def test_policy_default(self) -> None:
        assert RRuleSet.parse(_TEXT).policy == AmbiguityPolicy()


# ===========================================================================
# Coverage: verify all api.json entries are exposed
# ===========================================================================


class TestApiCoverage:
    # Map camelCase names to the snake_case Python equivalents
    _STATIC_METHOD_MAP = {
        "parse": "parse",
        "validate": "validate",
        "starting": "starting",
    }
    _BUILDER_MAP = {
        "withPolicy": "with_policy",
        "rrule": "rrule",
        "exrule": "exrule",
        "rdate": "rdate",
        "exdate": "exdate",
    }
    _INSTANCE_METHOD_MAP = {
        "all": "all",
        "allUnchecked": "all_unchecked",
        "between": "between",
        "justBefore": "just_before",
        "justAfter": "just_after",
        "toString": "__str__",
    }
    _GETTER_MAP = {
        "dtstart": "dtstart",
        "timezone": "timezone",
        "policy": "policy",
        "rrules": "rrules",
        "exrules": "exrules",
    }

    def test_all_static_methods_exist(self) -> None:
        for method in _rule_set_api["staticMethods"]:
            py_name = self._STATIC_METHOD_MAP.get(method["name"])
            assert py_name is not None, f"unmapped static method: {method['name']}"
            assert hasattr(RRuleSet, py_name), f"RRuleSet missing static method: {py_name}"
            assert callable(getattr(RRuleSet, py_name))

    def test_all_builders_exist(self) -> None:
        instance = RRuleSet.parse(_TEXT)
        for method in _rule_set_api["builders"]:
            py_name = self._BUILDER_MAP.get(method["name"])
            assert py_name is not None, f"unmapped builder: {method['name']}"
            assert hasattr(instance, py_name), f"RRuleSet missing builder: {py_name}"
            assert callable(getattr(instance, py_name))

    def test_all_instance_methods_exist(self) -> None:
        instance = RRuleSet.parse(_TEXT)
        for method in _rule_set_api["instanceMethods"]:
            py_name = self._INSTANCE_METHOD_MAP.get(method["name"])
            assert py_name is not None, f"unmapped instance method: {method['name']}"
            assert hasattr(instance, py_name), f"RRuleSet missing instance method: {py_name}"
            assert callable(getattr(instance, py_name))

    def test_all_getters_exist(self) -> None:
        instance = RRuleSet.parse(_TEXT)
        for getter in _rule_set_api["getters"]:
            py_name = self._GETTER_MAP.get(getter["name"])
            assert py_name is not None, f"unmapped getter: {getter['name']}"
            assert hasattr(instance, py_name), f"RRuleSet missing getter: {py_name}"

    def test_policy_options_match(self) -> None:
        assert [p.value for p in FoldPolicy] == _api["policy"]["fold"]
        assert [p.value for p in GapPolicy] == _api["policy"]["gap"]

    def test_error_kinds_match(self) -> None:
        assert list(typing.get_args(RRuleErrorKind)) == _api["error"]["kinds"]

    def test_error_constructors_exist(self) -> None:
        for kind in _api["error"]["constructors"]:
            assert hasattr(RRuleError, kind), f"RRuleError missing constructor: {kind}"
            assert callable(getattr(RRuleError, kind))
        assert callable(ParseError.lex)

    def test_error_display_rich_exists(self) -> None:
        for method in _api["error"]["methods"]:
            py_name = "display_rich" if method["name"] == "displayRich" else method["name"]
            err = RRuleError.query("test message")
            assert hasattr(err, py_name), f"RRuleError missing method: {py_name}"
            assert callable(getattr(err, py_name))
