"""Tests for identifier conversion and build statistics."""

import pytest

from exgen.build_types import BuildStats
from exgen.naming import atom_name, function_name, module_name, numbered, snake_case, var_name


class TestSnakeCase:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("userName", "user_name"),
            ("HTTPServer", "http_server"),
            ("parseJSONValue", "parse_json_value"),
            ("_privateThing", "_private_thing"),
            ("already_snake", "already_snake"),
            ("_", "_"),
        ],
    )
    def test_conversion(self, name, expected):
        assert snake_case(name) == expected


class TestTargetNames:
    def test_reserved_variable_gets_suffix(self):
        assert var_name("end") == "end_"

    def test_variable_starting_with_digit_is_prefixed(self):
        assert var_name("2d") == "v_2d"

    def test_reserved_function_gets_suffix(self):
        assert function_name("when") == "when_"

    def test_atom_keeps_reserved_words(self):
        assert atom_name("end") == "end"

    def test_module_path_is_capitalized(self):
        assert module_name("my.pack.fooBar") == "My.Pack.FooBar"

    def test_numbered_skips_taken_names(self):
        assert numbered("x", set()) == "x"
        assert numbered("x", {"x", "x_2"}) == "x_3"


class TestBuildStats:
    def test_report_lists_rewrites_and_fallbacks(self):
        stats = BuildStats()
        stats.record_rewrite("map_literal")
        stats.record_rewrite("map_literal")
        stats.record_fallback("generic_block")
        stats.modules_built = 2
        stats.functions_built = 5
        report = stats.report()
        assert "Modules: 2, functions: 5" in report
        assert "map_literal" in report and "2" in report
        assert "generic_block" in report

    def test_report_lists_passthrough_methods_once(self):
        stats = BuildStats()
        stats.passthrough_methods.extend(["List.frobnicate", "List.frobnicate"])
        report = stats.report()
        assert report.count("List.frobnicate") == 1

    def test_empty_report_omits_optional_sections(self):
        report = BuildStats().report()
        assert "Fallback" not in report
        assert "Passthrough" not in report
