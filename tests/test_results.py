"""Tests for filter rules, sorting and the output writers."""

import csv
import json

import pytest

from errors import ConfigError
from results import (
    CSV_HEADER,
    build_filters,
    csv_row,
    parse_filter_rule,
    passes_filters,
    regex_rule,
    sort_results,
    write_output,
)
from resume_cache import CheckedRecord


@pytest.fixture
def records():
    return [CheckedRecord.create(d, True) for d in ["zz.io", "abc.com", "b.net", "aa.com"]]


class TestFilters:
    @pytest.mark.parametrize("rule,domain,expected", [
        ("tld:com", "go.com", True),
        ("tld:com,.io", "go.io", True),
        ("TLD:COM", "go.net", False),
        ("length<=3", "abc.com", True),
        ("length<=3", "abcd.com", False),
        ("length>=2", "a.com", False),
        ("starts:go", "gopher.io", True),
        ("ends:ai", "openai.com", True),
        ("ends:ai", "open.ai", False),
    ])
    def test_rule_matches(self, rule, domain, expected):
        assert parse_filter_rule(rule).matches(domain) is expected

    @pytest.mark.parametrize("rule", ["size:3", "length<=abc", "tld:", "starts"])
    def test_bad_rules_are_config_errors(self, rule):
        with pytest.raises(ConfigError):
            parse_filter_rule(rule)

    def test_blank_rules_are_ignored(self):
        assert len(build_filters(["", "  ", "tld:com"])) == 1

    def test_all_rules_must_pass(self):
        filters = build_filters(["tld:com", "length<=2"])
        assert passes_filters("go.com", filters)
        assert not passes_filters("goo.com", filters)
        assert not passes_filters("go.io", filters)
        assert passes_filters("anything.io", [])

    def test_regex_rule_searches_full_domain(self):
        rule = regex_rule(r"^[a-z]{2}\.io$")
        assert rule.matches("ab.io")
        assert not rule.matches("abc.io")

    def test_invalid_regex(self):
        with pytest.raises(ConfigError):
            regex_rule("([a-z")


class TestSorting:
    def test_comfirst(self, records):
        assert [r.domain for r in sort_results(records, "comfirst")] == ["aa.com", "abc.com", "b.net", "zz.io"]

    def test_tld(self, records):
        assert [r.domain for r in sort_results(records, "tld")] == ["aa.com", "abc.com", "zz.io", "b.net"]

    def test_length(self, records):
        assert [r.domain for r in sort_results(records, "length")] == ["b.net", "aa.com", "zz.io", "abc.com"]

    def test_alpha(self, records):
        assert [r.domain for r in sort_results(records, "alpha")] == ["aa.com", "abc.com", "b.net", "zz.io"]

    def test_no_mode_keeps_order(self, records):
        assert sort_results(records, None) == records
        assert sort_results(records, "bogus") == records


class TestWriters:
    def test_txt(self, tmp_path, records):
        path = tmp_path / "out.txt"
        assert write_output(records, str(path), "txt") == 4
        assert path.read_text(encoding="utf-8").splitlines() == [r.domain for r in records]

    def test_json(self, tmp_path, records):
        path = tmp_path / "out.json"
        write_output(records, str(path), "json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert [d["domain"] for d in data] == [r.domain for r in records]
        assert data[0]["available"] is True

    def test_jsonl(self, tmp_path, records):
        path = tmp_path / "out.jsonl"
        write_output(records, str(path), "jsonl")
        lines = path.read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[1])["name"] == "abc"

    def test_csv(self, tmp_path, records):
        path = tmp_path / "nested" / "out.csv"
        write_output(records, str(path), "csv")
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[0] == CSV_HEADER
        assert rows[1][:4] == ["zz.io", "io", "zz", "true"]

    def test_unknown_format_falls_back_to_txt(self, tmp_path, records):
        path = tmp_path / "out.xml"
        write_output(records[:1], str(path), "xml")
        assert path.read_text(encoding="utf-8") == "zz.io\n"

    def test_empty_output(self, tmp_path):
        path = tmp_path / "out.txt"
        assert write_output([], str(path)) == 0
        assert path.read_text(encoding="utf-8") == ""

    def test_csv_row_for_unknown(self):
        rec = CheckedRecord.create("x.com", None, "timeout")
        assert csv_row(rec)[3:] == ["", rec.checked_at, "timeout"]
