"""Tests for pattern expansion, brute force and the candidate stream."""

import itertools

import pytest

from errors import ConfigError
from generator import (
    IANA_TLDS,
    PREMIUM_TLDS,
    CandidateStream,
    Pattern,
    expand_brute_force,
    expand_pattern,
    is_valid_domain,
    normalize_alphabet,
    resolve_tlds,
    split_domain,
)


class TestPatternExpander:
    def test_single_wildcard_odometer_order(self):
        assert list(expand_pattern(Pattern.parse("a*c"), "xy")) == ["axc", "ayc"]

    def test_leftmost_wildcard_varies_slowest(self):
        out = list(expand_pattern(Pattern.parse("**"), "ab"))
        assert out == ["aa", "ab", "ba", "bb"]

    @pytest.mark.parametrize("text,k", [("abc", 0), ("a*", 1), ("*x*", 2), ("***", 3)])
    def test_count_is_alphabet_size_to_the_k(self, text, k):
        out = list(expand_pattern(Pattern.parse(text), "xyz"))
        assert len(out) == 3 ** k
        assert len(set(out)) == len(out)

    def test_restartable(self):
        p = Pattern.parse("g*o*")
        assert list(expand_pattern(p, "abc")) == list(expand_pattern(p, "abc"))

    def test_pattern_is_lowercased(self):
        assert Pattern.parse(" Te*T.COM ").text == "te*t.com"

    def test_empty_pattern_rejected(self):
        with pytest.raises(ConfigError):
            Pattern.parse("  ")

    def test_lazy_over_huge_space(self):
        gen = expand_pattern(Pattern.parse("*" * 40), "abcdefghijklmnopqrstuvwxyz0123456789")
        first = list(itertools.islice(gen, 3))
        assert first == ["a" * 40, "a" * 39 + "b", "a" * 39 + "c"]


class TestBruteForce:
    def test_length_major_lexicographic(self):
        assert list(expand_brute_force(2, "ab")) == ["a", "b", "aa", "ab", "ba", "bb"]

    def test_count(self):
        assert sum(1 for _ in expand_brute_force(3, "abc")) == 3 + 9 + 27


class TestValidation:
    @pytest.mark.parametrize("domain", ["a.com", "go-go.io", "x1.ai", "sub.example.org", "a" * 63 + ".com"])
    def test_valid(self, domain):
        assert is_valid_domain(domain)

    @pytest.mark.parametrize("domain", [
        "com",                  # one label
        "-ab.com",              # leading hyphen
        "ab-.com",              # trailing hyphen
        "a..com",               # empty label
        "a.c",                  # tld too short
        "a.c0m",                # tld not alphabetic
        "a" * 64 + ".com",      # label too long
        "a_b.com",
        "",
        ("a" * 60 + ".") * 5 + "com",  # > 253 chars
    ])
    def test_invalid(self, domain):
        assert not is_valid_domain(domain)

    def test_split_domain(self):
        assert split_domain("Sub.Example.COM") == ("sub.example", "com")


class TestCandidateStream:
    def test_full_domain_pattern(self):
        stream = CandidateStream.from_pattern("te*t.com", ["net"], "ab")
        assert list(stream) == ["teat.com", "tebt.com"]

    def test_star_tld_suffix_pairs_every_tld_fastest(self):
        stream = CandidateStream.from_pattern("g*.*", ["com", "io"], "ab")
        assert list(stream) == ["ga.com", "ga.io", "gb.com", "gb.io"]
        assert stream.space_size == 4

    def test_bare_label_pairs_with_tlds(self):
        assert list(CandidateStream.from_pattern("x*", ["ai"], "ab")) == ["xa.ai", "xb.ai"]

    def test_invalid_candidates_dropped_and_counted(self):
        stream = CandidateStream.from_pattern("*a.*", ["com"], "-b")
        assert list(stream) == ["ba.com"]
        assert stream.invalid == 1
        assert stream.yielded == 1

    def test_brute_force_pairs_every_tld(self):
        stream = CandidateStream.brute_force(1, ["com", "io"], "ab")
        assert list(stream) == ["a.com", "a.io", "b.com", "b.io"]
        assert stream.space_size == 4
        assert stream.search_space_size() == 4

    def test_stream_is_pull_based(self):
        stream = CandidateStream.from_pattern("*" * 30 + ".*", ["com"])
        assert next(stream) == "a" * 30 + ".com"
        assert stream.yielded == 1


class TestTldsAndAlphabet:
    def test_default_tld(self):
        assert resolve_tlds(None) == ["com"]

    def test_named_sets(self):
        assert resolve_tlds("all") == IANA_TLDS
        assert resolve_tlds("premium") == PREMIUM_TLDS

    def test_explicit_list_normalised_and_deduped(self):
        assert resolve_tlds(" COM, .io,com,,net ") == ["com", "io", "net"]
        assert resolve_tlds(["io", "IO", "ai"]) == ["io", "ai"]

    def test_alphabet_dedupe(self):
        assert normalize_alphabet("abcab") == "abc"

    @pytest.mark.parametrize("bad", ["", "a*", "a."])
    def test_bad_alphabet(self, bad):
        with pytest.raises(ConfigError):
            normalize_alphabet(bad)
