"""Tests for recursive field reference expansion."""

import pytest

from kdbxref import (
    MAX_ITERATIONS,
    MAX_RECURSION_DEPTH,
    CompilationContext,
    Database,
    Entry,
    ReferenceCache,
    ReferenceCompiler,
    compile_references,
)
from kdbxref.testing import ResolutionRecorder, build_reference_chain


@pytest.fixture
def db() -> Database:
    """Database with an admin entry and an entry referencing it."""
    db = Database.create()
    db.root_group.create_entry(title="A", username="admin001", password="s3cret")
    db.root_group.create_entry(title="B", notes="Login: {REF:U@T:A}")
    return db


@pytest.fixture
def recorder() -> ResolutionRecorder:
    return ResolutionRecorder()


class TestReferenceCache:
    """Tests for the substitution cache."""

    def test_first_value_wins(self) -> None:
        """Test that a cached token is never overwritten."""
        cache = ReferenceCache()
        assert cache.add("{REF:T@T:x}", "one")
        assert not cache.add("{REF:T@T:x}", "two")
        assert cache.get("{REF:T@T:x}") == "one"

    def test_keys_case_insensitive(self) -> None:
        """Test that tokens differing only in case share a slot."""
        cache = ReferenceCache()
        cache.add("{REF:T@T:x}", "one")
        assert "{ref:t@t:X}" in cache
        assert not cache.add("{ref:t@t:X}", "two")
        assert len(cache) == 1
        assert list(cache) == ["{REF:T@T:x}"]

    def test_keys_use_simple_case_mapping(self) -> None:
        """Test that tokens equal only under full case folding stay distinct."""
        cache = ReferenceCache()
        assert cache.add("{REF:U@T:Straße}", "one")
        assert "{REF:U@T:STRASSE}" not in cache
        assert cache.add("{REF:U@T:STRASSE}", "two")
        assert cache.apply("{REF:U@T:Straße} {REF:U@T:STRASSE}") == "one two"

    def test_apply_replaces_all_occurrences(self) -> None:
        """Test case-insensitive replacement of every occurrence."""
        cache = ReferenceCache()
        cache.add("{REF:U@T:A}", "admin")
        assert cache.apply("{REF:U@T:A} / {ref:u@t:a}") == "admin / admin"

    def test_apply_is_literal(self) -> None:
        """Test that backslashes and group syntax in values are kept."""
        cache = ReferenceCache()
        cache.add("{REF:P@T:A}", r"p\1\g<0>ss")
        assert cache.apply("{REF:P@T:A}") == r"p\1\g<0>ss"

    def test_missing_token(self) -> None:
        """Test get on an unknown token."""
        assert ReferenceCache().get("{REF:T@T:x}") is None


class TestCompileBasics:
    """Tests for the top-level compile contract."""

    def test_example_scenario(self, db: Database) -> None:
        """Test resolving a username reference in notes."""
        b = db.find_entries(title="B")[0]
        assert compile_references(b.notes, b, db) == "Login: admin001"

    @pytest.mark.parametrize(
        "text",
        [
            "plain text",
            "{not a ref}",
            "{REF",
            "REF:U@T:A}",
            "{REF:U@T:A",
            "curly } before {REF:U@T:A",
            "multi\nline\ttext",
        ],
    )
    def test_text_without_tokens_unchanged(self, db: Database, text: str) -> None:
        """Test that text without a complete token is returned as-is."""
        assert compile_references(text, None, db) == text

    def test_empty_text(self, db: Database) -> None:
        """Test that empty or missing text compiles to an empty string."""
        assert compile_references("", None, db) == ""
        assert compile_references(None, None, db) == ""

    def test_no_database(self) -> None:
        """Test that a missing database compiles to an empty string."""
        assert compile_references("{REF:U@T:A}", None, None) == ""
        assert compile_references("plain", None, None) == ""

    def test_case_insensitive_token(self, db: Database) -> None:
        """Test that marker, selectors and term ignore case."""
        db.root_group.create_entry(title="foo", username="foo-user")
        assert compile_references("{ref:u@t:foo}", None, db) == "foo-user"
        assert compile_references("{REF:U@T:FOO}", None, db) == "foo-user"

    def test_wanted_fields(self, db: Database) -> None:
        """Test each wanted selector."""
        a = db.find_entries(title="A")[0]
        a.url = "https://a.example.com"
        a.notes = "a notes"
        assert compile_references("{REF:T@U:admin001}", None, db) == "A"
        assert compile_references("{REF:U@T:A}", None, db) == "admin001"
        assert compile_references("{REF:P@T:A}", None, db) == "s3cret"
        assert compile_references("{REF:A@T:A}", None, db) == "https://a.example.com"
        assert compile_references("{REF:N@T:A}", None, db) == "a notes"
        assert compile_references("{REF:I@T:A}", None, db) == a.uuid_hex

    def test_unset_wanted_field_is_empty(self, db: Database) -> None:
        """Test that an unset field resolves to an empty string."""
        assert compile_references("[{REF:A@T:A}]", None, db) == "[]"

    def test_scan_by_uuid(self, db: Database) -> None:
        """Test locating the target by UUID, in either case."""
        a = db.find_entries(title="A")[0]
        assert compile_references(f"{{REF:U@I:{a.uuid_hex}}}", None, db) == "admin001"
        assert compile_references(f"{{REF:U@I:{a.uuid.hex}}}", None, db) == "admin001"

    def test_scan_custom_fields(self, db: Database) -> None:
        """Test locating the target by a custom field value."""
        a = db.find_entries(title="A")[0]
        a.set_custom_property("Employee ID", "E-42")
        assert compile_references("{REF:U@O:E-42}", None, db) == "admin001"

    def test_first_match_wins(self) -> None:
        """Test that the first entry in traversal order is used."""
        db = Database.create()
        sub = db.root_group.create_subgroup("Sub")
        sub.create_entry(title="Dup", username="nested")
        db.root_group.create_entry(title="Dup", username="first")
        db.root_group.create_entry(title="Dup", username="second")

        assert compile_references("{REF:U@T:Dup}", None, db) == "first"

    def test_multi_term_reference(self) -> None:
        """Test a reference whose search term has a negated term."""
        db = Database.create()
        db.root_group.create_entry(title="alpha beta", username="a")
        db.root_group.create_entry(title="alpha", username="b")

        assert compile_references("{REF:U@T:alpha -beta}", None, db) == "b"

    def test_replacement_value_is_literal(self, db: Database) -> None:
        """Test that backslashes in resolved values survive substitution."""
        db.root_group.create_entry(title="Regexy", password=r"p\1ss\\")
        assert compile_references("{REF:P@T:Regexy}", None, db) == r"p\1ss\\"

    def test_searching_disabled_group(self, db: Database) -> None:
        """Test that entries in non-searchable groups are never targets."""
        hidden = db.root_group.create_subgroup("Hidden", enable_searching=False)
        hidden.create_entry(title="Secret", username="ghost")
        assert compile_references("{REF:U@T:Secret}", None, db) == "{REF:U@T:Secret}"


class TestUnresolvableReferences:
    """Tests for references that are left verbatim."""

    def test_malformed_tokens_pass_through(self, db: Database) -> None:
        """Test that invalid wanted selectors and missing @ are kept."""
        db.root_group.create_entry(title="X", username="x-user")
        text = "a {REF:Z@T:X} b {REF:TX:Y} c"
        assert compile_references(text, None, db) == text

    def test_unknown_scan_passes_through(self, db: Database) -> None:
        """Test that an unknown scan selector is kept."""
        assert compile_references("{REF:U@Z:A}", None, db) == "{REF:U@Z:A}"

    def test_no_match_passes_through(self, db: Database) -> None:
        """Test that a reference matching no entry is kept."""
        assert compile_references("x {REF:U@T:nobody} y", None, db) == "x {REF:U@T:nobody} y"

    def test_valid_token_after_invalid_one(self, db: Database) -> None:
        """Test that scanning continues past an invalid token."""
        text = "{REF:bad} {REF:U@T:nobody} {REF:U@T:A}"
        assert compile_references(text, None, db) == "{REF:bad} {REF:U@T:nobody} admin001"

    def test_nested_marker(self, db: Database) -> None:
        """Test that an outer unclosed marker doesn't hide an inner token."""
        assert compile_references("{REF:{REF:U@T:A}", None, db) == "{REF:admin001"

    def test_unresolved_wanted_not_cached(self, db: Database, recorder: ResolutionRecorder) -> None:
        """Test that an unknown wanted selector triggers no expansion."""
        compiler = ReferenceCompiler(on_resolve=recorder)
        assert compiler.compile("{REF:Z@T:A}", None, db) == "{REF:Z@T:A}"
        assert recorder.count == 0


class TestRecursion:
    """Tests for recursive expansion and its bounds."""

    def test_nested_references(self) -> None:
        """Test that a resolved value's own references are expanded."""
        db = Database.create()
        db.root_group.create_entry(title="Base", password="s3cret")
        db.root_group.create_entry(title="Alias", password="{REF:P@T:Base}")
        db.root_group.create_entry(title="Site", notes="pw={REF:P@T:Alias}")

        site = db.find_entries(title="Site")[0]
        assert compile_references(site.notes, site, db) == "pw=s3cret"

    def test_self_reference_terminates(self, recorder: ResolutionRecorder) -> None:
        """Test that an entry referencing itself resolves to an empty value."""
        db = Database.create()
        loop = db.root_group.create_entry(title="{REF:T@T:loop}")
        compiler = ReferenceCompiler(on_resolve=recorder)

        assert compiler.compile(loop.title, loop, db) == ""
        assert recorder.max_level == MAX_RECURSION_DEPTH
        assert recorder.count == MAX_RECURSION_DEPTH

    def test_cycle_terminates_deterministically(self) -> None:
        """Test that two entries referencing each other terminate."""
        db = Database.create()
        a = db.root_group.create_entry(title="a-{REF:T@U:bbb}", username="aaa")
        db.root_group.create_entry(title="b-{REF:T@U:aaa}", username="bbb")

        first = compile_references(a.title, a, db)
        second = compile_references(a.title, a, db)
        assert first == second == "a-b-"

    def test_depth_cap(self, recorder: ResolutionRecorder) -> None:
        """Test that a chain needing a 13th level resolves to empty."""
        db = Database.create()
        chain = build_reference_chain(db.root_group, MAX_RECURSION_DEPTH + 1)
        compiler = ReferenceCompiler(on_resolve=recorder)

        assert compiler.compile(chain[0].title, chain[0], db) == ""
        assert recorder.max_level == MAX_RECURSION_DEPTH

    def test_chain_within_depth_resolves(self) -> None:
        """Test that a chain of twelve entries resolves fully."""
        db = Database.create()
        chain = build_reference_chain(db.root_group, MAX_RECURSION_DEPTH, final_title="end")
        assert compile_references(chain[0].title, chain[0], db) == "end"

    def test_custom_depth(self) -> None:
        """Test a compiler with a lower depth limit."""
        db = Database.create()
        short = build_reference_chain(db.root_group, 3, prefix="short")
        long = build_reference_chain(db.root_group, 4, prefix="long")
        compiler = ReferenceCompiler(max_depth=3)

        assert compiler.compile(short[0].title, short[0], db) == "end"
        assert compiler.compile(long[0].title, long[0], db) == ""

    def test_iteration_bound(self) -> None:
        """Test that at most MAX_ITERATIONS tokens are expanded per level."""
        db = Database.create()
        count = MAX_ITERATIONS + 5
        for i in range(count):
            db.root_group.create_entry(title=f"v{i:02d}", username=f"u{i:02d}")
        tokens = [f"{{REF:T@U:u{i:02d}}}" for i in range(count)]

        words = compile_references(" ".join(tokens), None, db).split(" ")
        assert words[:MAX_ITERATIONS] == [f"v{i:02d}" for i in range(MAX_ITERATIONS)]
        assert words[MAX_ITERATIONS:] == tokens[MAX_ITERATIONS:]

    def test_limits(self) -> None:
        """Test the default and overridden limits."""
        default = ReferenceCompiler()
        assert default.max_depth == MAX_RECURSION_DEPTH
        assert default.max_iterations == MAX_ITERATIONS

        custom = ReferenceCompiler(max_depth=4, max_iterations=7)
        assert custom.max_depth == 4
        assert custom.max_iterations == 7

    def test_invalid_limits(self) -> None:
        """Test that non-positive limits are rejected."""
        with pytest.raises(ValueError, match="max_depth"):
            ReferenceCompiler(max_depth=0)
        with pytest.raises(ValueError, match="max_iterations"):
            ReferenceCompiler(max_iterations=0)


class TestCacheReuse:
    """Tests for reuse of resolved tokens."""

    def test_repeated_token_resolved_once(self, db: Database, recorder: ResolutionRecorder) -> None:
        """Test that identical tokens share one expansion."""
        compiler = ReferenceCompiler(on_resolve=recorder)
        text = "{REF:U@T:A} and {REF:U@T:A} and {ref:u@t:a}"

        assert compiler.compile(text, None, db) == "admin001 and admin001 and admin001"
        assert recorder.count == 1
        assert recorder.count_for("{REF:U@T:A}") == 1

    def test_tokens_equal_under_full_case_folding(self, recorder: ResolutionRecorder) -> None:
        """Test that tokens differing by a multi-character fold both resolve."""
        db = Database.create()
        db.root_group.create_entry(title="Straße", username="hans")
        compiler = ReferenceCompiler(on_resolve=recorder)

        text = "{REF:U@T:Straße} {REF:U@T:STRASSE}"
        assert compiler.compile(text, None, db) == "hans hans"
        assert recorder.count == 2

    def test_cache_shared_across_levels(self, recorder: ResolutionRecorder) -> None:
        """Test that a token resolved in a nested level is reused by its parent."""
        db = Database.create()
        db.root_group.create_entry(title="Base", password="s3cret")
        db.root_group.create_entry(title="Alias", password="{REF:P@T:Base}")
        compiler = ReferenceCompiler(on_resolve=recorder)

        text = "{REF:P@T:Alias} {REF:P@T:Base}"
        assert compiler.compile(text, None, db) == "s3cret s3cret"
        assert recorder.count_for("{REF:P@T:Base}") == 1
        assert recorder.count == 2

    def test_cache_not_shared_between_calls(self, db: Database, recorder: ResolutionRecorder) -> None:
        """Test that every top-level call starts with an empty cache."""
        compiler = ReferenceCompiler(on_resolve=recorder)
        a = db.find_entries(title="A")[0]

        assert compiler.compile("{REF:U@T:A}", None, db) == "admin001"
        a.username = "admin002"
        assert compiler.compile("{REF:U@T:A}", None, db) == "admin002"
        assert recorder.count == 2

    def test_compile_with_context_reuses_cache(self, db: Database) -> None:
        """Test that an explicit context carries its cache between calls."""
        context = CompilationContext(root=db.root_group, entry=None)
        compiler = ReferenceCompiler()

        assert compiler.compile_with_context("{REF:U@T:A}", context) == "admin001"
        assert context.cache.get("{REF:U@T:A}") == "admin001"

    def test_derive_shares_cache(self, db: Database) -> None:
        """Test that derived contexts only change the current entry."""
        context = CompilationContext(root=db.root_group, entry=None)
        other = Entry.create(title="other")
        derived = context.derive(other)

        assert derived.entry is other
        assert derived.root is context.root
        assert derived.cache is context.cache
