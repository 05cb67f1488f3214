"""Tests for symbol dependency tracking."""

import pytest

from wikidelta.models import CodeSymbol, ParsedFile, SymbolMember, SymbolParameter
from wikidelta.symbol_tracker import (
    SymbolTracker,
    extract_dependencies,
    module_name,
    symbol_hash,
    symbol_id,
)


def test_symbol_id_format():
    """Ids join file, name and kind."""
    assert symbol_id("a.ts", "Foo", "class") == "a.ts:Foo:class"


def test_symbol_hash_tracks_signature():
    """The hash is 16 hex chars and changes with the signature."""
    first = symbol_hash(CodeSymbol(name="Foo", kind="class", signature="class Foo"))
    second = symbol_hash(CodeSymbol(name="Foo", kind="class", signature="class Foo(Base)"))

    assert len(first) == 16
    assert first != second


def test_extract_dependencies_skips_builtins_and_duplicates():
    """Only capitalised, non-builtin type names are kept, once each."""
    symbol = CodeSymbol(
        name="place",
        kind="function",
        members=[SymbolMember(name="(call)", type="Order")],
        parameters=[
            SymbolParameter(name="customer", type="Customer"),
            SymbolParameter(name="items", type="List[LineItem]"),
            SymbolParameter(name="note", type="Optional[str]"),
        ],
        return_type="Order",
    )

    assert extract_dependencies(symbol) == ["Order", "Customer", "LineItem"]


def test_module_name():
    """Module names come from the segment after src/, else the parent directory."""
    assert module_name("src/shop/models.py") == "shop"
    assert module_name("pkg/util.py") == "pkg"
    assert module_name("main.py") == "root"


class TestBuildFromFiles:
    """Tests for graph construction."""

    def test_links_dependents(self, foo_files):
        """A type reference becomes a forward and a reverse edge."""
        tracker = SymbolTracker()
        tracker.build_from_files(foo_files)

        foo = tracker.get_symbol("a.ts:Foo:class")
        assert foo.exported
        assert foo.dependents == ["b.ts:Bar:class"]
        assert [s.id for s in tracker.get_symbol_dependencies("b.ts:Bar:class")] == ["a.ts:Foo:class"]
        assert [s.id for s in tracker.get_symbol_dependents("a.ts:Foo:class")] == ["b.ts:Bar:class"]

    def test_prefers_same_file_match(self, symbol_factory):
        """A name defined in the referencing file wins over an exported one elsewhere."""
        tracker = SymbolTracker()
        tracker.build_from_files([
            ParsedFile(path="a.ts", symbols=[symbol_factory("Foo")]),
            ParsedFile(path="c.ts", symbols=[
                symbol_factory("Foo", exported=False),
                symbol_factory("Baz", exported=False, uses=["Foo"]),
            ]),
        ])

        deps = tracker.get_symbol_dependencies("c.ts:Baz:class")
        assert [s.id for s in deps] == ["c.ts:Foo:class"]

    def test_private_symbols_elsewhere_do_not_resolve(self, symbol_factory):
        """Non-exported symbols are only visible inside their own file."""
        tracker = SymbolTracker()
        tracker.build_from_files([
            ParsedFile(path="a.ts", symbols=[symbol_factory("Hidden", exported=False)]),
            ParsedFile(path="b.ts", symbols=[symbol_factory("User", uses=["Hidden", "Missing"])]),
        ])

        assert tracker.get_symbol_dependencies("b.ts:User:class") == []
        assert tracker.get_symbol("b.ts:User:class").dependencies == ["Hidden", "Missing"]

    def test_skips_malformed_input(self, symbol_factory):
        """Files without a path and symbols without a name are skipped."""
        tracker = SymbolTracker()
        tracker.build_from_files([
            ParsedFile(path="", symbols=[symbol_factory("Ghost")]),
            ParsedFile(path="a.ts", symbols=[CodeSymbol(name="", kind="class"), symbol_factory("Foo")]),
        ])

        assert list(tracker.export_snapshot()) == ["a.ts:Foo:class"]

    def test_rebuild_replaces_graph(self, foo_files, symbol_factory):
        """A rebuild swaps in a new graph; readers of the old one keep a complete view."""
        tracker = SymbolTracker()
        tracker.build_from_files(foo_files)
        old_graph = tracker.graph

        tracker.build_from_files([ParsedFile(path="z.ts", symbols=[symbol_factory("Zed")])])

        assert tracker.get_symbol("a.ts:Foo:class") is None
        assert "a.ts:Foo:class" in old_graph.symbols
        assert tracker.files == ["z.ts"]

    def test_sample_project(self, sample_files):
        """Order in the sample shop is used by the processor and by billing."""
        tracker = SymbolTracker()
        tracker.build_from_files(sample_files)

        dependents = {s.id for s in tracker.get_symbol_dependents("src/shop/models.py:Order:class")}
        assert "src/billing/invoice.py:Invoice:class" in dependents
        assert "src/billing/invoice.py:create_invoice:function" in dependents
        assert "src/shop/processor.py:OrderProcessor.place:method" in dependents


class TestAffectedSymbols:
    """Tests for reverse-dependency traversal."""

    def _chain(self, symbol_factory) -> SymbolTracker:
        # C uses B uses A
        tracker = SymbolTracker()
        tracker.build_from_files([ParsedFile(path="m.ts", symbols=[
            symbol_factory("A"),
            symbol_factory("B", uses=["A"]),
            symbol_factory("C", uses=["B"]),
        ])])
        return tracker

    def test_depth_counts_start_symbol(self, symbol_factory):
        """With depth 2 the result is the symbol plus its direct dependents."""
        tracker = self._chain(symbol_factory)

        assert tracker.get_affected_symbols("m.ts:A:class", depth=2) == {"m.ts:A:class", "m.ts:B:class"}
        assert tracker.get_affected_symbols("m.ts:A:class", depth=3) == {
            "m.ts:A:class", "m.ts:B:class", "m.ts:C:class",
        }
        assert tracker.get_affected_symbols("m.ts:A:class", depth=0) == set()

    def test_cycles_terminate(self, symbol_factory):
        """Mutually dependent symbols are visited once."""
        tracker = SymbolTracker()
        tracker.build_from_files([ParsedFile(path="m.ts", symbols=[
            symbol_factory("Ping", uses=["Pong"]),
            symbol_factory("Pong", uses=["Ping"]),
        ])])

        assert tracker.get_affected_symbols("m.ts:Ping:class", depth=10) == {"m.ts:Ping:class", "m.ts:Pong:class"}


class TestSnapshots:
    """Tests for snapshot export, import and change detection."""

    def test_page_mapping(self, foo_files):
        """Exported symbols also belong to the API reference."""
        tracker = SymbolTracker()
        tracker.build_from_files(foo_files)
        mapping = tracker.get_symbol_page_mapping()

        assert mapping["a.ts:Foo:class"] == ["module-root", "api-reference"]
        assert mapping["b.ts:Bar:class"] == ["module-root"]

    def test_import_restores_edges(self, foo_files):
        """An imported snapshot is relinked into an equivalent graph."""
        original = SymbolTracker()
        original.build_from_files(foo_files)

        restored = SymbolTracker()
        restored.import_snapshot(original.export_snapshot())

        assert restored.get_symbol("a.ts:Foo:class").dependents == ["b.ts:Bar:class"]
        assert set(restored.export_snapshot()) == set(original.export_snapshot())

    def test_detect_changes(self, symbol_factory):
        """Added, modified and deleted symbols are reported, most severe first."""
        previous = SymbolTracker()
        previous.build_from_files([
            ParsedFile(path="a.ts", symbols=[symbol_factory("Foo"), symbol_factory("Old", exported=False)]),
        ])

        changed_foo = symbol_factory("Foo")
        changed_foo.signature = "class Foo extends Base"
        current = SymbolTracker()
        current.build_from_files([
            ParsedFile(path="a.ts", symbols=[changed_foo, symbol_factory("New", exported=False)]),
        ])

        changes = current.detect_changes(previous)
        summary = [(c.symbol_name, c.change_type, c.impact_level) for c in changes]

        assert summary == [
            ("Foo", "modified", "high"),
            ("New", "added", "medium"),
            ("Old", "deleted", "low"),
        ]
        assert changes[0].old_snapshot.hash != changes[0].new_snapshot.hash

    @pytest.mark.parametrize("users, expected", [(6, "high"), (1, "medium")])
    def test_deleted_symbol_counts_previous_dependents(self, symbol_factory, users, expected):
        """Dependents of a removed symbol are counted in the graph it was removed from."""
        dependents = [
            ParsedFile(path=f"u{i}.ts", symbols=[symbol_factory(f"User{i}", exported=False, uses=["Foo"])])
            for i in range(users)
        ]
        previous = SymbolTracker()
        previous.build_from_files([ParsedFile(path="a.ts", symbols=[symbol_factory("Foo")])] + dependents)
        current = SymbolTracker()
        current.build_from_files(dependents)

        changes = current.detect_changes(previous)

        assert [(c.symbol_name, c.change_type, c.impact_level) for c in changes] == [("Foo", "deleted", expected)]

    def test_no_changes(self, foo_files):
        previous = SymbolTracker()
        previous.build_from_files(foo_files)
        current = SymbolTracker()
        current.build_from_files(foo_files)

        assert current.detect_changes(previous) == []
