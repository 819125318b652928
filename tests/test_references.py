"""Tests for [[Name]] reference parsing and resolution."""

from __future__ import annotations

from apiexplorer.catalogue import load_catalogue
from apiexplorer.models import CatalogueEntry
from apiexplorer.references import (
    ReferenceSegment,
    ReferenceStatus,
    TextSegment,
    find_references,
    reference_segments,
    render_references,
    resolve_reference,
    to_markdown,
)
from apiexplorer.workspace import Workspace


def _entry(name: str, category: str = "Weather") -> CatalogueEntry:
    return CatalogueEntry(name=name, category=category, description=f"{name} api", url=f"https://{name}.example")


ENTRIES = [_entry("Weather API Pro"), _entry("Weather API"), _entry("Open-Meteo")]


def test_find_references_in_order() -> None:
    assert find_references("Use [[A]] then [[B c]] but not [C] or [[]]") == ["A", "B c"]


class TestResolve:
    def test_exact_match_beats_earlier_substring_candidate(self) -> None:
        assert resolve_reference("Weather API", ENTRIES).name == "Weather API"

    def test_case_insensitive_match(self) -> None:
        assert resolve_reference("open-meteo", ENTRIES).name == "Open-Meteo"

    def test_token_inside_entry_name(self) -> None:
        assert resolve_reference("Meteo", ENTRIES).name == "Open-Meteo"

    def test_entry_name_inside_token(self) -> None:
        assert resolve_reference("The Open-Meteo service", ENTRIES).name == "Open-Meteo"

    def test_unresolvable(self) -> None:
        assert resolve_reference("Nonexistent API", [_entry("Open-Meteo")]) is None


class TestRender:
    def test_splits_text_and_references(self) -> None:
        segments = render_references("Try [[Open-Meteo]] now.", ENTRIES)
        assert segments[0] == TextSegment("Try ")
        assert isinstance(segments[1], ReferenceSegment)
        assert segments[1].entry.name == "Open-Meteo"
        assert segments[2] == TextSegment(" now.")

    def test_added_entries_are_not_clickable(self) -> None:
        (ref,) = reference_segments(render_references("[[Open-Meteo]]", ENTRIES, {"Open-Meteo"}))
        assert ref.status is ReferenceStatus.added
        assert not ref.clickable
        assert ref.label == "Open-Meteo (Added)"

    def test_render_is_idempotent(self) -> None:
        text = "A [[Weather API]], b [[meteo]], c [[Missing]]."
        assert render_references(text, ENTRIES) == render_references(text, ENTRIES)

    def test_render_does_not_touch_workspace(self) -> None:
        ws = Workspace([_entry("Weather API").to_node()])
        render_references("[[Open-Meteo]]", ENTRIES, ws)
        assert ws.names == ["Weather API"]

    def test_to_markdown_uses_labels(self) -> None:
        segments = render_references("See [[Open-Meteo]] and [[Ghost]].", ENTRIES)
        assert to_markdown(segments) == "See [Open-Meteo] and [Ghost (Unavailable)]."


def test_example_scenario_against_bundled_catalogue() -> None:
    catalogue = load_catalogue()
    text = "You could pair it with [[Open-Meteo]] or even [[Nonexistent API]]."
    refs = reference_segments(render_references(text, catalogue, {"Weather API"}))

    assert len(refs) == 2
    assert refs[0].clickable
    assert refs[0].label == "Open-Meteo"
    assert not refs[1].clickable
    assert refs[1].status is ReferenceStatus.unavailable
    assert refs[1].label == "Nonexistent API (Unavailable)"
