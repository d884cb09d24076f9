"""Tests for sync.detector — classify a tree against stored source files."""

from wiki_sync.source.tree import EntryType, TreeEntry
from wiki_sync.sync.detector import apply_changes, detect_changes
from wiki_sync.sync.models import SourceFile


def _blob(path: str, sha: str) -> TreeEntry:
    return TreeEntry(path=path, sha=sha)


class TestDetectChanges:
    """Tests for detect_changes()."""

    def test_first_run_everything_added(self):
        """With nothing stored, every included file is added."""
        entries = [_blob("src/b.ts", "2"), _blob("src/a.ts", "1")]
        changes = detect_changes(entries, [], ["src"])
        assert changes.added == ["src/a.ts", "src/b.ts"]
        assert changes.modified == []
        assert changes.removed == []

    def test_modified_when_sha_differs(self):
        """Only files whose hash changed are modified."""
        stored = [
            SourceFile(path="src/a.ts", sha="1"),
            SourceFile(path="src/b.ts", sha="2"),
        ]
        entries = [_blob("src/a.ts", "1"), _blob("src/b.ts", "3")]
        changes = detect_changes(entries, stored, ["src"])
        assert changes.modified == ["src/b.ts"]
        assert changes.added == []

    def test_removed_when_missing_remotely(self):
        """Stored paths no longer in the tree are removed."""
        stored = [SourceFile(path="src/old.ts", sha="9")]
        changes = detect_changes([], stored, ["src"])
        assert changes.removed == ["src/old.ts"]

    def test_removed_when_no_longer_included(self):
        """Narrowing the inclusion list removes the dropped files."""
        stored = [
            SourceFile(path="src/a.ts", sha="1"),
            SourceFile(path="docs/x.md", sha="2"),
        ]
        entries = [_blob("src/a.ts", "1"), _blob("docs/x.md", "2")]
        changes = detect_changes(entries, stored, ["src"])
        assert changes.removed == ["docs/x.md"]
        assert changes.is_empty() is False

    def test_directories_ignored(self):
        """Tree entries are never classified."""
        entries = [TreeEntry(path="src", sha="t", type=EntryType.TREE)]
        assert detect_changes(entries, [], ["src"]).is_empty()

    def test_no_patterns_removes_everything(self):
        """An empty allow-list includes no files at all."""
        stored = [SourceFile(path="src/a.ts", sha="1")]
        changes = detect_changes([_blob("src/a.ts", "1")], stored, [])
        assert changes.added == []
        assert changes.removed == ["src/a.ts"]

    def test_changed_and_total(self):
        """changed lists added then modified; total counts all three."""
        stored = [
            SourceFile(path="src/m.ts", sha="1"),
            SourceFile(path="src/r.ts", sha="1"),
        ]
        entries = [_blob("src/m.ts", "2"), _blob("src/n.ts", "1")]
        changes = detect_changes(entries, stored, ["src"])
        assert changes.changed == ["src/n.ts", "src/m.ts"]
        assert changes.total == 3


class TestApplyChanges:
    """Tests for apply_changes() against a real store."""

    def test_persists_snapshot(self, store):
        """Added, modified and removed paths are written to the store."""
        store.insert_source_files([("src/a.ts", "1"), ("src/gone.ts", "1")])
        entries = [_blob("src/a.ts", "2"), _blob("src/new.ts", "5")]
        changes = detect_changes(entries, store.list_source_files(), ["src"])

        processed = apply_changes(store, changes, entries)

        assert processed == 3
        stored = {f.path: f.sha for f in store.list_source_files()}
        assert stored == {"src/a.ts": "2", "src/new.ts": "5"}

    def test_second_detection_is_empty(self, store):
        """After applying, the same tree yields no changes."""
        entries = [_blob("src/a.ts", "1")]
        changes = detect_changes(entries, store.list_source_files(), ["src"])
        apply_changes(store, changes, entries)

        again = detect_changes(entries, store.list_source_files(), ["src"])
        assert again.is_empty()
