"""Tests for duplicate removal."""

from dav_manager.sync.contact import CardReference, ExecutionMode, RemoteRecord
from dav_manager.sync.duplicates import resolution_order, resolve_duplicates
from dav_manager.sync.result import MutationAction, SyncResult


class TestResolutionOrder:
    """Tests for survivor selection order."""

    def test_unsaved_records_last(self):
        saved = RemoteRecord("A", reference=CardReference("/c/z.vcf"))
        unsaved = RemoteRecord("A")
        assert sorted([unsaved, saved], key=resolution_order) == [saved, unsaved]

    def test_sorted_by_href(self):
        first = RemoteRecord("A", reference=CardReference("/c/a.vcf"))
        second = RemoteRecord("A", reference=CardReference("/c/b.vcf"))
        assert sorted([second, first], key=resolution_order) == [first, second]


class TestResolveDuplicates:
    """Tests for resolve_duplicates."""

    def test_one_survivor_per_name(self, store):
        store.seed("Jane Doe", href="/c/b.vcf")
        store.seed("jane doe ", href="/c/a.vcf")
        store.seed("John", href="/c/c.vcf")
        records, _ = store.fetch_all()

        resolution = resolve_duplicates(records, store, ExecutionMode.APPLY)

        assert sorted(r.href for r in resolution.survivors) == ["/c/a.vcf", "/c/c.vcf"]
        assert set(resolution.index()) == {"jane doe", "john"}
        assert store.deletes == ["/c/b.vcf"]
        assert [(d.href, s.href) for d, s in resolution.duplicates] == [
            ("/c/b.vcf", "/c/a.vcf")
        ]

    def test_survivor_independent_of_fetch_order(self, store):
        """The same server state always keeps the same card."""
        store.seed("Jane", href="/c/2.vcf")
        store.seed("Jane", href="/c/1.vcf")
        records, _ = store.fetch_all()

        forward = resolve_duplicates(records, None, ExecutionMode.PREVIEW)
        backward = resolve_duplicates(list(reversed(records)), None, ExecutionMode.PREVIEW)

        assert forward.survivors[0].href == backward.survivors[0].href == "/c/1.vcf"

    def test_preview_does_not_delete(self, store):
        store.seed("Jane", href="/c/1.vcf")
        store.seed("Jane", href="/c/2.vcf")
        records, _ = store.fetch_all()
        result = SyncResult(mode=ExecutionMode.PREVIEW)

        resolve_duplicates(records, store, ExecutionMode.PREVIEW, result)

        assert store.deletes == []
        planned = result.planned(MutationAction.DELETE_DUPLICATE)
        assert len(planned) == 1
        assert planned[0].href == "/c/2.vcf"
        assert planned[0].detail == "duplicate of /c/1.vcf"
        assert not planned[0].committed
        assert result.stats.duplicates_found == 1
        assert result.stats.duplicates_deleted == 0

    def test_failed_delete_recorded(self, store):
        store.seed("Jane", href="/c/1.vcf")
        store.seed("Jane", href="/c/2.vcf")
        store.fail_delete.add("/c/2.vcf")
        records, _ = store.fetch_all()
        result = SyncResult(mode=ExecutionMode.APPLY)

        resolution = resolve_duplicates(records, store, ExecutionMode.APPLY, result)

        assert len(resolution.survivors) == 1
        assert result.stats.duplicates_deleted == 0
        assert result.errors[0].operation == "delete_duplicate"
        assert result.errors[0].kind == "transport"
        assert not result.planned(MutationAction.DELETE_DUPLICATE)[0].committed

    def test_no_duplicates(self, store):
        store.seed("A")
        store.seed("B")
        records, _ = store.fetch_all()
        result = SyncResult(mode=ExecutionMode.APPLY)

        resolution = resolve_duplicates(records, store, ExecutionMode.APPLY, result)

        assert len(resolution.survivors) == 2
        assert resolution.duplicates == []
        assert not result.has_changes()
