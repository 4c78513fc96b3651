"""Tests for single-contact and bulk contact operations."""

import pytest

from dav_manager.api.vcard import decode_record, encode_record
from dav_manager.sync.contact import DesiredEntry, ExecutionMode, RemoteRecord
from dav_manager.sync.operations import ContactManager, NotFoundError, find_by_name
from dav_manager.sync.result import MutationAction


@pytest.fixture
def manager(store, buckets):
    return ContactManager(store, buckets)


class TestFindByName:
    """Tests for find_by_name."""

    def test_case_insensitive(self):
        records = [RemoteRecord("Jane Doe"), RemoteRecord("Bob")]
        assert find_by_name(records, "  jane DOE") is records[0]

    def test_invisible_characters_ignored(self):
        records = [RemoteRecord("\ufeffJane Doe\u200b")]
        assert find_by_name(records, "Jane Doe") is records[0]

    def test_not_found(self):
        assert find_by_name([RemoteRecord("Bob")], "Jane") is None


class TestAdd:
    """Tests for ContactManager.add."""

    def test_add(self, manager, store):
        entry = DesiredEntry("Jane Doe", phones=("+1 4803957551", "9876543210"))

        mutation = manager.add(entry)

        assert mutation.committed
        assert mutation.action == MutationAction.CREATE
        assert store.names() == ["Jane Doe"]
        stored = store.cards[mutation.href]
        assert stored.phones == ["+1 480 395 7551", "+91 98765 43210"]
        assert stored.uid

    def test_dry_run(self, manager, store):
        mutation = manager.add(DesiredEntry("Jane"), ExecutionMode.PREVIEW)
        assert not mutation.committed
        assert store.cards == {}


class TestUpdate:
    """Tests for ContactManager.update."""

    def test_fields_replaced(self, manager, store):
        store.seed(
            "Jane", emails=["old@x.com"], phones=["+1 480 395 7551"], href="/c/j.vcf"
        )

        mutation = manager.update(
            "jane", new_name="Jane Doe", emails=["New@X.com"], phones=["9876543210"]
        )

        card = store.cards["/c/j.vcf"]
        assert card.display_name == "Jane Doe"
        assert card.sort_name == "Jane Doe"
        assert card.emails == ["new@x.com"]
        assert card.phones == ["+91 98765 43210"]
        assert mutation.detail == "name, emails, phones"

    def test_missing_values_untouched(self, manager, store):
        store.seed("Jane", emails=["a@x.com"], note="keep", href="/c/j.vcf")

        manager.update("Jane", phones=["+14155551212"])

        card = store.cards["/c/j.vcf"]
        assert card.emails == ["a@x.com"]
        assert card.note == "keep"

    def test_empty_note_clears(self, manager, store):
        store.seed("Jane", note="old", href="/c/j.vcf")
        manager.update("Jane", note="")
        assert store.cards["/c/j.vcf"].note is None

    def test_not_found(self, manager):
        with pytest.raises(NotFoundError, match="Nobody not found"):
            manager.update("Nobody", note="x")

    def test_dry_run(self, manager, store):
        store.seed("Jane", href="/c/j.vcf")
        mutation = manager.update("Jane", note="x", mode=ExecutionMode.PREVIEW)
        assert not mutation.committed
        assert store.puts == []


class TestDelete:
    """Tests for ContactManager.delete."""

    def test_backup_then_delete(self, manager, store, tmp_path):
        store.seed("Noise Lead", emails=["n@x.com"], href="/c/n.vcf")
        backup = tmp_path / "psychology" / "noise-lead.vcf"

        mutation = manager.delete("noise lead", backup_path=backup)

        assert mutation.committed
        assert store.deletes == ["/c/n.vcf"]
        record = decode_record(backup.read_text())
        assert record.display_name == "Noise Lead"
        assert record.emails == ["n@x.com"]

    def test_default_backup_in_cwd(self, manager, store, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        store.seed("Noise Lead", href="/c/n.vcf")

        mutation = manager.delete("Noise Lead")

        assert mutation.path == tmp_path / "noise-lead.vcf"
        assert mutation.path.exists()

    def test_backup_failure_prevents_delete(self, manager, store, tmp_path):
        store.seed("Jane", href="/c/j.vcf")
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")

        with pytest.raises(OSError):
            manager.delete("Jane", backup_path=blocker / "jane.vcf")
        assert store.deletes == []

    def test_dry_run(self, manager, store, tmp_path):
        store.seed("Jane", href="/c/j.vcf")
        backup = tmp_path / "jane.vcf"
        manager.delete("Jane", backup_path=backup, mode=ExecutionMode.PREVIEW)
        assert store.deletes == []
        assert not backup.exists()

    def test_not_found(self, manager):
        with pytest.raises(NotFoundError):
            manager.delete("Nobody")


class TestMove:
    """Tests for ContactManager.move."""

    def test_move_with_rename(self, manager, store, buckets):
        store.seed("Vendor X", href="/c/v.vcf")

        mutation = manager.move("Vendor X", "corporate", new_name="Vendor X (2019)")

        path = buckets.root / "corporate" / "vendor-x-2019.vcf"
        assert mutation.path == path
        assert mutation.name == "Vendor X (2019)"
        assert decode_record(path.read_text()).display_name == "Vendor X (2019)"
        assert store.deletes == ["/c/v.vcf"]

    def test_bucket_required(self, manager):
        with pytest.raises(ValueError, match="bucket"):
            manager.move("Vendor X", "  ")

    def test_dry_run(self, manager, store, buckets):
        store.seed("Vendor X", href="/c/v.vcf")
        mutation = manager.move("Vendor X", "corporate", mode=ExecutionMode.PREVIEW)
        assert mutation.path == buckets.root / "corporate" / "vendor-x.vcf"
        assert not mutation.path.exists()
        assert store.deletes == []


class TestBulkOperations:
    """Tests for touch-all, fix-names, refresh-uids and photos."""

    def test_touch_all(self, manager, store):
        store.seed("A", revision="20200101T000000Z")
        store.seed("B", revision="20200101T000000Z")

        result = manager.touch_all()

        assert result.stats.touched == 2
        assert len(store.puts) == 2
        assert all(r.revision != "20200101T000000Z" for r in store.cards.values())

    def test_fix_names(self, manager, store):
        store.seed("Jane Doe", sort_name="Doe Jane", href="/c/j.vcf")
        store.seed("Bob", href="/c/b.vcf")

        preview = manager.fix_names()
        assert len(preview.planned()) == 1
        assert store.puts == []

        result = manager.fix_names(ExecutionMode.APPLY)
        assert store.puts == ["/c/j.vcf"]
        assert store.cards["/c/j.vcf"].sort_name == "Jane Doe"
        assert result.stats.updated == 1

    def test_fix_names_multi_part_structured_name(self, manager, store, jane_vcard):
        """N:Doe;Jane;;; differs from FN Jane Doe and is replaced."""
        stored = decode_record(jane_vcard)
        store.seed(
            "Jane Doe",
            sort_name=stored.sort_name,
            uid=stored.uid,
            raw=jane_vcard,
            href="/c/j.vcf",
        )

        result = manager.fix_names(ExecutionMode.APPLY)

        assert len(result.planned()) == 1
        assert store.puts == ["/c/j.vcf"]
        text = encode_record(store.cards["/c/j.vcf"])
        assert "N:Doe;Jane" not in text
        assert decode_record(text).sort_name == "Jane Doe"

    def test_refresh_uids(self, manager, store):
        store.seed("Jane", uid="uid-old", href="/c/j.vcf")

        result = manager.refresh_uids(ExecutionMode.APPLY)

        assert "/c/j.vcf" not in store.cards
        assert store.deletes == ["/c/j.vcf"]
        (card,) = store.cards.values()
        assert card.display_name == "Jane"
        assert card.uid != "uid-old"
        assert result.stats.created == 1

    def test_refresh_uids_keeps_old_when_put_fails(self, manager, store):
        store.seed("Jane", href="/c/j.vcf")
        store.fail_put.add("Jane")

        result = manager.refresh_uids(ExecutionMode.APPLY)

        assert "/c/j.vcf" in store.cards
        assert store.deletes == []
        assert result.errors[0].operation == "refresh_put"

    def test_refresh_uids_preview(self, manager, store):
        store.seed("Jane", href="/c/j.vcf")
        result = manager.refresh_uids()
        assert len(result.planned(MutationAction.REFRESH_UID)) == 1
        assert store.puts == [] and store.deletes == []

    def test_apply_photos(self, store, buckets):
        class AlwaysPhoto:
            def assign(self, record, name, emails, force=False):
                if record.has_photo and not force:
                    return False
                record.photo = b"\xff\xd8photo"
                return True

        store.seed("Jane", href="/c/j.vcf")
        store.seed("Pic", photo=b"\xff\xd8old", href="/c/p.vcf")
        manager = ContactManager(store, buckets, AlwaysPhoto())

        result = manager.apply_photos(ExecutionMode.APPLY)

        assert store.puts == ["/c/j.vcf"]
        assert store.cards["/c/j.vcf"].photo == b"\xff\xd8photo"
        assert result.stats.updated == 1

        forced = manager.apply_photos(ExecutionMode.PREVIEW, force=True)
        assert len(forced.planned()) == 2
