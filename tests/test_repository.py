"""
Tests for the SQLite note repository.
"""

import sqlite3
import sys
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import DatabaseError, StoreNotInitializedError
from database.repository import NoteRepository, build_fts_query


def ids(records):
    return [r.id for r in records]


class TestInitialization:

    def test_initialize_is_idempotent(self, tmp_path, make_record):
        path = tmp_path / "store.sqlite"
        repo = NoteRepository(path)
        repo.upsert(make_record("n1", "milk"))

        again = NoteRepository(path)
        again.initialize()

        assert again.count() == 1
        assert ids(again.lexical_search("milk")) == ["n1"]

    def test_creates_parent_directory(self, tmp_path):
        repo = NoteRepository(tmp_path / "nested" / "dir" / "store.sqlite")
        assert repo.db_path.exists()

    def test_operations_before_initialize_fail(self, tmp_path, make_record):
        repo = NoteRepository(tmp_path / "store.sqlite", initialize=False)

        assert repo.initialized is False
        with pytest.raises(StoreNotInitializedError):
            repo.get("n1")
        with pytest.raises(StoreNotInitializedError):
            repo.upsert(make_record("n1", "milk"))
        with pytest.raises(StoreNotInitializedError):
            repo.lexical_search("milk")

    def test_initialize_enables_operations(self, tmp_path, make_record):
        repo = NoteRepository(tmp_path / "store.sqlite", initialize=False)
        repo.initialize()

        repo.upsert(make_record("n1", "milk"))
        assert repo.get("n1") is not None

    def test_schema_tables(self, repo):
        conn = sqlite3.connect(str(repo.db_path))
        try:
            names = {row[0] for row in conn.execute("SELECT name FROM sqlite_master")}
        finally:
            conn.close()

        assert {"notes", "notes_fts", "sync_state"} <= names


class TestUpsertAndGet:

    def test_round_trip(self, repo, make_record):
        modified = datetime(2025, 10, 15, 14, 30, tzinfo=timezone.utc)
        record = make_record("n1", "Milk and eggs", title="Groceries", folder="Home",
                             vector=[0.5, -1.0], modified_at=modified)
        repo.upsert(record)

        stored = repo.get("n1")

        assert stored.title == "Groceries"
        assert stored.folder == "Home"
        assert stored.normalized_content == "Milk and eggs"
        assert stored.raw_content == "<div>Milk and eggs</div>"
        assert stored.modified_at == modified
        assert stored.vector.tolist() == [0.5, -1.0]

    def test_missing_note(self, repo):
        assert repo.get("nope") is None

    def test_upsert_replaces_by_id(self, repo, make_record):
        repo.upsert(make_record("n1", "first version", title="Old"))
        repo.upsert(make_record("n1", "second version", title="New"))

        assert repo.count() == 1
        stored = repo.get("n1")
        assert stored.title == "New"
        assert stored.normalized_content == "second version"

    def test_upsert_twice_is_idempotent(self, repo, make_record):
        record = make_record("n1", "milk")
        repo.upsert(record)
        repo.upsert(record)

        assert repo.count() == 1
        assert ids(repo.lexical_search("milk")) == ["n1"]

    def test_upsert_can_drop_embedding(self, repo, make_record):
        repo.upsert(make_record("n1", "milk", vector=[1.0, 0.0]))
        repo.upsert(make_record("n1", "milk"))

        assert repo.get("n1").has_embedding is False
        assert repo.all_vectors() == []

    def test_to_dict_excludes_bytes(self, repo, make_record):
        repo.upsert(make_record("n1", "milk", vector=[1.0]))
        data = repo.get("n1").to_dict()

        assert data["has_embedding"] is True
        assert "embedding" not in data

    def test_delete(self, repo, make_record):
        repo.upsert(make_record("n1", "milk"))

        assert repo.delete("n1") is True
        assert repo.get("n1") is None
        assert repo.delete("n1") is False

    def test_list_ids_sorted(self, repo, make_record):
        for note_id in ["c", "a", "b"]:
            repo.upsert(make_record(note_id, "x"))

        assert repo.list_ids() == ["a", "b", "c"]


class TestLexicalSearch:

    def test_index_follows_updates(self, repo, make_record):
        repo.upsert(make_record("n1", "zebra crossing"))
        assert ids(repo.lexical_search("zebra")) == ["n1"]

        repo.upsert(make_record("n1", "giraffe crossing"))
        assert repo.lexical_search("zebra") == []
        assert ids(repo.lexical_search("giraffe")) == ["n1"]

        repo.delete("n1")
        assert repo.lexical_search("giraffe") == []
        assert repo.lexical_search("crossing") == []

    def test_title_is_indexed(self, repo, make_record):
        repo.upsert(make_record("n1", "milk", title="Groceries"))
        assert ids(repo.lexical_search("groceries")) == ["n1"]

    def test_case_insensitive(self, repo, make_record):
        repo.upsert(make_record("n1", "Milk"))
        assert ids(repo.lexical_search("MILK")) == ["n1"]

    def test_porter_stemming(self, repo, make_record):
        repo.upsert(make_record("n1", "I went running today"))
        assert ids(repo.lexical_search("runs")) == ["n1"]

    def test_all_terms_must_match(self, repo, make_record):
        repo.upsert(make_record("n1", "milk and eggs"))
        repo.upsert(make_record("n2", "milk and bread"))

        assert ids(repo.lexical_search("milk eggs")) == ["n1"]

    def test_better_match_ranks_first(self, repo, make_record):
        repo.upsert(make_record("a-sparse", "apple banana cherry date elderberry fig grape honeydew"))
        repo.upsert(make_record("z-dense", "apple apple apple"))
        for i in range(3):
            repo.upsert(make_record(f"other{i}", "unrelated text"))

        assert ids(repo.lexical_search("apple")) == ["z-dense", "a-sparse"]

    def test_equal_scores_ordered_by_id(self, repo, make_record):
        for note_id in ["b", "c", "a"]:
            repo.upsert(make_record(note_id, "same words here", title="Same"))

        assert ids(repo.lexical_search("words")) == ["a", "b", "c"]

    def test_limit(self, repo, make_record):
        for i in range(5):
            repo.upsert(make_record(f"n{i}", "milk"))

        assert len(repo.lexical_search("milk", limit=2)) == 2
        assert repo.lexical_search("milk", limit=0) == []

    @pytest.mark.parametrize("query", ["", "   ", "!!!", "\"", "*"])
    def test_queries_without_terms(self, repo, make_record, query):
        repo.upsert(make_record("n1", "milk"))
        assert repo.lexical_search(query) == []

    @pytest.mark.parametrize("query", ['milk AND "eggs', "milk OR", "NEAR(milk", "milk*", "title:milk"])
    def test_operator_syntax_is_literal(self, repo, make_record, query):
        repo.upsert(make_record("n1", "milk eggs title near and or"))
        # Must not raise an FTS5 syntax error
        repo.lexical_search(query)


class TestBuildFtsQuery:

    def test_quotes_each_term(self):
        assert build_fts_query("grocery list") == '"grocery" "list"'

    def test_strips_punctuation(self):
        assert build_fts_query('milk, "eggs" & (bread)') == '"milk" "eggs" "bread"'

    def test_empty(self):
        assert build_fts_query("") is None
        assert build_fts_query("?!") is None
        assert build_fts_query(None) is None


class TestVectors:

    def test_all_vectors_only_embedded_sorted(self, repo, make_record):
        repo.upsert(make_record("b", "x", vector=[0.0, 1.0]))
        repo.upsert(make_record("c", "x"))
        repo.upsert(make_record("a", "x", vector=[1.0, 0.0]))

        vectors = repo.all_vectors()

        assert [note_id for note_id, _ in vectors] == ["a", "b"]
        assert isinstance(vectors[0][1], np.ndarray)
        assert vectors[1][1].tolist() == [0.0, 1.0]

    def test_corrupt_vector_skipped(self, repo, make_record):
        record = make_record("bad", "x")
        record.embedding = b"\x00" * 12
        repo.upsert(record)
        repo.upsert(make_record("good", "x", vector=[1.0]))

        assert [note_id for note_id, _ in repo.all_vectors()] == ["good"]


class TestCursor:

    def test_no_cursor_initially(self, repo):
        assert repo.get_cursor() is None

    def test_round_trip(self, repo):
        ts = datetime(2025, 10, 15, 14, 30, 5, 123456, tzinfo=timezone.utc)
        repo.set_cursor(ts)
        assert repo.get_cursor() == ts

    def test_naive_cursor_taken_as_utc(self, repo):
        repo.set_cursor(datetime(2025, 1, 1, 12, 0))
        assert repo.get_cursor() == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_overwrite(self, repo):
        repo.set_cursor(datetime(2025, 1, 1, tzinfo=timezone.utc))
        repo.set_cursor(datetime(2025, 2, 1, tzinfo=timezone.utc))
        assert repo.get_cursor() == datetime(2025, 2, 1, tzinfo=timezone.utc)


class TestMaintenance:

    def test_rebuild_index(self, repo, make_record):
        repo.upsert(make_record("n1", "milk"))
        repo.upsert(make_record("n2", "eggs"))

        repo.rebuild_index()

        assert ids(repo.lexical_search("milk")) == ["n1"]
        assert ids(repo.lexical_search("eggs")) == ["n2"]

    def test_stats(self, repo, make_record):
        repo.upsert(make_record("n1", "x", folder="Home", vector=[1.0]))
        repo.upsert(make_record("n2", "x", folder="Home"))
        repo.upsert(make_record("n3", "x", folder="Work"))
        repo.set_cursor(datetime(2025, 1, 1, tzinfo=timezone.utc))

        stats = repo.get_stats()

        assert stats["total"] == 3
        assert stats["embedded"] == 1
        assert stats["by_folder"] == {"Home": 2, "Work": 1}
        assert stats["last_sync"] == "2025-01-01T00:00:00+00:00"

    def test_stats_empty(self, repo):
        stats = repo.get_stats()
        assert stats["total"] == 0
        assert stats["last_sync"] is None


class TestConcurrency:

    def test_concurrent_writers(self, repo, make_record):
        errors = []

        def writer(worker):
            try:
                for i in range(10):
                    repo.upsert(make_record(f"w{worker}-{i}", f"token{worker}x{i} shared"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(w,)) for w in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert repo.count() == 40
        assert len(repo.lexical_search("shared")) == 40
        assert ids(repo.lexical_search("token2x7")) == ["w2-7"]


class TestStableRowKeys:

    def test_vacuum_keeps_index_aligned(self, repo, make_record):
        repo.upsert(make_record("a", "alpha"))
        repo.upsert(make_record("b", "bravo"))
        repo.upsert(make_record("c", "charlie"))
        repo.delete("a")

        conn = sqlite3.connect(str(repo.db_path))
        try:
            conn.execute("VACUUM")
        finally:
            conn.close()

        assert ids(repo.lexical_search("bravo")) == ["b"]
        assert ids(repo.lexical_search("charlie")) == ["c"]
        assert repo.lexical_search("alpha") == []

        repo.upsert(make_record("d", "delta bravo"))
        assert sorted(ids(repo.lexical_search("bravo"))) == ["b", "d"]
        assert ids(repo.lexical_search("delta")) == ["d"]

    def test_rebuild_after_vacuum(self, repo, make_record):
        repo.upsert(make_record("a", "alpha"))
        repo.upsert(make_record("b", "bravo"))
        repo.delete("a")

        conn = sqlite3.connect(str(repo.db_path))
        try:
            conn.execute("VACUUM")
        finally:
            conn.close()
        repo.rebuild_index()

        assert ids(repo.lexical_search("bravo")) == ["b"]
        assert repo.lexical_search("alpha") == []

    def test_notes_have_integer_key(self, repo):
        conn = sqlite3.connect(str(repo.db_path))
        try:
            columns = {row[1]: row for row in conn.execute("PRAGMA table_info(notes)")}
        finally:
            conn.close()

        assert columns["pk"][2] == "INTEGER"
        assert columns["pk"][5] == 1
        assert columns["id"][5] == 0


class TestLockWaiting:

    def hold_write_lock(self, path):
        conn = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False)
        conn.execute("BEGIN IMMEDIATE")
        return conn

    def test_locked_write_gives_up_quickly(self, tmp_path, make_record):
        repo = NoteRepository(tmp_path / "braindump.sqlite", write_timeout=0.1)
        holder = self.hold_write_lock(repo.db_path)

        try:
            started = time.perf_counter()
            with pytest.raises(DatabaseError):
                repo.upsert(make_record("n1", "milk"))
            elapsed = time.perf_counter() - started
        finally:
            holder.execute("ROLLBACK")
            holder.close()

        assert elapsed < 10
        assert repo.get("n1") is None

    def test_write_succeeds_once_lock_released(self, tmp_path, make_record):
        repo = NoteRepository(tmp_path / "braindump.sqlite", write_timeout=0.1)
        holder = self.hold_write_lock(repo.db_path)
        release = threading.Timer(0.3, holder.execute, args=("ROLLBACK",))
        release.start()

        try:
            repo.upsert(make_record("n1", "milk"))
        finally:
            release.join()
            holder.close()

        assert ids(repo.lexical_search("milk")) == ["n1"]

    def test_default_write_timeout_is_short(self, repo):
        assert repo.write_timeout <= 1.0
