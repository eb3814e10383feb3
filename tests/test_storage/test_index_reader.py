import math
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from unittest.mock import patch

import pytest

from rosterindex.core import IndexIOError, MalformedIndexError
from rosterindex.storage import MAX_LINE_LENGTH, IndexBuilder, IndexReader, compare_key, entity_schema, lookup


class SeekCountingFile:
    """Wraps a binary file and counts seek calls."""

    opened: list["SeekCountingFile"] = []

    def __init__(self, f):
        self._f = f
        self.seeks = 0
        SeekCountingFile.opened.append(self)

    def seek(self, *args):
        self.seeks += 1
        return self._f.seek(*args)

    def __getattr__(self, name):
        return getattr(self._f, name)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self._f.close()


def counting_open(path, mode="r", *args, **kwargs):
    return SeekCountingFile(open(path, mode, *args, **kwargs))


class TestCompareKey:
    """Tests for comparing a query against a padded key column."""

    def test_equal_with_padding(self):
        assert compare_key(b"ruth", b"ruth   h 000001\n", 6) == 0

    def test_equal_full_width(self):
        assert compare_key(b"ruthie", b"ruthie h 000001\n", 6) == 0

    def test_stored_key_is_prefix_of_query(self):
        assert compare_key(b"ruths", b"ruth   h 000001\n", 6) > 0

    def test_query_is_prefix_of_stored_key(self):
        assert compare_key(b"rut", b"ruth   h 000001\n", 6) < 0

    def test_first_differing_byte_decides(self):
        assert compare_key(b"ruta", b"ruth   h 000001\n", 6) < 0
        assert compare_key(b"ruty", b"ruth   h 000001\n", 6) > 0

    def test_consistent_with_byte_ordering(self):
        keys = [b"a", b"ab", b"b", b"b-a", b"ba", b"zz"]
        for query in keys:
            for stored in keys:
                line = stored.ljust(4) + b" h 000001\n"
                cmp = compare_key(query, line, 4)
                assert (cmp > 0) == (query > stored)
                assert (cmp == 0) == (query == stored)


class TestIndexReader:
    """Tests for seek-based binary search over a built index."""

    def setup_method(self):
        """Set up test environment before each test."""
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / "players_ids.txt"
        self.schema = entity_schema("players", 6)
        self.builder = IndexBuilder(self.schema)
        SeekCountingFile.opened = []

    def teardown_method(self):
        """Clean up after each test."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def build(self, entities):
        self.builder.build(entities, self.path)
        return IndexReader(self.path, self.schema)

    def test_disambiguated_lookup(self):
        reader = self.build([("ruth", 1, "h"), ("ruth", 2, "h")])
        entry = reader.lookup("ruth-0-h")
        assert entry.as_pair() == ("h", 1)
        assert entry.key == "ruth-0-h"
        assert reader.lookup("ruth-1-h").as_pair() == ("h", 2)

    def test_bare_name_not_found_once_disambiguated(self):
        reader = self.build([("ruth", 1, "h"), ("ruth", 2, "h")])
        assert reader.lookup("ruth") is None
        assert reader.stats.misses == 1

    def test_single_record(self):
        reader = self.build([("ohtani", 660271, "h")])
        assert self.path.read_bytes().count(b"\n") == 1
        assert reader.lookup("ohtani").as_pair() == ("h", 660271)

    def test_single_record_misses_on_both_sides(self):
        reader = self.build([("mid", 7, "h")])
        assert reader.lookup("aaa") is None
        assert reader.lookup("zzz") is None
        assert reader.stats.seeks == 2

    def test_ten_records_negative_lookup_bounded(self):
        names = [f"player-number-{c}" for c in "abcdefghij"]
        reader = self.build([(name, i + 1, "h") for i, name in enumerate(names)])

        with patch("rosterindex.storage.reader.open", side_effect=counting_open, create=True):
            assert reader.lookup("zzznotpresent") is None

        assert len(SeekCountingFile.opened) == 1
        assert SeekCountingFile.opened[0].seeks <= 4
        assert reader.stats.seeks <= 4

    @pytest.mark.parametrize("count", [1, 2, 3, 7, 8, 9, 100, 1000])
    def test_round_trip_and_bounded_seeks(self, count):
        """Every stored key is found, every probe set stays O(log N)."""
        entities = [(f"key-{i:05d}x", i, "hp"[i % 2]) for i in range(count)]
        reader = self.build(entities)
        bound = math.ceil(math.log2(count)) + 1

        for name, entity_id, flag in entities:
            before = reader.stats.seeks
            assert reader.lookup(name).as_pair() == (flag, entity_id)
            assert reader.stats.seeks - before <= bound

        for probe in ["a", "key-", "key-00000", "key-00000y", "key-99999x", "zzz"]:
            before = reader.stats.seeks
            assert reader.lookup(probe) is None
            assert reader.stats.seeks - before <= bound

    def test_negative_lookups_between_every_key(self):
        entities = [(name, i, "h") for i, name in enumerate(["b", "d", "f", "h", "j"])]
        reader = self.build(entities)
        for probe in ["a", "c", "e", "g", "i", "k", "bb", "dd"]:
            assert reader.lookup(probe) is None

    def test_lookup_normalises_query(self):
        reader = self.build([("shohei-ohtani-660271", 660271, "h"), ("ruth", 1, "h"), ("ruth", 2, "p")])
        assert reader.lookup("Shohei Ohtani").entity_id == 660271
        assert reader.lookup("RUTH-1-P").as_pair() == ("p", 2)

    def test_key_exactly_key_width_found(self):
        reader = self.build([("abcdefghij", 10, "h"), ("ab", 2, "h")])
        assert reader.layout().key_width == 10
        assert reader.lookup("abcdefghij").entity_id == 10

    def test_key_longer_than_key_width_rejected_without_seek(self):
        reader = self.build([("abcdefghij", 10, "h"), ("ab", 2, "h")])
        with patch("rosterindex.storage.reader.open", side_effect=counting_open, create=True):
            assert reader.lookup("abcdefghijk") is None

        assert SeekCountingFile.opened[0].seeks == 0
        assert reader.stats.seeks == 0
        assert reader.stats.rejected_keys == 1

    def test_empty_file(self):
        self.path.write_bytes(b"")
        reader = IndexReader(self.path, self.schema)
        with patch("rosterindex.storage.reader.open", side_effect=counting_open, create=True):
            assert reader.lookup("anything") is None
        assert SeekCountingFile.opened[0].seeks == 0
        assert reader.stats.layout_scans == 0
        assert reader.layout() is None

    def test_empty_query(self):
        reader = self.build([("ruth", 1, "h")])
        assert reader.lookup("   ") is None
        assert reader.stats.seeks == 0

    def test_missing_file(self):
        reader = IndexReader(Path(self.temp_dir) / "missing.txt", self.schema)
        with pytest.raises(IndexIOError) as exc_info:
            reader.lookup("ruth")
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    def test_no_terminator(self):
        self.path.write_bytes(b"ruth h 000001")
        with pytest.raises(MalformedIndexError) as exc_info:
            IndexReader(self.path, self.schema).lookup("ruth")
        assert exc_info.value.path == str(self.path)

    def test_truncated_final_line(self):
        self.path.write_bytes(b"ruth h 000001\nzed  h 0000")
        with pytest.raises(MalformedIndexError):
            IndexReader(self.path, self.schema).lookup("ruth")

    def test_inconsistent_line_found_during_search(self):
        # Same total size as three 14-byte lines, but the middle line is shifted
        self.path.write_bytes(b"aaaa h 000001\n" b"bbbbb h 00002\n" b"cccc h 000003\n")
        with pytest.raises(MalformedIndexError) as exc_info:
            IndexReader(self.path, self.schema).lookup("bbbb")
        assert exc_info.value.offset == 14

    def test_longest_readable_line_round_trip(self):
        long_name = "a" * (MAX_LINE_LENGTH - 10)
        reader = self.build([(long_name, 1, "h"), ("ruth", 2, "p")])
        assert reader.layout().line_length == MAX_LINE_LENGTH
        assert reader.lookup(long_name).as_pair() == ("h", 1)
        assert reader.lookup("ruth").as_pair() == ("p", 2)

    def test_first_line_over_limit_is_malformed(self):
        self.path.write_bytes(b"a" * MAX_LINE_LENGTH + b" h 000001\n")
        with pytest.raises(MalformedIndexError):
            IndexReader(self.path, self.schema).lookup("a")

    def test_line_too_short_for_schema(self):
        self.path.write_bytes(b"a\nb\n")
        with pytest.raises(MalformedIndexError):
            IndexReader(self.path, self.schema).lookup("a")

    def test_layout_cached_per_file(self):
        reader = self.build([("ruth", 1, "h"), ("gehrig", 4, "h")])
        reader.lookup("ruth")
        reader.lookup("gehrig")
        assert reader.stats.layout_scans == 1

    def test_rebuild_picked_up_by_existing_reader(self):
        reader = self.build([("ruth", 1, "h")])
        assert reader.lookup("ruth").entity_id == 1

        self.builder.build([("ruth", 1, "h"), ("a-much-longer-name", 2, "p")], self.path)
        assert reader.lookup("a-much-longer-name").as_pair() == ("p", 2)
        assert reader.lookup("ruth").entity_id == 1
        assert reader.stats.layout_scans == 2

    def test_stats(self):
        reader = self.build([("ruth", 1, "h")])
        reader.lookup("ruth")
        reader.lookup("gehrig")
        assert reader.stats.lookups == 2
        assert reader.stats.hits == 1
        assert reader.stats.misses == 1
        assert reader.stats.bytes_read > 0

    def test_lookup_helper(self):
        self.builder.build([("ohtani", 660271, "h")], self.path)
        assert lookup(self.path, "ohtani", 6) == ("h", 660271)
        assert lookup(self.path, "ruth", 6) is None

    def test_concurrent_lookups(self):
        entities = [(f"player-{c}{d}", i, "h") for i, (c, d) in
                    enumerate((c, d) for c in "abcdefgh" for d in "abcdefgh")]
        reader = self.build(entities)

        def worker(offset):
            for name, entity_id, _ in entities[offset::4]:
                assert reader.lookup(name).entity_id == entity_id
            return True

        with ThreadPoolExecutor(max_workers=4) as executor:
            futures = [executor.submit(worker, i) for i in range(4)]
            for future in as_completed(futures):
                assert future.result()

    def test_stats_exact_with_shared_reader(self):
        """Counters from concurrent lookups on one reader add up."""
        entities = [(f"player-{c}", i, "h") for i, c in enumerate("abcdefghijklmnop")]
        reader = self.build(entities)
        reader.layout()
        rounds = 50

        def worker(offset):
            for _ in range(rounds):
                reader.lookup(entities[offset][0])
                reader.lookup(f"missing-{offset}")

        with ThreadPoolExecutor(max_workers=8) as executor:
            for future in [executor.submit(worker, i) for i in range(8)]:
                future.result()

        total = 8 * rounds * 2
        assert reader.stats.lookups == total
        assert reader.stats.hits == total // 2
        assert reader.stats.misses == total // 2
        assert reader.stats.layout_scans == 1

    def test_readers_never_see_partial_rebuild(self):
        small = [("ohtani", 660271, "h")]
        large = small + [(f"filler-player-{i}", i, "p") for i in range(50)]
        reader = self.build(small)
        stop = threading.Event()
        failures = []

        def read():
            while not stop.is_set():
                try:
                    entry = reader.lookup("ohtani")
                    if entry is None or entry.entity_id != 660271:
                        failures.append(entry)
                except Exception as e:
                    failures.append(e)

        thread = threading.Thread(target=read)
        thread.start()
        try:
            for i in range(30):
                self.builder.build(large if i % 2 == 0 else small, self.path)
        finally:
            stop.set()
            thread.join()

        assert failures == []
