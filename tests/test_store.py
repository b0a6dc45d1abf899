"""
Tests for storage/jsonl.py, storage/backup.py and storage.open_store.

- save is idempotent per fingerprint, across URLs and across reopen
- batch saves skip duplicates, including within the batch
- records come back in save order; corrupt lines are skipped
- backups are named by timestamp and pruned to the retention count
"""

import json
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from orchestrate.config import ConfigError, StorageConfig
from scrape.hasher import fingerprint
from scrape.models import Article
from storage import open_store, validate_storage_config
from storage.backup import BackupRotator
from storage.jsonl import BatchResult, JsonlStore, SaveResult, StoreClosedError


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_article(n: int = 1, url: str | None = None, body: str | None = None, **kwargs) -> Article:
    title = kwargs.pop("title", f"Post {n}")
    plain_text = body if body is not None else f"Body of post {n}"
    return Article(
        url=url or f"https://example.com/posts/post-{n}/",
        title=title,
        content=f"<p>{plain_text}</p>",
        plain_text=plain_text,
        scraped_at=NOW,
        word_count=len(plain_text.split()),
        content_hash=fingerprint(title, plain_text),
        **kwargs,
    )


class FixedClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def tick(self, seconds: int = 1):
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# JsonlStore
# ---------------------------------------------------------------------------

class TestSave:

    def test_save_then_duplicate(self, tmp_path: Path):
        with JsonlStore(tmp_path / "a.jsonl") as store:
            article = make_article()
            assert store.save(article) is SaveResult.SAVED
            assert store.save(article) is SaveResult.DUPLICATE
            assert store.stats().count == 1

    def test_same_content_different_urls(self, tmp_path: Path):
        with JsonlStore(tmp_path / "a.jsonl") as store:
            a = make_article(url="https://example.com/posts/one/", title="Same", body="Same body")
            b = make_article(url="https://example.com/posts/two/", title="Same", body="Same body")
            assert store.save(a) is SaveResult.SAVED
            assert store.save(b) is SaveResult.DUPLICATE
            assert [x.url for x in store.load_all()] == ["https://example.com/posts/one/"]

    def test_record_format(self, tmp_path: Path):
        path = tmp_path / "a.jsonl"
        with JsonlStore(path) as store:
            store.save(make_article(author="Jane", published_date=datetime(2024, 4, 1, tzinfo=timezone.utc)))
            store.save(make_article(2))

        lines = path.read_text(encoding="utf-8").splitlines()
        first, second = json.loads(lines[0]), json.loads(lines[1])
        assert list(first) == [
            "url", "title", "content", "plain_text", "author",
            "published_date", "scraped_at", "word_count", "content_hash",
        ]
        assert first["published_date"] == "2024-04-01T00:00:00+00:00"
        assert "author" not in second
        assert "published_date" not in second

    def test_unicode_written_verbatim(self, tmp_path: Path):
        path = tmp_path / "a.jsonl"
        with JsonlStore(path) as store:
            store.save(make_article(title="Café", body="naïve text"))
        assert "Café" in path.read_text(encoding="utf-8")

    def test_round_trip_order(self, tmp_path: Path):
        with JsonlStore(tmp_path / "a.jsonl") as store:
            articles = [make_article(n) for n in range(5)]
            for a in articles:
                store.save(a)
            assert store.load_all() == articles
            # Each call re-reads from the start
            assert list(store.iter_articles()) == articles

    def test_concurrent_saves_store_once(self, tmp_path: Path):
        article = make_article()
        results = []
        with JsonlStore(tmp_path / "a.jsonl", fsync=False) as store:
            threads = [threading.Thread(target=lambda: results.append(store.save(article))) for _ in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
            assert results.count(SaveResult.SAVED) == 1
            assert results.count(SaveResult.DUPLICATE) == 7
            assert store.stats().count == 1

    def test_write_failure_reported(self, tmp_path: Path, monkeypatch):
        store = JsonlStore(tmp_path / "a.jsonl")

        def broken_write(data):
            raise OSError("disk full")

        monkeypatch.setattr(store, "_write", broken_write)
        article = make_article()
        assert store.save(article) is SaveResult.FAILED
        assert not store.exists(article.content_hash)
        store.close()


class TestBatch:

    def test_batch_counts(self, tmp_path: Path):
        with JsonlStore(tmp_path / "a.jsonl") as store:
            store.save(make_article(1))
            result = store.save_batch([make_article(1), make_article(2), make_article(3), make_article(2)])
            assert result == BatchResult(saved=2, skipped=2, failed=0)
            assert store.stats().count == 3

    def test_empty_batch(self, tmp_path: Path):
        with JsonlStore(tmp_path / "a.jsonl") as store:
            assert store.save_batch([]) == BatchResult(0, 0, 0)

    def test_batch_write_failure(self, tmp_path: Path, monkeypatch):
        def broken_write(data):
            raise OSError("boom")

        with JsonlStore(tmp_path / "a.jsonl") as store:
            monkeypatch.setattr(store, "_write", broken_write)
            result = store.save_batch([make_article(1), make_article(2)])
            assert result == BatchResult(saved=0, skipped=0, failed=2)
            assert not store.exists(make_article(1).content_hash)

    def test_unencodable_item_skipped(self, tmp_path: Path):
        bad = make_article(2, title="bad\ud800")
        with JsonlStore(tmp_path / "a.jsonl") as store:
            result = store.save_batch([make_article(1), bad])
            assert result == BatchResult(saved=1, skipped=0, failed=1)
            assert not store.exists(bad.content_hash)
            assert [a.title for a in store.load_all()] == ["Post 1"]

    def test_unencodable_article_fails_save(self, tmp_path: Path):
        with JsonlStore(tmp_path / "a.jsonl") as store:
            assert store.save(make_article(1, body="lone \udc80 surrogate")) is SaveResult.FAILED
            assert store.save(make_article(2)) is SaveResult.SAVED
            assert store.stats().count == 1


class TestRecovery:

    def test_index_rebuilt_on_open(self, tmp_path: Path):
        path = tmp_path / "a.jsonl"
        with JsonlStore(path) as store:
            store.save(make_article(1))
            store.save(make_article(2))

        with JsonlStore(path) as store:
            assert len(store) == 2
            assert store.exists(make_article(1).content_hash)
            assert store.save(make_article(1)) is SaveResult.DUPLICATE
            assert store.save(make_article(3)) is SaveResult.SAVED

    def test_corrupt_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "a.jsonl"
        good = make_article(1)
        path.write_text(
            json.dumps(good.to_record()) + "\n"
            + "{not json\n"
            + "\n"
            + "[1, 2]\n"
            + json.dumps({"url": "x", "content_hash": "abc"}) + "\n",
            encoding="utf-8",
        )
        with open(path, "ab") as f:
            f.write(b"\xff\xfe garbage\n")
        with JsonlStore(path) as store:
            assert store.exists(good.content_hash)
            assert store.exists("abc")
            assert store.load_all() == [good]
            assert store.stats().count == 2

    def test_save_after_truncated_last_line(self, tmp_path: Path):
        path = tmp_path / "a.jsonl"
        with JsonlStore(path) as store:
            store.save(make_article(1))
        # Crash mid-write: partial record, no newline
        with open(path, "a", encoding="utf-8") as f:
            f.write('{"url": "https://example.com/posts/x/", "tit')

        with JsonlStore(path) as store:
            assert store.save(make_article(2)) is SaveResult.SAVED
            assert [a.title for a in store.load_all()] == ["Post 1", "Post 2"]

        with JsonlStore(path) as store:
            assert store.exists(make_article(2).content_hash)
            assert store.save(make_article(2)) is SaveResult.DUPLICATE

    def test_save_after_partial_write_failure(self, tmp_path: Path):
        path = tmp_path / "a.jsonl"

        class ShortWrite:
            """File handle that writes part of the data, then fails."""

            def __init__(self, handle):
                self.handle = handle

            def write(self, data):
                self.handle.write(data[:10])
                self.handle.flush()
                raise OSError("No space left on device")

            def close(self):
                self.handle.close()

        with JsonlStore(path, fsync=False) as store:
            store.save(make_article(1))
            store._handle = ShortWrite(store._handle)
            assert store.save(make_article(2)) is SaveResult.FAILED
            assert store.save(make_article(3)) is SaveResult.SAVED
            assert [a.title for a in store.load_all()] == ["Post 1", "Post 3"]

    def test_missing_file_is_empty(self, tmp_path: Path):
        with JsonlStore(tmp_path / "sub" / "a.jsonl") as store:
            assert store.load_all() == []
            stats = store.stats()
            assert stats.count == 0
            assert stats.size_bytes == 0
            assert stats.last_modified is None
            assert stats.format == "jsonl"


class TestLifecycle:

    def test_close_idempotent(self, tmp_path: Path):
        store = JsonlStore(tmp_path / "a.jsonl")
        store.save(make_article())
        store.close()
        store.close()
        assert store.closed

    def test_operations_after_close(self, tmp_path: Path):
        store = JsonlStore(tmp_path / "a.jsonl")
        store.close()
        with pytest.raises(StoreClosedError):
            store.save(make_article())
        with pytest.raises(StoreClosedError):
            store.save_batch([make_article()])
        with pytest.raises(StoreClosedError):
            store.exists("abc")
        with pytest.raises(StoreClosedError):
            store.stats()
        with pytest.raises(StoreClosedError):
            store.load_all()


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------

class TestBackupRotator:

    def test_no_source_no_backup(self, tmp_path: Path):
        rotator = BackupRotator(tmp_path / "backups", retention=3)
        assert rotator.rotate(tmp_path / "missing.jsonl") is None
        assert rotator.list_backups() == []

    def test_name_format(self, tmp_path: Path):
        source = tmp_path / "a.jsonl"
        source.write_text("x\n")
        clock = FixedClock(datetime(2024, 5, 1, 9, 8, 7))
        rotator = BackupRotator(tmp_path / "backups", retention=3, clock=clock)

        path = rotator.rotate(source)
        assert path.name == "articles_backup_20240501_090807.jsonl"
        assert path.read_text() == "x\n"

    def test_retention(self, tmp_path: Path):
        source = tmp_path / "a.jsonl"
        source.write_text("x\n")
        clock = FixedClock(datetime(2024, 5, 1, 9, 0, 0))
        rotator = BackupRotator(tmp_path / "backups", retention=3, clock=clock)

        for _ in range(5):
            rotator.rotate(source)
            clock.tick()

        names = [p.name for p in rotator.list_backups()]
        assert names == [
            "articles_backup_20240501_090002.jsonl",
            "articles_backup_20240501_090003.jsonl",
            "articles_backup_20240501_090004.jsonl",
        ]

    def test_same_second_collision(self, tmp_path: Path):
        source = tmp_path / "a.jsonl"
        source.write_text("x\n")
        clock = FixedClock(datetime(2024, 5, 1, 9, 0, 0))
        rotator = BackupRotator(tmp_path / "backups", retention=5, clock=clock)

        first = rotator.rotate(source)
        second = rotator.rotate(source)
        clock.tick()
        third = rotator.rotate(source)

        assert second.name == "articles_backup_20240501_090000_001.jsonl"
        assert rotator.list_backups() == [first, second, third]

    def test_invalid_retention(self, tmp_path: Path):
        with pytest.raises(ValueError):
            BackupRotator(tmp_path, retention=0)

    def test_store_backs_up_before_each_save(self, tmp_path: Path):
        clock = FixedClock(datetime(2024, 5, 1, 9, 0, 0))
        rotator = BackupRotator(tmp_path / "backups", retention=10, clock=clock)
        with JsonlStore(tmp_path / "a.jsonl", backup=rotator) as store:
            store.save(make_article(1))   # nothing to back up yet
            clock.tick()
            store.save(make_article(2))
            clock.tick()
            store.save(make_article(2))   # duplicate: no write, no backup

        backups = rotator.list_backups()
        assert len(backups) == 1
        assert len(backups[0].read_text(encoding="utf-8").splitlines()) == 1

    def test_backup_failure_does_not_fail_save(self, tmp_path: Path, monkeypatch):
        rotator = BackupRotator(tmp_path / "backups", retention=2)

        def broken_rotate(source):
            raise OSError("read-only")

        monkeypatch.setattr(rotator, "rotate", broken_rotate)
        with JsonlStore(tmp_path / "a.jsonl", backup=rotator) as store:
            assert store.save(make_article(1)) is SaveResult.SAVED
            assert store.save(make_article(2)) is SaveResult.SAVED


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

class TestOpenStore:

    def test_opens_with_backups(self, tmp_path: Path):
        config = StorageConfig(
            output_file=str(tmp_path / "out" / "articles.jsonl"),
            backup_directory=str(tmp_path / "backups"),
            max_backup_files=2,
        )
        with open_store(config) as store:
            assert isinstance(store.backup, BackupRotator)
            assert store.backup.retention == 2

    def test_backups_disabled(self, tmp_path: Path):
        config = StorageConfig(output_file=str(tmp_path / "a.jsonl"), backup_enabled=False, max_backup_files=0)
        with open_store(config) as store:
            assert store.backup is None

    @pytest.mark.parametrize("overrides, key", [
        ({"output_format": "csv"}, "output_format"),
        ({"output_file": ""}, "output_file"),
        ({"backup_directory": ""}, "backup_directory"),
        ({"max_backup_files": 0}, "max_backup_files"),
    ])
    def test_invalid_config(self, overrides, key):
        with pytest.raises(ConfigError, match=key):
            validate_storage_config(StorageConfig(**overrides))
