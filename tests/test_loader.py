"""Tests for the read-through Loader."""

from __future__ import annotations

import os
import threading
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable
from unittest.mock import patch

import pytest

from conftest import ScriptedFetcher
from fetchcache.cache import map_to_storage_name
from fetchcache.exceptions import FetchFailure, StorageFailure
from fetchcache.loader import Loader
from fetchcache.models import CacheConfig

URL_TO_LOAD = "https://ec.europa.eu/information_society/policy/esignature/trusted-list/tl-mp.xml"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _cached_files(directory: Path) -> list[Path]:
    if not directory.exists():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file())


def _get_and_return_mtime(loader: Loader, cache_dir: Path) -> float:
    data = loader.get(URL_TO_LOAD)
    assert len(data) > 0
    files = _cached_files(cache_dir)
    assert len(files) == 1
    return files[0].stat().st_mtime


def _age_entry(loader: Loader, key: str, seconds: float) -> None:
    """Move an entry's mtime *seconds* into the past."""
    path = loader.store.path_for(map_to_storage_name(key))
    past = time.time() - seconds
    os.utime(path, (past, past))


# ---------------------------------------------------------------------------
# Cold start and reuse
# ---------------------------------------------------------------------------


class TestColdStart:
    def test_fetches_once_and_writes_one_entry(
        self, make_config: Callable[..., CacheConfig], cache_dir: Path
    ) -> None:
        fetcher = ScriptedFetcher(b"<tsl/>")
        loader = Loader(make_config(), fetcher)

        assert loader.get(URL_TO_LOAD) == b"<tsl/>"

        assert fetcher.calls == [URL_TO_LOAD]
        files = _cached_files(cache_dir)
        assert [f.name for f in files] == [map_to_storage_name(URL_TO_LOAD)]
        assert files[0].read_bytes() == b"<tsl/>"

    def test_second_call_served_from_cache(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        fetcher = ScriptedFetcher(b"first", b"second")
        loader = Loader(make_config(), fetcher)

        assert loader.get(URL_TO_LOAD) == b"first"
        assert loader.get(URL_TO_LOAD) == b"first"
        assert len(fetcher.calls) == 1

    def test_distinct_keys_get_distinct_entries(
        self, make_config: Callable[..., CacheConfig], cache_dir: Path
    ) -> None:
        fetcher = ScriptedFetcher(lambda key: key.encode())
        loader = Loader(make_config(), fetcher)

        assert loader.get("https://a.example/x") == b"https://a.example/x"
        assert loader.get("https://b.example/x") == b"https://b.example/x"
        assert len(_cached_files(cache_dir)) == 2

    def test_returns_fetched_bytes_without_rereading(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        loader = Loader(make_config(), ScriptedFetcher(b"fresh"))
        with patch.object(loader.store, "read", side_effect=AssertionError("re-read")):
            assert loader.get(URL_TO_LOAD) == b"fresh"

    def test_every_fresh_hit_reads_from_disk(
        self, make_config: Callable[..., CacheConfig], cache_dir: Path
    ) -> None:
        loader = Loader(make_config(), ScriptedFetcher(b"original"))
        loader.get(URL_TO_LOAD)
        (cache_dir / map_to_storage_name(URL_TO_LOAD)).write_bytes(b"edited on disk")
        assert loader.get(URL_TO_LOAD) == b"edited on disk"


# ---------------------------------------------------------------------------
# Expiration (timing scenarios with the real clock)
# ---------------------------------------------------------------------------


class TestExpirationTiming:
    def test_expiration_not_set_uses_cached_file(
        self, make_config: Callable[..., CacheConfig], cache_dir: Path
    ) -> None:
        loader = Loader(make_config(), ScriptedFetcher(b"tl"))
        first = _get_and_return_mtime(loader, cache_dir)
        time.sleep(1)
        second = _get_and_return_mtime(loader, cache_dir)
        assert first == second

    def test_cache_not_expired_uses_cached_file(
        self, make_config: Callable[..., CacheConfig], cache_dir: Path
    ) -> None:
        loader = Loader(make_config(expiration=2.0), ScriptedFetcher(b"tl"))
        first = _get_and_return_mtime(loader, cache_dir)
        time.sleep(1)
        second = _get_and_return_mtime(loader, cache_dir)
        assert first == second

    def test_cache_expired_downloads_new_copy(
        self, make_config: Callable[..., CacheConfig], cache_dir: Path
    ) -> None:
        fetcher = ScriptedFetcher(b"tl")
        loader = Loader(make_config(expiration=0.5), fetcher)
        first = _get_and_return_mtime(loader, cache_dir)
        time.sleep(1)
        second = _get_and_return_mtime(loader, cache_dir)
        assert first < second
        assert len(fetcher.calls) == 2


# ---------------------------------------------------------------------------
# Expiration (injected clock)
# ---------------------------------------------------------------------------


class TestExpirationClock:
    def test_entry_younger_than_expiration_reused(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        fetcher = ScriptedFetcher(b"old", b"new")
        loader = Loader(make_config(expiration=60), fetcher)
        loader.get(URL_TO_LOAD)
        _age_entry(loader, URL_TO_LOAD, 30)
        assert loader.get(URL_TO_LOAD) == b"old"

    def test_entry_older_than_expiration_refetched(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        fetcher = ScriptedFetcher(b"old", b"new")
        loader = Loader(make_config(expiration=60), fetcher)
        loader.get(URL_TO_LOAD)
        _age_entry(loader, URL_TO_LOAD, 120)
        assert loader.get(URL_TO_LOAD) == b"new"
        assert loader.store.read(map_to_storage_name(URL_TO_LOAD)) == b"new"

    def test_age_equal_to_expiration_is_stale(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        fetcher = ScriptedFetcher(b"old", b"new")
        loader = Loader(make_config(expiration=60), fetcher)
        loader.get(URL_TO_LOAD)
        mtime = loader.store.last_write_time(map_to_storage_name(URL_TO_LOAD))

        loader_at_boundary = Loader(
            make_config(expiration=60), fetcher, clock=lambda: mtime + 60
        )
        assert loader_at_boundary.get(URL_TO_LOAD) == b"new"

    def test_clock_is_injected(self, make_config: Callable[..., CacheConfig]) -> None:
        fetcher = ScriptedFetcher(b"old", b"new")
        now = {"t": time.time()}
        loader = Loader(make_config(expiration=10), fetcher, clock=lambda: now["t"])
        loader.get(URL_TO_LOAD)
        now["t"] += 5
        assert loader.get(URL_TO_LOAD) == b"old"
        now["t"] += 10
        assert loader.get(URL_TO_LOAD) == b"new"

    def test_zero_expiration_always_refetches(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        fetcher = ScriptedFetcher(b"a", b"b", b"c")
        loader = Loader(make_config(expiration=0), fetcher)
        assert [loader.get(URL_TO_LOAD) for _ in range(3)] == [b"a", b"b", b"c"]

    def test_refresh_forces_fetch(self, make_config: Callable[..., CacheConfig]) -> None:
        fetcher = ScriptedFetcher(b"a", b"b")
        loader = Loader(make_config(), fetcher)
        loader.get(URL_TO_LOAD)
        assert loader.get(URL_TO_LOAD, refresh=True) == b"b"
        assert loader.get(URL_TO_LOAD) == b"b"


# ---------------------------------------------------------------------------
# Fetch failures and the stale fallback
# ---------------------------------------------------------------------------


class TestFetchFailure:
    def test_cold_fetch_failure_raises(
        self, make_config: Callable[..., CacheConfig], cache_dir: Path
    ) -> None:
        loader = Loader(make_config(), ScriptedFetcher(FetchFailure("down")))
        with pytest.raises(FetchFailure):
            loader.get(URL_TO_LOAD)
        assert _cached_files(cache_dir) == []

    def test_foreign_exception_wrapped(self, make_config: Callable[..., CacheConfig]) -> None:
        loader = Loader(make_config(), ScriptedFetcher(RuntimeError("socket closed")))
        with pytest.raises(FetchFailure) as exc_info:
            loader.get(URL_TO_LOAD)
        assert exc_info.value.key == URL_TO_LOAD
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.parametrize("payload", [None, "text"])
    def test_non_bytes_payload_wrapped(
        self, make_config: Callable[..., CacheConfig], payload: object
    ) -> None:
        loader = Loader(make_config(), ScriptedFetcher(lambda key: payload))
        with pytest.raises(FetchFailure) as exc_info:
            loader.get(URL_TO_LOAD)
        assert isinstance(exc_info.value.__cause__, TypeError)
        assert not loader.is_cached(URL_TO_LOAD)

    def test_cold_fetch_failure_raises_even_with_stale_fallback(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        loader = Loader(
            make_config(serve_stale_on_error=True), ScriptedFetcher(FetchFailure("down"))
        )
        with pytest.raises(FetchFailure):
            loader.get(URL_TO_LOAD)

    def test_stale_entry_failure_propagates_by_default(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        fetcher = ScriptedFetcher(b"old", FetchFailure("down"))
        loader = Loader(make_config(expiration=60), fetcher)
        loader.get(URL_TO_LOAD)
        _age_entry(loader, URL_TO_LOAD, 120)
        with pytest.raises(FetchFailure):
            loader.get(URL_TO_LOAD)
        assert loader.store.read(map_to_storage_name(URL_TO_LOAD)) == b"old"

    def test_stale_entry_served_when_fallback_enabled(
        self,
        make_config: Callable[..., CacheConfig],
        verbose_output,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        fetcher = ScriptedFetcher(b"old", FetchFailure("down"))
        loader = Loader(make_config(expiration=60, serve_stale_on_error=True), fetcher)
        loader.get(URL_TO_LOAD)
        _age_entry(loader, URL_TO_LOAD, 120)

        assert loader.get(URL_TO_LOAD) == b"old"
        assert len(fetcher.calls) == 2
        assert "serving cached copy" in capsys.readouterr().err

    def test_failed_fetch_retried_on_next_call(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        fetcher = ScriptedFetcher(FetchFailure("down"), b"recovered")
        loader = Loader(make_config(), fetcher)
        with pytest.raises(FetchFailure):
            loader.get(URL_TO_LOAD)
        assert loader.get(URL_TO_LOAD) == b"recovered"


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


class TestStorageFailure:
    def test_write_failure_surfaces_as_storage_failure(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        loader = Loader(CacheConfig(cache_directory=blocker / "cache"), ScriptedFetcher())
        with pytest.raises(StorageFailure):
            loader.get(URL_TO_LOAD)

    def test_read_failure_surfaces_as_storage_failure(
        self, make_config: Callable[..., CacheConfig], cache_dir: Path
    ) -> None:
        loader = Loader(make_config(), ScriptedFetcher())
        loader.get(URL_TO_LOAD)
        with patch.object(Path, "read_bytes", side_effect=PermissionError("denied")):
            with pytest.raises(StorageFailure):
                loader.get(URL_TO_LOAD)

    def test_entry_vanishing_before_read_is_a_miss(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        fetcher = ScriptedFetcher(b"a", b"b")
        loader = Loader(make_config(), fetcher)
        loader.get(URL_TO_LOAD)

        original_read = loader.store.read

        def vanish(name: str) -> bytes:
            loader.store.path_for(name).unlink()
            return original_read(name)

        with patch.object(loader.store, "read", side_effect=vanish):
            assert loader.get(URL_TO_LOAD) == b"b"
        assert len(fetcher.calls) == 2


# ---------------------------------------------------------------------------
# Empty payloads and ignored keys
# ---------------------------------------------------------------------------


class TestBypass:
    def test_empty_payload_returned_but_not_cached(
        self, make_config: Callable[..., CacheConfig], cache_dir: Path
    ) -> None:
        fetcher = ScriptedFetcher(b"", b"content")
        loader = Loader(make_config(), fetcher)
        assert loader.get(URL_TO_LOAD) == b""
        assert _cached_files(cache_dir) == []
        assert loader.get(URL_TO_LOAD) == b"content"
        assert len(fetcher.calls) == 2

    def test_ignored_key_always_fetched_never_stored(
        self, make_config: Callable[..., CacheConfig], cache_dir: Path
    ) -> None:
        fetcher = ScriptedFetcher(b"a", b"b")
        loader = Loader(make_config(ignored_keys=[URL_TO_LOAD]), fetcher)
        assert loader.get(URL_TO_LOAD) == b"a"
        assert loader.get(URL_TO_LOAD) == b"b"
        assert _cached_files(cache_dir) == []

    def test_bytearray_payload_normalised(self, make_config: Callable[..., CacheConfig]) -> None:
        loader = Loader(make_config(), ScriptedFetcher(lambda key: bytearray(b"raw")))
        data = loader.get(URL_TO_LOAD)
        assert data == b"raw"
        assert type(data) is bytes


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    def test_concurrent_cold_gets_fetch_once(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        def slow(key: str) -> bytes:
            time.sleep(0.2)
            return b"shared"

        fetcher = ScriptedFetcher(slow)
        loader = Loader(make_config(), fetcher)
        results: list[bytes] = []
        errors: list[BaseException] = []

        def worker() -> None:
            try:
                results.append(loader.get(URL_TO_LOAD))
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert results == [b"shared"] * 8
        assert len(fetcher.calls) == 1

    def test_waiters_fetch_again_after_failed_fetch(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        attempts = {"n": 0}
        attempts_lock = threading.Lock()

        def fail_first(key: str) -> bytes:
            with attempts_lock:
                attempts["n"] += 1
                first = attempts["n"] == 1
            time.sleep(0.2)
            if first:
                raise FetchFailure("first attempt refused", key=key)
            return b"second"

        fetcher = ScriptedFetcher(fail_first)
        loader = Loader(make_config(), fetcher)
        results: list[bytes] = []
        errors: list[BaseException] = []

        def worker() -> None:
            try:
                results.append(loader.get(URL_TO_LOAD))
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(errors) == 1
        assert isinstance(errors[0], FetchFailure)
        assert results == [b"second"] * 5
        assert 2 <= len(fetcher.calls) <= 6
        assert loader.store.read(map_to_storage_name(URL_TO_LOAD)) == b"second"

    def test_different_keys_fetch_in_parallel(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        barrier = threading.Barrier(2, timeout=5)

        def rendezvous(key: str) -> bytes:
            # Both fetches must be in flight at once to pass the barrier.
            barrier.wait()
            return key.encode()

        loader = Loader(make_config(), ScriptedFetcher(rendezvous))
        errors: list[BaseException] = []

        def worker(key: str) -> None:
            try:
                loader.get(key)
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [
            threading.Thread(target=worker, args=(f"https://example.com/{i}",))
            for i in range(2)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []

    def test_lock_registry_emptied_after_use(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        loader = Loader(make_config(expiration=0), ScriptedFetcher(b"a", FetchFailure("x")))
        loader.get(URL_TO_LOAD)
        with pytest.raises(FetchFailure):
            loader.get(URL_TO_LOAD)
        assert loader._locks == {}

    def test_loaders_with_different_configs_coexist(self, tmp_path: Path) -> None:
        fetcher = ScriptedFetcher(b"a", b"b", b"c")
        forever = Loader(CacheConfig(cache_directory=tmp_path / "one"), fetcher)
        always = Loader(
            CacheConfig(cache_directory=tmp_path / "two", expiration=timedelta(0)), fetcher
        )
        assert forever.get(URL_TO_LOAD) == b"a"
        assert always.get(URL_TO_LOAD) == b"b"
        assert forever.get(URL_TO_LOAD) == b"a"
        assert always.get(URL_TO_LOAD) == b"c"


# ---------------------------------------------------------------------------
# Helpers and lifecycle
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_is_cached(self, make_config: Callable[..., CacheConfig]) -> None:
        loader = Loader(make_config(), ScriptedFetcher())
        assert loader.is_cached(URL_TO_LOAD) is False
        loader.get(URL_TO_LOAD)
        assert loader.is_cached(URL_TO_LOAD) is True

    def test_storage_name(self, make_config: Callable[..., CacheConfig]) -> None:
        loader = Loader(make_config(), ScriptedFetcher())
        assert loader.storage_name(URL_TO_LOAD) == map_to_storage_name(URL_TO_LOAD)

    def test_get_many(self, make_config: Callable[..., CacheConfig]) -> None:
        loader = Loader(make_config(), ScriptedFetcher(lambda key: key[-1].encode()))
        assert loader.get_many(["https://x/1", "https://x/2"]) == {
            "https://x/1": b"1",
            "https://x/2": b"2",
        }

    def test_context_manager_closes_fetcher(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        fetcher = ScriptedFetcher()
        with Loader(make_config(), fetcher) as loader:
            loader.get(URL_TO_LOAD)
        assert fetcher.closed is True

    def test_close_tolerates_fetcher_without_close(
        self, make_config: Callable[..., CacheConfig]
    ) -> None:
        class Bare:
            def fetch(self, key: str) -> bytes:
                return b"x"

        Loader(make_config(), Bare()).close()

    def test_debug_messages(
        self,
        make_config: Callable[..., CacheConfig],
        verbose_output,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        loader = Loader(make_config(), ScriptedFetcher())
        loader.get(URL_TO_LOAD)
        loader.get(URL_TO_LOAD)
        err = capsys.readouterr().err
        assert f"Cache miss: {URL_TO_LOAD}" in err
        assert f"Cache hit: {URL_TO_LOAD}" in err
