import asyncio
import re
import threading
from datetime import timedelta

import pytest

from api.objects.errors import (
    AdmissionError,
    MetadataWriteError,
    ObjectExpiredError,
    ObjectNotFoundError,
    StorageReadError,
    StorageWriteError,
)
from api.objects.services.registry import (
    ObjectRegistry,
    generate_object_id,
    storage_key_for,
)
from tests.conftest import T0, count_records
from tests.fakes import (
    BlindExistsRepository,
    BlindExistsSlowInsertRepository,
    FailingInsertRepository,
    SlowInsertRepository,
)

PAYLOAD = b"0123456789"


async def admit_text(registry, data=PAYLOAD, name="a.txt", ttl=timedelta(hours=1)):
    return await registry.admit(
        data=data,
        original_name=name,
        content_type="text/plain",
        size_bytes=len(data),
        ttl=ttl,
    )


class TestIdentity:
    def test_object_id_is_url_safe_128_bits(self):
        object_id = generate_object_id()
        assert re.fullmatch(r"[A-Za-z0-9_-]{22}", object_id)
        assert generate_object_id() != object_id

    def test_storage_key_keeps_extension(self):
        assert storage_key_for("abc", "report.PDF") == "abc.pdf"
        assert storage_key_for("abc", "archive.tar.gz") == "abc.gz"

    def test_storage_key_without_usable_extension(self):
        assert storage_key_for("abc", "README") == "abc"
        assert storage_key_for("abc", "weird.ex t") == "abc"
        assert storage_key_for("abc", "../../etc/passwd") == "abc"


class TestAdmit:
    @pytest.mark.asyncio
    async def test_round_trip(self, registry):
        result = await admit_text(registry)
        fetched = await registry.fetch(result.object_id)

        assert fetched.content == PAYLOAD
        assert fetched.content_type == "text/plain"
        assert fetched.original_name == "a.txt"
        assert fetched.size_bytes == len(PAYLOAD)

    @pytest.mark.asyncio
    async def test_expires_at_is_created_plus_ttl(self, registry, repository):
        result = await admit_text(registry)

        assert result.expires_at == T0 + timedelta(hours=1)
        record = repository.get(result.object_id)
        assert record.created_at == T0
        assert record.expires_at == result.expires_at
        assert record.download_count == 0
        assert record.storage_key == f"{result.object_id}.txt"

    @pytest.mark.asyncio
    async def test_default_ttl_applies(self, registry):
        result = await admit_text(registry, ttl=None)
        assert result.expires_at == T0 + timedelta(hours=24)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs, reason",
        [
            ({"content_type": "application/x-msdownload"}, "content_type"),
            ({"data": b"x" * 1025, "size_bytes": 1025}, "size"),
            ({"size_bytes": 3}, "size_mismatch"),
            ({"ttl": timedelta(0)}, "ttl"),
            ({"ttl": timedelta(hours=-1)}, "ttl"),
            ({"ttl": timedelta(hours=169)}, "ttl"),
            ({"original_name": "  "}, "name"),
        ],
    )
    async def test_rejection_persists_nothing(
        self, registry, blob_store, session_factory, kwargs, reason
    ):
        args = {
            "data": PAYLOAD,
            "original_name": "a.txt",
            "content_type": "text/plain",
            "size_bytes": len(PAYLOAD),
            "ttl": timedelta(hours=1),
        }
        args.update(kwargs)

        with pytest.raises(AdmissionError) as exc_info:
            await registry.admit(**args)

        assert exc_info.value.reason == reason
        assert blob_store.blobs == {}
        assert count_records(session_factory) == 0

    @pytest.mark.asyncio
    async def test_blob_write_failure(self, registry, blob_store, session_factory):
        blob_store.fail_put = True

        with pytest.raises(StorageWriteError):
            await admit_text(registry)

        assert blob_store.blobs == {}
        assert count_records(session_factory) == 0

    @pytest.mark.asyncio
    async def test_metadata_failure_discards_blob(
        self, registry_config, blob_store, session_factory, clock
    ):
        registry = ObjectRegistry(
            registry_config, blob_store, FailingInsertRepository(session_factory), clock=clock
        )

        with pytest.raises(MetadataWriteError):
            await admit_text(registry)

        assert blob_store.blobs == {}
        assert count_records(session_factory) == 0

    @pytest.mark.asyncio
    async def test_id_collision_retries_with_new_id(self, registry, monkeypatch):
        existing = await admit_text(registry)
        ids = iter([existing.object_id, "fresh-id-0000000000000"])
        monkeypatch.setattr(
            "api.objects.services.registry.generate_object_id", lambda: next(ids)
        )

        result = await admit_text(registry, data=b"second")

        assert result.object_id == "fresh-id-0000000000000"
        assert (await registry.fetch(existing.object_id)).content == PAYLOAD

    @pytest.mark.asyncio
    async def test_gives_up_after_bounded_attempts(self, registry, monkeypatch):
        existing = await admit_text(registry)
        monkeypatch.setattr(
            "api.objects.services.registry.generate_object_id", lambda: existing.object_id
        )

        with pytest.raises(MetadataWriteError):
            await admit_text(registry, data=b"second")

    @pytest.mark.asyncio
    async def test_insert_collision_discards_blob_under_other_key(
        self, registry_config, blob_store, session_factory, clock, monkeypatch
    ):
        ids = iter(["same-id", "same-id", "other-id"])
        monkeypatch.setattr(
            "api.objects.services.registry.generate_object_id", lambda: next(ids)
        )
        registry = ObjectRegistry(
            registry_config, blob_store, BlindExistsRepository(session_factory), clock=clock
        )

        await admit_text(registry, data=b"first", name="a.txt")
        result = await admit_text(registry, data=b"second", name="b.pdf")

        assert result.object_id == "other-id"
        assert sorted(blob_store.blobs) == ["other-id.pdf", "same-id.txt"]

        clock.advance(hours=2)
        assert (await registry.sweep()).deleted_count == 2
        assert blob_store.blobs == {}

    @pytest.mark.asyncio
    async def test_colliding_upload_keeps_existing_content(
        self, registry_config, blob_store, session_factory, clock, monkeypatch
    ):
        ids = iter(["same-id", "same-id", "other-id"])
        monkeypatch.setattr(
            "api.objects.services.registry.generate_object_id", lambda: next(ids)
        )
        registry = ObjectRegistry(
            registry_config, blob_store, BlindExistsRepository(session_factory), clock=clock
        )

        await admit_text(registry, data=b"first", name="a.txt")
        result = await admit_text(registry, data=b"second", name="b.txt")

        assert result.object_id == "other-id"
        assert (await registry.fetch("same-id")).content == b"first"
        assert (await registry.fetch("other-id")).content == b"second"


class TestAdmitTimeouts:
    @pytest.fixture
    def quick_config(self, registry_config):
        return registry_config.model_copy(update={"operation_timeout": 0.25})

    @pytest.mark.asyncio
    async def test_blob_write_timeout_rolls_back(
        self, quick_config, blob_store, repository, session_factory, clock
    ):
        gate = threading.Event()
        blob_store.put_gate = gate
        registry = ObjectRegistry(quick_config, blob_store, repository, clock=clock)

        try:
            with pytest.raises(StorageWriteError):
                await admit_text(registry)
        finally:
            gate.set()
        await registry.aclose()

        assert blob_store.blobs == {}
        assert count_records(session_factory) == 0

    @pytest.mark.asyncio
    async def test_metadata_timeout_rolls_back_late_insert(
        self, quick_config, blob_store, session_factory, clock
    ):
        gate = threading.Event()
        registry = ObjectRegistry(
            quick_config, blob_store, SlowInsertRepository(session_factory, gate), clock=clock
        )

        try:
            with pytest.raises(MetadataWriteError):
                await admit_text(registry)
        finally:
            gate.set()
        await registry.aclose()

        assert blob_store.blobs == {}
        assert count_records(session_factory) == 0

    @pytest.mark.asyncio
    async def test_cancelled_admit_rolls_back(
        self, registry_config, blob_store, repository, session_factory, clock
    ):
        gate = threading.Event()
        blob_store.put_gate = gate
        registry = ObjectRegistry(registry_config, blob_store, repository, clock=clock)

        task = asyncio.create_task(admit_text(registry))
        await asyncio.sleep(0.05)
        task.cancel()
        try:
            with pytest.raises(asyncio.CancelledError):
                await task
        finally:
            gate.set()
        await registry.aclose()

        assert blob_store.blobs == {}
        assert count_records(session_factory) == 0

    @pytest.mark.asyncio
    async def test_late_colliding_insert_discards_its_blob(
        self, quick_config, registry, blob_store, session_factory, clock, monkeypatch
    ):
        monkeypatch.setattr(
            "api.objects.services.registry.generate_object_id", lambda: "same-id"
        )
        await admit_text(registry, data=b"first", name="a.txt")
        gate = threading.Event()
        slow = ObjectRegistry(
            quick_config,
            blob_store,
            BlindExistsSlowInsertRepository(session_factory, gate),
            clock=clock,
        )

        try:
            with pytest.raises(MetadataWriteError):
                await admit_text(slow, data=b"second", name="b.pdf")
        finally:
            gate.set()
        await slow.aclose()

        assert sorted(blob_store.blobs) == ["same-id.txt"]
        assert count_records(session_factory) == 1


class TestFetch:
    @pytest.mark.asyncio
    async def test_unknown_id(self, registry):
        with pytest.raises(ObjectNotFoundError):
            await registry.fetch("does-not-exist")

    @pytest.mark.asyncio
    async def test_served_up_to_and_including_expiry(self, registry, clock):
        result = await admit_text(registry)

        clock.advance(minutes=59)
        assert (await registry.fetch(result.object_id)).content == PAYLOAD
        clock.advance(minutes=1)
        assert (await registry.fetch(result.object_id)).content == PAYLOAD

    @pytest.mark.asyncio
    async def test_expired_after_ttl(self, registry, repository, clock):
        result = await admit_text(registry)
        clock.advance(hours=1, microseconds=1)

        with pytest.raises(ObjectExpiredError) as exc_info:
            await registry.fetch(result.object_id)

        assert exc_info.value.expires_at == T0 + timedelta(hours=1)
        assert repository.get(result.object_id).download_count == 0

    @pytest.mark.asyncio
    async def test_expiry_does_not_wait_for_sweep(self, registry, blob_store, clock):
        result = await admit_text(registry)
        clock.advance(hours=2)

        with pytest.raises(ObjectExpiredError):
            await registry.fetch(result.object_id)
        # not yet reclaimed, still refused
        assert blob_store.exists(f"{result.object_id}.txt")

    @pytest.mark.asyncio
    async def test_counts_each_download(self, registry, repository):
        result = await admit_text(registry)

        await registry.fetch(result.object_id)
        await registry.fetch(result.object_id)

        assert repository.get(result.object_id).download_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_fetches_all_counted(self, registry, repository):
        result = await admit_text(registry)

        await asyncio.gather(*(registry.fetch(result.object_id) for _ in range(20)))

        assert repository.get(result.object_id).download_count == 20

    @pytest.mark.asyncio
    async def test_missing_blob_is_not_found(self, registry, blob_store, repository, caplog):
        result = await admit_text(registry)
        blob_store.blobs.clear()

        with pytest.raises(ObjectNotFoundError):
            await registry.fetch(result.object_id)

        assert repository.get(result.object_id).download_count == 0
        assert "missing" in caplog.text

    @pytest.mark.asyncio
    async def test_backend_failure_is_storage_error(self, registry, blob_store):
        result = await admit_text(registry)
        blob_store.fail_get = True

        with pytest.raises(StorageReadError):
            await registry.fetch(result.object_id)

    @pytest.mark.asyncio
    async def test_blob_read_timeout_is_storage_error(
        self, registry_config, blob_store, repository, clock
    ):
        registry = ObjectRegistry(
            registry_config.model_copy(update={"operation_timeout": 0.25}),
            blob_store,
            repository,
            clock=clock,
        )
        result = await admit_text(registry)
        gate = threading.Event()
        blob_store.get_gate = gate

        try:
            with pytest.raises(StorageReadError):
                await registry.fetch(result.object_id)
        finally:
            gate.set()

        assert repository.get(result.object_id).download_count == 0

    @pytest.mark.asyncio
    async def test_reclaimed_during_fetch_is_not_found(self, registry, blob_store, repository):
        result = await admit_text(registry)
        # a sweep removes the record between the lookup and the counter update
        blob_store.on_get = lambda key: repository.delete(result.object_id)

        with pytest.raises(ObjectNotFoundError):
            await registry.fetch(result.object_id)


class TestStatus:
    @pytest.mark.asyncio
    async def test_scenario(self, registry, clock):
        result = await admit_text(registry)
        assert result.expires_at.isoformat() == "2024-01-01T01:00:00+00:00"

        clock.advance(minutes=30)
        status = await registry.status(result.object_id)
        assert status.object_id == result.object_id
        assert status.original_name == "a.txt"
        assert status.size_bytes == 10
        assert status.content_type == "text/plain"
        assert status.created_at == T0
        assert status.is_expired is False
        assert status.time_remaining == 1
        assert status.download_count == 0

        clock.advance(minutes=31)
        with pytest.raises(ObjectExpiredError):
            await registry.fetch(result.object_id)
        with pytest.raises(ObjectExpiredError):
            await registry.status(result.object_id)

        sweep = await registry.sweep()
        assert sweep.deleted_count == 1
        with pytest.raises(ObjectNotFoundError):
            await registry.status(result.object_id)

    @pytest.mark.asyncio
    async def test_time_remaining_rounds_up_hours(self, registry, clock):
        result = await admit_text(registry, ttl=timedelta(hours=5))
        clock.advance(hours=2, seconds=1)

        assert (await registry.status(result.object_id)).time_remaining == 3

    @pytest.mark.asyncio
    async def test_does_not_count_or_read_blob(self, registry, blob_store, repository):
        result = await admit_text(registry)
        blob_store.fail_get = True

        await registry.status(result.object_id)

        assert repository.get(result.object_id).download_count == 0

    @pytest.mark.asyncio
    async def test_unknown_id(self, registry):
        with pytest.raises(ObjectNotFoundError):
            await registry.status("nope")


class TestSweep:
    @pytest.mark.asyncio
    async def test_reclaims_only_expired(self, registry, blob_store, clock):
        short = await admit_text(registry, ttl=timedelta(hours=1))
        long = await admit_text(registry, ttl=timedelta(hours=3))
        clock.advance(hours=2)

        result = await registry.sweep()

        assert (result.deleted_count, result.error_count) == (1, 0)
        assert not blob_store.exists(f"{short.object_id}.txt")
        with pytest.raises(ObjectNotFoundError):
            await registry.status(short.object_id)
        assert (await registry.status(long.object_id)).is_expired is False

    @pytest.mark.asyncio
    async def test_idempotent(self, registry, clock):
        await admit_text(registry)
        clock.advance(hours=2)

        first = await registry.sweep()
        second = await registry.sweep()

        assert first.deleted_count == 1
        assert (second.deleted_count, second.error_count) == (0, 0)

    @pytest.mark.asyncio
    async def test_nothing_expired_is_noop(self, registry):
        await admit_text(registry)

        result = await registry.sweep()

        assert (result.deleted_count, result.error_count) == (0, 0)

    @pytest.mark.asyncio
    async def test_already_absent_blob_counts_as_deleted(self, registry, blob_store, clock):
        await admit_text(registry)
        blob_store.blobs.clear()
        clock.advance(hours=2)

        result = await registry.sweep()

        assert (result.deleted_count, result.error_count) == (1, 0)

    @pytest.mark.asyncio
    async def test_blob_delete_failure_keeps_metadata(
        self, registry, blob_store, repository, clock
    ):
        broken = await admit_text(registry)
        fine = await admit_text(registry, data=b"other")
        blob_store.fail_delete_keys.add(f"{broken.object_id}.txt")
        clock.advance(hours=2)

        result = await registry.sweep()

        assert (result.deleted_count, result.error_count) == (1, 1)
        assert repository.get(broken.object_id) is not None
        assert repository.get(fine.object_id) is None

        blob_store.fail_delete_keys.clear()
        retry = await registry.sweep()
        assert (retry.deleted_count, retry.error_count) == (1, 0)
        assert repository.get(broken.object_id) is None

    @pytest.mark.asyncio
    async def test_overlapping_sweeps_do_not_double_count(self, registry, blob_store, clock):
        for i in range(6):
            await admit_text(registry, data=f"payload-{i}".encode())
        clock.advance(hours=2)

        first, second = await asyncio.gather(registry.sweep(), registry.sweep())

        assert first.deleted_count + second.deleted_count == 6
        assert first.error_count == second.error_count == 0
        assert blob_store.blobs == {}
