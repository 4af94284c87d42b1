# =============================================================================
# tests/test_storage_exporter.py - Bucket Export Tests
# =============================================================================

import io
import threading
import zipfile
from unittest.mock import MagicMock

import pytest
import requests

from clinicmigrate.exceptions import BucketListingError
from clinicmigrate.extractors.api_client import StorageClient
from clinicmigrate.extractors.storage_exporter import ObjectStoreExporter
from clinicmigrate.models.migration import ExporterState
from clinicmigrate.services.retry import RetryPolicy

from conftest import file_entry, folder_entry


@pytest.fixture
def bucket_tree():
    return {
        "": [file_entry("readme.pdf"), folder_entry("p1"), folder_entry("p2")],
        "p1": [file_entry("a.pdf"), folder_entry("2024")],
        "p1/2024": [file_entry("b.pdf")],
        "p2": [file_entry("c.pdf")],
    }


@pytest.fixture
def bucket_files():
    return {
        "readme.pdf": b"readme",
        "p1/a.pdf": b"aaaa",
        "p1/2024/b.pdf": b"bb",
        "p2/c.pdf": b"c",
    }


def read_zip(buffer):
    buffer.seek(0)
    with zipfile.ZipFile(buffer) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


class TestListing:
    """Work-queue listing of nested folders."""

    def test_lists_nested_folders(self, storage_client_factory, bucket_tree, bucket_files):
        client = storage_client_factory(bucket_tree, bucket_files)
        exporter = ObjectStoreExporter(client)

        paths = exporter.list_objects("documents")

        assert sorted(paths) == sorted(bucket_files)
        assert [c[1] for c in client.list_calls] == ["", "p1", "p2", "p1/2024"]

    def test_listing_is_paginated(self, storage_client_factory):
        tree = {"": [file_entry(f"f{i}.pdf") for i in range(5)]}
        client = storage_client_factory(tree, {})
        exporter = ObjectStoreExporter(client, page_size=2)

        paths = exporter.list_objects("documents")

        assert len(paths) == 5
        assert [c[3] for c in client.list_calls] == [0, 2, 4]

    def test_top_level_failure_raises(self, storage_client_factory):
        client = storage_client_factory({}, {}, broken_prefixes=[""])
        with pytest.raises(BucketListingError):
            ObjectStoreExporter(client).list_objects("documents")

    def test_nested_failure_recorded(self, storage_client_factory, bucket_tree, bucket_files):
        client = storage_client_factory(bucket_tree, bucket_files, broken_prefixes=["p1"])
        errors = []

        paths = ObjectStoreExporter(client).list_objects("documents", listing_errors=errors)

        assert sorted(paths) == ["p2/c.pdf", "readme.pdf"]
        assert errors[0]["prefix"] == "p1"


class TestExport:
    """Downloads, retries and the archive."""

    def test_full_export(self, storage_client_factory, bucket_tree, bucket_files, no_sleep_policy):
        client = storage_client_factory(bucket_tree, bucket_files)
        exporter = ObjectStoreExporter(client, retry_policy=no_sleep_policy, bucket_labels={"documents": "Documentos"})
        buffer = io.BytesIO()

        result = exporter.export("documents", buffer)

        assert result.state == ExporterState.COMPLETED
        assert exporter.state == ExporterState.COMPLETED
        assert result.expected == 4
        assert len(result.succeeded) == 4
        assert result.total_bytes == 13

        members = read_zip(buffer)
        assert members["p1/2024/b.pdf"] == b"bb"
        assert "_ERRORS.txt" not in members
        manifest = members["_MANIFEST.txt"].decode("utf-8")
        assert "# Bucket label: Documentos" in manifest
        assert "# Total archivos esperados: 4" in manifest
        assert "✓ p1/a.pdf (4 Bytes)" in manifest

    def test_retry_succeeds_on_third_attempt(self, storage_client_factory, bucket_files, no_sleep_policy, sleeps):
        tree = {"": [file_entry("readme.pdf")]}
        client = storage_client_factory(tree, bucket_files, flaky={"readme.pdf": 2})

        result = ObjectStoreExporter(client, retry_policy=no_sleep_policy).export("documents", io.BytesIO())

        assert len(result.succeeded) == 1
        assert result.succeeded[0].attempts == 3
        assert sleeps == [0.5, 1.0]

    def test_exhausted_download_recorded_and_run_continues(
        self, storage_client_factory, bucket_tree, bucket_files, no_sleep_policy,
    ):
        client = storage_client_factory(bucket_tree, bucket_files, flaky={"p2/c.pdf": 10})
        buffer = io.BytesIO()

        result = ObjectStoreExporter(client, retry_policy=no_sleep_policy).export("documents", buffer)

        assert result.state == ExporterState.COMPLETED
        assert len(result.succeeded) == 3
        assert [o.path for o in result.failed] == ["p2/c.pdf"]
        assert result.failed[0].attempts == 3
        assert "timed out" in result.failed[0].error_message

        members = read_zip(buffer)
        assert "p2/c.pdf" not in members
        errors = members["_ERRORS.txt"].decode("utf-8")
        assert "✗ p2/c.pdf" in errors
        assert "NO están incluidos" in errors

    def test_batches_bounded(self, storage_client_factory, no_sleep_policy):
        tree = {"": [file_entry(f"f{i}") for i in range(7)]}
        files = {f"f{i}": b"x" for i in range(7)}
        client = storage_client_factory(tree, files)
        events = []

        ObjectStoreExporter(client, retry_policy=no_sleep_policy, batch_size=3).export(
            "documents", io.BytesIO(), on_progress=events.append,
        )

        assert [e.current for e in events] == [3, 6, 7]
        assert all(e.total == 7 for e in events)

    def test_empty_bucket_still_writes_manifest(self, storage_client_factory):
        client = storage_client_factory({"": []}, {})
        buffer = io.BytesIO()

        result = ObjectStoreExporter(client).export("results", buffer)

        assert result.state == ExporterState.COMPLETED
        assert result.expected == 0
        members = read_zip(buffer)
        assert list(members) == ["_MANIFEST.txt"]

    def test_listing_errors_listed_in_errors_file(self, storage_client_factory, bucket_tree, bucket_files):
        client = storage_client_factory(bucket_tree, bucket_files, broken_prefixes=["p1"])
        buffer = io.BytesIO()

        result = ObjectStoreExporter(client, retry_policy=RetryPolicy(sleep=lambda s: None)).export("documents", buffer)

        assert result.has_errors
        errors = read_zip(buffer)["_ERRORS.txt"].decode("utf-8")
        assert "CARPETAS NO LISTADAS (1)" in errors

    def test_top_level_listing_failure_fails_run(self, storage_client_factory):
        client = storage_client_factory({}, {}, broken_prefixes=[""])
        exporter = ObjectStoreExporter(client)

        with pytest.raises(BucketListingError):
            exporter.export("documents", io.BytesIO())
        assert exporter.state == ExporterState.FAILED
        assert exporter.result.state == ExporterState.FAILED
        assert exporter.result.error.startswith("Could not list bucket documents")

    def test_cancel_stops_before_next_batch(self, storage_client_factory, no_sleep_policy):
        tree = {"": [file_entry(f"f{i}") for i in range(6)]}
        files = {f"f{i}": b"x" for i in range(6)}
        client = storage_client_factory(tree, files)
        cancel = threading.Event()

        result = ObjectStoreExporter(client, retry_policy=no_sleep_policy, batch_size=3).export(
            "documents", io.BytesIO(), cancel_event=cancel, on_progress=lambda e: cancel.set(),
        )

        assert result.state == ExporterState.CANCELLED
        assert len(result.succeeded) == 3
        assert result.skipped == 3


class TestListingWithHttpClient:
    """Listing through the real storage client over a mocked session."""

    def test_non_json_nested_listing_recorded(self):
        def request(method, url, **kwargs):
            resp = MagicMock()
            resp.status_code = 200
            prefix = kwargs["json"]["prefix"]
            if prefix == "p1":
                resp.json.side_effect = ValueError("Expecting value")
            elif prefix == "":
                resp.json.return_value = [file_entry("a.pdf"), folder_entry("p1")]
            else:
                resp.json.return_value = []
            return resp

        session = MagicMock(spec=requests.Session)
        session.request.side_effect = request
        errors = []

        paths = ObjectStoreExporter(StorageClient("https://x.supabase.co", session=session)).list_objects(
            "documents", listing_errors=errors,
        )

        assert paths == ["a.pdf"]
        assert [e["prefix"] for e in errors] == ["p1"]
