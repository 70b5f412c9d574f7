from __future__ import annotations

from datetime import UTC, datetime
import json
from pathlib import Path

import pytest

from asher.adapters.db.store import EncryptedStore
from asher.core.errors import ValidationError
from asher.credentials.ingest import ingest_source_configs, load_source_configs

SOURCES = [
    {
        "providerType": "hapoalim",
        "friendlyName": "Joint account",
        "credentials": {"userCode": "AB123", "password": "pw"},
        "tags": ["family", "checking"],
    },
    {
        "providerType": "visaCal",
        "friendlyName": "Cal card",
        "credentials": {"username": "dana", "password": "pw"},
    },
]


def write_json(path: Path, data: object) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_source_configs_from_list(tmp_path: Path) -> None:
    # helper setup
    path = write_json(tmp_path / "creds.json", SOURCES)

    # act
    configs = load_source_configs(path)

    # assert
    assert [c.friendly_name for c in configs] == ["Joint account", "Cal card"]


def test_load_source_configs_from_wrapper(tmp_path: Path) -> None:
    path = write_json(tmp_path / "creds.json", {"credentials": SOURCES})

    assert len(load_source_configs(path)) == 2


def test_load_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="File not found"):
        load_source_configs(tmp_path / "missing.json")


def test_load_invalid_json(tmp_path: Path) -> None:
    # helper setup
    path = tmp_path / "creds.json"
    path.write_text("{not json", encoding="utf-8")

    # act / assert
    with pytest.raises(ValidationError, match="Invalid JSON"):
        load_source_configs(path)


def test_ingest_stores_encrypted_sources(
    store: EncryptedStore, tmp_path: Path
) -> None:
    """
    Test ingesting validated sources into an open store.

    Verify: one row per source with wire-form credentials and sorted tags.
    """
    # helper setup
    configs = load_source_configs(write_json(tmp_path / "creds.json", SOURCES))

    # act
    ids = ingest_source_configs(store, configs)

    # assert
    sources = store.get_source_credentials()
    assert ids == [s.id for s in sources]
    assert sources[0].provider_type == "hapoalim"
    assert json.loads(sources[0].credentials) == {
        "userCode": "AB123",
        "password": "pw",
    }
    assert json.loads(sources[0].tags) == ["checking", "family"]
    assert sources[1].provider_type == "visaCal"


def test_reingest_keeps_watermark(store: EncryptedStore, tmp_path: Path) -> None:
    # input
    watermark = datetime(2025, 4, 1, tzinfo=UTC)
    rotated = [dict(SOURCES[0], credentials={"userCode": "AB123", "password": "new"})]

    # helper setup
    ingest_source_configs(
        store, load_source_configs(write_json(tmp_path / "a.json", SOURCES))
    )
    store.update_watermark("Joint account", watermark)

    # act
    ids = ingest_source_configs(
        store, load_source_configs(write_json(tmp_path / "b.json", rotated))
    )

    # assert
    source = store.get_source_credential_by_name("Joint account")
    assert source is not None
    assert ids == [source.id]
    assert json.loads(source.credentials)["password"] == "new"
    assert source.last_scraped_at == watermark
    assert len(store.get_source_credentials()) == 2
