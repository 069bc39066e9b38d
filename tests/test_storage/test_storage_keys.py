# tests/test_storage/test_storage_keys.py

import pytest

from app.core.storage import (
    MANIFEST_NAME,
    PLAYLIST_MIME,
    SEGMENT_MIME,
    TEASER_PREFIX,
    content_type_for,
    is_manifest,
    is_segment,
    manifest_key,
    slugify_title,
    video_prefix,
)
from app.schemas.enums import VideoCategory


@pytest.mark.parametrize(
    "title, expected",
    [
        ("My Cool Film!", "my_cool_film"),
        ("  Spaced   Out  ", "spaced_out"),
        ("Tabs\tand\nnewlines", "tabs_and_newlines"),
        ("Déjà vu", "dj_vu"),
        ("already_snake_case", "already_snake_case"),
        ("Film #2 (Director's Cut)", "film_2_directors_cut"),
    ],
)
def test_slugify_title(title, expected):
    assert slugify_title(title) == expected


def test_slugify_title_can_be_empty():
    assert slugify_title("!!! ???") == "_"
    assert slugify_title("!!!") == ""
    assert slugify_title("") == ""


def test_video_prefix_and_manifest_key():
    prefix = video_prefix(VideoCategory.AD_FILMS, "my_cool_film")
    assert prefix == "ad_films/my_cool_film"
    assert manifest_key(prefix) == f"ad_films/my_cool_film/{MANIFEST_NAME}"
    assert manifest_key(prefix + "/") == f"ad_films/my_cool_film/{MANIFEST_NAME}"


def test_teaser_prefix_is_fixed():
    assert TEASER_PREFIX == "short_films/teaser"


@pytest.mark.parametrize(
    "name, mime",
    [
        ("output.manifest", PLAYLIST_MIME),
        ("index.m3u8", PLAYLIST_MIME),
        ("segment_000.ts", SEGMENT_MIME),
        ("SEGMENT_001.TS", SEGMENT_MIME),
        ("poster.jpg", "application/octet-stream"),
    ],
)
def test_content_type_for(name, mime):
    assert content_type_for(name) == mime


def test_manifest_and_segment_classification():
    assert is_manifest("output.manifest")
    assert not is_manifest("segment_000.ts")
    assert is_segment("segment_012.ts")
    assert not is_segment("output.manifest")
    assert not is_segment("other.ts")
