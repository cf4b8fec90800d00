import os
import zipfile

import pytest
from filelock import FileLock

from droidbuild import archive_dedup
from droidbuild.archive_dedup import (build_entry_index,
                                      compute_duplicates,
                                      copy_zip_entry,
                                      extract_duplicates,
                                      select_archives_to_rewrite,
                                      strip_duplicates)
from droidbuild.config import DEDUP_LOCK_FILENAME
from droidbuild.exceptions import ArchiveRewriteError


def _entries(path):
    with zipfile.ZipFile(path) as zip_ref:
        return {info.filename: zip_ref.read(info) for info in zip_ref.infolist()}


def test_duplicate_path_reported_with_owners_in_order(make_archive):
    x = make_archive("x.jar", {"p/one.txt": b"from x", "p/x-only.txt": b"x"})
    y = make_archive("y.jar", {"p/one.txt": b"from y", "p/y-only.txt": b"y"})

    assert compute_duplicates([x, y]) == {"p/one.txt": [x, y]}


def test_strip_keeps_other_entries_identical(make_archive):
    x = make_archive("x.jar", {"p/one.txt": b"from x"})
    y = make_archive("y.jar", {"p/one.txt": b"from y", "p/two.txt": b"two", "q/three.bin": bytes(range(256))})
    before = _entries(y)

    result = strip_duplicates(y, compute_duplicates([x, y]).keys())

    after = _entries(result)
    assert "p/one.txt" not in after
    assert after == {name: data for name, data in before.items() if name != "p/one.txt"}


def test_strip_without_duplicates_returns_archive_unchanged(make_archive):
    archive = make_archive("a.jar", {"a.txt": b"a"})
    mtime = os.path.getmtime(archive)

    assert strip_duplicates(archive, ["missing.txt"]) == archive
    assert os.path.getmtime(archive) == mtime


def test_metadata_entries_are_never_duplicates(make_archive):
    a = make_archive("a.jar", {"META-INF/MANIFEST.MF": b"Manifest-Version: 1.0\n", "a.txt": b"a"})
    b = make_archive("b.jar", {"META-INF/MANIFEST.MF": b"Manifest-Version: 1.0\n", "b.txt": b"b"})

    assert compute_duplicates([a, b]) == {}
    assert "META-INF/MANIFEST.MF" not in build_entry_index([a, b])


def test_directories_are_not_indexed(make_archive):
    a = make_archive("a.jar", {"res/": b"", "res/a.txt": b"a"})
    b = make_archive("b.jar", {"res/": b"", "res/b.txt": b"b"})

    assert compute_duplicates([a, b]) == {}


def test_first_owner_keeps_entry_and_only_later_owners_are_rewritten(make_archive):
    a = make_archive("a.jar", {"a.txt": b"a"})
    b = make_archive("b.jar", {"shared": b"from b", "b.txt": b"b"})
    c = make_archive("c.jar", {"shared": b"from c", "c.txt": b"c"})

    duplicates = compute_duplicates([a, b, c])
    assert duplicates == {"shared": [b, c]}
    assert select_archives_to_rewrite(duplicates) == [c]

    result = extract_duplicates([a, b, c])

    assert result == [a, b, c]
    assert _entries(b) == {"shared": b"from b", "b.txt": b"b"}
    assert _entries(c) == {"c.txt": b"c"}


def test_repeated_archive_is_not_its_own_duplicate(make_archive):
    a = make_archive("a.jar", {"a.txt": b"a"})

    assert compute_duplicates([a, a]) == {}


def test_each_archive_loses_only_its_own_duplicates(make_archive):
    a = make_archive("a.jar", {"one": b"a1", "two": b"a2"})
    b = make_archive("b.jar", {"one": b"b1", "three": b"b3"})
    c = make_archive("c.jar", {"two": b"c2", "three": b"c3"})

    extract_duplicates([a, b, c])

    assert set(_entries(b)) == {"three"}
    assert set(_entries(c)) == set()


def test_output_directory_leaves_originals_untouched(make_archive, tmp_path):
    a = make_archive("a.jar", {"shared": b"a"})
    b = make_archive("b.jar", {"shared": b"b", "b.txt": b"b"})
    output_dir = tmp_path / "unpacked-embedded-jars"

    result = extract_duplicates([a, b], str(output_dir))

    assert result[0] == a
    assert result[1] == str(output_dir / "b.jar")
    assert set(_entries(b)) == {"shared", "b.txt"}
    assert set(_entries(result[1])) == {"b.txt"}


def test_stored_entries_stay_stored(make_archive):
    a = make_archive("a.jar", {"shared": b"a"})
    b = make_archive("b.jar", {"shared": b"b", "resources.arsc": b"\x02\x00" * 64}, compression=zipfile.ZIP_STORED)

    strip_duplicates(b, ["shared"])

    with zipfile.ZipFile(b) as zip_ref:
        info = zip_ref.getinfo("resources.arsc")
        assert info.compress_type == zipfile.ZIP_STORED
        assert zip_ref.read(info) == b"\x02\x00" * 64


def test_deflated_entries_keep_timestamp(tmp_path):
    source = tmp_path / "source.jar"
    with zipfile.ZipFile(source, "w") as zip_ref:
        info = zipfile.ZipInfo("a.txt", date_time=(2015, 3, 4, 5, 6, 8))
        info.compress_type = zipfile.ZIP_DEFLATED
        zip_ref.writestr(info, b"hello")

    destination = tmp_path / "destination.jar"
    with zipfile.ZipFile(source) as source_zip, zipfile.ZipFile(destination, "w") as destination_zip:
        copy_zip_entry(source_zip, source_zip.getinfo("a.txt"), destination_zip)

    with zipfile.ZipFile(destination) as zip_ref:
        copied = zip_ref.getinfo("a.txt")
        assert copied.date_time == (2015, 3, 4, 5, 6, 8)
        assert copied.compress_type == zipfile.ZIP_DEFLATED
        assert zip_ref.read(copied) == b"hello"


def test_rename_failure_raises(make_archive, monkeypatch):
    a = make_archive("a.jar", {"shared": b"a"})
    b = make_archive("b.jar", {"shared": b"b", "b.txt": b"b"})

    def failing_replace(source, destination):
        raise PermissionError("read-only")

    monkeypatch.setattr(archive_dedup.os, "replace", failing_replace)

    with pytest.raises(ArchiveRewriteError, match="Cannot rename"):
        extract_duplicates([a, b])
    assert set(_entries(b)) == {"shared", "b.txt"}


def test_unreadable_archive_is_fatal(tmp_path):
    broken = tmp_path / "broken.jar"
    broken.write_bytes(b"not a zip")

    with pytest.raises(ArchiveRewriteError, match="broken.jar"):
        compute_duplicates([str(broken)])


def test_custom_metadata_prefix(make_archive):
    a = make_archive("a.jar", {"x": b"x", "m/shared": b"meta"})
    b = make_archive("b.jar", {"shared": b"b", "y": b"y"})
    c = make_archive("c.jar", {"shared": b"c", "z": b"z"})

    assert compute_duplicates([a, b, c], metadata_prefix="m/") == {"shared": [b, c]}

    result = extract_duplicates([a, b, c], metadata_prefix="m/")

    assert result == [a, b, c]
    assert set(_entries(a)) == {"x", "m/shared"}
    assert set(_entries(b)) == {"shared", "y"}
    assert _entries(c) == {"z": b"z"}


def test_custom_metadata_prefix_does_not_exempt_default_one(make_archive):
    a = make_archive("a.jar", {"META-INF/LICENSE": b"a"})
    b = make_archive("b.jar", {"META-INF/LICENSE": b"b"})

    assert compute_duplicates([a, b], metadata_prefix="m/") == {"META-INF/LICENSE": [a, b]}


def test_output_directory_lock_is_released(make_archive, tmp_path):
    a = make_archive("a.jar", {"shared": b"a"})
    b = make_archive("b.jar", {"shared": b"b"})
    output_dir = tmp_path / "out"

    extract_duplicates([a, b], str(output_dir))

    lock = FileLock(str(output_dir / DEDUP_LOCK_FILENAME))
    lock.acquire(timeout=0)
    lock.release()


def test_output_directory_lock_is_released_on_error(make_archive, tmp_path, monkeypatch):
    a = make_archive("a.jar", {"shared": b"a"})
    b = make_archive("b.jar", {"shared": b"b"})
    output_dir = tmp_path / "out"

    def failing_replace(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr(archive_dedup.os, "replace", failing_replace)
    with pytest.raises(ArchiveRewriteError):
        extract_duplicates([a, b], str(output_dir))

    lock = FileLock(str(output_dir / DEDUP_LOCK_FILENAME))
    lock.acquire(timeout=0)
    lock.release()
