import logging
import os
import shutil
import tempfile
import zipfile
from contextlib import nullcontext

from filelock import FileLock
from tqdm import tqdm

from droidbuild.config import COPY_BUFFER_SIZE, DEDUP_LOCK_FILENAME, META_INF_PREFIX
from droidbuild.exceptions import ArchiveRewriteError


def copy_zip_entry(source_zip, entry, destination_zip):
    """
    Streams one entry from source_zip into destination_zip.
    Stored entries keep their metadata and stay uncompressed, every other entry is deflated.

    :param source_zip: zipfile.ZipFile - archive opened for reading.
    :param entry: zipfile.ZipInfo - entry of source_zip.
    :param destination_zip: zipfile.ZipFile - archive opened for writing.
    """
    if entry.compress_type == zipfile.ZIP_STORED:
        new_entry = zipfile.ZipInfo(entry.filename, date_time=entry.date_time)
        new_entry.compress_type = zipfile.ZIP_STORED
        new_entry.external_attr = entry.external_attr
        new_entry.create_system = entry.create_system
        new_entry.comment = entry.comment
        new_entry.extra = entry.extra
        new_entry.file_size = entry.file_size
    else:
        new_entry = zipfile.ZipInfo(entry.filename, date_time=entry.date_time)
        new_entry.compress_type = zipfile.ZIP_DEFLATED
        new_entry.external_attr = entry.external_attr

    if entry.is_dir():
        destination_zip.writestr(new_entry, b"")
        return
    with source_zip.open(entry) as source, destination_zip.open(new_entry, "w") as destination:
        shutil.copyfileobj(source, destination, COPY_BUFFER_SIZE)


def build_entry_index(archives, metadata_prefix=META_INF_PREFIX):
    """
    Maps every entry path to the archives containing it. Directories and entries below
    metadata_prefix are left out.

    :param archives: list - archive paths, in packaging order.
    :param metadata_prefix: str - entries starting with it are merged elsewhere and never indexed.
    :return: dict - entry path -> list of archive paths in encounter order.
    """
    index = {}
    for archive in archives:
        try:
            with zipfile.ZipFile(archive, 'r') as zip_ref:
                for entry in zip_ref.infolist():
                    if entry.is_dir() or entry.filename.startswith(metadata_prefix):
                        continue
                    owners = index.setdefault(entry.filename, [])
                    if archive in owners:
                        continue
                    owners.append(archive)
        except (OSError, zipfile.BadZipFile) as e:
            raise ArchiveRewriteError(f"Cannot compute duplicate files from {archive}: {e}") from e
    return index


def compute_duplicates(archives, metadata_prefix=META_INF_PREFIX):
    """
    :return: dict - entry path -> owning archives, only for paths owned by more than one archive.
    """
    index = build_entry_index(archives, metadata_prefix)
    return {path: owners for path, owners in index.items() if len(owners) > 1}


def select_archives_to_rewrite(duplicates):
    """
    The first archive owning a duplicated path keeps it, every later owner loses it.

    :return: list - archives that lose at least one entry, in encounter order.
    """
    to_rewrite = []
    for path, owners in duplicates.items():
        logging.warning(f"Duplicate file {path} : {owners}")
        for archive in owners[1:]:
            if archive not in to_rewrite:
                to_rewrite.append(archive)
    return to_rewrite


def strip_duplicates(archive, duplicate_paths, output_path=None):
    """
    Rewrites an archive without the given entries.

    :param archive: str - path of the source archive.
    :param duplicate_paths: collection - entry paths to drop.
    :param output_path: str - destination of the rewritten archive, defaults to archive itself.
    :return: str - archive when it holds none of the paths, otherwise output_path.
    """
    duplicate_paths = set(duplicate_paths)
    destination = output_path or archive
    try:
        with zipfile.ZipFile(archive, 'r') as source_zip:
            entries = source_zip.infolist()
            if not any(entry.filename in duplicate_paths for entry in entries):
                logging.debug(f"No duplicates in {archive}, keeping it unchanged")
                return archive

            destination_dir = os.path.dirname(os.path.abspath(destination))
            os.makedirs(destination_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f"{os.path.basename(destination)}.",
                                            suffix=".tmp",
                                            dir=destination_dir)
            os.close(fd)
            with zipfile.ZipFile(tmp_path, 'w', compression=zipfile.ZIP_DEFLATED) as destination_zip:
                for entry in entries:
                    if entry.filename in duplicate_paths:
                        logging.debug(f"Dropping {entry.filename} from {archive}")
                        continue
                    copy_zip_entry(source_zip, entry, destination_zip)
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveRewriteError(f"Cannot remove duplicates from {archive}: {e}") from e

    try:
        os.replace(tmp_path, destination)
    except OSError as e:
        raise ArchiveRewriteError(f"Cannot rename {tmp_path} to {destination}: {e}") from e
    logging.info(f"{os.path.basename(archive)} rewritten without duplicates : {destination}")
    return destination


def _output_path_for(archive, output_directory, used_names):
    if not output_directory:
        return None
    name = os.path.basename(archive)
    if name in used_names:
        name = f"{len(used_names)}-{name}"
    used_names.add(name)
    return os.path.join(output_directory, name)


def extract_duplicates(archives, output_directory=None, metadata_prefix=META_INF_PREFIX):
    """
    Removes entries duplicated across archives from every archive but the first owner.

    :param archives: list - archive paths in packaging order. The order decides which archive keeps an entry.
    :param output_directory: str - where rewritten archives go. When None, archives are rewritten in place.
    :param metadata_prefix: str - entries below it are never deduplicated.
    :return: list - the archives with every rewritten archive replaced by its new path.
    """
    archives = list(archives)
    logging.debug("Extracting duplicates")
    duplicates = compute_duplicates(archives, metadata_prefix)
    to_rewrite = select_archives_to_rewrite(duplicates)
    if not to_rewrite:
        return archives

    lock = nullcontext()
    if output_directory:
        os.makedirs(output_directory, exist_ok=True)
        lock = FileLock(os.path.join(output_directory, DEDUP_LOCK_FILENAME))
    with lock:
        used_names = set()
        for archive in tqdm(to_rewrite, desc="Removing duplicate entries"):
            stripped = [path for path, owners in duplicates.items() if archive in owners[1:]]
            new_archive = strip_duplicates(archive,
                                           stripped,
                                           _output_path_for(archive, output_directory, used_names))
            archives = [new_archive if path == archive else path for path in archives]
    return archives
