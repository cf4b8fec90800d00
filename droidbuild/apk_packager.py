import fnmatch
import logging
import os
import re
import shutil
import tempfile
import zipfile

from droidbuild.archive_dedup import copy_zip_entry, extract_duplicates
from droidbuild.config import (APK,
                               CLASSES_DEX,
                               CLASSES_ZIP,
                               DEBUG_KEY_ALIAS,
                               DEBUG_KEYSTORE_PASSWORD,
                               DEBUG_KEYSTORE_PATH,
                               DEX_PREFIX,
                               DEX_SUFFIX,
                               GDBSERVER_FILENAME,
                               JAR_MANIFEST_PATH,
                               JAR_NAME_PATTERN,
                               META_INF_PREFIX,
                               NATIVE_LIBRARY_SUFFIX,
                               RESOURCE_PACKAGE_SUFFIX,
                               SIGN_DEBUG_AUTO,
                               SIGN_DEBUG_BOTH,
                               SIGN_DEBUG_FALSE,
                               SIGN_DEBUG_TRUE,
                               SIGNATURE_FILE_SUFFIXES,
                               UNPACKED_EMBEDDED_JARS_DIR_NAME,
                               ZIPALIGN_ALIGNMENT)
from droidbuild.exceptions import ArchiveRewriteError, BuildExecutionError, BuildFailureError, DuplicateFileError
from droidbuild.shell_command import execute_command

SOURCE_FOLDER_SKIPPED_SUFFIXES = (".java", ".class", ".aidl", ".rs", ".scala")
SOURCE_FOLDER_SKIPPED_NAMES = ("package.html", "overview.html")


class AndroidSigner:
    """
    Interprets the <sign><debug> setting: true, false, both or auto.
    """

    def __init__(self, debug=SIGN_DEBUG_AUTO):
        debug = (debug or SIGN_DEBUG_AUTO).lower()
        if debug not in [SIGN_DEBUG_TRUE, SIGN_DEBUG_FALSE, SIGN_DEBUG_BOTH, SIGN_DEBUG_AUTO]:
            raise BuildFailureError(f"Invalid sign.debug value: {debug}. "
                                    f"Valid values are true, false, both and auto.")
        self.debug = debug

    def is_sign_with_debug_keystore(self):
        return self.debug in [SIGN_DEBUG_TRUE, SIGN_DEBUG_BOTH, SIGN_DEBUG_AUTO]

    def should_create_both_signed_and_unsigned_apk(self):
        return self.debug == SIGN_DEBUG_BOTH


class MetaInf:
    """
    Selects META-INF entries of dependency jars that are copied into the apk.
    """

    def __init__(self, includes=None, excludes=None):
        self.includes = list(includes or [])
        self.excludes = list(excludes or [])

    @classmethod
    def from_config(cls, meta_inf_config):
        if meta_inf_config is None:
            return None
        return cls(meta_inf_config.get("includes"), meta_inf_config.get("excludes"))

    def is_included(self, entry_name):
        name = entry_name[len(META_INF_PREFIX):] if entry_name.startswith(META_INF_PREFIX) else entry_name
        if any(fnmatch.fnmatchcase(name, pattern) for pattern in self.excludes):
            return False
        if not self.includes:
            return True
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.includes)


def compile_exclude_patterns(exclude_jar_resources):
    if not exclude_jar_resources:
        return []
    logging.debug(f"Compiling {len(exclude_jar_resources)} patterns")
    return [re.compile(pattern) for pattern in exclude_jar_resources]


def is_jar_excluded(jar_file, exclude_patterns):
    name = os.path.basename(jar_file)
    for pattern in exclude_patterns:
        if pattern.fullmatch(name):
            logging.debug(f"Jar {name} excluded by pattern {pattern.pattern}")
            return True
    return False


def expand_jar_files(jar_files, exclude_patterns=None):
    """
    Replaces jar folders by the jars they contain and drops excluded jars.

    :param jar_files: list - jar files or folders of jars.
    :param exclude_patterns: list - compiled patterns matched against the jar file name.
    :return: list - jar files in their original order.
    """
    jar_name_pattern = re.compile(JAR_NAME_PATTERN, re.IGNORECASE)
    expanded = []
    for jar_file in jar_files:
        if is_jar_excluded(jar_file, exclude_patterns or []):
            continue
        if os.path.isdir(jar_file):
            logging.debug(f"Adding resources from jar folder : {jar_file}")
            for filename in sorted(os.listdir(jar_file)):
                if jar_name_pattern.match(filename):
                    expanded.append(os.path.join(jar_file, filename))
        else:
            expanded.append(jar_file)
    return expanded


def get_dex_file(target_directory):
    dex_file = os.path.join(target_directory, CLASSES_DEX)
    if not os.path.exists(dex_file):
        dex_file = os.path.join(target_directory, CLASSES_ZIP)
    return dex_file


def get_secondary_dex_files(dex_file):
    """
    :return: list - classes2.dex, classes3.dex, ... next to dex_file, up to the first missing one.
    """
    secondary = []
    dex_number = 2
    candidate = os.path.join(os.path.dirname(dex_file), f"{DEX_PREFIX}{dex_number}{DEX_SUFFIX}")
    while os.path.exists(candidate):
        secondary.append(candidate)
        dex_number += 1
        candidate = os.path.join(os.path.dirname(dex_file), f"{DEX_PREFIX}{dex_number}{DEX_SUFFIX}")
    return secondary


def _is_packaged_jar_resource(entry_name):
    # META-INF entries are merged by add_meta_inf
    if entry_name.endswith("/") or entry_name.endswith(".class"):
        return False
    return not entry_name.startswith(META_INF_PREFIX)


def _is_mergeable_meta_inf_entry(entry_name):
    if entry_name.upper() == JAR_MANIFEST_PATH:
        return False
    return not entry_name.upper().endswith(tuple(SIGNATURE_FILE_SUFFIXES))


class _ApkWriter:

    def __init__(self, apk_zip):
        self.apk_zip = apk_zip
        self.origins = {}

    def _register(self, archive_path, origin):
        if archive_path in self.origins:
            raise DuplicateFileError(archive_path, self.origins[archive_path], origin)
        self.origins[archive_path] = origin

    def add_file(self, file_path, archive_path, compress_type=zipfile.ZIP_DEFLATED):
        self._register(archive_path, file_path)
        self.apk_zip.write(file_path, archive_path, compress_type=compress_type)

    def add_archive(self, archive, entry_filter=None):
        with zipfile.ZipFile(archive, 'r') as source_zip:
            for entry in source_zip.infolist():
                if entry.is_dir():
                    continue
                if entry_filter is not None and not entry_filter(entry.filename):
                    continue
                self._register(entry.filename, archive)
                copy_zip_entry(source_zip, entry, self.apk_zip)

    def add_source_folder(self, source_folder):
        for root, dirs, files in os.walk(source_folder):
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            for file in sorted(files):
                if file.startswith(".") or file.endswith(SOURCE_FOLDER_SKIPPED_SUFFIXES) \
                        or file in SOURCE_FOLDER_SKIPPED_NAMES:
                    continue
                file_path = os.path.join(root, file)
                archive_path = os.path.relpath(file_path, source_folder).replace(os.sep, "/")
                self.add_file(file_path, archive_path)

    def add_native_libraries(self, native_folder, include_gdbserver):
        for architecture in sorted(os.listdir(native_folder)):
            architecture_dir = os.path.join(native_folder, architecture)
            if not os.path.isdir(architecture_dir):
                continue
            for file in sorted(os.listdir(architecture_dir)):
                if file.endswith(NATIVE_LIBRARY_SUFFIX) or (include_gdbserver and file == GDBSERVER_FILENAME):
                    self.add_file(os.path.join(architecture_dir, file), f"lib/{architecture}/{file}")


def build_apk(output_apk, resource_package, dex_file, source_folders=None, jar_files=None,
              native_folders=None, debug=False):
    """
    Assembles an unsigned apk from the aapt resource package, the dex output, java resources
    of source folders and jars, and native libraries.

    :param output_apk: str - path of the apk to create.
    :param resource_package: str - the .ap_ archive created by aapt.
    :param dex_file: str - classes.dex, or classes.zip holding the dex files.
    :param source_folders: list - folders whose non-source files are packaged as java resources.
    :param jar_files: list - jars whose resources are packaged.
    :param native_folders: list - folders with one sub folder per ABI.
    :param debug: bool - also package gdbserver binaries.
    """
    logging.debug(f"Building APK {output_apk}")
    os.makedirs(os.path.dirname(os.path.abspath(output_apk)), exist_ok=True)
    try:
        with zipfile.ZipFile(output_apk, 'w', compression=zipfile.ZIP_DEFLATED) as apk_zip:
            writer = _ApkWriter(apk_zip)
            writer.add_archive(resource_package)
            if dex_file.endswith(DEX_SUFFIX):
                writer.add_file(dex_file, CLASSES_DEX)
            else:
                writer.add_archive(dex_file)
            for secondary_dex in get_secondary_dex_files(dex_file):
                writer.add_file(secondary_dex, os.path.basename(secondary_dex))
            for source_folder in source_folders or []:
                if os.path.isdir(source_folder):
                    logging.debug(f"Adding source folder : {source_folder}")
                    writer.add_source_folder(source_folder)
            for jar_file in jar_files or []:
                logging.debug(f"Adding resources from : {jar_file}")
                writer.add_archive(jar_file, _is_packaged_jar_resource)
            for native_folder in native_folders or []:
                if os.path.isdir(native_folder):
                    logging.debug(f"Adding native library : {native_folder}")
                    writer.add_native_libraries(native_folder, debug)
    except (OSError, zipfile.BadZipFile) as e:
        raise BuildExecutionError(f"Could not create apk {output_apk}: {e}") from e
    return output_apk


def add_meta_inf(output_apk, jar_files, meta_inf, extract_duplicates_enabled=False):
    """
    Re-streams the apk and appends the selected META-INF entries of the jars.

    :param output_apk: str - apk to update in place.
    :param jar_files: list - jars providing META-INF entries.
    :param meta_inf: MetaInf - selects the entries to copy.
    :param extract_duplicates_enabled: bool - skip repeated entries instead of failing.
    """
    output_dir = os.path.dirname(os.path.abspath(output_apk))
    fd, tmp_path = tempfile.mkstemp(prefix=f"{os.path.basename(output_apk)}.", suffix=".add", dir=output_dir)
    os.close(fd)
    entries = set()
    try:
        with zipfile.ZipFile(tmp_path, 'w', compression=zipfile.ZIP_DEFLATED) as destination_zip:
            with zipfile.ZipFile(output_apk, 'r') as apk_zip:
                for entry in apk_zip.infolist():
                    if entry.is_dir():
                        continue
                    entries.add(entry.filename)
                    copy_zip_entry(apk_zip, entry, destination_zip)
            for jar_file in jar_files:
                with zipfile.ZipFile(jar_file, 'r') as jar_zip:
                    for entry in jar_zip.infolist():
                        name = entry.filename
                        if entry.is_dir() or not name.startswith(META_INF_PREFIX):
                            continue
                        if not _is_mergeable_meta_inf_entry(name) or not meta_inf.is_included(name):
                            continue
                        if name in entries:
                            if extract_duplicates_enabled:
                                continue
                            raise ArchiveRewriteError(f"Could not add META-INF resources. "
                                                      f"Duplicate entry {name} in {jar_file}")
                        entries.add(name)
                        copy_zip_entry(jar_zip, entry, destination_zip)
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveRewriteError(f"Could not add META-INF resources to {output_apk}: {e}") from e

    try:
        os.replace(tmp_path, output_apk)
    except OSError as e:
        raise ArchiveRewriteError(f"Cannot rename {tmp_path} to {os.path.basename(output_apk)}: {e}") from e
    return output_apk


def align_apk_file(zipalign_path, apk_file_path):
    logging.info(f"Align apk file: {apk_file_path}")
    out_file_path = f"{apk_file_path}.aligned"
    command = [zipalign_path, '-f', '-v', ZIPALIGN_ALIGNMENT, apk_file_path, out_file_path]
    success, log_message = execute_command(command)
    if success:
        shutil.move(out_file_path, apk_file_path)
    return success, log_message


def sign_apk_file(apksigner_path, apk_file_path, keystore_path=DEBUG_KEYSTORE_PATH,
                  keystore_password=DEBUG_KEYSTORE_PASSWORD, key_alias=DEBUG_KEY_ALIAS):
    """
    Signs the APK file with apksigner.

    :param apksigner_path: str - path to the apksigner tool.
    :param apk_file_path: str - path to the APK file.
    :param keystore_path: str - keystore holding the signing key, the debug keystore by default.
    """
    if not os.path.exists(apk_file_path):
        return False, f"Error: APK file not found for signing: {apk_file_path}"
    elif not os.path.exists(keystore_path):
        return False, f"Error: Keystore not found for signing: {keystore_path}"

    sign_command = [apksigner_path, 'sign',
                    '--ks', keystore_path,
                    '--ks-pass', f'pass:{keystore_password}',
                    '--ks-key-alias', key_alias,
                    '--in', apk_file_path,
                    '--out', apk_file_path]
    success, log_message = execute_command(sign_command)
    logging.info(f"Signing APK file: {apk_file_path} with keystore: {keystore_path} - success: {success}")
    return success, log_message


def _package_apk(sdk, output_apk, target_directory, final_name, source_folders, jar_files, native_folders,
                 sign_with_debug_keystore, debug, meta_inf, extract_duplicates_enabled):
    dex_file = get_dex_file(target_directory)
    resource_package = os.path.join(target_directory, f"{final_name}{RESOURCE_PACKAGE_SUFFIX}")
    build_apk(output_apk, resource_package, dex_file, source_folders, jar_files, native_folders, debug)
    # rewriting after zipalign or apksigner would drop the alignment and the signing block
    if meta_inf is not None:
        add_meta_inf(output_apk, jar_files, meta_inf, extract_duplicates_enabled)

    success, log_message = align_apk_file(sdk.get_zipalign_path(), output_apk)
    if not success:
        raise BuildExecutionError(f"Could not align {output_apk}: {log_message}")
    if sign_with_debug_keystore:
        success, log_message = sign_apk_file(sdk.get_apksigner_path(), output_apk)
        if not success:
            raise BuildExecutionError(f"Could not sign {output_apk}: {log_message}")


def create_apk_file(sdk, target_directory, final_name, jar_files, output_apk=None, source_folders=None,
                    native_folders=None, signer=None, extract_duplicates_enabled=False,
                    exclude_jar_resources=None, meta_inf=None, debug=False):
    """
    Creates the apk of the project, and an additional unsigned one when sign.debug is "both".

    :param sdk: AndroidSdk - provides zipalign and apksigner.
    :param target_directory: str - build directory holding classes.dex and the .ap_ resource package.
    :param final_name: str - base name of the build outputs.
    :param jar_files: list - dependency jars in classpath order.
    :return: list - paths of the created apk files.
    """
    signer = signer or AndroidSigner()
    output_apk = output_apk or os.path.join(target_directory, f"{final_name}.{APK}")
    jar_files = expand_jar_files(jar_files, compile_exclude_patterns(exclude_jar_resources))
    if extract_duplicates_enabled:
        embedded_jars_dir = os.path.join(target_directory, UNPACKED_EMBEDDED_JARS_DIR_NAME)
        jar_files = extract_duplicates(jar_files, embedded_jars_dir)

    created = []
    if signer.should_create_both_signed_and_unsigned_apk():
        logging.info(f"Creating debug key signed apk file {output_apk}")
        _package_apk(sdk, output_apk, target_directory, final_name, source_folders, jar_files, native_folders,
                     True, debug, meta_inf, extract_duplicates_enabled)
        created.append(output_apk)
        unsigned_apk = os.path.join(target_directory, f"{final_name}-unsigned.{APK}")
        logging.info(f"Creating additional unsigned apk file {unsigned_apk}")
        _package_apk(sdk, unsigned_apk, target_directory, final_name, source_folders, jar_files, native_folders,
                     False, debug, meta_inf, extract_duplicates_enabled)
        created.append(unsigned_apk)
    else:
        _package_apk(sdk, output_apk, target_directory, final_name, source_folders, jar_files, native_folders,
                     signer.is_sign_with_debug_keystore(), debug, meta_inf, extract_duplicates_enabled)
        created.append(output_apk)

    return created
