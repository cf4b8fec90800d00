class BuildError(Exception):
    """Base class of every error that stops a droidbuild step."""


class BuildExecutionError(BuildError):
    """Fatal error, e.g. a tool or device communication failed."""


class BuildFailureError(BuildError):
    """Validation error. Callers decide whether it stops the build."""


class NoDevicesConnectedError(BuildExecutionError):
    pass


class NoDeviceMatchedError(BuildExecutionError):
    pass


class ArchiveRewriteError(BuildExecutionError):
    pass


class DuplicateFileError(BuildExecutionError):

    def __init__(self, archive_path, file1, file2):
        self.archive_path = archive_path
        self.file1 = file1
        self.file2 = file2
        super().__init__(f"Duplicated file: {archive_path}, found in archive {file1} and {file2}")
