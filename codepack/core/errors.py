# codepack/core/errors.py


class CodePackError(Exception):
    """Base class for errors surfaced to callers of the pipeline."""


class ValidationError(CodePackError, ValueError):
    """The operation was rejected before doing any work."""


class EmptySelectionError(ValidationError):
    def __init__(self, operation: str = "pack"):
        super().__init__(f"Cannot {operation}: no files selected")
        self.operation = operation


class InvalidProjectRootError(ValidationError):
    def __init__(self, path):
        super().__init__(f"Provided path is not a valid directory: {path}")
        self.path = path


class InvalidPluginError(ValidationError):
    pass


class ScanCancelledError(CodePackError):
    pass


class ConfigWriteError(CodePackError):
    """Persisting configuration failed; in-memory state is unaffected."""
