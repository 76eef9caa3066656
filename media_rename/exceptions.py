class RenamerError(Exception):
    """Base class for application-specific errors."""
    pass

class ConfigError(RenamerError):
    """Errors related to configuration loading or validation."""
    pass

class ManifestError(RenamerError):
    """Errors while reading a library manifest."""
    pass

class FileOperationError(RenamerError):
    """Errors during file system operations."""
    pass

class UserAbortError(RenamerError):
    """Error raised when user cancels an operation."""
    pass

class CollisionConflict(RenamerError):
    """Raised when a plan flagged with renamer problems is handed to the executor."""
    def __init__(self, plan, message: str = ""):
        self.plan = plan
        super().__init__(message or f"Refusing to apply plan for '{plan.old_path}': destination collides or is duplicated.")

class PartialApplyFailure(FileOperationError):
    """
    An entity's apply stopped midway. `applied` is the AppliedPlan of the operations
    that did complete (it can be handed to undo as-is); `source`/`destination` name
    the move that failed and `cause` the underlying exception.
    """
    def __init__(self, plan, applied, source, destination, cause: BaseException):
        self.plan = plan
        self.applied = applied
        self.source = source
        self.destination = destination
        self.cause = cause
        super().__init__(f"Apply stopped after {len(applied.entries)} operation(s) at '{source}' -> '{destination}': {cause}")

class TemplateResolutionWarning(UserWarning):
    """Non-fatal: unknown token, unknown modifier or malformed token in a template."""
    pass
