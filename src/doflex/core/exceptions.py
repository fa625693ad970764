"""Custom exceptions for the DigitalOcean flex volume driver."""

from enum import Enum


class ErrorCode(Enum):
    """Structured error codes for the flex driver."""

    # General errors (1xx)
    UNKNOWN = 100
    INTERNAL_ERROR = 101
    CONFIGURATION_ERROR = 102
    CREDENTIALS_MISSING = 103

    # Connection errors (2xx)
    CONNECTION_FAILED = 200
    TIMEOUT = 201
    AUTHENTICATION_FAILED = 202
    RATE_LIMITED = 203
    SERVICE_UNAVAILABLE = 204

    # Command errors (3xx)
    MALFORMED_COMMAND = 300
    UNKNOWN_VERB = 301
    COMMAND_FAILED = 302
    COMMAND_NOT_FOUND = 303
    PERMISSION_DENIED = 304

    # Resource errors (4xx)
    RESOURCE_NOT_FOUND = 400
    NODE_NOT_FOUND = 401
    AMBIGUOUS_VOLUME = 402
    NOT_A_PROVIDER_DEVICE = 403
    RESOURCE_BUSY = 404

    # Validation errors (5xx)
    VALIDATION_FAILED = 500
    INVALID_OPTIONS = 501
    DECODE_FAILED = 502

    # Lifecycle errors (6xx)
    ACTION_FAILED = 600
    UNEXPECTED_ACTION_STATUS = 601
    ATTACH_TIMEOUT = 602
    DETACH_TIMEOUT = 603


class FlexError(Exception):
    """Base exception for all flex driver errors."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN):
        """Initialize FlexError.

        Args:
            message: Error message.
            code: Structured error code.
        """
        self.code = code
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, str | int]:
        """Convert error to dictionary for structured logging.

        Returns:
            Dictionary with error details.
        """
        return {
            "error": self.message,
            "code": self.code.value,
            "code_name": self.code.name,
        }


class MalformedCommandError(FlexError):
    """Raised when the argument vector lacks a verb or a positional argument."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.MALFORMED_COMMAND)


class UnknownVerbError(FlexError):
    """Raised when the verb is not a recognized flex command."""

    def __init__(self, verb: str):
        self.verb = verb
        super().__init__(
            f"command {verb!r} not recognized as a valid flex command", ErrorCode.UNKNOWN_VERB
        )


class InvalidOptionsError(FlexError):
    """Raised when the options payload cannot be decoded or lacks a required field."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.INVALID_OPTIONS)


class CredentialsError(FlexError):
    """Raised when no usable API token can be found."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CREDENTIALS_MISSING)


class NodeNotFoundError(FlexError):
    """Raised when a node name matches no droplet name or address."""

    def __init__(self, node_name: str):
        self.node_name = node_name
        super().__init__(
            f"could not match node {node_name!r} to droplet name, private IP or public IP",
            ErrorCode.NODE_NOT_FOUND,
        )


class AmbiguousVolumeError(FlexError):
    """Raised when a name and region lookup does not yield exactly one volume."""

    def __init__(self, name: str, region: str, count: int):
        self.name = name
        self.region = region
        self.count = count
        super().__init__(
            f"expected exactly one volume named {name!r} at region {region!r}, found {count}",
            ErrorCode.AMBIGUOUS_VOLUME,
        )


class NotAProviderDeviceError(FlexError):
    """Raised when a device path does not belong to a DigitalOcean volume."""

    def __init__(self, device: str):
        self.device = device
        super().__init__(
            f"device path {device!r} does not seem to be a DigitalOcean volume",
            ErrorCode.NOT_A_PROVIDER_DEVICE,
        )


class RemoteActionFailedError(FlexError):
    """Raised when a storage action ends in the errored state."""

    def __init__(self, description: str):
        self.description = description
        super().__init__(
            f"there was a storage action error at DigitalOcean: {description}",
            ErrorCode.ACTION_FAILED,
        )


class UnexpectedActionStatusError(FlexError):
    """Raised when a storage action reports a status the driver does not know."""

    def __init__(self, status: str):
        self.status = status
        super().__init__(
            f"received unexpected action status {status!r} from DigitalOcean",
            ErrorCode.UNEXPECTED_ACTION_STATUS,
        )


class ActionTimeoutError(FlexError):
    """Raised when a storage action does not finish before the deadline."""

    operation = "storage action"

    def __init__(
        self,
        volume_id: str,
        last_error: Exception | None = None,
        code: ErrorCode = ErrorCode.TIMEOUT,
    ):
        self.volume_id = volume_id
        self.last_error = last_error
        message = f"{self.operation} at DigitalOcean for volume {volume_id!r} timed out"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message, code)


class AttachTimeoutError(ActionTimeoutError):
    """Raised when attaching a volume times out."""

    operation = "attach"

    def __init__(self, volume_id: str, last_error: Exception | None = None):
        super().__init__(volume_id, last_error, ErrorCode.ATTACH_TIMEOUT)


class DetachTimeoutError(ActionTimeoutError):
    """Raised when detaching a volume times out."""

    operation = "detach"

    def __init__(self, volume_id: str, last_error: Exception | None = None):
        super().__init__(volume_id, last_error, ErrorCode.DETACH_TIMEOUT)


class DigitalOceanAPIError(FlexError):
    """Raised when a DigitalOcean API call fails."""

    # User-friendly error messages mapped by error code
    USER_MESSAGES: dict[ErrorCode, str] = {
        ErrorCode.AUTHENTICATION_FAILED: (
            "Authentication failed. "
            "Check that the DigitalOcean token is valid and has not been revoked."
        ),
        ErrorCode.PERMISSION_DENIED: (
            "Permission denied. "
            "The token needs read and write scope to manage volumes."
        ),
        ErrorCode.RESOURCE_NOT_FOUND: (
            "Requested resource not found. "
            "Verify the volume ID and that the droplet still exists."
        ),
        ErrorCode.RATE_LIMITED: (
            "DigitalOcean API rate limit reached. "
            "The kubelet will retry the operation later."
        ),
        ErrorCode.SERVICE_UNAVAILABLE: (
            "DigitalOcean API is unavailable. "
            "Check https://status.digitalocean.com and try again later."
        ),
        ErrorCode.CONNECTION_FAILED: (
            "Cannot connect to the DigitalOcean API. "
            "Check the node's outbound network connectivity."
        ),
        ErrorCode.TIMEOUT: (
            "Request timed out. "
            "The API or the metadata service did not answer in time."
        ),
    }

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_id: str | None = None,
        code: ErrorCode = ErrorCode.CONNECTION_FAILED,
    ):
        """Initialize DigitalOceanAPIError.

        Args:
            message: Error message, usually the API's ``message`` field.
            status_code: HTTP status code, None for transport failures.
            error_id: The API's ``id`` field (e.g. ``not_found``).
            code: Error code used when it cannot be inferred from the status.
        """
        self.status_code = status_code
        self.error_id = error_id
        code = self._infer_error_code(code)
        if status_code is not None:
            message = f"DigitalOcean API returned {status_code}: {message}"
        super().__init__(message, code)

    def _infer_error_code(self, code: ErrorCode) -> ErrorCode:
        """Infer error code from the HTTP status."""
        if self.status_code is None:
            return code
        if self.status_code == 401:
            return ErrorCode.AUTHENTICATION_FAILED
        elif self.status_code == 403:
            return ErrorCode.PERMISSION_DENIED
        elif self.status_code == 404:
            return ErrorCode.RESOURCE_NOT_FOUND
        elif self.status_code == 422:
            return ErrorCode.RESOURCE_BUSY
        elif self.status_code == 429:
            return ErrorCode.RATE_LIMITED
        elif self.status_code >= 500:
            return ErrorCode.SERVICE_UNAVAILABLE
        return ErrorCode.COMMAND_FAILED

    def get_user_message(self) -> str:
        """Get user-friendly error message.

        Returns:
            Human-readable error message with remediation hints.
        """
        user_msg = self.USER_MESSAGES.get(self.code)
        if user_msg:
            return f"{user_msg} ({self.message})"
        return self.message

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert error to dictionary for structured logging."""
        base_dict: dict[str, str | int | None] = dict(super().to_dict())
        base_dict.update({"status_code": self.status_code, "error_id": self.error_id})
        return base_dict


class MountCommandError(FlexError):
    """Raised when a mount helper command fails."""

    USER_MESSAGES: dict[ErrorCode, str] = {
        ErrorCode.COMMAND_NOT_FOUND: (
            "Required utility not found in PATH. "
            "The node needs util-linux (findmnt, lsblk, mount) and e2fsprogs."
        ),
        ErrorCode.PERMISSION_DENIED: (
            "Permission denied. "
            "The driver must run as root to format and mount devices."
        ),
        ErrorCode.RESOURCE_BUSY: (
            "Target is busy. "
            "A process still holds files open on the mount."
        ),
    }

    def __init__(
        self,
        cmd: list[str],
        returncode: int,
        stderr: str,
        code: ErrorCode = ErrorCode.COMMAND_FAILED,
    ):
        """Initialize MountCommandError.

        Args:
            cmd: Command that failed.
            returncode: Command return code.
            stderr: Standard error output.
            code: Specific error code.
        """
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr

        code = self._infer_error_code(code)

        message = f"{' '.join(cmd)} failed with code {returncode}: {stderr}"
        super().__init__(message, code)

    def _infer_error_code(self, code: ErrorCode) -> ErrorCode:
        """Infer error code from return code and stderr content."""
        if code != ErrorCode.COMMAND_FAILED:
            return code

        if self.returncode == 127:
            return ErrorCode.COMMAND_NOT_FOUND
        elif self.returncode == 126:
            return ErrorCode.PERMISSION_DENIED

        stderr_lower = self.stderr.lower()
        error_patterns = {
            "permission denied": ErrorCode.PERMISSION_DENIED,
            "only root": ErrorCode.PERMISSION_DENIED,
            "target is busy": ErrorCode.RESOURCE_BUSY,
            "device is busy": ErrorCode.RESOURCE_BUSY,
            "does not exist": ErrorCode.RESOURCE_NOT_FOUND,
            "no such file": ErrorCode.RESOURCE_NOT_FOUND,
        }

        for pattern, error_code in error_patterns.items():
            if pattern in stderr_lower:
                return error_code

        return ErrorCode.COMMAND_FAILED

    def get_user_message(self) -> str:
        """Get user-friendly error message."""
        user_msg = self.USER_MESSAGES.get(self.code)
        if user_msg:
            return f"{user_msg}\n\nTechnical details: {self.stderr}"
        return f"Operation failed: {self.stderr}"

    def to_dict(self) -> dict[str, str | int | list[str]]:
        """Convert error to dictionary for structured logging."""
        base_dict: dict[str, str | int | list[str]] = dict(super().to_dict())
        base_dict.update(
            {
                "command": self.cmd,
                "returncode": self.returncode,
                "stderr": self.stderr,
                "user_message": self.get_user_message(),
            }
        )
        return base_dict
