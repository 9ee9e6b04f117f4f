"""
Classified failures for retrieval and normalization.

Every error carries a stable ``code`` and a ``retryable`` flag so the
orchestrator can decide whether to try again without inspecting messages.
Retryable kinds are transient (timeouts, browser hiccups); the rest are
terminal for the given access key or payload.

Validation-style failures also derive from ``ValueError`` so they work as
pydantic validator errors and with plain ``except ValueError`` callers.
"""

from typing import Any, Dict, Optional


class DanfeError(Exception):
    """Base class for all classified failures."""

    code: str = "DANFE_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        elapsed_ms: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.elapsed_ms = elapsed_ms

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize for user-facing envelopes.

        Only the failure kind, message, details and elapsed time are exposed;
        browser/session internals never leave the core.
        """
        data = {
            'name': type(self).__name__,
            'code': self.code,
            'message': self.message,
            'retryable': self.retryable,
            'details': self.details,
        }
        if self.elapsed_ms is not None:
            data['elapsed_ms'] = self.elapsed_ms
        return data

    def __str__(self) -> str:
        if self.elapsed_ms is not None:
            return f"{self.message} (after {self.elapsed_ms}ms)"
        return self.message


class InvalidAccessKeyError(DanfeError, ValueError):
    """Access key failed format or checksum validation."""

    code = "CHAVE_INVALIDA"
    retryable = False


class NotFoundError(DanfeError):
    """The portal positively reported that the access key does not exist."""

    code = "NOT_FOUND"
    retryable = False


class TriggerTimeoutError(DanfeError):
    """No result state and no visible download button within the polling bound."""

    code = "TRIGGER_TIMEOUT"
    retryable = True


class DownloadTimeoutError(DanfeError):
    """The download event did not fire within its bound."""

    code = "DOWNLOAD_TIMEOUT"
    retryable = True


class AutomationError(DanfeError, RuntimeError):
    """Browser could not launch, navigate, submit or click."""

    code = "BROWSER_ERROR"
    retryable = True


class PayloadInvalidError(DanfeError, ValueError):
    """Captured file is not an NF-e XML (wrong preamble, marker or size)."""

    code = "PAYLOAD_INVALID"
    retryable = False


class XmlParseError(DanfeError, ValueError):
    """The NF-e root structure could not be located in the payload."""

    code = "XML_PARSE_ERROR"
    retryable = False
