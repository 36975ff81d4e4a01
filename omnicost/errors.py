"""
Exceptions and error classification for omnicost providers.

Vendor SDKs report transient failures in different shapes: botocore error
codes, Azure message text, BigQuery reason strings, HTTP status codes. Each
provider describes its vendor's signals as a list of ErrorRule objects and
the retry executor only ever sees the resulting ErrorKind.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Iterable, List, Optional, Set, Tuple


class OmnicostError(Exception):
    """Base class for errors raised by omnicost."""


class ValidationError(OmnicostError):
    """Invalid user input (dates, format, group-by). Raised before any API call."""


class ConfigurationError(OmnicostError):
    """Missing or malformed configuration, e.g. absent credentials."""


class CredentialsError(OmnicostError):
    """Provider rejected the configured credentials."""


class ProviderError(OmnicostError):
    """A provider call failed; wraps the vendor exception."""

    def __init__(self, message: str, provider: str, original_error: Optional[BaseException] = None):
        self.provider = provider
        self.original_error = original_error
        super().__init__(message)


class ErrorKind(Enum):
    """Stable classification of a failed vendor call."""
    THROTTLED = "throttled"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    NETWORK_UNREACHABLE = "network_unreachable"
    OTHER = "other"

    @property
    def is_transient(self) -> bool:
        return self is not ErrorKind.OTHER


# =============================================================================
# Exception Inspection
# =============================================================================

def error_names(exc: BaseException) -> Set[str]:
    """
    Collect the names a vendor may use to identify an error.

    - Exception class name (NoCredentialsError, ServiceRequestError, ...)
    - botocore ClientError code (ThrottlingException, ...)
    - Azure HttpResponseError OData error code (InvalidAuthenticationToken, ...)
    """
    names = {type(exc).__name__}

    response = getattr(exc, 'response', None)
    if isinstance(response, dict):
        code = response.get('Error', {}).get('Code')
        if code:
            names.add(str(code))

    odata_error = getattr(exc, 'error', None)
    code = getattr(odata_error, 'code', None)
    if isinstance(code, str) and code:
        names.add(code)

    return names


def error_status_code(exc: BaseException) -> Optional[int]:
    """Return the HTTP status code carried by an exception, if any."""
    # Azure HttpResponseError
    status = getattr(exc, 'status_code', None)
    if isinstance(status, int):
        return status

    # requests HTTPError
    response = getattr(exc, 'response', None)
    status = getattr(response, 'status_code', None)
    if isinstance(status, int):
        return status

    # google.api_core GoogleAPICallError
    status = getattr(exc, 'code', None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status

    return None


@dataclass(frozen=True)
class ErrorSignature:
    """Error names, HTTP status codes and message fragments that identify a failure."""
    names: FrozenSet[str] = frozenset()
    status_codes: FrozenSet[int] = frozenset()
    messages: Tuple[str, ...] = ()
    ignore_case: bool = False

    def matches(self, exc: BaseException) -> bool:
        if self.names and self.names & error_names(exc):
            return True

        if self.status_codes and error_status_code(exc) in self.status_codes:
            return True

        message = str(exc)
        if self.ignore_case:
            message = message.lower()
            return any(fragment.lower() in message for fragment in self.messages)
        return any(fragment in message for fragment in self.messages)


def signature(
    names: Iterable[str] = (),
    status_codes: Iterable[int] = (),
    messages: Iterable[str] = (),
    ignore_case: bool = False,
) -> ErrorSignature:
    """Build an ErrorSignature from plain iterables."""
    return ErrorSignature(
        names=frozenset(names),
        status_codes=frozenset(status_codes),
        messages=tuple(messages),
        ignore_case=ignore_case,
    )


@dataclass(frozen=True)
class ErrorRule:
    """Classify exceptions matching `signature` as `kind`."""
    kind: ErrorKind
    signature: ErrorSignature


class ErrorClassifier:
    """
    Map exceptions to an ErrorKind using an ordered list of rules.

    The first matching rule wins; exceptions no rule matches are OTHER and
    are never retried.
    """

    def __init__(self, rules: List[ErrorRule]):
        self.rules = list(rules)

    def __call__(self, exc: BaseException) -> ErrorKind:
        return self.classify(exc)

    def classify(self, exc: BaseException) -> ErrorKind:
        for rule in self.rules:
            if rule.signature.matches(exc):
                return rule.kind
        return ErrorKind.OTHER


Classifier = Callable[[BaseException], ErrorKind]
