"""
Errors raised by the Messente client and the gateway error code table.
"""

from types import MappingProxyType
from typing import Optional, Sequence


ERROR_CODES = MappingProxyType({
    101: "Access is restricted, wrong credentials.",
    102: "Parameters are wrong or missing.",
    103: "Invalid IP address.",
    104: "Destination country not found.",
    105: "No such country or area code.",
    106: "Destination country is not supported.",
    107: "Not enough credit on account.",
    111: "Sender parameter from is invalid.",
    208: "Account credit balance undetermined, try again.",
    209: "Server failure, try again.",
})

UNKNOWN_ERROR = "Unknown error"


def describe_error(code) -> str:
    """Map a gateway error code (int or numeric string) to a readable message"""
    try:
        return ERROR_CODES.get(int(code), UNKNOWN_ERROR)
    except (TypeError, ValueError):
        return UNKNOWN_ERROR


class MessenteError(Exception):
    """Base class for every error raised by this package"""


class MissingCredentialsError(MessenteError):
    pass


class InvalidArgumentError(MessenteError, ValueError):
    pass


class EndpointUnreachableError(MessenteError):
    """All configured gateway hosts failed at the transport level"""

    def __init__(self, hosts: Sequence[str], last_error: Optional[BaseException] = None):
        self.hosts = tuple(hosts)
        self.last_error = last_error
        message = f"No reachable endpoint (tried {', '.join(self.hosts) or 'none'})"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)


class ResponseDecodeError(MessenteError):
    pass


class InvalidResponseError(ResponseDecodeError):
    pass


class ResponseTooLargeError(ResponseDecodeError):
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Response body exceeds {limit} bytes")


class UnsupportedResponseTypeError(ResponseDecodeError):
    def __init__(self, content_type: str):
        self.content_type = content_type
        super().__init__(f"Unsupported response content type: {content_type or '<none>'}")


class GatewayError(MessenteError):
    """Well-formed non-OK reply from the gateway"""

    def __init__(self, code: Optional[str], status: str = "ERROR"):
        self.code = code
        self.status = status
        super().__init__(describe_error(code))
