"""
Messente Client

A Python client library for the Messente SMS gateway API.
"""

from .exceptions import (
    ERROR_CODES,
    EndpointUnreachableError,
    GatewayError,
    InvalidArgumentError,
    InvalidResponseError,
    MessenteError,
    MissingCredentialsError,
    ResponseDecodeError,
    ResponseTooLargeError,
    UnsupportedResponseTypeError,
    describe_error,
)
from .sms_api_caller import (
    MessenteClient,
    MessenteConfig,
    ReportResult,
    SendOutcome,
    SendResult,
    create_client,
    get_account_balance,
    get_prices,
    get_prices_for_country,
    get_report,
    send_sms,
)

__all__ = [
    'MessenteConfig',
    'MessenteClient',
    'SendResult',
    'SendOutcome',
    'ReportResult',
    'create_client',
    'send_sms',
    'get_report',
    'get_account_balance',
    'get_prices',
    'get_prices_for_country',
    'ERROR_CODES',
    'describe_error',
    'MessenteError',
    'MissingCredentialsError',
    'InvalidArgumentError',
    'EndpointUnreachableError',
    'ResponseDecodeError',
    'InvalidResponseError',
    'ResponseTooLargeError',
    'UnsupportedResponseTypeError',
    'GatewayError',
]

__version__ = "0.1.0"
