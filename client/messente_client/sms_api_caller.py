"""
Messente API Client Module

This module provides functionality to send SMS messages, poll delivery reports
and query balance and pricing through the Messente HTTP API.

Every call is a form-encoded POST carrying the account credentials. Calls go
to the primary gateway host first and fail over to the next configured host
when the transport fails (connection refused, DNS failure, timeout, or any
other requests error). A body that cannot be content-decoded is a decoding
error and is not failed over. Replies from the gateway, including error
replies, are never failed over.
"""

import json
import os
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import requests

from .exceptions import (
    EndpointUnreachableError,
    GatewayError,
    InvalidArgumentError,
    InvalidResponseError,
    MessenteError,
    MissingCredentialsError,
)
from .logging_config import get_logger, log_sms_event
from .responses import (
    MAX_RESPONSE_BYTES,
    CsvResponse,
    DecodedResponse,
    JsonResponse,
    StatusValueResponse,
    decode_http_response,
)

logger = get_logger(__name__)

DEFAULT_HOSTS = ("api2.messente.com", "api3.messente.com")
DEFAULT_TIMEOUT = 30.0
DEFAULT_CHARSET = "UTF8"

ACTIONS = frozenset({"send_sms", "get_dlr_response", "get_balance", "pricelist", "prices"})
PRICE_FORMATS = ("json", "csv")

# Any requests failure other than a body that fails to decode moves on to the next host
TRANSPORT_ERRORS = (requests.exceptions.RequestException,)


def get_default_config_dir() -> str:
    """Get the default configuration directory following XDG standards"""
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return os.path.join(xdg_config_home, "messente")

    home = os.environ.get("HOME")
    if home:
        return os.path.join(home, ".config", "messente")

    return os.path.join(os.getcwd(), ".config", "messente")


class MessenteConfig:
    """Configuration for the Messente client"""

    def __init__(self, config_path: Optional[str] = None):
        if config_path is None:
            config_path = os.environ.get("MESSENTE_CONFIG")
            if config_path is None:
                config_path = os.path.join(get_default_config_dir(), "config.json")

        self.config_path = config_path
        self.username: str = ""
        self.password: str = ""
        self.secure: bool = True
        self.hosts: Tuple[str, ...] = DEFAULT_HOSTS
        self.timeout: float = DEFAULT_TIMEOUT
        self.max_workers: Optional[int] = None
        self.sender: Optional[str] = None
        self.to_number: Optional[str] = None

        self._load_config()

    def _load_config(self):
        """Load configuration from file, credentials may come from the environment"""
        env_username = os.environ.get("MESSENTE_USERNAME")
        env_password = os.environ.get("MESSENTE_PASSWORD")

        config_data: Dict[str, Any] = {}
        if os.path.exists(self.config_path):
            with open(self.config_path, 'r') as f:
                config_data = json.load(f)
        elif not (env_username and env_password):
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        if env_username:
            config_data['username'] = env_username
        if env_password:
            config_data['password'] = env_password

        for field in ('username', 'password'):
            if not config_data.get(field):
                raise ValueError(f"Missing required config field: {field}")
            setattr(self, field, config_data[field])

        # Optional fields
        secure = config_data.get('secure', True)
        if not isinstance(secure, bool):
            raise ValueError(f"Config field secure must be true or false, got {secure!r}")
        self.secure = secure
        hosts = config_data.get('hosts')
        if hosts:
            self.hosts = (hosts,) if isinstance(hosts, str) else tuple(hosts)
        self.timeout = float(config_data.get('timeout', DEFAULT_TIMEOUT))
        max_workers = config_data.get('max_workers')
        self.max_workers = int(max_workers) if max_workers is not None else None
        self.sender = config_data.get('sender')
        self.to_number = config_data.get('to_number')


def _check_result(code, error):
    if error is None and code is None:
        raise ValueError("A result without an error must carry a code")


@dataclass(frozen=True)
class SendResult:
    """Outcome of sending to one recipient"""
    phone: str
    code: Optional[str] = None
    error: Optional[MessenteError] = None

    def __post_init__(self):
        _check_result(self.code, self.error)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ReportResult:
    """Delivery state of one previously sent message"""
    report: str
    code: Optional[str] = None
    error: Optional[MessenteError] = None

    def __post_init__(self):
        _check_result(self.code, self.error)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SendOutcome:
    """Per-recipient results of a send, in recipient order"""
    results: Tuple[SendResult, ...]

    @property
    def message_ids(self) -> List[str]:
        return [result.code for result in self.results if result.error is None]

    @property
    def failed(self) -> List[SendResult]:
        return [result for result in self.results if result.error is not None]

    def __iter__(self):
        return iter(self.results)

    def __len__(self):
        return len(self.results)


def _normalize_targets(values: Union[str, Iterable[str], None], name: str) -> List[str]:
    """A lone string is a single target; anything else must be a non-empty iterable of strings"""
    if isinstance(values, str):
        values = [values]
    targets = list(values or [])
    if not targets:
        raise InvalidArgumentError(f"At least one {name} is required")
    for target in targets:
        if not isinstance(target, str) or not target.strip():
            raise InvalidArgumentError(f"Invalid {name}: {target!r}")
    return targets


def to_epoch_seconds(value: datetime) -> int:
    """
    Convert a scheduled send time to gateway epoch seconds.

    Aware datetimes are converted as is. Naive datetimes are taken to be UTC,
    never local time.
    """
    if not isinstance(value, datetime):
        raise InvalidArgumentError("time_to_send must be a datetime")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


class MessenteClient:
    """Client for the Messente SMS gateway"""

    def __init__(
        self,
        username: str,
        password: str,
        secure: bool = True,
        hosts: Iterable[str] = DEFAULT_HOSTS,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        max_workers: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not username or not password:
            raise MissingCredentialsError("Missing credentials")

        hosts = (hosts,) if isinstance(hosts, str) else tuple(hosts)
        if not hosts:
            raise InvalidArgumentError("At least one gateway host is required")
        if timeout is not None and timeout <= 0:
            raise InvalidArgumentError("timeout must be positive")
        if max_workers is not None and max_workers < 1:
            raise InvalidArgumentError("max_workers must be at least 1")

        self._username = username
        self._password = password
        self._secure = bool(secure)
        self._hosts = hosts
        self._timeout = timeout
        self._max_workers = max_workers
        self._owns_session = session is None
        self._session = session or requests.Session()

    @property
    def username(self) -> str:
        return self._username

    @property
    def secure(self) -> bool:
        return self._secure

    @property
    def hosts(self) -> Tuple[str, ...]:
        return self._hosts

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    @property
    def scheme(self) -> str:
        return "https" if self._secure else "http"

    def close(self):
        if self._owns_session:
            self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self):
        return f"MessenteClient(username={self._username!r}, secure={self._secure}, hosts={self._hosts!r})"

    def _url(self, host: str, action: str) -> str:
        return f"{self.scheme}://{host}/{action}/"

    def _credentials(self) -> Dict[str, str]:
        return {"username": self._username, "password": self._password}

    def _dispatch(self, action: str, payload: Dict[str, str]) -> DecodedResponse:
        """POST a payload, failing over to the next host on transport errors"""
        if action not in ACTIONS:
            raise InvalidArgumentError(f"Unsupported action: {action}")

        last_error = None
        for cursor, host in enumerate(self._hosts):
            url = self._url(host, action)
            try:
                response = self._session.post(url, data=payload, timeout=self._timeout, stream=True)
                decoded = decode_http_response(response, MAX_RESPONSE_BYTES)
            except requests.exceptions.ContentDecodingError as e:
                raise InvalidResponseError(f"Undecodable response body from {host}: {e}") from e
            except TRANSPORT_ERRORS as e:
                last_error = e
                remaining = len(self._hosts) - cursor - 1
                logger.warning(f"Transport error on {host} for {action}: {e} ({remaining} host(s) left)")
                continue
            logger.debug(f"{action} answered by {host}: {type(decoded).__name__}")
            return decoded

        raise EndpointUnreachableError(self._hosts, last_error)

    @staticmethod
    def _expect_ok(decoded: DecodedResponse) -> str:
        if not isinstance(decoded, StatusValueResponse):
            raise InvalidResponseError(f"Expected a status-value response, got {type(decoded).__name__}")
        if not decoded.ok:
            raise GatewayError(decoded.value, decoded.status)
        return decoded.value

    def _fan_out(self, items: List[str], worker: Callable[[str], Any]) -> List[Any]:
        """Run worker once per item concurrently and wait for all of them"""
        # One thread per item unless the caller capped the pool
        pool_size = len(items) if self._max_workers is None else min(self._max_workers, len(items))
        with ThreadPoolExecutor(max_workers=pool_size) as executor:
            futures = [executor.submit(worker, item) for item in items]
            wait(futures)
        # Workers trap library errors themselves; anything raised here is a bug
        return [future.result() for future in futures]

    def _send_one(self, message: Dict[str, str], phone: str) -> SendResult:
        payload = dict(message)
        payload["to"] = phone
        try:
            code = self._expect_ok(self._dispatch("send_sms", payload))
        except MessenteError as e:
            log_sms_event('sms_failed', to_number=phone, from_number=payload.get("from"),
                          success=False, error=str(e))
            return SendResult(phone=phone, error=e)
        log_sms_event('sms_sent', message_id=code, to_number=phone, from_number=payload.get("from"))
        return SendResult(phone=phone, code=code)

    def send_message(
        self,
        text: str,
        to: Union[str, Iterable[str]],
        sender: Optional[str] = None,
        time_to_send: Optional[datetime] = None,
        charset: str = DEFAULT_CHARSET,
        autoconvert: bool = False,
        report_url: Optional[str] = None,
    ) -> SendOutcome:
        """
        Send one message to one or more recipients.

        Each recipient gets its own request. A failure for one recipient is
        recorded in its result and never affects the others.

        Args:
            text: Message body
            to: Phone number or list of phone numbers
            sender: Optional sender ID
            time_to_send: Optional scheduled send time
            charset: Message charset (default UTF8)
            autoconvert: Let the gateway replace unsupported characters
            report_url: Optional URL the gateway posts delivery reports to

        Returns:
            SendOutcome: results in recipient order and the produced message ids
        """
        if not text or not to:
            raise InvalidArgumentError("Missing message content or target phone number(s)")
        recipients = _normalize_targets(to, "phone number")

        message = self._credentials()
        message["text"] = text
        message["autoconvert"] = "true" if autoconvert else "false"
        message["charset"] = charset or DEFAULT_CHARSET

        if time_to_send is not None:
            message["time_to_send"] = str(to_epoch_seconds(time_to_send))
        if sender:
            message["from"] = sender
        if report_url:
            message["dlr-url"] = report_url

        results = self._fan_out(recipients, lambda phone: self._send_one(message, phone))
        outcome = SendOutcome(results=tuple(results))
        logger.info(f"Message sent to {len(outcome.message_ids)} of {len(recipients)} recipient(s)")
        return outcome

    def _report_one(self, message_id: str) -> ReportResult:
        payload = self._credentials()
        payload["sms_unique_id"] = message_id
        try:
            state = self._expect_ok(self._dispatch("get_dlr_response", payload))
        except MessenteError as e:
            log_sms_event('dlr_failed', message_id=message_id, success=False, error=str(e))
            return ReportResult(report=message_id, error=e)
        log_sms_event('dlr_polled', message_id=message_id)
        return ReportResult(report=message_id, code=state)

    def get_report(self, message_ids: Union[str, Iterable[str]]) -> List[ReportResult]:
        """Poll delivery reports, one request per message id, results in input order"""
        ids = _normalize_targets(message_ids, "message id")
        return self._fan_out(ids, self._report_one)

    def get_account_balance(self) -> float:
        """Return the account balance in EUR"""
        value = self._expect_ok(self._dispatch("get_balance", self._credentials()))
        try:
            return float(value)
        except ValueError as e:
            raise InvalidResponseError(f"Invalid balance value: {value!r}") from e

    @staticmethod
    def _pricing_data(decoded: DecodedResponse):
        if isinstance(decoded, JsonResponse):
            return decoded.data
        if isinstance(decoded, CsvResponse):
            return decoded.rows
        if not decoded.ok:
            raise GatewayError(decoded.value, decoded.status)
        raise InvalidResponseError(f"Unexpected pricing response: {decoded.status} {decoded.value}")

    @staticmethod
    def _check_format(fmt: str) -> str:
        fmt = (fmt or "").lower()
        if fmt not in PRICE_FORMATS:
            raise InvalidArgumentError(f"Unsupported price format: {fmt!r} (expected json or csv)")
        return fmt

    def get_prices(self, fmt: str = "json"):
        """Full price list, as decoded JSON or a list of CSV rows"""
        payload = self._credentials()
        payload["format"] = self._check_format(fmt)
        return self._pricing_data(self._dispatch("pricelist", payload))

    def get_prices_for_country(self, country: str, fmt: str = "json"):
        """Prices for one country (ISO 3166-1 alpha-2 code)"""
        if not country or not country.strip():
            raise InvalidArgumentError("Missing country code")
        payload = self._credentials()
        payload["country"] = country.strip()
        payload["format"] = self._check_format(fmt)
        return self._pricing_data(self._dispatch("prices", payload))


ClientConfig = Union[MessenteConfig, Mapping[str, Any]]


def _config_value(config: ClientConfig, name: str, default=None):
    if isinstance(config, MessenteConfig):
        value = getattr(config, name, default)
    else:
        value = config.get(name, default)
    return default if value is None else value


def create_client(config: ClientConfig, session: Optional[requests.Session] = None) -> MessenteClient:
    """
    Create a client from a MessenteConfig or a mapping

    Args:
        config: object or mapping with `username`, `password` and optionally
            `secure`, `hosts`, `timeout`, `max_workers`
        session: optional requests session to use

    Returns:
        MessenteClient: the client
    """
    return MessenteClient(
        _config_value(config, "username"),
        _config_value(config, "password"),
        secure=_config_value(config, "secure", True),
        hosts=_config_value(config, "hosts", DEFAULT_HOSTS),
        timeout=_config_value(config, "timeout", DEFAULT_TIMEOUT),
        max_workers=_config_value(config, "max_workers"),
        session=session,
    )


def send_sms(config: ClientConfig, text: str, to=None, **options) -> SendOutcome:
    """
    Send an SMS message

    Args:
        config: client configuration
        text: The message to send
        to: Recipient(s), defaults to the configured `to_number`
        **options: forwarded to MessenteClient.send_message

    Returns:
        SendOutcome: per-recipient results
    """
    if to is None:
        to = _config_value(config, "to_number")
    options.setdefault("sender", _config_value(config, "sender"))
    with create_client(config) as client:
        return client.send_message(text, to, **options)


def get_report(config: ClientConfig, message_ids) -> List[ReportResult]:
    with create_client(config) as client:
        return client.get_report(message_ids)


def get_account_balance(config: ClientConfig) -> float:
    with create_client(config) as client:
        return client.get_account_balance()


def get_prices(config: ClientConfig, fmt: str = "json"):
    with create_client(config) as client:
        return client.get_prices(fmt)


def get_prices_for_country(config: ClientConfig, country: str, fmt: str = "json"):
    with create_client(config) as client:
        return client.get_prices_for_country(country, fmt)
