# -*- coding: utf-8 -*-
# SPDX-License-Identifier: FAFOL
# pylint: disable=logging-fstring-interpolation

"""Wrapper for the Meazure time-tracking web API"""

import logging
import re
from dataclasses import dataclass
from datetime import date as Date
from typing import Any, Dict, List, Optional, Tuple, Union

import arrow
import requests
import urllib3
from bs4 import BeautifulSoup


DEFAULT_HOST = 'https://meazure.surgeforward.com'
DEFAULT_TIMEOUT = 60
PAGE_SIZE = 500
TOKEN_FIELD = '__RequestVerificationToken'
AUTH_COOKIE_PATTERN = re.compile(r'auth|identity', re.IGNORECASE)


class MeazureError(Exception):
    """Base class for everything that ends a run early."""


class ConfigError(MeazureError):
    """Config file missing, unreadable or malformed."""


class TransportError(MeazureError):
    """Network, DNS or TLS failure, or an unexpected HTTP status."""


class AuthError(MeazureError):
    """Credentials rejected or no session cookie returned."""


class ParseError(MeazureError):
    """Response did not have the expected shape."""


class ProjectionError(MeazureError):
    """Degenerate period, e.g. no weekdays elapsed yet."""


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def __repr__(self) -> str:
        return f'Credentials(username={self.username!r}, password=***)'


@dataclass(frozen=True)
class LoginTokens:
    """Anti-forgery token and cookies harvested before logging in."""
    token: Optional[str] = None
    cookies: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class SessionHandle:
    """Authenticated cookie set, threaded into every query."""
    cookies: Tuple[Tuple[str, str], ...]

    def cookie_dict(self) -> Dict[str, str]:
        return dict(self.cookies)


@dataclass(frozen=True)
class TimeEntry:
    """One booked time entry."""
    project: str
    hours: float
    date: Union[int, str]

    @property
    def day(self) -> Date:
        """The calendar day the entry is booked on.

        Epoch milliseconds are the UTC midnight of the booked day, so the
        UTC date is taken regardless of the local offset. ISO strings keep
        the date as written.
        """
        if isinstance(self.date, bool):
            raise ParseError(f'Bad entry date: {self.date!r}')
        if isinstance(self.date, (int, float)):
            return arrow.get(self.date / 1000).to('UTC').date()
        try:
            return arrow.get(self.date).date()
        except (ValueError, TypeError) as err:
            raise ParseError(f'Bad entry date: {self.date!r}') from err


def _cookie_pairs(cookies) -> Tuple[Tuple[str, str], ...]:
    return tuple(sorted(cookies.get_dict().items()))


def _project(raw: Dict[str, Any], field: str) -> str:
    project = raw[field]
    if not isinstance(project, str):
        raise ParseError(f'{field} is not a string: {project!r}')
    return project


def _hours(raw: Dict[str, Any], field: str, per_hour: float) -> float:
    duration = raw[field]
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        raise ParseError(f'{field} is not a number: {duration!r}')
    if duration < 0:
        raise ParseError(f'{field} is negative: {duration!r}')
    return duration / per_hour


class RemoteClient:
    """Common plumbing for both generations of the Meazure API.

    The login handshake is always two calls, `acquire_tokens` then
    `authenticate`, and each returns an immutable context for the next
    step. No cookies are kept on the client itself.
    """
    headers = {
        'accept': 'text/html,'
                  'application/xhtml+xml,'
                  'application/json;q=0.9,'
                  '*/*;q=0.8',
        'accept-language': 'en-US,en;q=0.5',
        'user-agent': 'Mozilla/5.0 (X11; Linux x86_64; rv:68.0) Gecko/20100101 Firefox/68.0',
    }

    def __init__(self,
                 host: str = DEFAULT_HOST,
                 timeout: Optional[float] = DEFAULT_TIMEOUT,
                 verify: bool = True,
                 session: requests.Session = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.host = host.rstrip('/')
        self.timeout = timeout
        self.verify = verify
        if not verify:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        self._session = session if session is not None else requests.Session()
        self._session.headers.update(self.headers)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        uri = f'{self.host}{path}'
        self.logger.debug(f'{method} {uri}')
        try:
            response = self._session.request(method, uri,
                                             timeout=self.timeout,
                                             verify=self.verify,
                                             **kwargs)
        except requests.RequestException as err:
            raise TransportError(f'{method} {uri} failed: {err}') from err
        # the jar on a shared Session would outlive the handles
        self._session.cookies.clear()
        if response.status_code in (401, 403):
            raise AuthError(
                f'Not authorized: {response.status_code} - {response.reason}')
        if response.status_code >= 400:
            raise TransportError(
                f'Bad response: {response.status_code} - {response.reason}')
        return response

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as err:
            raise ParseError(f'Response is not JSON: {err}') from err

    def _session_handle(self, response: requests.Response, pattern=None) -> SessionHandle:
        cookies = [(name, value) for name, value in _cookie_pairs(response.cookies)
                   if pattern is None or pattern.search(name)]
        if not cookies:
            raise AuthError('Login did not return a session cookie, '
                            'please check the username and password')
        self.logger.debug(f'Session cookies: {[name for name, _ in cookies]}')
        return SessionHandle(cookies=tuple(cookies))

    def acquire_tokens(self) -> LoginTokens:
        raise NotImplementedError

    def authenticate(self, tokens: LoginTokens, credentials: Credentials) -> SessionHandle:
        raise NotImplementedError

    def fetch(self, session: SessionHandle, from_date: str, to_date: str) -> List[TimeEntry]:
        raise NotImplementedError

    def login(self, credentials: Credentials) -> SessionHandle:
        """Run the whole handshake."""
        return self.authenticate(self.acquire_tokens(), credentials)


class LegacyClient(RemoteClient):
    """JSON login and the Dashboard query endpoint."""

    def acquire_tokens(self) -> LoginTokens:
        # this generation hands out the session cookie on the login POST
        return LoginTokens()

    def authenticate(self, tokens: LoginTokens, credentials: Credentials) -> SessionHandle:
        self.logger.debug(f'Logging into Meazure with user {credentials.username}')
        response = self._request('POST', '/Auth/Login',
                                 json={'Email': credentials.username,
                                       'Password': credentials.password},
                                 cookies=dict(tokens.cookies),
                                 allow_redirects=False)
        return self._session_handle(response)

    def fetch(self, session: SessionHandle, from_date: str, to_date: str) -> List[TimeEntry]:
        """Run the time entry query for an inclusive date range.

        Args:
            session (SessionHandle): cookies from `authenticate`
            from_date (str): first day, YYYY-MM-DD
            to_date (str): last day, YYYY-MM-DD

        Raises:
            ParseError: on a body that is not a list of entries

        Returns:
            List[TimeEntry]: the entries, possibly empty
        """
        query = {
            'ContentType': 1,
            'ReturnFields': [
                'Date',
                'DurationSeconds',
                'ProjectName',
                'TaskName',
            ],
            'ReturnFieldWidths': None,
            'Criteria': [
                {
                    'JoinOperator': '',
                    'Field': 'Date',
                    'Operator': '>=',
                    'Value': from_date,
                },
                {
                    'JoinOperator': 'and',
                    'Field': 'Date',
                    'Operator': '<=',
                    'Value': to_date,
                },
            ],
            'Ordering': None,
        }
        response = self._request('POST', '/Dashboard/RunQuery',
                                 json=query, cookies=session.cookie_dict())
        raw_entries = self._json(response)
        if not isinstance(raw_entries, list):
            raise ParseError(f'Expected a list of entries, got {type(raw_entries).__name__}')

        entries = []
        for raw in raw_entries:
            try:
                entries.append(TimeEntry(project=_project(raw, 'ProjectName'),
                                         hours=_hours(raw, 'DurationSeconds', 3600.0),
                                         date=raw['Date']))
            except (KeyError, TypeError) as err:
                raise ParseError(f'Malformed entry {raw!r}: missing {err}') from err
        self.logger.debug(f'Got {len(entries)} entries for {from_date}--{to_date}')
        return entries


class CurrentClient(RemoteClient):
    """Scraped anti-forgery login and the time-entry REST endpoint."""

    def acquire_tokens(self) -> LoginTokens:
        """Harvest the verification token and cookies from the login page.

        Raises:
            ParseError: if the page has no usable token field

        Returns:
            LoginTokens: token plus the cookies the page set
        """
        response = self._request('GET', '/Account/Login')
        loginpage = BeautifulSoup(response.text, 'html.parser')
        field = loginpage.find('input', attrs={'name': TOKEN_FIELD})
        if field is None or not field.get('value'):
            raise ParseError(f'No {TOKEN_FIELD} field on the login page')
        return LoginTokens(token=field['value'],
                           cookies=_cookie_pairs(response.cookies))

    def authenticate(self, tokens: LoginTokens, credentials: Credentials) -> SessionHandle:
        if not tokens.token:
            raise ParseError('Login needs a verification token, call acquire_tokens first')
        self.logger.debug(f'Logging into Meazure with user {credentials.username}')
        response = self._request('POST', '/account/login',
                                 data={'email': credentials.username,
                                       'password': credentials.password,
                                       TOKEN_FIELD: tokens.token},
                                 cookies=dict(tokens.cookies),
                                 allow_redirects=False)
        return self._session_handle(response, pattern=AUTH_COOKIE_PATTERN)

    def fetch(self, session: SessionHandle, from_date: str, to_date: str) -> List[TimeEntry]:
        parameters = {
            'startDate': from_date,
            'endDate': to_date,
            'start': 0,
            'count': PAGE_SIZE,
        }
        response = self._request('GET', '/api/time-entry/',
                                 params=parameters, cookies=session.cookie_dict())
        body = self._json(response)
        if not isinstance(body, dict) or not isinstance(body.get('data'), list):
            raise ParseError('Expected an object with a data list')

        raw_entries = body['data']
        record_count = body.get('recordCount', len(raw_entries))
        if isinstance(record_count, int) and record_count > len(raw_entries):
            self.logger.warning(f'Only {len(raw_entries)} of {record_count} entries '
                                f'fit in one page, totals will be short')

        entries = []
        for raw in raw_entries:
            try:
                entries.append(TimeEntry(project=_project(raw, 'projectName'),
                                         hours=_hours(raw, 'durationMinutes', 60.0),
                                         date=raw['billToDate']))
            except (KeyError, TypeError) as err:
                raise ParseError(f'Malformed entry {raw!r}: missing {err}') from err
        self.logger.debug(f'Got {len(entries)} entries for {from_date}--{to_date}')
        return entries


CLIENTS = {
    'legacy': LegacyClient,
    'current': CurrentClient,
}


def make_client(config, session: requests.Session = None) -> RemoteClient:
    """Build the client variant named by the config `api` key."""
    try:
        client_class = CLIENTS[config.api]
    except KeyError as err:
        raise ConfigError(f'Unknown api {config.api!r}, expected one of {sorted(CLIENTS)}') from err
    return client_class(host=config.host,
                        timeout=config.timeout,
                        verify=config.verify,
                        session=session)
