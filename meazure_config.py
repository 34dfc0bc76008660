# -*- coding: utf-8 -*-
# SPDX-License-Identifier: FAFOL
# pylint: disable=logging-fstring-interpolation

"""Read-or-create the meazure.config.json credentials and rate file"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from rich.prompt import Prompt

from meazure import CLIENTS, DEFAULT_HOST, DEFAULT_TIMEOUT, ConfigError, Credentials


CONFIG_FILE_NAME = 'meazure.config.json'

logger = logging.getLogger('Config')


@dataclass
class Config:
    uname: str
    pword: str
    rates: Dict[str, float] = field(default_factory=dict)
    api: str = 'legacy'
    host: str = DEFAULT_HOST
    timeout: Optional[float] = DEFAULT_TIMEOUT
    verify: bool = True

    @property
    def credentials(self) -> Credentials:
        return Credentials(username=self.uname, password=self.pword)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'uname': self.uname,
            'pword': self.pword,
            'rates': dict(self.rates),
            'api': self.api,
            'host': self.host,
            'timeout': self.timeout,
            'verify': self.verify,
        }


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_config(data: Any) -> Config:
    """Validate a decoded config object.

    Raises:
        ConfigError: on any missing or mistyped key
    """
    if not isinstance(data, dict):
        raise ConfigError('Config must be a JSON object')
    for key in ('uname', 'pword'):
        if not isinstance(data.get(key), str):
            raise ConfigError(f'Config is missing {key!r}')

    rates = data.get('rates', {})
    if not isinstance(rates, dict):
        raise ConfigError("Config 'rates' must be an object")
    for project, rate in rates.items():
        if not _is_number(rate):
            raise ConfigError(f'Rate for {project!r} is not a number: {rate!r}')

    api = data.get('api', 'legacy')
    if api not in CLIENTS:
        raise ConfigError(f'Unknown api {api!r}, expected one of {sorted(CLIENTS)}')
    timeout = data.get('timeout', DEFAULT_TIMEOUT)
    if timeout is not None and not _is_number(timeout):
        raise ConfigError(f'Timeout is not a number: {timeout!r}')
    verify = data.get('verify', True)
    if not isinstance(verify, bool):
        raise ConfigError(f'Verify is not true or false: {verify!r}')

    return Config(uname=data['uname'],
                  pword=data['pword'],
                  rates=rates,
                  api=api,
                  host=data.get('host', DEFAULT_HOST),
                  timeout=timeout,
                  verify=verify)


def read_config(config_file_name: str) -> Config:
    logger.debug(f'Loading config file {config_file_name}')
    try:
        with open(config_file_name, encoding='utf-8') as config_file:
            data = json.load(config_file)
    except OSError as err:
        raise ConfigError(f'Cannot read {config_file_name}: {err}') from err
    except ValueError as err:
        raise ConfigError(f'{config_file_name} is not valid JSON: {err}') from err
    return parse_config(data)


def write_config(config_file_name: str, config: Config) -> None:
    try:
        with open(config_file_name, encoding='utf-8', mode='w') as config_file:
            json.dump(config.to_dict(), config_file, indent=' '*4)
    except OSError as err:
        raise ConfigError(f'Cannot write {config_file_name}: {err}') from err


def create_config(config_file_name: str) -> Config:
    """Ask for credentials and write a fresh config with no rates."""
    try:
        uname = Prompt.ask('Meazure username')
        pword = Prompt.ask('Meazure password', password=True)
    except EOFError as err:
        raise ConfigError(f'No config at {config_file_name} and no terminal to ask for one') from err
    config = Config(uname=uname.strip(), pword=pword.strip())
    write_config(config_file_name, config)
    logger.info(f'Wrote {config_file_name}, add your hourly rates under "rates"')
    return config


def get_config(config_file_name: str = CONFIG_FILE_NAME) -> Config:
    try:
        return read_config(config_file_name)
    except ConfigError as err:
        logger.warning(f'{err}; creating a new config')
        return create_config(config_file_name)
