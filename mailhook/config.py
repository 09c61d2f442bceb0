# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import Any, Dict, List, Optional, Tuple
import logging

import yaml

from mailhook.recipient_directory import Receiver, RecipientDirectory

DEFAULT_CONFIG_PATH = './config/config.yml'

class ConfigError(Exception):
    pass

def _section(root_yaml : dict, name : str) -> dict:
    section = root_yaml.get(name, None)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError('%s must be a mapping' % name)
    return section

def _number(section : dict, key : str, default, minimum = 0):
    v = section.get(key, default)
    # bool is an int
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ConfigError('%s must be a number: %s' % (key, v))
    if v < minimum:
        raise ConfigError('%s must be >= %s: %s' % (key, minimum, v))
    return v

class Config:
    # greeting/HELO host
    hostname : str = 'localhost'
    listen_addr : Tuple[str, int] = ('localhost', 2525)
    mail_dir : str = './mails'

    notify : bool = False
    dispatch_interval : float = 5
    record_delay : float = 2
    min_subject_length : int = 4

    notifier_username : str = 'mailhook'
    notifier_icon_emoji : str = ':email:'
    notifier_timeout : float = 30

    max_inflight : int = 10

    directory : RecipientDirectory
    logging_yaml : Optional[Dict[str, Any]] = None

    def __init__(self, directory : Optional[RecipientDirectory] = None,
                 **kwargs):
        self.directory = (directory if directory is not None
                          else RecipientDirectory([]))
        for k,v in kwargs.items():
            if not hasattr(Config, k):
                raise TypeError('unknown Config field %s' % k)
            setattr(self, k, v)

    @staticmethod
    def load(path : str) -> 'Config':
        try:
            with open(path, 'r') as yaml_file:
                root_yaml = yaml.safe_load(yaml_file)
        except OSError as e:
            raise ConfigError('cannot read config %s: %s' % (path, e))
        except yaml.YAMLError as e:
            raise ConfigError('cannot parse config %s: %s' % (path, e))
        logging.debug('Config.load %s', path)
        return Config.from_yaml(root_yaml)

    # Accepts either the bare list of receivers or a mapping with a
    # 'receivers' key and optional settings sections.
    @staticmethod
    def from_yaml(root_yaml : Any) -> 'Config':
        if isinstance(root_yaml, list):
            root_yaml = {'receivers': root_yaml}
        if not isinstance(root_yaml, dict):
            raise ConfigError('config must be a list of receivers or a mapping')

        receivers_yaml = root_yaml.get('receivers', None)
        if not receivers_yaml:
            raise ConfigError('no receivers configured')
        try:
            directory = RecipientDirectory.from_yaml(receivers_yaml)
        except ValueError as e:
            raise ConfigError(str(e))

        config = Config(directory)

        listener_yaml = _section(root_yaml, 'smtp_listener')
        if (addr := listener_yaml.get('addr', None)) is not None:
            if (not isinstance(addr, list) or len(addr) != 2 or
                not isinstance(addr[0], str) or
                isinstance(addr[1], bool) or not isinstance(addr[1], int)):
                raise ConfigError('smtp_listener.addr must be [host, port]')
            config.listen_addr = (addr[0], addr[1])
        config.hostname = str(listener_yaml.get('hostname', config.hostname))

        storage_yaml = _section(root_yaml, 'storage')
        config.mail_dir = str(storage_yaml.get('mail_dir', config.mail_dir))

        dispatch_yaml = _section(root_yaml, 'dispatch')
        enabled = dispatch_yaml.get('enabled', config.notify)
        # yaml 'false' (quoted) is a str and would be truthy
        if not isinstance(enabled, bool):
            raise ConfigError('dispatch.enabled must be true or false')
        config.notify = enabled
        config.dispatch_interval = _number(
            dispatch_yaml, 'interval', config.dispatch_interval)
        config.record_delay = _number(
            dispatch_yaml, 'record_delay', config.record_delay)
        config.min_subject_length = int(_number(
            dispatch_yaml, 'min_subject_length', config.min_subject_length))

        notifier_yaml = _section(root_yaml, 'notifier')
        config.notifier_username = str(
            notifier_yaml.get('username', config.notifier_username))
        config.notifier_icon_emoji = str(
            notifier_yaml.get('icon_emoji', config.notifier_icon_emoji))
        config.notifier_timeout = _number(
            notifier_yaml, 'timeout', config.notifier_timeout)

        executor_yaml = _section(root_yaml, 'executor')
        config.max_inflight = int(_number(
            executor_yaml, 'max_inflight', config.max_inflight, minimum=1))

        config.logging_yaml = root_yaml.get('logging', None)
        if (config.logging_yaml is not None and
                not isinstance(config.logging_yaml, dict)):
            raise ConfigError('logging must be a mapping')

        return config

    def receivers(self) -> List[Receiver]:
        return self.directory.receivers
