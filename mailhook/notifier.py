# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import Optional
from abc import ABC, abstractmethod
import logging

from httpx import Client, HTTPError, InvalidURL

class Notifier(ABC):
    # Blocking. -> True if endpoint accepted text.
    @abstractmethod
    def notify(self, endpoint : str, text : str) -> bool:
        raise NotImplementedError()


class NotifierClientProvider:
    client : Optional[Client] = None
    def __init__(self, **kwargs):
        self.client_args = kwargs
    def get(self) -> Client:
        if self.client is None:
            self.client = Client(
                http2=True, follow_redirects=True, **self.client_args)
        return self.client

    def close(self):
        if self.client:
            logging.debug('NotifierClientProvider.close() client')
            self.client.close()
            self.client = None

    def __del__(self):
        self.close()


# Posts to a Slack/Mattermost-style incoming webhook.
class WebhookNotifier(Notifier):
    client_provider : NotifierClientProvider
    username : str
    icon_emoji : str
    timeout : Optional[float]

    def __init__(self, client_provider : NotifierClientProvider,
                 username : str = 'mailhook',
                 icon_emoji : str = ':email:',
                 timeout : Optional[float] = 30):
        self.client_provider = client_provider
        self.username = username
        self.icon_emoji = icon_emoji
        self.timeout = timeout

    def payload(self, text : str) -> dict:
        return {'username': self.username,
                'icon_emoji': self.icon_emoji,
                'text': text}

    def notify(self, endpoint : str, text : str) -> bool:
        logging.debug('WebhookNotifier.notify %s %s', endpoint, text)
        try:
            resp = self.client_provider.get().post(
                endpoint, json=self.payload(text), timeout=self.timeout)
        except (HTTPError, InvalidURL) as e:
            logging.warning('WebhookNotifier.notify %s failed: %s',
                            endpoint, e)
            return False
        if not resp.is_success:
            logging.warning('WebhookNotifier.notify %s http error %d %s',
                            endpoint, resp.status_code, resp.text)
            return False
        logging.info('WebhookNotifier.notify %s %d', endpoint,
                     resp.status_code)
        return True
