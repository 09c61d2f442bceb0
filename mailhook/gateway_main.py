# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
import logging
import sys

from mailhook.config import ConfigError
from mailhook.gateway import MailGateway

def main(argv=None):
    if argv is None:
        argv = sys.argv
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(process)d] [%(thread)d] '
        '%(filename)s:%(lineno)d %(message)s')
    gw = MailGateway()
    try:
        gw.main(argv)
    except (ConfigError, OSError) as e:
        # unparsable config, unwritable mail dir, bind failure
        logging.critical('startup failed: %s', e)
        sys.exit(1)

if __name__ == '__main__':
    main(sys.argv)
