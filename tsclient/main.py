# Copyright (C) 2016 The Timestamper developers
#
# This file is part of the Timestamper Client.
#
# It is subject to the license terms in the LICENSE file found in the top-level
# directory of this distribution.
#
# No part of the Timestamper Client, including this file, may be copied,
# modified, propagated, or distributed except according to the terms contained
# in the LICENSE file.

import logging
import sys

import tsclient.args

def main():
    args = tsclient.args.parse_timestamper_args(sys.argv[1:])

    logging.basicConfig(format='%(message)s')
    logging.getLogger().setLevel(logging.INFO - args.verbosity * 10)

    if not hasattr(args, 'cmd_func'):
        args.parser.error('No command specified')

    args.cmd_func(args)

if __name__ == '__main__':
    main()
