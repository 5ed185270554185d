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

import contextlib
import io
import socket
import unittest
import unittest.mock

import socks

from tsclient.args import parse_timestamper_args, DEFAULT_SOCKS5_PORT

class Test_common_options(unittest.TestCase):
    def test_verbosity(self):
        args = parse_timestamper_args(['-v', '-v', '-q', 'info', __file__])
        args.file.close()
        self.assertEqual(args.verbosity, 1)

    def test_btc_net(self):
        for raw_args, expected in ((['info'], 'mainnet'),
                                   (['--btc-net', 'regtest', 'info'], 'regtest'),
                                   (['--btc-testnet', 'info'], 'testnet'),
                                   (['--btc-regtest', 'info'], 'regtest')):
            with self.subTest(raw_args=raw_args):
                args = parse_timestamper_args(raw_args + [__file__])
                args.file.close()
                self.assertEqual(args.btc_net, expected)

    def test_setup_bitcoin_selects_network(self):
        args = parse_timestamper_args(['--btc-net', 'regtest', '--bitcoin-node', 'http://u:p@localhost:18443',
                                       'info', __file__])
        args.file.close()

        with unittest.mock.patch('bitcoin.SelectParams') as select_params:
            proxy = args.setup_bitcoin()
        select_params.assert_called_once_with('regtest')
        self.assertEqual(proxy._BaseProxy__service_url, 'http://u:p@localhost:18443')


class Test_socks5_proxy(unittest.TestCase):
    def setUp(self):
        # use_socks5_proxy() replaces these globally
        for name in ('socket', 'create_connection'):
            patcher = unittest.mock.patch.object(socket, name, getattr(socket, name))
            patcher.start()
            self.addCleanup(patcher.stop)

    def use_proxy(self, proxy_address):
        with unittest.mock.patch('socks.set_default_proxy') as set_default_proxy:
            args = parse_timestamper_args(['--socks5-proxy', proxy_address, 'info', __file__])
            args.file.close()
        return set_default_proxy

    def test_default_port(self):
        set_default_proxy = self.use_proxy('localhost')
        set_default_proxy.assert_called_once_with(socks.SOCKS5, 'localhost', DEFAULT_SOCKS5_PORT)
        self.assertIs(socket.socket, socks.socksocket)

    def test_explicit_port(self):
        set_default_proxy = self.use_proxy('localhost:9050')
        set_default_proxy.assert_called_once_with(socks.SOCKS5, 'localhost', 9050)

    def test_bad_port(self):
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                self.use_proxy('localhost:tor')
