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

import argparse
import bitcoin
import bitcoin.rpc
import logging
import sys
import socket

import tsclient
import tsclient.cmds

DEFAULT_SOCKS5_PORT = 1080

def make_common_options_arg_parser():
    parser = argparse.ArgumentParser(description="Timestamp documents in the Bitcoin blockchain.")
    parser.add_argument('--version', action='version', version='v%s' % tsclient.__version__)

    parser.add_argument("-q", "--quiet", action="count", default=0,
                        help="Log less; may be repeated")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Log more; may be repeated")

    node_group = parser.add_argument_group('Bitcoin node')
    node_group.add_argument('--btc-net', dest='btc_net', choices=('mainnet', 'testnet', 'regtest'),
                            default='mainnet',
                            help='Bitcoin network. Default: %(default)s')
    node_group.add_argument('--btc-testnet', dest='btc_net', action='store_const', const='testnet',
                            help=argparse.SUPPRESS)
    node_group.add_argument('--btc-regtest', dest='btc_net', action='store_const', const='regtest',
                            help=argparse.SUPPRESS)
    node_group.add_argument("--bitcoin-node", dest="bitcoin_node", metavar='URL', type=str,
                            help="RPC URL of the node; by default read from bitcoin.conf")
    node_group.add_argument("--socks5-proxy", metavar='HOST[:PORT]', type=str,
                            help="Connect to the node through a SOCKS5 proxy, such as Tor "
                                 "on localhost:9050. Port defaults to %d" % DEFAULT_SOCKS5_PORT)
    node_group.add_argument("--wait-interval", metavar='SECONDS', type=int, default=30,
                            help="How often stamp polls the node for confirmations. "
                                 "Default: %(default)d")

    return parser

def use_socks5_proxy(proxy_address, parser):
    """Send every new connection, DNS lookups included, through a SOCKS5 proxy"""
    try:
        import socks
    except ImportError as exp:
        logging.error("Can not use SOCKS5 proxy: %s" % exp)
        sys.exit(1)

    host, sep, port = proxy_address.partition(':')
    if not sep:
        port = DEFAULT_SOCKS5_PORT
    elif port.isdigit():
        port = int(port)
    else:
        parser.error("SOCKS5 proxy port must be an integer; got %s" % port)

    socks.set_default_proxy(socks.SOCKS5, host, port)
    socket.socket = socks.socksocket

    # resolve names on the proxy, not locally
    def create_connection(address, timeout=None, source_address=None):
        sock = socks.socksocket()
        sock.connect(address)
        return sock
    socket.create_connection = create_connection

def handle_common_options(args, parser):
    args.parser = parser
    args.verbosity = args.verbose - args.quiet

    if args.socks5_proxy is not None:
        use_socks5_proxy(args.socks5_proxy, parser)

    def setup_bitcoin():
        """Select the Bitcoin network and connect to the node

        Called only by the commands that need a node.
        """
        bitcoin.SelectParams(args.btc_net)

        try:
            return bitcoin.rpc.Proxy(service_url=args.bitcoin_node)
        except (OSError, ValueError) as exp:
            logging.error("Could not connect to Bitcoin node: %s" % exp)
            sys.exit(1)

    args.setup_bitcoin = setup_bitcoin

    return args

def parse_timestamper_args(raw_args):
    parser = make_common_options_arg_parser()

    subparsers = parser.add_subparsers(title='Subcommands',
                                       description='All operations are done through subcommands:')

    # ----- stamp -----
    parser_stamp = subparsers.add_parser('stamp', aliases=['s'],
                                         help='Timestamp files with the local Bitcoin wallet')
    parser_stamp.add_argument('files', metavar='FILE', type=str,
                              nargs='+',
                              help='Filename; the proof is saved to FILE.timestamp')
    parser_stamp.add_argument('--depth', type=int, default=3,
                              help=argparse.SUPPRESS) # proofs shallower than this aren't worth much

    # ----- verify -----
    parser_verify = subparsers.add_parser('verify', aliases=['v'],
                                          help="Verify a timestamp proof")

    verify_target_group = parser_verify.add_mutually_exclusive_group()
    verify_target_group.add_argument('-f', metavar='FILE', dest='target_fd', type=argparse.FileType('rb'),
                                     default=None,
                                     help='Specify target file explicitly')
    verify_target_group.add_argument('-d', metavar='DIGEST', dest='hex_digest', type=str,
                                     default=None,
                                     help='Verify a (hex-encoded) SHA256 digest rather than a file')

    parser_verify.add_argument('--headers', metavar='FILE', dest='headers_fd', type=argparse.FileType('rb'),
                               default=None,
                               help='Verify against block headers in FILE rather than a Bitcoin node. '
                                    'Either raw 80-byte headers or one hex header per line, oldest first.')

    parser_verify.add_argument('timestamp_fd', metavar='TIMESTAMP', type=argparse.FileType('rb'),
                               help='Proof filename')

    # ----- info -----
    parser_info = subparsers.add_parser('info', aliases=['i'],
                                        help='Show information on a timestamp proof')
    parser_info.add_argument('file', metavar='FILE', type=argparse.FileType('rb'),
                             help='Filename')

    parser_stamp.set_defaults(cmd_func=tsclient.cmds.stamp_command)
    parser_verify.set_defaults(cmd_func=tsclient.cmds.verify_command)
    parser_info.set_defaults(cmd_func=tsclient.cmds.info_command)

    args = parser.parse_args(raw_args)
    args = handle_common_options(args, parser)

    return args
