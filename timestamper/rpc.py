# Copyright (C) 2016 The Timestamper developers
#
# This file is part of Timestamper.
#
# It is subject to the license terms in the LICENSE file found in the top-level
# directory of this distribution.
#
# No part of Timestamper, including this file, may be copied, modified,
# propagated, or distributed except according to the terms contained in the
# LICENSE file.

"""Ledger and header chain backed by a Bitcoin Core node

Bitcoin Core doesn't push events to us, so RpcLedger.poll() has to be called
periodically; each call fires whatever block and confidence events have
happened since the last one.
"""

import logging

import bitcoin.rpc
from bitcoin.core import CTransaction, b2lx, b2x, lx, x

from timestamper.core.merkle import FilteredBlock
from timestamper.ledger import Ledger, TransactionHandle, HeaderChain, InsufficientFundsError, ConfidenceType

RPC_WALLET_ERROR = -4
RPC_WALLET_INSUFFICIENT_FUNDS = -6

class SigningError(Exception):
    """Wallet couldn't sign a funded carrier transaction"""

def is_insufficient_funds(exp):
    code = exp.error.get('code')
    message = exp.error.get('message', '')
    return (code == RPC_WALLET_INSUFFICIENT_FUNDS or
            (code == RPC_WALLET_ERROR and 'insufficient funds' in message.lower()))

def confidence_from_confirmations(confirmations):
    if confirmations > 0:
        return ConfidenceType.BUILDING
    elif confirmations < 0:
        return ConfidenceType.DEAD
    else:
        return ConfidenceType.PENDING


class RpcTransactionHandle(TransactionHandle):
    def __init__(self, tx):
        self.__tx = tx
        self.__callbacks = []
        self.last_confirmations = 0
        self.last_blockhash = None

    @property
    def tx(self):
        return self.__tx

    def on_confidence_changed(self, callback):
        self.__callbacks.append(callback)

    def fire_confidence_changed(self, depth, confidence_type):
        for callback in self.__callbacks:
            callback(depth, confidence_type)


class RpcLedger(Ledger):
    def __init__(self, proxy):
        self.proxy = proxy
        self.__handles = {}
        self.__block_callbacks = []

    def broadcast(self, tx):
        try:
            r = self.proxy.fundrawtransaction(tx)
        except bitcoin.rpc.JSONRPCError as exp:
            if is_insufficient_funds(exp):
                raise InsufficientFundsError(exp.error.get('message'))
            raise
        funded_tx = r['tx']

        # python-bitcoinlib's signrawtransaction() calls an RPC that newer
        # nodes no longer have
        r = self.proxy._call('signrawtransactionwithwallet', b2x(funded_tx.serialize()))
        if not r['complete']:
            raise SigningError("Wallet could not fully sign the transaction: %r" % r.get('errors'))
        signed_tx = CTransaction.deserialize(x(r['hex']))

        txid = self.proxy.sendrawtransaction(signed_tx)
        logging.debug("Broadcast transaction %s" % b2lx(txid))

        handle = RpcTransactionHandle(signed_tx)
        self.__handles[handle.txid] = handle
        return handle

    def on_block_downloaded(self, callback):
        self.__block_callbacks.append(callback)

    def stop_watching(self, txid):
        self.__handles.pop(txid, None)

    def get_filtered_block(self, txid, blockhash):
        """Get the partial merkle tree proving txid is in block blockhash"""
        r = self.proxy._call('gettxoutproof', [b2lx(txid)], b2lx(blockhash))
        return FilteredBlock.deserialize(x(r))

    def poll(self):
        """Check every broadcast transaction for changes, firing events"""
        for txid, handle in list(self.__handles.items()):
            try:
                r = self.proxy.gettransaction(txid)
            except IndexError as exp:
                logging.warning("Wallet doesn't know about transaction %s: %s" % (b2lx(txid), exp))
                continue

            confirmations = r.get('confirmations', 0)

            # FIXME: this will break if python-bitcoinlib starts converting
            # gettransaction's blockhash to bytes
            blockhash = r.get('blockhash')
            if blockhash is not None and blockhash != handle.last_blockhash:
                filtered_block = self.get_filtered_block(txid, lx(blockhash))
                for callback in self.__block_callbacks:
                    callback(filtered_block)

                # only once delivered; a failed fetch is retried on the next poll
                handle.last_blockhash = blockhash

            if confirmations != handle.last_confirmations:
                handle.last_confirmations = confirmations
                handle.fire_confidence_changed(max(confirmations, 0), confidence_from_confirmations(confirmations))


class RpcHeaderChain(HeaderChain):
    NULL_HASH = b'\x00' * 32

    def __init__(self, proxy):
        self.proxy = proxy

    def tip(self):
        return self.proxy.getblockheader(self.proxy.getbestblockhash())

    def previous(self, header):
        if header.hashPrevBlock == self.NULL_HASH:
            return None

        try:
            return self.proxy.getblockheader(header.hashPrevBlock)
        except IndexError:
            logging.warning("Block %s not found" % b2lx(header.hashPrevBlock))
            return None
