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

"""Interfaces to the Bitcoin network and wallet

Proofs are created and verified against these interfaces only; see
timestamper.rpc for an implementation backed by Bitcoin Core, and
timestamper.headers for locally held header chains.
"""

class InsufficientFundsError(Exception):
    """The wallet can't pay the fee for a carrier transaction"""

class ConfidenceType:
    """How confident we are a transaction will stay in the chain"""
    PENDING = 'pending'
    """Broadcast, not yet in a block"""

    BUILDING = 'building'
    """In the best chain; depth is meaningful"""

    DEAD = 'dead'
    """Conflicted; will never confirm"""


class TransactionHandle:
    """A transaction that has been broadcast"""

    @property
    def tx(self):
        """The transaction exactly as broadcast: funded and signed"""
        raise NotImplementedError

    @property
    def txid(self):
        return self.tx.GetTxid()

    def on_confidence_changed(self, callback):
        """Register callback(depth, confidence_type)

        depth is the number of blocks in the best chain that include the
        transaction, counting the block it was mined in.
        """
        raise NotImplementedError


class Ledger:
    """Wallet plus network connection"""

    def broadcast(self, tx):
        """Fund, sign and broadcast a transaction

        Returns a TransactionHandle; raises InsufficientFundsError if the
        wallet can't pay for it.
        """
        raise NotImplementedError

    def on_block_downloaded(self, callback):
        """Register callback(filtered_block)

        filtered_block is a timestamper.core.merkle.FilteredBlock whose partial
        merkle tree matches at least the wallet's own transactions.
        """
        raise NotImplementedError


class HeaderChain:
    """Lookup of block headers, newest first"""

    def tip(self):
        """Return the CBlockHeader at the tip of the best chain"""
        raise NotImplementedError

    def previous(self, header):
        """Return the parent of header, or None at the start of the chain"""
        raise NotImplementedError
