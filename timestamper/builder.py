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

import logging

from bitcoin.core import CMutableTransaction, CTxOut, b2lx, b2x
from bitcoin.core.script import CScript, OP_RETURN

from timestamper.core.hashutil import hash_file, DIGEST_LENGTH
from timestamper.core.proof import Proof
from timestamper.tracker import PendingProof

def make_carrier_transaction(digest):
    """Make an unfunded transaction committing to digest

    The only output is a zero-value OP_RETURN <digest>; the wallet adds inputs
    and change when funding it.
    """
    if len(digest) != DIGEST_LENGTH:
        raise ValueError("Expected digest with length %d bytes; got %d bytes" % (DIGEST_LENGTH, len(digest)))

    return CMutableTransaction([], [CTxOut(0, CScript([OP_RETURN, digest]))])


class ProofBuilder:
    def __init__(self, ledger, tracker):
        self.ledger = ledger
        self.tracker = tracker

    def build(self, document_digest, document_path):
        """Broadcast a carrier transaction for document_digest

        Returns (carrier_tx, pending_proof). InsufficientFundsError from the
        ledger is passed through as-is; nothing is registered in that case.
        """
        unfunded_tx = make_carrier_transaction(document_digest)

        handle = self.ledger.broadcast(unfunded_tx)
        carrier_tx = handle.tx
        logging.info("Sent timestamp tx %s for %s" % (b2lx(handle.txid), b2x(document_digest)))

        pending = PendingProof(Proof(carrier_tx.serialize()), document_path)
        self.tracker.register(pending, handle)

        return (carrier_tx, pending)

    def stamp_file(self, document_path):
        """Hash a file and build a proof for it"""
        digest = hash_file(document_path)
        logging.debug("Got digest %s for %r" % (b2x(digest), document_path))
        return self.build(digest, document_path)
