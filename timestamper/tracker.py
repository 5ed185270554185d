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

"""Tracking carrier transactions until their proofs are complete

Each tracked transaction goes through BROADCAST -> ANCHORED -> FINALIZED:

* ANCHORED once a block containing the transaction is seen; the partial merkle
  tree and block hash are recorded in the proof at that point, and never
  changed afterwards.
* FINALIZED once the transaction is TARGET_DEPTH blocks deep; the proof is
  saved next to the document and the transaction is no longer tracked.

Ledger callbacks may fire on any thread, so they only queue events.
process_events() applies them, in order, on the caller's thread.

Reorganizations are not handled: a transaction that gets re-mined in a
different block keeps the block it was first seen in.
"""

import logging
import os
import queue

from bitcoin.core import b2lx

from timestamper.core.merkle import BadPartialMerkleTreeError
from timestamper.core.proof import serialize_proof
from timestamper.ledger import ConfidenceType

PROOF_SUFFIX = '.timestamp'

TARGET_DEPTH = 3
"""Depth at which a proof is considered complete"""

class ProofState:
    BROADCAST = 'broadcast'
    ANCHORED = 'anchored'
    FINALIZED = 'finalized'


def proof_path_for(document_path):
    return document_path + PROOF_SUFFIX

def document_path_for(proof_path):
    """Inverse of proof_path_for()

    Raises ValueError if proof_path doesn't end in PROOF_SUFFIX.
    """
    if not proof_path.endswith(PROOF_SUFFIX):
        raise ValueError("Proof filename does not end in %s" % PROOF_SUFFIX)
    return proof_path[:-len(PROOF_SUFFIX)]

def save_proof(proof, path):
    """Write a complete proof to a new file

    Fails with FileExistsError rather than overwriting an existing file. A
    partially written file is removed.
    """
    serialized = serialize_proof(proof)

    with open(path, 'xb') as fd:
        try:
            fd.write(serialized)
        except OSError:
            fd.close()
            os.unlink(path)
            raise


class PendingProof:
    """A proof in progress

    Wraps the persisted Proof with bookkeeping that is never saved.
    """

    def __init__(self, proof, document_path):
        self.proof = proof
        self.document_path = document_path
        self.txid = proof.carrier_txid
        self.depth = 0
        self.state = ProofState.BROADCAST

    @property
    def proof_path(self):
        return proof_path_for(self.document_path)

    def progress(self, target_depth=TARGET_DEPTH):
        """Fraction of the confirmations needed so far"""
        return min(1.0, self.depth / target_depth)

    def __repr__(self):
        return 'PendingProof(%r, %s, depth=%d)' % (self.document_path, self.state, self.depth)


class ProcessResult:
    """Outcome of a process_events() call"""

    def __init__(self):
        self.finalized = []
        self.failed = []
        """(pending_proof, exception) pairs

        On OSError the proof remains tracked; on ValueError it has been
        dropped.
        """

    def __bool__(self):
        return bool(self.finalized or self.failed)


class ConfirmationTracker:
    def __init__(self, ledger, target_depth=TARGET_DEPTH, save=save_proof):
        self.target_depth = target_depth
        self.__save = save
        self.__pending = {}
        self.__events = queue.Queue()

        ledger.on_block_downloaded(lambda filtered_block: self.__events.put(('block', filtered_block)))

    def register(self, pending, handle):
        """Start tracking a broadcast carrier transaction"""
        txid = pending.txid
        if txid in self.__pending:
            raise ValueError("Transaction %s is already being tracked" % b2lx(txid))

        self.__pending[txid] = pending
        handle.on_confidence_changed(
                lambda depth, confidence_type: self.__events.put(('confidence', (txid, depth, confidence_type))))

        logging.debug("Tracking transaction %s for %r" % (b2lx(txid), pending.document_path))

    def deregister(self, txid):
        """Stop tracking a transaction

        Returns the abandoned PendingProof, or None if it wasn't tracked.
        Nothing is written for an abandoned proof.
        """
        return self.__pending.pop(txid, None)

    def __contains__(self, txid):
        return txid in self.__pending

    def pending_proofs(self):
        return list(self.__pending.values())

    def process_events(self):
        """Apply all queued ledger events

        Returns a ProcessResult. Proofs that couldn't be written stay ANCHORED;
        saving is tried again on the next depth event. Proofs that can't be
        serialized at all are no longer tracked.
        """
        result = ProcessResult()
        while True:
            try:
                kind, event = self.__events.get_nowait()
            except queue.Empty:
                break

            if kind == 'block':
                self.__handle_block(event)
            else:
                self.__handle_confidence(*event, result=result)

        return result

    def __handle_block(self, filtered_block):
        waiting = [pending for pending in self.__pending.values() if pending.state == ProofState.BROADCAST]
        if not waiting:
            return

        block_hash = filtered_block.GetHash()
        try:
            matched_txids = set(filtered_block.matched_txids())
        except BadPartialMerkleTreeError as exp:
            logging.warning("Ignoring block %s: %s" % (b2lx(block_hash), exp))
            return

        for pending in waiting:
            if pending.txid in matched_txids:
                pending.proof.anchor(filtered_block.pmt.serialize(), block_hash)
                pending.state = ProofState.ANCHORED
                logging.info("Transaction %s included in block %s" % (b2lx(pending.txid), b2lx(block_hash)))

    def __handle_confidence(self, txid, depth, confidence_type, result):
        try:
            pending = self.__pending[txid]
        except KeyError:
            # finalized or abandoned
            return

        if pending.state != ProofState.ANCHORED or confidence_type != ConfidenceType.BUILDING:
            logging.debug("Ignoring %s confidence change for %s transaction %s" % (confidence_type, pending.state, b2lx(txid)))
            return

        pending.depth = depth
        logging.debug("Transaction %s is %d block(s) deep" % (b2lx(txid), depth))

        if depth < self.target_depth:
            return

        try:
            self.__save(pending.proof, pending.proof_path)
        except OSError as exp:
            logging.error("Failed to save proof %r: %s" % (pending.proof_path, exp))
            result.failed.append((pending, exp))
            return
        except ValueError as exp:
            # can't be serialized, so retrying is pointless
            logging.error("Abandoning proof %r: %s" % (pending.proof_path, exp))
            del self.__pending[txid]
            result.failed.append((pending, exp))
            return

        pending.state = ProofState.FINALIZED
        del self.__pending[txid]
        result.finalized.append(pending)
        logging.info("Proof complete; saved to %r" % pending.proof_path)
