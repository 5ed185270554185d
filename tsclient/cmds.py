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

import binascii
import logging
import os
import sys
import time

import bitcoin.rpc
from bitcoin.core import b2x, b2lx

from timestamper.builder import ProofBuilder
from timestamper.core.hashutil import hash_fd, DIGEST_LENGTH
from timestamper.core.merkle import BadPartialMerkleTreeError
from timestamper.core.proof import ProofError, CorruptProofError, read_proof_fd
from timestamper.core.verify import verify_digest, first_data_output_payload
from timestamper.headers import MemoryHeaderChain
from timestamper.ledger import InsufficientFundsError
from timestamper.rpc import RpcLedger, RpcHeaderChain
from timestamper.tracker import ConfirmationTracker, proof_path_for, document_path_for


def wait_for_proofs(ledger, tracker, args):
    """Poll the node until every tracked proof has been saved

    Returns the number of proofs finalized.
    """
    finalized = 0
    while tracker.pending_proofs():
        try:
            ledger.poll()
        except (ConnectionError, bitcoin.rpc.JSONRPCError) as exp:
            logging.warning("Could not check Bitcoin node for confirmations: %s" % exp)

        result = tracker.process_events()
        for pending in result.finalized:
            ledger.stop_watching(pending.txid)
            finalized += 1
            logging.info("Success! Proof for %r saved to %r" % (pending.document_path, pending.proof_path))

        for pending, exp in result.failed:
            logging.warning("Will retry saving %r on the next confirmation" % pending.proof_path)

        if tracker.pending_proofs():
            for pending in tracker.pending_proofs():
                logging.debug("%r: %s, %d of %d confirmations" % (pending.document_path, pending.state,
                                                                  pending.depth, tracker.target_depth))
            logging.info("Timestamp not complete; waiting %d sec before trying again" % args.wait_interval)
            time.sleep(args.wait_interval)

    return finalized


def stamp_command(args):
    for path in args.files:
        if os.path.exists(proof_path_for(path)):
            logging.error("Proof %r already exists" % proof_path_for(path))
            sys.exit(1)

    proxy = args.setup_bitcoin()
    ledger = RpcLedger(proxy)
    tracker = ConfirmationTracker(ledger, target_depth=args.depth)
    builder = ProofBuilder(ledger, tracker)

    for path in args.files:
        try:
            builder.stamp_file(path)
        except OSError as exp:
            logging.error("Could not read %r: %s" % (path, exp))
            abandon_pending_proofs(tracker)
            sys.exit(1)
        except InsufficientFundsError as exp:
            logging.error("Insufficient funds: you need bitcoins in this wallet in order to pay network fees (%s)" % exp)
            abandon_pending_proofs(tracker)
            sys.exit(1)

    try:
        wait_for_proofs(ledger, tracker, args)

    except KeyboardInterrupt:
        abandon_pending_proofs(tracker)
        sys.exit(1)


def abandon_pending_proofs(tracker):
    for pending in tracker.pending_proofs():
        tracker.deregister(pending.txid)
        logging.warning("Abandoned proof for %r; transaction %s was still broadcast" % (pending.document_path,
                                                                                       b2lx(pending.txid)))


def load_proof(fd):
    try:
        return read_proof_fd(fd)
    except CorruptProofError as exp:
        logging.error("Invalid timestamp proof %r: %s" % (fd.name, exp))
        sys.exit(1)


def verify_command(args):
    proof = load_proof(args.timestamp_fd)

    if args.hex_digest is not None:
        try:
            digest = binascii.unhexlify(args.hex_digest.encode('utf8'))
        except ValueError:
            args.parser.error('Digest must be hexadecimal')

        if len(digest) != DIGEST_LENGTH:
            args.parser.error('Digest must be a %d byte SHA256 digest' % DIGEST_LENGTH)

    else:
        if args.target_fd is None:
            # Target not specified, so assume it's the same name as the
            # proof file minus the .timestamp extension.
            try:
                target_filename = document_path_for(args.timestamp_fd.name)
            except ValueError as exp:
                args.parser.error(str(exp))

            logging.info("Assuming target filename is %r" % target_filename)

            try:
                args.target_fd = open(target_filename, 'rb')
            except IOError as exp:
                logging.error('Could not open target: %s' % exp)
                sys.exit(1)

        with args.target_fd:
            digest = hash_fd(args.target_fd)
        logging.debug("Got digest %s" % b2x(digest))

    if args.headers_fd is not None:
        try:
            header_chain = MemoryHeaderChain.from_fd(args.headers_fd)
        except ValueError as exp:
            logging.error("Invalid header file %r: %s" % (args.headers_fd.name, exp))
            sys.exit(1)
    else:
        header_chain = RpcHeaderChain(args.setup_bitcoin())

    logging.debug("Proof block hash: %s" % b2lx(proof.block_hash))

    try:
        header = verify_digest(proof, digest, header_chain)
    except ProofError as err:
        logging.error("Proof was invalid: %s" % err)
        sys.exit(1)
    except ConnectionError as exp:
        logging.error("Could not connect to local Bitcoin node: %s" % exp)
        sys.exit(1)

    logging.info("Success! Bitcoin block %s attests data existed as of %s" %
                 (b2lx(header.GetHash()), time.strftime('%c %Z', time.localtime(header.nTime))))


def info_command(args):
    proof = load_proof(args.file)

    try:
        tx = proof.decoded_transaction()
        pmt = proof.decoded_partial_merkle_tree()
    except CorruptProofError as exp:
        logging.error("Invalid timestamp proof %r: %s" % (args.file.name, exp))
        sys.exit(1)

    try:
        digest = b2x(first_data_output_payload(tx))
    except ProofError:
        digest = '(no OP_RETURN output)'

    print("Document sha256 hash: %s" % digest)
    print("Carrier transaction: %s" % b2lx(tx.GetTxid()))
    print("Block: %s" % b2lx(proof.block_hash))

    try:
        merkle_root, matched_txids = pmt.extract_matches()
    except BadPartialMerkleTreeError as exp:
        print("Merkle proof: invalid (%s)" % exp)
        return

    print("Merkle root: %s" % b2lx(merkle_root))
    print("Merkle proof: %d of %d transactions" % (len(matched_txids), pmt.nTransactions))
    if args.verbosity > 0:
        for txid in matched_txids:
            print("    %s" % b2lx(txid))
