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

"""Proof verification

Verification recomputes everything from the document, the proof and a header
chain; nothing in the proof is trusted. Each check that can fail raises its
own ProofError subclass, and the checks are always done in the same order.
"""

import logging

from bitcoin.core import b2lx, b2x
from bitcoin.core.script import CScriptInvalidError

from timestamper.core.hashutil import hash_bytes, DIGEST_LENGTH
from timestamper.core.merkle import BadPartialMerkleTreeError
from timestamper.core.proof import ProofError, CorruptProofError

class VerificationError(ProofError):
    """Proof is well-formed, but doesn't prove what it claims to"""

class NoDataOutputError(VerificationError):
    """Carrier transaction has no OP_RETURN output"""

class DigestMismatchError(VerificationError):
    """Document digest doesn't match the carrier transaction's OP_RETURN output"""

class TransactionNotInProofError(VerificationError):
    """Partial merkle tree doesn't contain the carrier transaction"""

class BlockNotFoundError(VerificationError):
    """Block the proof is anchored to isn't in the header chain"""

class MerkleRootMismatchError(VerificationError):
    """Partial merkle tree doesn't commit to the block header's merkle root"""


def data_output_payload(txout):
    """Return the data pushed by an OP_RETURN output

    None if the output isn't provably unspendable. Only the element directly
    after OP_RETURN is the payload; if that isn't a data push, b'' is
    returned.
    """
    script = txout.scriptPubKey
    if not script.is_unspendable():
        return None

    try:
        ops = list(script)
    except CScriptInvalidError:
        return b''

    if len(ops) > 1 and isinstance(ops[1], bytes):
        return ops[1]
    else:
        return b''

def first_data_output_payload(tx):
    """Find the payload of the first OP_RETURN output of a transaction

    Only the first such output counts: a document matching a later OP_RETURN
    output doesn't match the transaction.
    """
    for txout in tx.vout:
        payload = data_output_payload(txout)
        if payload is not None:
            return payload

    raise NoDataOutputError("No OP_RETURN output in transaction")

def find_block_header(block_hash, header_chain):
    """Walk back from the chain tip until a header with block_hash is found"""
    header = header_chain.tip()
    while header is not None and header.GetHash() != block_hash:
        header = header_chain.previous(header)

    if header is None:
        raise BlockNotFoundError("Could not find given block hash: %s" % b2lx(block_hash))

    return header

def verify_digest(proof, digest, header_chain):
    """Verify a proof against a document digest

    Returns the header of the block the proof is anchored to; its nTime is the
    time the document is proven to have existed by. Raises a ProofError
    subclass on failure.
    """
    if len(digest) != DIGEST_LENGTH:
        raise ValueError("Expected digest with length %d bytes; got %d bytes" % (DIGEST_LENGTH, len(digest)))

    tx = proof.decoded_transaction()

    payload = first_data_output_payload(tx)
    if payload != digest:
        logging.debug("Expected digest %s, OP_RETURN has %s" % (b2x(digest), b2x(payload)))
        raise DigestMismatchError("Hash does not match OP_RETURN output")

    pmt = proof.decoded_partial_merkle_tree()
    try:
        merkle_root, matched_txids = pmt.extract_matches()
    except BadPartialMerkleTreeError as exp:
        raise CorruptProofError("Invalid partial merkle tree: %s" % exp)

    txid = tx.GetTxid()
    if txid not in matched_txids:
        raise TransactionNotInProofError("Transaction %s not found in merkle proof" % b2lx(txid))

    header = find_block_header(proof.block_hash, header_chain)

    if header.hashMerkleRoot != merkle_root:
        raise MerkleRootMismatchError("Merkle root does not match block header")

    return header

def verify(proof, document, header_chain):
    """Verify a proof against the document it was made for

    See verify_digest()
    """
    return verify_digest(proof, hash_bytes(document), header_chain)
