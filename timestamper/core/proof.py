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

"""Timestamp proofs and their file format"""

from bitcoin.core import CTransaction, b2lx
from bitcoin.core.serialize import SerializationError

from timestamper.core.merkle import PartialMerkleTree
from timestamper.core.serialize import (BytesSerializationContext, BytesDeserializationContext,
                                        DeserializationError)

class ProofError(Exception):
    """Base class for all reasons a proof can be rejected"""

class CorruptProofError(ProofError, DeserializationError):
    """Proof data is malformed

    Raised instead of ever returning a partially populated proof.
    """


class Proof:
    """Proof that a carrier transaction was mined in a particular block

    Only these three fields are persisted. The carrier transaction is set when
    the proof is created; the partial merkle tree and block hash are set
    together, once, when the transaction is seen in a block.
    """

    HEADER_MAGIC = b'\x00Timestamper\x00\x89\xe2\xa1\x01'
    """Header magic bytes

    Doubles as the type tag of the record; the last byte is the format version.
    """

    MAX_TX_SIZE = 100000
    """Maximum size of a serialized carrier transaction

    Bitcoin Core won't relay anything larger.
    """

    MAX_PMT_SIZE = 1000000
    """Maximum size of a serialized partial merkle tree"""

    BLOCK_HASH_LENGTH = 32

    def __init__(self, carrier_transaction, partial_merkle_tree=None, block_hash=None):
        if not isinstance(carrier_transaction, bytes):
            raise TypeError("carrier_transaction must be bytes; got %r" % carrier_transaction.__class__)
        elif (partial_merkle_tree is None) != (block_hash is None):
            raise ValueError("partial_merkle_tree and block_hash must be set together")

        self.__carrier_transaction = carrier_transaction
        self.__partial_merkle_tree = None
        self.__block_hash = None

        if block_hash is not None:
            self.anchor(partial_merkle_tree, block_hash)

    @property
    def carrier_transaction(self):
        return self.__carrier_transaction

    @property
    def partial_merkle_tree(self):
        return self.__partial_merkle_tree

    @property
    def block_hash(self):
        return self.__block_hash

    @property
    def is_anchored(self):
        return self.__block_hash is not None

    def anchor(self, partial_merkle_tree, block_hash):
        """Record the block the carrier transaction was mined in

        Both fields are set at once. Re-anchoring to the same values is a
        no-op; anchoring to anything else raises ValueError.
        """
        if not isinstance(partial_merkle_tree, bytes) or not isinstance(block_hash, bytes):
            raise TypeError("partial_merkle_tree and block_hash must be bytes")
        elif len(block_hash) != self.BLOCK_HASH_LENGTH:
            raise ValueError("block_hash must be exactly %d bytes long; got %d" % (self.BLOCK_HASH_LENGTH, len(block_hash)))

        if self.is_anchored:
            if (partial_merkle_tree, block_hash) != (self.__partial_merkle_tree, self.__block_hash):
                raise ValueError("Proof is already anchored to block %s" % b2lx(self.__block_hash))
            return

        self.__partial_merkle_tree = partial_merkle_tree
        self.__block_hash = block_hash

    def decoded_transaction(self):
        """Deserialize the carrier transaction

        Raises CorruptProofError if it's malformed.
        """
        try:
            return CTransaction.deserialize(self.__carrier_transaction)
        except (SerializationError, ValueError) as exp:
            raise CorruptProofError("Invalid carrier transaction: %s" % exp)

    def decoded_partial_merkle_tree(self):
        """Deserialize the partial merkle tree

        Raises CorruptProofError if it's malformed or missing.
        """
        if not self.is_anchored:
            raise CorruptProofError("Proof has not been anchored to a block")

        try:
            return PartialMerkleTree.deserialize(self.__partial_merkle_tree)
        except (SerializationError, ValueError) as exp:
            raise CorruptProofError("Invalid partial merkle tree: %s" % exp)

    @property
    def carrier_txid(self):
        return self.decoded_transaction().GetTxid()

    def __eq__(self, other):
        return (self.__class__ == other.__class__ and
                self.carrier_transaction == other.carrier_transaction and
                self.partial_merkle_tree == other.partial_merkle_tree and
                self.block_hash == other.block_hash)

    def __repr__(self):
        if self.is_anchored:
            return 'Proof(<%d byte tx>, block=%s)' % (len(self.carrier_transaction), b2lx(self.block_hash))
        else:
            return 'Proof(<%d byte tx>, unanchored)' % len(self.carrier_transaction)

    def serialize(self, ctx):
        if not self.is_anchored:
            raise ValueError("An unanchored proof can't be serialized")
        elif len(self.carrier_transaction) > self.MAX_TX_SIZE:
            raise ValueError("Carrier transaction too large; %d > %d" % (len(self.carrier_transaction), self.MAX_TX_SIZE))
        elif len(self.partial_merkle_tree) > self.MAX_PMT_SIZE:
            raise ValueError("Partial merkle tree too large; %d > %d" % (len(self.partial_merkle_tree), self.MAX_PMT_SIZE))

        ctx.write_bytes(self.HEADER_MAGIC)
        ctx.write_varbytes(self.carrier_transaction)
        ctx.write_varbytes(self.partial_merkle_tree)
        ctx.write_bytes(self.block_hash)

    @classmethod
    def deserialize(cls, ctx):
        """Deserialize a proof

        Only DeserializationError subclasses are raised on malformed input.
        """
        ctx.assert_magic(cls.HEADER_MAGIC)

        carrier_transaction = ctx.read_varbytes(cls.MAX_TX_SIZE, min_len=1)
        partial_merkle_tree = ctx.read_varbytes(cls.MAX_PMT_SIZE, min_len=1)
        block_hash = ctx.read_bytes(cls.BLOCK_HASH_LENGTH)

        return Proof(carrier_transaction, partial_merkle_tree, block_hash)


def serialize_proof(proof):
    ctx = BytesSerializationContext()
    proof.serialize(ctx)
    return ctx.getbytes()

def deserialize_proof(buf):
    """Deserialize a complete proof file

    Raises CorruptProofError on any malformed input.
    """
    ctx = BytesDeserializationContext(buf)
    try:
        proof = Proof.deserialize(ctx)
        ctx.assert_eof()
    except DeserializationError as exp:
        raise CorruptProofError(str(exp)) from exp

    return proof

def read_proof_fd(fd):
    return deserialize_proof(fd.read())
