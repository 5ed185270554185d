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

"""Partial Merkle trees

A partial Merkle tree (BIP37) proves that a subset of a block's transactions
are leaves of the Merkle tree committed to by the block header, without the
rest of the block. The tree is a depth-first list of flag bits, telling the
verifier whether to descend into a node or take its hash as given, and the
list of hashes so taken.
"""

import struct

from bitcoin.core import CBlockHeader, Hash
from bitcoin.core.serialize import ImmutableSerializable, BytesSerializer, uint256VectorSerializer, ser_read

MAX_BLOCK_WEIGHT = 4000000
MIN_TRANSACTION_WEIGHT = 4 * 60

MAX_TRANSACTIONS = MAX_BLOCK_WEIGHT // MIN_TRANSACTION_WEIGHT
"""Upper bound on the number of transactions any valid block can hold"""

class BadPartialMerkleTreeError(Exception):
    """Partial Merkle tree is structurally invalid"""


def _tree_width(n_transactions, height):
    return (n_transactions + (1 << height) - 1) >> height

def _tree_height(n_transactions):
    height = 0
    while _tree_width(n_transactions, height) > 1:
        height += 1
    return height

def _bytes_to_bits(buf):
    return [bool(buf[i // 8] & (1 << (i % 8))) for i in range(len(buf) * 8)]


class _Extraction:
    """Cursor state while walking the flag bits and hashes"""

    def __init__(self, n_transactions, bits, hashes):
        self.n_transactions = n_transactions
        self.bits = bits
        self.hashes = hashes
        self.n_bits_used = 0
        self.n_hashes_used = 0
        self.matched = []

    def traverse(self, height, pos):
        if self.n_bits_used >= len(self.bits):
            raise BadPartialMerkleTreeError("Overflowed the flag bits")
        parent_of_match = self.bits[self.n_bits_used]
        self.n_bits_used += 1

        if height == 0 or not parent_of_match:
            if self.n_hashes_used >= len(self.hashes):
                raise BadPartialMerkleTreeError("Overflowed the hashes")
            h = self.hashes[self.n_hashes_used]
            self.n_hashes_used += 1

            if height == 0 and parent_of_match:
                self.matched.append(h)
            return h

        left = self.traverse(height - 1, pos * 2)

        # Satoshi's algorithm: with no right child, the left one is hashed
        # with itself.
        if pos * 2 + 1 < _tree_width(self.n_transactions, height - 1):
            right = self.traverse(height - 1, pos * 2 + 1)

            # Identical siblings would let a different, duplicated,
            # transaction list produce the same root (CVE-2012-2459)
            if right == left:
                raise BadPartialMerkleTreeError("Identical left and right branches")
        else:
            right = left

        return Hash(left + right)


class PartialMerkleTree(ImmutableSerializable):
    """BIP37 partial Merkle tree"""
    __slots__ = ['nTransactions', 'vHash', 'vBits']

    def __init__(self, nTransactions=0, vHash=(), vBits=b''):
        object.__setattr__(self, 'nTransactions', nTransactions)
        object.__setattr__(self, 'vHash', tuple(bytes(h) for h in vHash))
        object.__setattr__(self, 'vBits', bytes(vBits))

    def extract_matches(self):
        """Reconstruct the merkle root

        Returns (merkle_root, matched_txids); raises BadPartialMerkleTreeError
        if the tree is malformed.
        """
        if self.nTransactions == 0:
            raise BadPartialMerkleTreeError("No transactions")
        elif self.nTransactions > MAX_TRANSACTIONS:
            raise BadPartialMerkleTreeError("Too many transactions; %d > %d" % (self.nTransactions, MAX_TRANSACTIONS))
        elif len(self.vHash) > self.nTransactions:
            raise BadPartialMerkleTreeError("More hashes than transactions")

        bits = _bytes_to_bits(self.vBits)
        if len(bits) < len(self.vHash):
            raise BadPartialMerkleTreeError("Fewer flag bits than hashes")

        extraction = _Extraction(self.nTransactions, bits, self.vHash)
        merkle_root = extraction.traverse(_tree_height(self.nTransactions), 0)

        if (extraction.n_bits_used + 7) // 8 != len(self.vBits):
            raise BadPartialMerkleTreeError("Not all flag bytes were consumed")
        elif extraction.n_hashes_used != len(self.vHash):
            raise BadPartialMerkleTreeError("Not all hashes were consumed")

        return (merkle_root, extraction.matched)

    def stream_serialize(self, f, **kwargs):
        f.write(struct.pack(b"<I", self.nTransactions))
        uint256VectorSerializer.stream_serialize(self.vHash, f)
        BytesSerializer.stream_serialize(self.vBits, f)

    @classmethod
    def stream_deserialize(cls, f, **kwargs):
        nTransactions = struct.unpack(b"<I", ser_read(f, 4))[0]
        vHash = uint256VectorSerializer.stream_deserialize(f)
        vBits = BytesSerializer.stream_deserialize(f)
        return cls(nTransactions, vHash, vBits)

    def __repr__(self):
        return 'PartialMerkleTree(%i, <%d hashes>, %r)' % (self.nTransactions, len(self.vHash), self.vBits)


class FilteredBlock(ImmutableSerializable):
    """A block header plus a partial Merkle tree of some of its transactions

    Same wire format as Bitcoin's merkleblock message, and the output of
    Bitcoin Core's gettxoutproof RPC call.
    """
    __slots__ = ['header', 'pmt']

    def __init__(self, header, pmt):
        object.__setattr__(self, 'header', header)
        object.__setattr__(self, 'pmt', pmt)

    def GetHash(self):
        return self.header.GetHash()

    def matched_txids(self):
        """Return the txids proven to be in this block

        Raises BadPartialMerkleTreeError if the tree doesn't commit to the
        header's merkle root.
        """
        merkle_root, matched = self.pmt.extract_matches()
        if merkle_root != self.header.hashMerkleRoot:
            raise BadPartialMerkleTreeError("Merkle root does not match block header")
        return matched

    def stream_serialize(self, f, **kwargs):
        self.header.stream_serialize(f)
        self.pmt.stream_serialize(f)

    @classmethod
    def stream_deserialize(cls, f, **kwargs):
        header = CBlockHeader.stream_deserialize(f)
        pmt = PartialMerkleTree.stream_deserialize(f)
        return cls(header, pmt)

    def __repr__(self):
        return 'FilteredBlock(%r, %r)' % (self.header, self.pmt)
