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

import unittest

from bitcoin.core import CBlock, Hash, x, lx
from bitcoin.core.serialize import SerializationError

from timestamper.core.merkle import *
from timestamper.tests.fakes import block_merkle_root, make_partial_merkle_tree

# block #1, mined right after the genesis block
BLOCK_1 = CBlock.deserialize(x('010000006fe28c0ab6f1b372c1a6a246ae63f74f931e8365e15a089c68d6190000000000982051fd1e4ba744bbbe680e1fee14677ba1a3c3540bf7b1cdb606e857233e0e61bc6649ffff001d01e362990101000000010000000000000000000000000000000000000000000000000000000000000000ffffffff0704ffff001d0104ffffffff0100f2052a0100000043410496b538e853519c726a2c91e61ec11600ae1390813a627c66fb8be7947be63c52da7589379515d4e0a604f8141781e62294721166bf621e73a82cbf2342c858eeac00000000'))

# block #586, first block with 3 txs
BLOCK_586 = CBlock.deserialize(x('0100000038babc9586a5fcd60713573494f4377e7c401c33aa24729a4f6cff46000000004d5969c0d10dcce60868fee4d4de80ba5ef38abaeed8a75daa63e48c963d7b1950476f49ffff001d2d9791370301000000010000000000000000000000000000000000000000000000000000000000000000ffffffff0804ffff001d025d06ffffffff0100f2052a0100000043410410daf049ef402de0b6adba8b0f7c392bcf9a6385116efc8b4143b8b7a7841e7de73b478ffe13b60c50ea01e24b4b48c24f5e0fbc5d6c8433c7ca7c3ed3ab8173ac0000000001000000050f40f5e65e115eb4bdb3007f0fb8beaa404cf7ae45de16074e8acc9b69bbf0c3000000004847304402201092da40af6dea8abcbeefb8586335b26d39d36be9b6c38d6c9cc18f20dd5886022045964de79a9008f68d53fc9bc58f9e30b224a1b98dbfda5c7b7b860f32c6aef101ffffffff1bb875b247332e558731c2c510f611d3dde991ea9fe69365bf445a0ccd513b190000000049483045022100b0a1d0a00251c56809a5ab5d7ba6cbe68b82c9bf4f806ee39c568ae537572c840220781ce69017ec3b2d6f96ffff4d19c80c224f40c73b8c26cba4b30e7f4171579b01ffffffff2099e1a92d94c35f0645683257c4c255165385f3e9129a85fed5a3f3d867c9b60000000049483045022100c8e980f43c616232e2d59dce08a5edb84aaa0915ea49780a8af367330216084a02203cc2628f16f995c7aaf6104cba64971963a4e084e4fbd0b6bcf825b47a09f8e301ffffffff5fb770c4de700aca7f74f5e6295f248edafa9423e446d76f4650df9b90f939a700000000494830450220745a8d99c51f98f5c93b8d2f5f14a1f2d8cc42ff7329645681bcafe846cbf50d022100b24e31186129f3ae6cc8a226d1eda389373652a9cf2095631fcc4345067c1ff301ffffffff968d4c096ee861307935d21d797a902b647dc970d3c8374cc13551f8397abbd80000000049483045022100ca65b3f290724d6c56fc333570fa342f2477f34b2a6c93c2e2d7216d9fe9088e022077e259a29ed1f988fab2b9f2ce17a4a56a20c188cadc72bca94e06a73826966501ffffffff0100ba1dd20500000043410497304efd3ab14d0dcbf1e901045a25f4b5dbaf576d074506fd8ded4122ba6f6bec0ed4698ce0e7928c0eaf9ddfb5387929b5d697e82e7aabebe04c10e5c87164ac0000000001000000010d26ba57ff82fefcb43826b45019043e2b6ef9aa8118b7f743167584a7f9cae70000000049483045022024fd7345df2b2bd0e6f8416529046b7d52bda5ffdb70146bc6d72b1ba73cabcd022100ff99c03006cc8f28d92e686f0ae640d20395177f329d0a9dbd560fd2a55aeee701ffffffff0100f2052a01000000434104888d890e1bd84c9e2ac363a9774414a081eb805cd2c0d52e49efc7170ebf342f1cdb284a2e2eb754fc8dd4525fe0caa3d3a525214d0b504dd75376b2f63804a8ac00000000'))

def txids_of(block):
    return [tx.GetTxid() for tx in block.vtx]

class Test_block_merkle_root(unittest.TestCase):
    """The fixtures' merkle roots match real blocks"""

    def test_real_blocks(self):
        self.assertEqual(block_merkle_root(txids_of(BLOCK_1)),
                         lx('0e3e2357e806b6cdb1f70b54c3a3a17b6714ee1f0e68bebb44a74b1efd512098'))
        self.assertEqual(block_merkle_root(txids_of(BLOCK_586)),
                         lx('197b3d968ce463aa5da7d8eeba8af35eba80ded4e4fe6808e6cc0dd1c069594d'))

    def test_odd_level_duplicates_last(self):
        a, b, c = Hash(b'a'), Hash(b'b'), Hash(b'c')
        self.assertEqual(block_merkle_root([a, b, c]),
                         Hash(Hash(a + b) + Hash(c + c)))

class Test_PartialMerkleTree(unittest.TestCase):
    def test_real_block(self):
        """Every single transaction of block #586 can be proven"""
        txids = txids_of(BLOCK_586)
        for i, txid in enumerate(txids):
            matches = [j == i for j in range(len(txids))]
            pmt = make_partial_merkle_tree(txids, matches)

            merkle_root, matched = pmt.extract_matches()
            self.assertEqual(merkle_root, BLOCK_586.hashMerkleRoot)
            self.assertEqual(matched, [txid])

            self.assertEqual(PartialMerkleTree.deserialize(pmt.serialize()), pmt)

    def test_single_transaction_block(self):
        txids = txids_of(BLOCK_1)
        pmt = make_partial_merkle_tree(txids, [True])

        self.assertEqual(pmt.serialize(), b'\x01\x00\x00\x00' + b'\x01' + txids[0] + b'\x01\x01')
        self.assertEqual(pmt.extract_matches(), (BLOCK_1.hashMerkleRoot, txids))

    def test_no_matches(self):
        txids = [Hash(bytes([i])) for i in range(7)]
        pmt = make_partial_merkle_tree(txids, [False] * 7)

        # nothing to descend into, so just the root
        self.assertEqual(pmt.vHash, (block_merkle_root(txids),))
        self.assertEqual(pmt.extract_matches(), (block_merkle_root(txids), []))

    def test_multiple_matches(self):
        txids = [Hash(bytes([i])) for i in range(11)]
        matches = [i in (0, 5, 10) for i in range(11)]
        pmt = make_partial_merkle_tree(txids, matches)

        merkle_root, matched = pmt.extract_matches()
        self.assertEqual(merkle_root, block_merkle_root(txids))
        self.assertEqual(matched, [txids[0], txids[5], txids[10]])

    def test_malformed(self):
        txids = [Hash(bytes([i])) for i in range(4)]
        pmt = make_partial_merkle_tree(txids, [False, True, False, False])

        bad_trees = (PartialMerkleTree(0, pmt.vHash, pmt.vBits),
                     PartialMerkleTree(MAX_TRANSACTIONS + 1, pmt.vHash, pmt.vBits),
                     PartialMerkleTree(2, pmt.vHash, pmt.vBits),
                     PartialMerkleTree(4, pmt.vHash + (Hash(b'extra'),), pmt.vBits),
                     PartialMerkleTree(4, pmt.vHash[:-1], pmt.vBits),
                     PartialMerkleTree(4, pmt.vHash, pmt.vBits + b'\x00'),
                     PartialMerkleTree(4, pmt.vHash, b''))
        for bad_pmt in bad_trees:
            with self.subTest(pmt=bad_pmt):
                with self.assertRaises(BadPartialMerkleTreeError):
                    bad_pmt.extract_matches()

    def test_identical_branches(self):
        """Duplicated transactions are rejected (CVE-2012-2459)"""
        a = Hash(b'a')
        pmt = make_partial_merkle_tree([a, a], [True, True])
        with self.assertRaises(BadPartialMerkleTreeError):
            pmt.extract_matches()

    def test_truncated_deserialization(self):
        txids = txids_of(BLOCK_586)
        serialized = make_partial_merkle_tree(txids, [False, True, False]).serialize()
        for i in range(len(serialized)):
            with self.assertRaises(SerializationError):
                PartialMerkleTree.deserialize(serialized[0:i])

class Test_FilteredBlock(unittest.TestCase):
    def test_matched_txids(self):
        txids = txids_of(BLOCK_586)
        pmt = make_partial_merkle_tree(txids, [False, False, True])
        filtered_block = FilteredBlock(BLOCK_586.get_header(), pmt)

        self.assertEqual(filtered_block.GetHash(), BLOCK_586.GetHash())
        self.assertEqual(filtered_block.matched_txids(), [txids[2]])

        serialized = filtered_block.serialize()
        self.assertEqual(serialized[0:80], BLOCK_586.get_header().serialize())
        self.assertEqual(FilteredBlock.deserialize(serialized), filtered_block)

    def test_wrong_header(self):
        pmt = make_partial_merkle_tree(txids_of(BLOCK_586), [True, False, False])
        filtered_block = FilteredBlock(BLOCK_1.get_header(), pmt)

        with self.assertRaises(BadPartialMerkleTreeError):
            filtered_block.matched_txids()
