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

import io
import os
import tempfile
import unittest

from timestamper.core.hashutil import *

class Test_hashutil(unittest.TestCase):
    def test_hash_bytes(self):
        self.assertEqual(hash_bytes(b''),
                         bytes.fromhex('e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'))
        self.assertEqual(hash_bytes(b'abc'),
                         bytes.fromhex('ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad'))

    def test_hash_fd(self):
        """Streams larger than one chunk hash the same as bytes"""
        data = b'x' * (2**20 + 123)
        self.assertEqual(hash_fd(io.BytesIO(data)), hash_bytes(data))

    def test_hash_file(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, 'doc')
            with open(path, 'wb') as fd:
                fd.write(b'abc')

            digest = hash_file(path)
            self.assertEqual(len(digest), DIGEST_LENGTH)
            self.assertEqual(digest, hash_bytes(b'abc'))
