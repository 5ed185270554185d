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

"""Document digests

Documents are committed to with a single SHA256; the digest is what ends up
in the carrier transaction's OP_RETURN output.
"""

import hashlib

HASHLIB_NAME = 'sha256'
DIGEST_LENGTH = 32

def hash_bytes(data):
    return hashlib.new(HASHLIB_NAME, bytes(data)).digest()

def hash_fd(fd):
    """Hash the remaining contents of a binary stream"""
    hasher = hashlib.new(HASHLIB_NAME)
    while True:
        chunk = fd.read(2**20) # 1MB chunks
        if chunk:
            hasher.update(chunk)
        else:
            break

    r = hasher.digest()
    assert len(r) == DIGEST_LENGTH
    return r

def hash_file(path):
    with open(path, 'rb') as fd:
        return hash_fd(fd)
