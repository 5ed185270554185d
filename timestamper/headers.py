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

import binascii
import logging

from bitcoin.core import CBlockHeader, b2lx
from bitcoin.core.serialize import SerializationError

from timestamper.ledger import HeaderChain

HEADER_SIZE = 80

class MemoryHeaderChain(HeaderChain):
    """Header chain held in memory

    The tip is the last header added. Headers are linked by hashPrevBlock; a
    header whose parent is unknown is the start of the chain.
    """

    def __init__(self, headers=()):
        self.__by_hash = {}
        self.__tip = None
        for header in headers:
            self.add(header)

    def add(self, header):
        self.__by_hash[header.GetHash()] = header
        self.__tip = header

    def __len__(self):
        return len(self.__by_hash)

    def __contains__(self, block_hash):
        return block_hash in self.__by_hash

    def tip(self):
        return self.__tip

    def previous(self, header):
        return self.__by_hash.get(header.hashPrevBlock)

    @classmethod
    def from_fd(cls, fd):
        """Load headers from a file

        Either raw 80-byte headers back to back, or one hex-encoded header per
        line, as printed by bitcoin-cli getblockheader <hash> false. Oldest
        first.
        """
        data = fd.read()

        try:
            text = data.decode('ascii')
        except UnicodeDecodeError:
            text = None

        if text is not None and text.strip() and all(c in '0123456789abcdefABCDEF' for c in ''.join(text.split())):
            raw_headers = [binascii.unhexlify(line) for line in text.split()]
        else:
            if len(data) % HEADER_SIZE:
                raise ValueError("Header file length %d is not a multiple of %d" % (len(data), HEADER_SIZE))
            raw_headers = [data[i:i+HEADER_SIZE] for i in range(0, len(data), HEADER_SIZE)]

        self = cls()
        for raw_header in raw_headers:
            try:
                self.add(CBlockHeader.deserialize(raw_header))
            except SerializationError as exp:
                raise ValueError("Invalid block header: %s" % exp)

        if self.tip() is not None:
            logging.debug("Loaded %d block headers; tip is %s" % (len(self), b2lx(self.tip().GetHash())))
        return self
