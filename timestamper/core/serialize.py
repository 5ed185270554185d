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

"""Proof file serialization contexts

The proof file wraps Bitcoin-serialized structures in a small container of its
own; these contexts read and write that container.
"""

import binascii
import io

class DeserializationError(Exception):
    """Base class for all errors encountered during deserialization"""

class BadMagicError(DeserializationError):
    """A magic number is incorrect

    Raised when the proof file header doesn't match the expected type tag.
    """
    def __init__(self, expected_magic, actual_magic):
        super().__init__('Expected magic bytes 0x%s, but got 0x%s instead' % (binascii.hexlify(expected_magic).decode(),
                                                                              binascii.hexlify(actual_magic).decode()))

class TruncationError(DeserializationError):
    """Truncated data encountered while deserializing"""

class TrailingGarbageError(DeserializationError):
    """Trailing garbage found after deserialization finished

    Raised when deserialization otherwise succeeds without errors, but excess
    data is present after the data we expected to get.
    """


class StreamSerializationContext:
    def __init__(self, fd):
        """Serialize to a stream"""
        self.fd = fd

    def write_varuint(self, value):
        # unsigned little-endian base128 format (LEB128)
        if value < 0:
            raise ValueError('varuint must be non-negative; got %d' % value)

        while True:
            b = value & 0b01111111
            value >>= 7
            if value:
                self.fd.write(bytes([b | 0b10000000]))
            else:
                self.fd.write(bytes([b]))
                break

    def write_bytes(self, value):
        self.fd.write(value)

    def write_varbytes(self, value):
        self.write_varuint(len(value))
        self.fd.write(value)

class StreamDeserializationContext:
    # A varuint longer than this can't describe any length we accept
    MAX_VARUINT_BYTES = 9

    def __init__(self, fd):
        """Deserialize from a stream"""
        self.fd = fd

    def fd_read(self, l):
        r = self.fd.read(l)
        if len(r) != l:
            raise TruncationError('Tried to read %d bytes but got only %d bytes' % \
                                  (l, len(r)))
        return r

    def read_varuint(self):
        value = 0
        shift = 0

        for i in range(self.MAX_VARUINT_BYTES):
            b = self.fd_read(1)[0]
            value |= (b & 0b01111111) << shift
            if not (b & 0b10000000):
                return value
            shift += 7

        raise DeserializationError('varuint exceeds %d bytes' % self.MAX_VARUINT_BYTES)

    def read_bytes(self, expected_length):
        return self.fd_read(expected_length)

    def read_varbytes(self, max_len, min_len=0):
        l = self.read_varuint()
        if l > max_len:
            raise DeserializationError('varbytes max length exceeded; %d > %d' % (l, max_len))
        if l < min_len:
            raise DeserializationError('varbytes min length not met; %d < %d' % (l, min_len))
        return self.fd_read(l)

    def assert_magic(self, expected_magic):
        """Assert the presence of magic bytes

        Raises BadMagicError if the magic bytes don't match, or if the read was
        truncated.

        Note that this isn't an assertion in the Python sense: debug/production
        does not change the behavior of this function.
        """
        actual_magic = self.fd.read(len(expected_magic))
        if expected_magic != actual_magic:
            raise BadMagicError(expected_magic, actual_magic)

    def assert_eof(self):
        """Assert that we have reached the end of the data

        Raises TrailingGarbageError if the end of file has not been reached.
        """
        excess = self.fd.read(1)
        if excess:
            raise TrailingGarbageError("Trailing garbage found after end of deserialized data")

class BytesSerializationContext(StreamSerializationContext):
    def __init__(self):
        """Serialize to bytes"""
        super().__init__(io.BytesIO())

    def getbytes(self):
        """Return the bytes serialized to date"""
        return self.fd.getvalue()

class BytesDeserializationContext(StreamDeserializationContext):
    def __init__(self, buf):
        """Deserialize from bytes"""
        super().__init__(io.BytesIO(buf))
