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

"""Proof-critical code

Everything under timestamper.core has the property that changes to it may
make existing .timestamp proofs fail to deserialize or verify. We keep such
code separate as a reminder to ourselves to pay extra attention when making
changes.
"""
