# Copyright (c) 2025 VoidCanary-Lab
# SPDX-License-Identifier: GPL-3.0-or-later

from amaranth import *

class ByteStream:
    """Byte-wide stream: one byte per clock while ``valid`` is high.

    There is no ready/backpressure. The consumer must take every byte on the
    cycle it is presented.
    """
    def __init__(self, name="stream"):
        self.data  = Signal(8, name=f"{name}_data")
        self.valid = Signal(name=f"{name}_valid")

    def eq(self, other):
        return [
            self.data.eq(other.data),
            self.valid.eq(other.valid),
        ]

    def ports(self):
        return [self.data, self.valid]
