# Copyright (c) 2025 VoidCanary-Lab
# SPDX-License-Identifier: GPL-3.0-or-later

from amaranth import *

from gateware.src.frame import ETH_SFD
from gateware.src.stream import ByteStream

class PreambleChecker(Elaboratable):
    """Preamble/SFD stripper placed in front of the FrameDecoder.

    Drops every byte up to and including the SFD (0xD5), whatever the other
    preamble bytes are, then forwards the burst until ``valid`` drops. The
    first 0xD5 of a burst is taken as the SFD, so a preamble that contains
    0xD5 ends early and its remaining bytes are forwarded as frame data. The
    line must go idle for at least one cycle between frames.

    ``error`` pulses when a burst ends before an SFD was seen.
    """
    def __init__(self):
        self.sink   = ByteStream("sink")
        self.source = ByteStream("source")
        self.error  = Signal()

    def elaborate(self, platform):
        m = Module()

        seen = Signal() # Preamble bytes received in this burst

        m.d.comb += self.source.data.eq(self.sink.data)

        with m.FSM(init="PREAMBLE"):
            with m.State("PREAMBLE"):
                with m.If(self.sink.valid):
                    m.d.sync += seen.eq(1)
                    with m.If(self.sink.data == ETH_SFD):
                        m.d.sync += seen.eq(0)
                        m.next = "COPY"
                with m.Elif(seen):
                    m.d.comb += self.error.eq(1)
                    m.d.sync += seen.eq(0)

            with m.State("COPY"):
                m.d.comb += self.source.valid.eq(self.sink.valid)
                with m.If(~self.sink.valid):
                    m.next = "PREAMBLE"

        return m
