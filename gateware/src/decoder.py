# Copyright (c) 2025 VoidCanary-Lab
# SPDX-License-Identifier: GPL-3.0-or-later

from amaranth import *
from amaranth.lib.memory import Memory

from gateware.src.crc import CRC32
from gateware.src.frame import ETH_FCS_LEN, ETH_HEADER_LEN, ETH_MTU
from gateware.src.stream import ByteStream

class FrameDecoder(Elaboratable):
    """Ethernet II Receiver: Header/Payload/FCS byte stream -> Frame fields + FCS check

    Expects the stream to start at the first destination MAC byte (preamble
    and SFD stripped upstream). The payload length is supplied out-of-band
    on ``length`` and sampled together with the first byte of each frame.

    Results (header fields, payload buffer, ``complete``, ``crc_error``) stay
    stable from the cycle the FCS check resolves until the next frame starts.
    """
    def __init__(self, mtu=ETH_MTU):
        self.mtu = mtu

        # Input Stream
        self.sink   = ByteStream("sink")
        self.length = Signal(16) # Payload length in bytes

        # Assembled Frame
        self.dst_mac        = Signal(48)
        self.src_mac        = Signal(48)
        self.ethertype      = Signal(16)
        self.payload_length = Signal(range(mtu + 1))
        self.fcs            = Signal(32) # Received
        self.expected_fcs   = Signal(32) # Computed

        # Payload buffer read port
        self.payload_addr = Signal(range(mtu))
        self.payload_data = Signal(8)

        # Status
        self.busy      = Signal()
        self.done      = Signal() # Pulses when the FCS check resolves
        self.complete  = Signal()
        self.crc_error = Signal()
        self.oversize  = Signal() # Sampled length > mtu, frame discarded

    def elaborate(self, platform):
        m = Module()

        crc = m.submodules.crc = CRC32()

        payload = m.submodules.payload = Memory(shape=8, depth=self.mtu, init=[])
        wr_port = payload.write_port()
        rd_port = payload.read_port(domain="comb")

        header   = Signal(112) # dst ++ src ++ ethertype, first byte ends up on top
        length   = Signal(range(self.mtu + 1))
        fcs      = Signal(32)
        received = Signal(32)
        pos      = Signal(range(self.mtu + ETH_HEADER_LEN + 1))

        m.d.comb += [
            self.dst_mac.eq(header[64:112]),
            self.src_mac.eq(header[16:64]),
            self.ethertype.eq(header[0:16]),
            self.payload_length.eq(length),
            self.fcs.eq(fcs),
            self.expected_fcs.eq(crc.value),

            rd_port.addr.eq(self.payload_addr),
            self.payload_data.eq(rd_port.data),

            crc.data.eq(self.sink.data),
            wr_port.data.eq(self.sink.data),
            wr_port.addr.eq(pos - ETH_HEADER_LEN),
            received.eq(Cat(self.sink.data, fcs[0:24])),
        ]

        # Default outputs
        m.d.sync += self.done.eq(0)

        with m.FSM(init="IDLE") as fsm:
            with m.State("IDLE"):
                with m.If(self.sink.valid):
                    # New frame: clear the previous frame's result
                    m.d.sync += [
                        self.complete.eq(0),
                        self.crc_error.eq(0),
                        self.oversize.eq(0),
                    ]
                    with m.If(self.length > self.mtu):
                        m.d.sync += self.oversize.eq(1)
                        m.next = "DISCARD"
                    with m.Else():
                        m.d.sync += [
                            length.eq(self.length),
                            header.eq(Cat(self.sink.data, header[0:104])),
                            pos.eq(1),
                        ]
                        m.d.comb += [
                            crc.reset.eq(1),
                            crc.enable.eq(1),
                        ]
                        m.next = "RECEIVE"

            with m.State("RECEIVE"):
                with m.If(self.sink.valid):
                    m.d.comb += crc.enable.eq(1)
                    m.d.sync += pos.eq(pos + 1)
                    with m.If(pos < ETH_HEADER_LEN):
                        m.d.sync += header.eq(Cat(self.sink.data, header[0:104]))
                    with m.Else():
                        m.d.comb += wr_port.en.eq(1)
                    with m.If(pos == length + (ETH_HEADER_LEN - 1)):
                        m.d.sync += pos.eq(0)
                        m.next = "CRC_CHECK"

            with m.State("CRC_CHECK"):
                # Trailing FCS, MSB first; the CRC register is frozen here
                with m.If(self.sink.valid):
                    m.d.sync += [
                        fcs.eq(received),
                        pos.eq(pos + 1),
                    ]
                    with m.If(pos == ETH_FCS_LEN - 1):
                        m.d.sync += [
                            pos.eq(0),
                            self.crc_error.eq(received != crc.value),
                            self.complete.eq(1),
                            self.done.eq(1),
                        ]
                        m.next = "IDLE"

            with m.State("DISCARD"):
                # Payload does not fit the buffer: drop the rest of the burst
                with m.If(~self.sink.valid):
                    m.next = "IDLE"

        m.d.comb += self.busy.eq(~fsm.ongoing("IDLE"))

        return m
