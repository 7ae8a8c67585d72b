# Copyright (c) 2025 VoidCanary-Lab
# SPDX-License-Identifier: GPL-3.0-or-later

from amaranth import *
from amaranth.lib.memory import Memory

from gateware.src.crc import CRC32
from gateware.src.frame import ETH_MTU, ETH_PREAMBLE, ETH_PREAMBLE_LEN, ETH_SFD
from gateware.src.stream import ByteStream

class FrameEncoder(Elaboratable):
    """Ethernet II Transmitter: Frame fields -> Preamble/SFD/Header/Payload/FCS byte stream

    The caller fills the payload buffer through the write port, sets the
    header fields and ``length``, then raises ``start``. Fields are sampled
    on the rising edge of ``start``; start edges while a frame is in flight
    are dropped and flagged on ``start_ignored``.
    """
    def __init__(self, mtu=ETH_MTU):
        self.mtu = mtu

        # Frame fields (sampled on start)
        self.dst_mac   = Signal(48)
        self.src_mac   = Signal(48)
        self.ethertype = Signal(16)
        self.length    = Signal(16) # Payload length in bytes
        self.start     = Signal()

        # Payload buffer write port (ignored while busy)
        self.payload_addr = Signal(range(mtu))
        self.payload_data = Signal(8)
        self.payload_we   = Signal()

        # Output Stream
        self.source = ByteStream("source")

        # Status
        self.busy          = Signal()
        self.oversize      = Signal() # Last start rejected: length > mtu
        self.start_ignored = Signal() # Start edge while busy

    def elaborate(self, platform):
        m = Module()

        crc = m.submodules.crc = CRC32()

        payload = m.submodules.payload = Memory(shape=8, depth=self.mtu, init=[])
        wr_port = payload.write_port()
        rd_port = payload.read_port(domain="comb")

        # Start edge detection
        start_d    = Signal()
        start_edge = Signal()
        m.d.sync += start_d.eq(self.start)
        m.d.comb += start_edge.eq(self.start & ~start_d)

        m.d.comb += [
            wr_port.addr.eq(self.payload_addr),
            wr_port.data.eq(self.payload_data),
            wr_port.en.eq(self.payload_we & ~self.busy),
        ]

        header = Signal(112) # dst ++ src ++ ethertype, top byte goes out first
        length = Signal(range(self.mtu + 1))
        fcs    = Signal(32)
        pos    = Signal(range(max(self.mtu, 12) + 1))

        byte = Signal(8)
        emit = Signal()
        feed = Signal()

        m.d.comb += rd_port.addr.eq(pos)

        # Default outputs
        m.d.sync += self.source.valid.eq(0)

        with m.FSM(init="IDLE") as fsm:
            with m.State("IDLE"):
                with m.If(start_edge):
                    with m.If(self.length > self.mtu):
                        m.d.sync += self.oversize.eq(1)
                    with m.Else():
                        m.d.sync += [
                            header.eq(Cat(self.ethertype, self.src_mac, self.dst_mac)),
                            length.eq(self.length),
                            pos.eq(0),
                            self.oversize.eq(0),
                        ]
                        m.d.comb += crc.reset.eq(1)
                        m.next = "PREAMBLE"

            with m.State("PREAMBLE"):
                # 7 bytes of 0x55 and 1 byte of 0xD5, outside the CRC
                m.d.comb += [
                    emit.eq(1),
                    byte.eq(Mux(pos == ETH_PREAMBLE_LEN, ETH_SFD, ETH_PREAMBLE)),
                ]
                m.d.sync += pos.eq(pos + 1)
                with m.If(pos == ETH_PREAMBLE_LEN):
                    m.d.sync += pos.eq(0)
                    m.next = "MAC"

            with m.State("MAC"):
                m.d.comb += [
                    emit.eq(1),
                    feed.eq(1),
                    byte.eq(header[104:112]),
                ]
                m.d.sync += [
                    header.eq(header << 8),
                    pos.eq(pos + 1),
                ]
                with m.If(pos == 11):
                    m.d.sync += pos.eq(0)
                    m.next = "ETHERTYPE"

            with m.State("ETHERTYPE"):
                m.d.comb += [
                    emit.eq(1),
                    feed.eq(1),
                    byte.eq(header[104:112]),
                ]
                m.d.sync += [
                    header.eq(header << 8),
                    pos.eq(pos + 1),
                ]
                with m.If(pos == 1):
                    m.d.sync += pos.eq(0)
                    with m.If(length == 0):
                        m.next = "FCS"
                    with m.Else():
                        m.next = "PAYLOAD"

            with m.State("PAYLOAD"):
                m.d.comb += [
                    emit.eq(1),
                    feed.eq(1),
                    byte.eq(rd_port.data),
                ]
                m.d.sync += pos.eq(pos + 1)
                with m.If(pos == length - 1):
                    m.d.sync += pos.eq(0)
                    m.next = "FCS"

            with m.State("FCS"):
                # The CRC register holds every covered byte by now; latch the
                # complemented value once and shift it out MSB first.
                m.d.comb += emit.eq(1)
                with m.If(pos == 0):
                    m.d.comb += byte.eq(crc.value[24:32])
                    m.d.sync += fcs.eq(crc.value << 8)
                with m.Else():
                    m.d.comb += byte.eq(fcs[24:32])
                    m.d.sync += fcs.eq(fcs << 8)
                m.d.sync += pos.eq(pos + 1)
                with m.If(pos == 3):
                    m.d.sync += pos.eq(0)
                    m.next = "IDLE"

        with m.If(emit):
            m.d.sync += [
                self.source.data.eq(byte),
                self.source.valid.eq(1),
            ]

        m.d.comb += [
            crc.data.eq(byte),
            crc.enable.eq(feed),
            self.busy.eq(~fsm.ongoing("IDLE")),
            self.start_ignored.eq(start_edge & self.busy),
        ]

        return m
