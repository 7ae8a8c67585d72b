# Copyright (c) 2025 VoidCanary-Lab
# SPDX-License-Identifier: GPL-3.0-or-later

from amaranth import *

CRC32_INIT = 0xFFFFFFFF
CRC32_POLY = 0xEDB88320 # 0x04C11DB7 bit-reflected

def make_crc32_table():
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ CRC32_POLY
            else:
                crc >>= 1
        table.append(crc)
    return table

CRC32_TABLE = make_crc32_table()

def crc32(data, crc=CRC32_INIT):
    """Software reference: IEEE 802.3 CRC-32 of ``data``, final XOR applied.

    ``crc`` is the raw accumulator to continue from (0xFFFFFFFF for a new
    frame).
    """
    for byte in data:
        crc = CRC32_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF

class CRC32(Elaboratable):
    """Ethernet CRC32 Generator/Checker (Polynomial: 0x04C11DB7)

    Folds ``data`` into the accumulator on every clock where ``enable`` is
    high. ``reset`` reloads 0xFFFFFFFF; with ``reset`` and ``enable`` high in
    the same cycle the byte is folded into the freshly reset value, so a
    frame can start on its first byte. ``value`` is the complemented
    accumulator (the FCS) and is combinational, reading it never changes
    the register.
    """
    def __init__(self):
        self.data   = Signal(8)
        self.enable = Signal()
        self.reset  = Signal()
        self.crc    = Signal(32, init=CRC32_INIT)
        self.value  = Signal(32)

    def elaborate(self, platform):
        m = Module()

        base = Signal(32)
        m.d.comb += base.eq(Mux(self.reset, CRC32_INIT, self.crc))

        # Standard Ethernet CRC32 (LSB first)
        cur = base
        val = self.data
        for i in range(8):
            mask = (cur[0] ^ val[0])
            cur = (cur >> 1) ^ Mux(mask, CRC32_POLY, 0)
            val = val >> 1

        with m.If(self.enable):
            m.d.sync += self.crc.eq(cur)
        with m.Elif(self.reset):
            m.d.sync += self.crc.eq(CRC32_INIT)

        m.d.comb += self.value.eq(~self.crc) # Final inversion
        return m
