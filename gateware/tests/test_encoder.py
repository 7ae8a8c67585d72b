# Copyright (c) 2025 VoidCanary-Lab
# SPDX-License-Identifier: GPL-3.0-or-later

import unittest
import zlib
from amaranth.sim import Simulator
import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../')))
from gateware.src.encoder import FrameEncoder
from gateware.src.frame import Frame
from gateware.sim.loopback import load_frame, start_frame, collect_stream

PAYLOAD = bytes.fromhex("DEADBEEF123456789ABC")

class TestFrameEncoder(unittest.TestCase):
    def make_frame(self, payload=PAYLOAD):
        return Frame("AA:BB:CC:DD:EE:FF", "11:22:33:44:55:66", 0x0800, payload)

    def encode(self, frame, mtu=1500):
        dut = FrameEncoder(mtu)
        sim = Simulator(dut)
        sim.add_clock(1e-6)
        out = []

        async def test_process(ctx):
            await load_frame(ctx, dut, frame)
            await start_frame(ctx, dut)
            out.append(await collect_stream(ctx, dut.source))

        sim.add_testbench(test_process)
        sim.run()
        return out[0]

    def test_scenario(self):
        frame = self.make_frame()
        wire = self.encode(frame)
        self.assertEqual(wire, frame.encode())
        self.assertEqual(len(wire), 8 + 14 + 10 + 4)

    def test_byte_order(self):
        wire = self.encode(self.make_frame())
        self.assertEqual(wire[:8], bytes([0x55] * 7 + [0xD5]))
        # Destination MAC first, MSB first
        self.assertEqual(wire[8:14], bytes.fromhex("AABBCCDDEEFF"))
        self.assertEqual(wire[14:20], bytes.fromhex("112233445566"))
        # EtherType high byte first
        self.assertEqual(wire[20:22], b"\x08\x00")
        self.assertEqual(wire[22:32], PAYLOAD)
        # FCS over MAC + EtherType + payload, MSB first
        self.assertEqual(wire[32:36], zlib.crc32(wire[8:32]).to_bytes(4, "big"))

    def test_empty_payload(self):
        frame = self.make_frame(b"")
        self.assertEqual(self.encode(frame), frame.encode())

    def test_single_byte_payload(self):
        frame = self.make_frame(b"\x42")
        self.assertEqual(self.encode(frame), frame.encode())

    def test_mtu_payload(self):
        frame = self.make_frame(bytes(i & 0xFF for i in range(1500)))
        self.assertEqual(self.encode(frame), frame.encode())

    def test_valid_drops_after_fcs(self):
        dut = FrameEncoder()
        sim = Simulator(dut)
        sim.add_clock(1e-6)

        async def test_process(ctx):
            self.assertEqual(ctx.get(dut.source.valid), 0)
            await load_frame(ctx, dut, self.make_frame())
            await start_frame(ctx, dut)
            self.assertEqual(ctx.get(dut.busy), 1)
            # Registered output: first byte shows up one cycle later
            self.assertEqual(ctx.get(dut.source.valid), 0)

            cycles = 0
            while True:
                await ctx.tick()
                if not ctx.get(dut.source.valid):
                    break
                cycles += 1
            self.assertEqual(cycles, 36)
            self.assertEqual(ctx.get(dut.busy), 0)
            for _ in range(5):
                await ctx.tick()
                self.assertEqual(ctx.get(dut.source.valid), 0)

        sim.add_testbench(test_process)
        sim.run()

    def test_busy_reject(self):
        dut = FrameEncoder()
        sim = Simulator(dut)
        sim.add_clock(1e-6)
        frame = self.make_frame()
        other = Frame("01:02:03:04:05:06", "07:08:09:0A:0B:0C", 0x86DD, b"\xFF" * 4)
        out = bytearray()

        async def test_process(ctx):
            await load_frame(ctx, dut, frame)
            await start_frame(ctx, dut)
            for _ in range(12):
                await ctx.tick()
                out.append(ctx.get(dut.source.data))

            # New fields, payload writes and a start edge mid-frame
            ctx.set(dut.dst_mac, other.dst_mac)
            ctx.set(dut.src_mac, other.src_mac)
            ctx.set(dut.ethertype, other.ethertype)
            ctx.set(dut.length, len(other.payload))
            ctx.set(dut.payload_addr, 0)
            ctx.set(dut.payload_data, 0x00)
            ctx.set(dut.payload_we, 1)
            ctx.set(dut.start, 1)
            self.assertEqual(ctx.get(dut.start_ignored), 1)
            await ctx.tick()
            out.append(ctx.get(dut.source.data))
            ctx.set(dut.payload_we, 0)
            ctx.set(dut.start, 0)
            self.assertEqual(ctx.get(dut.start_ignored), 0)

            while ctx.get(dut.source.valid):
                await ctx.tick()
                if ctx.get(dut.source.valid):
                    out.append(ctx.get(dut.source.data))

            # The ignored start was not queued
            for _ in range(10):
                await ctx.tick()
                self.assertEqual(ctx.get(dut.source.valid), 0)
                self.assertEqual(ctx.get(dut.busy), 0)

        sim.add_testbench(test_process)
        sim.run()
        self.assertEqual(bytes(out), frame.encode())

    def test_start_is_edge_sensitive(self):
        dut = FrameEncoder()
        sim = Simulator(dut)
        sim.add_clock(1e-6)

        async def test_process(ctx):
            await load_frame(ctx, dut, self.make_frame(b""))
            ctx.set(dut.start, 1)
            bursts = 0
            valid_d = 0
            # Start held high for several frame times: one frame only
            for _ in range(200):
                await ctx.tick()
                valid = ctx.get(dut.source.valid)
                if valid and not valid_d:
                    bursts += 1
                valid_d = valid
            self.assertEqual(bursts, 1)

        sim.add_testbench(test_process)
        sim.run()

    def test_oversize(self):
        dut = FrameEncoder(mtu=16)
        sim = Simulator(dut)
        sim.add_clock(1e-6)

        async def test_process(ctx):
            ctx.set(dut.length, 17)
            await start_frame(ctx, dut)
            self.assertEqual(ctx.get(dut.oversize), 1)
            self.assertEqual(ctx.get(dut.busy), 0)
            for _ in range(30):
                await ctx.tick()
                self.assertEqual(ctx.get(dut.source.valid), 0)

            # The next valid start clears the flag
            frame = Frame(1, 2, 0x0800, bytes(range(16)), mtu=16)
            await load_frame(ctx, dut, frame)
            await start_frame(ctx, dut)
            self.assertEqual(ctx.get(dut.oversize), 0)
            self.assertEqual(await collect_stream(ctx, dut.source), frame.encode())

        sim.add_testbench(test_process)
        sim.run()

    def test_back_to_back(self):
        dut = FrameEncoder()
        sim = Simulator(dut)
        sim.add_clock(1e-6)
        frames = [self.make_frame(), self.make_frame(b"\x00\x01"), self.make_frame(b"")]

        async def test_process(ctx):
            for frame in frames:
                await load_frame(ctx, dut, frame)
                await start_frame(ctx, dut)
                self.assertEqual(await collect_stream(ctx, dut.source), frame.encode())

        sim.add_testbench(test_process)
        sim.run()

if __name__ == "__main__":
    unittest.main()
