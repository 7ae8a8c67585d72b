# Copyright (c) 2025 VoidCanary-Lab
# SPDX-License-Identifier: GPL-3.0-or-later

import argparse
import sys
import os
import warnings
from collections import namedtuple
from amaranth import *
from amaranth.sim import Simulator
from scapy.utils import rdpcap

# Ensure we can import from the root workspace
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../')))
from gateware.src.decoder import FrameDecoder
from gateware.src.encoder import FrameEncoder
from gateware.src.frame import ETH_MTU, Frame, FrameError, format_mac, strip_preamble
from gateware.src.preamble import PreambleChecker

DEBUG = False

LoopbackResult = namedtuple("LoopbackResult", ["wire", "frame", "crc_error"])

class Loopback(Elaboratable):
    """FrameEncoder -> PreambleChecker -> FrameDecoder

    The decoder gets the payload length out-of-band from the encoder's
    ``length`` input, which must be held until the frame has been received.
    """
    def __init__(self, mtu=ETH_MTU):
        self.encoder = FrameEncoder(mtu)
        self.checker = PreambleChecker()
        self.decoder = FrameDecoder(mtu)

    def elaborate(self, platform):
        m = Module()
        m.submodules.encoder = self.encoder
        m.submodules.checker = self.checker
        m.submodules.decoder = self.decoder

        m.d.comb += self.checker.sink.eq(self.encoder.source)
        m.d.comb += self.decoder.sink.eq(self.checker.source)
        m.d.comb += self.decoder.length.eq(self.encoder.length)

        return m

# --- Testbench helpers (amaranth.sim async testbench context) ---

async def load_frame(ctx, encoder, frame):
    """Write the payload into the encoder buffer and present the header fields."""
    for addr, byte in enumerate(frame.payload):
        ctx.set(encoder.payload_addr, addr)
        ctx.set(encoder.payload_data, byte)
        ctx.set(encoder.payload_we, 1)
        await ctx.tick()
    ctx.set(encoder.payload_we, 0)

    ctx.set(encoder.dst_mac, frame.dst_mac)
    ctx.set(encoder.src_mac, frame.src_mac)
    ctx.set(encoder.ethertype, frame.ethertype)
    ctx.set(encoder.length, len(frame.payload))

async def start_frame(ctx, encoder):
    ctx.set(encoder.start, 1)
    await ctx.tick()
    ctx.set(encoder.start, 0)

async def collect_stream(ctx, stream, timeout=4096):
    """Record one burst of valid bytes; returns once ``valid`` drops after it."""
    data = bytearray()
    for _ in range(timeout):
        await ctx.tick()
        if ctx.get(stream.valid):
            data.append(ctx.get(stream.data))
            if DEBUG:
                print(f"[DEBUG] Byte {len(data) - 1}: {hex(data[-1])}", flush=True)
        elif data:
            return bytes(data)
    raise TimeoutError(f"Stream burst did not end within {timeout} cycles")

async def drive_stream(ctx, stream, data, idle_every=0):
    """Present ``data`` one byte per clock, inserting an idle cycle every ``idle_every`` bytes."""
    for i, byte in enumerate(data):
        if idle_every and i and i % idle_every == 0:
            ctx.set(stream.valid, 0)
            await ctx.tick()
        ctx.set(stream.data, byte)
        ctx.set(stream.valid, 1)
        await ctx.tick()
    ctx.set(stream.valid, 0)

async def wait_done(ctx, decoder, timeout=4096):
    for _ in range(timeout):
        if ctx.get(decoder.done):
            return
        await ctx.tick()
    raise TimeoutError(f"Decoder did not finish within {timeout} cycles")

def read_frame(ctx, decoder):
    """Rebuild a Frame from the decoder's outputs and payload buffer."""
    payload = bytearray()
    for addr in range(ctx.get(decoder.payload_length)):
        ctx.set(decoder.payload_addr, addr)
        payload.append(ctx.get(decoder.payload_data))
    return Frame(
        dst_mac=ctx.get(decoder.dst_mac),
        src_mac=ctx.get(decoder.src_mac),
        ethertype=ctx.get(decoder.ethertype),
        payload=bytes(payload),
        mtu=decoder.mtu,
    )

def run_loopback(frames, mtu=ETH_MTU):
    """Send each frame through encoder -> preamble checker -> decoder."""
    dut = Loopback(mtu)
    sim = Simulator(dut)
    sim.add_clock(1e-6)
    results = []

    async def testbench(ctx):
        for frame in frames:
            await load_frame(ctx, dut.encoder, frame)
            await start_frame(ctx, dut.encoder)
            wire = await collect_stream(ctx, dut.encoder.source, timeout=mtu + 64)
            await wait_done(ctx, dut.decoder)
            results.append(LoopbackResult(
                wire=wire,
                frame=read_frame(ctx, dut.decoder),
                crc_error=bool(ctx.get(dut.decoder.crc_error)),
            ))
            await ctx.tick()

    sim.add_testbench(testbench)
    sim.run()
    return results

def load_pcap(path, mtu=ETH_MTU):
    return [Frame.from_bytes(bytes(pkt), mtu=mtu) for pkt in rdpcap(path)]

def main():
    # Suppress Amaranth deprecation warnings for cleaner output
    warnings.filterwarnings("ignore", category=DeprecationWarning)

    parser = argparse.ArgumentParser(description="Ethernet II codec loopback simulation")
    parser.add_argument("--pcap", help="Replay every packet of a pcap file")
    parser.add_argument("--dst", default="FF:FF:FF:FF:FF:FF")
    parser.add_argument("--src", default="02:00:00:00:00:01")
    parser.add_argument("--ethertype", type=lambda s: int(s, 0), default=0x0800)
    parser.add_argument("--payload", default="", help="Payload as hex")
    parser.add_argument("--mtu", type=int, default=ETH_MTU)
    parser.add_argument("--pad", action="store_true", help="Pad payloads to the 64 byte frame minimum")
    args = parser.parse_args()

    try:
        if args.pcap:
            print(f"[*] Reading {args.pcap}...", flush=True)
            frames = load_pcap(args.pcap, args.mtu)
        else:
            frames = [Frame(args.dst, args.src, args.ethertype, bytes.fromhex(args.payload), mtu=args.mtu)]
    except (FrameError, ValueError) as e:
        print(f"[!] {e}", flush=True)
        sys.exit(1)

    if args.pad:
        frames = [frame.padded() for frame in frames]

    print(f"[*] Simulating {len(frames)} frame(s)...", flush=True)
    results = run_loopback(frames, mtu=args.mtu)

    failures = 0
    for i, (frame, result) in enumerate(zip(frames, results)):
        try:
            on_wire = Frame.decode(strip_preamble(result.wire), mtu=args.mtu)
        except FrameError as e:
            print(f"[!] Frame {i}: wire check failed: {e}", flush=True)
            failures += 1
            continue

        if result.crc_error:
            print(f"[!] Frame {i}: decoder reported CRC error", flush=True)
            failures += 1
        elif result.frame != frame or on_wire != frame:
            print(f"[!] Frame {i}: mismatch, sent {frame!r}, received {result.frame!r}", flush=True)
            failures += 1
        else:
            print(f"[+] Frame {i}: {format_mac(frame.src_mac)} -> {format_mac(frame.dst_mac)} "
                  f"type 0x{frame.ethertype:04X}, {len(frame.payload)} bytes, FCS 0x{frame.fcs():08X}", flush=True)

    print(f"[*] {len(frames) - failures}/{len(frames)} frames passed.", flush=True)
    sys.exit(1 if failures else 0)

if __name__ == "__main__":
    main()
