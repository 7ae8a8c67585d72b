# Copyright (c) 2025 VoidCanary-Lab
# SPDX-License-Identifier: GPL-3.0-or-later

import argparse
import sys
import os

# Ensure we can import from the root workspace
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../../")))

from amaranth.back import verilog
from gateware.src.decoder import FrameDecoder
from gateware.src.encoder import FrameEncoder
from gateware.src.frame import ETH_MTU
from gateware.src.preamble import PreambleChecker

def make_core(name, mtu=ETH_MTU):
    """Return ``(elaboratable, ports)`` for one of the exportable cores."""
    if name == "encoder":
        top = FrameEncoder(mtu)
        ports = [
            top.dst_mac, top.src_mac, top.ethertype, top.length, top.start,
            top.payload_addr, top.payload_data, top.payload_we,
            *top.source.ports(),
            top.busy, top.oversize, top.start_ignored,
        ]
    elif name == "decoder":
        top = FrameDecoder(mtu)
        ports = [
            *top.sink.ports(), top.length,
            top.dst_mac, top.src_mac, top.ethertype, top.payload_length,
            top.fcs, top.expected_fcs,
            top.payload_addr, top.payload_data,
            top.busy, top.done, top.complete, top.crc_error, top.oversize,
        ]
    elif name == "preamble":
        top = PreambleChecker()
        ports = [*top.sink.ports(), *top.source.ports(), top.error]
    else:
        raise ValueError(f"Unknown core: {name}")
    return top, ports

def output_path(out_dir, name):
    return os.path.join(out_dir, f"eth_{name}.v")

def build():
    parser = argparse.ArgumentParser()
    parser.add_argument("--core", choices=["encoder", "decoder", "preamble", "all"], default="all")
    parser.add_argument("--mtu", type=int, default=ETH_MTU, help="Payload buffer size in bytes")
    parser.add_argument("--out", default=".", help="Output directory")
    args = parser.parse_args()

    names = ["encoder", "decoder", "preamble"] if args.core == "all" else [args.core]
    os.makedirs(args.out, exist_ok=True)
    for name in names:
        top, ports = make_core(name, args.mtu)
        path = output_path(args.out, name)
        print(f"[*] Generating Verilog ({path})...")
        with open(path, "w") as f:
            f.write(verilog.convert(top, name=f"eth_{name}", ports=ports))

if __name__ == "__main__":
    build()
