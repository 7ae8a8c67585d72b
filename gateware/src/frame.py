# Copyright (c) 2025 VoidCanary-Lab
# SPDX-License-Identifier: GPL-3.0-or-later

"""Software model of an Ethernet II frame.

Used to load frames into the encoder, to check what comes out of the decoder
and as the padding layer the gateware does not have.
"""

import string

from scapy.utils import mac2str, str2mac

from gateware.src.crc import crc32

ETH_PREAMBLE     = 0x55
ETH_SFD          = 0xD5
ETH_PREAMBLE_LEN = 7
ETH_HEADER_LEN   = 14
ETH_FCS_LEN      = 4
ETH_MTU          = 1500
ETH_MIN_PAYLOAD  = 46 # 64 byte minimum frame - header - FCS

class FrameError(ValueError):
    pass

class OversizeError(FrameError):
    pass

class FCSError(FrameError):
    def __init__(self, received, expected):
        super().__init__(f"FCS mismatch: received 0x{received:08X}, expected 0x{expected:08X}")
        self.received = received
        self.expected = expected

def parse_mac(text):
    parts = text.replace("-", ":").split(":")
    if len(parts) != 6:
        raise FrameError(f"Invalid MAC address: {text!r}")
    # One or two hex digits per octet, nothing else
    for part in parts:
        if not 1 <= len(part) <= 2 or any(c not in string.hexdigits for c in part):
            raise FrameError(f"Invalid MAC address: {text!r}")
    return int.from_bytes(mac2str(":".join(part.zfill(2) for part in parts)), "big")

def format_mac(value):
    return str2mac(value.to_bytes(6, "big")).upper()

def strip_preamble(data):
    """Drop everything up to and including the SFD."""
    data = bytes(data)
    index = data.find(ETH_SFD)
    if index < 0:
        raise FrameError("No start frame delimiter found")
    return data[index + 1:]

class Frame:
    def __init__(self, dst_mac, src_mac, ethertype, payload=b"", mtu=ETH_MTU):
        if isinstance(dst_mac, str):
            dst_mac = parse_mac(dst_mac)
        if isinstance(src_mac, str):
            src_mac = parse_mac(src_mac)
        for name, value, bits in (("dst_mac", dst_mac, 48), ("src_mac", src_mac, 48), ("ethertype", ethertype, 16)):
            if not 0 <= value < (1 << bits):
                raise FrameError(f"{name} out of range: 0x{value:X}")
        payload = bytes(payload)
        if len(payload) > mtu:
            raise OversizeError(f"Payload of {len(payload)} bytes exceeds MTU of {mtu}")

        self.dst_mac   = dst_mac
        self.src_mac   = src_mac
        self.ethertype = ethertype
        self.payload   = payload
        self.mtu       = mtu

    @classmethod
    def from_bytes(cls, raw, mtu=ETH_MTU):
        """Header + payload, no FCS (the layout of a captured packet)."""
        raw = bytes(raw)
        if len(raw) < ETH_HEADER_LEN:
            raise FrameError(f"Runt frame: {len(raw)} bytes")
        return cls(
            dst_mac=int.from_bytes(raw[0:6], "big"),
            src_mac=int.from_bytes(raw[6:12], "big"),
            ethertype=int.from_bytes(raw[12:14], "big"),
            payload=raw[ETH_HEADER_LEN:],
            mtu=mtu,
        )

    @classmethod
    def decode(cls, data, mtu=ETH_MTU):
        """Header + payload + FCS, as received after the SFD."""
        data = bytes(data)
        if len(data) < ETH_HEADER_LEN + ETH_FCS_LEN:
            raise FrameError(f"Runt frame: {len(data)} bytes")
        body, trailer = data[:-ETH_FCS_LEN], data[-ETH_FCS_LEN:]
        received = int.from_bytes(trailer, "big")
        expected = crc32(body)
        if received != expected:
            raise FCSError(received, expected)
        return cls.from_bytes(body, mtu=mtu)

    def header(self):
        return (self.dst_mac.to_bytes(6, "big") +
                self.src_mac.to_bytes(6, "big") +
                self.ethertype.to_bytes(2, "big"))

    def fcs(self):
        return crc32(self.header() + self.payload)

    def encode(self, preamble=True):
        body = self.header() + self.payload
        data = body + crc32(body).to_bytes(ETH_FCS_LEN, "big")
        if preamble:
            data = bytes([ETH_PREAMBLE] * ETH_PREAMBLE_LEN + [ETH_SFD]) + data
        return data

    def padded(self, min_payload=ETH_MIN_PAYLOAD):
        if len(self.payload) >= min_payload:
            return self
        payload = self.payload + bytes(min_payload - len(self.payload))
        return Frame(self.dst_mac, self.src_mac, self.ethertype, payload, mtu=self.mtu)

    def __eq__(self, other):
        if not isinstance(other, Frame):
            return NotImplemented
        return (self.dst_mac, self.src_mac, self.ethertype, self.payload) == \
               (other.dst_mac, other.src_mac, other.ethertype, other.payload)

    def __repr__(self):
        return (f"Frame(dst={format_mac(self.dst_mac)}, src={format_mac(self.src_mac)}, "
                f"ethertype=0x{self.ethertype:04X}, payload={len(self.payload)} bytes)")
