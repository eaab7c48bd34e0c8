"""
Frame Decoder
==============

Detects an optional snappy framing envelope on a raw broker payload.

Producers may wrap the serialized OTLP batch in the snappy framing
format. The stream identifier chunk starts with the 4-byte prefix
``ff 06 00 00``; anything else is treated as an uncompressed payload.

``decode_frame`` is pure and never raises: a payload that carries the
prefix but fails to decompress comes back unchanged with status
FALLBACK and a reason, so the record decoder can reject it explicitly.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from enum import StrEnum

import snappy

SNAPPY_FRAME_MAGIC = b"\xff\x06\x00\x00"

class FrameStatus(StrEnum):
    DECOMPRESSED = "decompressed"
    RAW = "raw"
    FALLBACK = "fallback"

@dataclass(frozen=True, slots=True)
class FrameResult:
    """Outcome of frame detection; ``payload`` is always usable bytes."""

    status: FrameStatus
    payload: bytes
    reason: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.status is FrameStatus.FALLBACK

def is_snappy_framed(payload: bytes) -> bool:
    return len(payload) > len(SNAPPY_FRAME_MAGIC) and payload.startswith(SNAPPY_FRAME_MAGIC)

def decode_frame(payload: bytes) -> FrameResult:
    """Decompress a snappy-framed payload, or hand back the input bytes."""
    payload = bytes(payload)
    if not is_snappy_framed(payload):
        return FrameResult(status=FrameStatus.RAW, payload=payload)

    out = io.BytesIO()
    try:
        snappy.stream_decompress(io.BytesIO(payload), out)
    except Exception as exc:  # noqa: BLE001 - error types differ across snappy backends
        return FrameResult(
            status=FrameStatus.FALLBACK,
            payload=payload,
            reason=f"{type(exc).__name__}: {exc}",
        )
    return FrameResult(status=FrameStatus.DECOMPRESSED, payload=out.getvalue())

def encode_frame(payload: bytes) -> bytes:
    """Wrap bytes in the snappy framing format (used by producers and tests)."""
    out = io.BytesIO()
    snappy.stream_compress(io.BytesIO(payload), out)
    return out.getvalue()
