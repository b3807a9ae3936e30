"""
Voice-note analysis for Ogg/Opus audio.

WhatsApp shows voice notes with a duration and a 64-sample waveform. The
duration is read from the Ogg container; the waveform is a deterministic
placeholder shaped by the duration rather than real amplitude data.
"""
import logging
import math
import random
import struct
import subprocess
from pathlib import Path
from typing import Tuple, Union

from wamirror.core.errors import FormatError

logger = logging.getLogger(__name__)

FFMPEG_BIN = "ffmpeg"

OGG_SIGNATURE = b"OggS"
OPUS_HEAD = b"OpusHead"
PAGE_HEADER_SIZE = 27

DEFAULT_SAMPLE_RATE = 48000
MIN_DURATION = 1
MAX_DURATION = 300
WAVEFORM_SAMPLES = 64

# Fallback when no granule position is present: roughly 2 KB per second at voice bitrates
BYTES_PER_SECOND_ESTIMATE = 2000


def analyze_ogg_opus(data: bytes) -> Tuple[int, bytes]:
    """
    Compute duration and waveform for an Ogg/Opus buffer.

    Parameters
    ----
    data : bytes
        Complete Ogg file contents

    Returns
    ----
    Tuple[int, bytes]
        Duration in whole seconds (clamped to 1..300) and a 64-byte
        waveform with values in 0..100

    Raises
    ---
    FormatError
        If the buffer does not start with the Ogg signature
    """
    if len(data) < 4 or data[:4] != OGG_SIGNATURE:
        raise FormatError("not an Ogg file")

    last_granule = 0
    sample_rate = DEFAULT_SAMPLE_RATE
    pre_skip = 0
    found_head = False

    i = 0
    while i < len(data):
        if i + PAGE_HEADER_SIZE > len(data):
            break
        if data[i:i + 4] != OGG_SIGNATURE:
            i += 1
            continue

        granule = struct.unpack_from("<Q", data, i + 6)[0]
        sequence = struct.unpack_from("<I", data, i + 18)[0]
        segment_count = data[i + 26]
        if i + PAGE_HEADER_SIZE + segment_count > len(data):
            break

        segments = data[i + PAGE_HEADER_SIZE:i + PAGE_HEADER_SIZE + segment_count]
        page_size = PAGE_HEADER_SIZE + segment_count + sum(segments)

        if not found_head and sequence <= 1:
            page = data[i:i + page_size]
            pos = page.find(OPUS_HEAD)
            # magic(8) version(1) channels(1) pre-skip(2) input rate(4)
            if pos >= 0 and pos + 16 <= len(page):
                pre_skip = struct.unpack_from("<H", page, pos + 10)[0]
                sample_rate = struct.unpack_from("<I", page, pos + 12)[0] or DEFAULT_SAMPLE_RATE
                found_head = True

        if granule != 0:
            last_granule = granule
        i += page_size

    if last_granule > 0:
        duration = math.ceil((last_granule - pre_skip) / sample_rate)
    else:
        duration = int(len(data) / BYTES_PER_SECOND_ESTIMATE)

    duration = max(MIN_DURATION, min(MAX_DURATION, duration))
    return duration, placeholder_waveform(duration)


def placeholder_waveform(duration: int) -> bytes:
    """Deterministic waveform seeded by the duration."""
    rng = random.Random(duration)
    base = 35.0
    freq = min(duration, 120) / 30.0

    samples = bytearray(WAVEFORM_SAMPLES)
    for idx in range(WAVEFORM_SAMPLES):
        pos = idx / WAVEFORM_SAMPLES
        val = base * math.sin(pos * math.pi * freq * 8) + (base / 2) * math.sin(pos * math.pi * freq * 16)
        val += (rng.random() - 0.5) * 15
        val = val * (0.7 + 0.3 * math.sin(pos * math.pi)) + 50
        samples[idx] = int(max(0.0, min(100.0, val)))
    return bytes(samples)


def is_ogg(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() == ".ogg"


def convert_to_opus_ogg(path: Union[str, Path]) -> Path:
    """
    Convert an audio file to Ogg/Opus voice-note settings with ffmpeg.

    The output is written next to the input as ``<name>.converted.ogg``;
    the caller removes it when done.

    Raises
    ---
    FormatError
        If the input is missing or ffmpeg fails
    """
    source = Path(path)
    if not source.exists():
        raise FormatError(f"input missing: {source}")

    out = source.with_name(source.name + ".converted.ogg")
    cmd = [
        FFMPEG_BIN,
        "-i", str(source),
        "-c:a", "libopus",
        "-b:a", "32k",
        "-ar", "24000",
        "-application", "voip",
        "-vbr", "on",
        "-compression_level", "10",
        "-frame_duration", "60",
        "-y",
        str(out),
    ]

    logger.debug("Converting %s to Ogg/Opus", source)
    try:
        result = subprocess.run(cmd, capture_output=True)
    except FileNotFoundError as e:
        raise FormatError(f"{FFMPEG_BIN} not found: {e}") from e
    if result.returncode != 0:
        raise FormatError(f"ffmpeg failed with exit code {result.returncode}")
    return out
