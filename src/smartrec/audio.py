"""PCM conversion helpers for captured audio frames (16 kHz mono)."""

import numpy as np

SAMPLE_RATE = 16000


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Convert float32 samples in [-1, 1] to little-endian PCM16 bytes (clipped)."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767).astype("<i2").tobytes()


def pcm16_to_float(pcm16_bytes: bytes) -> np.ndarray:
    return np.frombuffer(pcm16_bytes, dtype="<i2").astype(np.float32) / 32768.0


def as_pcm16(frame: bytes | np.ndarray) -> bytes:
    """Accept either raw PCM16 bytes or a float32 array and return PCM16 bytes."""
    if isinstance(frame, (bytes, bytearray, memoryview)):
        return bytes(frame)
    array = np.asarray(frame)
    if array.dtype == np.int16:
        return array.astype("<i2").tobytes()
    return float_to_pcm16(array)


def frame_duration_sec(pcm16_bytes: bytes, sample_rate: int = SAMPLE_RATE) -> float:
    return len(pcm16_bytes) / 2 / sample_rate
