"""
Stream a WAV file to the recording WebSocket and print what comes back.

    python -m smartrec.scripts.stream_client lecture.wav --bilingual
"""

import argparse
import asyncio
import contextlib
import json
import wave

import numpy as np
import websockets

from smartrec.audio import SAMPLE_RATE, as_pcm16, frame_duration_sec, pcm16_to_float


def read_wav(path: str) -> np.ndarray:
    """Read a 16 kHz WAV file as mono float32 samples."""
    with wave.open(path, "rb") as wav:
        if wav.getframerate() != SAMPLE_RATE:
            raise ValueError(f"Expected {SAMPLE_RATE}Hz audio, got {wav.getframerate()}Hz")
        if wav.getsampwidth() != 2:
            raise ValueError("Expected 16-bit PCM audio")
        channels = wav.getnchannels()
        raw = wav.readframes(wav.getnframes())

    samples = pcm16_to_float(raw)
    if channels > 1:
        samples = samples.reshape(-1, channels).mean(axis=1)
    return samples


async def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("wav", help="16 kHz PCM16 WAV file")
    parser.add_argument("--uri", default="ws://localhost:8000/ws")
    parser.add_argument("--frame-ms", type=int, default=100)
    parser.add_argument("--bilingual", action="store_true")
    parser.add_argument("--wait", type=float, default=15.0, help="Seconds to wait for enrichment after stop")
    args = parser.parse_args()

    samples = read_wav(args.wav)
    samples_per_frame = int(SAMPLE_RATE * args.frame_ms / 1000)
    total_frames = (len(samples) + samples_per_frame - 1) // samples_per_frame

    print(f"Connecting to {args.uri}")
    print(f"Streaming {frame_duration_sec(as_pcm16(samples)):.1f}s of audio in {args.frame_ms}ms frames")
    print()

    messages_received = []
    seen_segment_ids = set()

    async with websockets.connect(args.uri) as ws:
        await ws.send(json.dumps({"type": "start", "bilingual": args.bilingual}))

        async def receive_messages():
            try:
                async for message in ws:
                    data = json.loads(message)
                    messages_received.append(data)

                    if data.get("type") == "segments":
                        for seg in data.get("segments", []):
                            text = seg["text"][:60] + "..." if len(seg["text"]) > 60 else seg["text"]
                            marker = "NEW" if seg["id"] not in seen_segment_ids else "UPD"
                            print(f"  [{seg['start_time']:>4}s-{seg['end_time']:>4}s] {marker}: '{text}'")
                            if seg.get("translated_text"):
                                print(f"      -> '{seg['translated_text'][:60]}'")
                            seen_segment_ids.add(seg["id"])
                    elif data.get("type") == "partial":
                        if data["text"]:
                            print(f"  ... {data['text'][-60:]}")
                    else:
                        print(f"Received: {data}")

            except websockets.exceptions.ConnectionClosed:
                pass

        receiver = asyncio.create_task(receive_messages())

        for i in range(total_frames):
            frame = samples[i * samples_per_frame : (i + 1) * samples_per_frame]
            await ws.send(as_pcm16(frame))
            await asyncio.sleep(args.frame_ms / 1000)

            if (i + 1) % 50 == 0:
                print(f"--- Sent {(i + 1) * args.frame_ms / 1000:.1f}s of audio ---")

        print("\nFinished streaming, stopping recording...")
        await ws.send(json.dumps({"type": "stop"}))
        await asyncio.sleep(args.wait)

        receiver.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await receiver

    print(f"\nTotal messages received: {len(messages_received)}")
    print(f"Unique segments seen: {len(seen_segment_ids)}")


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
