# tools/iat_probe.py
"""
Connectivity probe for the IAT WebSocket endpoint.

Signs a handshake from the environment (.env is loaded), prints the
signing inputs for byte-by-byte comparison, then sends one silent Start
frame, one silent Continuation frame, and an empty Final frame 40ms apart,
printing every server message until the connection closes.

    python tools/iat_probe.py [--timeout 10]

Exit status: 0 if the server closed cleanly with code 0 messages only,
2 on a server error code, 1 on connection failure.
"""
from __future__ import annotations

import argparse
import asyncio
import base64
import sys

from dotenv import load_dotenv
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from config import IatConfig
from errors import ConfigurationError, MalformedMessage
from protocol.auth import build_authorization, build_connection_url, rfc1123_date, signing_string
from protocol.frames import continuation_frame, final_frame, start_frame
from protocol.results import decode_message
from spec import AUDIO_BYTES_PER_FRAME_PCM, FRAME_INTERVAL_S

SILENCE = b"\x00" * AUDIO_BYTES_PER_FRAME_PCM


def _print_auth(cfg: IatConfig, date: str) -> None:
    auth = build_authorization(cfg.host, cfg.path, cfg.api_key or "", cfg.api_secret or "", date)
    descriptor = base64.b64decode(auth.authorization_header).decode("utf-8")

    print("--- AUTH DEBUG BEGIN ---")
    print("signature_origin>>>")
    print(signing_string(cfg.host, cfg.path, date))
    print("authorization_origin>>>")
    print(descriptor)
    print("authorization_origin_has_newline>>>", "\n" in descriptor)
    print("authorization(base64)>>>")
    print(auth.authorization_header)
    print("date(RFC1123)>>>")
    print(date)
    print("--- AUTH DEBUG END ---")


async def _send_frames(ws: object, cfg: IatConfig) -> None:
    app_id = cfg.app_id or ""
    frames = [
        start_frame(app_id=app_id, parameters=cfg.parameters, pcm_bytes=SILENCE, seq=0),
        continuation_frame(app_id=app_id, seq=1, pcm_bytes=SILENCE),
        final_frame(app_id=app_id, seq=2),
    ]
    for i, frame in enumerate(frames):
        if i:
            await asyncio.sleep(FRAME_INTERVAL_S)
        await ws.send(frame.encode())  # type: ignore[attr-defined]
        print(f"[probe] sent {frame.status.name} seq={frame.seq}")


async def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--timeout", type=float, default=10.0, help="Seconds to wait for the server to close.")
    args = ap.parse_args()

    load_dotenv()
    try:
        cfg = IatConfig.load_from_env()
        cfg.require_credentials()
    except ConfigurationError as e:
        print(f"[probe] {e}", file=sys.stderr)
        return 1

    date = rfc1123_date()
    _print_auth(cfg, date)
    url = build_connection_url(cfg.host, cfg.path, cfg.api_key or "", cfg.api_secret or "", date)
    print("Connecting:", url)

    errors = 0
    try:
        async with connect(url, ping_interval=None) as ws:
            print("[probe] open")
            sender = asyncio.create_task(_send_frames(ws, cfg))
            try:
                async with asyncio.timeout(args.timeout):
                    async for raw in ws:
                        try:
                            msg = decode_message(raw)
                        except MalformedMessage as e:
                            print(f"[probe] undecodable message ({e.reason}): {raw!r}")
                            continue
                        if msg.is_error:
                            errors += 1
                            print(f"[probe] error code={msg.code} message={msg.message!r} sid={msg.sid}",
                                  file=sys.stderr)
                        elif msg.result is not None:
                            print(f"[probe] text: {msg.result.text!r} last={msg.is_terminal}")
                        else:
                            print(f"[probe] message: {raw!r}")
            except TimeoutError:
                print(f"[probe] no close after {args.timeout}s", file=sys.stderr)
            finally:
                sender.cancel()
                await asyncio.gather(sender, return_exceptions=True)
    except ConnectionClosed as e:
        print(f"[probe] closed: {e}")
    except (WebSocketException, OSError) as e:
        print(f"[probe] connection failed: {e!r}", file=sys.stderr)
        return 1

    return 2 if errors else 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
