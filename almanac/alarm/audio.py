"""PCM playback through a local command-line player."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
from asyncio.subprocess import Process

PLAYER_CANDIDATES = ("pw-play", "paplay", "aplay")


class PcmSink:
    """Play raw PCM audio via ``pw-play``/``paplay``/``aplay``."""

    def __init__(self, binary: str | None = None, logger: logging.Logger | None = None) -> None:
        self.binary = binary or "auto"
        self._proc: Process | None = None
        self._logger = logger or logging.getLogger(__name__)

    @property
    def active(self) -> bool:
        return self._proc is not None

    async def start(self, rate: int, width: int, channels: int) -> None:
        await self.stop()
        player = determine_player(self.binary, self._logger)
        try:
            cmd = build_command(player, rate, width, channels)
        except ValueError as exc:
            self._logger.warning("Player %s cannot handle width=%s (%s); falling back to aplay", player, width, exc)
            player = "aplay"
            cmd = build_command(player, rate, width, channels)
        self._logger.debug("Starting playback (%s): %s", player, " ".join(cmd))
        self._proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )

    async def write(self, chunk: bytes) -> None:
        if not self._proc or not self._proc.stdin:
            raise RuntimeError("Playback is not active")
        try:
            self._proc.stdin.write(chunk)
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            stderr = await self._drain_stderr()
            await self.stop()
            detail = f" ({stderr})" if stderr else ""
            raise RuntimeError(f"Playback process exited unexpectedly{detail}") from exc

    async def stop(self) -> None:
        """Close stdin and let the player finish what it has buffered."""
        if not self._proc:
            return
        self._logger.debug("Stopping playback")
        if self._proc.stdin:
            self._proc.stdin.close()
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                await self._proc.stdin.wait_closed()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._proc.wait(), timeout=2)
        self._proc = None

    async def abort(self) -> None:
        """Terminate the player immediately, discarding buffered audio."""
        proc = self._proc
        if not proc:
            return
        self._proc = None
        self._logger.debug("Aborting playback")
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=2)

    async def _drain_stderr(self) -> str:
        if not self._proc or not self._proc.stderr:
            return ""
        try:
            data = await asyncio.wait_for(self._proc.stderr.read(), timeout=0.05)
        except (TimeoutError, RuntimeError):
            return ""
        return data.decode("utf-8", errors="ignore").strip()


def _supported_player(binary: str) -> bool:
    if os.path.isabs(binary):
        return os.access(binary, os.X_OK)
    return shutil.which(binary) is not None


def _alsa_format(width: int) -> str:
    return {1: "U8", 2: "S16_LE", 3: "S24_LE", 4: "S32_LE"}.get(width, "S16_LE")


def _pw_format(width: int) -> str | None:
    return {1: "s8", 2: "s16", 4: "s32"}.get(width)


def _paplay_format(width: int) -> str:
    return {1: "s8", 2: "s16le", 3: "s24le", 4: "s32le"}.get(width, "s16le")


def build_command(player: str, rate: int, width: int, channels: int) -> list[str]:
    name = os.path.basename(player)
    if name == "pw-play":
        fmt = _pw_format(width)
        if not fmt:
            raise ValueError(f"pw-play has no format for width={width}")
        return [player, "--raw", "--rate", str(rate), "--channels", str(channels), "--format", fmt, "-"]
    if name == "paplay":
        return [player, "--raw", "--rate", str(rate), "--channels", str(channels), f"--format={_paplay_format(width)}", "-"]
    return ["aplay", "-q", "-t", "raw", "-f", _alsa_format(width), "-c", str(channels), "-r", str(rate), "-"]


def determine_player(preferred: str, logger: logging.Logger) -> str:
    if preferred != "auto":
        if _supported_player(preferred):
            return preferred
        logger.warning("Requested audio player '%s' not found; falling back to auto-detection", preferred)
    for candidate in PLAYER_CANDIDATES:
        if _supported_player(candidate):
            return candidate
    return "aplay"
