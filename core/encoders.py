"""
SmartWarp — Encoder Sinks
Consume an ordered stream of (frame, delay_ms) pairs and produce file bytes.

    sink.open(width, height, settings)
    sink.add_frame(frame, delay_ms)   # once per exported tick
    data = sink.finish()              # or sink.abort() on failure

GIF goes through Pillow. WebM / MP4 are piped to an FFmpeg subprocess as
raw frames. Sinks with supports_alpha=False receive RGB frames already
flattened onto the settings' matte color.
"""

import shutil
import subprocess
import tempfile
from io import BytesIO
from pathlib import Path

import numpy as np
from PIL import Image

from core.export_models import ExportFormat, ExportSettings

FFMPEG_TIMEOUT_SEC = 300


class EncoderError(Exception):
    """Encoder could not start, accept a frame, or finish."""
    pass


def get_ffmpeg():
    """Find FFmpeg binary."""
    path = shutil.which("ffmpeg")
    if not path:
        raise EncoderError("FFmpeg not found. Install with: brew install ffmpeg")
    return path


class EncoderSink:
    """Base sink. Subclasses implement add_frame and finish."""

    supports_alpha = False

    def __init__(self):
        self.width = 0
        self.height = 0
        self.settings = None
        self.frame_count = 0

    def open(self, width: int, height: int, settings: ExportSettings) -> None:
        self.width = width
        self.height = height
        self.settings = settings
        self.frame_count = 0

    def add_frame(self, frame: np.ndarray, delay_ms: float) -> None:
        raise NotImplementedError

    def finish(self) -> bytes:
        raise NotImplementedError

    def abort(self) -> None:
        """Release resources after a failed export."""
        pass

    def _check_frame(self, frame: np.ndarray) -> None:
        channels = 4 if self.supports_alpha else 3
        expected = (self.height, self.width, channels)
        if frame.shape != expected:
            raise EncoderError(f"Frame shape {frame.shape} does not match {expected}")


class MemorySink(EncoderSink):
    """Keeps frames in memory. finish() returns no bytes.

    Useful for previews, thumbnails, and driving exports from Python code
    that does its own encoding.
    """

    supports_alpha = True

    def __init__(self):
        super().__init__()
        self.frames = []
        self.delays = []

    def open(self, width, height, settings):
        super().open(width, height, settings)
        self.frames = []
        self.delays = []

    def add_frame(self, frame, delay_ms):
        self._check_frame(frame)
        self.frames.append(frame.copy())
        self.delays.append(delay_ms)
        self.frame_count += 1

    def finish(self):
        return b""


class GifEncoder(EncoderSink):
    """Animated GIF via Pillow.

    Transparency is a chroma key: pixels exactly equal to the matte color
    are mapped to one reserved palette index that is marked transparent.
    """

    TRANSPARENT_INDEX = 255

    def __init__(self):
        super().__init__()
        self._frames = []
        self._durations = []

    def open(self, width, height, settings):
        super().open(width, height, settings)
        self._frames = []
        self._durations = []

    def add_frame(self, frame, delay_ms):
        self._check_frame(frame)
        try:
            self._frames.append(self._palettize(frame))
        except (ValueError, OSError) as e:
            raise EncoderError(f"GIF quantization failed at frame {self.frame_count}: {e}") from e
        self._durations.append(int(round(delay_ms)))
        self.frame_count += 1

    def _palettize(self, frame: np.ndarray) -> Image.Image:
        transparent = self.settings.transparent_background
        max_colors = self.settings.gif.max_colors
        if transparent:
            max_colors = min(max_colors, self.TRANSPARENT_INDEX)

        quantized = Image.fromarray(frame).quantize(colors=max_colors)
        if not transparent:
            return quantized

        indices = np.array(quantized, dtype=np.uint8)
        key = np.all(frame == np.array(self.settings.matte_color, dtype=np.uint8), axis=2)
        indices[key] = self.TRANSPARENT_INDEX

        palette = quantized.getpalette()[:max_colors * 3]
        palette += [0] * (self.TRANSPARENT_INDEX * 3 - len(palette))
        palette += list(self.settings.matte_color)

        keyed = Image.frombytes("P", (self.width, self.height), indices.tobytes())
        keyed.putpalette(palette)
        keyed.info["transparency"] = self.TRANSPARENT_INDEX
        return keyed

    def finish(self):
        if not self._frames:
            raise EncoderError("No frames were added to the GIF")
        params = {
            "format": "GIF",
            "save_all": True,
            "append_images": self._frames[1:],
            "duration": self._durations,
            "loop": self.settings.gif.loop_count,
            "optimize": False,
        }
        if self.settings.transparent_background:
            params["transparency"] = self.TRANSPARENT_INDEX
            params["disposal"] = 2
        buf = BytesIO()
        try:
            self._frames[0].save(buf, **params)
        except (ValueError, OSError) as e:
            raise EncoderError(f"GIF encoding failed: {e}") from e
        finally:
            self._frames = []
        return buf.getvalue()

    def abort(self):
        self._frames = []
        self._durations = []


class FfmpegEncoder(EncoderSink):
    """WebM (VP9) or MP4 (H.264) through an FFmpeg rawvideo pipe.

    Frames arrive at a constant rate, so per-frame delays only need to agree
    with the settings' fps.
    """

    def __init__(self, fmt: ExportFormat):
        super().__init__()
        if fmt not in (ExportFormat.WEBM, ExportFormat.MP4):
            raise EncoderError(f"FFmpeg encoder does not handle '{fmt.value}'")
        self.format = fmt
        self.supports_alpha = fmt == ExportFormat.WEBM
        self._proc = None
        self._tmp_dir = None
        self._output_path = None

    def _build_cmd(self) -> list[str]:
        s = self.settings
        input_fmt = "rgba" if self.supports_alpha else "rgb24"
        cmd = [
            get_ffmpeg(), "-y", "-loglevel", "error", "-nostats",
            "-f", "rawvideo", "-vcodec", "rawvideo",
            "-s", f"{self.width}x{self.height}",
            "-pix_fmt", input_fmt,
            "-r", str(s.fps),
            "-i", "-",
        ]
        if self.format == ExportFormat.WEBM:
            pix_fmt = "yuva420p" if s.transparent_background else "yuv420p"
            cmd += [
                "-c:v", "libvpx-vp9", "-crf", str(s.webm.crf), "-b:v", "0",
                "-speed", str(s.webm.speed),
                "-pix_fmt", pix_fmt,
            ]
            if s.transparent_background:
                cmd += ["-auto-alt-ref", "0"]
        else:
            # yuv420p needs even dimensions
            cmd += [
                "-vf", "pad=ceil(iw/2)*2:ceil(ih/2)*2",
                "-c:v", "libx264", "-crf", str(s.h264.crf),
                "-preset", s.h264.preset.value,
                "-pix_fmt", "yuv420p",
                "-movflags", "+faststart",
            ]
        cmd.append(str(self._output_path))
        return cmd

    def open(self, width, height, settings):
        super().open(width, height, settings)
        self._tmp_dir = tempfile.mkdtemp(prefix="smartwarp_")
        self._output_path = Path(self._tmp_dir) / f"out{settings.get_output_extension()}"
        cmd = self._build_cmd()
        try:
            self._proc = subprocess.Popen(
                cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE,
            )
        except OSError as e:
            self._cleanup()
            raise EncoderError(f"Could not start FFmpeg: {e}") from e

    def add_frame(self, frame, delay_ms):
        self._check_frame(frame)
        if self._proc is None:
            raise EncoderError("Encoder is not open")
        try:
            self._proc.stdin.write(np.ascontiguousarray(frame).tobytes())
        except (BrokenPipeError, OSError) as e:
            raise EncoderError(f"FFmpeg stopped accepting frames: {self._stderr_tail()}") from e
        self.frame_count += 1

    def finish(self):
        if self._proc is None:
            raise EncoderError("Encoder is not open")
        try:
            self._proc.stdin.close()
            self._proc.wait(timeout=FFMPEG_TIMEOUT_SEC)
            if self._proc.returncode != 0:
                raise EncoderError(
                    f"FFmpeg exited with code {self._proc.returncode}: {self._stderr_tail()}"
                )
            if not self._output_path.exists():
                raise EncoderError(f"FFmpeg produced no output: {self._output_path}")
            return self._output_path.read_bytes()
        except subprocess.TimeoutExpired as e:
            self._proc.kill()
            raise EncoderError(f"FFmpeg did not finish within {FFMPEG_TIMEOUT_SEC}s") from e
        finally:
            self._proc = None
            self._cleanup()

    def abort(self):
        if self._proc is not None:
            self._proc.kill()
            self._proc.wait()
            self._proc = None
        self._cleanup()

    def _stderr_tail(self) -> str:
        if self._proc is None or self._proc.stderr is None:
            return ""
        try:
            err = self._proc.stderr.read() or b""
        except (OSError, ValueError):
            return ""
        return err.decode("utf-8", errors="replace")[-500:]

    def _cleanup(self):
        if self._tmp_dir:
            shutil.rmtree(self._tmp_dir, ignore_errors=True)
            self._tmp_dir = None


def make_encoder(settings: ExportSettings) -> EncoderSink:
    """Pick the sink for an export format."""
    if settings.format == ExportFormat.GIF:
        return GifEncoder()
    return FfmpegEncoder(settings.format)
