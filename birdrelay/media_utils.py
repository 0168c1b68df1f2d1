import os
import io
import re
import base64
import binascii
import tempfile

import ffmpeg
from PIL import Image, UnidentifiedImageError

from birdrelay.errors import InvalidPayload

DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=.+-]+)*;base64,(?P<data>.*)$", re.DOTALL)


def _b64decode(value: str) -> bytes:
    return base64.b64decode("".join(value.split()))


def decode_audio(audio_base64: str) -> bytes:
    # Clients normally strip the data-URL prefix, but accept it anyway.
    if audio_base64.startswith("data:"):
        audio_base64 = audio_base64.split(",", 1)[-1]
    try:
        audio_bytes = _b64decode(audio_base64)
    except (binascii.Error, ValueError) as e:
        raise InvalidPayload("Audio data is not valid base64") from e
    if not audio_bytes:
        raise InvalidPayload("Audio data is empty")
    return audio_bytes


def resize_image_data_url(data_url: str, max_size: int) -> str:
    """Shrink a base64 image data URL to fit max_size x max_size, re-encoded as PNG.

    Anything that is not a base64 data URL (e.g. an https link) is returned unchanged.
    """
    m = DATA_URL_RE.match(data_url)
    if not m:
        return data_url

    try:
        img = Image.open(io.BytesIO(_b64decode(m.group("data"))))
        img = img.convert("RGB")
    except (binascii.Error, ValueError, UnidentifiedImageError, OSError) as e:
        raise InvalidPayload("Image data could not be decoded") from e

    img.thumbnail((max_size, max_size))

    out = io.BytesIO()
    img.save(out, format="PNG", optimize=True)
    b64 = base64.b64encode(out.getvalue()).decode("utf-8")
    return f"data:image/png;base64,{b64}"


def trim_audio(audio_bytes: bytes, seconds: int) -> bytes:
    with tempfile.TemporaryDirectory() as tmpdir:
        in_path = os.path.join(tmpdir, "in_audio")
        out_path = os.path.join(tmpdir, "out.wav")

        with open(in_path, "wb") as f:
            f.write(audio_bytes)

        try:
            (
                ffmpeg
                .input(in_path)
                .output(out_path, t=seconds, ac=1, ar=22050)
                .overwrite_output()
                .run(quiet=True)
            )
        except ffmpeg.Error as e:
            stderr = (e.stderr or b"").decode("utf-8", errors="ignore")
            raise InvalidPayload(f"Audio could not be decoded: {stderr.strip()[-200:]}") from e

        with open(out_path, "rb") as f:
            return f.read()
