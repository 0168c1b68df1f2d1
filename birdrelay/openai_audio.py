import logging

from openai import OpenAI, APIStatusError

from birdrelay.config import Settings
from birdrelay.errors import UpstreamError

log = logging.getLogger(__name__)

SERVICE = "Whisper API"


def transcribe_audio(settings: Settings, audio_bytes: bytes,
                     filename: str = "audio.webm", content_type: str = "audio/webm") -> str:
    client = OpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.request_timeout,
        max_retries=0,
    )
    try:
        result = client.audio.transcriptions.create(
            model=settings.transcription_model,
            file=(filename, audio_bytes, content_type),
        )
    except APIStatusError as e:
        log.error("%s error: %s %s", SERVICE, e.status_code, e.response.text)
        raise UpstreamError(SERVICE, e.status_code, e.response.text) from e
    return result.text or ""
