import logging

import requests

from birdrelay.config import Settings
from birdrelay.errors import InputMissing, InvalidPayload, UpstreamError
from birdrelay.media_utils import decode_audio, resize_image_data_url, trim_audio
from birdrelay.normalize import AUDIO, IMAGE, Fallback, NormalizationResult, normalize_result
from birdrelay.openai_audio import transcribe_audio
from birdrelay.prompts import (
    AUDIO_SYSTEM_PROMPT,
    AUDIO_USER_PROMPT_TEMPLATE,
    IMAGE_SYSTEM_PROMPT,
    IMAGE_USER_PROMPT,
)

log = logging.getLogger(__name__)

GATEWAY = "AI API"


def _call_gateway(settings: Settings, messages: list) -> str:
    payload = {
        "model": settings.ai_gateway_model,
        "messages": messages,
    }

    headers = {
        "Authorization": f"Bearer {settings.ai_gateway_api_key}",
        "Content-Type": "application/json",
    }

    r = requests.post(settings.ai_gateway_url, headers=headers, json=payload,
                      timeout=settings.request_timeout)
    if not 200 <= r.status_code < 300:
        log.error("%s error: %s %s", GATEWAY, r.status_code, r.text)
        raise UpstreamError(GATEWAY, r.status_code, r.text)

    try:
        content = r.json()["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise UpstreamError(
            GATEWAY, r.status_code, r.text, f"{GATEWAY} returned an unexpected response"
        ) from e
    if isinstance(content, list):
        # Multi-part content: keep the text parts in order
        content = "".join(p.get("text", "") for p in content if isinstance(p, dict))
    return content or ""


def _normalize(content: str, kind: str) -> NormalizationResult:
    log.debug("Bird identification result: %s", content)
    result = normalize_result(content, kind)
    if isinstance(result, Fallback):
        log.warning("Could not parse %s identification (%s)", kind, result.reason)
    return result


def identify_from_audio(settings: Settings, audio_base64) -> NormalizationResult:
    if not audio_base64:
        raise InputMissing("No audio data provided")
    if not isinstance(audio_base64, str):
        raise InvalidPayload("audioBase64 must be a string")
    settings.require("openai_api_key", "ai_gateway_api_key")

    audio_bytes = decode_audio(audio_base64)
    filename, content_type = "audio.webm", "audio/webm"
    if settings.audio_trim_seconds > 0:
        audio_bytes = trim_audio(audio_bytes, settings.audio_trim_seconds)
        filename, content_type = "audio.wav", "audio/wav"

    # 1) Transcribe: the speech model describes what it hears
    log.info("Transcribing audio (%d bytes)", len(audio_bytes))
    description = transcribe_audio(settings, audio_bytes, filename, content_type)
    log.info("Transcribed audio: %s", description)

    # 2) Ask the language model to identify the species from the description
    content = _call_gateway(settings, [
        {"role": "system", "content": AUDIO_SYSTEM_PROMPT},
        {"role": "user", "content": AUDIO_USER_PROMPT_TEMPLATE.format(description=description)},
    ])
    return _normalize(content, AUDIO)


def identify_from_image(settings: Settings, image_base64) -> NormalizationResult:
    if not image_base64:
        raise InputMissing("No image data provided")
    if not isinstance(image_base64, str):
        raise InvalidPayload("imageBase64 must be a string")
    settings.require("ai_gateway_api_key")

    image_url = image_base64
    if settings.max_image_size > 0:
        image_url = resize_image_data_url(image_url, settings.max_image_size)

    log.info("Identifying bird from image...")
    content = _call_gateway(settings, [
        {"role": "system", "content": IMAGE_SYSTEM_PROMPT},
        {"role": "user", "content": [
            {"type": "text", "text": IMAGE_USER_PROMPT},
            {"type": "image_url", "image_url": {"url": image_url}},
        ]},
    ])
    return _normalize(content, IMAGE)
