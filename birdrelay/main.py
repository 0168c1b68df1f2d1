import logging

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from birdrelay.config import Settings, load_settings
from birdrelay.errors import InvalidPayload, RelayError
from birdrelay.identifications_db import ADDITIONAL_FIELDS, fetch_recent, save_identification
from birdrelay.identify import identify_from_audio, identify_from_image

log = logging.getLogger(__name__)

load_dotenv()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


async def _read_field(request: Request, field: str):
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidPayload("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise InvalidPayload("Request body must be a JSON object")
    return body.get(field)


def _error_response(endpoint: str, exc: Exception) -> JSONResponse:
    if isinstance(exc, RelayError):
        log.error("Error in %s: %s", endpoint, exc)
    else:
        log.exception("Error in %s", endpoint)
    return JSONResponse({"error": str(exc) or "Unknown error"}, status_code=500)


def create_app(settings: Settings = None) -> FastAPI:
    if settings is None:
        settings = load_settings()

    logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")

    app = FastAPI(title="East African Bird ID Relay", version="1.0")
    app.state.settings = settings

    @app.middleware("http")
    async def cors_headers(request: Request, call_next):
        # Pre-flight never reaches the routes, so it works without credentials.
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        try:
            response = await call_next(request)
        except Exception as e:
            response = _error_response(request.url.path, e)
        response.headers.update(CORS_HEADERS)
        return response

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.post("/identify-bird-audio")
    async def identify_bird_audio(request: Request):
        try:
            audio_base64 = await _read_field(request, "audioBase64")
            log.info("Received audio data, length: %s",
                     len(audio_base64) if isinstance(audio_base64, str) else None)
            result = await run_in_threadpool(identify_from_audio, settings, audio_base64)
            return JSONResponse(result.record)
        except Exception as e:
            return _error_response("identify-bird-audio", e)

    @app.post("/identify-bird-image")
    async def identify_bird_image(request: Request):
        try:
            image_base64 = await _read_field(request, "imageBase64")
            result = await run_in_threadpool(identify_from_image, settings, image_base64)
            return JSONResponse(result.record)
        except Exception as e:
            return _error_response("identify-bird-image", e)

    @app.post("/identifications")
    async def store_identification(request: Request):
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Request body must be valid JSON.")
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="Request body must be a JSON object.")

        identification_type = body.get("identificationType")
        record = body.get("result")
        if not isinstance(identification_type, str) or identification_type not in ADDITIONAL_FIELDS:
            raise HTTPException(
                status_code=400,
                detail=f"identificationType must be one of: {', '.join(ADDITIONAL_FIELDS)}.",
            )
        if not isinstance(record, dict) or not isinstance(record.get("birdName"), str):
            raise HTTPException(status_code=400, detail="result must be an identification with a birdName.")

        row_id = await run_in_threadpool(save_identification, settings.db_path, identification_type, record)
        return {"id": row_id}

    @app.get("/identifications/recent")
    def recent_identifications(limit: int = Query(50, ge=1, le=500)):
        return {"identifications": fetch_recent(settings.db_path, limit=limit)}

    return app


app = create_app()
