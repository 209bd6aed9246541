import json

from fastapi import FastAPI, Request, Header, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from shirokuma.agents.schemas import FormIntakeRequest, FormIntakeResponse
from shirokuma.config import get_settings
from shirokuma.line_bot import (
    FormValidationError,
    get_dispatcher,
    handle_webhook_events,
    initialize_bot,
    shutdown_bot,
    verify_signature,
)
from shirokuma.logging_config import bot_logger as logger
from shirokuma.utils.masking import register_secret

VERSION = "0.1.0"

app = FastAPI(
    title="Shirokuma Diagnosis API",
    description="MBTI x birth date diagnosis bot for LINE",
    version=VERSION
)


# Lifecycle events
@app.on_event("startup")
async def startup_event():
    """Load settings and assets, build the bot. Any failure aborts startup."""
    settings = get_settings()
    for secret in (
        settings.channel_access_token,
        settings.channel_secret,
        settings.openai_api_key,
        settings.supabase_service_role_key,
    ):
        register_secret(secret)

    logger.info("[STARTUP] Initializing LINE bot...")
    await initialize_bot()
    logger.info("[STARTUP] Bot ready")


@app.on_event("shutdown")
async def shutdown_event():
    """Drain background jobs and close clients."""
    logger.info("[SHUTDOWN] Shutting down LINE bot...")
    await shutdown_bot()
    logger.info("[SHUTDOWN] Bot stopped")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    settings = get_settings()
    return {
        "status": "ok",
        "environment": settings.environment,
        "version": VERSION
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Shirokuma Diagnosis API",
        "status": "running"
    }


# LINE webhook endpoint
@app.post("/webhook", response_class=PlainTextResponse)
async def line_webhook(
    request: Request,
    x_line_signature: str = Header(None)
):
    """
    Webhook endpoint for LINE events.

    Replies (acknowledgments) are sent before this returns; diagnosis
    work continues in the background. Always answers 200 "OK" once the
    signature is valid.
    """
    settings = get_settings()
    body = await request.body()

    if not verify_signature(body, x_line_signature, settings.channel_secret):
        raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    await handle_webhook_events(payload.get("events") or [])

    return "OK"


# Form intake endpoint
@app.post("/webhook/form", response_model=FormIntakeResponse)
async def form_webhook(request: Request):
    """
    Form submission: { line_user_id, birthdate: "YYYY-MM-DD", mbti, form_id }.

    Runs the full pipeline and pushes the report link to the user.
    """
    try:
        form = FormIntakeRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid form payload: {e}")

    dispatcher = get_dispatcher()
    try:
        url = await dispatcher.handle_form(form)
    except FormValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Form processing failed for form_id={form.form_id}: {e}")
        raise HTTPException(status_code=500, detail="Diagnosis failed")

    return FormIntakeResponse(url=url)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
