"""
HTTP API — auth, patients, voice upload and request/response chat.

Endpoints:
    POST /api/auth/signup        → create account, returns {token, user}
    POST /api/auth/login         → returns {token, user}
    GET  /api/patients/{id}      → patient record
    POST /api/patients           → create patient record
    POST /api/voice              → multipart `audio` upload, returns {text}
    POST /api/chat               → one chat turn, returns the reply
    GET  /api/conversations      → caller's recent persisted turns
    GET  /health                 → liveness + provider status

All error bodies are {"error": message}.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from medichat.api.channels import get_user_id, inbound_from_payload
from medichat.errors import AuthError, ValidationError
from medichat.services import Services

logger = logging.getLogger(__name__)


class Credentials(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError("email must be a valid address")
        return value


class PatientCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    date_of_birth: str | None = None
    gender: str | None = None
    phone: str | None = None
    email: str | None = None
    medical_history: str | None = None
    allergies: str | None = None
    medications: str | None = None
    notes: str | None = None


def _services(request: Request) -> Services:
    return request.app.state.services


def create_api_router() -> APIRouter:
    router = APIRouter()

    # ─── Auth ─────────────────────────────────────────────────

    @router.post("/api/auth/signup")
    async def signup(body: Credentials, request: Request) -> JSONResponse:
        services = _services(request)
        identity = await services.identity.sign_up(body.email, body.password)
        user = await services.db.create_user(body.email, identity.identity_id)
        token = services.tokens.issue(user.id)
        logger.info("User signed up", extra={"user_id": user.id})
        return JSONResponse({"token": token, "user": user.to_dict()}, status_code=201)

    @router.post("/api/auth/login")
    async def login(body: Credentials, request: Request) -> JSONResponse:
        services = _services(request)
        try:
            identity = await services.identity.authenticate(body.email, body.password)
            user = await services.db.get_user_by_identity(identity.identity_id)
            if user is None:
                user = await services.db.get_user_by_email(body.email)
            if user is None:
                raise AuthError(detail="no local user for identity")
        except AuthError as e:
            logger.info("Login failed for %s: %s", body.email, e.detail or e.message)
            return JSONResponse({"error": "Authentication failed"}, status_code=401)

        token = services.tokens.issue(user.id)
        return JSONResponse({"token": token, "user": user.to_dict()})

    # ─── Patients ─────────────────────────────────────────────

    @router.get("/api/patients/{patient_id}")
    async def get_patient(
        patient_id: int, request: Request, user_id: str = Depends(get_user_id)
    ) -> JSONResponse:
        patient = await _services(request).db.get_patient(patient_id)
        if patient is None:
            return JSONResponse({"error": "Patient not found"}, status_code=404)
        return JSONResponse(patient.to_dict())

    @router.post("/api/patients")
    async def create_patient(
        body: PatientCreate, request: Request, user_id: str = Depends(get_user_id)
    ) -> JSONResponse:
        patient = await _services(request).db.create_patient(user_id, body.model_dump())
        return JSONResponse(
            {"success": True, "patient": patient.to_dict()}, status_code=201
        )

    # ─── Voice ────────────────────────────────────────────────

    @router.post("/api/voice")
    async def voice_to_text(
        request: Request,
        audio: UploadFile | None = File(default=None),
        user_id: str = Depends(get_user_id),
    ) -> JSONResponse:
        services = _services(request)
        if audio is None:
            return JSONResponse({"error": "No audio file provided"}, status_code=400)

        max_bytes = services.chatbot.transcriber.max_bytes
        data = await audio.read(max_bytes + 1)
        if len(data) > max_bytes:
            return JSONResponse({"error": "Audio file too large"}, status_code=413)
        if not data:
            return JSONResponse({"error": "No audio file provided"}, status_code=400)

        text = await services.chatbot.transcribe(data)
        return JSONResponse({"text": text})

    # ─── Chat ─────────────────────────────────────────────────

    @router.post("/api/chat")
    async def chat(request: Request, user_id: str = Depends(get_user_id)) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:  # JSONDecodeError or UnicodeDecodeError
            raise ValidationError("Message must be valid JSON")

        inbound = inbound_from_payload(user_id, payload)
        reply = await _services(request).chatbot.handle(inbound)
        return JSONResponse(reply.to_dict(), status_code=reply.status_code)

    @router.get("/api/conversations")
    async def conversations(
        request: Request,
        limit: int = Query(default=20, ge=1, le=100),
        user_id: str = Depends(get_user_id),
    ) -> JSONResponse:
        turns = await _services(request).db.list_turns(user_id, limit=limit)
        return JSONResponse({"conversations": [t.to_dict() for t in turns]})

    # ─── Health ───────────────────────────────────────────────

    @router.get("/health")
    async def health(request: Request) -> JSONResponse:
        services = _services(request)
        db_ok = await services.db.ping()
        return JSONResponse(
            {
                "status": "ok" if db_ok else "degraded",
                "db": "connected" if db_ok else "unavailable",
                "stt": await services.stt.health_check(),
                "llm": await services.llm.health_check(),
                "sessions": len(services.sessions),
            }
        )

    return router
