# AI Interview Simulator - HTTP/WebSocket surface

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterator, List, Optional

import websockets
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlmodel import Session, select

from ats import ATSScorer, list_scores
from auth import decode_user_id, ensure_same_user, get_current_user_id
from config import Settings, get_settings
from db import get_session, init_db
from errors import AppError, ConfigurationMissing, InputInvalid, NotFound, Unauthorized
from models import (
    Evaluation,
    ImprovementSuggestion,
    Interview,
    InterviewDuration,
    InterviewMode,
    InterviewStatus,
    InvalidTransition,
    Resume,
)
from services.aptitude import AptitudeQuestionGenerator
from services.avatar_proxy import DidStreamProxy
from services.avatar_relay import AvatarRelay, connect_upstream
from services.evaluator import InterviewEvaluator, parse_feedback_sections
from services.llm_gateway import LLMGateway
from services.question_pool import QuestionPoolBuilder
from services.resume_extractor import ResumeTextExtractor
from services.resume_structurer import ResumeStructurer
from services.university import UniversityService
from services.voice_agent import VapiClient, VoiceInterviewService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# ---------- FastAPI & CORS ----------
app = FastAPI(title="AI Interview Simulator", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error mapping ----------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, Unauthorized):
        logger.warning("Unauthorized request to %s: %s", request.url.path, exc.reason)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = f"Missing required fields: {', '.join(fields)}" if fields else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


# ---------- Dependencies ----------
# Outbound clients live for one request and release their pools afterwards
def get_gateway(settings: Settings = Depends(get_settings)) -> Iterator[LLMGateway]:
    gateway = LLMGateway.from_settings(settings)
    try:
        yield gateway
    finally:
        gateway.close()


def get_vapi_client(settings: Settings = Depends(get_settings)) -> Iterator[Optional[VapiClient]]:
    if not settings.vapi_api_key:
        yield None
        return
    client = VapiClient(settings.vapi_api_key, settings.vapi_base_url)
    try:
        yield client
    finally:
        client.close()


def get_did_proxy(settings: Settings = Depends(get_settings)) -> Iterator[DidStreamProxy]:
    if not settings.did_api_key:
        raise ConfigurationMissing(
            "DID_API_KEY",
            "Please add DID_API_KEY to your environment variables. Get it from https://studio.d-id.com",
        )
    proxy = DidStreamProxy(settings.did_api_key, settings.did_api_url, settings.did_default_avatar_url)
    try:
        yield proxy
    finally:
        proxy.close()


def get_question_builder() -> QuestionPoolBuilder:
    return QuestionPoolBuilder()


def get_avatar_connector():
    return connect_upstream


def _owned_interview(session: Session, interview_id: str, user_id: str) -> Interview:
    interview = session.get(Interview, interview_id)
    if interview is None or interview.user_id != user_id:
        raise NotFound("Interview not found")
    return interview


def evaluation_payload(evaluation: Evaluation) -> Dict[str, Any]:
    data = evaluation.model_dump(mode="json")
    data["feedbackSections"] = evaluation.feedback_sections or parse_feedback_sections(evaluation.feedback)
    return data


# ---------- Parse Resume ----------
class ParseResumeReq(BaseModel):
    resumeId: str
    userId: str
    resumeText: Optional[str] = None
    fileBase64: Optional[str] = None
    mimeType: Optional[str] = None
    fileName: Optional[str] = None


def _parse_and_store(
    session: Session,
    gateway: LLMGateway,
    resume_id: str,
    user_id: str,
    **document: Any,
) -> Dict[str, Any]:
    extraction = ResumeTextExtractor(gateway).extract(**document)
    structurer = ResumeStructurer(gateway)
    parsed = structurer.parse(extraction.text)
    structurer.save(session, resume_id, user_id, parsed)
    return {"success": True, "highlights": parsed, "ocrUsed": extraction.ocr_used}


@app.post("/api/parse-resume")
def parse_resume(
    req: ParseResumeReq,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    gateway: LLMGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    ensure_same_user(user_id, req.userId)
    logger.info("REQ /api/parse-resume: resume %s", req.resumeId)
    try:
        return _parse_and_store(
            session, gateway, req.resumeId, user_id,
            text=req.resumeText,
            file_base64=req.fileBase64,
            mime_type=req.mimeType,
            filename=req.fileName,
        )
    except AppError:
        raise
    except Exception as e:
        logger.exception("parse-resume failed")
        raise AppError(f"Failed to parse resume: {e}")


@app.post("/api/parse-resume/upload")
async def parse_resume_upload(
    resumeId: str = Form(...),
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    gateway: LLMGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    try:
        data = await file.read()
        if not data:
            raise InputInvalid("Empty file")
        return _parse_and_store(
            session, gateway, resumeId, user_id,
            file_bytes=data,
            mime_type=file.content_type,
            filename=file.filename,
        )
    except AppError:
        raise
    except Exception as e:
        logger.exception("parse-resume upload failed")
        raise AppError(f"Failed to parse resume: {e}")


# ---------- ATS Score ----------
class ATSScoreReq(BaseModel):
    resumeId: str
    userId: str
    resumeText: Optional[str] = None
    jobRole: Optional[str] = None
    fileBase64: Optional[str] = None
    mimeType: Optional[str] = None


@app.post("/api/ats-score")
def ats_score(
    req: ATSScoreReq,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    gateway: LLMGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    ensure_same_user(user_id, req.userId)
    try:
        scorer = ATSScorer(gateway, model=settings.ats_model)
        extraction = scorer.resume_text(req.resumeText, file_base64=req.fileBase64, mime_type=req.mimeType)
        analysis = scorer.analyze(extraction.text, req.jobRole)
        score = scorer.save(session, req.resumeId, user_id, req.jobRole, analysis)
        return {
            "success": True,
            "atsScore": score.model_dump(mode="json"),
            "recommendedKeywords": analysis.get("recommended_keywords") or [],
            "ocrUsed": extraction.ocr_used,
        }
    except AppError:
        raise
    except Exception as e:
        logger.exception("ats-score failed")
        raise AppError(f"ATS analysis failed: {e}")


@app.get("/api/ats-score/{resume_id}")
def get_ats_scores(
    resume_id: str,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    return {"scores": [s.model_dump(mode="json") for s in list_scores(session, resume_id, user_id)]}


# ---------- Interviews ----------
class CreateInterviewReq(BaseModel):
    duration: InterviewDuration = InterviewDuration.THREE_MINUTES
    mode: InterviewMode = InterviewMode.RESUME_JD
    resumeId: Optional[str] = None


class InterviewStatusReq(BaseModel):
    status: InterviewStatus


@app.post("/api/interviews")
def create_interview(
    req: CreateInterviewReq,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    if req.resumeId:
        resume = session.get(Resume, req.resumeId)
        if resume is None or resume.user_id != user_id:
            raise NotFound("Resume not found")

    interview = Interview(
        user_id=user_id,
        resume_id=req.resumeId,
        duration=req.duration.value,
        mode=req.mode.value,
    )
    session.add(interview)
    session.commit()
    session.refresh(interview)
    logger.info("Interview %s scheduled (%s, %s min)", interview.id, interview.mode, interview.duration)
    return {"success": True, "interview": interview.model_dump(mode="json")}


@app.post("/api/interviews/{interview_id}/status")
def update_interview_status(
    interview_id: str,
    req: InterviewStatusReq,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    interview = _owned_interview(session, interview_id, user_id)
    try:
        interview.transition(req.status)
    except InvalidTransition as e:
        raise InputInvalid(str(e))
    session.add(interview)
    session.commit()
    session.refresh(interview)
    return {"success": True, "interview": interview.model_dump(mode="json")}


@app.get("/api/interviews")
def list_interviews(
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    rows = session.exec(
        select(Interview, Evaluation)
        .join(Evaluation, Evaluation.interview_id == Interview.id, isouter=True)
        .where(Interview.user_id == user_id)
        .order_by(Interview.created_at.desc())
    ).all()

    interviews = []
    for interview, evaluation in rows:
        item = interview.model_dump(mode="json")
        item["overallScore"] = evaluation.overall_score if evaluation else None
        interviews.append(item)
    return {"interviews": interviews}


# ---------- Voice Interview (VAPI) ----------
class VapiInterviewReq(BaseModel):
    action: str
    interviewId: Optional[str] = None
    sessionId: Optional[str] = None
    vapiCallId: Optional[str] = None
    resumeHighlights: Optional[Dict[str, Any]] = None


@app.post("/api/vapi-interview")
def vapi_interview(
    req: VapiInterviewReq,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    vapi: Optional[VapiClient] = Depends(get_vapi_client),
    builder: QuestionPoolBuilder = Depends(get_question_builder),
) -> Dict[str, Any]:
    try:
        service = VoiceInterviewService(
            session,
            vapi,
            assistant_id=settings.vapi_assistant_id,
            system_prompt=settings.vapi_system_prompt,
            first_message=settings.vapi_first_message,
            pool_builder=builder,
        )
        return service.handle(req.action, user_id, req.model_dump())
    except AppError:
        raise
    except Exception as e:
        logger.exception("vapi-interview failed")
        raise AppError(str(e) or "VAPI interview failed")


# ---------- Evaluate Interview ----------
class EvaluateInterviewReq(BaseModel):
    interviewId: str
    userId: str
    transcript: Optional[str] = None
    candidateProfile: Optional[Dict[str, Any]] = None


@app.post("/api/evaluate-interview")
def evaluate_interview(
    req: EvaluateInterviewReq,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    gateway: LLMGateway = Depends(get_gateway),
    vapi: Optional[VapiClient] = Depends(get_vapi_client),
) -> Dict[str, Any]:
    ensure_same_user(user_id, req.userId)
    try:
        evaluator = InterviewEvaluator(gateway, vapi)
        evaluation, suggestions = evaluator.evaluate(
            session,
            req.interviewId,
            user_id,
            transcript=req.transcript,
            candidate_profile=req.candidateProfile,
        )
        return {
            "success": True,
            "evaluation": evaluation_payload(evaluation),
            "suggestions": [s.model_dump(mode="json") for s in suggestions],
        }
    except AppError:
        raise
    except Exception as e:
        logger.exception("evaluate-interview failed")
        raise AppError(str(e) or "Evaluation failed")


@app.get("/api/interviews/{interview_id}/evaluation")
def get_evaluation(
    interview_id: str,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    _owned_interview(session, interview_id, user_id)
    evaluation = session.exec(select(Evaluation).where(Evaluation.interview_id == interview_id)).first()
    if evaluation is None:
        raise NotFound("Evaluation not found")

    suggestions = session.exec(
        select(ImprovementSuggestion)
        .where(ImprovementSuggestion.evaluation_id == evaluation.id)
        .order_by(ImprovementSuggestion.priority)
    ).all()
    return {
        "evaluation": evaluation_payload(evaluation),
        "suggestions": [s.model_dump(mode="json") for s in suggestions],
    }


# ---------- Talking Avatar (D-ID) ----------
class DidStreamReq(BaseModel):
    action: str
    streamId: Optional[str] = None
    sessionId: Optional[str] = None
    sdpAnswer: Optional[Any] = None
    iceCandidate: Optional[Dict[str, Any]] = None
    text: Optional[str] = None
    audio: Optional[str] = None
    avatarUrl: Optional[str] = None


@app.post("/api/did-stream")
def did_stream(
    req: DidStreamReq,
    user_id: str = Depends(get_current_user_id),
    proxy: DidStreamProxy = Depends(get_did_proxy),
) -> Dict[str, Any]:
    try:
        return proxy.handle(req.action, req.model_dump())
    except AppError:
        raise
    except Exception as e:
        logger.exception("did-stream failed")
        raise AppError(str(e) or "D-ID stream error")


@app.websocket("/ws/did-stream")
async def did_stream_socket(
    websocket: WebSocket,
    token: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    connect=Depends(get_avatar_connector),
):
    # Browsers can't set headers on sockets, so the bearer token comes as ?token=
    try:
        decode_user_id(token or "", settings)
    except Unauthorized as e:
        logger.warning("Avatar socket rejected: %s", e.reason)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if not settings.did_api_key:
        logger.error("DID_API_KEY not configured")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await websocket.accept()
    try:
        upstream = await connect(settings.did_ws_url, settings.did_api_key)
    except (OSError, websockets.WebSocketException) as e:
        logger.error("Could not reach avatar socket: %s", e)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await AvatarRelay(websocket, upstream).run()


# ---------- University Administration ----------
class RegisterUniversityReq(BaseModel):
    email: str
    fullName: str
    universityName: str


class RedeemCodeReq(BaseModel):
    code: str
    email: Optional[str] = None
    fullName: Optional[str] = None


@app.post("/api/admin/university")
def register_university(
    req: RegisterUniversityReq,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    university = UniversityService(session).register(user_id, req.email, req.fullName, req.universityName)
    return {
        "success": True,
        "message": "Admin account created successfully",
        "universityCode": university.code,
        "universityName": university.university_name,
    }


@app.post("/api/university-codes/redeem")
def redeem_university_code(
    req: RedeemCodeReq,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    profile = UniversityService(session).redeem(user_id, req.code, email=req.email, full_name=req.fullName)
    return {"success": True, "profile": profile.model_dump(mode="json")}


@app.get("/api/admin/analytics")
def admin_analytics(
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    return UniversityService(session).analytics(user_id)


# ---------- Aptitude Test ----------
@app.post("/api/aptitude-questions")
def aptitude_questions(
    user_id: str = Depends(get_current_user_id),
    gateway: LLMGateway = Depends(get_gateway),
) -> Dict[str, List[Dict[str, Any]]]:
    try:
        return {"questions": AptitudeQuestionGenerator(gateway).generate()}
    except AppError:
        raise
    except Exception as e:
        logger.exception("aptitude-questions failed")
        raise AppError(f"Failed to generate questions: {e}")
