import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv(".env.local"); load_dotenv()  # also loads .env if present

from fastapi import Depends, FastAPI, File, Request, Response, UploadFile  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from template_fill import FilledArtifact, TemplateFillError, TemplateFillService, ValidationError  # noqa: E402
from template_fill.config import Settings  # noqa: E402
from template_fill.models import FillRequest, VariableSet, ZoneSet  # noqa: E402
from template_fill.storage import validate_filename  # noqa: E402

settings = Settings.from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Document template filler")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_service() -> TemplateFillService:
    return TemplateFillService(settings)


@app.exception_handler(TemplateFillError)
async def template_fill_error_handler(request: Request, exc: TemplateFillError):
    body = {"error": exc.message, "details": exc.details}
    headers = None
    if getattr(exc, "retryable", False):
        body["retryable"] = True
        headers = {"Retry-After": "5"}
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Requête invalide", "details": str(exc.errors())},
    )


@contextmanager
def webhook_errors(message: str):
    """Turn anything unexpected into a 500 carrying ``message`` and the cause."""
    try:
        yield
    except TemplateFillError:
        raise
    except Exception as exc:
        logger.exception(message)
        raise TemplateFillError(message, details=str(exc) or exc.__class__.__name__) from exc


def artifact_response(artifact: FilledArtifact, disposition: str = "attachment") -> Response:
    headers = {"Content-Disposition": f'{disposition}; filename="{artifact.filename}"'}
    return Response(content=artifact.content, media_type=artifact.media_type, headers=headers)


@app.get("/health")
def health():
    return {"ok": True}


# --- Templates ----------------------------------------------------------------


@app.post("/api/upload")
def upload_template(file: Optional[UploadFile] = File(None), service: TemplateFillService = Depends(get_service)):
    if file is None or not file.filename:
        raise ValidationError("Aucun fichier fourni", details="missing_file")
    if not file.filename.endswith((".pdf", ".html")):
        raise ValidationError("Seuls les fichiers PDF et HTML sont acceptés", details="unsupported_extension")

    with webhook_errors("Erreur lors de l'upload du fichier"):
        path = service.store.save_upload(file.filename, file.file.read())

    file_type = "PDF" if file.filename.endswith(".pdf") else "HTML"
    return {
        "success": True,
        "message": f"{file_type} uploadé avec succès",
        "filename": file.filename,
        "path": str(path),
    }


@app.get("/api/upload")
def list_templates(service: TemplateFillService = Depends(get_service)):
    with webhook_errors("Erreur lors de la récupération des fichiers"):
        files = service.store.list_documents()
    return {"success": True, "files": files}


@app.get("/documents/{filename:path}")
def get_document(filename: str, service: TemplateFillService = Depends(get_service)):
    validate_filename(filename)
    artifact = FilledArtifact(
        content=service.store.read_template(filename),
        media_type="application/pdf" if filename.endswith(".pdf") else "text/html; charset=utf-8",
        filename=filename,
    )
    return artifact_response(artifact, disposition="inline")


# --- Zone / variable definitions ----------------------------------------------


@app.get("/api/zones")
def get_zones(template: Optional[str] = None, service: TemplateFillService = Depends(get_service)):
    if not template:
        raise ValidationError("Le paramètre template est requis", details="missing_template")
    zones = service.store.load_zones(template)
    return {"success": True, "zones": [z.model_dump(by_alias=True, exclude_none=True) for z in zones]}


@app.post("/api/zones")
def save_zones(req: ZoneSet, service: TemplateFillService = Depends(get_service)):
    with webhook_errors("Erreur lors de la sauvegarde des zones"):
        service.store.save_zones(req)
    return {"success": True, "message": "Zones sauvegardées avec succès", "zonesCount": len(req.zones)}


@app.get("/api/html-variables")
def get_variables(template: Optional[str] = None, service: TemplateFillService = Depends(get_service)):
    if not template:
        raise ValidationError("Le nom du template est requis", details="missing_template")
    variables = service.store.load_variables(template)
    return {"success": True, "variables": [v.model_dump(by_alias=True, exclude_none=True) for v in variables]}


@app.post("/api/html-variables")
def save_variables(req: VariableSet, service: TemplateFillService = Depends(get_service)):
    with webhook_errors("Erreur lors de la sauvegarde des variables"):
        service.store.save_variables(req)
    return {
        "success": True,
        "message": "Variables sauvegardées avec succès",
        "variablesCount": len(req.variables),
    }


# --- Webhooks -----------------------------------------------------------------


@app.get("/api/webhook/fill-pdf")
def describe_pdf_form(template: Optional[str] = None, service: TemplateFillService = Depends(get_service)):
    with webhook_errors("Erreur lors de la lecture du PDF"):
        fields = service.describe_form_fields(template or "")
    return {"success": True, "template": template, "fields": fields}


@app.post("/api/webhook/fill-pdf")
def fill_pdf_form(req: FillRequest, service: TemplateFillService = Depends(get_service)):
    with webhook_errors("Erreur lors du remplissage du PDF"):
        artifact = service.fill_form_pdf(req.template_name, req.fields)
    return artifact_response(artifact)


@app.post("/api/webhook/fill-pdf-custom")
def fill_pdf_zones(req: FillRequest, service: TemplateFillService = Depends(get_service)):
    with webhook_errors("Erreur lors du remplissage du PDF"):
        artifact = service.fill_zone_pdf(req.template_name, req.fields)
    return artifact_response(artifact)


@app.post("/api/webhook/fill-html")
def fill_html(req: FillRequest, service: TemplateFillService = Depends(get_service)):
    with webhook_errors("Erreur lors du remplissage du HTML"):
        artifact = service.fill_html(req.template_name, req.fields, primary_color=req.primary_color)
    return artifact_response(artifact)


@app.post("/api/webhook/fill-html-pdf")
def fill_html_pdf(req: FillRequest, service: TemplateFillService = Depends(get_service)):
    with webhook_errors("Erreur lors du remplissage du HTML"):
        artifact = service.fill_html_pdf(req.template_name, req.fields, primary_color=req.primary_color)
    return artifact_response(artifact)


@app.post("/api/webhook/fill-html-auto")
def fill_html_auto(req: FillRequest, service: TemplateFillService = Depends(get_service)):
    with webhook_errors("Erreur lors du remplissage du HTML"):
        artifact = service.fill_html_auto_pdf(req.template_name, req.fields, primary_color=req.primary_color)
    return artifact_response(artifact)


@app.post("/api/webhook/fill-html-upload")
def fill_html_upload(req: FillRequest, service: TemplateFillService = Depends(get_service)):
    with webhook_errors("Erreur lors du remplissage du HTML"):
        result = service.fill_html_auto_upload(req.template_name, req.fields, primary_color=req.primary_color)
    if isinstance(result, FilledArtifact):
        return artifact_response(result)
    return {"success": True, "pdfUrl": result.url, "fileName": result.file_name}
