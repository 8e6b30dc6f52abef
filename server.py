"""FastAPI storage proxy for the SAV claim wizard."""

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from savclaims.storage.file_storage import LocalFileStorage, StorageBackend
from savclaims.utils.config import Config
from savclaims.utils.logging import setup_logging
from savclaims.utils.sanitize import sanitize_file_name, sanitize_folder_name


APP_TITLE = "SAV Storage Proxy"
ALLOWED_MIME_TYPES = {
    # Documents
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
    # Archives
    "application/zip",
    "application/x-rar-compressed",
    "application/x-7z-compressed",
}
MAX_FOLDER_NAME_LENGTH = 100
UPLOAD_FAILED_MESSAGE = "Erreur lors de l'upload du fichier vers le stockage."
SHARE_LINK_FAILED_MESSAGE = "Erreur lors de la création du lien de partage pour le dossier."
INVALID_FOLDER_MESSAGE = "Le nom du dossier de SAV contient des caractères invalides."

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_config() -> Config:
    return Config.load()


@lru_cache(maxsize=1)
def get_storage() -> StorageBackend:
    """Storage backend, created on first use."""
    config = get_config()
    return LocalFileStorage(
        root_dir=config.storage.root_dir,
        public_base_url=config.storage.public_base_url,
    )


class ShareLinkRequest(BaseModel):
    savDossier: Optional[Any] = None


def _error_body(error: str, details: Optional[Any] = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        body["details"] = details
    body.update(extra)
    return body


def _dev_details(config: Config, error: Exception) -> Optional[str]:
    return None if config.server.is_production else str(error)


def _validated_folder(sav_dossier: Any) -> str:
    """Check a savDossier value and return its sanitized form."""
    if sav_dossier is None:
        raise HTTPException(status_code=400, detail="Le nom du dossier SAV est requis")
    if not isinstance(sav_dossier, str):
        raise HTTPException(
            status_code=400,
            detail="Le nom du dossier SAV doit être une chaîne de caractères",
        )
    trimmed = sav_dossier.strip()
    if not 1 <= len(trimmed) <= MAX_FOLDER_NAME_LENGTH:
        raise HTTPException(
            status_code=400,
            detail="Le nom du dossier doit contenir entre 1 et 100 caractères",
        )
    sanitized = sanitize_folder_name(trimmed)
    if not sanitized:
        raise HTTPException(status_code=400, detail=INVALID_FOLDER_MESSAGE)
    return sanitized


def _is_allowed_mime(content_type: str) -> bool:
    return content_type.startswith("image/") or content_type in ALLOWED_MIME_TYPES


def require_api_key(request: Request, config: Config = Depends(get_config)) -> None:
    """
    Check the ``X-API-Key`` (or ``Authorization: Bearer``) header.

    Without a configured key, requests pass in development and are refused
    in production.
    """
    provided = request.headers.get("X-API-Key")
    if not provided:
        authorization = request.headers.get("Authorization", "")
        if authorization.startswith("Bearer "):
            provided = authorization[len("Bearer "):]

    expected = config.server.api_key
    client_host = request.client.host if request.client else "unknown"

    if not expected:
        if config.server.is_production:
            logger.error("API_KEY is not configured in production")
            raise HTTPException(status_code=500, detail="Configuration du serveur incorrecte")
        logger.warning("API_KEY is not configured - authentication disabled")
        return

    if not provided:
        logger.warning(f"Request without API key from {client_host}")
        raise HTTPException(
            status_code=401,
            detail="Authentification requise. Veuillez fournir une API key valide.",
        )

    if provided != expected:
        logger.warning(f"Request with invalid API key from {client_host}")
        raise HTTPException(status_code=403, detail="API key invalide. Accès refusé.")


def create_app(config: Optional[Config] = None) -> FastAPI:
    """
    Build the storage proxy application.

    Args:
        config: Configuration to serve with (default: Config.load())

    Returns:
        FastAPI application
    """
    config = config or get_config()
    app = FastAPI(title=APP_TITLE)
    app.dependency_overrides[get_config] = lambda: config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_origin_regex=r"^https://sav-monorepo-.*\.vercel\.app$",
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-API-Key",
            "X-Requested-With",
            "Accept",
            "Origin",
        ],
    )

    app.mount(
        "/files",
        StaticFiles(directory=config.storage.root_dir, check_dir=False),
        name="files",
    )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc.detail)))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = ", ".join(err.get("msg", "") for err in exc.errors())
        return JSONResponse(status_code=400, content=_error_body("Validation échouée", messages))

    @app.get("/api/test")
    async def test_endpoint() -> Dict[str, Any]:
        return {
            "status": "ok",
            "message": "Le serveur fonctionne correctement",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/health")
    async def healthcheck(storage: StorageBackend = Depends(get_storage)) -> Dict[str, Any]:
        stats = storage.get_storage_stats() if hasattr(storage, "get_storage_stats") else {}
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "env": config.server.environment,
            "storage": stats,
        }

    async def upload_file(
        file: Optional[UploadFile] = File(default=None),
        savDossier: Optional[str] = Form(default=None),
        storage: StorageBackend = Depends(get_storage),
        _: None = Depends(require_api_key),
    ) -> JSONResponse:
        if file is None or not file.filename:
            raise HTTPException(status_code=400, detail="Aucun fichier fourni")

        content_type = file.content_type or "application/octet-stream"
        if not _is_allowed_mime(content_type):
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Type de fichier non supporté: {content_type}. Types acceptés: images, "
                    "PDF, documents Office, fichiers texte et archives."
                ),
            )

        data = await file.read()
        if len(data) > config.server.max_upload_mb * 1024 * 1024:
            raise HTTPException(
                status_code=400,
                detail=f"Erreur lors de l'upload: fichier trop volumineux (max {config.server.max_upload_mb} Mo)",
            )

        folder = _validated_folder(savDossier)
        file_name = sanitize_file_name(file.filename)
        destination = f"{config.storage.root_folder}/{folder}"

        logger.info(f"Uploading {file_name} ({len(data)} bytes) to {destination}")

        try:
            stored = await run_in_threadpool(storage.upload, data, file_name, destination, content_type)
        except Exception as e:
            logger.error(f"Upload to {destination} failed: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content=_error_body(UPLOAD_FAILED_MESSAGE, _dev_details(config, e)),
            )

        return JSONResponse({
            "success": True,
            "message": "Fichier uploadé avec succès",
            "file": {
                "name": stored.name,
                "url": stored.url,
                "id": stored.id,
                "size": stored.size,
                "lastModified": stored.last_modified,
                "mimeType": content_type,
            },
        })

    app.post("/api/upload")(upload_file)
    app.post("/api/upload-onedrive")(upload_file)

    @app.post("/api/folder-share-link")
    async def folder_share_link(
        body: ShareLinkRequest,
        storage: StorageBackend = Depends(get_storage),
        _: None = Depends(require_api_key),
    ) -> JSONResponse:
        folder = _validated_folder(body.savDossier)
        folder_path = f"{config.storage.root_folder}/{folder}"

        try:
            link = storage.share_link(folder_path)
        except Exception as e:
            logger.error(f"Share link for {folder_path} failed: {str(e)}")
            return JSONResponse(
                status_code=500,
                content=_error_body(SHARE_LINK_FAILED_MESSAGE, str(e)),
            )

        return JSONResponse({"success": True, "shareLink": link.url, "id": link.id})

    return app


_config = get_config()
setup_logging(_config.logging.level, _config.logging.format, _config.logging.file or None)
app = create_app(_config)
