import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import requests
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from atelier.services.image_generation import (
    ImageGenerationClient,
    ImageGenerationError,
)
from atelier.webserver.config import DEV_CORS_ORIGINS, ServerConfig

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], ImageGenerationClient]


class EditImageRequest(BaseModel):
    prompt: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    base64_image: Optional[str] = Field(default=None, alias="base64Image")


def _error(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


def create_app(
    config: ServerConfig, client_factory: Optional[ClientFactory] = None
) -> FastAPI:
    """
    Factory function to create the FastAPI app with the given configuration.

    Args:
        config: Server configuration.
        client_factory: Builds the upstream client from an API key.
    """
    factory: ClientFactory = client_factory or ImageGenerationClient
    environment = "production" if config.production else "development"

    app = FastAPI(title="I-Catching Image Proxy")

    @app.exception_handler(StarletteHTTPException)
    async def http_error(
        _request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        # Added before CORS, so it runs inside it.
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            if int(content_length) > config.max_body_bytes:
                logger.warning(f"Rejected request body of {content_length} bytes")
                return JSONResponse(
                    status_code=413, content={"error": "Request body too large"}
                )
        return await call_next(request)

    if not config.production:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=DEV_CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def require_admin(authorization: Optional[str] = Header(default=None)) -> str:
        """Resolves the bearer token to a role and rejects non-admins."""
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(
                status_code=401, detail="No authorization token provided"
            )
        token = authorization[len("Bearer ") :].strip()
        role = config.api_tokens.get(token)
        if role is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        if role != "admin":
            raise HTTPException(status_code=403, detail="Admin access required")
        return token

    # -------------------------------------------------------------------------
    # API Endpoints
    # -------------------------------------------------------------------------

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": environment,
        }

    @app.post("/api/openrouter/nanobanana", response_model=None)
    def nanobanana(
        request: EditImageRequest, _token: str = Depends(require_admin)
    ) -> Any:
        """
        Edits an image with the image-generation model.

        The API key stays on the server; the client only sees the result.
        """
        if not request.prompt:
            raise HTTPException(status_code=400, detail="Prompt is required")
        if not request.image_url and not request.base64_image:
            raise HTTPException(
                status_code=400, detail="Image URL or base64 image is required"
            )
        if not config.openrouter_api_key:
            logger.error("OPENROUTER_API_KEY not configured")
            raise HTTPException(status_code=500, detail="AI service not configured")

        try:
            client = factory(config.openrouter_api_key)
            result = client.edit_image(
                request.prompt,
                image_url=request.image_url,
                base64_image=request.base64_image,
            )
        except ImageGenerationError as e:
            return _error(500, "AI generation failed", e.details)
        except requests.exceptions.RequestException as e:
            logger.error(f"Upstream request failed: {e}")
            return _error(500, "AI generation failed", str(e))
        except Exception as e:
            logger.exception(f"Nano Banana error: {e}")
            return _error(500, "Failed to process AI request", str(e))

        if result.image is None:
            return {"success": False, "error": "Geen afbeelding in response"}
        return {"success": True, "generatedImage": result.image}

    return app
