"""FastAPI proxy server: LLM recommendations, mockups and an outbound fetch relay."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import urllib.error
import urllib.request
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from ..catalogue import Catalogue, category_color, load_catalogue, paginate
from ..config import ExplorerConfig
from ..llm import AllProvidersFailed, ProviderChain, build_provider_chain
from ..models import (
    GenerateRequest,
    GenerateResponse,
    MockupRequest,
    MockupResponse,
    ProxyRequest,
    SuggestionRequest,
)
from ..prompts import MOCKUP_SYSTEM_PROMPT, build_mockup_prompt
from ..ranking import rank_suggestions

logger = logging.getLogger(__name__)

GENERATE_FAILED = "Failed to generate response from all available providers."
MOCKUP_FAILED = "Failed to generate mockup"
PROXY_FAILED = "Error fetching from external API"
PROXY_TIMEOUT = 30.0

# request path -> message for a body that fails validation
_VALIDATION_MESSAGES = {
    "/api/generate-response": "Messages must be a non-empty array of {role, content}.",
    "/api/create-mockup": "Business idea and active APIs are required",
    "/api/proxy": "A target url is required.",
}

_FENCE_RE = re.compile(r"```(?:html)?\s*\n(.*?)```", re.DOTALL | re.IGNORECASE)


def extract_html(text: str) -> str:
    """Strip a surrounding markdown code fence from a generated page, if any."""
    match = _FENCE_RE.search(text)
    return (match.group(1) if match else text).strip()


class ProxyFailure(RuntimeError):
    def __init__(self, status: int, details: object) -> None:
        super().__init__(str(details))
        self.status = status
        self.details = details


def _relay_sync(req: ProxyRequest) -> object:
    """Blocking outbound fetch. Meant to be run via asyncio.to_thread."""
    headers = dict(req.headers)
    body = None
    if req.data is not None:
        body = json.dumps(req.data).encode("utf-8")
        headers.setdefault("Content-Type", "application/json")
    outbound = urllib.request.Request(req.url, data=body, headers=headers, method=req.method.upper())
    try:
        with urllib.request.urlopen(outbound, timeout=PROXY_TIMEOUT) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace")
        try:
            details: object = json.loads(error_body)
        except json.JSONDecodeError:
            details = error_body or str(exc)
        raise ProxyFailure(exc.code, details) from exc
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise ProxyFailure(502, str(exc)) from exc

    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProxyFailure(502, "Upstream response was not JSON") from exc


def create_app(
    config: ExplorerConfig | None = None,
    *,
    chain: ProviderChain | None = None,
    catalogue: Catalogue | None = None,
) -> FastAPI:
    """Build the application; every route is registered here, once."""
    config = config or ExplorerConfig()
    chain = chain if chain is not None else build_provider_chain(config)
    catalogue = catalogue if catalogue is not None else load_catalogue(config.catalogue_path)

    app = FastAPI(title="apiexplorer", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.config = config
    app.state.chain = chain
    app.state.catalogue = catalogue
    app.state.mockups = {}

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = _VALIDATION_MESSAGES.get(request.url.path, "Invalid request body.")
        logger.info("Rejected %s: %s", request.url.path, exc.errors())
        return JSONResponse({"error": message}, status_code=400)

    # ------------------------------------------------------------------
    # LLM endpoints
    # ------------------------------------------------------------------

    @app.post("/api/generate-response", response_model=GenerateResponse)
    async def generate_response(req: GenerateRequest) -> JSONResponse:
        messages = [
            {"role": "system", "content": req.systemPrompt or config.default_system_prompt},
            *(m.model_dump() for m in req.messages),
        ]
        try:
            completion = await chain.complete(
                messages,
                temperature=0.7 if req.isUserReply else 0.9,
                max_tokens=config.max_tokens,
            )
        except AllProvidersFailed:
            return JSONResponse({"error": GENERATE_FAILED}, status_code=500)
        logger.debug("Response served by %s (%s).", completion.provider, completion.model)
        return JSONResponse({"response": completion.content})

    @app.post("/api/create-mockup", response_model=MockupResponse)
    async def create_mockup(req: MockupRequest) -> JSONResponse:
        prompt = build_mockup_prompt(req.businessIdea, req.activeApis, f"{config.base_url}/api/proxy")
        try:
            completion = await chain.complete(
                [
                    {"role": "system", "content": MOCKUP_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.7,
                max_tokens=config.mockup_max_tokens,
            )
        except AllProvidersFailed:
            return JSONResponse({"error": MOCKUP_FAILED}, status_code=500)

        code = extract_html(completion.content)
        mockup_id = uuid.uuid4().hex
        app.state.mockups[mockup_id] = code
        logger.info("Stored mockup %s (%d bytes).", mockup_id, len(code))
        return JSONResponse({"mockupUrl": f"{config.base_url}/mockup/{mockup_id}", "mockupCode": code})

    @app.get("/mockup/{mockup_id}", response_class=HTMLResponse)
    async def get_mockup(mockup_id: str) -> HTMLResponse:
        code = app.state.mockups.get(mockup_id)
        if code is None:
            return HTMLResponse("Mockup not found", status_code=404)
        return HTMLResponse(code)

    # ------------------------------------------------------------------
    # Outbound relay
    # ------------------------------------------------------------------

    @app.post("/api/proxy")
    async def proxy(req: ProxyRequest) -> JSONResponse:
        try:
            data = await asyncio.to_thread(_relay_sync, req)
        except ProxyFailure as exc:
            logger.warning("Proxy to %s failed (%d): %s", req.url, exc.status, exc.details)
            return JSONResponse({"error": PROXY_FAILED, "details": exc.details}, status_code=exc.status)
        return JSONResponse(data)

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    @app.get("/api/catalogue")
    async def get_catalogue(
        search: str = "",
        category: str = "",
        page: int = 1,
        per_page: int = 24,
    ) -> JSONResponse:
        result = paginate(catalogue.filter(search, category), page=page, per_page=max(1, per_page))
        return JSONResponse({
            "entries": [
                {**e.model_dump(by_alias=True, exclude_none=True), "Color": category_color(e.category)}
                for e in result.entries
            ],
            "page": result.page,
            "perPage": result.per_page,
            "total": result.total,
            "totalPages": result.total_pages,
            "categories": catalogue.categories(),
        })

    @app.post("/api/suggestions")
    async def suggestions(req: SuggestionRequest) -> JSONResponse:
        ranked = rank_suggestions(req.text, catalogue, req.activeNodes, limit=req.limit)
        return JSONResponse({
            "suggestions": [
                {**s.entry.model_dump(by_alias=True, exclude_none=True), "score": s.score}
                for s in ranked
            ],
        })

    @app.get("/api/health")
    async def health() -> JSONResponse:
        return JSONResponse({
            "status": "ok",
            "providers": [p.name for p in chain.providers],
            "catalogue": len(catalogue),
            "stats": await chain.get_stats(),
        })

    return app


def start_server(config: ExplorerConfig) -> None:
    """Serve the API with uvicorn until interrupted."""
    import uvicorn

    app = create_app(config)
    logger.info("Proxy listening on http://%s:%d", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port)
