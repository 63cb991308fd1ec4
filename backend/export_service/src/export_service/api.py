import logging

from fastapi import APIRouter, Depends, FastAPI, Path, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import settings
from .exceptions import ProductDesignMissingError, ProductNotFoundError, ProductStoreError
from .models.schemas import ErrorResponse, ExportDownloadRequest, ExportDownloadResponse
from .service.downloader import ExportDownloader, get_export_downloader
from .service.exports import download_export
from .utils.product_store import ProductStore, get_product_store

logger = logging.getLogger(settings.SERVICE_NAME + ".api")

router = APIRouter()

DOWNLOAD_EXPORT_PATH = "/exports/download"
DOWNLOAD_FAILED = "Failed to download exported design"


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    content = ErrorResponse(error=error, details=details).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=content)


def _describe_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(messages) or "Invalid request body"


@router.post(
    DOWNLOAD_EXPORT_PATH,
    response_model=ExportDownloadResponse,
    summary="Download an exported design",
    description=(
        "Downloads a design export from its temporary URL into the public exports "
        "directory and optionally points the given product's design at the local copy."
    ),
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
async def download_exported_design(
    request: ExportDownloadRequest,
    store: ProductStore = Depends(get_product_store),
    downloader: ExportDownloader = Depends(get_export_downloader),
):
    logger.info(f"Download export request: {request.model_dump(by_alias=True)}")

    try:
        response = await download_export(request, store, downloader)
    except ProductNotFoundError as e:
        logger.warning(str(e))
        return _error(status.HTTP_404_NOT_FOUND, "Product not found")
    except ProductDesignMissingError as e:
        logger.warning(str(e))
        return _error(status.HTTP_400_BAD_REQUEST, "No design found for product")
    except Exception as e:
        logger.error(f"Export download error: {e}", exc_info=True)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            DOWNLOAD_FAILED,
            str(e) or "Unknown error",
        )

    logger.info(f"Returning download response: {response.model_dump(by_alias=True)}")
    return response


@router.get("/products", summary="List all products")
async def list_products(store: ProductStore = Depends(get_product_store)):
    return [product.to_document() for product in store.list_products()]


@router.get(
    "/products/{product_id}",
    summary="Get a single product",
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
)
async def get_product(
    product_id: str = Path(..., description="Id of the product."),
    store: ProductStore = Depends(get_product_store),
):
    product = store.get_product(product_id)
    if product is None:
        logger.warning(f"Product not found: {product_id}")
        return _error(status.HTTP_404_NOT_FOUND, "Product not found")
    return product.to_document()


@router.get(
    "/healthz",
    response_model=dict,
    summary="Health check endpoint",
    description="Returns the health status of the Export service.",
)
async def health_check(
    store: ProductStore = Depends(get_product_store),
    downloader: ExportDownloader = Depends(get_export_downloader),
) -> dict:
    try:
        products_count = len(store.list_products())
    except ProductStoreError as e:
        return {
            "status": "degraded",
            "service": settings.SERVICE_NAME,
            "products_loaded": False,
            "message": str(e),
        }

    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "products_loaded": True,
        "products_count": products_count,
        "exports_dir": str(downloader.exports_dir),
    }


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application for the Export service.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Shop Backend - Export Service",
        description="Downloads exported designs to local storage and links them to products.",
        version="0.1.0",
        docs_url=f"/{settings.API_VERSION}/docs",
        redoc_url=f"/{settings.API_VERSION}/redoc",
        openapi_url=f"/{settings.API_VERSION}/openapi.json",
    )

    if settings.CORS_ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        logger.info(f"CORS middleware enabled for origins: {settings.CORS_ALLOWED_ORIGINS}")

    app.include_router(router, tags=["Exports"])

    @app.exception_handler(ProductStoreError)
    async def product_store_error_handler(request: Request, exc: ProductStoreError):
        logger.error(f"Product store error on {request.url.path}: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Product store unavailable", str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Any unusable download request body is reported like every other download failure
        if request.url.path == DOWNLOAD_EXPORT_PATH:
            details = _describe_validation_errors(exc)
            logger.error(f"Invalid export download request: {details}")
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, DOWNLOAD_FAILED, details)
        return await request_validation_exception_handler(request, exc)

    # Downloaded exports are served from here, e.g. /public/exports/<filename>
    app.mount(
        "/public",
        StaticFiles(directory=settings.get_public_dir(), check_dir=False),
        name="public",
    )

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting Export service")
        get_export_downloader().ensure_exports_dir()
        try:
            get_product_store().read()
        except ProductStoreError as e:
            logger.warning(f"Products not loaded during startup: {e}")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down Export service")
        get_product_store().stop_file_watcher()

    return app


# Create the FastAPI app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("Running Export service API directly")
    uvicorn.run(
        "export_service.api:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=True,
    )
