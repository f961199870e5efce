"""
FastAPI HTTP Handlers for Product Catalog API v1.

Maps the list, get, put and delete requests onto the catalog use cases and
translates the domain error taxonomy into status codes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Path, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from internal.domain.errors import (
    DomainError,
    DomainValidationError,
    ProductNotFoundError,
    StorageConflictError,
    StorageError,
    StorageUnavailableError,
)
from internal.transport.http.dto import (
    ErrorResponse,
    ProductListResponse,
    ProductRequest,
    ProductResponse,
)
from internal.usecase.delete_product import DeleteProductUseCase
from internal.usecase.get_product import GetProductUseCase
from internal.usecase.list_products import ListProductsInput, ListProductsUseCase
from internal.usecase.put_product import PutProductInput, PutProductUseCase
from pkg.logger.logger import get_logger, get_request_id

logger = get_logger(__name__)


router = APIRouter(prefix="/api/v1", tags=["products"])
system_router = APIRouter(tags=["system"])


# Status code and error code per domain error, most specific first
_ERROR_MAPPING: list[tuple[type[DomainError], int, str]] = [
    (ProductNotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (DomainValidationError, status.HTTP_400_BAD_REQUEST, "validation_error"),
    (StorageUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE, "storage_unavailable"),
    (StorageConflictError, status.HTTP_409_CONFLICT, "conflict"),
    (StorageError, status.HTTP_502_BAD_GATEWAY, "storage_error"),
]

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    404: {"model": ErrorResponse, "description": "Product not found"},
    409: {"model": ErrorResponse, "description": "Concurrent modification"},
    502: {"model": ErrorResponse, "description": "Storage error"},
    503: {"model": ErrorResponse, "description": "Storage unavailable"},
}


class Dependencies:
    """Container for handler dependencies."""

    list_use_case: Optional[ListProductsUseCase] = None
    get_use_case: Optional[GetProductUseCase] = None
    put_use_case: Optional[PutProductUseCase] = None
    delete_use_case: Optional[DeleteProductUseCase] = None


_deps = Dependencies()


def _not_initialized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Service not initialized",
    )


def get_list_use_case() -> ListProductsUseCase:
    """Get ListProductsUseCase instance."""
    if _deps.list_use_case is None:
        raise _not_initialized()
    return _deps.list_use_case


def get_get_use_case() -> GetProductUseCase:
    """Get GetProductUseCase instance."""
    if _deps.get_use_case is None:
        raise _not_initialized()
    return _deps.get_use_case


def get_put_use_case() -> PutProductUseCase:
    """Get PutProductUseCase instance."""
    if _deps.put_use_case is None:
        raise _not_initialized()
    return _deps.put_use_case


def get_delete_use_case() -> DeleteProductUseCase:
    """Get DeleteProductUseCase instance."""
    if _deps.delete_use_case is None:
        raise _not_initialized()
    return _deps.delete_use_case


def set_dependencies(
    list_use_case: ListProductsUseCase,
    get_use_case: GetProductUseCase,
    put_use_case: PutProductUseCase,
    delete_use_case: DeleteProductUseCase,
) -> None:
    """
    Set handler dependencies.

    Called during application startup.
    """
    _deps.list_use_case = list_use_case
    _deps.get_use_case = get_use_case
    _deps.put_use_case = put_use_case
    _deps.delete_use_case = delete_use_case


def _error_response(status_code: int, code: str, detail: str) -> JSONResponse:
    body = ErrorResponse(detail=detail, code=code, request_id=get_request_id())
    return JSONResponse(status_code=status_code, content=body.model_dump())


def domain_error_response(error: DomainError) -> JSONResponse:
    """
    Translate a domain error into an error response.

    Client errors are logged as warnings, storage failures as errors.
    """
    for error_type, status_code, code in _ERROR_MAPPING:
        if isinstance(error, error_type):
            break
    else:
        status_code, code = status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error"

    if status_code < 500:
        logger.warning("Request rejected", code=code, error=error.message)
    else:
        logger.error("Request failed", code=code, error=error.message)
    return _error_response(status_code, code, error.message)


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Report malformed requests as 400 with the standard error body."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = f"{location}: {first.get('msg', 'invalid value')}"
    else:
        detail = "Invalid request"
    logger.warning("Request validation failed", path=request.url.path, error=detail)
    return _error_response(status.HTTP_400_BAD_REQUEST, "validation_error", detail)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error handlers the catalog routes rely on."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


# Handlers
@router.get(
    "/products",
    response_model=ProductListResponse,
    response_model_exclude_none=True,
    responses={
        200: {"description": "One page of products"},
        400: _ERROR_RESPONSES[400],
        502: _ERROR_RESPONSES[502],
        503: _ERROR_RESPONSES[503],
    },
)
async def list_products(
    cursor: Optional[str] = Query(None, description="Cursor returned with the previous page"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Page size"),
    use_case: ListProductsUseCase = Depends(get_list_use_case),
):
    """
    List products page by page.

    Follow ``next`` until it is absent to walk the whole catalog.
    """
    logger.info("Listing products", cursor=cursor, limit=limit)

    try:
        page = await use_case.execute(ListProductsInput(cursor=cursor, limit=limit))
    except DomainError as e:
        return domain_error_response(e)

    return ProductListResponse.from_domain(page)


@router.get(
    "/products/{product_id}",
    response_model=ProductResponse,
    responses={
        200: {"description": "Product found"},
        404: _ERROR_RESPONSES[404],
        502: _ERROR_RESPONSES[502],
        503: _ERROR_RESPONSES[503],
    },
)
async def get_product(
    product_id: str = Path(..., min_length=1, description="Product id"),
    use_case: GetProductUseCase = Depends(get_get_use_case),
):
    """Get a product by id."""
    logger.info("Getting product", product_id=product_id)

    try:
        product = await use_case.execute(product_id)
    except DomainError as e:
        return domain_error_response(e)

    return ProductResponse.from_domain(product)


@router.put(
    "/products/{product_id}",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Product stored"},
        **_ERROR_RESPONSES,
    },
)
async def put_product(
    request: ProductRequest,
    product_id: str = Path(..., min_length=1, description="Product id"),
    use_case: PutProductUseCase = Depends(get_put_use_case),
):
    """
    Create or replace a product.

    The body id is optional; when present it must equal the path id.
    """
    logger.info("Putting product", product_id=product_id)

    if request.id is not None and request.id != product_id:
        return domain_error_response(
            DomainValidationError("Product id in body does not match the path")
        )

    try:
        product = await use_case.execute(
            PutProductInput(
                product_id=product_id,
                name=request.name,
                price=request.price,
            )
        )
    except DomainError as e:
        return domain_error_response(e)

    return ProductResponse.from_domain(product)


@router.delete(
    "/products/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={
        204: {"description": "Product deleted, or did not exist"},
        502: _ERROR_RESPONSES[502],
        503: _ERROR_RESPONSES[503],
    },
)
async def delete_product(
    product_id: str = Path(..., min_length=1, description="Product id"),
    use_case: DeleteProductUseCase = Depends(get_delete_use_case),
):
    """Delete a product. Deleting an unknown id succeeds."""
    logger.info("Deleting product", product_id=product_id)

    try:
        await use_case.execute(product_id)
    except DomainError as e:
        return domain_error_response(e)

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@system_router.get("/health")
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns:
        Health status.
    """
    return {"status": "healthy", "service": "product-catalog"}


@system_router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format.
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
