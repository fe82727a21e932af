"""Service category endpoints."""

from fastapi import APIRouter

from callqueue.api.v1.dependencies import CategoryServiceDep
from callqueue.api.v1.errors import to_http_exception
from callqueue.api.v1.schemas import CategoryCreateRequest, CategoryResponse, CategoryUpdateRequest
from callqueue.services.exceptions import ServiceError

router = APIRouter(tags=["categories"])


@router.get("/categories", response_model=list[CategoryResponse], operation_id="listCategories")
async def list_categories(service: CategoryServiceDep, include_inactive: bool = False) -> list[CategoryResponse]:
    categories = await service.list_categories(include_inactive=include_inactive)
    return [CategoryResponse.from_model(c) for c in categories]


@router.post("/categories", response_model=CategoryResponse, status_code=201, operation_id="createCategory")
async def create_category(body: CategoryCreateRequest, service: CategoryServiceDep) -> CategoryResponse:
    try:
        category = await service.create_category(
            code=body.code,
            name=body.name,
            prefix=body.prefix,
            english_name=body.english_name,
        )
    except ServiceError as e:
        raise to_http_exception(e)
    return CategoryResponse.from_model(category)


@router.patch("/categories/{category_id}", response_model=CategoryResponse, operation_id="updateCategory")
async def update_category(
    category_id: int,
    body: CategoryUpdateRequest,
    service: CategoryServiceDep,
) -> CategoryResponse:
    try:
        category = await service.update_category(
            category_id,
            name=body.name,
            english_name=body.english_name,
            prefix=body.prefix,
        )
    except ServiceError as e:
        raise to_http_exception(e)
    return CategoryResponse.from_model(category)


@router.post("/categories/{category_id}/enable", response_model=CategoryResponse, operation_id="enableCategory")
async def enable_category(category_id: int, service: CategoryServiceDep) -> CategoryResponse:
    try:
        return CategoryResponse.from_model(await service.set_active(category_id, True))
    except ServiceError as e:
        raise to_http_exception(e)


@router.post("/categories/{category_id}/disable", response_model=CategoryResponse, operation_id="disableCategory")
async def disable_category(category_id: int, service: CategoryServiceDep) -> CategoryResponse:
    try:
        return CategoryResponse.from_model(await service.set_active(category_id, False))
    except ServiceError as e:
        raise to_http_exception(e)
