"""Soil health, crop safety and cultivation history routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status

from soilhealth.schemas.soil_health import (
	CacheClearResponse,
	CropSafetyRequest,
	CropSafetyResponse,
	CropTypesResponse,
	CultivationHistoryRequest,
	CultivationHistoryResponse,
	CurrentCropSafetyResponse,
	CurrentHealthRequest,
	CurrentHealthResponse,
	HealthRangesResponse,
	WeeklySummaryRequest,
	WeeklySummaryResponse,
)
from soilhealth.services.soil_health_service import SoilHealthService
from soilhealth.services.timeseries import TimeSeriesUnavailableError

router = APIRouter(prefix="/soil-health", tags=["soil-health"])


def _service(request: Request) -> SoilHealthService:
	service = getattr(request.app.state, "soil_health_service", None)
	if service is None:
		raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="soil health service not ready")
	return service


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, HTTPException):
		return exc
	if isinstance(exc, TimeSeriesUnavailableError):
		return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="time-series store unavailable")
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="soil health failure")


@router.get("/ranges", response_model=HealthRangesResponse)
async def get_health_ranges(request: Request) -> HealthRangesResponse:
	return _service(request).health_ranges()


@router.get("/crop-types", response_model=CropTypesResponse)
async def get_crop_types(request: Request) -> CropTypesResponse:
	return _service(request).list_crop_types()


@router.post("/weekly", response_model=WeeklySummaryResponse)
async def get_weekly_summary(body: WeeklySummaryRequest, request: Request) -> WeeklySummaryResponse:
	service = _service(request)
	try:
		return await service.compute_weekly_summary(
			body.farmer_id,
			body.device_ids,
			body.planting_date,
			harvest_date=body.harvest_date,
			location=body.location,
		)
	except Exception as exc:
		raise _map_error(exc) from exc


@router.post("/current", response_model=CurrentHealthResponse)
async def get_current_health(body: CurrentHealthRequest, request: Request) -> CurrentHealthResponse:
	service = _service(request)
	try:
		return await service.compute_current_health(body.device_ids, location=body.location)
	except Exception as exc:
		raise _map_error(exc) from exc


@router.post("/crop-safety", response_model=CropSafetyResponse)
async def get_crop_safety(body: CropSafetyRequest, request: Request) -> CropSafetyResponse:
	service = _service(request)
	try:
		return await service.compute_crop_safety(
			body.farmer_id,
			body.device_ids,
			body.planting_date,
			harvest_date=body.harvest_date,
			crop_type=body.crop_type,
			location=body.location,
		)
	except Exception as exc:
		raise _map_error(exc) from exc


@router.post("/current-safety", response_model=CurrentCropSafetyResponse)
async def get_current_safety(body: CurrentHealthRequest, request: Request) -> CurrentCropSafetyResponse:
	service = _service(request)
	try:
		return await service.compute_current_crop_safety(body.device_ids, crop_type=body.crop_type, location=body.location)
	except Exception as exc:
		raise _map_error(exc) from exc


@router.post("/cultivation-history", response_model=CultivationHistoryResponse)
async def get_cultivation_history(body: CultivationHistoryRequest, request: Request) -> CultivationHistoryResponse:
	service = _service(request)
	try:
		return await service.compute_cultivation_history(
			body.device_ids,
			body.planting_date,
			crop_type=body.crop_type,
			max_weeks=body.max_weeks,
		)
	except Exception as exc:
		raise _map_error(exc) from exc


@router.post("/cache/clear", response_model=CacheClearResponse)
async def clear_cache(request: Request) -> CacheClearResponse:
	service = _service(request)
	try:
		return await service.clear_cache()
	except Exception as exc:
		raise _map_error(exc) from exc
