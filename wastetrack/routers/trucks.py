# wastetrack/routers/trucks.py
import logging
from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import JSONResponse
from typing import Any, Dict, List

from wastetrack.exceptions import TrackingError
from wastetrack.models import TruckLocationView, TruckRecord
from wastetrack.services.tracking_service import TruckTrackingService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_tracking_service(request: Request) -> TruckTrackingService:
    return request.app.state.tracking_service


def _truck_response(message: str, truck: TruckRecord) -> Dict[str, Any]:
    return {"success": True, "message": message, "truck": truck.model_dump(mode="json")}


def _unexpected(action: str, e: Exception) -> TrackingError:
    logger.error(f"An unexpected error occurred while {action}: {e}", exc_info=True)
    return TrackingError(f"An internal server error occurred while {action}.")


@router.get("", summary="List every registered truck")
async def list_trucks(service: TruckTrackingService = Depends(get_tracking_service)) -> List[Dict[str, Any]]:
    try:
        return [t.model_dump(mode="json") for t in service.list_trucks()]
    except TrackingError:
        raise
    except Exception as e:
        raise _unexpected("listing trucks", e)


@router.post("", status_code=status.HTTP_201_CREATED, summary="Register a new truck")
@router.post("/register", status_code=status.HTTP_201_CREATED, summary="Register a new truck")
async def register_truck(
    payload: Dict[str, Any] = Body(...),
    service: TruckTrackingService = Depends(get_tracking_service),
) -> Dict[str, Any]:
    logger.info(f"Register truck endpoint called for ID: {payload.get('truckId')}")
    try:
        truck = service.register_truck(payload)
        return _truck_response("Truck registered successfully!", truck)
    except TrackingError:
        raise
    except Exception as e:
        raise _unexpected("registering the truck", e)


# Must stay above the /{truck_id} routes.
@router.get("/locations/all", summary="Locations of all active trucks")
async def get_all_truck_locations(service: TruckTrackingService = Depends(get_tracking_service)):
    try:
        locations = service.list_active_locations()
    except TrackingError:
        raise
    except Exception as e:
        raise _unexpected("retrieving truck locations", e)

    if not locations:
        logger.info("Registry query found no active trucks.")
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "message": "No active trucks found."},
        )
    return [loc.model_dump(mode="json") for loc in locations]


@router.put("/{truck_id}/location", summary="Report a truck's current position")
async def update_truck_location(
    truck_id: str,
    payload: Dict[str, Any] = Body(...),
    service: TruckTrackingService = Depends(get_tracking_service),
) -> Dict[str, Any]:
    try:
        truck = service.update_location(truck_id, payload)
        return _truck_response("Truck location updated successfully!", truck)
    except TrackingError:
        raise
    except Exception as e:
        raise _unexpected(f"updating the location of truck '{truck_id}'", e)


@router.get("/{truck_id}/location", response_model=TruckLocationView, summary="Latest location of one truck")
async def get_truck_location(truck_id: str, service: TruckTrackingService = Depends(get_tracking_service)):
    try:
        return service.get_location(truck_id)
    except TrackingError:
        raise
    except Exception as e:
        raise _unexpected(f"retrieving the location of truck '{truck_id}'", e)


@router.put("/{truck_id}", summary="Update a truck's details")
async def update_truck(
    truck_id: str,
    payload: Dict[str, Any] = Body(...),
    service: TruckTrackingService = Depends(get_tracking_service),
) -> Dict[str, Any]:
    try:
        truck = service.update_truck_details(truck_id, payload)
        return _truck_response("Truck details updated successfully!", truck)
    except TrackingError:
        raise
    except Exception as e:
        raise _unexpected(f"updating truck '{truck_id}'", e)
