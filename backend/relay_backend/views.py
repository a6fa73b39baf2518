import logging

from django.utils import timezone
from rest_framework.decorators import api_view
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from common.utils import Coordinate
from realtime.registry import Role, get_presence_registry
from realtime.sweeper import presence_max_age
from services.matching import find_nearby_drivers
from services.matching.nearby import default_radius, is_valid_radius

logger = logging.getLogger(__name__)


@api_view(["GET"])
def health_check(request):
    """Health check endpoint for monitoring system status"""

    registry = get_presence_registry()
    health_status = {
        "status": "healthy",
        "timestamp": timezone.now().isoformat(),
        "onlineUsers": registry.count(),
        "services": {}
    }

    # Channel layer check
    try:
        channel_layer = get_channel_layer()
        if channel_layer is not None:
            health_status["services"]["channels"] = "healthy"
        else:
            health_status["services"]["channels"] = "unhealthy: no channel layer"
            health_status["status"] = "unhealthy"
    except Exception as e:
        health_status["services"]["channels"] = f"unhealthy: {e}"
        health_status["status"] = "unhealthy"

    status_code = (
        status.HTTP_200_OK
        if health_status["status"] == "healthy"
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )

    return Response(health_status, status=status_code)


@api_view(["GET"])
def stats(request):
    """Online participant counts and the current driver positions."""
    registry = get_presence_registry()
    drivers = registry.list_by_role(Role.DRIVER)
    counts = registry.count_by_role()

    return Response({
        "total": registry.count(),
        "drivers": counts[Role.DRIVER.value],
        "riders": counts[Role.RIDER.value],
        "driverList": [
            {
                "id": d.id,
                "location": d.location.to_dict() if d.location else None,
            }
            for d in drivers
        ],
    })


@api_view(["POST"])
def cleanup(request):
    """Run the staleness sweep now instead of waiting for the background sweeper."""
    registry = get_presence_registry()
    before_count = registry.count()
    cleaned_count = registry.sweep(presence_max_age())
    after_count = registry.count()

    logger.info("Cleanup removed %s stale participants", cleaned_count)
    return Response({
        "status": "cleanup completed",
        "beforeCount": before_count,
        "afterCount": after_count,
        "cleanedCount": cleaned_count,
        "timestamp": timezone.now().isoformat(),
    })


@api_view(["POST"])
def reset(request):
    """Drop every participant. Development and maintenance only."""
    before_count = get_presence_registry().clear()

    logger.warning("Registry reset, %s participants dropped", before_count)
    return Response({
        "status": "all users cleared",
        "beforeCount": before_count,
        "afterCount": 0,
        "timestamp": timezone.now().isoformat(),
    })


@api_view(["GET"])
def nearby_drivers(request):
    """Online drivers around ``userLat``/``userLng``, nearest first."""
    user_lat = request.query_params.get("userLat")
    user_lng = request.query_params.get("userLng")
    if not user_lat or not user_lng:
        return Response({"error": "userLat and userLng are required"}, status=status.HTTP_400_BAD_REQUEST)

    try:
        origin = Coordinate(float(user_lat), float(user_lng))
        radius = float(request.query_params.get("radius", default_radius()))
    except ValueError:
        return Response({"error": "userLat, userLng and radius must be numbers"}, status=status.HTTP_400_BAD_REQUEST)

    if not origin.is_matchable or not is_valid_radius(radius):
        return Response({"error": "Coordinates or radius out of range"}, status=status.HTTP_400_BAD_REQUEST)

    matches = find_nearby_drivers(origin, radius)
    drivers = [
        {
            "id": m.participant.id,
            "latitude": m.participant.location.latitude,
            "longitude": m.participant.location.longitude,
            "distance": round(m.distance_meters),
            "lastSeen": m.participant.last_seen_ms,
        }
        for m in matches
    ]

    return Response({
        "success": True,
        "drivers": drivers,
        "count": len(drivers),
    })
