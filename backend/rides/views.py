from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from common.exceptions import DomainError
from common.http import error_response
from common.utils import retry_on_conflict
from services.ride_management import RideLifecycleCoordinator

from .serializers import (
    AcceptRideSerializer,
    RideFilterSerializer,
    RideRequestCreateSerializer,
    RideRequestSerializer,
)


def _ride_response(result, status_code=status.HTTP_200_OK, **extra):
    body = {"message": result.message, **extra}
    if result.ride is not None:
        body["ride"] = RideRequestSerializer(result.ride).data
    return Response(body, status=status_code)


# ==================== Ride listing & creation ====================

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def rides_collection(request):
    """
    GET:  Browse rides. Query params are validated by RideFilterSerializer;
          without any date params only rides from today through the
          default window are returned.
    POST: Create a ride owned by the caller.
    """
    coordinator = RideLifecycleCoordinator()

    if request.method == 'GET':
        filter_ser = RideFilterSerializer(data=request.query_params)
        filter_ser.is_valid(raise_exception=True)
        rides = coordinator.list_rides(filter_ser.to_filter())
        data = RideRequestSerializer(rides, many=True).data
        return Response({"count": len(data), "rides": data})

    create_ser = RideRequestCreateSerializer(data=request.data)
    create_ser.is_valid(raise_exception=True)

    try:
        result = coordinator.create_ride(request.user, **create_ser.validated_data)
    except DomainError as exc:
        return error_response(exc)

    return _ride_response(result, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def created_rides(request):
    """Rides the caller created, latest ride time first"""
    rides = RideLifecycleCoordinator().created_rides(request.user.id)
    data = RideRequestSerializer(rides, many=True).data
    return Response({"count": len(data), "rides": data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def joined_rides(request):
    """Rides the caller joined as a passenger, latest ride time first"""
    rides = RideLifecycleCoordinator().joined_rides(request.user.id)
    data = RideRequestSerializer(rides, many=True).data
    return Response({"count": len(data), "rides": data})


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def ride_detail(request, ride_id):
    """
    GET:    Ride details
    DELETE: Owner deletes the ride with its conversation and messages
    """
    coordinator = RideLifecycleCoordinator()
    try:
        if request.method == 'GET':
            ride = coordinator.get_ride(ride_id)
            return Response(RideRequestSerializer(ride).data)

        result = retry_on_conflict(
            lambda: coordinator.delete_ride(ride_id, requested_by=request.user.id)
        )
    except DomainError as exc:
        return error_response(exc)

    return Response({"success": True, "message": result.message})


# ==================== Seat operations ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def join_ride(request, ride_id):
    """Caller takes a seat; returns the conversation with the owner"""
    coordinator = RideLifecycleCoordinator()
    try:
        result = retry_on_conflict(lambda: coordinator.join_ride(ride_id, request.user.id))
    except DomainError as exc:
        return error_response(exc)

    return _ride_response(result, conversation_id=result.conversation_id)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_ride(request, ride_id):
    """
    Seat another user on the ride.

    POST Body:
    {
        "user_id": 42
    }
    """
    ser = AcceptRideSerializer(data=request.data)
    ser.is_valid(raise_exception=True)

    coordinator = RideLifecycleCoordinator()
    try:
        result = retry_on_conflict(
            lambda: coordinator.accept_direct(
                ride_id, ser.validated_data["user_id"], accepted_by=request.user.id
            )
        )
    except DomainError as exc:
        return error_response(exc)

    return _ride_response(result, conversation_id=result.conversation_id)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def leave_ride(request, ride_id):
    """Caller gives up their seat"""
    coordinator = RideLifecycleCoordinator()
    try:
        result = retry_on_conflict(lambda: coordinator.unjoin_ride(ride_id, request.user.id))
    except DomainError as exc:
        return error_response(exc)

    return Response({"success": True, "message": result.message})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def reject_ride(request, ride_id):
    """Caller rejects a ride they joined; owner and other passengers are told"""
    coordinator = RideLifecycleCoordinator()
    try:
        result = retry_on_conflict(lambda: coordinator.reject_ride(ride_id, request.user.id))
    except DomainError as exc:
        return error_response(exc)

    return Response({"success": True, "message": result.message})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def remove_passenger(request, ride_id, passenger_id):
    """Owner removes a passenger from the ride"""
    coordinator = RideLifecycleCoordinator()
    try:
        result = retry_on_conflict(
            lambda: coordinator.remove_passenger(ride_id, request.user.id, passenger_id)
        )
    except DomainError as exc:
        return error_response(exc)

    return _ride_response(result)


# ==================== Owner transitions ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_ride(request, ride_id):
    """Owner cancels the ride; every passenger is notified"""
    coordinator = RideLifecycleCoordinator()
    try:
        result = retry_on_conflict(lambda: coordinator.cancel_ride(ride_id, request.user.id))
    except DomainError as exc:
        return error_response(exc)

    return _ride_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def complete_ride(request, ride_id):
    """Owner completes an accepted ride; every passenger is notified"""
    coordinator = RideLifecycleCoordinator()
    try:
        result = retry_on_conflict(lambda: coordinator.complete_ride(ride_id, request.user.id))
    except DomainError as exc:
        return error_response(exc)

    return _ride_response(result)
