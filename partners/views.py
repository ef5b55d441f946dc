"""
Partners App Views - Partner availability & profile API
"""

from rest_framework import permissions, serializers, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Partner, PartnerStatus
from .services import PartnerRegistry, PartnerStatusError


class IsPartner(permissions.BasePermission):
    """
    Authenticated user with a partner profile.

    Injects `request.partner` for downstream use.
    """

    message = "Only delivery partners can use this endpoint."

    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        partner = Partner.objects.filter(user=request.user).first()
        if partner is None or partner.status == PartnerStatus.DELETED:
            return False
        request.partner = partner
        return True


class AvailabilitySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[PartnerStatus.ACTIVE, PartnerStatus.OFFLINE])


class PartnerProfileSerializer(serializers.ModelSerializer):
    current_order = serializers.UUIDField(source='current_order_id', read_only=True)
    location = serializers.SerializerMethodField()

    class Meta:
        model = Partner
        fields = [
            'id', 'name', 'phone', 'email', 'status',
            'vehicle_type', 'vehicle_number', 'service_city',
            'rating', 'total_orders', 'completion_rate', 'cancel_rate',
            'avg_response_time', 'earnings_balance', 'current_order', 'location',
        ]
        read_only_fields = fields

    def get_location(self, obj):
        return obj.location_payload()


class PartnerProfileView(APIView):
    """
    GET /api/partner/me/
    """

    permission_classes = [IsPartner]

    def get(self, request):
        return Response(PartnerProfileSerializer(request.partner).data)


class PartnerAvailabilityView(APIView):
    """
    Partner goes online / offline.

    POST /api/partner/status/

    Request body:
    {
        "status": "active"
    }
    """

    permission_classes = [IsPartner]

    def post(self, request):
        serializer = AvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            partner = PartnerRegistry.set_availability(
                request.partner, serializer.validated_data['status']
            )
        except PartnerStatusError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)

        return Response({
            'status': 'ok',
            'partner': {
                'id': str(partner.id),
                'status': partner.status,
            }
        })
