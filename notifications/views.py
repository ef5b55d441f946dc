"""
Notifications App Views - Customer device registration
"""

from rest_framework import permissions, serializers, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import DeviceType, UserDevice


class DeviceRegistrationSerializer(serializers.Serializer):
    device_id = serializers.CharField(max_length=255)
    device_type = serializers.ChoiceField(choices=DeviceType.choices)
    name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    platform = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    app_version = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')


class DeviceRegistrationView(APIView):
    """
    Register the caller's device for order notifications.

    POST /api/devices/
    DELETE /api/devices/   {"device_id": "..."}
    """

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = DeviceRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        device = UserDevice.objects.register(request.user, **serializer.validated_data)
        return Response({
            'status': 'ok',
            'device': {
                'id': device.pk,
                'device_id': device.device_id,
                'device_type': device.device_type,
                'is_active': device.is_active,
            }
        }, status=status.HTTP_201_CREATED)

    def delete(self, request):
        device_id = request.data.get('device_id')
        if not device_id:
            return Response({'error': 'device_id is required'}, status=status.HTTP_400_BAD_REQUEST)

        updated = UserDevice.objects.filter(user=request.user, device_id=device_id).update(is_active=False)
        if not updated:
            return Response({'error': 'Unknown device'}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)
