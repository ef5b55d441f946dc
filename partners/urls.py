"""
Partners App URLs - Partner availability & profile
"""
from django.urls import path

from .views import PartnerAvailabilityView, PartnerProfileView

urlpatterns = [
    path('partner/me/', PartnerProfileView.as_view(), name='partner-profile'),
    path('partner/status/', PartnerAvailabilityView.as_view(), name='partner-status'),
]
