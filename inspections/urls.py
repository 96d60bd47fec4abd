from django.urls import include, path
from rest_framework.routers import DefaultRouter

from inspections.views import InspectionCertificateViewSet

router = DefaultRouter()
router.register(r'inspection-certificates', InspectionCertificateViewSet, basename='inspection-certificate')

urlpatterns = [
    path('', include(router.urls)),
]
