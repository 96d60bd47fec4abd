from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('user_management.urls')),
    path('api/', include('inspections.urls')),
    path('api/', include('inventory.urls')),
]
