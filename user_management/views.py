# views.py - JWT login returning the caller's role and workload
import logging

from django.contrib.auth.models import User
from rest_framework import status
from rest_framework.response import Response
from rest_framework_simplejwt.views import TokenObtainPairView

from inspections.policies import pending_certificate_count
from user_management.models import UserActivity, UserProfile, UserRole

logger = logging.getLogger(__name__)


class CustomTokenObtainPairView(TokenObtainPairView):
    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        if response.status_code != status.HTTP_200_OK:
            return response

        try:
            user = User.objects.get(username=request.data['username'])
        except User.DoesNotExist:
            return Response({'error': 'Invalid credentials'}, status=status.HTTP_401_UNAUTHORIZED)

        profile, created = UserProfile.objects.get_or_create(user=user)
        if user.is_superuser and profile.role != UserRole.SYSTEM_ADMIN:
            profile.role = UserRole.SYSTEM_ADMIN
            profile.save(update_fields=['role', 'updated_at'])

        response.data['user'] = {
            'id': user.id,
            'username': user.username,
            'email': user.email,
            'full_name': user.get_full_name() or user.username,
            'role': profile.role,
            'role_display': profile.get_role_display(),
            'assigned_locations': list(profile.assigned_locations.values_list('id', flat=True)),
            'is_main_store_incharge': profile.is_main_store_incharge(),
            'can_create_inspection_certificates': profile.can_create_inspection_certificates(),
            'pending_certificates': pending_certificate_count(user),
        }

        UserActivity.log_activity(user, 'LOGIN', 'User', user.id)
        logger.info("User %s logged in", user.username)
        return response
