# user_management/models.py
from django.contrib.auth.models import User
from django.db import models
from django.db.models.signals import post_save
from django.dispatch import receiver


class UserRole(models.TextChoices):
    SYSTEM_ADMIN = 'SYSTEM_ADMIN', 'System Admin'
    LOCATION_HEAD = 'LOCATION_HEAD', 'Location Head'
    STOCK_INCHARGE = 'STOCK_INCHARGE', 'Stock Incharge'
    AUDITOR = 'AUDITOR', 'Auditor'


class UserProfile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='profile')
    role = models.CharField(max_length=20, choices=UserRole.choices, blank=True)

    # - LOCATION_HEAD: standalone locations
    # - STOCK_INCHARGE: stores
    assigned_locations = models.ManyToManyField(
        'inventory.Location',
        blank=True,
        related_name='assigned_users',
        help_text="Locations this user is directly assigned to manage"
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['role'], name='profile_role_idx'),
        ]

    def __str__(self):
        return f"{self.user.username} - {self.get_role_display()}"

    def get_responsible_location(self):
        """
        Location this user is primarily responsible for.
        - LOCATION_HEAD: first assigned standalone location
        - STOCK_INCHARGE: first assigned store
        - others: the root location
        """
        from inventory.models import Location

        if self.role == UserRole.LOCATION_HEAD:
            return self.assigned_locations.filter(is_standalone=True).first()

        if self.role == UserRole.STOCK_INCHARGE:
            return self.assigned_locations.filter(is_store=True).first()

        return Location.objects.filter(parent_location__isnull=True).first()

    def has_location_access(self, location):
        if location is None:
            return False

        if self.role in [UserRole.SYSTEM_ADMIN, UserRole.AUDITOR]:
            return True

        if self.assigned_locations.filter(id=location.id).exists():
            return True

        responsible_loc = self.get_responsible_location()
        if not responsible_loc:
            return False

        # Location Head: every descendant of their standalone location
        if self.role == UserRole.LOCATION_HEAD:
            return location == responsible_loc or location.is_descendant_of(responsible_loc)

        # Stock Incharge: locations under the same parent standalone as their store
        if self.role == UserRole.STOCK_INCHARGE:
            location_standalone = location.get_parent_standalone()
            store_standalone = responsible_loc.get_parent_standalone()
            return bool(location_standalone and location_standalone == store_standalone)

        return False

    def is_main_store_incharge(self):
        """Stock Incharge of the root location's main store (the Central Store)."""
        if self.role != UserRole.STOCK_INCHARGE:
            return False

        return self.assigned_locations.filter(
            is_store=True,
            is_main_store=True,
            is_active=True,
            parent_location__parent_location__isnull=True
        ).exists()

    def can_create_inspection_certificates(self):
        if self.role == UserRole.SYSTEM_ADMIN:
            return True

        if self.role == UserRole.LOCATION_HEAD:
            responsible_loc = self.get_responsible_location()
            return bool(responsible_loc and responsible_loc.is_standalone)

        return False


class UserActivity(models.Model):
    ACTION_CHOICES = [
        ('LOGIN', 'Login'),
        ('CREATE_INSPECTION_CERTIFICATE', 'Create Inspection Certificate'),
        ('UPDATE_INSPECTION_CERTIFICATE', 'Update Inspection Certificate'),
        ('STAGE_TRANSITION', 'Stage Transition'),
        ('LINK_INSPECTION_ITEM', 'Link Inspection Item'),
        ('UNLINK_INSPECTION_ITEM', 'Unlink Inspection Item'),
        ('CREATE_ITEM', 'Create Item'),
        ('CREATE_SUB_CATEGORY', 'Create Sub-Category'),
        ('REJECTION_CLEANUP', 'Rejection Cleanup'),
        ('STOCK_ENTRY', 'Stock Entry'),
        ('DOWNLOAD_PDF', 'Download PDF'),
    ]

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='activities',
        null=True,
        blank=True
    )
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model = models.CharField(max_length=50)
    object_id = models.IntegerField(null=True, blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='activity_user_created_idx'),
            models.Index(fields=['action'], name='activity_action_idx'),
        ]
        verbose_name_plural = 'User Activities'

    def __str__(self):
        username = self.user.username if self.user else 'System'
        return f"{username} - {self.get_action_display()} - {self.created_at:%Y-%m-%d %H:%M}"

    @classmethod
    def log_activity(cls, user, action, model, object_id=None, details=None):
        """Record an audit entry; anonymous callers are stored as system actions."""
        if user is not None and not getattr(user, 'is_authenticated', False):
            user = None
        return cls.objects.create(
            user=user,
            action=action,
            model=model,
            object_id=object_id,
            details=details or {}
        )


@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    if created:
        UserProfile.objects.get_or_create(user=instance)
