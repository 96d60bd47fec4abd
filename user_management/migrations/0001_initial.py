import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('inventory', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='UserProfile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(blank=True, choices=[('SYSTEM_ADMIN', 'System Admin'), ('LOCATION_HEAD', 'Location Head'), ('STOCK_INCHARGE', 'Stock Incharge'), ('AUDITOR', 'Auditor')], max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('assigned_locations', models.ManyToManyField(blank=True, help_text='Locations this user is directly assigned to manage', related_name='assigned_users', to='inventory.location')),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'indexes': [
                    models.Index(fields=['role'], name='profile_role_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserActivity',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[('LOGIN', 'Login'), ('CREATE_INSPECTION_CERTIFICATE', 'Create Inspection Certificate'), ('UPDATE_INSPECTION_CERTIFICATE', 'Update Inspection Certificate'), ('STAGE_TRANSITION', 'Stage Transition'), ('LINK_INSPECTION_ITEM', 'Link Inspection Item'), ('UNLINK_INSPECTION_ITEM', 'Unlink Inspection Item'), ('CREATE_ITEM', 'Create Item'), ('CREATE_SUB_CATEGORY', 'Create Sub-Category'), ('REJECTION_CLEANUP', 'Rejection Cleanup'), ('STOCK_ENTRY', 'Stock Entry'), ('DOWNLOAD_PDF', 'Download PDF')], max_length=50)),
                ('model', models.CharField(max_length=50)),
                ('object_id', models.IntegerField(blank=True, null=True)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='activities', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name_plural': 'User Activities',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', '-created_at'], name='activity_user_created_idx'),
                    models.Index(fields=['action'], name='activity_action_idx'),
                ],
            },
        ),
    ]
