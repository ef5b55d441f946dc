import uuid
from decimal import Decimal

import django.contrib.gis.db.models.fields
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Partner',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=150, verbose_name='Name')),
                ('phone', models.CharField(max_length=20, unique=True, verbose_name='Phone')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='Email')),
                ('status', models.CharField(choices=[('active', 'Active'), ('offline', 'Offline'), ('blocked', 'Blocked'), ('deleted', 'Deleted')], default='offline', max_length=10, verbose_name='Status')),
                ('device_token', models.CharField(blank=True, max_length=255, verbose_name='Push device token')),
                ('vehicle_type', models.CharField(choices=[('bike', 'Bike'), ('scooter', 'Scooter'), ('cycle', 'Cycle'), ('car', 'Car'), ('mini_truck', 'Mini truck'), ('large_truck', 'Large truck')], max_length=20, verbose_name='Vehicle type')),
                ('vehicle_number', models.CharField(blank=True, max_length=20, verbose_name='Vehicle number')),
                ('service_city', models.CharField(blank=True, max_length=100, verbose_name='Service city')),
                ('last_location', django.contrib.gis.db.models.fields.PointField(blank=True, geography=True, null=True, srid=4326, verbose_name='Last known position')),
                ('location_accuracy', models.FloatField(blank=True, null=True, verbose_name='Accuracy (m)')),
                ('location_heading', models.FloatField(blank=True, null=True, verbose_name='Heading (deg)')),
                ('location_speed', models.FloatField(blank=True, null=True, verbose_name='Speed (m/s)')),
                ('location_updated_at', models.DateTimeField(blank=True, null=True, verbose_name='Location updated at')),
                ('rating', models.FloatField(default=0.0, verbose_name='Rating')),
                ('total_orders', models.PositiveIntegerField(default=0, verbose_name='Orders taken')),
                ('completion_rate', models.FloatField(default=0.0, verbose_name='Completion rate')),
                ('cancel_rate', models.FloatField(default=0.0, verbose_name='Cancel rate')),
                ('avg_response_time', models.FloatField(default=0.0, verbose_name='Average response time (s)')),
                ('total_assigned', models.PositiveIntegerField(default=0)),
                ('total_accepted', models.PositiveIntegerField(default=0)),
                ('total_completed', models.PositiveIntegerField(default=0)),
                ('total_cancelled', models.PositiveIntegerField(default=0)),
                ('earnings_balance', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Earnings balance')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='partner_profile', to=settings.AUTH_USER_MODEL, verbose_name='Login account')),
            ],
            options={
                'verbose_name': 'Partner',
                'verbose_name_plural': 'Partners',
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['status', 'vehicle_type'], name='partner_status_vehicle_idx'),
                    models.Index(fields=['location_updated_at'], name='partner_location_fresh_idx'),
                ],
            },
        ),
    ]
