import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

ORDER_STATUS_CHOICES = [
    ('pending', 'Pending'),
    ('assigned', 'Partner assigned'),
    ('picked', 'Picked up'),
    ('in_transit', 'In transit'),
    ('delivered', 'Delivered'),
    ('cancelled', 'Cancelled'),
]

VEHICLE_CHOICES = [
    ('bike', 'Bike'),
    ('scooter', 'Scooter'),
    ('cycle', 'Cycle'),
    ('car', 'Car'),
    ('mini_truck', 'Mini truck'),
    ('large_truck', 'Large truck'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('partners', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='DispatchConfiguration',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('initial_radius_m', models.PositiveIntegerField(default=3000, verbose_name='Initial radius (m)')),
                ('radius_increment_m', models.PositiveIntegerField(default=1000, help_text='Added to the radius after each failed round', verbose_name='Radius increment (m)')),
                ('max_attempts', models.PositiveSmallIntegerField(default=3, verbose_name='Max rounds')),
                ('offer_timeout_seconds', models.PositiveIntegerField(default=30, verbose_name='Offer deadline (s)')),
                ('max_candidates', models.PositiveSmallIntegerField(default=5, verbose_name='Partners offered per round')),
                ('min_completion_rate', models.FloatField(default=0.8, help_text='Strictly greater than', verbose_name='Minimum completion rate')),
                ('min_rating', models.FloatField(default=4.0, help_text='Strictly greater than', verbose_name='Minimum rating')),
                ('location_freshness_minutes', models.PositiveIntegerField(default=30, verbose_name='Location freshness (min)')),
                ('partner_share_percent', models.DecimalField(decimal_places=2, default=Decimal('80.00'), max_digits=5, verbose_name='Partner share (%)')),
                ('peak_hour_bonus', models.DecimalField(decimal_places=2, default=Decimal('50.00'), max_digits=8, verbose_name='Peak hour incentive')),
                ('long_distance_bonus', models.DecimalField(decimal_places=2, default=Decimal('100.00'), max_digits=8, verbose_name='Long distance incentive')),
                ('long_distance_threshold_km', models.FloatField(default=10.0, verbose_name='Long distance threshold (km)')),
                ('average_speed_kmh', models.FloatField(default=25.0, help_text='Used for the pickup ETA shown in offers', verbose_name='Average speed (km/h)')),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('notes', models.TextField(blank=True)),
            ],
            options={
                'verbose_name': 'Dispatch configuration',
                'verbose_name_plural': 'Dispatch configuration',
            },
        ),
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('order_type', models.CharField(choices=[('courier', 'Courier'), ('pickup_drop', 'Pickup & drop')], default='courier', max_length=20, verbose_name='Type')),
                ('status', models.CharField(choices=ORDER_STATUS_CHOICES, default='pending', max_length=20, verbose_name='Status')),
                ('dispatch_state', models.CharField(choices=[('idle', 'Not dispatching'), ('searching', 'Searching'), ('offer_outstanding', 'Offer outstanding'), ('assigned', 'Assigned'), ('exhausted', 'No partner found')], default='idle', max_length=20, verbose_name='Dispatch state')),
                ('dispatch_run', models.PositiveIntegerField(default=0, help_text='Incremented each time a dispatch process starts for this order', verbose_name='Dispatch run')),
                ('vehicle_type', models.CharField(choices=VEHICLE_CHOICES, max_length=20, verbose_name='Vehicle type')),
                ('pickup_lat', models.FloatField(verbose_name='Pickup latitude')),
                ('pickup_lng', models.FloatField(verbose_name='Pickup longitude')),
                ('pickup_address', models.CharField(blank=True, max_length=255, verbose_name='Pickup address')),
                ('pickup_landmark', models.CharField(blank=True, max_length=255)),
                ('pickup_pincode', models.CharField(blank=True, max_length=12)),
                ('pickup_contact_name', models.CharField(blank=True, max_length=150)),
                ('pickup_contact_phone', models.CharField(blank=True, max_length=20)),
                ('pickup_scheduled_time', models.DateTimeField(blank=True, null=True)),
                ('pickup_actual_time', models.DateTimeField(blank=True, null=True)),
                ('package', models.JSONField(blank=True, default=dict, help_text='type, weight, dimensions, value, description', verbose_name='Package details')),
                ('pricing_base', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('pricing_distance', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('pricing_weight', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('pricing_surge', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('pricing_tax', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('pricing_total', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='Total price')),
                ('pricing_currency', models.CharField(default='INR', max_length=3)),
                ('pricing_breakdown', models.JSONField(blank=True, default=dict)),
                ('payment_status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed'), ('failed', 'Failed'), ('refunded', 'Refunded')], default='pending', max_length=20)),
                ('payment_method', models.CharField(choices=[('cash', 'Cash'), ('card', 'Card'), ('upi', 'UPI'), ('wallet', 'Wallet')], default='cash', max_length=20)),
                ('payment_transaction_id', models.CharField(blank=True, max_length=100)),
                ('payment_paid_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('tracking_enabled', models.BooleanField(default=False, verbose_name='Live tracking on')),
                ('live_lat', models.FloatField(blank=True, null=True)),
                ('live_lng', models.FloatField(blank=True, null=True)),
                ('live_timestamp', models.DateTimeField(blank=True, null=True, verbose_name='Last ping at')),
                ('live_accuracy', models.FloatField(blank=True, null=True)),
                ('live_speed', models.FloatField(blank=True, null=True)),
                ('live_bearing', models.FloatField(blank=True, null=True)),
                ('planned_path', models.JSONField(blank=True, default=list, help_text='[[lon, lat], ...]')),
                ('route_distance_planned', models.FloatField(blank=True, null=True, verbose_name='Planned distance (m)')),
                ('route_distance_remaining', models.FloatField(blank=True, null=True, verbose_name='Remaining distance (m)')),
                ('route_duration_remaining', models.FloatField(blank=True, null=True, verbose_name='Remaining duration (s)')),
                ('route_eta', models.DateTimeField(blank=True, null=True, verbose_name='ETA')),
                ('route_refreshed_at', models.DateTimeField(blank=True, null=True)),
                ('requires_signature', models.BooleanField(default=False, verbose_name='Signature required')),
                ('max_drops', models.PositiveSmallIntegerField(default=5, verbose_name='Max drops')),
                ('route_optimized', models.BooleanField(default=False, verbose_name='Route optimized')),
                ('ratings', models.JSONField(blank=True, default=dict)),
                ('issues', models.JSONField(blank=True, default=list)),
                ('cancellation_reason', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('assigned_at', models.DateTimeField(blank=True, null=True)),
                ('picked_at', models.DateTimeField(blank=True, null=True)),
                ('in_transit_at', models.DateTimeField(blank=True, null=True)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('partner', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='orders', to='partners.partner', verbose_name='Partner')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders', to=settings.AUTH_USER_MODEL, verbose_name='Customer')),
            ],
            options={
                'verbose_name': 'Order',
                'verbose_name_plural': 'Orders',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
                    models.Index(fields=['dispatch_state'], name='order_dispatch_state_idx'),
                    models.Index(fields=['partner', 'status'], name='order_partner_status_idx'),
                    models.Index(fields=['user', 'created_at'], name='order_user_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DropPoint',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sequence', models.PositiveSmallIntegerField(verbose_name='Sequence')),
                ('lat', models.FloatField()),
                ('lng', models.FloatField()),
                ('address', models.CharField(blank=True, max_length=255)),
                ('landmark', models.CharField(blank=True, max_length=255)),
                ('pincode', models.CharField(blank=True, max_length=12)),
                ('contact_name', models.CharField(blank=True, max_length=150)),
                ('contact_phone', models.CharField(blank=True, max_length=20)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('delivered', 'Delivered')], default='pending', max_length=20)),
                ('scheduled_time', models.DateTimeField(blank=True, null=True)),
                ('actual_time', models.DateTimeField(blank=True, null=True)),
                ('proof', models.JSONField(blank=True, help_text='photos, signature, otp, receiverName, receiverRelation, location, notes', null=True, verbose_name='Proof of delivery')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='drops', to='logistics.order', verbose_name='Order')),
            ],
            options={
                'verbose_name': 'Drop point',
                'verbose_name_plural': 'Drop points',
                'ordering': ['order', 'sequence'],
                'constraints': [
                    models.UniqueConstraint(fields=('order', 'sequence'), name='unique_drop_sequence'),
                    models.CheckConstraint(condition=models.Q(('sequence__gte', 1)), name='drop_sequence_from_one'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TrackingEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('status_change', 'Status change'), ('location_update', 'Location update')], default='status_change', max_length=20)),
                ('status', models.CharField(choices=ORDER_STATUS_CHOICES, max_length=20)),
                ('timestamp', models.DateTimeField(db_index=True)),
                ('location_lat', models.FloatField(blank=True, null=True)),
                ('location_lng', models.FloatField(blank=True, null=True)),
                ('note', models.CharField(blank=True, max_length=255)),
                ('actor_type', models.CharField(choices=[('system', 'System'), ('partner', 'Partner'), ('admin', 'Admin'), ('user', 'User')], max_length=10)),
                ('actor_id', models.CharField(blank=True, max_length=64)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='history', to='logistics.order', verbose_name='Order')),
            ],
            options={
                'verbose_name': 'Tracking event',
                'verbose_name_plural': 'Tracking events',
                'ordering': ['timestamp', 'id'],
            },
        ),
        migrations.CreateModel(
            name='DispatchAttempt',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('run', models.PositiveIntegerField(default=1)),
                ('attempt_number', models.PositiveSmallIntegerField(verbose_name='Attempt (0-based)')),
                ('radius_m', models.PositiveIntegerField(verbose_name='Search radius (m)')),
                ('state', models.CharField(choices=[('searching', 'Searching'), ('offer_outstanding', 'Offer outstanding'), ('accepted', 'Accepted'), ('expired', 'Expired'), ('no_candidates', 'No candidates'), ('abandoned', 'Abandoned')], default='searching', max_length=20)),
                ('deadline', models.DateTimeField(blank=True, null=True)),
                ('timer_task_id', models.CharField(blank=True, max_length=64)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='dispatch_attempts', to='logistics.order')),
            ],
            options={
                'verbose_name': 'Dispatch attempt',
                'verbose_name_plural': 'Dispatch attempts',
                'ordering': ['order', 'run', 'attempt_number'],
                'constraints': [
                    models.UniqueConstraint(fields=('order', 'run', 'attempt_number'), name='unique_dispatch_attempt'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DispatchOffer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rank', models.PositiveSmallIntegerField()),
                ('distance_m', models.FloatField()),
                ('notified', models.BooleanField(default=False)),
                ('outcome', models.CharField(choices=[('pending', 'Pending'), ('won', 'Won'), ('lost', 'Lost'), ('expired', 'Expired')], default='pending', max_length=10)),
                ('offered_at', models.DateTimeField(auto_now_add=True)),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('attempt', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='offers', to='logistics.dispatchattempt')),
                ('partner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='dispatch_offers', to='partners.partner')),
            ],
            options={
                'verbose_name': 'Dispatch offer',
                'verbose_name_plural': 'Dispatch offers',
                'ordering': ['attempt', 'rank'],
                'constraints': [
                    models.UniqueConstraint(fields=('attempt', 'partner'), name='unique_offer_per_round'),
                ],
            },
        ),
    ]
