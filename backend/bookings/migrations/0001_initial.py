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
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('pickup_latitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('pickup_longitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('pickup_address', models.TextField(blank=True, default='')),
                ('pickup_cell', models.CharField(db_index=True, max_length=12)),
                ('destination_latitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('destination_longitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('destination_address', models.TextField(blank=True, default='')),
                ('estimated_distance_m', models.PositiveIntegerField(blank=True, null=True)),
                ('preferred_fare', models.DecimalField(decimal_places=2, max_digits=8)),
                ('agreed_fare', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True)),
                ('offer_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True)),
                ('offer_message', models.TextField(blank=True, default='')),
                ('offer_created_at', models.DateTimeField(blank=True, null=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('offer_made', 'Offer Made'), ('accepted', 'Accepted'), ('in_progress', 'In Progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('expired', 'Expired')], default='pending', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('expires_at', models.DateTimeField()),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('picked_up_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True, default='')),
                ('cancelled_by', models.CharField(blank=True, choices=[('passenger', 'Passenger'), ('driver', 'Driver'), ('system', 'System')], default='', max_length=10)),
                ('completion_latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('completion_longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('rating', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('rating_comment', models.TextField(blank=True, default='')),
                ('driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='driver_bookings', to=settings.AUTH_USER_MODEL)),
                ('offer_driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('passenger', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='bookings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'bookings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'pickup_cell'], name='booking_status_cell_idx'),
                    models.Index(fields=['passenger', 'status'], name='booking_passenger_status_idx'),
                    models.Index(fields=['driver', 'status'], name='booking_driver_status_idx'),
                    models.Index(fields=['status', 'expires_at'], name='booking_status_expiry_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status__in', ['pending', 'offer_made', 'accepted', 'in_progress'])), fields=('passenger',), name='one_open_booking_per_passenger'),
                    models.UniqueConstraint(condition=models.Q(('status__in', ['accepted', 'in_progress'])), fields=('driver',), name='one_active_trip_per_driver'),
                ],
            },
        ),
    ]
