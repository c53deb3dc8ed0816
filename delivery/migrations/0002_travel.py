import delivery.validators
import django.core.validators
import uuid
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('delivery', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Travel',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('traveler_id', models.CharField(db_index=True, max_length=128, verbose_name='traveler id')),
                ('from_country', models.CharField(max_length=100, verbose_name='from country')),
                ('from_city', models.CharField(max_length=100, verbose_name='from city')),
                ('from_airport', models.CharField(blank=True, default='', max_length=200, verbose_name='from airport')),
                ('from_airport_code', models.CharField(blank=True, default='', max_length=10, verbose_name='from airport code')),
                ('to_country', models.CharField(max_length=100, verbose_name='to country')),
                ('to_city', models.CharField(max_length=100, verbose_name='to city')),
                ('to_airport', models.CharField(blank=True, default='', max_length=200, verbose_name='to airport')),
                ('to_airport_code', models.CharField(blank=True, default='', max_length=10, verbose_name='to airport code')),
                ('departure_date', models.DateTimeField(verbose_name='departure date')),
                ('arrival_date', models.DateTimeField(blank=True, null=True, verbose_name='arrival date')),
                ('available_weight', models.DecimalField(decimal_places=2, max_digits=6, validators=[django.core.validators.MinValueValidator(Decimal('0.1'))], verbose_name='available weight')),
                ('weight_unit', models.CharField(default='kg', max_length=10, verbose_name='weight unit')),
                ('price_per_kg', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0'))], verbose_name='price per kg')),
                ('currency', models.CharField(default='USD', max_length=3, validators=[delivery.validators.validate_currency_code], verbose_name='currency')),
                ('flight_number', models.CharField(blank=True, default='', max_length=20, verbose_name='flight number')),
                ('status', models.CharField(choices=[('active', 'Active'), ('cancelled', 'Cancelled')], default='active', max_length=20, verbose_name='status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
            ],
            options={
                'verbose_name': 'travel',
                'verbose_name_plural': 'travels',
                'ordering': ['departure_date'],
                'indexes': [
                    models.Index(fields=['status', 'departure_date'], name='travel_status_departure_idx'),
                ],
            },
        ),
    ]
