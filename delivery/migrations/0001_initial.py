import delivery.validators
import django.core.validators
import django.db.models.deletion
import uuid
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Shipment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('origin_country', models.CharField(max_length=100, verbose_name='origin country')),
                ('origin_city', models.CharField(max_length=100, verbose_name='origin city')),
                ('origin_address', models.CharField(blank=True, default='', max_length=300, verbose_name='origin address')),
                ('meeting_point', models.CharField(blank=True, default='', max_length=300, verbose_name='meeting point')),
                ('dest_country', models.CharField(max_length=100, verbose_name='destination country')),
                ('dest_city', models.CharField(max_length=100, verbose_name='destination city')),
                ('dest_address', models.CharField(blank=True, default='', max_length=300, verbose_name='destination address')),
                ('weight', models.DecimalField(decimal_places=2, help_text='Package weight, 0.1 up to the configured maximum', max_digits=6, validators=[django.core.validators.MinValueValidator(Decimal('0.1'))], verbose_name='weight')),
                ('weight_unit', models.CharField(default='kg', max_length=10, verbose_name='weight unit')),
                ('content', models.CharField(max_length=300, verbose_name='content')),
                ('package_type', models.CharField(blank=True, default='', max_length=50, verbose_name='package type')),
                ('image_url', models.URLField(blank=True, default='', max_length=500, verbose_name='image url')),
                ('date_start', models.DateTimeField(verbose_name='delivery window start')),
                ('date_end', models.DateTimeField(verbose_name='delivery window end')),
                ('price', models.DecimalField(decimal_places=2, max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('1.00'))], verbose_name='price')),
                ('currency', models.CharField(default='USD', max_length=3, validators=[delivery.validators.validate_currency_code], verbose_name='currency')),
                ('sender_phone', models.CharField(blank=True, default='', max_length=20, validators=[delivery.validators.validate_phone_number], verbose_name='sender phone')),
                ('sender_id', models.CharField(db_index=True, max_length=128, verbose_name='sender id')),
                ('courier_id', models.CharField(blank=True, db_index=True, max_length=128, null=True, verbose_name='courier id')),
                ('status', models.CharField(choices=[('open', 'Open'), ('matched', 'Matched'), ('handed_over', 'Handed Over'), ('on_way', 'On The Way'), ('delivered', 'Delivered'), ('cancelled', 'Cancelled')], default='open', max_length=20, verbose_name='status')),
                ('sender_confirmed_handover', models.BooleanField(default=False)),
                ('courier_confirmed_handover', models.BooleanField(default=False)),
                ('sender_confirmed_delivery', models.BooleanField(default=False)),
                ('courier_confirmed_delivery', models.BooleanField(default=False)),
                ('handover_confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('delivery_confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
            ],
            options={
                'verbose_name': 'shipment',
                'verbose_name_plural': 'shipments',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='shipment_status_idx'),
                    models.Index(fields=['created_at'], name='shipment_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PaymentMethod',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.CharField(db_index=True, max_length=128, verbose_name='user id')),
                ('card_type', models.CharField(max_length=20, verbose_name='card type')),
                ('last_four', models.CharField(max_length=4, verbose_name='last four digits')),
                ('card_holder', models.CharField(max_length=200, verbose_name='card holder')),
                ('expiry_month', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(12)])),
                ('expiry_year', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(2024)])),
                ('is_default', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
            ],
            options={
                'verbose_name': 'payment method',
                'verbose_name_plural': 'payment methods',
                'ordering': ['-is_default', '-created_at'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_default', True)), fields=('user_id',), name='single_default_payment_method'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Offer',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('courier_id', models.CharField(db_index=True, max_length=128, verbose_name='courier id')),
                ('message', models.TextField(verbose_name='message')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('rejected', 'Rejected')], default='pending', max_length=20, verbose_name='status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('shipment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='offers', to='delivery.shipment')),
            ],
            options={
                'verbose_name': 'offer',
                'verbose_name_plural': 'offers',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('shipment', 'courier_id'), name='unique_offer_per_courier'),
                    models.UniqueConstraint(condition=models.Q(('status', 'accepted')), fields=('shipment',), name='single_accepted_offer_per_shipment'),
                ],
            },
        ),
        migrations.CreateModel(
            name='EscrowTransaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))], verbose_name='amount')),
                ('currency', models.CharField(max_length=3, validators=[delivery.validators.validate_currency_code], verbose_name='currency')),
                ('status', models.CharField(choices=[('held', 'Held'), ('released', 'Released'), ('refunded', 'Refunded')], default='held', max_length=20, verbose_name='status')),
                ('payer_id', models.CharField(db_index=True, max_length=128, verbose_name='payer id')),
                ('payee_id', models.CharField(db_index=True, max_length=128, verbose_name='payee id')),
                ('description', models.CharField(blank=True, default='', max_length=300, verbose_name='description')),
                ('released_at', models.DateTimeField(blank=True, null=True)),
                ('refunded_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('payment_method', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transactions', to='delivery.paymentmethod')),
                ('shipment', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='delivery.shipment')),
            ],
            options={
                'verbose_name': 'escrow transaction',
                'verbose_name_plural': 'escrow transactions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='escrow_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'refunded'), _negated=True), fields=('shipment',), name='single_active_transaction_per_shipment'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Conversation',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user1_id', models.CharField(db_index=True, max_length=128)),
                ('user2_id', models.CharField(db_index=True, max_length=128)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('active', 'Active'), ('matched', 'Matched')], default='pending', max_length=20)),
                ('last_message', models.TextField(blank=True, default='')),
                ('last_message_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('shipment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='conversations', to='delivery.shipment')),
            ],
            options={
                'ordering': ['-updated_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('shipment', 'user1_id', 'user2_id'), name='unique_conversation_per_pair'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sender_id', models.CharField(max_length=128)),
                ('kind', models.CharField(choices=[('text', 'Text'), ('system', 'System'), ('offer', 'Offer'), ('match_request', 'Match Request')], default='text', max_length=20)),
                ('content', models.TextField()),
                ('is_read', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('conversation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='delivery.conversation')),
            ],
            options={
                'ordering': ['created_at', 'id'],
            },
        ),
    ]
