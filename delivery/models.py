"""
Data model for the peer delivery marketplace.

Shipment is the aggregate root. Offers and escrow transactions are child
rows addressed by shipment and are written under the same database
transaction as their parent whenever a workflow step touches both.
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .validators import validate_currency_code, validate_phone_number


USER_ID_MAX_LENGTH = 128


class Shipment(models.Model):
    """
    A sender's request to move a package between two cities.

    Fields:
    - route facts: origin/destination country, city, address, meeting point
    - package facts: weight, weight_unit, content, package_type, image_url
    - delivery window: date_start, date_end
    - pricing: price, currency
    - sender_id: Owner, set at creation and never changed
    - courier_id: Assigned courier, set when matched
    - status: Lifecycle status (see VALID_TRANSITIONS)
    - handover flags: sender_confirmed_handover, courier_confirmed_handover
    - delivery flags: sender_confirmed_delivery, courier_confirmed_delivery
    - handover_confirmed_at / delivery_confirmed_at: Dual-confirmation timestamps
    - created_at / updated_at
    """

    OPEN = 'open'
    MATCHED = 'matched'
    HANDED_OVER = 'handed_over'
    ON_WAY = 'on_way'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (OPEN, 'Open'),
        (MATCHED, 'Matched'),
        (HANDED_OVER, 'Handed Over'),
        (ON_WAY, 'On The Way'),
        (DELIVERED, 'Delivered'),
        (CANCELLED, 'Cancelled'),
    ]

    # Statuses in which a courier must be assigned
    COURIER_STATUSES = (MATCHED, HANDED_OVER, ON_WAY, DELIVERED)

    TERMINAL_STATUSES = (DELIVERED, CANCELLED)

    # Both dual-confirmation phases start over on every new match
    UNCONFIRMED = {
        'sender_confirmed_handover': False,
        'courier_confirmed_handover': False,
        'sender_confirmed_delivery': False,
        'courier_confirmed_delivery': False,
        'handover_confirmed_at': None,
        'delivery_confirmed_at': None,
    }

    VALID_TRANSITIONS = {
        OPEN: [MATCHED, CANCELLED],
        MATCHED: [OPEN, HANDED_OVER, ON_WAY, DELIVERED],
        HANDED_OVER: [ON_WAY, DELIVERED],
        ON_WAY: [DELIVERED],
        DELIVERED: [],
        CANCELLED: [],
    }

    # Route/package facts and ownership are fixed once the shipment exists
    IMMUTABLE_FIELDS = (
        'sender_id',
        'origin_country',
        'origin_city',
        'dest_country',
        'dest_city',
        'weight',
        'content',
        'price',
        'currency',
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    origin_country = models.CharField(_('origin country'), max_length=100)
    origin_city = models.CharField(_('origin city'), max_length=100)
    origin_address = models.CharField(_('origin address'), max_length=300, blank=True, default='')
    meeting_point = models.CharField(_('meeting point'), max_length=300, blank=True, default='')

    dest_country = models.CharField(_('destination country'), max_length=100)
    dest_city = models.CharField(_('destination city'), max_length=100)
    dest_address = models.CharField(_('destination address'), max_length=300, blank=True, default='')

    weight = models.DecimalField(
        _('weight'),
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.1'))],
        help_text=_('Package weight, 0.1 up to the configured maximum')
    )
    weight_unit = models.CharField(_('weight unit'), max_length=10, default='kg')
    content = models.CharField(_('content'), max_length=300)
    package_type = models.CharField(_('package type'), max_length=50, blank=True, default='')
    image_url = models.URLField(_('image url'), max_length=500, blank=True, default='')

    date_start = models.DateTimeField(_('delivery window start'))
    date_end = models.DateTimeField(_('delivery window end'))

    price = models.DecimalField(
        _('price'),
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('1.00'))],
    )
    currency = models.CharField(
        _('currency'),
        max_length=3,
        default='USD',
        validators=[validate_currency_code],
    )

    sender_phone = models.CharField(
        _('sender phone'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number],
    )

    sender_id = models.CharField(_('sender id'), max_length=USER_ID_MAX_LENGTH, db_index=True)
    courier_id = models.CharField(
        _('courier id'),
        max_length=USER_ID_MAX_LENGTH,
        null=True,
        blank=True,
        db_index=True,
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=OPEN,
    )

    sender_confirmed_handover = models.BooleanField(default=False)
    courier_confirmed_handover = models.BooleanField(default=False)
    sender_confirmed_delivery = models.BooleanField(default=False)
    courier_confirmed_delivery = models.BooleanField(default=False)

    handover_confirmed_at = models.DateTimeField(null=True, blank=True)
    delivery_confirmed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('shipment')
        verbose_name_plural = _('shipments')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='shipment_status_idx'),
            models.Index(fields=['created_at'], name='shipment_created_idx'),
        ]

    def __str__(self):
        return f"Shipment {self.origin_city} -> {self.dest_city} ({self.status})"

    def clean(self):
        """
        Validate package facts, the courier invariant and status transitions.

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        max_weight = Decimal(getattr(settings, 'DELIVERY_MAX_PACKAGE_WEIGHT', 50))
        if self.weight is not None and self.weight > max_weight:
            raise ValidationError({
                'weight': _(f'Weight cannot exceed {max_weight}.')
            })

        if self.date_start and self.date_end and self.date_end < self.date_start:
            raise ValidationError({
                'date_end': _('Delivery window cannot end before it starts.')
            })

        if self.courier_id and self.courier_id == self.sender_id:
            raise ValidationError({
                'courier_id': _('The sender cannot carry their own shipment.')
            })

        if self.status in self.COURIER_STATUSES and not self.courier_id:
            raise ValidationError({
                'courier_id': _(f'A courier must be assigned while the shipment is {self.status}.')
            })

        if self.status not in self.COURIER_STATUSES and self.courier_id:
            raise ValidationError({
                'courier_id': _(f'A {self.status} shipment cannot have a courier.')
            })

        if self.pk is not None:
            try:
                old_instance = Shipment.objects.get(pk=self.pk)
            except Shipment.DoesNotExist:
                return

            for field in self.IMMUTABLE_FIELDS:
                if getattr(old_instance, field) != getattr(self, field):
                    raise ValidationError({
                        field: _('This field cannot be changed after the shipment is created.')
                    })

            if old_instance.status != self.status:
                if self.status not in self.VALID_TRANSITIONS.get(old_instance.status, []):
                    raise ValidationError({
                        'status': _(
                            f'Invalid status transition from {old_instance.status} to {self.status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def can_transition_to(self, new_status):
        """
        Check a status transition against the lifecycle table.

        Returns:
            tuple: (is_valid: bool, error_message: str or None)
        """
        current_status = self.status

        if current_status == new_status:
            return True, None

        if current_status in self.TERMINAL_STATUSES:
            return False, f'Cannot modify a {current_status} shipment.'

        if new_status not in self.VALID_TRANSITIONS.get(current_status, []):
            return False, f'Invalid status transition from {current_status} to {new_status}.'

        return True, None

    def role_of(self, user_id):
        """Return 'sender', 'courier' or None for a user id."""
        if user_id == self.sender_id:
            return 'sender'
        if self.courier_id and user_id == self.courier_id:
            return 'courier'
        return None

    def is_participant(self, user_id):
        return self.role_of(user_id) is not None

    @property
    def handover_confirmed(self):
        return self.sender_confirmed_handover and self.courier_confirmed_handover

    @property
    def delivery_confirmed(self):
        return self.sender_confirmed_delivery and self.courier_confirmed_delivery


class Offer(models.Model):
    """
    A courier's bid to carry a specific shipment.

    At most one offer per (shipment, courier) and at most one accepted
    offer per shipment. Offers are never deleted.
    """

    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (ACCEPTED, 'Accepted'),
        (REJECTED, 'Rejected'),
    ]

    # accepted -> rejected happens only when a refund reopens the shipment
    VALID_TRANSITIONS = {
        PENDING: [ACCEPTED, REJECTED],
        ACCEPTED: [REJECTED],
        REJECTED: [],
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    shipment = models.ForeignKey(
        Shipment,
        on_delete=models.CASCADE,
        related_name='offers',
    )
    courier_id = models.CharField(_('courier id'), max_length=USER_ID_MAX_LENGTH, db_index=True)
    message = models.TextField(_('message'))
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=PENDING,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('offer')
        verbose_name_plural = _('offers')
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['shipment', 'courier_id'],
                name='unique_offer_per_courier',
            ),
            models.UniqueConstraint(
                fields=['shipment'],
                condition=Q(status='accepted'),
                name='single_accepted_offer_per_shipment',
            ),
        ]

    def __str__(self):
        return f"Offer by {self.courier_id} on {self.shipment_id} ({self.status})"

    def clean(self):
        super().clean()

        if self.shipment_id and self.courier_id == self.shipment.sender_id:
            raise ValidationError({
                'courier_id': _('Cannot make an offer on your own shipment.')
            })

        if not self.message or not self.message.strip():
            raise ValidationError({
                'message': _('Offer message cannot be empty.')
            })

        if self.pk is not None:
            try:
                old_instance = Offer.objects.get(pk=self.pk)
            except Offer.DoesNotExist:
                return

            if old_instance.status != self.status:
                if self.status not in self.VALID_TRANSITIONS.get(old_instance.status, []):
                    raise ValidationError({
                        'status': _(
                            f'Invalid offer status transition from {old_instance.status} to {self.status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class PaymentMethod(models.Model):
    """
    A stored card. Only the brand and the last four digits are kept.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user_id = models.CharField(_('user id'), max_length=USER_ID_MAX_LENGTH, db_index=True)
    card_type = models.CharField(_('card type'), max_length=20)
    last_four = models.CharField(_('last four digits'), max_length=4)
    card_holder = models.CharField(_('card holder'), max_length=200)
    expiry_month = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(12)]
    )
    expiry_year = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(2024)]
    )
    is_default = models.BooleanField(default=False)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('payment method')
        verbose_name_plural = _('payment methods')
        ordering = ['-is_default', '-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user_id'],
                condition=Q(is_default=True),
                name='single_default_payment_method',
            ),
        ]

    def __str__(self):
        return f"{self.card_type} ****{self.last_four}"


class EscrowTransaction(models.Model):
    """
    Escrow ledger entry for one hold cycle of a shipment.

    Fields:
    - shipment: Shipment the funds are held for
    - amount / currency: Copied from the shipment at hold time, immutable
    - status: held, released or refunded
    - payer_id: The sender
    - payee_id: The courier
    - payment_method: Card the hold was placed against
    - description: Human readable summary
    - released_at / refunded_at: Terminal timestamps

    Refunded rows are kept for audit and do not block a new hold.
    """

    HELD = 'held'
    RELEASED = 'released'
    REFUNDED = 'refunded'

    STATUS_CHOICES = [
        (HELD, 'Held'),
        (RELEASED, 'Released'),
        (REFUNDED, 'Refunded'),
    ]

    VALID_TRANSITIONS = {
        HELD: [RELEASED, REFUNDED],
        RELEASED: [],
        REFUNDED: [],
    }

    IMMUTABLE_FIELDS = ('shipment_id', 'amount', 'currency', 'payer_id')

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    shipment = models.ForeignKey(
        Shipment,
        on_delete=models.PROTECT,
        related_name='transactions',
    )
    amount = models.DecimalField(
        _('amount'),
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
    )
    currency = models.CharField(
        _('currency'),
        max_length=3,
        validators=[validate_currency_code],
    )
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=HELD,
    )
    payer_id = models.CharField(_('payer id'), max_length=USER_ID_MAX_LENGTH, db_index=True)
    payee_id = models.CharField(_('payee id'), max_length=USER_ID_MAX_LENGTH, db_index=True)
    payment_method = models.ForeignKey(
        PaymentMethod,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions',
    )
    description = models.CharField(_('description'), max_length=300, blank=True, default='')

    released_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('escrow transaction')
        verbose_name_plural = _('escrow transactions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='escrow_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['shipment'],
                condition=~Q(status='refunded'),
                name='single_active_transaction_per_shipment',
            ),
        ]

    def __str__(self):
        return f"Escrow {self.amount} {self.currency} for {self.shipment_id} ({self.status})"

    def clean(self):
        super().clean()

        if self.payer_id and self.payee_id and self.payer_id == self.payee_id:
            raise ValidationError({
                'payee_id': _('Payer and payee cannot be the same user.')
            })

        if self.pk is not None:
            try:
                old_instance = EscrowTransaction.objects.get(pk=self.pk)
            except EscrowTransaction.DoesNotExist:
                return

            for field in self.IMMUTABLE_FIELDS:
                if getattr(old_instance, field) != getattr(self, field):
                    raise ValidationError({
                        field: _('Ledger amounts and parties cannot be changed.')
                    })

            if old_instance.status != self.status:
                if self.status not in self.VALID_TRANSITIONS.get(old_instance.status, []):
                    raise ValidationError({
                        'status': _(
                            f'Invalid escrow status transition from {old_instance.status} to {self.status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def release(self, payee_id=None):
        """
        Transition escrow from held to released.

        Raises:
            ValidationError: If current status is not held
        """
        if self.status != self.HELD:
            raise ValidationError(_('Can only release escrow from held status.'))

        if payee_id:
            self.payee_id = payee_id
        self.status = self.RELEASED
        self.released_at = timezone.now()
        self.save()

    def refund(self):
        """
        Transition escrow from held to refunded.

        Raises:
            ValidationError: If current status is not held
        """
        if self.status != self.HELD:
            raise ValidationError(_('Can only refund escrow from held status.'))

        self.status = self.REFUNDED
        self.refunded_at = timezone.now()
        self.save()


class Conversation(models.Model):
    """
    Negotiation thread between a shipment's sender and one courier.

    The participant pair is stored sorted so lookups are order independent.
    """

    PENDING = 'pending'
    ACTIVE = 'active'
    MATCHED = 'matched'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (ACTIVE, 'Active'),
        (MATCHED, 'Matched'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    shipment = models.ForeignKey(
        Shipment,
        on_delete=models.CASCADE,
        related_name='conversations',
    )
    user1_id = models.CharField(max_length=USER_ID_MAX_LENGTH, db_index=True)
    user2_id = models.CharField(max_length=USER_ID_MAX_LENGTH, db_index=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    last_message = models.TextField(blank=True, default='')
    last_message_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-updated_at']
        constraints = [
            models.UniqueConstraint(
                fields=['shipment', 'user1_id', 'user2_id'],
                name='unique_conversation_per_pair',
            ),
        ]

    def __str__(self):
        return f"Conversation {self.user1_id} / {self.user2_id} on {self.shipment_id}"

    def has_participant(self, user_id):
        return user_id in (self.user1_id, self.user2_id)


class Message(models.Model):
    """A single entry in a conversation transcript."""

    TEXT = 'text'
    SYSTEM = 'system'
    OFFER = 'offer'
    MATCH_REQUEST = 'match_request'

    KIND_CHOICES = [
        (TEXT, 'Text'),
        (SYSTEM, 'System'),
        (OFFER, 'Offer'),
        (MATCH_REQUEST, 'Match Request'),
    ]

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='messages',
    )
    sender_id = models.CharField(max_length=USER_ID_MAX_LENGTH)
    kind = models.CharField(max_length=20, choices=KIND_CHOICES, default=TEXT)
    content = models.TextField()
    is_read = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.kind} from {self.sender_id}"


class Travel(models.Model):
    """
    A trip a courier has posted, with the spare luggage weight they can carry.

    Fields:
    - traveler_id: Courier who posted the trip
    - route facts: from/to country, city, airport and airport code
    - departure_date / arrival_date
    - available_weight, weight_unit: Spare capacity
    - price_per_kg, currency: Optional asking price
    - flight_number
    - status: active or cancelled
    - created_at / updated_at
    """

    ACTIVE = 'active'
    CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (ACTIVE, _('Active')),
        (CANCELLED, _('Cancelled')),
    ]

    VALID_TRANSITIONS = {
        ACTIVE: [CANCELLED],
        CANCELLED: [],
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    traveler_id = models.CharField(_('traveler id'), max_length=USER_ID_MAX_LENGTH, db_index=True)

    from_country = models.CharField(_('from country'), max_length=100)
    from_city = models.CharField(_('from city'), max_length=100)
    from_airport = models.CharField(_('from airport'), max_length=200, blank=True, default='')
    from_airport_code = models.CharField(_('from airport code'), max_length=10, blank=True, default='')

    to_country = models.CharField(_('to country'), max_length=100)
    to_city = models.CharField(_('to city'), max_length=100)
    to_airport = models.CharField(_('to airport'), max_length=200, blank=True, default='')
    to_airport_code = models.CharField(_('to airport code'), max_length=10, blank=True, default='')

    departure_date = models.DateTimeField(_('departure date'))
    arrival_date = models.DateTimeField(_('arrival date'), null=True, blank=True)

    available_weight = models.DecimalField(
        _('available weight'),
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.1'))],
    )
    weight_unit = models.CharField(_('weight unit'), max_length=10, default='kg')

    price_per_kg = models.DecimalField(
        _('price per kg'),
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0'))],
    )
    currency = models.CharField(
        _('currency'),
        max_length=3,
        default='USD',
        validators=[validate_currency_code],
    )
    flight_number = models.CharField(_('flight number'), max_length=20, blank=True, default='')

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=ACTIVE,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('travel')
        verbose_name_plural = _('travels')
        ordering = ['departure_date']
        indexes = [
            models.Index(fields=['status', 'departure_date'], name='travel_status_departure_idx'),
        ]

    def __str__(self):
        return f"Travel {self.from_city} -> {self.to_city} ({self.status})"

    def clean(self):
        """
        Validate the travel dates and status transitions.

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.departure_date and self.arrival_date and self.arrival_date < self.departure_date:
            raise ValidationError({
                'arrival_date': _('Arrival cannot be before departure.')
            })

        if self.pk is not None:
            try:
                old_instance = Travel.objects.get(pk=self.pk)
            except Travel.DoesNotExist:
                return

            if old_instance.traveler_id != self.traveler_id:
                raise ValidationError({
                    'traveler_id': _('The traveler of a travel cannot be changed.')
                })

            if old_instance.status != self.status:
                if self.status not in self.VALID_TRANSITIONS.get(old_instance.status, []):
                    raise ValidationError({
                        'status': _(
                            f'Invalid status transition from {old_instance.status} to {self.status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)
