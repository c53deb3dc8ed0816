import os
import sys
import django
import random
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'peer_delivery.settings')
django.setup()

from delivery import escrow, lifecycle, offers, payment_methods, travels

fake = Faker()

TEST_CARDS = ['4242424242424242', '5555555555554444', '378282246310005', '6011111111111117']


def create_users(num_senders=10, num_couriers=8):
    print(f"Creating {num_senders} senders and {num_couriers} couriers...")

    # Identities live with the identity provider; only their ids are stored here
    senders = [f"sender-{fake.unique.uuid4()[:8]}" for _ in range(num_senders)]
    couriers = [f"courier-{fake.unique.uuid4()[:8]}" for _ in range(num_couriers)]

    for sender in senders:
        payment_methods.add_payment_method(
            sender,
            card_number=random.choice(TEST_CARDS),
            card_holder=fake.name(),
            expiry_month=random.randint(1, 12),
            expiry_year=timezone.now().year + random.randint(1, 5),
        )

    print(f"Created {len(senders)} senders (with cards) and {len(couriers)} couriers.")
    return senders, couriers


def create_shipments(senders):
    print("Creating shipments...")
    shipments = []

    contents = ["Documents", "Books", "Clothes", "Laptop", "Gift box", "Spices", "Medicine"]
    package_types = ["envelope", "small box", "medium box", "suitcase"]

    for sender in senders:
        # Each sender posts 1-3 shipments
        for _ in range(random.randint(1, 3)):
            date_start = timezone.now() + timedelta(days=random.randint(1, 20))
            shipment = lifecycle.create_shipment(
                sender,
                origin_country=fake.country()[:100],
                origin_city=fake.city(),
                origin_address=fake.street_address(),
                meeting_point=fake.street_name(),
                dest_country=fake.country()[:100],
                dest_city=fake.city(),
                dest_address=fake.street_address(),
                weight=Decimal(random.uniform(0.5, 20.0)).quantize(Decimal('0.01')),
                content=random.choice(contents),
                package_type=random.choice(package_types),
                date_start=date_start,
                date_end=date_start + timedelta(days=random.randint(1, 14)),
                price=Decimal(random.uniform(10.0, 200.0)).quantize(Decimal('0.01')),
            )
            shipments.append(shipment)

    print(f"Created {len(shipments)} shipments.")
    return shipments


def create_travels(couriers):
    print("Creating travels...")
    created = []

    for courier in couriers:
        # Each courier posts 0-2 trips
        for _ in range(random.randint(0, 2)):
            departure = timezone.now() + timedelta(days=random.randint(1, 30), hours=random.randint(0, 23))
            travel = travels.create_travel(
                courier,
                from_country=fake.country()[:100],
                from_city=fake.city(),
                from_airport_code=fake.lexify("???").upper(),
                to_country=fake.country()[:100],
                to_city=fake.city(),
                to_airport_code=fake.lexify("???").upper(),
                departure_date=departure,
                arrival_date=departure + timedelta(hours=random.randint(2, 14)),
                available_weight=Decimal(random.uniform(1.0, 23.0)).quantize(Decimal('0.01')),
                price_per_kg=Decimal(random.uniform(2.0, 15.0)).quantize(Decimal('0.01')),
                flight_number=fake.bothify("??###").upper(),
            )
            created.append(travel)

    print(f"Created {len(created)} travels.")
    return created


def create_offers(shipments, couriers):
    print("Creating offers...")
    created = []

    for shipment in shipments:
        # 0-3 couriers bid on each shipment
        for courier in random.sample(couriers, random.randint(0, 3)):
            offer = offers.create_offer(
                shipment.id,
                courier,
                f"I travel to {shipment.dest_city} soon. {fake.sentence()}",
            )
            created.append(offer)

    print(f"Created {len(created)} offers.")
    return created


def advance_shipments(shipments):
    """Walk a share of the shipments through matching, handover and delivery."""
    print("Advancing shipments through the workflow...")
    counts = {'matched': 0, 'on_way': 0, 'delivered': 0, 'refunded': 0, 'cancelled': 0}

    for shipment in shipments:
        pending = list(shipment.offers.filter(status='pending'))
        if not pending:
            if random.random() < 0.2:
                lifecycle.update_status(shipment.id, shipment.sender_id, 'cancelled')
                counts['cancelled'] += 1
            continue

        winner = random.choice(pending)
        escrow.hold_payment(shipment.sender_id, shipment.id, winner.courier_id)
        counts['matched'] += 1

        roll = random.random()
        if roll < 0.15:
            escrow.refund_payment(shipment.sender_id, shipment.id)
            counts['refunded'] += 1
            continue
        if roll < 0.4:
            continue

        lifecycle.confirm_handover(shipment.id, winner.courier_id)
        lifecycle.confirm_handover(shipment.id, shipment.sender_id)
        counts['on_way'] += 1

        if random.random() < 0.6:
            lifecycle.confirm_delivery(shipment.id, winner.courier_id)
            lifecycle.confirm_delivery(shipment.id, shipment.sender_id)
            counts['delivered'] += 1

    print(
        f"Matched {counts['matched']}, refunded {counts['refunded']}, "
        f"on the way {counts['on_way']}, delivered {counts['delivered']}, "
        f"cancelled {counts['cancelled']}."
    )
    return counts


def main():
    print("Starting database population...")

    senders, couriers = create_users(num_senders=15, num_couriers=10)

    shipments = create_shipments(senders)

    create_travels(couriers)

    create_offers(shipments, couriers)

    advance_shipments(shipments)

    print("Database population completed successfully!")

if __name__ == '__main__':
    main()
