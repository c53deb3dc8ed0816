# Audit Ledger Management Command
from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from delivery.audit import shipment_violations
from delivery.models import Shipment

class Command(BaseCommand):
    help = 'Checks shipments, offers and escrow rows for ledger inconsistencies.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--shipment',
            help='Audit a single shipment by ID.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for iterating shipments.',
        )
        parser.add_argument(
            '--fail-on-violation',
            action='store_true',
            help='Exit with an error if any violation is found.',
        )

    def handle(self, *args, **options):
        shipment_id = options['shipment']
        batch_size = options['batch_size']

        if shipment_id:
            try:
                shipments = Shipment.objects.filter(pk=shipment_id)
                found = shipments.exists()
            except ValidationError:
                found = False
            if not found:
                raise CommandError(f'Shipment {shipment_id} does not exist.')
        else:
            shipments = Shipment.objects.all()

        self.stdout.write('Auditing escrow ledger...')
        count = 0
        inconsistent = 0

        for shipment in shipments.order_by('created_at').iterator(chunk_size=batch_size):
            violations = shipment_violations(shipment)
            if violations:
                inconsistent += 1
                for violation in violations:
                    self.stdout.write(self.style.ERROR(f'  Shipment {shipment.id}: {violation}'))

            count += 1
            if count % 100 == 0:
                self.stdout.write(f'Processed {count} shipments...')

        self.stdout.write(f'Processed {count} shipments total.')

        if inconsistent:
            summary = f'{inconsistent} inconsistent shipment(s) found.'
            if options['fail_on_violation']:
                raise CommandError(summary)
            self.stdout.write(self.style.WARNING(summary))
        else:
            self.stdout.write(self.style.SUCCESS('Ledger is consistent.'))
