from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from apps.accounts.models import UserRole


class Command(BaseCommand):
    help = "Create one auth group per back-office role (admin, staff, customer)"

    def handle(self, *args, **options):
        for role in UserRole.values:
            group, created = Group.objects.get_or_create(name=role)
            status = "created" if created else "already present"
            self.stdout.write(self.style.SUCCESS(f"role group {group.name}: {status}"))
