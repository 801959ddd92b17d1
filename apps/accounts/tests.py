import io

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.test import TestCase

from apps.accounts.models import UserRole
from apps.common.permissions import has_capability, resolve_role

User = get_user_model()


class RoleTests(TestCase):
    def test_seed_roles_is_repeatable(self):
        out = io.StringIO()
        call_command("seed_roles", stdout=out)
        call_command("seed_roles", stdout=out)
        self.assertEqual(Group.objects.filter(name__in=UserRole.values).count(), 3)
        self.assertIn("already present", out.getvalue())

    def test_group_membership_overrides_role_field(self):
        call_command("seed_roles", stdout=io.StringIO())
        user = User.objects.create_user(username="clerk", password="clerk123", role=UserRole.CUSTOMER)
        self.assertEqual(resolve_role(user), UserRole.CUSTOMER)
        self.assertFalse(has_capability(user, "orders.view.all"))

        user.groups.add(Group.objects.get(name=UserRole.STAFF))
        self.assertEqual(resolve_role(user), UserRole.STAFF)
        self.assertTrue(has_capability(user, "orders.view.all"))
        self.assertFalse(has_capability(user, "payments.review"))

    def test_display_name_falls_back_to_username(self):
        user = User(username="juan")
        self.assertEqual(user.display_name, "juan")
        user.first_name, user.last_name = "Juan", "Dela Cruz"
        self.assertEqual(user.display_name, "Juan Dela Cruz")
