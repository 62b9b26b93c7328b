from django.contrib.auth import get_user_model
from django.test import TestCase

from .models import Role

User = get_user_model()


class UserManagerTests(TestCase):
    def test_create_user_defaults(self):
        user = User.objects.create_user("Ana@Example.COM", name="Ana")

        self.assertEqual(user.email, "Ana@example.com")
        self.assertEqual(user.role, Role.CONSUMER)
        self.assertFalse(user.is_staff)
        self.assertFalse(user.has_usable_password())

    def test_create_user_requires_email(self):
        with self.assertRaises(ValueError):
            User.objects.create_user("", name="Nadie")

    def test_create_superuser(self):
        admin = User.objects.create_superuser("admin@example.com", password="s3cret-pass", name="Admin")

        self.assertTrue(admin.is_staff)
        self.assertTrue(admin.is_superuser)
        self.assertTrue(admin.check_password("s3cret-pass"))

    def test_producers_excludes_consumers_and_inactive(self):
        olivo = User.objects.create_user("olivo@farm.com", name="Granja El Olivo", role=Role.PRODUCER)
        User.objects.create_user("cerrado@farm.com", name="Cerrado", role=Role.PRODUCER, is_active=False)
        User.objects.create_user("ana@example.com", name="Ana")

        self.assertEqual(list(User.objects.producers()), [olivo])
