from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from apps.accounts.models import Role
from apps.catalog.models import Product

User = get_user_model()

PRODUCERS = [
    {
        "email": "olivo@farm.com",
        "name": "Granja El Olivo",
        "location": "Valle Central",
        "description": "Productores de aceite de oliva y hortalizas orgánicas.",
    },
    {
        "email": "huerto@farm.com",
        "name": "Huerto Familiar",
        "location": "Zona Norte",
        "description": "Especialistas en frutas de temporada y miel pura.",
    },
]

# (producer email, name, description, price, unit, stock, category, image)
PRODUCTS = [
    (
        "olivo@farm.com", "Aceite de Oliva Extra Virgen", "Prensado en frío, 100% orgánico.",
        "12.50", "litro", 50, "Aceites",
        "https://images.unsplash.com/photo-1474979266404-7eaacbcd87c5?auto=format&fit=crop&q=80&w=800",
    ),
    (
        "olivo@farm.com", "Tomates Cherry", "Dulces y jugosos, recién cosechados.",
        "3.00", "kg", 20, "Verduras",
        "https://images.unsplash.com/photo-1592924357228-91a4daadcfea?auto=format&fit=crop&q=80&w=800",
    ),
    (
        "huerto@farm.com", "Miel de Abeja Multifloral", "Miel pura de flores silvestres.",
        "8.00", "frasco", 15, "Despensa",
        "https://images.unsplash.com/photo-1587049352846-4a222e784d38?auto=format&fit=crop&q=80&w=800",
    ),
    (
        "huerto@farm.com", "Manzanas Rojas", "Crujientes y dulces, sin pesticidas.",
        "2.50", "kg", 100, "Frutas",
        "https://images.unsplash.com/photo-1560806887-1e4cd0b6bcd6?auto=format&fit=crop&q=80&w=800",
    ),
]


class Command(BaseCommand):
    help = "Seed the demo producers and their products (idempotent)"

    def add_arguments(self, parser):
        parser.add_argument(
            '--password',
            type=str,
            default=None,
            help='Password for the demo producer accounts (unusable if omitted)'
        )

    def handle(self, *args, **options):
        password = options['password']
        created_users = 0
        created_products = 0

        with transaction.atomic():
            producers = {}
            for data in PRODUCERS:
                user = User.objects.filter(email=data["email"]).first()
                if user is None:
                    user = User.objects.create_user(
                        data["email"],
                        password=password,
                        name=data["name"],
                        role=Role.PRODUCER,
                        location=data["location"],
                        description=data["description"],
                    )
                    created_users += 1
                producers[data["email"]] = user

            for email, name, description, price, unit, stock, category, image_url in PRODUCTS:
                _, created = Product.objects.get_or_create(
                    producer=producers[email],
                    name=name,
                    defaults={
                        "description": description,
                        "price": Decimal(price),
                        "unit": unit,
                        "stock": stock,
                        "category": category,
                        "image_url": image_url,
                    },
                )
                if created:
                    created_products += 1

        self.stdout.write(
            self.style.SUCCESS(
                f"Marketplace seeded: {created_users} producers, {created_products} products created"
            )
        )
