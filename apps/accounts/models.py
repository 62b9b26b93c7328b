from django.db import models
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.utils import timezone
from .managers import UserManager


class Role(models.TextChoices):
    PRODUCER = "producer", "Producer"
    CONSUMER = "consumer", "Consumer"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Marketplace identity.
    Producers own products, consumers place orders.
    Email is the login identifier.
    """
    name = models.CharField(max_length=255)
    email = models.EmailField(unique=True, db_index=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.CONSUMER)

    # Public producer profile
    location = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True)
    image_url = models.CharField(max_length=500, blank=True)

    is_staff = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    date_joined = models.DateTimeField(default=timezone.now)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['name']

    class Meta:
        db_table = 'users'
        verbose_name = 'User'
        verbose_name_plural = 'Users'

    def __str__(self):
        return f"{self.name} <{self.email}>"
