from datetime import date
from decimal import Decimal
from itertools import count

import pytest

from accounts.models import User
from customers.models import Customer
from sales.services import record_invoice


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        email="admin@test.com",
        password="testpass123",
        first_name="Admin",
        last_name="User",
        role=User.Role.ADMIN,
    )


@pytest.fixture
def manager_user(db):
    return User.objects.create_user(
        email="manager@test.com",
        password="testpass123",
        first_name="Manager",
        last_name="User",
        role=User.Role.MANAGER,
    )


@pytest.fixture
def sales_user(manager_user):
    return User.objects.create_user(
        email="sales@test.com",
        password="testpass123",
        first_name="Sales",
        last_name="User",
        role=User.Role.SALES,
        manager=manager_user,
    )


@pytest.fixture
def other_sales_user(manager_user):
    return User.objects.create_user(
        email="sales2@test.com",
        password="testpass123",
        first_name="Awa",
        last_name="Ngono",
        role=User.Role.SALES,
        manager=manager_user,
    )


@pytest.fixture
def customer(sales_user):
    return Customer.objects.create(
        code="C001",
        name="Acme SARL",
        email="achats@acme.test",
        assigned_agent=sales_user,
    )


@pytest.fixture
def make_invoice(db):
    """Factory recording invoices through the sales service."""
    numbers = count(1)

    def _make(
        *,
        customer_code="C001",
        doc_date=date(2024, 3, 10),
        gross_total=Decimal("120.00"),
        vat_amount=None,
        vat_percent=None,
        lines=None,
    ):
        return record_invoice(
            doc_number=f"FAC-{next(numbers):05d}",
            customer_code=customer_code,
            doc_date=doc_date,
            gross_total=gross_total,
            vat_amount=vat_amount,
            vat_percent=vat_percent,
            lines=lines,
        )

    return _make
