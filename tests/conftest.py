from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from app import create_app
from config import TestConfig
from gateways.base import GatewayOrder, GatewayRefund, GatewayResult
from models import db
from models.property import Property
from models.status import AttemptStatus
from models.user import Role, User
from security.csrf import CSRF_COOKIE, CSRF_HEADER
from security.password import hash_password
from services.errors import GatewayError

PASSWORD = "correct-horse-battery"


class FakeGateway:
    """Stands in for a provider: scripted results, recorded calls."""

    def __init__(self, name):
        self.name = name
        self.results = []
        self.orders = 0
        self.refunds = []
        self.fail_create = False
        self.fail_refund = False

    def create_order(self, booking, payment):
        if self.fail_create:
            raise GatewayError(f"{self.name} unavailable", gateway=self.name)
        self.orders += 1
        return GatewayOrder(reference=f"{self.name}-ref-{payment.id}", payload={"client_secret": "secret"})

    def capture_or_sync(self, payment, payload=None):
        if self.results:
            return self.results.pop(0)
        return GatewayResult(status=AttemptStatus.PAID, amount=payment.amount,
                             currency=payment.currency, transaction_id=f"txn-{payment.id}")

    def refund(self, payment, amount):
        if self.fail_refund:
            raise GatewayError("refund declined", gateway=self.name)
        self.refunds.append((payment.id, amount))
        return GatewayRefund(transaction_id=f"re-{payment.id}", amount=amount)


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig, SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'test.db'}")
    app.extensions["payment_gateways"] = {
        name: FakeGateway(name) for name in ("stripe", "paypal", "sadad")
    }
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def gateways(app):
    return app.extensions["payment_gateways"]


def make_user(email, *roles):
    user = User(email=email, password_hash=hash_password(PASSWORD))
    user.roles = Role.query.filter(Role.name.in_(roles or ("GUEST",))).all()
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def host(app):
    return make_user("host@example.com", "GUEST", "HOST")


@pytest.fixture
def other_host(app):
    return make_user("other-host@example.com", "GUEST", "HOST")


@pytest.fixture
def guest(app):
    return make_user("guest@example.com", "GUEST")


@pytest.fixture
def second_guest(app):
    return make_user("guest2@example.com", "GUEST")


@pytest.fixture
def admin(app):
    return make_user("admin@example.com", "ADMIN")


def make_property(owner, **overrides):
    fields = dict(
        owner_user_id=owner.id,
        title="Cabin by the lake",
        nightly_rate=Decimal("100.00"),
        cleaning_fee=Decimal("20.00"),
        currency="USD",
        max_guests=4,
        cancellation_policy="MODERATE",
        instant_book=True,
    )
    fields.update(overrides)
    prop = Property(**fields)
    db.session.add(prop)
    db.session.commit()
    return prop


@pytest.fixture
def listing(host):
    return make_property(host)


@pytest.fixture
def stay():
    """A three-night stay a month out."""
    check_in = date.today() + timedelta(days=30)
    return check_in, check_in + timedelta(days=3)


@pytest.fixture
def now():
    return datetime.utcnow()


def login(client, email):
    resp = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200
    token = client.get_cookie(CSRF_COOKIE).value
    return {CSRF_HEADER: token}
