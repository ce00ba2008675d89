import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from storefront.auth import Actor, Role
from storefront.cart.items import AddToCart
from storefront.catalogue.management import RegisterVariant
from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.registry import GatewayRegistry
from storefront.inventory.ledger import InventoryLedger
from storefront.order.service import OrderService
from storefront.payment.service import PaymentService


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture()
def ledger(tmp_path):
    ledger = InventoryLedger.from_uri(f"sqlite:///{tmp_path / 'inventory.db'}")
    ledger.create_schema()
    yield ledger
    ledger.engine.dispose()


@pytest.fixture()
def fake_gateway():
    return FakeGateway()


@pytest.fixture()
def gateways(fake_gateway):
    return GatewayRegistry([fake_gateway], fallback=fake_gateway)


@pytest.fixture()
def order_service(ledger):
    return OrderService(ledger)


@pytest.fixture()
def payment_service(gateways):
    return PaymentService(gateways)


@pytest.fixture()
def customer():
    return Actor(user_id="user-001", role=Role.CUSTOMER)


@pytest.fixture()
def admin():
    return Actor(user_id="admin-001", role=Role.ADMIN)


ADDRESS = {
    "full_name": "Jane Doe",
    "phone": "+15550100",
    "address_line1": "1 Main St",
    "city": "Springfield",
    "postal_code": "12345",
    "country": "US",
}


@pytest.fixture()
def shipping_address():
    return dict(ADDRESS)


@pytest.fixture()
def stock_variant(ledger):
    """Register a catalogue variant and open its stock row. Returns the variant id."""

    def _stock(sku, selling_price=10.0, supplier_price=6.0, available=10):
        variant_id = current_domain.process(
            RegisterVariant(
                sku=sku,
                supplier_id="sup-001",
                supplier_price=supplier_price,
                selling_price=selling_price,
            ),
            asynchronous=False,
        )
        ledger.register(variant_id, available_qty=available)
        return variant_id

    return _stock


@pytest.fixture()
def fill_cart():
    def _fill(user_id, lines):
        for variant_id, quantity in lines.items():
            current_domain.process(
                AddToCart(user_id=user_id, variant_id=variant_id, quantity=quantity),
                asynchronous=False,
            )

    return _fill


@pytest.fixture()
def placed_order(stock_variant, fill_cart, order_service, customer):
    """A CREATED order for two units of a 25.00 variant, plus the variant id."""
    variant_id = stock_variant("MUG-WHT", selling_price=25.0, available=5)
    fill_cart(customer.user_id, {variant_id: 2})
    order = order_service.create_order(customer.user_id, ADDRESS)
    return order, variant_id
