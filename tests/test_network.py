import pytest

from tenant_onboarding.core.errors import AddressBlockUnavailableError
from tenant_onboarding.provisioning.models import AddressBlockModel
from tenant_onboarding.provisioning.network import (
    assign_address_block,
    available_address_block,
    cidr_prefix,
    get_address_block,
    seed_address_blocks,
)


def test_seed_is_idempotent(db):
    assert seed_address_blocks(db, count=3) == 3
    assert seed_address_blocks(db, count=3) == 0
    blocks = [row.cidr_block for row in db.query(AddressBlockModel).order_by(AddressBlockModel.id)]
    assert blocks == ["10.1.0.0/16", "10.2.0.0/16", "10.3.0.0/16"]


def test_assign_is_idempotent_per_tenant(db, address_blocks):
    first = assign_address_block(db, "tenant-a")
    assert assign_address_block(db, "tenant-a") == first
    second = assign_address_block(db, "tenant-b")

    assert first == "10.1.0.0/16"
    assert second == "10.2.0.0/16"
    assert get_address_block(db, "tenant-b") == second


def test_exhausted_pool(db):
    seed_address_blocks(db, count=1)
    assign_address_block(db, "tenant-a")

    assert not available_address_block(db)
    with pytest.raises(AddressBlockUnavailableError):
        assign_address_block(db, "tenant-b")
    assert get_address_block(db, "tenant-b") is None


def test_empty_pool_has_nothing_available(db):
    assert not available_address_block(db)


def test_cidr_prefix():
    assert cidr_prefix("10.12.0.0/16") == "10.12"
