from datetime import UTC, datetime, timedelta

from reviewreply.models.domain.tenant_domain import (
    DEFAULT_CONTACT,
    Tenant,
    TenantUpdate,
    merge_tenant,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def test_merge_new_tenant_gets_defaults_and_trial():
    tenant = merge_tenant(None, TenantUpdate(account_id="acc-1", location_id="loc-1"), NOW)

    assert tenant.contact == DEFAULT_CONTACT
    assert tenant.interval_minutes == 30
    assert tenant.auto_reply_enabled is False
    assert tenant.trial_ends_at == NOW + timedelta(days=30)
    assert tenant.updated_at == NOW


def test_merge_incoming_value_wins_and_unset_fields_keep_prior():
    existing = Tenant(
        account_id="acc-1",
        location_id="loc-1",
        name="Bakery",
        contact="owner@bakery.test",
        interval_minutes=15,
        trial_ends_at=NOW - timedelta(days=1),
        is_pro=True,
    )

    merged = merge_tenant(existing, TenantUpdate(account_id="acc-1", name="New Bakery"), NOW)

    assert merged.name == "New Bakery"
    assert merged.location_id == "loc-1"
    assert merged.contact == "owner@bakery.test"
    assert merged.interval_minutes == 15
    assert merged.is_pro is True
    assert merged.trial_ends_at == NOW - timedelta(days=1)


def test_merge_existing_tenant_without_trial_end_is_not_backfilled():
    existing = Tenant(account_id="acc-1", location_id="loc-1")

    merged = merge_tenant(existing, TenantUpdate(account_id="acc-1", auto_reply_enabled=True), NOW)

    assert merged.trial_ends_at is None
    assert merged.auto_reply_enabled is True


def test_merge_false_is_a_real_value():
    existing = Tenant(account_id="acc-1", auto_reply_enabled=True)

    merged = merge_tenant(existing, TenantUpdate(account_id="acc-1", auto_reply_enabled=False), NOW)

    assert merged.auto_reply_enabled is False


def test_trial_predicates():
    lapsed = Tenant(
        account_id="a",
        location_id="l",
        auto_reply_enabled=True,
        trial_ends_at=NOW - timedelta(days=1),
    )
    subscribed = lapsed.model_copy(update={"subscribed_at": NOW - timedelta(days=10)})
    no_end = Tenant(account_id="a", location_id="l", auto_reply_enabled=True)

    assert lapsed.is_trial_active(NOW) is False
    assert lapsed.is_eligible_for_auto_reply(NOW) is False
    assert subscribed.is_eligible_for_auto_reply(NOW) is True
    assert no_end.is_trial_active(NOW) is True


def test_naive_trial_end_is_treated_as_utc():
    tenant = Tenant(account_id="a", trial_ends_at=datetime(2026, 3, 2, 0, 0))

    assert tenant.is_trial_active(NOW) is True


def test_contact_email_only_for_email_like_contacts():
    assert Tenant(account_id="a", contact="hi@shop.test").contact_email() == "hi@shop.test"
    assert Tenant(account_id="a", contact="call 555-1234").contact_email() is None
    assert Tenant(account_id="a").display_name() == "This business"
