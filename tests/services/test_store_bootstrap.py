"""
Tests for bootstrap_store: settings row and sequence counters.
"""

import pytest

from stock_config.schema import StoreConfig
from stock_kernel.domain.policy import DocumentType, InventoryMethod
from stock_kernel.exceptions import ConfigNotFoundError
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.settings_service import SettingsService
from stock_services.bootstrap import bootstrap_store


def _config(method=InventoryMethod.FEFO, expiry=True) -> StoreConfig:
    return StoreConfig(
        name="branch-7",
        version=2,
        database_url="sqlite://",
        echo_sql=False,
        log_level="INFO",
        inventory_method=method,
        is_expiry_date_considered=expiry,
        checksum="0" * 64,
    )


class TestBootstrapStore:

    def test_fresh_store(self, session):
        result = bootstrap_store(session, _config())

        assert result.settings_created
        assert result.counters_created == ("purchase", "sale", "transfer", "adjustment")
        policy = SettingsService(session).get_policy()
        assert policy.method == InventoryMethod.FEFO
        assert policy.expiry_considered is True
        assert SequenceService(session).next_document_id(DocumentType.PURCHASE) == "TRXPU-1"

    def test_rerun_changes_nothing(self, session):
        bootstrap_store(session, _config())
        SequenceService(session).next_value("sale")
        session.commit()

        result = bootstrap_store(session, _config(method=InventoryMethod.LIFO, expiry=False))

        assert not result.settings_created
        assert result.counters_created == ()
        assert SettingsService(session).get_policy().method == InventoryMethod.FEFO
        assert SequenceService(session).current_value("sale") == 1

    def test_unbootstrapped_store_is_misconfigured(self, session, db_tables):
        with pytest.raises(ConfigNotFoundError):
            SettingsService(session).get_policy()
        with pytest.raises(ConfigNotFoundError):
            SequenceService(session).next_value("purchase")

    def test_logged(self, session, captured_logs):
        bootstrap_store(session, _config())

        (record,) = [r for r in captured_logs() if r["message"] == "store_bootstrapped"]
        assert record["config_name"] == "branch-7"
        assert record["settings_created"] is True
