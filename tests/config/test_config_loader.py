"""
Configuration loading: YAML sets parse into frozen policies, bad sets are
rejected, and the active config is traced.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
import yaml

from fulfillment_config import get_active_config
from fulfillment_config.bridges import build_allocation_service
from fulfillment_config.loader import compute_checksum, load_config, parse_config

BASE_CONFIG = {
    "config_id": "test",
    "version": 3,
    "allocation": {
        "allocatable_order_statuses": ["confirmed", "allocating", "partial"],
        "default_strategy": "fifo",
        "allow_lot_splitting": True,
    },
    "fulfillment": {"require_tracking_for_shipment": False},
}


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="config.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path
    return _write


class TestDefaultConfig:
    def test_packaged_default_loads(self, monkeypatch):
        monkeypatch.delenv("FULFILLMENT_CONFIG", raising=False)

        config = get_active_config()

        assert config.config_id == "default"
        assert config.allocation.default_strategy == "FEFO"
        assert config.allocation.allow_lot_splitting is False
        assert config.allocation.eligible_lot_statuses == ("in_stock",)
        assert config.fulfillment.require_tracking_for_shipment is True
        assert config.fulfillment.restock_on_cancel is True
        assert len(config.checksum) == 64

    def test_env_var_selects_config(self, monkeypatch, write_config):
        path = write_config(BASE_CONFIG)
        monkeypatch.setenv("FULFILLMENT_CONFIG", str(path))

        config = get_active_config()

        assert config.config_id == "test"
        assert config.version == 3

    def test_trace_logged(self, captured_logs, write_config):
        config = get_active_config(write_config(BASE_CONFIG))

        traces = [r for r in captured_logs() if r["message"] == "FULFILLMENT_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_set_id"] == "test"
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["default_strategy"] == "FIFO"


class TestParsing:
    def test_sections_parsed(self, write_config):
        config = load_config(write_config(BASE_CONFIG))

        assert config.allocation.default_strategy == "FIFO"
        assert config.allocation.allow_lot_splitting is True
        assert config.fulfillment.require_tracking_for_shipment is False
        assert config.fulfillment.restock_on_cancel is True

    def test_unknown_root_key(self):
        with pytest.raises(ValueError, match="root"):
            parse_config({**BASE_CONFIG, "metrics": {}})

    def test_unknown_allocation_key(self):
        data = {**BASE_CONFIG, "allocation": {"reserve_everything": True}}
        with pytest.raises(ValueError, match="allocation"):
            parse_config(data)

    def test_pending_cannot_be_allocatable(self):
        data = {**BASE_CONFIG, "allocation": {"allocatable_order_statuses": ["pending"]}}
        with pytest.raises(ValueError, match="pending"):
            parse_config(data)

    def test_invalid_strategy(self):
        data = {**BASE_CONFIG, "allocation": {"default_strategy": "random"}}
        with pytest.raises(ValueError):
            parse_config(data)

    def test_missing_config_id(self):
        data = {k: v for k, v in BASE_CONFIG.items() if k != "config_id"}
        with pytest.raises(KeyError):
            parse_config(data)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")


class TestChecksum:
    def test_deterministic_and_order_independent(self):
        reordered = dict(reversed(list(BASE_CONFIG.items())))
        assert compute_checksum(BASE_CONFIG) == compute_checksum(reordered)

    def test_changes_with_content(self):
        changed = {**BASE_CONFIG, "version": 4}
        assert compute_checksum(BASE_CONFIG) != compute_checksum(changed)


class TestBridge:
    def test_service_follows_config(
        self, session, write_config, create_order, receive_lot, warehouse_id, test_actor_id, deterministic_clock
    ):
        config = load_config(write_config(BASE_CONFIG))
        service = build_allocation_service(session, config, clock=deterministic_clock)
        product_id = uuid4()
        receive_lot(product_id, 3)
        receive_lot(product_id, 3)
        order = create_order([(product_id, 5)])

        result = service.allocate_inventory(
            order.id, product_id, Decimal("5"), warehouse_id, None, test_actor_id
        )

        assert result.is_success
        assert len(result.allocations) == 2
