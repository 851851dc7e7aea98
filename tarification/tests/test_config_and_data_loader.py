import pytest

from tarification.utils.config import DEFAULTS, get_tarification_config
from tarification.utils.data_loader import DataLoader


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in DEFAULTS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = get_tarification_config()
    assert config["QUICK_ESTIMATE_SURCHARGE"] == 15000.0
    assert config["PRICING_RESOLVE_WORKERS"] == 4
    assert config["DEFAULT_INJURY_FORMULA"] == 1
    assert config["DEFAULT_RATE_IF_TRUE"] == 1.1
    assert config["DEFAULT_RATE_IF_FALSE"] == 2.1
    assert config["SEED_ON_STARTUP"] is False


def test_environment_values(monkeypatch):
    monkeypatch.setenv("QUICK_ESTIMATE_SURCHARGE", "20000")
    monkeypatch.setenv("SEED_ON_STARTUP", "true")
    config = get_tarification_config()
    assert config["QUICK_ESTIMATE_SURCHARGE"] == 20000.0
    assert config["SEED_ON_STARTUP"] is True


def test_overrides_win(monkeypatch):
    monkeypatch.setenv("DEFAULT_INJURY_FORMULA", "3")
    assert get_tarification_config(DEFAULT_INJURY_FORMULA=2)["DEFAULT_INJURY_FORMULA"] == 2


def test_negative_surcharge_is_rejected():
    with pytest.raises(ValueError):
        get_tarification_config(QUICK_ESTIMATE_SURCHARGE=-1)


def test_worker_count_is_at_least_one():
    assert get_tarification_config(PRICING_RESOLVE_WORKERS=0)["PRICING_RESOLVE_WORKERS"] == 1


def test_bundled_tables():
    loader = DataLoader()
    rc = loader.load_rc_tariffs()
    assert len(rc) == 8
    assert rc[0] == {'id': 'rc-1', 'category': '401', 'energy': 'Essence', 'power_min': '1', 'power_max': '2',
                     'premium': '68675'}
    fixed = {row['id']: row for row in loader.load_fixed_tariffs()}
    assert fixed['fix-4']['reduced_bundle_price'] is None
    assert len(loader.load_guarantees()) == 12
    assert len(loader.load_packages()) == 4


def test_missing_table(tmp_path):
    with pytest.raises(FileNotFoundError):
        DataLoader(str(tmp_path)).load_rc_tariffs()
