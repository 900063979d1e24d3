"""Tests for the installation helper script."""

from __future__ import annotations

import pytest

from estate_ledger import core_logic, data_manager, setup_data


def test_write_config_produces_loadable_settings(tmp_path):
    config_path = setup_data.write_config(tmp_path / "config.ini", agency_name="Acme Realty", current_user="u2")

    settings = data_manager.parse_settings(data_manager.read_config(config_path), base_path=tmp_path)

    assert settings.agency_name == "Acme Realty"
    assert settings.current_user_id == "u2"
    assert settings.data_file == (tmp_path / "estate_data.json").resolve()
    assert settings.backup_dir == (tmp_path / "backups").resolve()


def test_write_config_refuses_to_overwrite(tmp_path):
    config_path = setup_data.write_config(tmp_path / "config.ini")

    with pytest.raises(FileExistsError):
        setup_data.write_config(config_path)
    setup_data.write_config(config_path, agency_name="Other", overwrite=True)
    assert "AgencyName = Other" in config_path.read_text(encoding="utf-8")


def test_create_data_file_demo_and_overwrite(tmp_path):
    data_file = setup_data.create_data_file(tmp_path / "estate.json", demo=True)

    assert data_manager.load_snapshot(data_file) == setup_data.demo_snapshot()
    with pytest.raises(FileExistsError):
        setup_data.create_data_file(data_file)
    setup_data.create_data_file(data_file, overwrite=True)
    assert data_manager.load_snapshot(data_file) == data_manager.default_snapshot()


def test_demo_snapshot_is_internally_consistent():
    snapshot = setup_data.demo_snapshot()

    sold = {stand.stand_id for stand in snapshot.stands if stand.status.value == "SOLD"}
    assert sold == {sale.stand_id for sale in snapshot.sales}
    assert snapshot.commissions[0].total_agency_commission == snapshot.sales[0].sale_price * 5 / 100


def test_main_initializes_config_and_demo_data(tmp_path, capsys):
    config_path = tmp_path / "config.ini"

    exit_code = setup_data.main(["--config", str(config_path), "--init-config", "--demo"])

    assert exit_code == 0
    assert "[SUCCESS]" in capsys.readouterr().out
    context = core_logic.load_runtime_context(config_path)
    assert [sale.sale_id for sale in context.snapshot.sales] == ["s1"]


def test_main_reports_existing_data_file(tmp_path, capsys):
    config_path = tmp_path / "config.ini"
    setup_data.main(["--config", str(config_path), "--init-config"])
    capsys.readouterr()

    exit_code = setup_data.main(["--config", str(config_path)])

    assert exit_code == 1
    assert "--force" in capsys.readouterr().out


def test_main_missing_config(tmp_path, capsys):
    assert setup_data.main(["--config", str(tmp_path / "absent.ini")]) == 1
    assert "[ERROR]" in capsys.readouterr().out
