import json

import pytest

from parkcore.config.settings import EngineConfig
from parkcore.core.constants import SpotClass, SpotStatus
from parkcore.engine import ParkingEngine
from parkcore.main import main
from parkcore.sync.server_sync import RemoteActivitySink

INVENTORY = """
parking_spots:
  - id: P1
    spot_class: STANDARD
  - id: P2
    spot_class: VIP
    status: MAINTENANCE
"""


@pytest.fixture
def file_config(tmp_path):
    spots_path = tmp_path / "parking_spots.yaml"
    spots_path.write_text(INVENTORY, encoding="utf-8")
    return EngineConfig(
        PARKING_SPOTS_CONFIG=str(spots_path),
        LOGS_DIR=str(tmp_path / "logs"),
        LOG_FILE=str(tmp_path / "logs" / "engine.log"),
    )


def test_from_config_seeds_registry(file_config, clock):
    engine = ParkingEngine.from_config(file_config, clock=clock)

    assert engine.registry.total_spots() == 2
    assert engine.registry.get_spot("P2").spot_class == SpotClass.VIP
    assert engine.registry.get_spot("P2").status == SpotStatus.MAINTENANCE
    assert [s.id for s in engine.get_available_spots()] == ["P1"]


def test_from_config_with_sync_adds_remote_sink(file_config, clock):
    file_config.SYNC_ENABLED = True

    engine = ParkingEngine.from_config(file_config, clock=clock)
    remote = [sink for sink in engine.audit.sinks if isinstance(sink, RemoteActivitySink)]

    engine.close()

    assert len(remote) == 1
    assert remote[0].stop_event.is_set()
    assert not remote[0].worker.is_alive()


def test_end_to_end_cycle(file_config, clock):
    engine = ParkingEngine.from_config(file_config, clock=clock)
    engine.add_user("erin", full_name="Erin")

    session = engine.check_in("erin", "P1")
    clock.advance(minutes=150)
    result = engine.check_out(session.id, "DEBIT_CARD")

    assert str(result.session.amount_due) == "25.00"
    assert result.to_dict()["payment_method"] == "DEBIT_CARD"
    assert engine.get_dashboard("erin")["completed_sessions"] == 1


def test_main_reports_status(file_config, capsys):
    assert main(engine_config=file_config, configure_logging=False) == 0

    output = capsys.readouterr().out
    status = json.loads(output[output.index("{"):])
    assert status["parking_summary"]["total_spots"] == 2


def test_main_fails_on_unreadable_inventory(file_config, tmp_path):
    broken = tmp_path / "broken.yaml"
    broken.write_text("parking_spots: [unclosed", encoding="utf-8")

    assert main(str(broken), engine_config=file_config, configure_logging=False) == 1
